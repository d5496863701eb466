"""
Record snapshots and domain entities supplied by the record fetcher.

Snapshots are immutable for the duration of one report computation. Enum-like
fields stay plain strings so unexpected store values never fail validation.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import ConfigDict, Field

from core.schema_base import HTTPSchemaModel


class SnapshotModel(HTTPSchemaModel):
    """Frozen base for everything a fetcher hands to the engine."""

    model_config = ConfigDict(frozen=True)


# =============================================================================
# Domain Entities
# =============================================================================


class Zone(SnapshotModel):
    id: int
    name: str
    short_form: Optional[str] = None
    is_active: bool = True


class Customer(SnapshotModel):
    id: int
    company_name: str
    address: Optional[str] = None
    industry: Optional[str] = None
    service_zone_id: Optional[int] = None
    is_active: bool = True


class Asset(SnapshotModel):
    id: int
    machine_id: str
    model: Optional[str] = None
    serial_no: Optional[str] = None
    location: Optional[str] = None
    customer_id: Optional[int] = None
    zone_id: Optional[int] = None


class Person(SnapshotModel):
    """A user of the field-service organisation (agent, zone user, manager)."""

    id: int
    name: str
    email: Optional[str] = None
    role: str
    zone_ids: List[int] = Field(default_factory=list)
    is_active: bool = True


class SalesTarget(SnapshotModel):
    """Sales target for a zone, or for a person when ``user_id`` is set."""

    id: int
    service_zone_id: Optional[int] = None
    user_id: Optional[int] = None
    period_type: str
    target_period: str = Field(description="YYYY for yearly targets, YYYY-MM for monthly")
    product_type: Optional[str] = None
    target_value: float = 0.0


# =============================================================================
# Service Records
# =============================================================================


class StatusTransition(SnapshotModel):
    """One entry of a ticket's status history."""

    id: int
    ticket_id: int
    status: str
    changed_at: datetime
    changed_by_id: Optional[int] = None


class ServiceRecord(SnapshotModel):
    """Common shape of a trackable unit of work."""

    id: int
    created_at: datetime
    updated_at: Optional[datetime] = None
    zone_id: Optional[int] = None
    customer_id: Optional[int] = None
    assigned_to_id: Optional[int] = None


class TicketRecord(ServiceRecord):
    title: str = ""
    status: str
    priority: Optional[str] = None
    call_type: Optional[str] = None
    asset_id: Optional[int] = None
    sla_due_at: Optional[datetime] = None
    sla_status: Optional[str] = None
    is_escalated: bool = False
    escalated_at: Optional[datetime] = None
    feedback_rating: Optional[int] = Field(default=None, ge=1, le=5)
    reports_count: int = 0

    # Populated only when requested through ``include``
    status_history: List[StatusTransition] = Field(default_factory=list)
    zone: Optional[Zone] = None
    customer: Optional[Customer] = None
    asset: Optional[Asset] = None
    assignee: Optional[Person] = None


class OfferRecord(ServiceRecord):
    offer_reference_number: str
    title: Optional[str] = None
    product_type: Optional[str] = None
    stage: str
    status: Optional[str] = None
    offer_value: Optional[float] = None
    po_value: Optional[float] = None

    # Populated only when requested through ``include``
    zone: Optional[Zone] = None
    customer: Optional[Customer] = None
    assignee: Optional[Person] = None


# =============================================================================
# Field Attendance
# =============================================================================


class AttendanceSession(SnapshotModel):
    """One check-in session; open while ``check_out_at`` is None."""

    id: int
    user_id: int
    check_in_at: datetime
    check_out_at: Optional[datetime] = None
    status: str = "CHECKED_IN"
    location: Optional[str] = None


class ActivityLogEntry(SnapshotModel):
    """A logged field activity; ``duration`` is in minutes."""

    id: int
    user_id: int
    ticket_id: Optional[int] = None
    activity_type: str
    title: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    duration: Optional[int] = None
    location: Optional[str] = None
