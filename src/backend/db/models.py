"""
Read models for the field-service record store.

Only the tables and columns the reporting engine reads are declared here;
schema ownership and migrations live with the ticketing application.
Timestamps are stored as timezone-naive UTC in plain ``DateTime`` columns.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, DateTime, Numeric, String, Text
from sqlmodel import Field, SQLModel


def utc_now():
    """Current time in UTC (timezone-naive) for database storage."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TableModel(SQLModel):
    """Base table model with common functionality."""

    pass


# ============================================================================
# ORGANISATION
# ============================================================================


class ServiceZone(TableModel, table=True):
    """Geographic service zone."""

    __tablename__ = "service_zones"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(sa_column=Column(String(120), nullable=False, unique=True))
    short_form: Optional[str] = Field(default=None, max_length=20)
    is_active: bool = Field(default=True)


class User(TableModel, table=True):
    """Staff member: service person, zone user, zone manager or admin."""

    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(max_length=120)
    email: Optional[str] = Field(default=None, max_length=255, index=True)
    role: str = Field(max_length=30, index=True)
    is_active: bool = Field(default=True)


class UserZone(TableModel, table=True):
    """Zones a user works in."""

    __tablename__ = "user_zones"

    user_id: int = Field(foreign_key="users.id", primary_key=True)
    zone_id: int = Field(foreign_key="service_zones.id", primary_key=True)


class Customer(TableModel, table=True):
    __tablename__ = "customers"

    id: Optional[int] = Field(default=None, primary_key=True)
    company_name: str = Field(max_length=255)
    address: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    industry: Optional[str] = Field(default=None, max_length=120)
    service_zone_id: Optional[int] = Field(default=None, foreign_key="service_zones.id", index=True)
    is_active: bool = Field(default=True)


class Asset(TableModel, table=True):
    __tablename__ = "assets"

    id: Optional[int] = Field(default=None, primary_key=True)
    machine_id: str = Field(max_length=120, index=True)
    model: Optional[str] = Field(default=None, max_length=120)
    serial_no: Optional[str] = Field(default=None, max_length=120)
    location: Optional[str] = Field(default=None, max_length=255)
    customer_id: Optional[int] = Field(default=None, foreign_key="customers.id", index=True)


# ============================================================================
# TICKETS
# ============================================================================


class Ticket(TableModel, table=True):
    __tablename__ = "tickets"

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str = Field(default="", max_length=255)
    status: str = Field(max_length=40, index=True)
    priority: Optional[str] = Field(default=None, max_length=20, index=True)
    call_type: Optional[str] = Field(default=None, max_length=40)
    zone_id: Optional[int] = Field(default=None, foreign_key="service_zones.id", index=True)
    customer_id: Optional[int] = Field(default=None, foreign_key="customers.id", index=True)
    asset_id: Optional[int] = Field(default=None, foreign_key="assets.id", index=True)
    assigned_to_id: Optional[int] = Field(default=None, foreign_key="users.id", index=True)
    sla_due_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime, nullable=True))
    sla_status: Optional[str] = Field(default=None, max_length=20)
    is_escalated: bool = Field(default=False)
    escalated_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime, nullable=True))
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime, nullable=False, index=True),
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime, nullable=False),
    )


class TicketStatusHistory(TableModel, table=True):
    __tablename__ = "ticket_status_history"

    id: Optional[int] = Field(default=None, primary_key=True)
    ticket_id: int = Field(foreign_key="tickets.id", index=True)
    status: str = Field(max_length=40, index=True)
    changed_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime, nullable=False, index=True),
    )
    changed_by_id: Optional[int] = Field(default=None, foreign_key="users.id")


class TicketFeedback(TableModel, table=True):
    __tablename__ = "ticket_feedbacks"

    id: Optional[int] = Field(default=None, primary_key=True)
    ticket_id: int = Field(foreign_key="tickets.id", index=True)
    rating: int = Field(ge=1, le=5)
    submitted_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime, nullable=False),
    )


class TicketReport(TableModel, table=True):
    """Field report uploaded against a ticket (only counted here)."""

    __tablename__ = "ticket_reports"

    id: Optional[int] = Field(default=None, primary_key=True)
    ticket_id: int = Field(foreign_key="tickets.id", index=True)
    file_name: str = Field(max_length=255)
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime, nullable=False),
    )


# ============================================================================
# SALES
# ============================================================================


class Offer(TableModel, table=True):
    __tablename__ = "offers"

    id: Optional[int] = Field(default=None, primary_key=True)
    offer_reference_number: str = Field(max_length=60, index=True)
    title: Optional[str] = Field(default=None, max_length=255)
    product_type: Optional[str] = Field(default=None, max_length=40, index=True)
    stage: str = Field(max_length=40, index=True)
    status: Optional[str] = Field(default=None, max_length=20)
    offer_value: Optional[float] = Field(default=None, sa_column=Column(Numeric(14, 2), nullable=True))
    po_value: Optional[float] = Field(default=None, sa_column=Column(Numeric(14, 2), nullable=True))
    zone_id: Optional[int] = Field(default=None, foreign_key="service_zones.id", index=True)
    customer_id: Optional[int] = Field(default=None, foreign_key="customers.id", index=True)
    assigned_to_id: Optional[int] = Field(default=None, foreign_key="users.id", index=True)
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime, nullable=False, index=True),
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime, nullable=False),
    )


class SalesTarget(TableModel, table=True):
    __tablename__ = "sales_targets"

    id: Optional[int] = Field(default=None, primary_key=True)
    service_zone_id: Optional[int] = Field(default=None, foreign_key="service_zones.id", index=True)
    user_id: Optional[int] = Field(default=None, foreign_key="users.id", index=True)
    period_type: str = Field(max_length=10)
    target_period: str = Field(max_length=7)
    product_type: Optional[str] = Field(default=None, max_length=40)
    target_value: float = Field(default=0, sa_column=Column(Numeric(14, 2), nullable=False))


# ============================================================================
# FIELD ATTENDANCE
# ============================================================================


class Attendance(TableModel, table=True):
    """One check-in session of a staff member."""

    __tablename__ = "attendance"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    check_in_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime, nullable=False, index=True),
    )
    check_out_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime, nullable=True))
    status: str = Field(default="CHECKED_IN", max_length=30)
    location: Optional[str] = Field(default=None, max_length=255)


class DailyActivityLog(TableModel, table=True):
    """Field activity logged during the day, optionally against a ticket."""

    __tablename__ = "daily_activity_logs"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    ticket_id: Optional[int] = Field(default=None, foreign_key="tickets.id", index=True)
    activity_type: str = Field(max_length=40, index=True)
    title: Optional[str] = Field(default=None, max_length=255)
    start_time: datetime = Field(sa_column=Column(DateTime, nullable=False, index=True))
    end_time: Optional[datetime] = Field(default=None, sa_column=Column(DateTime, nullable=True))
    duration: Optional[int] = Field(default=None, description="Minutes")
    location: Optional[str] = Field(default=None, max_length=255)
