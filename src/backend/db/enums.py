"""
Domain enums for field-service records.

Values match the strings stored by the ticketing and sales modules. Record
snapshots keep these fields as plain strings so an unexpected value from the
store degrades into its own distribution bucket instead of failing a report.
"""
from enum import Enum


class TicketStatus(str, Enum):
    """Ticket workflow states, including the onsite visit sub-phases."""
    OPEN = "OPEN"
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    IN_PROCESS = "IN_PROCESS"
    WAITING_CUSTOMER = "WAITING_CUSTOMER"
    ONSITE_VISIT = "ONSITE_VISIT"
    ONSITE_VISIT_PLANNED = "ONSITE_VISIT_PLANNED"
    ONSITE_VISIT_STARTED = "ONSITE_VISIT_STARTED"
    ONSITE_VISIT_REACHED = "ONSITE_VISIT_REACHED"
    ONSITE_VISIT_IN_PROGRESS = "ONSITE_VISIT_IN_PROGRESS"
    ONSITE_VISIT_RESOLVED = "ONSITE_VISIT_RESOLVED"
    ONSITE_VISIT_PENDING = "ONSITE_VISIT_PENDING"
    ONSITE_VISIT_COMPLETED = "ONSITE_VISIT_COMPLETED"
    SPARE_PARTS_NEEDED = "SPARE_PARTS_NEEDED"
    PO_NEEDED = "PO_NEEDED"
    PO_RECEIVED = "PO_RECEIVED"
    ON_HOLD = "ON_HOLD"
    PENDING = "PENDING"
    ESCALATED = "ESCALATED"
    REOPENED = "REOPENED"
    RESOLVED = "RESOLVED"
    CLOSED_PENDING = "CLOSED_PENDING"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"


# States that mark a ticket as resolved for timing purposes
RESOLVED_STATUSES = frozenset({TicketStatus.RESOLVED.value, TicketStatus.CLOSED.value})

# States that count as actively worked
IN_PROGRESS_STATUSES = frozenset({
    TicketStatus.IN_PROGRESS.value,
    TicketStatus.ASSIGNED.value,
    TicketStatus.IN_PROCESS.value,
    TicketStatus.ONSITE_VISIT.value,
    TicketStatus.ONSITE_VISIT_STARTED.value,
    TicketStatus.ONSITE_VISIT_REACHED.value,
    TicketStatus.ONSITE_VISIT_IN_PROGRESS.value,
})

# States excluded from "open" counts
INACTIVE_STATUSES = RESOLVED_STATUSES | {TicketStatus.CANCELLED.value}

# Status buckets always shown in status distributions
REPORTED_STATUSES = (
    TicketStatus.OPEN.value,
    TicketStatus.ASSIGNED.value,
    TicketStatus.IN_PROGRESS.value,
    TicketStatus.ONSITE_VISIT.value,
    TicketStatus.RESOLVED.value,
    TicketStatus.CLOSED.value,
    TicketStatus.CANCELLED.value,
)


class TicketPriority(str, Enum):
    """Ticket priority, ordered from least to most urgent."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class SlaStatus(str, Enum):
    """SLA state recorded on the ticket by the ticketing module."""
    ON_TIME = "ON_TIME"
    AT_RISK = "AT_RISK"
    BREACHED = "BREACHED"
    NOT_SET = "NOT_SET"


class OfferStage(str, Enum):
    """Sales funnel stage of an offer."""
    INITIAL = "INITIAL"
    PROPOSAL_SENT = "PROPOSAL_SENT"
    NEGOTIATION = "NEGOTIATION"
    FINAL_APPROVAL = "FINAL_APPROVAL"
    PO_RECEIVED = "PO_RECEIVED"
    ORDER_BOOKED = "ORDER_BOOKED"
    WON = "WON"
    LOST = "LOST"


class OfferStatus(str, Enum):
    """Lifecycle status of an offer document."""
    DRAFT = "DRAFT"
    OPEN = "OPEN"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"


class ProductType(str, Enum):
    """Product line an offer belongs to."""
    RELOCATION = "RELOCATION"
    CONTRACT = "CONTRACT"
    SPP = "SPP"
    UPGRADE_KIT = "UPGRADE_KIT"
    SOFTWARE = "SOFTWARE"
    BD_CHARGES = "BD_CHARGES"
    BD_SPARE = "BD_SPARE"
    MIDLIFE_UPGRADE = "MIDLIFE_UPGRADE"
    RETROFIT_KIT = "RETROFIT_KIT"


UNKNOWN_PRODUCT_TYPE = "UNKNOWN"


class PersonRole(str, Enum):
    """Role of a person in the field-service organisation."""
    ADMIN = "ADMIN"
    ZONE_MANAGER = "ZONE_MANAGER"
    ZONE_USER = "ZONE_USER"
    SERVICE_PERSON = "SERVICE_PERSON"


class TargetPeriodType(str, Enum):
    """Granularity of a sales target period."""
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class AttendanceStatus(str, Enum):
    """State of one check-in session."""
    CHECKED_IN = "CHECKED_IN"
    CHECKED_OUT = "CHECKED_OUT"
    AUTO_CHECKED_OUT = "AUTO_CHECKED_OUT"
    EARLY_CHECKOUT = "EARLY_CHECKOUT"


class ActivityType(str, Enum):
    """Kind of logged field activity."""
    TICKET_WORK = "TICKET_WORK"
    TRAVEL = "TRAVEL"
    MEETING = "MEETING"
    TRAINING = "TRAINING"
    MAINTENANCE = "MAINTENANCE"
    DOCUMENTATION = "DOCUMENTATION"
    OTHER = "OTHER"
