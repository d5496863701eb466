"""
Database read models for the reporting engine.
"""
from .models import (
    # Organisation
    ServiceZone,
    User,
    UserZone,
    Customer,
    Asset,
    # Tickets
    Ticket,
    TicketStatusHistory,
    TicketFeedback,
    TicketReport,
    # Sales
    Offer,
    SalesTarget,
)

__all__ = [
    "ServiceZone",
    "User",
    "UserZone",
    "Customer",
    "Asset",
    "Ticket",
    "TicketStatusHistory",
    "TicketFeedback",
    "TicketReport",
    "Offer",
    "SalesTarget",
]
