"""
Shared report schemas: view names, time windows, distributions, pagination.
"""

from datetime import date, datetime, time, timedelta, timezone, tzinfo
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import Field, model_validator

from core.exceptions import InvalidViewError
from core.schema_base import HTTPSchemaModel


class ReportView(str, Enum):
    """Report views served by the assembler."""

    TICKET_SUMMARY = "ticket-summary"
    SLA_PERFORMANCE = "sla-performance"
    ZONE_PERFORMANCE = "zone-performance"
    AGENT_PRODUCTIVITY = "agent-productivity"
    INDUSTRIAL_DOWNTIME = "industrial-downtime"
    EXECUTIVE_SUMMARY = "executive-summary"
    HER_ANALYSIS = "her-analysis"
    OFFER_SUMMARY = "offer-summary"
    PRODUCT_TYPE_ANALYSIS = "product-type-analysis"
    CUSTOMER_PERFORMANCE = "customer-performance"
    TARGET_REPORT = "target-report"

    @classmethod
    def parse(cls, name: str) -> "ReportView":
        """Resolve a view name, accepting legacy aliases.

        Raises:
            InvalidViewError: If the name matches no view
        """
        normalized = (name or "").strip().lower()
        normalized = _VIEW_ALIASES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            raise InvalidViewError(name)


_VIEW_ALIASES = {
    "industrial-data": ReportView.INDUSTRIAL_DOWNTIME.value,
    "business-hours-sla": ReportView.HER_ANALYSIS.value,
}


class ExportFormat(str, Enum):
    """Export renderings."""

    TABLE = "table"
    SPREADSHEET = "spreadsheet"


class RiskLevel(str, Enum):
    """Customer risk classification derived from the health score."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


# =============================================================================
# Time Windows
# =============================================================================

END_OF_DAY = time(23, 59, 59, 999000)


class TimeWindow(HTTPSchemaModel):
    """Closed interval of instants a report covers (stored as aware UTC)."""

    start: datetime
    end: datetime

    @model_validator(mode="after")
    def check_order(self) -> "TimeWindow":
        if self.start > self.end:
            raise ValueError("window start must not be after window end")
        return self

    @classmethod
    def for_local_dates(cls, first: date, last: date, tz: tzinfo) -> "TimeWindow":
        """Build a window from 00:00:00.000 of ``first`` to 23:59:59.999 of ``last``."""
        start = datetime.combine(first, time.min, tzinfo=tz).astimezone(timezone.utc)
        end = datetime.combine(last, END_OF_DAY, tzinfo=tz).astimezone(timezone.utc)
        return cls(start=start, end=end)

    def contains(self, instant: Optional[datetime]) -> bool:
        return instant is not None and self.start <= instant <= self.end

    def local_days(self, tz: tzinfo) -> List[Tuple[date, "TimeWindow"]]:
        """Split the window into local calendar days, in chronological order."""
        first = self.start.astimezone(tz).date()
        last = self.end.astimezone(tz).date()
        days = []
        current = first
        while current <= last:
            day = TimeWindow.for_local_dates(current, current, tz)
            days.append(
                (current, TimeWindow(start=max(day.start, self.start), end=min(day.end, self.end)))
            )
            current += timedelta(days=1)
        return days


# =============================================================================
# Distributions, Trends and Pagination
# =============================================================================


class DistributionItem(HTTPSchemaModel):
    """One bucket of a categorical distribution."""

    key: str
    label: str
    count: int = 0
    percentage: float = 0.0
    value: Optional[float] = Field(default=None, description="Summed amount for count+sum distributions")


class Pagination(HTTPSchemaModel):
    """Page metadata for listing views."""

    total: int
    page: int
    limit: int
    total_pages: int


class DailyTrendPoint(HTTPSchemaModel):
    """Per-day ticket activity counts."""

    day: date
    created: int = 0
    resolved: int = 0
    escalated: int = 0
    assigned: int = 0


class ReportResult(HTTPSchemaModel):
    """Fields shared by every report view payload."""

    view: ReportView
    window: TimeWindow
    filters: dict = Field(default_factory=dict)
    pagination: Optional[Pagination] = None
