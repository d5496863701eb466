"""Reports and Analytics schemas."""

from .common import (
    # Shared
    DailyTrendPoint,
    DistributionItem,
    ExportFormat,
    Pagination,
    ReportResult,
    ReportView,
    RiskLevel,
    TimeWindow,
)

from .export import (
    # Export
    ColumnFormat,
    ColumnSpec,
    ExportDocument,
    SummaryEntry,
)

from .filters import (
    # Request filters
    ReportRequest,
    ReportScope,
)

from .operations import (
    # Operations
    AgentProductivityReport,
    ExecutiveSummaryReport,
    IndustrialDowntimeReport,
    ZonePerformanceReport,
)

from .sales import (
    # Sales funnel
    CustomerPerformanceReport,
    OfferSummaryReport,
    ProductTypeReport,
    TargetReport,
)

from .tickets import (
    # Tickets
    HerAnalysisReport,
    SlaPerformanceReport,
    TicketSummaryReport,
)

__all__ = [
    # Shared
    "DailyTrendPoint",
    "DistributionItem",
    "ExportFormat",
    "Pagination",
    "ReportResult",
    "ReportView",
    "RiskLevel",
    "TimeWindow",

    # Export
    "ColumnFormat",
    "ColumnSpec",
    "ExportDocument",
    "SummaryEntry",

    # Request filters
    "ReportRequest",
    "ReportScope",

    # Operations
    "AgentProductivityReport",
    "ExecutiveSummaryReport",
    "IndustrialDowntimeReport",
    "ZonePerformanceReport",

    # Sales funnel
    "CustomerPerformanceReport",
    "OfferSummaryReport",
    "ProductTypeReport",
    "TargetReport",

    # Tickets
    "HerAnalysisReport",
    "SlaPerformanceReport",
    "TicketSummaryReport",
]
