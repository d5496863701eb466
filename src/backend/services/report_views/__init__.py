"""Report view builders, keyed by view name."""
from typing import Dict, Type

from schemas.reports.common import ReportView
from services.report_views.base import ReportContext, ReportViewBuilder
from services.report_views.executive import ExecutiveSummaryView
from services.report_views.industrial import IndustrialDowntimeView
from services.report_views.performance import AgentProductivityView, ZonePerformanceView
from services.report_views.sales import (
    CustomerPerformanceView,
    OfferSummaryView,
    ProductTypeView,
    TargetReportView,
)
from services.report_views.tickets import HerAnalysisView, SlaPerformanceView, TicketSummaryView

VIEW_BUILDERS: Dict[ReportView, Type[ReportViewBuilder]] = {
    builder.view: builder
    for builder in (
        TicketSummaryView,
        SlaPerformanceView,
        ZonePerformanceView,
        AgentProductivityView,
        IndustrialDowntimeView,
        ExecutiveSummaryView,
        HerAnalysisView,
        OfferSummaryView,
        ProductTypeView,
        CustomerPerformanceView,
        TargetReportView,
    )
}

# Views whose rows are paginated for interactive requests
PAGINATED_VIEWS = frozenset({
    ReportView.TICKET_SUMMARY,
    ReportView.SLA_PERFORMANCE,
    ReportView.INDUSTRIAL_DOWNTIME,
    ReportView.HER_ANALYSIS,
    ReportView.OFFER_SUMMARY,
})

__all__ = [
    "PAGINATED_VIEWS",
    "VIEW_BUILDERS",
    "ReportContext",
    "ReportViewBuilder",
]
