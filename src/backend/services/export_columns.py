"""
Column layouts and summary blocks for exported reports.

Maps an assembled report payload onto an ExportDocument. Only values already
present on the payload are referenced; nothing is recomputed here.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from schemas.reports.common import ReportResult, ReportView
from schemas.reports.export import ColumnFormat, ColumnSpec, ExportDocument, SummaryEntry

logger = logging.getLogger(__name__)

F = ColumnFormat

VIEW_TITLES: Dict[ReportView, str] = {
    ReportView.INDUSTRIAL_DOWNTIME: "Machine Report",
    ReportView.TICKET_SUMMARY: "Ticket Summary Report",
    ReportView.ZONE_PERFORMANCE: "Zone Performance Report",
    ReportView.AGENT_PRODUCTIVITY: "Performance Report of All Service Persons and Zone Users",
    ReportView.SLA_PERFORMANCE: "SLA Performance Report",
    ReportView.EXECUTIVE_SUMMARY: "Executive Summary Report",
    ReportView.HER_ANALYSIS: "Business Hours SLA Report",
    ReportView.OFFER_SUMMARY: "Offer Funnel Summary Report",
}


def report_title(view: ReportView) -> str:
    """Display title of a view; unlisted views use their title-cased name."""
    if view in VIEW_TITLES:
        return VIEW_TITLES[view]
    return " ".join(part.capitalize() for part in view.value.split("-"))


def _col(
    key: str,
    header: str,
    fmt: ColumnFormat = F.TEXT,
    width: int = 14,
    formatter: Optional[Callable[[Any], str]] = None,
) -> ColumnSpec:
    return ColumnSpec(key=key, header=header, format=fmt, width=width, formatter=formatter)


def enum_label(value: Any) -> str:
    """``SERVICE_PERSON`` as ``Service Person``."""
    return str(getattr(value, "value", value)).replace("_", " ").title()


# (attribute on payload.summary, label, format)
SummaryLayout = List[Tuple[str, str, ColumnFormat]]

FUNNEL_COLUMNS = [
    _col("total_offers", "Offers", F.INTEGER, 10),
    _col("won_offers", "Won", F.INTEGER, 8),
    _col("lost_offers", "Lost", F.INTEGER, 8),
    _col("total_value", "Offer Value", F.CURRENCY, 16),
    _col("won_value", "Won Value", F.CURRENCY, 16),
    _col("total_po_value", "PO Value", F.CURRENCY, 16),
    _col("win_rate", "Win Rate", F.PERCENT, 10),
    _col("average_deal_size", "Avg Deal Size", F.CURRENCY, 16),
    _col("conversion_rate", "Conversion", F.PERCENT, 12),
]

COLUMNS: Dict[ReportView, List[ColumnSpec]] = {
    ReportView.TICKET_SUMMARY: [
        _col("id", "Ticket #", F.INTEGER, 10),
        _col("title", "Title", width=32),
        _col("status", "Status", width=16),
        _col("priority", "Priority", width=10),
        _col("call_type", "Call Type", width=14),
        _col("created_at", "Created", F.DATETIME, 18),
        _col("resolved_at", "Resolved", F.DATETIME, 18),
        _col("zone_name", "Zone", width=16),
        _col("customer_name", "Customer", width=24),
        _col("asset_serial_no", "Serial No", width=16),
        _col("assignee_name", "Assigned To", width=20),
        _col("response_minutes", "Response Time", F.DURATION, 14),
        _col("travel_minutes", "Travel Time", F.DURATION, 12),
        _col("onsite_minutes", "Onsite Time", F.DURATION, 12),
        _col("resolution_minutes", "Resolution Time", F.DURATION, 16),
        _col("machine_downtime_minutes", "Machine Downtime", F.DURATION, 16),
        _col("is_escalated", "Escalated", F.BOOLEAN, 10),
        _col("feedback_rating", "Rating", F.INTEGER, 8),
    ],
    ReportView.SLA_PERFORMANCE: [
        _col("id", "Ticket #", F.INTEGER, 10),
        _col("title", "Title", width=32),
        _col("status", "Status", width=16),
        _col("priority", "Priority", width=10),
        _col("zone_name", "Zone", width=16),
        _col("customer_name", "Customer", width=24),
        _col("assignee_name", "Assigned To", width=20),
        _col("created_at", "Created", F.DATETIME, 18),
        _col("sla_due_at", "SLA Due", F.DATETIME, 18),
        _col("resolved_at", "Resolved", F.DATETIME, 18),
        _col("overrun_minutes", "Overdue By", F.DURATION, 14),
    ],
    ReportView.ZONE_PERFORMANCE: [
        _col("zone_name", "Zone", width=20),
        _col("total_tickets", "Tickets", F.INTEGER, 10),
        _col("resolved_tickets", "Resolved", F.INTEGER, 10),
        _col("open_tickets", "Open", F.INTEGER, 10),
        _col("escalated_tickets", "Escalated", F.INTEGER, 10),
        _col("service_persons", "Service Persons", F.INTEGER, 14),
        _col("customer_count", "Customers", F.INTEGER, 10),
        _col("asset_count", "Assets", F.INTEGER, 10),
        _col("resolution_rate", "Resolution Rate", F.PERCENT, 14),
        _col("average_resolution_minutes", "Avg Resolution", F.DURATION, 16),
    ],
    ReportView.AGENT_PRODUCTIVITY: [
        _col("agent_name", "Name", width=22),
        _col("email", "Email", width=26),
        _col("role", "Role", width=16, formatter=enum_label),
        _col("zones", "Zones", F.LIST, 22),
        _col("total_tickets", "Tickets", F.INTEGER, 10),
        _col("resolved_tickets", "Resolved", F.INTEGER, 10),
        _col("open_tickets", "Open", F.INTEGER, 8),
        _col("escalated_tickets", "Escalated", F.INTEGER, 10),
        _col("resolution_rate", "Resolution Rate", F.PERCENT, 14),
        _col("average_resolution_minutes", "Avg Resolution", F.DURATION, 16),
        _col("average_first_response_minutes", "Avg Response", F.DURATION, 14),
        _col("average_travel_minutes", "Avg Travel", F.DURATION, 12),
        _col("average_onsite_minutes", "Avg Onsite", F.DURATION, 12),
        _col("performance_score", "Score", F.NUMBER, 10),
        _col("present_days", "Present Days", F.INTEGER, 10),
        _col("absent_days", "Absent Days", F.INTEGER, 10),
        _col("attendance_minutes", "Hours Worked", F.DURATION, 14),
        _col("activities_logged", "Activities", F.INTEGER, 10),
        _col("late_check_ins", "Late Check-ins", F.INTEGER, 12),
        _col("auto_checkouts", "Auto Checkouts", F.INTEGER, 12),
    ],
    ReportView.INDUSTRIAL_DOWNTIME: [
        _col("machine_id", "Machine ID", width=16),
        _col("model", "Model", width=16),
        _col("serial_no", "Serial No", width=16),
        _col("customer_name", "Customer", width=24),
        _col("zone_name", "Zone", width=16),
        _col("location", "Location", width=20),
        _col("total_downtime_minutes", "Total Downtime", F.DURATION, 16),
        _col("incidents", "Incidents", F.INTEGER, 10),
        _col("open_incidents", "Open", F.INTEGER, 8),
        _col("resolved_incidents", "Resolved", F.INTEGER, 10),
        _col("average_downtime_hours", "Avg Downtime (h)", F.NUMBER, 16),
    ],
    ReportView.EXECUTIVE_SUMMARY: [
        _col("zone_name", "Zone", width=20),
        _col("total_tickets", "Tickets", F.INTEGER, 10),
        _col("resolved_tickets", "Resolved", F.INTEGER, 10),
        _col("efficiency", "Efficiency", F.PERCENT, 12),
    ],
    ReportView.HER_ANALYSIS: [
        _col("id", "Ticket #", F.INTEGER, 10),
        _col("title", "Title", width=30),
        _col("customer_name", "Customer", width=24),
        _col("serial_no", "Serial No", width=16),
        _col("address", "Address", width=24),
        _col("status", "Status", width=16),
        _col("priority", "Priority", width=10),
        _col("assignee_name", "Assigned To", width=20),
        _col("zone_name", "Zone", width=16),
        _col("created_at", "Created", F.DATETIME, 18),
        _col("deadline", "HER Deadline", F.DATETIME, 18),
        _col("resolved_at", "Resolved", F.DATETIME, 18),
        _col("her_hours", "HER Hours", F.NUMBER, 10),
        _col("business_hours_used", "Hours Used", F.NUMBER, 10),
        _col("is_breached", "Breached", F.BOOLEAN, 10),
    ],
    ReportView.OFFER_SUMMARY: [
        _col("offer_reference_number", "Offer Ref", width=18),
        _col("title", "Title", width=28),
        _col("customer_name", "Customer", width=24),
        _col("zone_name", "Zone", width=16),
        _col("assignee_name", "Owner", width=20),
        _col("product_type", "Product Type", width=16),
        _col("stage", "Stage", width=16),
        _col("offer_value", "Offer Value", F.CURRENCY, 16),
        _col("po_value", "PO Value", F.CURRENCY, 16),
        _col("created_at", "Created", F.DATETIME, 18),
    ],
    ReportView.PRODUCT_TYPE_ANALYSIS: [_col("product_type", "Product Type", width=18)]
    + FUNNEL_COLUMNS,
    ReportView.CUSTOMER_PERFORMANCE: [
        _col("customer_name", "Customer", width=26),
        _col("location", "Location", width=18),
        _col("industry", "Industry", width=16),
        _col("zone_name", "Zone", width=16),
    ]
    + FUNNEL_COLUMNS,
    ReportView.TARGET_REPORT: [
        _col("target_kind", "Type", width=8),
        _col("owner_name", "Zone / Person", width=22),
        _col("zone_name", "Zone", width=16),
        _col("period_type", "Period Type", width=12),
        _col("target_period", "Period", width=10),
        _col("product_type", "Product Type", width=16),
        _col("target_value", "Target", F.CURRENCY, 16),
        _col("actual_value", "Actual", F.CURRENCY, 16),
        _col("achievement", "Achievement", F.PERCENT, 12),
    ],
}

SUMMARIES: Dict[ReportView, SummaryLayout] = {
    ReportView.TICKET_SUMMARY: [
        ("total_tickets", "Total Tickets", F.INTEGER),
        ("open_tickets", "Open", F.INTEGER),
        ("in_progress_tickets", "In Progress", F.INTEGER),
        ("resolved_tickets", "Resolved", F.INTEGER),
        ("closed_tickets", "Closed", F.INTEGER),
        ("critical_tickets", "Critical", F.INTEGER),
        ("unassigned_tickets", "Unassigned", F.INTEGER),
        ("overdue_tickets", "Overdue", F.INTEGER),
        ("escalated_tickets", "Escalated", F.INTEGER),
        ("average_resolution_minutes", "Avg Resolution Time", F.DURATION),
        ("average_first_response_minutes", "Avg Response Time", F.DURATION),
        ("average_travel_minutes", "Avg Travel Time", F.DURATION),
        ("average_onsite_minutes", "Avg Onsite Time", F.DURATION),
        ("resolution_rate", "Resolution Rate", F.PERCENT),
        ("average_rating", "Avg Rating", F.NUMBER),
    ],
    ReportView.SLA_PERFORMANCE: [
        ("total_tickets_with_sla", "Tickets With SLA", F.INTEGER),
        ("breached_tickets", "Breached", F.INTEGER),
        ("on_time_tickets", "On Time", F.INTEGER),
        ("at_risk_tickets", "At Risk", F.INTEGER),
        ("compliance_rate", "Compliance", F.PERCENT),
        ("average_overrun_minutes", "Avg Overrun", F.DURATION),
    ],
    ReportView.ZONE_PERFORMANCE: [
        ("total_zones", "Zones", F.INTEGER),
        ("total_tickets", "Tickets", F.INTEGER),
        ("total_resolved", "Resolved", F.INTEGER),
        ("average_resolution_rate", "Avg Resolution Rate", F.PERCENT),
    ],
    ReportView.AGENT_PRODUCTIVITY: [
        ("total_agents", "Agents", F.INTEGER),
        ("active_agents", "Active Agents", F.INTEGER),
        ("total_tickets", "Tickets", F.INTEGER),
        ("average_resolution_rate", "Avg Resolution Rate", F.PERCENT),
        ("average_performance_score", "Avg Score", F.NUMBER),
        ("top_performer", "Top Performer", F.TEXT),
        ("total_attendance_hours", "Attendance (h)", F.NUMBER),
        ("total_activities", "Activities Logged", F.INTEGER),
        ("late_check_ins", "Late Check-ins", F.INTEGER),
    ],
    ReportView.INDUSTRIAL_DOWNTIME: [
        ("total_zone_users", "Zone Users", F.INTEGER),
        ("total_service_persons", "Service Persons", F.INTEGER),
        ("total_machines", "Machines", F.INTEGER),
        ("machines_with_downtime", "Machines With Downtime", F.INTEGER),
        ("total_downtime_hours", "Total Downtime (h)", F.NUMBER),
        ("average_downtime_per_machine_hours", "Avg Downtime per Machine (h)", F.NUMBER),
        ("open_incidents", "Open Incidents", F.INTEGER),
        ("resolved_incidents", "Resolved Incidents", F.INTEGER),
    ],
    ReportView.EXECUTIVE_SUMMARY: [
        ("total_tickets", "Total Tickets", F.INTEGER),
        ("resolved_tickets", "Resolved", F.INTEGER),
        ("open_tickets", "Open", F.INTEGER),
        ("critical_tickets", "Critical", F.INTEGER),
        ("average_resolution_hours", "Avg Resolution (h)", F.NUMBER),
        ("customer_satisfaction", "Customer Satisfaction", F.NUMBER),
        ("revenue_saved", "Revenue Impact", F.CURRENCY),
        ("downtime_cost", "Downtime Cost", F.CURRENCY),
        ("net_business_impact", "Net Impact", F.CURRENCY),
    ],
    ReportView.HER_ANALYSIS: [
        ("total_tickets", "Tickets", F.INTEGER),
        ("compliant_tickets", "Within HER", F.INTEGER),
        ("breached_tickets", "Breached", F.INTEGER),
        ("compliance_rate", "Compliance", F.PERCENT),
        ("average_her_hours", "Avg HER Hours", F.NUMBER),
        ("average_actual_hours", "Avg Hours Used", F.NUMBER),
    ],
    ReportView.OFFER_SUMMARY: [
        ("total_offers", "Total Offers", F.INTEGER),
        ("total_offer_value", "Offer Value", F.CURRENCY),
        ("total_po_value", "PO Value", F.CURRENCY),
        ("won_offers", "Won", F.INTEGER),
        ("won_po_value", "Won PO Value", F.CURRENCY),
        ("lost_offers", "Lost", F.INTEGER),
        ("success_rate", "Success Rate", F.PERCENT),
        ("conversion_rate", "Conversion", F.PERCENT),
    ],
    ReportView.PRODUCT_TYPE_ANALYSIS: [
        ("active_product_types", "Active Product Types", F.INTEGER),
        ("total_offers", "Offers", F.INTEGER),
        ("total_value", "Offer Value", F.CURRENCY),
        ("won_value", "Won Value", F.CURRENCY),
        ("overall_win_rate", "Win Rate", F.PERCENT),
        ("top_product_type", "Top Product Type", F.TEXT),
    ],
    ReportView.CUSTOMER_PERFORMANCE: [
        ("total_customers", "Customers", F.INTEGER),
        ("active_customers", "Active Customers", F.INTEGER),
        ("total_offers", "Offers", F.INTEGER),
        ("total_value", "Offer Value", F.CURRENCY),
        ("won_value", "Won Value", F.CURRENCY),
        ("overall_win_rate", "Win Rate", F.PERCENT),
        ("top_customer", "Top Customer", F.TEXT),
    ],
    ReportView.TARGET_REPORT: [
        ("total_targets", "Targets", F.INTEGER),
        ("targets_met", "Targets Met", F.INTEGER),
        ("total_target_value", "Target Value", F.CURRENCY),
        ("total_actual_value", "Actual Value", F.CURRENCY),
        ("overall_achievement", "Achievement", F.PERCENT),
    ],
}


def resolve_path(row: Any, path: str) -> Any:
    """Follow a dotted path through attributes or mapping keys.

    Any missing link yields ``None``.
    """
    value = row
    for part in path.split("."):
        if value is None:
            return None
        if isinstance(value, dict):
            value = value.get(part)
        else:
            value = getattr(value, part, None)
    return value


def summary_entries(view: ReportView, summary: Any) -> List[SummaryEntry]:
    return [
        SummaryEntry(label=label, value=resolve_path(summary, key), format=fmt)
        for key, label, fmt in SUMMARIES.get(view, [])
    ]


def filter_lines(result: ReportResult, render_date: Callable[[datetime], str]) -> Dict[str, str]:
    """Report period first, then each applied filter."""
    lines = {
        "Report Period": (
            f"{render_date(result.window.start)} to {render_date(result.window.end)}"
        )
    }
    lines.update(result.filters)
    return lines


def build_export_document(
    result: ReportResult,
    generated_at: datetime,
    render_date: Callable[[datetime], str],
) -> ExportDocument:
    """Lay out an assembled report for the renderers."""
    view = result.view
    columns = COLUMNS.get(view, [])
    if not columns:
        logger.warning(f"No export columns registered for view {view.value}")

    return ExportDocument(
        view=view,
        title=report_title(view),
        generated_at=generated_at,
        window=result.window,
        filters=filter_lines(result, render_date),
        summary=summary_entries(view, getattr(result, "summary", None)),
        columns=columns,
        rows=list(getattr(result, "rows", [])),
    )
