"""Ticket-centric report payloads: summary, SLA performance, business-hours SLA."""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import Field

from core.schema_base import HTTPSchemaModel
from schemas.reports.common import DailyTrendPoint, DistributionItem, ReportResult, RiskLevel


# =============================================================================
# Ticket Summary
# =============================================================================


class TicketSummaryMetrics(HTTPSchemaModel):
    total_tickets: int = 0
    open_tickets: int = 0
    in_progress_tickets: int = 0
    resolved_tickets: int = 0
    closed_tickets: int = 0
    critical_tickets: int = 0
    high_priority_tickets: int = 0
    unassigned_tickets: int = 0
    overdue_tickets: int = 0
    escalated_tickets: int = 0
    average_resolution_minutes: float = 0.0
    average_first_response_minutes: float = 0.0
    average_travel_minutes: float = 0.0
    average_onsite_minutes: float = 0.0
    resolution_outliers: int = Field(default=0, description="Resolved tickets excluded from the average")
    resolution_rate: float = 0.0
    escalation_rate: float = 0.0
    total_feedbacks: int = 0
    average_rating: float = 0.0


class TicketSummaryRow(HTTPSchemaModel):
    id: int
    title: str
    status: str
    priority: Optional[str] = None
    call_type: Optional[str] = None
    created_at: datetime
    resolved_at: Optional[datetime] = None
    zone_name: Optional[str] = None
    customer_name: Optional[str] = None
    asset_serial_no: Optional[str] = None
    asset_model: Optional[str] = None
    assignee_name: Optional[str] = None
    response_minutes: Optional[int] = None
    travel_minutes: int = 0
    onsite_minutes: int = 0
    resolution_minutes: Optional[int] = None
    machine_downtime_minutes: int = 0
    resolution_outlier: bool = False
    is_escalated: bool = False
    feedback_rating: Optional[int] = None
    reports_count: int = 0


class CustomerHealthRow(HTTPSchemaModel):
    customer_id: int
    customer_name: str
    zone_name: Optional[str] = None
    total_tickets: int = 0
    critical_issues: int = 0
    high_priority_issues: int = 0
    escalated_issues: int = 0
    repeat_issues: int = 0
    health_score: float = 100.0
    risk_level: RiskLevel = RiskLevel.LOW


class TicketInsights(HTTPSchemaModel):
    top_performing_zone: Optional[str] = None
    most_active_customer: Optional[str] = None
    top_assignee: Optional[str] = None
    worst_performing_customer: Optional[str] = None
    average_travel_minutes: float = 0.0


class TicketSummaryReport(ReportResult):
    summary: TicketSummaryMetrics
    distributions: Dict[str, List[DistributionItem]] = Field(default_factory=dict)
    trends: List[DailyTrendPoint] = Field(default_factory=list)
    customer_health: List[CustomerHealthRow] = Field(default_factory=list)
    insights: TicketInsights = Field(default_factory=TicketInsights)
    rows: List[TicketSummaryRow] = Field(default_factory=list)


# =============================================================================
# SLA Performance (stored due dates)
# =============================================================================


class PriorityCompliance(HTTPSchemaModel):
    priority: str
    total: int = 0
    compliant: int = 0
    breached: int = 0
    compliance_rate: float = 0.0


class SlaPerformanceSummary(HTTPSchemaModel):
    total_tickets_with_sla: int = 0
    breached_tickets: int = 0
    on_time_tickets: int = 0
    at_risk_tickets: int = 0
    compliance_rate: float = 0.0
    average_overrun_minutes: float = 0.0


class SlaBreachRow(HTTPSchemaModel):
    id: int
    title: str
    status: str
    priority: Optional[str] = None
    zone_name: Optional[str] = None
    customer_name: Optional[str] = None
    assignee_name: Optional[str] = None
    created_at: datetime
    sla_due_at: datetime
    resolved_at: Optional[datetime] = None
    overrun_minutes: int = 0


class SlaPerformanceReport(ReportResult):
    summary: SlaPerformanceSummary
    distributions: Dict[str, List[DistributionItem]] = Field(default_factory=dict)
    priority_breakdown: List[PriorityCompliance] = Field(default_factory=list)
    rows: List[SlaBreachRow] = Field(default_factory=list)


# =============================================================================
# Business Hours SLA (HER)
# =============================================================================


class HerSummary(HTTPSchemaModel):
    total_tickets: int = 0
    compliant_tickets: int = 0
    breached_tickets: int = 0
    compliance_rate: float = 0.0
    average_her_hours: float = 0.0
    average_actual_hours: float = 0.0


class HerRow(HTTPSchemaModel):
    id: int
    title: str
    customer_name: Optional[str] = None
    serial_no: Optional[str] = None
    address: Optional[str] = None
    status: str
    priority: str
    assignee_name: Optional[str] = None
    zone_name: Optional[str] = None
    created_at: datetime
    deadline: datetime
    resolved_at: Optional[datetime] = None
    her_hours: float
    business_hours_used: float
    is_breached: bool


class HerAnalysisReport(ReportResult):
    summary: HerSummary
    distributions: Dict[str, List[DistributionItem]] = Field(default_factory=dict)
    priority_breakdown: List[PriorityCompliance] = Field(default_factory=list)
    rows: List[HerRow] = Field(default_factory=list)
