"""Operational report payloads: zones, agents, machine downtime, executive view."""

from datetime import date, datetime
from typing import Dict, List, Optional

from pydantic import Field

from core.schema_base import HTTPSchemaModel
from schemas.reports.common import DistributionItem, ReportResult


# =============================================================================
# Zone Performance
# =============================================================================


class ZonePerformanceRow(HTTPSchemaModel):
    zone_id: int
    zone_name: str
    total_tickets: int = 0
    resolved_tickets: int = 0
    open_tickets: int = 0
    escalated_tickets: int = 0
    service_persons: int = 0
    customer_count: int = 0
    asset_count: int = 0
    resolution_rate: float = 0.0
    average_resolution_minutes: float = 0.0


class ZonePerformanceSummary(HTTPSchemaModel):
    total_zones: int = 0
    total_tickets: int = 0
    total_resolved: int = 0
    average_resolution_rate: float = 0.0


class ZonePerformanceReport(ReportResult):
    summary: ZonePerformanceSummary
    distributions: Dict[str, List[DistributionItem]] = Field(default_factory=dict)
    rows: List[ZonePerformanceRow] = Field(default_factory=list)


# =============================================================================
# Agent Productivity
# =============================================================================


class AttendanceDayRow(HTTPSchemaModel):
    """One working day of a staff member's attendance and logged activity."""

    day: date
    attendance_status: str = Field(default="ABSENT", description="ABSENT, CHECKED_IN or CHECKED_OUT")
    sessions: int = 0
    check_in_at: Optional[datetime] = None
    check_out_at: Optional[datetime] = None
    attendance_minutes: float = 0.0
    activity_count: int = 0
    activity_minutes: float = 0.0
    late_check_in: bool = False
    auto_checkout: bool = False


class AgentProductivityRow(HTTPSchemaModel):
    agent_id: int
    agent_name: str
    email: Optional[str] = None
    role: str
    zones: List[str] = Field(default_factory=list)
    total_tickets: int = 0
    resolved_tickets: int = 0
    open_tickets: int = 0
    escalated_tickets: int = 0
    resolution_rate: float = 0.0
    average_resolution_minutes: float = 0.0
    average_first_response_minutes: float = 0.0
    average_travel_minutes: float = 0.0
    average_onsite_minutes: float = 0.0
    performance_score: float = 0.0
    present_days: int = 0
    absent_days: int = 0
    attendance_minutes: float = 0.0
    average_daily_attendance_minutes: float = 0.0
    activities_logged: int = 0
    activity_minutes: float = 0.0
    late_check_ins: int = 0
    auto_checkouts: int = 0
    attendance: List[AttendanceDayRow] = Field(default_factory=list)


class AgentProductivitySummary(HTTPSchemaModel):
    total_agents: int = 0
    active_agents: int = 0
    total_tickets: int = 0
    average_resolution_rate: float = 0.0
    average_performance_score: float = 0.0
    top_performer: Optional[str] = None
    total_attendance_hours: float = 0.0
    total_activities: int = 0
    late_check_ins: int = 0


class AgentProductivityReport(ReportResult):
    summary: AgentProductivitySummary
    distributions: Dict[str, List[DistributionItem]] = Field(default_factory=dict)
    rows: List[AgentProductivityRow] = Field(default_factory=list)


# =============================================================================
# Industrial Downtime
# =============================================================================


class MachineDowntimeRow(HTTPSchemaModel):
    asset_id: int
    machine_id: str
    model: Optional[str] = None
    serial_no: Optional[str] = None
    location: Optional[str] = None
    customer_name: Optional[str] = None
    zone_name: Optional[str] = None
    total_downtime_minutes: int = 0
    total_downtime_hours: float = 0.0
    incidents: int = 0
    open_incidents: int = 0
    resolved_incidents: int = 0
    average_downtime_hours: float = 0.0


class IndustrialDowntimeSummary(HTTPSchemaModel):
    total_zone_users: int = 0
    total_service_persons: int = 0
    total_machines: int = 0
    machines_with_downtime: int = 0
    machines_without_issues: int = 0
    total_downtime_hours: float = 0.0
    average_downtime_per_machine_hours: float = 0.0
    total_incidents: int = 0
    open_incidents: int = 0
    resolved_incidents: int = 0


class IndustrialDowntimeReport(ReportResult):
    summary: IndustrialDowntimeSummary
    distributions: Dict[str, List[DistributionItem]] = Field(default_factory=dict)
    rows: List[MachineDowntimeRow] = Field(default_factory=list)


# =============================================================================
# Executive Summary
# =============================================================================


class ExecutiveSummaryMetrics(HTTPSchemaModel):
    total_tickets: int = 0
    resolved_tickets: int = 0
    open_tickets: int = 0
    critical_tickets: int = 0
    average_resolution_hours: float = 0.0
    customer_satisfaction: float = 0.0
    revenue_saved: float = 0.0
    downtime_cost: float = 0.0
    net_business_impact: float = 0.0


class ExecutiveKpis(HTTPSchemaModel):
    first_call_resolution: float = 0.0
    sla_compliance: float = 0.0
    customer_retention: float = 0.0
    operational_efficiency: float = 0.0


class ZoneEfficiencyRow(HTTPSchemaModel):
    zone_id: int
    zone_name: str
    total_tickets: int = 0
    resolved_tickets: int = 0
    efficiency: float = 0.0


class AssetHealthRow(HTTPSchemaModel):
    asset_id: int
    machine_id: str
    customer_name: Optional[str] = None
    total_tickets: int = 0
    critical_tickets: int = 0
    health_score: float = 100.0


class ExecutiveTrendPoint(HTTPSchemaModel):
    day: date
    created: int = 0
    resolved: int = 0
    average_rating: float = 0.0


class ExecutiveSummaryReport(ReportResult):
    summary: ExecutiveSummaryMetrics
    kpis: ExecutiveKpis = Field(default_factory=ExecutiveKpis)
    distributions: Dict[str, List[DistributionItem]] = Field(default_factory=dict)
    asset_health: List[AssetHealthRow] = Field(default_factory=list)
    trends: List[ExecutiveTrendPoint] = Field(default_factory=list)
    rows: List[ZoneEfficiencyRow] = Field(default_factory=list)
