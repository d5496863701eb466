"""
Zone and agent performance views.
"""
import logging
from datetime import date, tzinfo
from typing import Dict, List

from db.enums import INACTIVE_STATUSES, AttendanceStatus, PersonRole
from schemas.reports.common import ReportView
from schemas.reports.operations import (
    AgentProductivityReport,
    AgentProductivityRow,
    AgentProductivitySummary,
    AttendanceDayRow,
    ZonePerformanceReport,
    ZonePerformanceRow,
    ZonePerformanceSummary,
)
from schemas.reports.query import InSet, RecordKind
from schemas.reports.records import ActivityLogEntry, AttendanceSession
from services.metrics_calculator import MetricsCalculator
from services.work_calendar import WorkCalendar
from services.report_views.base import (
    MeasuredTicket,
    ReportContext,
    ReportViewBuilder,
    ViewData,
    complete_distribution,
    enum_domain,
    group_by,
)

logger = logging.getLogger(__name__)

AGENT_ROLES = (PersonRole.SERVICE_PERSON.value, PersonRole.ZONE_USER.value)


def attendance_breakdown(
    calc: MetricsCalculator,
    sessions: List[AttendanceSession],
    activities: List[ActivityLogEntry],
    days: List[date],
    tz: tzinfo,
) -> List[AttendanceDayRow]:
    """
    Day-by-day attendance of one person over the given working days.

    Sessions and activities belong to the local day they started on. Closed
    sessions add their capped length; an open session marks the day
    CHECKED_IN.
    """
    sessions_by_day = group_by(sessions, lambda s: s.check_in_at.astimezone(tz).date())
    activities_by_day = group_by(activities, lambda a: a.start_time.astimezone(tz).date())

    breakdown = []
    for day in days:
        day_sessions = sorted(sessions_by_day.get(day, []), key=lambda s: (s.check_in_at, s.id))
        day_activities = activities_by_day.get(day, [])
        if not day_sessions:
            status = "ABSENT"
        elif any(s.check_out_at is None for s in day_sessions):
            status = AttendanceStatus.CHECKED_IN.value
        else:
            status = AttendanceStatus.CHECKED_OUT.value

        breakdown.append(
            AttendanceDayRow(
                day=day,
                attendance_status=status,
                sessions=len(day_sessions),
                check_in_at=day_sessions[0].check_in_at if day_sessions else None,
                check_out_at=day_sessions[-1].check_out_at if day_sessions else None,
                attendance_minutes=round(
                    sum(calc.session_minutes(s) or 0.0 for s in day_sessions), 2
                ),
                activity_count=len(day_activities),
                activity_minutes=round(sum(calc.activity_minutes(a) for a in day_activities), 2),
                late_check_in=bool(day_sessions) and calc.is_late_check_in(day_sessions[0].check_in_at),
                auto_checkout=any(calc.is_auto_checkout(s) for s in day_sessions),
            )
        )
    return breakdown


class ZonePerformanceView(ReportViewBuilder):
    """Ticket throughput and coverage of every zone in scope."""

    view = ReportView.ZONE_PERFORMANCE

    async def fetch(self, ctx: ReportContext) -> ViewData:
        return ViewData(
            tickets=await self.fetch_tickets(ctx),
            zones=await self.zones(ctx),
            customers=await self.customers(ctx),
            assets=await self.assets(ctx),
            people=await self.people(ctx, [PersonRole.SERVICE_PERSON.value]),
        )

    async def assemble(self, ctx: ReportContext, data: ViewData) -> ZonePerformanceReport:
        calc = self.calculator
        by_zone: Dict[int, List[MeasuredTicket]] = group_by(
            data.measured, lambda m: m.ticket.zone_id
        )

        all_rows = []
        for zone in data.zones:
            measured = by_zone.get(zone.id, [])
            resolved = sum(1 for m in measured if m.metrics.is_resolved)
            all_rows.append(
                ZonePerformanceRow(
                    zone_id=zone.id,
                    zone_name=zone.name,
                    total_tickets=len(measured),
                    resolved_tickets=resolved,
                    open_tickets=sum(
                        1 for m in measured if m.ticket.status not in INACTIVE_STATUSES
                    ),
                    escalated_tickets=sum(1 for m in measured if m.ticket.is_escalated),
                    service_persons=sum(1 for p in data.people if zone.id in p.zone_ids),
                    customer_count=sum(1 for c in data.customers if c.service_zone_id == zone.id),
                    asset_count=sum(1 for a in data.assets if a.zone_id == zone.id),
                    resolution_rate=calc.rate(resolved, len(measured)),
                    average_resolution_minutes=round(
                        calc.average_resolution(m.metrics for m in measured), 2
                    ),
                )
            )
        all_rows.sort(key=lambda r: (-r.resolution_rate, -r.total_tickets, r.zone_name, r.zone_id))

        active = [row for row in all_rows if row.total_tickets]
        summary = ZonePerformanceSummary(
            total_zones=len(all_rows),
            total_tickets=sum(row.total_tickets for row in all_rows),
            total_resolved=sum(row.resolved_tickets for row in all_rows),
            average_resolution_rate=round(calc.average(row.resolution_rate for row in active), 2),
        )

        domain = [(z.id, z.name) for z in data.zones]
        distributions = {
            "tickets": complete_distribution(
                domain, {row.zone_id: row.total_tickets for row in all_rows}
            ),
            "resolved": complete_distribution(
                domain, {row.zone_id: row.resolved_tickets for row in all_rows}
            ),
        }

        return ZonePerformanceReport(
            view=self.view,
            window=ctx.window,
            filters=ctx.filters,
            summary=summary,
            distributions=distributions,
            rows=all_rows,
        )


class AgentProductivityView(ReportViewBuilder):
    """Ticket load, timing and composite performance of service staff."""

    view = ReportView.AGENT_PRODUCTIVITY

    async def fetch(self, ctx: ReportContext) -> ViewData:
        people = await self.people(ctx, AGENT_ROLES)
        staff = InSet("user_id", [p.id for p in people])
        return ViewData(
            tickets=await self.fetch_tickets(ctx),
            zones=await self.zones(ctx),
            people=people,
            attendance=await self.fetcher.find_records(
                RecordKind.ATTENDANCE, staff, window=ctx.window, order_by="check_in_at"
            ),
            activities=await self.fetcher.find_records(
                RecordKind.ACTIVITY_LOG, staff, window=ctx.window, order_by="start_time"
            ),
        )

    async def assemble(self, ctx: ReportContext, data: ViewData) -> AgentProductivityReport:
        calc = self.calculator
        zone_names = {zone.id: zone.name for zone in data.zones}
        by_agent = group_by(data.measured, lambda m: m.ticket.assigned_to_id)
        sessions_by_agent = group_by(data.attendance, lambda s: s.user_id)
        activities_by_agent = group_by(data.activities, lambda a: a.user_id)
        working_days = [
            day for day, _ in ctx.window.local_days(ctx.tz)
            if WorkCalendar.is_working_day(day, calc.calendar)
        ]

        all_rows = []
        for person in data.people:
            measured = by_agent.get(person.id, [])
            attendance = attendance_breakdown(
                calc,
                sessions_by_agent.get(person.id, []),
                activities_by_agent.get(person.id, []),
                working_days,
                ctx.tz,
            )
            present = sum(1 for day in attendance if day.sessions)
            attended = sum(day.attendance_minutes for day in attendance)
            metrics = [m.metrics for m in measured]
            resolved = sum(1 for m in metrics if m.is_resolved)
            rate = calc.rate(resolved, len(measured))
            avg_resolution = calc.average_resolution(metrics)
            avg_travel = calc.average_travel(metrics)
            avg_onsite = calc.average_onsite(metrics)

            all_rows.append(
                AgentProductivityRow(
                    agent_id=person.id,
                    agent_name=person.name,
                    email=person.email,
                    role=person.role,
                    zones=[zone_names[z] for z in sorted(person.zone_ids) if z in zone_names],
                    total_tickets=len(measured),
                    resolved_tickets=resolved,
                    open_tickets=sum(
                        1 for m in measured if m.ticket.status not in INACTIVE_STATUSES
                    ),
                    escalated_tickets=sum(1 for m in measured if m.ticket.is_escalated),
                    resolution_rate=rate,
                    average_resolution_minutes=round(avg_resolution, 2),
                    average_first_response_minutes=round(calc.average_first_response(metrics), 2),
                    average_travel_minutes=round(avg_travel, 2),
                    average_onsite_minutes=round(avg_onsite, 2),
                    performance_score=(
                        calc.agent_performance_score(
                            rate, avg_resolution / 60, avg_travel / 60, avg_onsite / 60
                        )
                        if measured
                        else 0.0
                    ),
                    present_days=present,
                    absent_days=len(attendance) - present,
                    attendance_minutes=round(attended, 2),
                    average_daily_attendance_minutes=round(attended / present, 2) if present else 0.0,
                    activities_logged=sum(day.activity_count for day in attendance),
                    activity_minutes=round(sum(day.activity_minutes for day in attendance), 2),
                    late_check_ins=sum(1 for day in attendance if day.late_check_in),
                    auto_checkouts=sum(1 for day in attendance if day.auto_checkout),
                    attendance=attendance,
                )
            )
        all_rows.sort(
            key=lambda r: (-r.performance_score, -r.total_tickets, r.agent_name, r.agent_id)
        )

        active = [row for row in all_rows if row.total_tickets]
        summary = AgentProductivitySummary(
            total_agents=len(all_rows),
            active_agents=len(active),
            total_tickets=sum(row.total_tickets for row in all_rows),
            average_resolution_rate=round(calc.average(row.resolution_rate for row in active), 2),
            average_performance_score=round(
                calc.average(row.performance_score for row in active), 2
            ),
            top_performer=active[0].agent_name if active else None,
            total_attendance_hours=round(sum(row.attendance_minutes for row in all_rows) / 60, 2),
            total_activities=sum(row.activities_logged for row in all_rows),
            late_check_ins=sum(row.late_check_ins for row in all_rows),
        )

        present_by_day: Dict[str, int] = {}
        minutes_by_day: Dict[str, float] = {}
        for row in all_rows:
            for day in row.attendance:
                if day.sessions:
                    key = day.day.isoformat()
                    present_by_day[key] = present_by_day.get(key, 0) + 1
                    minutes_by_day[key] = minutes_by_day.get(key, 0.0) + day.attendance_minutes

        distributions = {
            "role": complete_distribution(
                enum_domain(AGENT_ROLES), calc.count_by(p.role for p in data.people)
            ),
            "workload": complete_distribution(
                [(row.agent_id, row.agent_name) for row in all_rows],
                {row.agent_id: row.total_tickets for row in all_rows},
            ),
            "attendance": complete_distribution(
                [(day.isoformat(), day.strftime("%b %d")) for day in working_days],
                present_by_day,
                minutes_by_day,
            ),
        }

        return AgentProductivityReport(
            view=self.view,
            window=ctx.window,
            filters=ctx.filters,
            summary=summary,
            distributions=distributions,
            rows=all_rows,
        )
