"""
Ticket-centric report views: ticket summary, SLA performance and the
business-hours SLA (HER) analysis.
"""
import logging
from typing import Dict, Iterable, List

from db.enums import (
    IN_PROGRESS_STATUSES,
    INACTIVE_STATUSES,
    REPORTED_STATUSES,
    PersonRole,
    SlaStatus,
    TicketPriority,
    TicketStatus,
)
from schemas.reports.common import ReportView
from schemas.reports.query import NotNull
from schemas.reports.records import TicketRecord
from schemas.reports.tickets import (
    CustomerHealthRow,
    HerAnalysisReport,
    HerRow,
    HerSummary,
    PriorityCompliance,
    SlaBreachRow,
    SlaPerformanceReport,
    SlaPerformanceSummary,
    TicketInsights,
    TicketSummaryMetrics,
    TicketSummaryReport,
    TicketSummaryRow,
)
from services.metrics_calculator import MetricsCalculator
from services.report_views.base import (
    MeasuredTicket,
    ReportContext,
    ReportViewBuilder,
    ViewData,
    complete_distribution,
    display_name,
    enum_domain,
    group_by,
    paginate,
    top_key,
    whole_minutes,
)

logger = logging.getLogger(__name__)

FIELD_ROLES = (PersonRole.SERVICE_PERSON.value, PersonRole.ZONE_USER.value)

# Most urgent first
PRIORITY_ORDER = [p.value for p in reversed(list(TicketPriority))]


def count_where(tickets: Iterable[TicketRecord], predicate) -> int:
    return sum(1 for ticket in tickets if predicate(ticket))


def priority_breakdown(
    priorities: Iterable[str],
    totals: Dict[str, int],
    breaches: Dict[str, int],
    rate,
) -> List[PriorityCompliance]:
    """Per-priority compliance, complete over ``priorities`` plus any extra seen."""
    ordered = list(priorities)
    ordered += sorted(key for key in totals if key not in ordered)
    rows = []
    for priority in ordered:
        total = totals.get(priority, 0)
        breached = breaches.get(priority, 0)
        rows.append(
            PriorityCompliance(
                priority=priority,
                total=total,
                compliant=total - breached,
                breached=breached,
                compliance_rate=rate(total - breached, total),
            )
        )
    return rows


def customer_health_rows(
    calc: MetricsCalculator, tickets: List[TicketRecord]
) -> List[CustomerHealthRow]:
    """Health score and risk level of every customer with tickets in the window."""
    rows = []
    for customer_id, owned in group_by(tickets, lambda t: t.customer_id).items():
        if customer_id is None:
            continue
        customer = owned[0].customer
        critical = count_where(owned, lambda t: t.priority == TicketPriority.CRITICAL.value)
        high = count_where(owned, lambda t: t.priority == TicketPriority.HIGH.value)
        escalated = count_where(owned, lambda t: t.is_escalated)
        per_asset = calc.count_by(t.asset_id for t in owned)
        repeat = sum(count - 1 for count in per_asset.values() if count > 1)

        score = calc.customer_health_score(critical + high + escalated + repeat, len(owned))
        rows.append(
            CustomerHealthRow(
                customer_id=customer_id,
                customer_name=display_name(customer, "company_name") or f"Customer {customer_id}",
                zone_name=display_name(owned[0].zone),
                total_tickets=len(owned),
                critical_issues=critical,
                high_priority_issues=high,
                escalated_issues=escalated,
                repeat_issues=repeat,
                health_score=score,
                risk_level=calc.risk_level(score),
            )
        )
    rows.sort(key=lambda r: (r.health_score, r.customer_name, r.customer_id))
    return rows


# =============================================================================
# Ticket Summary
# =============================================================================


class TicketSummaryView(ReportViewBuilder):
    """Ticket counts, timing averages, distributions, trends and customer health."""

    view = ReportView.TICKET_SUMMARY

    async def fetch(self, ctx: ReportContext) -> ViewData:
        return ViewData(
            tickets=await self.fetch_tickets(ctx),
            zones=await self.zones(ctx),
            customers=await self.customers(ctx),
            people=await self.people(ctx, FIELD_ROLES),
        )

    async def assemble(self, ctx: ReportContext, data: ViewData) -> TicketSummaryReport:
        calc = self.calculator
        tickets = data.tickets
        metrics = [m.metrics for m in data.measured]
        total = len(tickets)
        resolved = count_where(tickets, calc.is_resolved)
        escalated = count_where(tickets, lambda t: t.is_escalated)
        ratings = [t.feedback_rating for t in tickets if t.feedback_rating is not None]

        summary = TicketSummaryMetrics(
            total_tickets=total,
            open_tickets=count_where(tickets, lambda t: t.status not in INACTIVE_STATUSES),
            in_progress_tickets=count_where(tickets, lambda t: t.status in IN_PROGRESS_STATUSES),
            resolved_tickets=count_where(
                tickets, lambda t: t.status == TicketStatus.RESOLVED.value
            ),
            closed_tickets=count_where(tickets, lambda t: t.status == TicketStatus.CLOSED.value),
            critical_tickets=count_where(
                tickets, lambda t: t.priority == TicketPriority.CRITICAL.value
            ),
            high_priority_tickets=count_where(
                tickets, lambda t: t.priority == TicketPriority.HIGH.value
            ),
            unassigned_tickets=count_where(tickets, lambda t: t.assigned_to_id is None),
            overdue_tickets=count_where(
                tickets,
                lambda t: not calc.is_resolved(t) and calc.is_due_date_breached(t, ctx.now),
            ),
            escalated_tickets=escalated,
            average_resolution_minutes=round(calc.average_resolution(metrics), 2),
            average_first_response_minutes=round(calc.average_first_response(metrics), 2),
            average_travel_minutes=round(calc.average_travel(metrics), 2),
            average_onsite_minutes=round(calc.average_onsite(metrics), 2),
            resolution_outliers=sum(1 for m in metrics if m.resolution_outlier),
            resolution_rate=calc.rate(resolved, total),
            escalation_rate=calc.rate(escalated, total),
            total_feedbacks=len(ratings),
            average_rating=round(calc.average(ratings), 2),
        )

        distributions = {
            "status": complete_distribution(
                enum_domain(REPORTED_STATUSES), calc.count_by(t.status for t in tickets)
            ),
            "priority": complete_distribution(
                enum_domain(TicketPriority), calc.count_by(t.priority for t in tickets)
            ),
            "sla": complete_distribution(
                enum_domain(SlaStatus),
                calc.count_by(t.sla_status or SlaStatus.NOT_SET.value for t in tickets),
            ),
            "zone": complete_distribution(
                [(z.id, z.name) for z in data.zones], calc.count_by(t.zone_id for t in tickets)
            ),
            "customer": complete_distribution(
                [(c.id, c.company_name) for c in data.customers],
                calc.count_by(t.customer_id for t in tickets),
            ),
            "assignee": complete_distribution(
                [(p.id, p.name) for p in data.people],
                calc.count_by(t.assigned_to_id for t in tickets),
            ),
            "callType": complete_distribution([], calc.count_by(t.call_type for t in tickets)),
        }

        customer_health = customer_health_rows(calc, tickets)
        rows, pagination = paginate([self.ticket_row(m) for m in data.measured], ctx)

        return TicketSummaryReport(
            view=self.view,
            window=ctx.window,
            filters=ctx.filters,
            pagination=pagination,
            summary=summary,
            distributions=distributions,
            trends=await self.ticket_trends(ctx),
            customer_health=customer_health,
            insights=self.insights(data.measured, customer_health),
            rows=rows,
        )

    def insights(
        self, measured: List[MeasuredTicket], customer_health: List[CustomerHealthRow]
    ) -> TicketInsights:
        calc = self.calculator
        zone_rates: Dict[str, float] = {}
        for _, items in group_by(measured, lambda m: m.ticket.zone_id).items():
            zone_name = display_name(items[0].ticket.zone)
            if zone_name is None:
                continue
            resolved = sum(1 for m in items if m.metrics.is_resolved)
            zone_rates[zone_name] = calc.rate(resolved, len(items))

        customer_counts = calc.count_by(
            display_name(m.ticket.customer, "company_name") for m in measured
        )
        assignee_resolved = calc.count_by(
            display_name(m.ticket.assignee) for m in measured if m.metrics.is_resolved
        )

        return TicketInsights(
            top_performing_zone=top_key(zone_rates),
            most_active_customer=top_key(customer_counts),
            top_assignee=top_key(assignee_resolved),
            worst_performing_customer=customer_health[0].customer_name if customer_health else None,
            average_travel_minutes=round(calc.average_travel(m.metrics for m in measured), 2),
        )

    @staticmethod
    def ticket_row(measured: MeasuredTicket) -> TicketSummaryRow:
        ticket, metrics = measured.ticket, measured.metrics
        return TicketSummaryRow(
            id=ticket.id,
            title=ticket.title,
            status=ticket.status,
            priority=ticket.priority,
            call_type=ticket.call_type,
            created_at=ticket.created_at,
            resolved_at=metrics.resolved_at,
            zone_name=display_name(ticket.zone),
            customer_name=display_name(ticket.customer, "company_name"),
            asset_serial_no=display_name(ticket.asset, "serial_no"),
            asset_model=display_name(ticket.asset, "model"),
            assignee_name=display_name(ticket.assignee),
            response_minutes=whole_minutes(metrics.first_response_minutes),
            travel_minutes=whole_minutes(metrics.travel_minutes),
            onsite_minutes=whole_minutes(metrics.onsite_minutes),
            resolution_minutes=whole_minutes(metrics.resolution_minutes),
            machine_downtime_minutes=whole_minutes(metrics.downtime_minutes),
            resolution_outlier=metrics.resolution_outlier,
            is_escalated=ticket.is_escalated,
            feedback_rating=ticket.feedback_rating,
            reports_count=ticket.reports_count,
        )


# =============================================================================
# SLA Performance (stored due dates)
# =============================================================================


class SlaPerformanceView(ReportViewBuilder):
    """Compliance against the SLA due date stored on each ticket."""

    view = ReportView.SLA_PERFORMANCE

    async def fetch(self, ctx: ReportContext) -> ViewData:
        return ViewData(tickets=await self.fetch_tickets(ctx, NotNull("sla_due_at")))

    async def assemble(self, ctx: ReportContext, data: ViewData) -> SlaPerformanceReport:
        calc = self.calculator
        tickets = data.tickets
        breached = [t for t in tickets if calc.is_due_date_breached(t, ctx.now)]
        breached_ids = {t.id for t in breached}
        at_risk = count_where(
            tickets, lambda t: t.id not in breached_ids and calc.is_due_date_at_risk(t, ctx.now)
        )
        overruns = {t.id: calc.due_date_overrun_minutes(t, ctx.now) for t in breached}
        total = len(tickets)

        summary = SlaPerformanceSummary(
            total_tickets_with_sla=total,
            breached_tickets=len(breached),
            on_time_tickets=total - len(breached),
            at_risk_tickets=at_risk,
            compliance_rate=calc.rate(total - len(breached), total),
            average_overrun_minutes=round(calc.average(overruns.values()), 2),
        )

        outcome_counts = {
            SlaStatus.BREACHED.value: len(breached),
            SlaStatus.AT_RISK.value: at_risk,
            SlaStatus.ON_TIME.value: total - len(breached) - at_risk,
        }
        distributions = {
            "sla": complete_distribution(
                enum_domain([SlaStatus.ON_TIME, SlaStatus.AT_RISK, SlaStatus.BREACHED]),
                outcome_counts,
            ),
            "breachedPriority": complete_distribution(
                enum_domain(TicketPriority), calc.count_by(t.priority for t in breached)
            ),
        }

        breakdown = priority_breakdown(
            PRIORITY_ORDER,
            calc.count_by(t.priority for t in tickets),
            calc.count_by(t.priority for t in breached),
            calc.rate,
        )

        ordered = sorted(breached, key=lambda t: (-overruns[t.id], t.id))
        rows, pagination = paginate(
            [
                SlaBreachRow(
                    id=t.id,
                    title=t.title,
                    status=t.status,
                    priority=t.priority,
                    zone_name=display_name(t.zone),
                    customer_name=display_name(t.customer, "company_name"),
                    assignee_name=display_name(t.assignee),
                    created_at=t.created_at,
                    sla_due_at=t.sla_due_at,
                    resolved_at=calc.resolution_instant(t) if calc.is_resolved(t) else None,
                    overrun_minutes=whole_minutes(overruns[t.id]),
                )
                for t in ordered
            ],
            ctx,
        )

        return SlaPerformanceReport(
            view=self.view,
            window=ctx.window,
            filters=ctx.filters,
            pagination=pagination,
            summary=summary,
            distributions=distributions,
            priority_breakdown=breakdown,
            rows=rows,
        )


# =============================================================================
# Business Hours SLA (HER)
# =============================================================================


class HerAnalysisView(ReportViewBuilder):
    """Per-ticket SLA evaluated in working hours against the priority table."""

    view = ReportView.HER_ANALYSIS

    async def fetch(self, ctx: ReportContext) -> ViewData:
        return ViewData(tickets=await self.fetch_tickets(ctx))

    def derive(self, ctx: ReportContext, data: ViewData) -> ViewData:
        """Skip per-ticket timing; rows only need the SLA evaluation."""
        return data

    async def assemble(self, ctx: ReportContext, data: ViewData) -> HerAnalysisReport:
        calc = self.calculator
        all_rows: List[HerRow] = []
        for ticket in data.tickets:
            evaluation = calc.evaluate_business_hours_sla(ticket, ctx.now)
            all_rows.append(
                HerRow(
                    id=ticket.id,
                    title=ticket.title,
                    customer_name=display_name(ticket.customer, "company_name"),
                    serial_no=display_name(ticket.asset, "serial_no"),
                    address=display_name(ticket.customer, "address"),
                    status=ticket.status,
                    priority=evaluation.priority,
                    assignee_name=display_name(ticket.assignee),
                    zone_name=display_name(ticket.zone),
                    created_at=ticket.created_at,
                    deadline=evaluation.deadline,
                    resolved_at=calc.resolution_instant(ticket) if evaluation.is_closed else None,
                    her_hours=evaluation.allowed_hours,
                    business_hours_used=round(evaluation.working_hours_used, 2),
                    is_breached=evaluation.breached,
                )
            )

        total = len(all_rows)
        breached = [row for row in all_rows if row.is_breached]
        summary = HerSummary(
            total_tickets=total,
            compliant_tickets=total - len(breached),
            breached_tickets=len(breached),
            compliance_rate=calc.rate(total - len(breached), total),
            average_her_hours=round(calc.average(row.her_hours for row in all_rows), 2),
            average_actual_hours=round(
                calc.average(row.business_hours_used for row in all_rows if row.resolved_at), 2
            ),
        )

        # Table priorities, tightest allowance first
        table = calc.sla_table.hours_by_priority
        priorities = sorted(table, key=lambda p: (table[p], p))
        breakdown = priority_breakdown(
            priorities,
            calc.count_by(row.priority for row in all_rows),
            calc.count_by(row.priority for row in breached),
            calc.rate,
        )

        distributions = {
            "compliance": complete_distribution(
                [("COMPLIANT", "Compliant"), ("BREACHED", "Breached")],
                {"COMPLIANT": total - len(breached), "BREACHED": len(breached)},
            ),
            "breachedPriority": complete_distribution(
                [(p, p.title()) for p in priorities],
                calc.count_by(row.priority for row in breached),
            ),
        }

        rows, pagination = paginate(all_rows, ctx)
        return HerAnalysisReport(
            view=self.view,
            window=ctx.window,
            filters=ctx.filters,
            pagination=pagination,
            summary=summary,
            distributions=distributions,
            priority_breakdown=breakdown,
            rows=rows,
        )
