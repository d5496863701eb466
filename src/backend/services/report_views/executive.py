"""
Executive summary view: headline counts, financial impact, KPIs and a
short activity trend.
"""
import logging
from datetime import date
from typing import List, Tuple

from db.enums import INACTIVE_STATUSES, RESOLVED_STATUSES, TicketPriority
from schemas.reports.common import ReportView, TimeWindow
from schemas.reports.operations import (
    AssetHealthRow,
    ExecutiveKpis,
    ExecutiveSummaryMetrics,
    ExecutiveSummaryReport,
    ExecutiveTrendPoint,
    ZoneEfficiencyRow,
)
from schemas.reports.query import And, DateRange, InSet, RecordKind, Related, window_filter
from services.report_views.base import (
    MeasuredTicket,
    ReportContext,
    ReportViewBuilder,
    ViewData,
    complete_distribution,
    enum_domain,
    group_by,
)
from services.report_views.tickets import customer_health_rows

logger = logging.getLogger(__name__)

# Customers at or above this health score count as retained
RETENTION_HEALTH_THRESHOLD = 50


class ExecutiveSummaryView(ReportViewBuilder):
    """Business-level overview of service operations."""

    view = ReportView.EXECUTIVE_SUMMARY

    async def fetch(self, ctx: ReportContext) -> ViewData:
        return ViewData(
            tickets=await self.fetch_tickets(ctx),
            zones=await self.zones(ctx),
            assets=await self.assets(ctx),
        )

    async def assemble(self, ctx: ReportContext, data: ViewData) -> ExecutiveSummaryReport:
        calc = self.calculator
        tickets = data.tickets
        metrics = [m.metrics for m in data.measured]
        total = len(tickets)
        resolved = sum(1 for m in metrics if m.is_resolved)
        open_count = sum(1 for t in tickets if t.status not in INACTIVE_STATUSES)

        revenue = resolved * self.settings.revenue_per_resolved_ticket
        cost = open_count * self.settings.cost_per_open_ticket
        summary = ExecutiveSummaryMetrics(
            total_tickets=total,
            resolved_tickets=resolved,
            open_tickets=open_count,
            critical_tickets=sum(1 for t in tickets if t.priority == TicketPriority.CRITICAL.value),
            average_resolution_hours=round(calc.average_resolution(metrics) / 60, 2),
            customer_satisfaction=round(
                calc.average(t.feedback_rating for t in tickets if t.feedback_rating is not None), 2
            ),
            revenue_saved=round(revenue, 2),
            downtime_cost=round(cost, 2),
            net_business_impact=round(revenue - cost, 2),
        )

        zone_rows = self.zone_efficiency(data)
        return ExecutiveSummaryReport(
            view=self.view,
            window=ctx.window,
            filters=ctx.filters,
            summary=summary,
            kpis=self.kpis(ctx, data.measured, zone_rows),
            distributions={
                "priority": complete_distribution(
                    enum_domain(TicketPriority), calc.count_by(t.priority for t in tickets)
                ),
                "status": complete_distribution(
                    [("OPEN", "Open"), ("RESOLVED", "Resolved"), ("OTHER", "Other")],
                    {
                        "OPEN": open_count,
                        "RESOLVED": resolved,
                        "OTHER": total - open_count - resolved,
                    },
                ),
            },
            asset_health=self.asset_health(data),
            trends=await self.trends(ctx),
            rows=zone_rows,
        )

    def kpis(
        self,
        ctx: ReportContext,
        measured: List[MeasuredTicket],
        zone_rows: List[ZoneEfficiencyRow],
    ) -> ExecutiveKpis:
        """
        Deterministic KPI set.

        - first call resolution: resolved tickets closed without a site visit
        - SLA compliance: tickets with a due date that were not breached
        - customer retention: active customers whose health score is at least 50
        - operational efficiency: mean resolution rate of zones with tickets
        """
        calc = self.calculator
        resolved = [m for m in measured if m.metrics.is_resolved]
        remote = sum(1 for m in resolved if not m.metrics.had_onsite_visit)

        with_sla = [m.ticket for m in measured if m.ticket.sla_due_at is not None]
        met = sum(1 for t in with_sla if not calc.is_due_date_breached(t, ctx.now))

        health = customer_health_rows(calc, [m.ticket for m in measured])
        retained = sum(1 for row in health if row.health_score >= RETENTION_HEALTH_THRESHOLD)

        active_zones = [row for row in zone_rows if row.total_tickets]
        return ExecutiveKpis(
            first_call_resolution=calc.rate(remote, len(resolved)),
            sla_compliance=calc.rate(met, len(with_sla)),
            customer_retention=calc.rate(retained, len(health)),
            operational_efficiency=round(calc.average(row.efficiency for row in active_zones), 2),
        )

    def zone_efficiency(self, data: ViewData) -> List[ZoneEfficiencyRow]:
        calc = self.calculator
        by_zone = group_by(data.measured, lambda m: m.ticket.zone_id)
        rows = []
        for zone in data.zones:
            measured = by_zone.get(zone.id, [])
            resolved = sum(1 for m in measured if m.metrics.is_resolved)
            rows.append(
                ZoneEfficiencyRow(
                    zone_id=zone.id,
                    zone_name=zone.name,
                    total_tickets=len(measured),
                    resolved_tickets=resolved,
                    efficiency=calc.rate(resolved, len(measured)),
                )
            )
        rows.sort(key=lambda r: (-r.efficiency, -r.total_tickets, r.zone_name, r.zone_id))
        return rows

    def asset_health(self, data: ViewData) -> List[AssetHealthRow]:
        """Least healthy assets with tickets in the window."""
        calc = self.calculator
        by_asset = group_by(data.tickets, lambda t: t.asset_id)
        rows = []
        for asset in data.assets:
            tickets = by_asset.get(asset.id, [])
            if not tickets:
                continue
            critical = sum(1 for t in tickets if t.priority == TicketPriority.CRITICAL.value)
            rows.append(
                AssetHealthRow(
                    asset_id=asset.id,
                    machine_id=asset.machine_id,
                    customer_name=next(
                        (t.customer.company_name for t in tickets if t.customer is not None), None
                    ),
                    total_tickets=len(tickets),
                    critical_tickets=critical,
                    health_score=calc.asset_health_score(critical),
                )
            )
        rows.sort(key=lambda r: (r.health_score, -r.total_tickets, r.machine_id, r.asset_id))
        return rows[:self.settings.top_listing_size]

    async def trends(self, ctx: ReportContext) -> List[ExecutiveTrendPoint]:
        """Created, resolved and average rating for the last days of the window."""
        days = ctx.window.local_days(ctx.tz)[-self.settings.executive_trend_days:]
        base = ctx.ticket_filter()
        in_window = And(base, window_filter(RecordKind.TICKET, ctx.window))

        async def fetch_day(entry: Tuple[date, TimeWindow]) -> ExecutiveTrendPoint:
            day, span = entry
            created = await self.fetcher.find_records(
                RecordKind.TICKET, And(base, DateRange("created_at", span.start, span.end))
            )
            resolved = await self.fetcher.count_records(
                RecordKind.STATUS_TRANSITION,
                And(
                    InSet("status", RESOLVED_STATUSES),
                    DateRange("changed_at", span.start, span.end),
                    Related("ticket", in_window),
                ),
            )
            ratings = [t.feedback_rating for t in created if t.feedback_rating is not None]
            return ExecutiveTrendPoint(
                day=day,
                created=len(created),
                resolved=resolved,
                average_rating=round(self.calculator.average(ratings), 2),
            )

        return await self.scheduler.run(
            days,
            fetch_day,
            fallback=lambda entry: ExecutiveTrendPoint(day=entry[0]),
            label=lambda entry: entry[0].isoformat(),
        )
