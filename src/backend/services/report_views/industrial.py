"""
Industrial downtime view: machine downtime per asset.

Covers tickets still open regardless of creation date plus tickets resolved
within the window.
"""
import logging

from db.enums import INACTIVE_STATUSES, RESOLVED_STATUSES, PersonRole, TicketStatus
from schemas.reports.common import ReportView
from schemas.reports.operations import (
    IndustrialDowntimeReport,
    IndustrialDowntimeSummary,
    MachineDowntimeRow,
)
from schemas.reports.query import And, AnyOf, DateRange, Filter, InSet
from services.report_views.base import (
    ReportContext,
    ReportViewBuilder,
    ViewData,
    complete_distribution,
    group_by,
    paginate,
    whole_minutes,
)

logger = logging.getLogger(__name__)

OPEN_STATUSES = frozenset(s.value for s in TicketStatus) - INACTIVE_STATUSES


def downtime_filter(ctx: ReportContext) -> Filter:
    """Open tickets, or tickets resolved (last updated) inside the window."""
    return AnyOf(
        InSet("status", OPEN_STATUSES),
        And(
            InSet("status", RESOLVED_STATUSES),
            DateRange("updated_at", ctx.window.start, ctx.window.end),
        ),
    )


class IndustrialDowntimeView(ReportViewBuilder):
    """Downtime hours and incident counts for every machine in scope."""

    view = ReportView.INDUSTRIAL_DOWNTIME

    async def fetch(self, ctx: ReportContext) -> ViewData:
        return ViewData(
            tickets=await self.fetch_tickets(ctx, downtime_filter(ctx), in_window=False),
            zones=await self.zones(ctx),
            customers=await self.customers(ctx),
            assets=await self.assets(ctx),
            people=await self.people(
                ctx, [PersonRole.ZONE_USER.value, PersonRole.SERVICE_PERSON.value]
            ),
        )

    async def assemble(self, ctx: ReportContext, data: ViewData) -> IndustrialDowntimeReport:
        calc = self.calculator
        zone_names = {zone.id: zone.name for zone in data.zones}
        customer_names = {c.id: c.company_name for c in data.customers}
        by_asset = group_by(data.measured, lambda m: m.ticket.asset_id)

        all_rows = []
        for asset in data.assets:
            incidents = by_asset.get(asset.id, [])
            downtime = sum(m.metrics.downtime_minutes for m in incidents)
            resolved = sum(1 for m in incidents if m.metrics.is_resolved)
            all_rows.append(
                MachineDowntimeRow(
                    asset_id=asset.id,
                    machine_id=asset.machine_id,
                    model=asset.model,
                    serial_no=asset.serial_no,
                    location=asset.location,
                    customer_name=customer_names.get(asset.customer_id),
                    zone_name=zone_names.get(asset.zone_id),
                    total_downtime_minutes=whole_minutes(downtime),
                    total_downtime_hours=round(downtime / 60, 2),
                    incidents=len(incidents),
                    open_incidents=len(incidents) - resolved,
                    resolved_incidents=resolved,
                    average_downtime_hours=(
                        round(downtime / 60 / len(incidents), 2) if incidents else 0.0
                    ),
                )
            )
        all_rows.sort(key=lambda r: (-r.total_downtime_minutes, r.machine_id, r.asset_id))

        affected = [row for row in all_rows if row.incidents]
        total_hours = sum(row.total_downtime_hours for row in all_rows)
        summary = IndustrialDowntimeSummary(
            total_zone_users=sum(1 for p in data.people if p.role == PersonRole.ZONE_USER.value),
            total_service_persons=sum(
                1 for p in data.people if p.role == PersonRole.SERVICE_PERSON.value
            ),
            total_machines=len(all_rows),
            machines_with_downtime=len(affected),
            machines_without_issues=len(all_rows) - len(affected),
            total_downtime_hours=round(total_hours, 2),
            average_downtime_per_machine_hours=(
                round(total_hours / len(affected), 2) if affected else 0.0
            ),
            total_incidents=sum(row.incidents for row in all_rows),
            open_incidents=sum(row.open_incidents for row in all_rows),
            resolved_incidents=sum(row.resolved_incidents for row in all_rows),
        )

        zone_incidents = calc.count_by(m.ticket.zone_id for m in data.measured)
        zone_hours = {}
        for m in data.measured:
            if m.ticket.zone_id is not None:
                zone_hours[m.ticket.zone_id] = (
                    zone_hours.get(m.ticket.zone_id, 0.0) + m.metrics.downtime_minutes / 60
                )
        distributions = {
            "zone": complete_distribution(
                [(z.id, z.name) for z in data.zones], zone_incidents, zone_hours
            ),
            "incidentStatus": complete_distribution(
                [("OPEN", "Open"), ("RESOLVED", "Resolved")],
                {"OPEN": summary.open_incidents, "RESOLVED": summary.resolved_incidents},
            ),
        }

        rows, pagination = paginate(all_rows, ctx)
        return IndustrialDowntimeReport(
            view=self.view,
            window=ctx.window,
            filters=ctx.filters,
            pagination=pagination,
            summary=summary,
            distributions=distributions,
            rows=rows,
        )
