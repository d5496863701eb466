"""
Sales funnel views: offer summary, product type analysis, customer
performance and sales targets.

Funnel figures come from grouped store aggregates: a count plus summed offer
and PO value per group.
"""
import calendar
import logging
from datetime import date
from typing import Any, Dict, Hashable, List, Optional, Sequence, Tuple

from db.enums import (
    UNKNOWN_PRODUCT_TYPE,
    OfferStage,
    OfferStatus,
    ProductType,
    TargetPeriodType,
)
from schemas.reports.common import ReportView
from schemas.reports.query import (
    And,
    EntityKind,
    EqualsField,
    GroupAggregate,
    GroupCount,
    RecordKind,
)
from schemas.reports.records import OfferRecord, SalesTarget
from schemas.reports.sales import (
    CustomerPerformanceReport,
    CustomerPerformanceRow,
    CustomerPerformanceSummary,
    OfferRow,
    OfferSummaryMetrics,
    OfferSummaryReport,
    ProductTypeReport,
    ProductTypeRow,
    ProductTypeSummary,
    TargetReport,
    TargetRow,
    TargetSummary,
)
from services.metrics_calculator import MetricsCalculator
from services.record_fetcher import OFFER_INCLUDES
from services.report_views.base import (
    ReportContext,
    ReportViewBuilder,
    ViewData,
    complete_distribution,
    display_name,
    enum_domain,
    page_info,
)

logger = logging.getLogger(__name__)

SUM_FIELDS = ("offer_value", "po_value")
PRODUCT_TYPE_DOMAIN = enum_domain(ProductType) + [(UNKNOWN_PRODUCT_TYPE, "Unknown")]


def product_key(key: Optional[Hashable]) -> Hashable:
    return UNKNOWN_PRODUCT_TYPE if key is None else key


def index_groups(groups: Sequence[Any], normalize=lambda key: key) -> Dict[Hashable, Any]:
    """Index grouped results by key, merging groups that normalize to the same key."""
    indexed: Dict[Hashable, Any] = {}
    for group in groups:
        key = normalize(group.key)
        if key not in indexed:
            indexed[key] = group.model_copy(deep=True)
            continue
        merged = indexed[key]
        merged.count += group.count
        if isinstance(group, GroupAggregate):
            for name, value in group.sums.items():
                merged.sums[name] = merged.sums.get(name, 0.0) + value
    return indexed


def funnel_fields(
    calc: MetricsCalculator,
    totals: Optional[GroupAggregate],
    won: Optional[GroupAggregate],
    lost: Optional[GroupCount],
) -> Dict[str, Any]:
    """FunnelMetrics field values for one group of offers."""
    count = totals.count if totals else 0
    value = totals.sums.get("offer_value", 0.0) if totals else 0.0
    po_value = totals.sums.get("po_value", 0.0) if totals else 0.0
    won_count = won.count if won else 0
    return {
        "total_offers": count,
        "won_offers": won_count,
        "lost_offers": lost.count if lost else 0,
        "total_value": round(value, 2),
        "won_value": round(won.sums.get("offer_value", 0.0), 2) if won else 0.0,
        "total_po_value": round(po_value, 2),
        "won_po_value": round(won.sums.get("po_value", 0.0), 2) if won else 0.0,
        "win_rate": calc.rate(won_count, count),
        "average_deal_size": round(value / count, 2) if count else 0.0,
        "conversion_rate": calc.rate(po_value, value),
    }


class FunnelView(ReportViewBuilder):
    """Shared fetch of total / won / lost offer groups."""

    group_field: str

    async def fetch_funnel(self, ctx: ReportContext) -> Dict[str, List[Any]]:
        where = ctx.offer_filter()
        return {
            "totals": await self.fetcher.group_aggregate(
                RecordKind.OFFER, where, ctx.window, self.group_field, SUM_FIELDS
            ),
            "won": await self.fetcher.group_aggregate(
                RecordKind.OFFER,
                And(where, EqualsField("stage", OfferStage.WON.value)),
                ctx.window,
                self.group_field,
                SUM_FIELDS,
            ),
            "lost": await self.fetcher.group_count(
                RecordKind.OFFER,
                And(where, EqualsField("stage", OfferStage.LOST.value)),
                ctx.window,
                self.group_field,
            ),
        }


# =============================================================================
# Offer Summary
# =============================================================================


class OfferSummaryView(ReportViewBuilder):
    """Offer totals and distributions with store-paginated offer rows."""

    view = ReportView.OFFER_SUMMARY

    async def fetch(self, ctx: ReportContext) -> ViewData:
        where = ctx.offer_filter()
        total = await self.fetcher.count_records(RecordKind.OFFER, where, ctx.window)
        offers = await self.fetcher.find_records(
            RecordKind.OFFER,
            where,
            window=ctx.window,
            include=sorted(OFFER_INCLUDES),
            order_by="created_at",
            descending=True,
            offset=(ctx.page - 1) * ctx.limit if ctx.paginate else None,
            limit=ctx.limit if ctx.paginate else None,
        )
        groups = {
            "stage": await self.fetcher.group_aggregate(
                RecordKind.OFFER, where, ctx.window, "stage", SUM_FIELDS
            ),
            "status": await self.fetcher.group_count(RecordKind.OFFER, where, ctx.window, "status"),
            "productType": await self.fetcher.group_aggregate(
                RecordKind.OFFER, where, ctx.window, "product_type", SUM_FIELDS
            ),
        }
        return ViewData(offers=offers, total=total, groups=groups)

    async def assemble(self, ctx: ReportContext, data: ViewData) -> OfferSummaryReport:
        calc = self.calculator
        stages = index_groups(data.groups["stage"])
        statuses = index_groups(data.groups["status"])
        products = index_groups(data.groups["productType"], product_key)

        total_value = sum(g.sums.get("offer_value", 0.0) for g in stages.values())
        total_po = sum(g.sums.get("po_value", 0.0) for g in stages.values())
        won = stages.get(OfferStage.WON.value)
        lost = stages.get(OfferStage.LOST.value)

        summary = OfferSummaryMetrics(
            total_offers=data.total,
            total_offer_value=round(total_value, 2),
            total_po_value=round(total_po, 2),
            won_offers=won.count if won else 0,
            won_offer_value=round(won.sums.get("offer_value", 0.0), 2) if won else 0.0,
            won_po_value=round(won.sums.get("po_value", 0.0), 2) if won else 0.0,
            lost_offers=lost.count if lost else 0,
            success_rate=calc.rate(won.count if won else 0, data.total),
            conversion_rate=calc.rate(total_po, total_value),
        )

        distributions = {
            "stage": complete_distribution(
                enum_domain(OfferStage),
                {key: g.count for key, g in stages.items()},
                {key: g.sums.get("offer_value", 0.0) for key, g in stages.items()},
            ),
            "status": complete_distribution(
                enum_domain(OfferStatus), {key: g.count for key, g in statuses.items() if key}
            ),
            "productType": complete_distribution(
                PRODUCT_TYPE_DOMAIN,
                {key: g.count for key, g in products.items()},
                {key: g.sums.get("offer_value", 0.0) for key, g in products.items()},
            ),
        }

        return OfferSummaryReport(
            view=self.view,
            window=ctx.window,
            filters=ctx.filters,
            pagination=page_info(data.total, ctx) if ctx.paginate else None,
            summary=summary,
            distributions=distributions,
            rows=[self.offer_row(offer) for offer in data.offers],
        )

    @staticmethod
    def offer_row(offer: OfferRecord) -> OfferRow:
        return OfferRow(
            id=offer.id,
            offer_reference_number=offer.offer_reference_number,
            title=offer.title,
            customer_name=display_name(offer.customer, "company_name"),
            zone_name=display_name(offer.zone),
            assignee_name=display_name(offer.assignee),
            product_type=offer.product_type,
            stage=offer.stage,
            status=offer.status,
            offer_value=offer.offer_value,
            po_value=offer.po_value,
            created_at=offer.created_at,
        )


# =============================================================================
# Product Type Analysis
# =============================================================================


class ProductTypeView(FunnelView):
    """Funnel metrics for every product line."""

    view = ReportView.PRODUCT_TYPE_ANALYSIS
    group_field = "product_type"

    async def fetch(self, ctx: ReportContext) -> ViewData:
        return ViewData(groups=await self.fetch_funnel(ctx))

    async def assemble(self, ctx: ReportContext, data: ViewData) -> ProductTypeReport:
        calc = self.calculator
        totals = index_groups(data.groups["totals"], product_key)
        won = index_groups(data.groups["won"], product_key)
        lost = index_groups(data.groups["lost"], product_key)

        keys = [key for key, _ in PRODUCT_TYPE_DOMAIN if key != UNKNOWN_PRODUCT_TYPE]
        keys += sorted(str(key) for key in totals if key not in keys)

        rows = [
            ProductTypeRow(
                product_type=key,
                **funnel_fields(calc, totals.get(key), won.get(key), lost.get(key)),
            )
            for key in keys
        ]
        rows.sort(key=lambda r: (-r.total_value, r.product_type))

        active = [row for row in rows if row.total_offers]
        total_offers = sum(row.total_offers for row in rows)
        summary = ProductTypeSummary(
            active_product_types=len(active),
            total_offers=total_offers,
            total_value=round(sum(row.total_value for row in rows), 2),
            won_value=round(sum(row.won_value for row in rows), 2),
            overall_win_rate=calc.rate(sum(row.won_offers for row in rows), total_offers),
            top_product_type=active[0].product_type if active else None,
        )

        distributions = {
            "offers": complete_distribution(
                PRODUCT_TYPE_DOMAIN,
                {row.product_type: row.total_offers for row in rows if row.total_offers},
                {row.product_type: row.total_value for row in rows if row.total_offers},
            ),
            "won": complete_distribution(
                PRODUCT_TYPE_DOMAIN,
                {row.product_type: row.won_offers for row in rows if row.won_offers},
                {row.product_type: row.won_value for row in rows if row.won_offers},
            ),
        }

        return ProductTypeReport(
            view=self.view,
            window=ctx.window,
            filters=ctx.filters,
            summary=summary,
            distributions=distributions,
            rows=rows,
        )


# =============================================================================
# Customer Performance
# =============================================================================


class CustomerPerformanceView(FunnelView):
    """Funnel metrics for every customer in scope."""

    view = ReportView.CUSTOMER_PERFORMANCE
    group_field = "customer_id"

    async def fetch(self, ctx: ReportContext) -> ViewData:
        return ViewData(
            customers=await self.customers(ctx),
            zones=await self.zones(ctx),
            groups=await self.fetch_funnel(ctx),
        )

    async def assemble(self, ctx: ReportContext, data: ViewData) -> CustomerPerformanceReport:
        calc = self.calculator
        totals = index_groups(data.groups["totals"])
        won = index_groups(data.groups["won"])
        lost = index_groups(data.groups["lost"])
        zone_names = {zone.id: zone.name for zone in data.zones}

        rows = [
            CustomerPerformanceRow(
                customer_id=customer.id,
                customer_name=customer.company_name,
                location=customer.address,
                industry=customer.industry,
                zone_name=zone_names.get(customer.service_zone_id),
                **funnel_fields(
                    calc, totals.get(customer.id), won.get(customer.id), lost.get(customer.id)
                ),
            )
            for customer in data.customers
        ]
        rows.sort(key=lambda r: (-r.won_value, -r.total_value, r.customer_name, r.customer_id))

        active = [row for row in rows if row.total_offers]
        total_offers = sum(row.total_offers for row in rows)
        summary = CustomerPerformanceSummary(
            total_customers=len(rows),
            active_customers=len(active),
            total_offers=total_offers,
            total_value=round(sum(row.total_value for row in rows), 2),
            won_value=round(sum(row.won_value for row in rows), 2),
            overall_win_rate=calc.rate(sum(row.won_offers for row in rows), total_offers),
            top_customer=active[0].customer_name if active else None,
        )

        distributions = {
            "offers": complete_distribution(
                [(row.customer_id, row.customer_name) for row in rows],
                {row.customer_id: row.total_offers for row in rows},
                {row.customer_id: row.total_value for row in rows},
            ),
        }

        return CustomerPerformanceReport(
            view=self.view,
            window=ctx.window,
            filters=ctx.filters,
            summary=summary,
            distributions=distributions,
            rows=rows,
        )


# =============================================================================
# Targets
# =============================================================================


def target_period_bounds(target: SalesTarget) -> Optional[Tuple[date, date]]:
    """
    First and last day covered by a target period.

    Yearly periods are ``YYYY``; monthly periods are ``YYYY-MM``. Returns
    None for a period string that does not parse.
    """
    try:
        if target.period_type == TargetPeriodType.YEARLY.value:
            year = int(target.target_period[:4])
            return date(year, 1, 1), date(year, 12, 31)
        year_text, month_text = target.target_period.split("-")[:2]
        year, month = int(year_text), int(month_text)
        return date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1])
    except ValueError:
        logger.warning(
            f"Skipping target {target.id}: unparseable period {target.target_period!r}"
        )
        return None


def offer_amount(offer: OfferRecord) -> float:
    """Booked value of a won offer: PO value when present, otherwise offer value."""
    return offer.po_value if offer.po_value else (offer.offer_value or 0.0)


class TargetReportView(ReportViewBuilder):
    """Zone and person sales targets against won offer value."""

    view = ReportView.TARGET_REPORT

    async def fetch(self, ctx: ReportContext) -> ViewData:
        won = await self.fetcher.find_records(
            RecordKind.OFFER,
            And(ctx.offer_filter(), EqualsField("stage", OfferStage.WON.value)),
            window=ctx.window,
        )
        return ViewData(
            offers=won,
            targets=await self.fetcher.list_domain_entities(EntityKind.TARGET),
            zones=await self.zones(ctx),
            people=await self.fetcher.list_domain_entities(EntityKind.PERSON),
        )

    def target_zones(
        self, target: SalesTarget, people_by_id: Dict[int, Any]
    ) -> List[Optional[int]]:
        if target.service_zone_id is not None or target.user_id is None:
            return [target.service_zone_id]
        person = people_by_id.get(target.user_id)
        return list(person.zone_ids) if person is not None else []

    def matches(self, target: SalesTarget, offer: OfferRecord) -> bool:
        if target.user_id is not None:
            if offer.assigned_to_id != target.user_id:
                return False
        elif offer.zone_id != target.service_zone_id:
            return False
        if target.product_type:
            return product_key(offer.product_type) == target.product_type
        return True

    async def assemble(self, ctx: ReportContext, data: ViewData) -> TargetReport:
        calc = self.calculator
        first = ctx.window.start.astimezone(ctx.tz).date()
        last = ctx.window.end.astimezone(ctx.tz).date()
        zone_names = {zone.id: zone.name for zone in data.zones}
        people_by_id = {person.id: person for person in data.people}

        rows = []
        for target in data.targets:
            bounds = target_period_bounds(target)
            if bounds is None or bounds[0] > last or bounds[1] < first:
                continue
            zones = self.target_zones(target, people_by_id)
            if not any(ctx.in_scope(zone_id) for zone_id in zones):
                continue

            actual = sum(offer_amount(o) for o in data.offers if self.matches(target, o))
            if target.user_id is not None:
                kind = "USER"
                owner = display_name(people_by_id.get(target.user_id)) or f"User {target.user_id}"
            else:
                kind = "ZONE"
                owner = zone_names.get(target.service_zone_id) or f"Zone {target.service_zone_id}"

            rows.append(
                TargetRow(
                    target_id=target.id,
                    target_kind=kind,
                    owner_name=owner,
                    zone_name=next((zone_names[z] for z in zones if z in zone_names), None),
                    period_type=target.period_type,
                    target_period=target.target_period,
                    product_type=target.product_type,
                    target_value=round(target.target_value, 2),
                    actual_value=round(actual, 2),
                    achievement=calc.rate(actual, target.target_value),
                )
            )
        rows.sort(
            key=lambda r: (r.target_kind != "ZONE", -r.achievement, r.owner_name, r.target_id)
        )

        total_target = sum(row.target_value for row in rows)
        total_actual = sum(row.actual_value for row in rows)
        summary = TargetSummary(
            total_targets=len(rows),
            targets_met=sum(1 for row in rows if row.target_value and row.achievement >= 100),
            total_target_value=round(total_target, 2),
            total_actual_value=round(total_actual, 2),
            overall_achievement=calc.rate(total_actual, total_target),
        )

        distributions = {
            "kind": complete_distribution(
                [("ZONE", "Zone"), ("USER", "User")], calc.count_by(row.target_kind for row in rows)
            ),
        }

        return TargetReport(
            view=self.view,
            window=ctx.window,
            filters=ctx.filters,
            summary=summary,
            distributions=distributions,
            rows=rows,
        )
