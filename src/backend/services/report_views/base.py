"""
Shared plumbing for report views.

Every view runs the same stages: ``fetch`` pulls records through the
RecordFetcher, ``derive`` turns them into per-record metrics, and ``assemble``
builds the typed payload (distributions, summary, rows). The context carries
the validated window, effective zone scope and paging for one request, and
builds the base filters so scoping is attached to every sub-fetch alike.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, tzinfo
from typing import (
    Any,
    Callable,
    Dict,
    FrozenSet,
    Hashable,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
)

from core.config import ReportSettings
from db.enums import RESOLVED_STATUSES, TicketStatus
from schemas.reports.common import (
    DailyTrendPoint,
    DistributionItem,
    Pagination,
    ReportView,
    TimeWindow,
)
from schemas.reports.filters import ReportRequest
from schemas.reports.query import (
    And,
    DateRange,
    EntityKind,
    EqualsField,
    Filter,
    InSet,
    RecordKind,
    Related,
    window_filter,
)
from schemas.reports.records import (
    ActivityLogEntry,
    Asset,
    AttendanceSession,
    Customer,
    OfferRecord,
    Person,
    SalesTarget,
    TicketRecord,
    Zone,
)
from services.batch_scheduler import BatchScheduler
from services.metrics_calculator import MetricsCalculator, TicketMetrics
from services.record_fetcher import TICKET_INCLUDES, RecordFetcher

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ReportContext:
    """Validated inputs of one report computation."""

    view: ReportView
    request: ReportRequest
    window: TimeWindow
    zone_ids: Optional[FrozenSet[int]]
    tz: tzinfo
    now: datetime
    page: int
    limit: int
    paginate: bool = True

    @property
    def filters(self) -> Dict[str, str]:
        return self.request.applied_filters()

    def in_scope(self, zone_id: Optional[int]) -> bool:
        return self.zone_ids is None or zone_id in self.zone_ids

    def zone_clause(self, column: str = "zone_id") -> Optional[Filter]:
        return InSet(column, self.zone_ids) if self.zone_ids is not None else None

    def ticket_filter(self) -> Filter:
        """Zone, customer and asset constraints shared by every ticket sub-fetch."""
        request = self.request
        clauses = [self.zone_clause()]
        if request.customer_id is not None:
            clauses.append(EqualsField("customer_id", request.customer_id))
        if request.asset_id is not None:
            clauses.append(EqualsField("asset_id", request.asset_id))
        return And(*clauses)

    def offer_filter(self) -> Filter:
        """Zone, customer, product type and stage constraints for offer sub-fetches."""
        request = self.request
        clauses = [self.zone_clause()]
        if request.customer_id is not None:
            clauses.append(EqualsField("customer_id", request.customer_id))
        if request.product_type:
            clauses.append(EqualsField("product_type", request.product_type))
        if request.stage:
            clauses.append(EqualsField("stage", request.stage))
        return And(*clauses)


@dataclass(frozen=True)
class MeasuredTicket:
    """A ticket snapshot paired with its derived timing."""

    ticket: TicketRecord
    metrics: TicketMetrics


@dataclass
class ViewData:
    """Records and domain entities one view works on."""

    tickets: List[TicketRecord] = field(default_factory=list)
    offers: List[OfferRecord] = field(default_factory=list)
    zones: List[Zone] = field(default_factory=list)
    customers: List[Customer] = field(default_factory=list)
    assets: List[Asset] = field(default_factory=list)
    people: List[Person] = field(default_factory=list)
    targets: List[SalesTarget] = field(default_factory=list)
    attendance: List[AttendanceSession] = field(default_factory=list)
    activities: List[ActivityLogEntry] = field(default_factory=list)
    measured: List[MeasuredTicket] = field(default_factory=list)
    total: int = 0
    groups: Dict[str, List[Any]] = field(default_factory=dict)


# =============================================================================
# Distribution helpers
# =============================================================================


def complete_distribution(
    domain: Iterable[Tuple[Hashable, str]],
    counts: Mapping[Hashable, int],
    values: Optional[Mapping[Hashable, float]] = None,
) -> List[DistributionItem]:
    """
    Build a distribution with one bucket per domain member.

    Members without records appear with a zero count. Keys seen in ``counts``
    but missing from the domain are appended with the key as label. Buckets
    are sorted by count descending, then key ascending; percentages are of the
    total count, rounded to two decimals.
    """
    labels: Dict[Hashable, str] = {}
    for key, label in domain:
        labels.setdefault(key, label)
    for key in counts:
        if key not in labels:
            labels[key] = str(key)

    total = sum(counts.values())
    items = [
        DistributionItem(
            key=str(key),
            label=label,
            count=counts.get(key, 0),
            percentage=MetricsCalculator.rate(counts.get(key, 0), total),
            value=round(values.get(key, 0.0), 2) if values is not None else None,
        )
        for key, label in labels.items()
    ]
    items.sort(key=lambda item: (-item.count, item.key))
    return items


def enum_domain(members: Iterable[Any]) -> List[Tuple[str, str]]:
    """Domain pairs for an Enum-like sequence: value as key, title-cased label."""
    domain = []
    for member in members:
        value = getattr(member, "value", member)
        domain.append((value, value.replace("_", " ").title()))
    return domain


def top_key(counts: Mapping[Hashable, float], reverse: bool = True) -> Optional[Hashable]:
    """Key with the highest (or lowest) value; ties broken by key order."""
    if not counts:
        return None
    ordered = sorted(counts, key=lambda k: str(k))
    picker = max if reverse else min
    return picker(ordered, key=lambda k: counts[k])


def paginate(items: Sequence[T], ctx: ReportContext) -> Tuple[List[T], Optional[Pagination]]:
    """Slice ``items`` to the requested page; pass everything through for exports."""
    if not ctx.paginate:
        return list(items), None
    total = len(items)
    start = (ctx.page - 1) * ctx.limit
    return list(items[start:start + ctx.limit]), page_info(total, ctx)


def page_info(total: int, ctx: ReportContext) -> Pagination:
    return Pagination(
        total=total,
        page=ctx.page,
        limit=ctx.limit,
        total_pages=(total + ctx.limit - 1) // ctx.limit if total else 0,
    )


def whole_minutes(value: Optional[float]) -> Optional[int]:
    """Round a duration for display; None stays None."""
    return None if value is None else int(round(value))


def display_name(entity: Any, attr: str = "name") -> Optional[str]:
    return getattr(entity, attr) if entity is not None else None


# =============================================================================
# View base class
# =============================================================================


class ReportViewBuilder:
    """Base class for a report view: fetch, derive, assemble."""

    view: ReportView

    def __init__(
        self,
        fetcher: RecordFetcher,
        calculator: MetricsCalculator,
        scheduler: BatchScheduler,
        settings: ReportSettings,
    ):
        self.fetcher = fetcher
        self.calculator = calculator
        self.scheduler = scheduler
        self.settings = settings

    async def build(self, ctx: ReportContext):
        data = await self.fetch(ctx)
        derived = self.derive(ctx, data)
        return await self.assemble(ctx, derived)

    async def fetch(self, ctx: ReportContext) -> ViewData:
        raise NotImplementedError

    def derive(self, ctx: ReportContext, data: ViewData) -> ViewData:
        data.measured = [
            MeasuredTicket(ticket, self.calculator.ticket_metrics(ticket, ctx.now))
            for ticket in data.tickets
        ]
        return data

    async def assemble(self, ctx: ReportContext, data: ViewData):
        raise NotImplementedError

    async def fetch_tickets(
        self,
        ctx: ReportContext,
        where: Optional[Filter] = None,
        in_window: bool = True,
    ) -> List[TicketRecord]:
        """Scoped tickets with every relation attached, newest first."""
        return await self.fetcher.find_records(
            RecordKind.TICKET,
            And(ctx.ticket_filter(), where),
            window=ctx.window if in_window else None,
            include=sorted(TICKET_INCLUDES),
            order_by="created_at",
            descending=True,
        )

    # =========================================================================
    # Scoped domain entities
    # =========================================================================

    async def zones(self, ctx: ReportContext) -> List[Zone]:
        zones = await self.fetcher.list_domain_entities(EntityKind.ZONE)
        return [z for z in zones if ctx.in_scope(z.id)]

    async def customers(self, ctx: ReportContext) -> List[Customer]:
        customers = await self.fetcher.list_domain_entities(EntityKind.CUSTOMER)
        return [
            c for c in customers
            if ctx.in_scope(c.service_zone_id)
            and (ctx.request.customer_id is None or c.id == ctx.request.customer_id)
        ]

    async def assets(self, ctx: ReportContext) -> List[Asset]:
        assets = await self.fetcher.list_domain_entities(EntityKind.ASSET)
        return [
            a for a in assets
            if ctx.in_scope(a.zone_id)
            and (ctx.request.customer_id is None or a.customer_id == ctx.request.customer_id)
            and (ctx.request.asset_id is None or a.id == ctx.request.asset_id)
        ]

    async def people(
        self, ctx: ReportContext, roles: Optional[Iterable[str]] = None
    ) -> List[Person]:
        wanted = set(roles) if roles is not None else None
        people = await self.fetcher.list_domain_entities(EntityKind.PERSON)
        return [
            p for p in people
            if (wanted is None or p.role in wanted)
            and (ctx.zone_ids is None or ctx.zone_ids.intersection(p.zone_ids))
        ]

    # =========================================================================
    # Daily trend series
    # =========================================================================

    async def ticket_trends(
        self, ctx: ReportContext, days: Optional[List[Tuple[date, TimeWindow]]] = None
    ) -> List[DailyTrendPoint]:
        """Per-day created/resolved/escalated/assigned counts over the window."""
        base = ctx.ticket_filter()
        in_window = And(base, window_filter(RecordKind.TICKET, ctx.window))
        days = days if days is not None else ctx.window.local_days(ctx.tz)

        async def count_day(entry: Tuple[date, TimeWindow]) -> DailyTrendPoint:
            day, span = entry
            created = await self.fetcher.count_records(
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
            escalated = await self.fetcher.count_records(
                RecordKind.TICKET,
                And(
                    in_window,
                    EqualsField("is_escalated", True),
                    DateRange("escalated_at", span.start, span.end),
                ),
            )
            assigned = await self.fetcher.count_records(
                RecordKind.TICKET,
                And(
                    in_window,
                    EqualsField("status", TicketStatus.ASSIGNED.value),
                    DateRange("updated_at", span.start, span.end),
                ),
            )
            return DailyTrendPoint(
                day=day, created=created, resolved=resolved, escalated=escalated, assigned=assigned
            )

        return await self.scheduler.run(
            days,
            count_day,
            fallback=lambda entry: DailyTrendPoint(day=entry[0]),
            label=lambda entry: entry[0].isoformat(),
        )


def names_by_id(entities: Iterable[Any], attr: str = "name") -> Dict[int, str]:
    return {entity.id: getattr(entity, attr) for entity in entities}


def group_by(items: Iterable[T], key: Callable[[T], Hashable]) -> Dict[Hashable, List[T]]:
    groups: Dict[Hashable, List[T]] = {}
    for item in items:
        groups.setdefault(key(item), []).append(item)
    return groups
