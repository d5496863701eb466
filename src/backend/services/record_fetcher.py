"""
Record fetcher boundary.

The reporting engine reads records only through the RecordFetcher protocol.
InMemoryRecordFetcher interprets the filter vocabulary over snapshot lists;
it backs fixtures, tests and offline report runs, and defines the reference
semantics the SQL implementation must match.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence

from schemas.reports.common import TimeWindow
from schemas.reports.query import (
    MATCH_ALL,
    And,
    AnyOf,
    DateRange,
    EntityKind,
    EqualsField,
    Filter,
    GroupAggregate,
    GroupCount,
    InSet,
    NotNull,
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
    StatusTransition,
    TicketRecord,
    Zone,
)

logger = logging.getLogger(__name__)

# Relations that can be attached to fetched records
TICKET_INCLUDES = frozenset({"status_history", "zone", "customer", "asset", "assignee"})
OFFER_INCLUDES = frozenset({"zone", "customer", "assignee"})
RECORD_INCLUDES = {
    RecordKind.TICKET: TICKET_INCLUDES,
    RecordKind.OFFER: OFFER_INCLUDES,
}


class RecordFetcher(Protocol):
    """Read operations the engine needs from the record store."""

    async def find_records(
        self,
        kind: RecordKind,
        where: Filter = MATCH_ALL,
        window: Optional[TimeWindow] = None,
        include: Sequence[str] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        offset: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[Any]:
        ...

    async def count_records(
        self,
        kind: RecordKind,
        where: Filter = MATCH_ALL,
        window: Optional[TimeWindow] = None,
    ) -> int:
        ...

    async def group_count(
        self,
        kind: RecordKind,
        where: Filter,
        window: Optional[TimeWindow],
        group_by: str,
    ) -> List[GroupCount]:
        ...

    async def group_aggregate(
        self,
        kind: RecordKind,
        where: Filter,
        window: Optional[TimeWindow],
        group_by: str,
        sum_fields: Sequence[str],
    ) -> List[GroupAggregate]:
        ...

    async def list_domain_entities(self, kind: EntityKind) -> List[Any]:
        ...


def group_sort_key(key: Any):
    """Deterministic ordering for group keys of mixed or missing types."""
    return (key is None, str(key) if key is not None else "")


class InMemoryRecordFetcher:
    """RecordFetcher over in-process snapshot lists."""

    def __init__(
        self,
        tickets: Iterable[TicketRecord] = (),
        offers: Iterable[OfferRecord] = (),
        zones: Iterable[Zone] = (),
        customers: Iterable[Customer] = (),
        assets: Iterable[Asset] = (),
        people: Iterable[Person] = (),
        targets: Iterable[SalesTarget] = (),
        attendance: Iterable[AttendanceSession] = (),
        activities: Iterable[ActivityLogEntry] = (),
    ):
        self.tickets = list(tickets)
        self.offers = list(offers)
        self.attendance = list(attendance)
        self.activities = list(activities)
        self.entities: Dict[EntityKind, List[Any]] = {
            EntityKind.ZONE: list(zones),
            EntityKind.CUSTOMER: list(customers),
            EntityKind.ASSET: list(assets),
            EntityKind.PERSON: list(people),
            EntityKind.TARGET: list(targets),
        }
        self._tickets_by_id = {t.id: t for t in self.tickets}

    # =========================================================================
    # Filter evaluation
    # =========================================================================

    def matches(self, record: Any, where: Filter) -> bool:
        if isinstance(where, And):
            return all(self.matches(record, clause) for clause in where.clauses)
        if isinstance(where, AnyOf):
            return any(self.matches(record, clause) for clause in where.clauses)
        if isinstance(where, EqualsField):
            return getattr(record, where.field) == where.value
        if isinstance(where, InSet):
            return getattr(record, where.field) in where.values
        if isinstance(where, NotNull):
            return getattr(record, where.field) is not None
        if isinstance(where, DateRange):
            value: Optional[datetime] = getattr(record, where.field)
            if value is None:
                return False
            if where.start is not None and value < where.start:
                return False
            if where.end is not None and value > where.end:
                return False
            return True
        if isinstance(where, Related):
            parent = self._parent(record, where.relation)
            return parent is not None and self.matches(parent, where.where)
        raise ValueError(f"Unsupported filter: {where!r}")

    def _parent(self, record: Any, relation: str) -> Optional[Any]:
        if relation == "ticket" and isinstance(record, (StatusTransition, ActivityLogEntry)):
            return self._tickets_by_id.get(record.ticket_id)
        raise ValueError(f"Unsupported relation {relation!r} for {type(record).__name__}")

    # =========================================================================
    # Record access
    # =========================================================================

    def _source(self, kind: RecordKind) -> List[Any]:
        if kind == RecordKind.TICKET:
            return self.tickets
        if kind == RecordKind.OFFER:
            return self.offers
        if kind == RecordKind.STATUS_TRANSITION:
            return [t for ticket in self.tickets for t in ticket.status_history]
        if kind == RecordKind.ATTENDANCE:
            return self.attendance
        if kind == RecordKind.ACTIVITY_LOG:
            return self.activities
        raise ValueError(f"Unsupported record kind: {kind}")

    def _select(self, kind: RecordKind, where: Filter, window: Optional[TimeWindow]) -> List[Any]:
        combined = And(where, window_filter(kind, window))
        return [record for record in self._source(kind) if self.matches(record, combined)]

    def _index(self, kind: EntityKind) -> Dict[int, Any]:
        return {entity.id: entity for entity in self.entities[kind]}

    def _attach(self, kind: RecordKind, records: List[Any], include: Sequence[str]) -> List[Any]:
        wanted = set(include)
        allowed = RECORD_INCLUDES.get(kind, frozenset())
        if not allowed:
            if wanted:
                raise ValueError(f"Unsupported include for {kind.value}: {sorted(wanted)}")
            return records

        unknown = wanted - allowed
        if unknown:
            raise ValueError(f"Unsupported include for {kind.value}: {sorted(unknown)}")

        zones = self._index(EntityKind.ZONE) if "zone" in wanted else {}
        customers = self._index(EntityKind.CUSTOMER) if "customer" in wanted else {}
        assets = self._index(EntityKind.ASSET) if "asset" in wanted else {}
        people = self._index(EntityKind.PERSON) if "assignee" in wanted else {}

        attached = []
        for record in records:
            update: Dict[str, Any] = {
                "zone": zones.get(record.zone_id),
                "customer": customers.get(record.customer_id),
                "assignee": people.get(record.assigned_to_id),
            }
            if kind == RecordKind.TICKET:
                update["asset"] = assets.get(record.asset_id)
                if "status_history" not in wanted:
                    update["status_history"] = []
            attached.append(record.model_copy(update=update))
        return attached

    async def find_records(
        self,
        kind: RecordKind,
        where: Filter = MATCH_ALL,
        window: Optional[TimeWindow] = None,
        include: Sequence[str] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        offset: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[Any]:
        records = self._select(kind, where, window)
        if order_by:
            records.sort(key=lambda r: r.id, reverse=descending)
            records.sort(key=lambda r: getattr(r, order_by), reverse=descending)
        start = offset or 0
        end = start + limit if limit is not None else None
        return self._attach(kind, records[start:end], include)

    async def count_records(
        self,
        kind: RecordKind,
        where: Filter = MATCH_ALL,
        window: Optional[TimeWindow] = None,
    ) -> int:
        return len(self._select(kind, where, window))

    async def group_count(
        self,
        kind: RecordKind,
        where: Filter,
        window: Optional[TimeWindow],
        group_by: str,
    ) -> List[GroupCount]:
        counts: Dict[Any, int] = {}
        for record in self._select(kind, where, window):
            key = getattr(record, group_by)
            counts[key] = counts.get(key, 0) + 1
        return [
            GroupCount(key=key, count=counts[key])
            for key in sorted(counts, key=group_sort_key)
        ]

    async def group_aggregate(
        self,
        kind: RecordKind,
        where: Filter,
        window: Optional[TimeWindow],
        group_by: str,
        sum_fields: Sequence[str],
    ) -> List[GroupAggregate]:
        groups: Dict[Any, GroupAggregate] = {}
        for record in self._select(kind, where, window):
            key = getattr(record, group_by)
            group = groups.setdefault(
                key, GroupAggregate(key=key, count=0, sums={name: 0.0 for name in sum_fields})
            )
            group.count += 1
            for name in sum_fields:
                group.sums[name] += float(getattr(record, name) or 0)
        return [groups[key] for key in sorted(groups, key=group_sort_key)]

    async def list_domain_entities(self, kind: EntityKind) -> List[Any]:
        return sorted(self.entities[kind], key=lambda entity: entity.id)
