"""
SQL-backed RecordFetcher.

Translates the filter vocabulary into SQLAlchemy clauses over the read
models. Each call opens its own session from the factory, so concurrent
trend sub-fetches never share an AsyncSession. Storage timestamps are naive
UTC; they are made aware on the way out and stripped on the way in.
"""
import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Type

from sqlalchemy import and_, false, func, or_, select, true
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import SQLModel

from core.decorators import translate_fetch_errors
from db import models
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
from services.record_fetcher import OFFER_INCLUDES, TICKET_INCLUDES, group_sort_key

logger = logging.getLogger(__name__)

RECORD_TABLES: Dict[RecordKind, Type[SQLModel]] = {
    RecordKind.TICKET: models.Ticket,
    RecordKind.STATUS_TRANSITION: models.TicketStatusHistory,
    RecordKind.OFFER: models.Offer,
    RecordKind.ATTENDANCE: models.Attendance,
    RecordKind.ACTIVITY_LOG: models.DailyActivityLog,
}

# (child table, relation name) -> (foreign key column name, parent table)
RELATIONS = {
    (models.TicketStatusHistory, "ticket"): ("ticket_id", models.Ticket),
    (models.DailyActivityLog, "ticket"): ("ticket_id", models.Ticket),
}


def to_storage(value: Any) -> Any:
    """Aware datetimes become naive UTC; everything else passes through."""
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def from_storage(value: Optional[datetime]) -> Optional[datetime]:
    """Naive storage timestamps are UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _number(value: Any) -> float:
    """Numeric columns come back as Decimal; reports work in float."""
    return 0.0 if value is None else float(value)


class SqlRecordFetcher:
    """RecordFetcher over the relational store."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    # =========================================================================
    # Filter translation
    # =========================================================================

    @staticmethod
    def _column(table: Type[SQLModel], name: str):
        column = getattr(table, name, None)
        if column is None:
            raise ValueError(f"{table.__tablename__} has no column {name!r}")
        return column

    def to_clause(self, table: Type[SQLModel], where: Filter):
        """Translate a filter into a SQL expression against ``table``."""
        if isinstance(where, And):
            if not where.clauses:
                return true()
            return and_(*(self.to_clause(table, clause) for clause in where.clauses))
        if isinstance(where, AnyOf):
            if not where.clauses:
                return false()
            return or_(*(self.to_clause(table, clause) for clause in where.clauses))
        if isinstance(where, EqualsField):
            column = self._column(table, where.field)
            if where.value is None:
                return column.is_(None)
            return column == to_storage(where.value)
        if isinstance(where, InSet):
            if not where.values:
                return false()
            return self._column(table, where.field).in_(
                [to_storage(value) for value in where.values]
            )
        if isinstance(where, NotNull):
            return self._column(table, where.field).is_not(None)
        if isinstance(where, DateRange):
            column = self._column(table, where.field)
            bounds = [column.is_not(None)]
            if where.start is not None:
                bounds.append(column >= to_storage(where.start))
            if where.end is not None:
                bounds.append(column <= to_storage(where.end))
            return and_(*bounds)
        if isinstance(where, Related):
            relation = RELATIONS.get((table, where.relation))
            if relation is None:
                raise ValueError(f"Unsupported relation {where.relation!r} for {table.__tablename__}")
            foreign_key, parent = relation
            return self._column(table, foreign_key).in_(
                select(parent.id).where(self.to_clause(parent, where.where))
            )
        raise ValueError(f"Unsupported filter: {where!r}")

    def _where(self, kind: RecordKind, where: Filter, window: Optional[TimeWindow]):
        return self.to_clause(RECORD_TABLES[kind], And(where, window_filter(kind, window)))

    # =========================================================================
    # Record operations
    # =========================================================================

    @translate_fetch_errors("find records")
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
        table = RECORD_TABLES[kind]
        stmt = select(table).where(self._where(kind, where, window))
        if order_by:
            column = self._column(table, order_by)
            stmt = stmt.order_by(column.desc() if descending else column.asc())
            stmt = stmt.order_by(table.id.desc() if descending else table.id.asc())
        else:
            stmt = stmt.order_by(table.id.asc())
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)

        if include and kind not in (RecordKind.TICKET, RecordKind.OFFER):
            raise ValueError(f"Unsupported include for {kind.value}: {sorted(include)}")

        async with self.session_factory() as session:
            rows = list((await session.execute(stmt)).scalars().all())
            if kind == RecordKind.TICKET:
                return await self._ticket_snapshots(session, rows, include)
            if kind == RecordKind.OFFER:
                return await self._offer_snapshots(session, rows, include)
            if kind == RecordKind.ATTENDANCE:
                return [self._attendance(row) for row in rows]
            if kind == RecordKind.ACTIVITY_LOG:
                return [self._activity(row) for row in rows]
            return [self._transition(row) for row in rows]

    @translate_fetch_errors("count records")
    async def count_records(
        self,
        kind: RecordKind,
        where: Filter = MATCH_ALL,
        window: Optional[TimeWindow] = None,
    ) -> int:
        table = RECORD_TABLES[kind]
        stmt = select(func.count(table.id)).where(self._where(kind, where, window))
        async with self.session_factory() as session:
            return int((await session.execute(stmt)).scalar_one())

    @translate_fetch_errors("group count")
    async def group_count(
        self,
        kind: RecordKind,
        where: Filter,
        window: Optional[TimeWindow],
        group_by: str,
    ) -> List[GroupCount]:
        table = RECORD_TABLES[kind]
        column = self._column(table, group_by)
        stmt = (
            select(column, func.count(table.id))
            .where(self._where(kind, where, window))
            .group_by(column)
        )
        async with self.session_factory() as session:
            rows = (await session.execute(stmt)).all()
        groups = [GroupCount(key=key, count=int(count)) for key, count in rows]
        return sorted(groups, key=lambda g: group_sort_key(g.key))

    @translate_fetch_errors("group aggregate")
    async def group_aggregate(
        self,
        kind: RecordKind,
        where: Filter,
        window: Optional[TimeWindow],
        group_by: str,
        sum_fields: Sequence[str],
    ) -> List[GroupAggregate]:
        table = RECORD_TABLES[kind]
        column = self._column(table, group_by)
        sums = [func.coalesce(func.sum(self._column(table, name)), 0) for name in sum_fields]
        stmt = (
            select(column, func.count(table.id), *sums)
            .where(self._where(kind, where, window))
            .group_by(column)
        )
        async with self.session_factory() as session:
            rows = (await session.execute(stmt)).all()

        groups = [
            GroupAggregate(
                key=row[0],
                count=int(row[1]),
                sums={name: _number(value) for name, value in zip(sum_fields, row[2:])},
            )
            for row in rows
        ]
        return sorted(groups, key=lambda g: group_sort_key(g.key))

    @translate_fetch_errors("list domain entities")
    async def list_domain_entities(self, kind: EntityKind) -> List[Any]:
        async with self.session_factory() as session:
            if kind == EntityKind.ZONE:
                return [Zone.model_validate(row) for row in await self._all(session, models.ServiceZone)]
            if kind == EntityKind.CUSTOMER:
                return [Customer.model_validate(row) for row in await self._all(session, models.Customer)]
            if kind == EntityKind.ASSET:
                return await self._assets(session)
            if kind == EntityKind.PERSON:
                return await self._people(session)
            if kind == EntityKind.TARGET:
                return [
                    SalesTarget(
                        id=row.id,
                        service_zone_id=row.service_zone_id,
                        user_id=row.user_id,
                        period_type=row.period_type,
                        target_period=row.target_period,
                        product_type=row.product_type,
                        target_value=_number(row.target_value),
                    )
                    for row in await self._all(session, models.SalesTarget)
                ]
        raise ValueError(f"Unsupported entity kind: {kind}")

    # =========================================================================
    # Snapshot builders
    # =========================================================================

    @staticmethod
    async def _all(session: AsyncSession, table: Type[SQLModel], ids=None) -> List[Any]:
        stmt = select(table)
        if ids is not None:
            if not ids:
                return []
            stmt = stmt.where(table.id.in_(ids))
        stmt = stmt.order_by(table.id)
        return list((await session.execute(stmt)).scalars().all())

    async def _assets(self, session: AsyncSession, ids=None) -> List[Asset]:
        rows = await self._all(session, models.Asset, ids)
        customer_ids = {row.customer_id for row in rows if row.customer_id is not None}
        zone_by_customer = {
            c.id: c.service_zone_id for c in await self._all(session, models.Customer, customer_ids)
        }
        return [
            Asset(
                id=row.id,
                machine_id=row.machine_id,
                model=row.model,
                serial_no=row.serial_no,
                location=row.location,
                customer_id=row.customer_id,
                zone_id=zone_by_customer.get(row.customer_id),
            )
            for row in rows
        ]

    async def _people(self, session: AsyncSession, ids=None) -> List[Person]:
        rows = await self._all(session, models.User, ids)
        stmt = select(models.UserZone)
        if ids is not None:
            stmt = stmt.where(models.UserZone.user_id.in_(ids))
        zones_by_user: Dict[int, List[int]] = defaultdict(list)
        for link in (await session.execute(stmt)).scalars().all():
            zones_by_user[link.user_id].append(link.zone_id)
        return [
            Person(
                id=row.id,
                name=row.name,
                email=row.email,
                role=row.role,
                zone_ids=sorted(zones_by_user.get(row.id, [])),
                is_active=row.is_active,
            )
            for row in rows
        ]

    @staticmethod
    def _transition(row: models.TicketStatusHistory) -> StatusTransition:
        return StatusTransition(
            id=row.id,
            ticket_id=row.ticket_id,
            status=row.status,
            changed_at=from_storage(row.changed_at),
            changed_by_id=row.changed_by_id,
        )

    @staticmethod
    def _attendance(row: models.Attendance) -> AttendanceSession:
        return AttendanceSession(
            id=row.id,
            user_id=row.user_id,
            check_in_at=from_storage(row.check_in_at),
            check_out_at=from_storage(row.check_out_at),
            status=row.status,
            location=row.location,
        )

    @staticmethod
    def _activity(row: models.DailyActivityLog) -> ActivityLogEntry:
        return ActivityLogEntry(
            id=row.id,
            user_id=row.user_id,
            ticket_id=row.ticket_id,
            activity_type=row.activity_type,
            title=row.title,
            start_time=from_storage(row.start_time),
            end_time=from_storage(row.end_time),
            duration=row.duration,
            location=row.location,
        )

    async def _references(
        self,
        session: AsyncSession,
        rows: List[Any],
        include: Sequence[str],
        allowed: frozenset,
    ) -> Dict[str, Dict[int, Any]]:
        wanted = set(include)
        unknown = wanted - allowed
        if unknown:
            raise ValueError(f"Unsupported include: {sorted(unknown)}")

        def ids(attr: str):
            return {getattr(row, attr) for row in rows if getattr(row, attr, None) is not None}

        refs: Dict[str, Dict[int, Any]] = {"zone": {}, "customer": {}, "asset": {}, "assignee": {}}
        if "zone" in wanted:
            refs["zone"] = {
                z.id: Zone.model_validate(z)
                for z in await self._all(session, models.ServiceZone, ids("zone_id"))
            }
        if "customer" in wanted:
            refs["customer"] = {
                c.id: Customer.model_validate(c)
                for c in await self._all(session, models.Customer, ids("customer_id"))
            }
        if "asset" in wanted:
            refs["asset"] = {a.id: a for a in await self._assets(session, ids("asset_id"))}
        if "assignee" in wanted:
            refs["assignee"] = {p.id: p for p in await self._people(session, ids("assigned_to_id"))}
        return refs

    async def _ticket_snapshots(
        self,
        session: AsyncSession,
        rows: List[models.Ticket],
        include: Sequence[str],
    ) -> List[TicketRecord]:
        if not rows:
            return []
        ticket_ids = [row.id for row in rows]
        refs = await self._references(session, rows, include, TICKET_INCLUDES)

        history: Dict[int, List[StatusTransition]] = defaultdict(list)
        if "status_history" in include:
            stmt = (
                select(models.TicketStatusHistory)
                .where(models.TicketStatusHistory.ticket_id.in_(ticket_ids))
                .order_by(models.TicketStatusHistory.changed_at, models.TicketStatusHistory.id)
            )
            for entry in (await session.execute(stmt)).scalars().all():
                history[entry.ticket_id].append(self._transition(entry))

        ratings: Dict[int, int] = {}
        stmt = (
            select(models.TicketFeedback)
            .where(models.TicketFeedback.ticket_id.in_(ticket_ids))
            .order_by(models.TicketFeedback.submitted_at, models.TicketFeedback.id)
        )
        for feedback in (await session.execute(stmt)).scalars().all():
            ratings[feedback.ticket_id] = feedback.rating

        stmt = (
            select(models.TicketReport.ticket_id, func.count(models.TicketReport.id))
            .where(models.TicketReport.ticket_id.in_(ticket_ids))
            .group_by(models.TicketReport.ticket_id)
        )
        report_counts = {ticket_id: int(count) for ticket_id, count in (await session.execute(stmt)).all()}

        return [
            TicketRecord(
                id=row.id,
                title=row.title,
                status=row.status,
                priority=row.priority,
                call_type=row.call_type,
                zone_id=row.zone_id,
                customer_id=row.customer_id,
                asset_id=row.asset_id,
                assigned_to_id=row.assigned_to_id,
                sla_due_at=from_storage(row.sla_due_at),
                sla_status=row.sla_status,
                is_escalated=row.is_escalated,
                escalated_at=from_storage(row.escalated_at),
                created_at=from_storage(row.created_at),
                updated_at=from_storage(row.updated_at),
                feedback_rating=ratings.get(row.id),
                reports_count=report_counts.get(row.id, 0),
                status_history=history.get(row.id, []),
                zone=refs["zone"].get(row.zone_id),
                customer=refs["customer"].get(row.customer_id),
                asset=refs["asset"].get(row.asset_id),
                assignee=refs["assignee"].get(row.assigned_to_id),
            )
            for row in rows
        ]

    async def _offer_snapshots(
        self,
        session: AsyncSession,
        rows: List[models.Offer],
        include: Sequence[str],
    ) -> List[OfferRecord]:
        if not rows:
            return []
        refs = await self._references(session, rows, include, OFFER_INCLUDES)
        return [
            OfferRecord(
                id=row.id,
                offer_reference_number=row.offer_reference_number,
                title=row.title,
                product_type=row.product_type,
                stage=row.stage,
                status=row.status,
                offer_value=None if row.offer_value is None else _number(row.offer_value),
                po_value=None if row.po_value is None else _number(row.po_value),
                zone_id=row.zone_id,
                customer_id=row.customer_id,
                assigned_to_id=row.assigned_to_id,
                created_at=from_storage(row.created_at),
                updated_at=from_storage(row.updated_at),
                zone=refs["zone"].get(row.zone_id),
                customer=refs["customer"].get(row.customer_id),
                assignee=refs["assignee"].get(row.assigned_to_id),
            )
            for row in rows
        ]
