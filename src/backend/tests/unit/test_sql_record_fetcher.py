"""
Tests for the SQL-backed record fetcher over an in-memory SQLite store.

Tests cover:
- Filter translation (sets, equality, date ranges, parent relations)
- Window, ordering and paging
- Snapshot assembly with includes, feedback and report counts
- Grouped counts and sums
- Domain entity listings
- Naive UTC timestamp columns, attendance sessions and activity logs
- Translation of store failures into UpstreamFetchError
"""

from datetime import date, datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy import DateTime
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from core.exceptions import UpstreamFetchError
from db import models
from db.enums import OfferStage, TicketPriority, TicketStatus
from schemas.reports.common import TimeWindow
from schemas.reports.query import (
    AnyOf,
    DateRange,
    EntityKind,
    EqualsField,
    InSet,
    NotNull,
    RecordKind,
    Related,
)
from services.record_fetcher import TICKET_INCLUDES
from services.sql_record_fetcher import SqlRecordFetcher, from_storage, to_storage
from tests.factories import IST, ist


def stored(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> datetime:
    """Naive UTC value as the store keeps it."""
    return datetime(year, month, day, hour, minute)


@pytest.fixture
def window() -> TimeWindow:
    return TimeWindow.for_local_dates(date(2024, 6, 1), date(2024, 6, 5), IST)


@pytest_asyncio.fixture
async def fetcher(session_factory) -> SqlRecordFetcher:
    """Two zones, one agent, three tickets, two offers, a target and a day of attendance."""
    async with session_factory() as session:
        session.add_all([
            models.ServiceZone(id=1, name="North", short_form="N"),
            models.ServiceZone(id=2, name="South", short_form="S"),
            models.User(id=5, name="Asha", email="asha@example.com", role="SERVICE_PERSON"),
            models.Customer(id=10, company_name="Acme Mills", service_zone_id=1),
            models.Asset(id=20, machine_id="M-020", model="PX-200", customer_id=10),
        ])
        await session.flush()
        session.add(models.UserZone(user_id=5, zone_id=1))
        session.add_all([
            # 10:00 IST on Mon 2024-06-03
            models.Ticket(
                id=101, title="Spindle noise", status=TicketStatus.RESOLVED.value,
                priority=TicketPriority.HIGH.value, zone_id=1, customer_id=10,
                asset_id=20, assigned_to_id=5,
                created_at=stored(2024, 6, 3, 4, 30), updated_at=stored(2024, 6, 3, 8, 30),
            ),
            models.Ticket(
                id=102, title="Coolant leak", status=TicketStatus.OPEN.value,
                priority=TicketPriority.LOW.value, zone_id=2,
                created_at=stored(2024, 6, 4, 5, 0), updated_at=stored(2024, 6, 4, 5, 0),
            ),
            models.Ticket(
                id=103, title="Belt wear", status=TicketStatus.OPEN.value,
                priority=TicketPriority.HIGH.value, zone_id=1,
                created_at=stored(2024, 5, 1, 5, 0), updated_at=stored(2024, 5, 1, 5, 0),
            ),
        ])
        await session.flush()
        session.add_all([
            models.TicketStatusHistory(
                id=1, ticket_id=101, status=TicketStatus.RESOLVED.value,
                changed_at=stored(2024, 6, 3, 8, 30), changed_by_id=5,
            ),
            models.TicketStatusHistory(
                id=2, ticket_id=101, status=TicketStatus.ASSIGNED.value,
                changed_at=stored(2024, 6, 3, 4, 45), changed_by_id=5,
            ),
            models.TicketStatusHistory(
                id=3, ticket_id=102, status=TicketStatus.OPEN.value,
                changed_at=stored(2024, 6, 4, 5, 0),
            ),
            models.TicketFeedback(id=1, ticket_id=101, rating=4, submitted_at=stored(2024, 6, 3, 9)),
            models.TicketReport(id=1, ticket_id=101, file_name="visit.pdf"),
            models.Offer(
                id=201, offer_reference_number="OFF-201", stage=OfferStage.PO_RECEIVED.value,
                product_type="CONTRACT", offer_value=100000, po_value=50000,
                zone_id=1, customer_id=10, created_at=stored(2024, 6, 3, 6),
            ),
            models.Offer(
                id=202, offer_reference_number="OFF-202", stage=OfferStage.INITIAL.value,
                product_type="SPP", offer_value=200000, zone_id=2,
                created_at=stored(2024, 6, 4, 6),
            ),
            # Mon 09:00 to 17:30 IST, and one session before the window
            models.Attendance(
                id=1, user_id=5, check_in_at=stored(2024, 6, 3, 3, 30),
                check_out_at=stored(2024, 6, 3, 12), status="CHECKED_OUT",
            ),
            models.Attendance(id=2, user_id=5, check_in_at=stored(2024, 5, 20, 3, 30)),
            models.DailyActivityLog(
                id=1, user_id=5, ticket_id=101, activity_type="TICKET_WORK",
                start_time=stored(2024, 6, 3, 5), duration=60,
            ),
            models.DailyActivityLog(
                id=2, user_id=5, activity_type="TRAVEL", start_time=stored(2024, 6, 3, 4),
                end_time=stored(2024, 6, 3, 4, 40),
            ),
            models.SalesTarget(
                id=301, service_zone_id=1, period_type="MONTHLY",
                target_period="2024-06", target_value=500000,
            ),
        ])
        await session.commit()

    return SqlRecordFetcher(session_factory)


class TestStorageConversion:
    """Tests for timestamp conversion at the store boundary."""

    def test_aware_values_stored_as_naive_utc(self):
        """Aware instants are normalised to naive UTC."""
        assert to_storage(ist(2024, 6, 3, 10)) == stored(2024, 6, 3, 4, 30)
        assert to_storage(7) == 7

    def test_naive_values_read_as_utc(self):
        """Naive storage values come back aware in UTC."""
        assert from_storage(stored(2024, 6, 3, 4, 30)) == ist(2024, 6, 3, 10)
        assert from_storage(None) is None


class TestFindRecords:
    """Tests for record retrieval."""

    @pytest.mark.asyncio
    async def test_window_limits_by_creation_time(self, fetcher, window):
        """Only tickets created inside the window are returned, oldest id first."""
        tickets = await fetcher.find_records(RecordKind.TICKET, window=window)

        assert [t.id for t in tickets] == [101, 102]
        assert tickets[0].created_at == ist(2024, 6, 3, 10)
        assert tickets[0].created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_includes_attach_related_records(self, fetcher):
        """Requested includes are resolved onto the snapshot."""
        (ticket,) = await fetcher.find_records(
            RecordKind.TICKET,
            where=EqualsField("id", 101),
            include=sorted(TICKET_INCLUDES),
        )

        assert [h.status for h in ticket.status_history] == ["ASSIGNED", "RESOLVED"]
        assert ticket.zone.name == "North"
        assert ticket.customer.company_name == "Acme Mills"
        assert ticket.asset.machine_id == "M-020"
        assert ticket.asset.zone_id == 1
        assert ticket.assignee.zone_ids == [1]
        assert ticket.feedback_rating == 4
        assert ticket.reports_count == 1

    @pytest.mark.asyncio
    async def test_without_includes_related_records_absent(self, fetcher):
        """Related records are only loaded on request."""
        (ticket,) = await fetcher.find_records(RecordKind.TICKET, where=EqualsField("id", 101))

        assert ticket.status_history == []
        assert ticket.zone is None
        assert ticket.feedback_rating == 4

    @pytest.mark.asyncio
    async def test_unknown_include_rejected(self, fetcher):
        """Unsupported includes are a programming error, not a fetch failure."""
        with pytest.raises(ValueError):
            await fetcher.find_records(RecordKind.TICKET, include=["invoices"])

    @pytest.mark.asyncio
    async def test_ordering_and_paging(self, fetcher):
        """Descending order with offset and limit."""
        ordered = await fetcher.find_records(
            RecordKind.TICKET, order_by="created_at", descending=True
        )
        assert [t.id for t in ordered] == [102, 101, 103]

        page = await fetcher.find_records(
            RecordKind.TICKET, order_by="created_at", descending=True, offset=1, limit=1
        )
        assert [t.id for t in page] == [101]

    @pytest.mark.asyncio
    async def test_filter_variants(self, fetcher):
        """Set, null and disjunction filters translate to SQL."""
        in_north = await fetcher.find_records(RecordKind.TICKET, where=InSet("zone_id", [1]))
        assigned = await fetcher.find_records(RecordKind.TICKET, where=NotNull("assigned_to_id"))
        either = await fetcher.find_records(
            RecordKind.TICKET,
            where=AnyOf(EqualsField("priority", "LOW"), EqualsField("zone_id", 1)),
        )

        assert [t.id for t in in_north] == [101, 103]
        assert [t.id for t in assigned] == [101]
        assert [t.id for t in either] == [101, 102, 103]

    @pytest.mark.asyncio
    async def test_empty_set_matches_nothing(self, fetcher):
        """An empty InSet is an empty result, not an error."""
        assert await fetcher.find_records(RecordKind.TICKET, where=InSet("zone_id", [])) == []

    @pytest.mark.asyncio
    async def test_offer_snapshots(self, fetcher, window):
        """Numeric columns come back as floats."""
        offers = await fetcher.find_records(RecordKind.OFFER, window=window, include=["zone"])

        assert [o.id for o in offers] == [201, 202]
        assert offers[0].offer_value == 100000.0
        assert offers[0].po_value == 50000.0
        assert offers[1].po_value is None
        assert offers[1].zone.name == "South"

    @pytest.mark.asyncio
    async def test_unknown_column_rejected(self, fetcher):
        """Filtering on a missing column raises ValueError."""
        with pytest.raises(ValueError):
            await fetcher.count_records(RecordKind.TICKET, where=EqualsField("region", 1))


class TestCountsAndGroups:
    """Tests for counting and grouped aggregation."""

    @pytest.mark.asyncio
    async def test_count_with_equality(self, fetcher):
        """Counts honour the filter."""
        assert await fetcher.count_records(RecordKind.TICKET, EqualsField("status", "OPEN")) == 2

    @pytest.mark.asyncio
    async def test_transitions_filtered_through_ticket(self, fetcher):
        """A Related filter scopes status transitions by their ticket."""
        north = await fetcher.count_records(
            RecordKind.STATUS_TRANSITION, Related("ticket", EqualsField("zone_id", 1))
        )
        south = await fetcher.count_records(
            RecordKind.STATUS_TRANSITION, Related("ticket", EqualsField("zone_id", 2))
        )

        assert north == 2
        assert south == 1

    @pytest.mark.asyncio
    async def test_transition_window(self, fetcher):
        """Transitions are windowed on their change time."""
        day = TimeWindow.for_local_dates(date(2024, 6, 3), date(2024, 6, 3), IST)
        transitions = await fetcher.find_records(RecordKind.STATUS_TRANSITION, window=day)

        assert sorted(t.id for t in transitions) == [1, 2]

    @pytest.mark.asyncio
    async def test_date_range_open_ended(self, fetcher):
        """A range without an end bound is open-ended."""
        since = DateRange("created_at", start=ist(2024, 6, 4))
        assert await fetcher.count_records(RecordKind.TICKET, since) == 1

    @pytest.mark.asyncio
    async def test_group_count(self, fetcher):
        """Groups are sorted by key."""
        groups = await fetcher.group_count(RecordKind.TICKET, InSet("id", [101, 102, 103]), None, "priority")

        assert [(g.key, g.count) for g in groups] == [("HIGH", 2), ("LOW", 1)]

    @pytest.mark.asyncio
    async def test_group_aggregate(self, fetcher, window):
        """Sums per group, with missing values summed as zero."""
        groups = await fetcher.group_aggregate(
            RecordKind.OFFER, InSet("zone_id", [1, 2]), window, "zone_id", ["offer_value", "po_value"]
        )

        assert [g.key for g in groups] == [1, 2]
        assert groups[0].sums == {"offer_value": 100000.0, "po_value": 50000.0}
        assert groups[1].count == 1
        assert groups[1].sums["po_value"] == 0.0


class TestDomainEntities:
    """Tests for domain entity listings."""

    @pytest.mark.asyncio
    async def test_zones_and_people(self, fetcher):
        """Zones and people load with their zone links."""
        zones = await fetcher.list_domain_entities(EntityKind.ZONE)
        people = await fetcher.list_domain_entities(EntityKind.PERSON)

        assert [z.name for z in zones] == ["North", "South"]
        assert people[0].name == "Asha"
        assert people[0].zone_ids == [1]

    @pytest.mark.asyncio
    async def test_assets_inherit_customer_zone(self, fetcher):
        """An asset's zone is its customer's service zone."""
        (asset,) = await fetcher.list_domain_entities(EntityKind.ASSET)
        assert asset.zone_id == 1

    @pytest.mark.asyncio
    async def test_targets(self, fetcher):
        """Target values are floats."""
        (target,) = await fetcher.list_domain_entities(EntityKind.TARGET)

        assert target.target_period == "2024-06"
        assert target.target_value == 500000.0


class TestTimestampColumns:
    """Tests for timestamp column types and values written with a zone."""

    @pytest.mark.parametrize(
        "table,column",
        [
            (models.Ticket, "created_at"),
            (models.Ticket, "sla_due_at"),
            (models.TicketStatusHistory, "changed_at"),
            (models.Offer, "created_at"),
            (models.Attendance, "check_in_at"),
            (models.DailyActivityLog, "start_time"),
        ],
    )
    def test_columns_are_naive(self, table, column):
        """Timestamp columns hold naive UTC values."""
        column_type = table.__table__.c[column].type
        assert isinstance(column_type, DateTime)
        assert column_type.timezone is False

    @pytest.mark.asyncio
    async def test_utc_values_written_by_the_application(self, session_factory, window):
        """Rows stamped with aware UTC values are found by the local window."""
        async with session_factory() as session:
            session.add(models.ServiceZone(id=1, name="North", short_form="N"))
            await session.flush()
            session.add(models.Ticket(
                id=401, title="Gearbox", status=TicketStatus.OPEN.value,
                priority=TicketPriority.MEDIUM.value, zone_id=1,
                created_at=datetime(2024, 6, 3, 4, 30, tzinfo=timezone.utc),
                updated_at=datetime(2024, 6, 3, 4, 30, tzinfo=timezone.utc),
            ))
            await session.commit()

        (ticket,) = await SqlRecordFetcher(session_factory).find_records(
            RecordKind.TICKET, window=window
        )
        assert ticket.created_at == ist(2024, 6, 3, 10)


class TestFieldAttendance:
    """Tests for attendance sessions and activity logs."""

    @pytest.mark.asyncio
    async def test_sessions_in_window(self, fetcher, window):
        """Sessions are bounded by check-in time and come back aware."""
        sessions = await fetcher.find_records(
            RecordKind.ATTENDANCE, InSet("user_id", [5]), window=window
        )

        assert [s.id for s in sessions] == [1]
        assert sessions[0].check_in_at == ist(2024, 6, 3, 9)
        assert sessions[0].check_out_at == ist(2024, 6, 3, 17, 30)
        assert sessions[0].status == "CHECKED_OUT"

    @pytest.mark.asyncio
    async def test_open_session(self, fetcher):
        """An open session has no check-out."""
        (session,) = await fetcher.find_records(RecordKind.ATTENDANCE, EqualsField("id", 2))
        assert session.check_out_at is None
        assert session.status == "CHECKED_IN"

    @pytest.mark.asyncio
    async def test_activities_ordered_and_filtered_through_ticket(self, fetcher, window):
        """Activity logs order by start time and filter by their ticket."""
        logs = await fetcher.find_records(
            RecordKind.ACTIVITY_LOG, window=window, order_by="start_time"
        )
        assert [a.id for a in logs] == [2, 1]
        assert logs[0].end_time == ist(2024, 6, 3, 10, 10)
        assert logs[1].duration == 60

        north = await fetcher.find_records(
            RecordKind.ACTIVITY_LOG, Related("ticket", InSet("zone_id", [1]))
        )
        assert [a.id for a in north] == [1]

    @pytest.mark.asyncio
    async def test_includes_rejected(self, fetcher):
        """Attendance records carry no relations."""
        with pytest.raises(ValueError):
            await fetcher.find_records(RecordKind.ATTENDANCE, include=["zone"])

class TestFailureTranslation:
    """Tests for store failure handling."""

    @pytest.mark.asyncio
    async def test_missing_tables_raise_upstream_error(self):
        """Store errors surface as UpstreamFetchError naming the operation."""
        engine = create_async_engine("sqlite+aiosqlite:///:memory:")
        fetcher = SqlRecordFetcher(async_sessionmaker(engine, expire_on_commit=False))
        try:
            with pytest.raises(UpstreamFetchError) as exc_info:
                await fetcher.count_records(RecordKind.TICKET)
        finally:
            await engine.dispose()

        assert exc_info.value.operation == "count records"
