"""
Unit tests for the individual report views.

Each view runs through the assembler over a small store with hand-checked
numbers: two zones, two customers, three machines, three staff and three
tickets, plus four offers and a handful of sales targets.
"""

from datetime import date

import pytest

from db.enums import OfferStage, PersonRole, TargetPeriodType
from db.enums import TicketStatus as S
from schemas.reports.common import RiskLevel
from schemas.reports.filters import ReportRequest, ReportScope
from services.record_fetcher import InMemoryRecordFetcher
from tests.factories import (
    NOW,
    ActivityFactory,
    AssetFactory,
    AttendanceFactory,
    CustomerFactory,
    OfferFactory,
    PersonFactory,
    TargetFactory,
    TicketFactory,
    ZoneFactory,
    ist,
)


def field_entities():
    return dict(
        zones=[ZoneFactory.create(id=1, name="North"), ZoneFactory.create(id=2, name="South")],
        customers=[
            CustomerFactory.create(id=10, company_name="Acme Mills", service_zone_id=1, address="Plot 4"),
            CustomerFactory.create(id=11, company_name="Beta Textiles", service_zone_id=2),
        ],
        assets=[
            AssetFactory.create(id=20, machine_id="M-020", customer_id=10, zone_id=1),
            AssetFactory.create(id=21, machine_id="M-021", customer_id=10, zone_id=1),
            AssetFactory.create(id=22, machine_id="M-022", customer_id=11, zone_id=2),
        ],
        people=[
            PersonFactory.create(id=30, name="Asha", zone_ids=[1]),
            PersonFactory.create(id=31, name="Ravi", zone_ids=[2]),
            PersonFactory.create(id=32, name="Meera", role=PersonRole.ZONE_USER.value, zone_ids=[1]),
        ],
    )


def field_tickets():
    return [
        # Open critical, due Tue 10:30, overrun 600 working minutes by now
        TicketFactory.create(
            id=501, created_at=ist(2024, 6, 3, 15), priority="CRITICAL",
            zone_id=1, customer_id=10, asset_id=20, assigned_to_id=30,
            sla_due_at=ist(2024, 6, 4, 10, 30),
        ),
        # Resolved after four working hours, well before its due date
        TicketFactory.resolved(
            ist(2024, 6, 3, 10), ist(2024, 6, 3, 14), id=502, priority="HIGH",
            zone_id=1, customer_id=10, asset_id=20, assigned_to_id=30,
            sla_due_at=ist(2024, 6, 3, 18),
        ),
        # Open, due an hour from now
        TicketFactory.create(
            id=503, created_at=ist(2024, 6, 4, 10), priority="MEDIUM",
            zone_id=2, customer_id=11, asset_id=22, assigned_to_id=31,
            sla_due_at=ist(2024, 6, 5, 13),
        ),
    ]


def sales_records():
    return dict(
        offers=[
            OfferFactory.create(
                id=601, zone_id=1, customer_id=10, product_type="CONTRACT",
                stage=OfferStage.WON.value, offer_value=200000.0, po_value=150000.0,
                assigned_to_id=30,
            ),
            OfferFactory.create(
                id=602, zone_id=1, customer_id=10, product_type="SPP",
                stage=OfferStage.LOST.value, offer_value=50000.0,
            ),
            OfferFactory.create(
                id=603, zone_id=2, customer_id=11, product_type="CONTRACT",
                stage=OfferStage.INITIAL.value, offer_value=100000.0,
                created_at=ist(2024, 6, 4, 11),
            ),
            OfferFactory.create(
                id=604, zone_id=2, customer_id=11, product_type=None,
                stage=OfferStage.WON.value, offer_value=30000.0, assigned_to_id=31,
                created_at=ist(2024, 6, 5, 9),
            ),
        ],
        targets=[
            TargetFactory.create(id=701, service_zone_id=1, target_value=400000.0),
            TargetFactory.create(id=702, user_id=31, target_value=20000.0),
            TargetFactory.create(
                id=703, service_zone_id=2, period_type=TargetPeriodType.YEARLY.value,
                target_period="2023",
            ),
            TargetFactory.create(id=704, service_zone_id=1, target_period="garbage"),
        ],
    )


@pytest.fixture
def field_fetcher():
    return InMemoryRecordFetcher(tickets=field_tickets(), **field_entities())


@pytest.fixture
def sales_fetcher():
    return InMemoryRecordFetcher(**field_entities(), **sales_records())


class TestSlaPerformanceView:
    """Tests for the stored due-date SLA view."""

    @pytest.mark.asyncio
    async def test_summary_and_breach_rows(self, build_assembler, field_fetcher):
        """One breach, one at risk, one on time."""
        result = await build_assembler(field_fetcher).generate("sla-performance", now=NOW)

        assert result.summary.total_tickets_with_sla == 3
        assert result.summary.breached_tickets == 1
        assert result.summary.at_risk_tickets == 1
        assert result.summary.compliance_rate == 66.67
        assert [row.id for row in result.rows] == [501]
        assert result.rows[0].overrun_minutes == 600
        assert result.rows[0].customer_name == "Acme Mills"

    @pytest.mark.asyncio
    async def test_distributions_complete(self, build_assembler, field_fetcher):
        """SLA outcome and priority buckets are complete."""
        result = await build_assembler(field_fetcher).generate("sla-performance", now=NOW)

        outcome = {b.key: b.count for b in result.distributions["sla"]}
        assert outcome == {"BREACHED": 1, "AT_RISK": 1, "ON_TIME": 1}
        assert len(result.distributions["breachedPriority"]) == 4
        critical = result.priority_breakdown[0]
        assert (critical.priority, critical.total, critical.breached) == ("CRITICAL", 1, 1)
        assert critical.compliance_rate == 0


class TestHerAnalysisView:
    """Tests for the business-hours SLA view."""

    @pytest.mark.asyncio
    async def test_rows_and_summary(self, build_assembler, field_fetcher):
        """Deadlines follow the working calendar; only the critical ticket breaches."""
        result = await build_assembler(field_fetcher).generate("her-analysis", now=NOW)

        rows = {row.id: row for row in result.rows}
        assert rows[501].deadline == ist(2024, 6, 4, 10, 30)
        assert rows[501].her_hours == 4
        assert rows[501].is_breached is True
        assert rows[502].business_hours_used == 4
        assert rows[502].is_breached is False
        assert rows[503].is_breached is False

        assert result.summary.breached_tickets == 1
        assert result.summary.compliance_rate == 66.67
        assert result.summary.average_actual_hours == 4
        assert [p.priority for p in result.priority_breakdown] == ["CRITICAL", "HIGH", "MEDIUM", "LOW"]

    @pytest.mark.asyncio
    async def test_business_hours_alias(self, build_assembler, field_fetcher):
        """The business-hours-sla name resolves to this view."""
        result = await build_assembler(field_fetcher).generate("business-hours-sla", now=NOW)
        assert result.view.value == "her-analysis"


class TestAgentProductivityView:
    """Tests for the agent productivity view."""

    @pytest.mark.asyncio
    async def test_scores_and_ordering(self, build_assembler, field_fetcher):
        """Agents are ranked by performance score; idle staff still appear."""
        result = await build_assembler(field_fetcher).generate("agent-productivity", now=NOW)

        assert [row.agent_name for row in result.rows] == ["Asha", "Ravi", "Meera"]
        asha, ravi, meera = result.rows
        assert asha.resolution_rate == 50
        assert asha.average_resolution_minutes == 240
        assert asha.performance_score == 65
        assert asha.zones == ["North"]
        assert ravi.performance_score == 30
        assert meera.total_tickets == 0
        assert meera.performance_score == 0

        assert result.summary.total_agents == 3
        assert result.summary.active_agents == 2
        assert result.summary.top_performer == "Asha"

    @pytest.mark.asyncio
    async def test_scope_filters_staff(self, build_assembler, field_fetcher):
        """Staff outside the caller's zones are not listed."""
        result = await build_assembler(field_fetcher).generate(
            "agent-productivity", scope=ReportScope(zone_ids=frozenset({2})), now=NOW
        )
        assert [row.agent_name for row in result.rows] == ["Ravi"]

    @pytest.mark.asyncio
    async def test_attendance_breakdown(self, build_assembler):
        """Each working day in the window gets a row; sessions and activities roll up per agent."""
        fetcher = InMemoryRecordFetcher(
            tickets=field_tickets(),
            attendance=[
                # Saturday before the window
                AttendanceFactory.create(30, ist(2024, 6, 1, 9), ist(2024, 6, 1, 17)),
                # Monday, two sessions, on time
                AttendanceFactory.create(30, ist(2024, 6, 3, 9, 30), ist(2024, 6, 3, 13, 30)),
                AttendanceFactory.create(30, ist(2024, 6, 3, 14), ist(2024, 6, 3, 17)),
                # Tuesday, late and left running for thirteen hours
                AttendanceFactory.create(30, ist(2024, 6, 4, 10, 15), ist(2024, 6, 4, 23, 15)),
                # Wednesday, still checked in
                AttendanceFactory.create(31, ist(2024, 6, 5, 9)),
            ],
            activities=[
                ActivityFactory.create(30, ist(2024, 6, 3, 11), duration=90),
                ActivityFactory.create(30, ist(2024, 6, 3, 15), end_time=ist(2024, 6, 3, 15, 45)),
                ActivityFactory.create(30, ist(2024, 6, 4, 10, 30)),
            ],
            **field_entities(),
        )
        request = ReportRequest(from_date=date(2024, 6, 3), to_date=date(2024, 6, 5))
        result = await build_assembler(fetcher).generate("agent-productivity", request, now=NOW)

        rows = {row.agent_name: row for row in result.rows}
        asha, ravi, meera = rows["Asha"], rows["Ravi"], rows["Meera"]
        assert (asha.present_days, asha.absent_days) == (2, 1)
        assert asha.attendance_minutes == 420 + 780
        assert asha.average_daily_attendance_minutes == 600
        assert (asha.activities_logged, asha.activity_minutes) == (3, 135)
        assert (asha.late_check_ins, asha.auto_checkouts) == (1, 1)

        monday, tuesday, wednesday = asha.attendance
        assert monday.day == date(2024, 6, 3)
        assert monday.attendance_status == "CHECKED_OUT"
        assert monday.sessions == 2
        assert (monday.check_in_at, monday.check_out_at) == (ist(2024, 6, 3, 9, 30), ist(2024, 6, 3, 17))
        assert tuesday.late_check_in is True
        assert tuesday.auto_checkout is True
        assert wednesday.attendance_status == "ABSENT"

        assert ravi.present_days == 1
        assert ravi.attendance[-1].attendance_status == "CHECKED_IN"
        assert ravi.attendance_minutes == 0
        assert ravi.late_check_ins == 0
        assert meera.present_days == 0
        assert [day.attendance_status for day in meera.attendance] == ["ABSENT"] * 3

        assert result.summary.total_attendance_hours == 20
        assert result.summary.total_activities == 3
        assert result.summary.late_check_ins == 1
        by_day = {b.key: (b.count, b.value) for b in result.distributions["attendance"]}
        assert by_day == {"2024-06-03": (1, 420), "2024-06-04": (1, 780), "2024-06-05": (1, 0)}

    @pytest.mark.asyncio
    async def test_attendance_follows_staff_scope(self, build_assembler):
        """Attendance of staff outside the caller's zones is not counted."""
        fetcher = InMemoryRecordFetcher(
            attendance=[
                AttendanceFactory.create(30, ist(2024, 6, 3, 9), ist(2024, 6, 3, 17)),
                AttendanceFactory.create(31, ist(2024, 6, 3, 10, 30), ist(2024, 6, 3, 17)),
            ],
            activities=[ActivityFactory.create(30, ist(2024, 6, 3, 11), duration=30)],
            **field_entities(),
        )
        result = await build_assembler(fetcher).generate(
            "agent-productivity", scope=ReportScope(zone_ids=frozenset({2})), now=NOW
        )

        assert [row.agent_name for row in result.rows] == ["Ravi"]
        assert result.rows[0].present_days == 1
        assert result.rows[0].late_check_ins == 1
        assert result.summary.total_activities == 0
        assert result.summary.total_attendance_hours == 6.5


class TestIndustrialDowntimeView:
    """Tests for the machine downtime view."""

    @pytest.mark.asyncio
    async def test_downtime_per_machine(self, build_assembler, field_fetcher):
        """Downtime sums working minutes per machine; idle machines are listed last."""
        result = await build_assembler(field_fetcher).generate("industrial-downtime", now=NOW)

        assert [row.machine_id for row in result.rows] == ["M-020", "M-022", "M-021"]
        top = result.rows[0]
        assert top.total_downtime_minutes == 1080
        assert top.total_downtime_hours == 18
        assert (top.incidents, top.open_incidents, top.resolved_incidents) == (2, 1, 1)
        assert top.customer_name == "Acme Mills"

        summary = result.summary
        assert summary.total_machines == 3
        assert summary.machines_with_downtime == 2
        assert summary.machines_without_issues == 1
        assert summary.total_downtime_hours == 28.5
        assert summary.total_zone_users == 1
        assert summary.total_service_persons == 2

    @pytest.mark.asyncio
    async def test_open_ticket_from_before_window_counts(self, build_assembler):
        """Machines still down from before the window are included."""
        fetcher = InMemoryRecordFetcher(
            tickets=[
                TicketFactory.create(
                    created_at=ist(2024, 5, 1, 10), status=S.ON_HOLD.value, asset_id=21, zone_id=1
                )
            ],
            **field_entities(),
        )
        result = await build_assembler(fetcher).generate("industrial-downtime", now=NOW)
        assert result.summary.total_incidents == 1
        assert result.rows[0].machine_id == "M-021"

    @pytest.mark.asyncio
    async def test_decade_old_open_ticket(self, build_assembler):
        """A machine down since 2013 is measured, not rejected."""
        fetcher = InMemoryRecordFetcher(
            tickets=[
                TicketFactory.create(
                    created_at=ist(2013, 1, 7, 9), status=S.ON_HOLD.value, asset_id=21, zone_id=1
                )
            ],
            **field_entities(),
        )
        result = await build_assembler(fetcher).generate("industrial-downtime", now=NOW)

        top = result.rows[0]
        assert top.machine_id == "M-021"
        # 595 whole Monday-to-Monday weeks, then Mon 510 + Tue 510 + Wed 180
        assert top.total_downtime_minutes == 595 * 6 * 510 + 1200


class TestExecutiveSummaryView:
    """Tests for the executive summary view."""

    @pytest.mark.asyncio
    async def test_summary_and_kpis(self, build_assembler, field_fetcher):
        """Financial impact and KPIs are derived deterministically."""
        result = await build_assembler(field_fetcher).generate("executive-summary", now=NOW)

        summary = result.summary
        assert (summary.total_tickets, summary.resolved_tickets, summary.open_tickets) == (3, 1, 2)
        assert summary.revenue_saved == 500
        assert summary.downtime_cost == 200
        assert summary.net_business_impact == 300
        assert summary.average_resolution_hours == 4

        kpis = result.kpis
        assert kpis.first_call_resolution == 100
        assert kpis.sla_compliance == 66.67
        assert kpis.customer_retention == 100
        assert kpis.operational_efficiency == 25

    @pytest.mark.asyncio
    async def test_asset_health_and_trend(self, build_assembler, field_fetcher):
        """Least healthy machines come first; the trend spans the last seven days."""
        result = await build_assembler(field_fetcher).generate("executive-summary", now=NOW)

        assert [(a.machine_id, a.health_score) for a in result.asset_health] == [
            ("M-020", 80), ("M-022", 100)
        ]
        assert len(result.trends) == 7
        assert result.trends[-1].day == NOW.date()
        assert [row.zone_name for row in result.rows] == ["North", "South"]


class TestCustomerHealth:
    """Tests for customer health within the ticket summary."""

    @pytest.mark.asyncio
    async def test_health_rows(self, build_assembler, field_fetcher):
        """Repeat issues on one machine lower the score."""
        result = await build_assembler(field_fetcher).generate("ticket-summary", now=NOW)

        health = {row.customer_name: row for row in result.customer_health}
        acme = health["Acme Mills"]
        assert acme.repeat_issues == 1
        assert acme.health_score == 88.3
        assert acme.risk_level == RiskLevel.LOW
        assert result.customer_health[0].customer_name == "Acme Mills"
        assert result.insights.worst_performing_customer == "Acme Mills"
        assert result.insights.top_assignee == "Asha"


class TestOfferSummaryView:
    """Tests for the offer funnel summary."""

    @pytest.mark.asyncio
    async def test_summary(self, build_assembler, sales_fetcher):
        """Totals, win counts and conversion come from grouped aggregates."""
        result = await build_assembler(sales_fetcher).generate("offer-summary", now=NOW)

        summary = result.summary
        assert summary.total_offers == 4
        assert summary.total_offer_value == 380000
        assert summary.total_po_value == 150000
        assert summary.won_offers == 2
        assert summary.won_offer_value == 230000
        assert summary.lost_offers == 1
        assert summary.success_rate == 50
        assert summary.conversion_rate == 39.47

    @pytest.mark.asyncio
    async def test_product_type_buckets_include_unknown(self, build_assembler, sales_fetcher):
        """Offers without a product type land in the Unknown bucket."""
        result = await build_assembler(sales_fetcher).generate("offer-summary", now=NOW)

        products = {b.key: b for b in result.distributions["productType"]}
        assert products["UNKNOWN"].count == 1
        assert products["UNKNOWN"].value == 30000
        assert products["CONTRACT"].value == 300000
        assert products["RELOCATION"].count == 0
        stages = {b.key: b.count for b in result.distributions["stage"]}
        assert stages["NEGOTIATION"] == 0

    @pytest.mark.asyncio
    async def test_rows_paged_newest_first(self, build_assembler, sales_fetcher):
        """Rows are paged in the store, newest first."""
        result = await build_assembler(sales_fetcher).generate(
            "offer-summary", ReportRequest(page=1, limit=2), now=NOW
        )
        assert [row.id for row in result.rows] == [604, 603]
        assert result.pagination.total == 4
        assert result.pagination.total_pages == 2

    @pytest.mark.asyncio
    async def test_stage_filter(self, build_assembler, sales_fetcher):
        """A stage filter narrows every aggregate."""
        result = await build_assembler(sales_fetcher).generate(
            "offer-summary", ReportRequest(stage="WON"), now=NOW
        )
        assert result.summary.total_offers == 2
        assert result.filters == {"stage": "WON"}


class TestProductTypeView:
    """Tests for the product type analysis."""

    @pytest.mark.asyncio
    async def test_rows(self, build_assembler, sales_fetcher):
        """Every product line is listed, ranked by offer value."""
        result = await build_assembler(sales_fetcher).generate("product-type-analysis", now=NOW)

        assert len(result.rows) == 10
        assert [row.product_type for row in result.rows[:3]] == ["CONTRACT", "SPP", "UNKNOWN"]
        contract = result.rows[0]
        assert contract.total_offers == 2
        assert contract.won_offers == 1
        assert contract.win_rate == 50
        assert contract.conversion_rate == 50
        assert contract.average_deal_size == 150000
        assert result.summary.active_product_types == 3
        assert result.summary.top_product_type == "CONTRACT"
        assert result.summary.overall_win_rate == 50


class TestCustomerPerformanceView:
    """Tests for the customer performance view."""

    @pytest.mark.asyncio
    async def test_rows(self, build_assembler, sales_fetcher):
        """Customers are ranked by won value."""
        result = await build_assembler(sales_fetcher).generate("customer-performance", now=NOW)

        assert [row.customer_name for row in result.rows] == ["Acme Mills", "Beta Textiles"]
        acme = result.rows[0]
        assert (acme.total_offers, acme.won_offers, acme.lost_offers) == (2, 1, 1)
        assert acme.won_value == 200000
        assert acme.location == "Plot 4"
        assert acme.zone_name == "North"
        assert result.summary.top_customer == "Acme Mills"


class TestTargetReportView:
    """Tests for the sales target view."""

    @pytest.mark.asyncio
    async def test_targets_against_won_value(self, build_assembler, sales_fetcher):
        """Zone and user targets are compared with booked value in their period."""
        result = await build_assembler(sales_fetcher).generate("target-report", now=NOW)

        assert [row.target_id for row in result.rows] == [701, 702]
        zone_target, user_target = result.rows
        assert zone_target.target_kind == "ZONE"
        assert zone_target.owner_name == "North"
        assert zone_target.actual_value == 150000
        assert zone_target.achievement == 37.5
        assert user_target.target_kind == "USER"
        assert user_target.owner_name == "Ravi"
        assert user_target.zone_name == "South"
        assert user_target.actual_value == 30000
        assert user_target.achievement == 150

        assert result.summary.total_targets == 2
        assert result.summary.targets_met == 1
        assert result.summary.overall_achievement == 42.86

    @pytest.mark.asyncio
    async def test_scope_hides_other_zones(self, build_assembler, sales_fetcher):
        """Targets owned outside the caller's zones are left out."""
        result = await build_assembler(sales_fetcher).generate(
            "target-report", scope=ReportScope(zone_ids=frozenset({1})), now=NOW
        )
        assert [row.target_id for row in result.rows] == [701]
