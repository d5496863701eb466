"""
Metrics Calculator - derived per-record and per-group metrics.

Turns immutable record snapshots into report-ready numbers: resolution and
first-response working time, travel and on-site segments of a field visit,
SLA evaluation, and bounded composite scores. Purely computational; every
report view shares one instance so rounding and outlier rules never diverge.
"""
from dataclasses import dataclass, field
from datetime import datetime, time
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
import logging

from core.exceptions import ConfigurationError
from db.enums import RESOLVED_STATUSES, AttendanceStatus, TicketPriority, TicketStatus
from schemas.reports.common import RiskLevel
from schemas.reports.records import (
    ActivityLogEntry,
    AttendanceSession,
    StatusTransition,
    TicketRecord,
)
from services.work_calendar import DEFAULT_WORK_CALENDAR, WorkCalendar, WorkCalendarConfig

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Values
# =============================================================================


@dataclass(frozen=True)
class SlaTable:
    """Allowed working hours per priority class."""

    hours_by_priority: Mapping[str, float] = field(
        default_factory=lambda: {
            TicketPriority.CRITICAL.value: 4,
            TicketPriority.HIGH.value: 8,
            TicketPriority.MEDIUM.value: 24,
            TicketPriority.LOW.value: 48,
        }
    )
    default_priority: str = TicketPriority.LOW.value
    at_risk_minutes: float = 120

    def __post_init__(self):
        table = {str(k).upper(): float(v) for k, v in dict(self.hours_by_priority).items()}
        if not table:
            raise ConfigurationError("SLA table must define at least one priority")
        if any(hours <= 0 for hours in table.values()):
            raise ConfigurationError("SLA hours must be positive")
        if self.at_risk_minutes < 0:
            raise ConfigurationError("SLA at-risk margin must not be negative")
        if self.default_priority.upper() not in table:
            raise ConfigurationError(
                f"Default SLA priority {self.default_priority} is not in the SLA table"
            )
        object.__setattr__(self, "hours_by_priority", table)
        object.__setattr__(self, "default_priority", self.default_priority.upper())

    def resolve_priority(self, priority: Optional[str]) -> str:
        """Map a record priority onto a table key; unknown maps to the default tier."""
        key = (priority or "").upper()
        return key if key in self.hours_by_priority else self.default_priority

    def allowed_hours(self, priority: Optional[str]) -> float:
        return self.hours_by_priority[self.resolve_priority(priority)]


@dataclass(frozen=True)
class PlausibilityBands:
    """Sanity ranges (in minutes) outside which a derived duration is an outlier."""

    resolution_min_minutes: float = 1
    resolution_max_minutes: float = 30 * 8 * 60
    first_response_max_minutes: float = 3 * 8 * 60
    housekeeping_threshold_minutes: float = 1
    travel_leg_max_minutes: float = 120
    travel_total_max_minutes: float = 240
    onsite_max_minutes: float = 480


@dataclass(frozen=True)
class ScoreWeights:
    """Weights for the composite scores."""

    health_issues: float = 0.7
    health_volume: float = 0.3
    performance_resolution: float = 0.4
    performance_speed: float = 0.3
    performance_efficiency: float = 0.3


@dataclass(frozen=True)
class AttendanceRules:
    """Session length limits and the punctuality cut-off for attendance days."""

    session_max_minutes: float = 24 * 60
    auto_checkout_minutes: float = 12 * 60
    late_check_in: time = time(10, 0)


DEFAULT_SLA_TABLE = SlaTable()
DEFAULT_BANDS = PlausibilityBands()
DEFAULT_WEIGHTS = ScoreWeights()
DEFAULT_ATTENDANCE_RULES = AttendanceRules()

# Adjacent visit phases that make up travel legs and on-site work
TRAVEL_LEGS = (
    (TicketStatus.ONSITE_VISIT_STARTED.value, TicketStatus.ONSITE_VISIT_REACHED.value),
    (TicketStatus.ONSITE_VISIT_RESOLVED.value, TicketStatus.ONSITE_VISIT_COMPLETED.value),
)
ONSITE_START_PHASES = (
    TicketStatus.ONSITE_VISIT_IN_PROGRESS.value,
    TicketStatus.ONSITE_VISIT_REACHED.value,
)
ONSITE_END_PHASE = TicketStatus.ONSITE_VISIT_RESOLVED.value


# =============================================================================
# Result Values
# =============================================================================


@dataclass(frozen=True)
class TicketMetrics:
    """Derived timing for one ticket. ``None`` means not measurable."""

    ticket_id: int
    is_resolved: bool
    resolved_at: Optional[datetime]
    resolution_minutes: Optional[float]
    resolution_outlier: bool
    first_response_minutes: Optional[float]
    first_response_outlier: bool
    travel_minutes: float
    onsite_minutes: float
    downtime_minutes: float
    had_onsite_visit: bool

    @property
    def plausible_resolution(self) -> Optional[float]:
        return None if self.resolution_outlier else self.resolution_minutes

    @property
    def plausible_first_response(self) -> Optional[float]:
        return None if self.first_response_outlier else self.first_response_minutes


@dataclass(frozen=True)
class SlaEvaluation:
    """Business-hours SLA outcome for one ticket."""

    priority: str
    allowed_hours: float
    deadline: datetime
    working_hours_used: float
    is_closed: bool
    breached: bool


class MetricsCalculator:
    """Derives metrics from record snapshots using the working calendar."""

    def __init__(
        self,
        calendar: WorkCalendarConfig = DEFAULT_WORK_CALENDAR,
        sla_table: SlaTable = DEFAULT_SLA_TABLE,
        bands: PlausibilityBands = DEFAULT_BANDS,
        weights: ScoreWeights = DEFAULT_WEIGHTS,
        attendance_rules: AttendanceRules = DEFAULT_ATTENDANCE_RULES,
    ):
        self.calendar = calendar
        self.sla_table = sla_table
        self.bands = bands
        self.weights = weights
        self.attendance_rules = attendance_rules

    # =========================================================================
    # Per-record timing
    # =========================================================================

    def working_minutes(self, start: Optional[datetime], end: Optional[datetime]) -> float:
        if start is None or end is None:
            return 0.0
        return WorkCalendar.elapsed_working_minutes(start, end, self.calendar)

    @staticmethod
    def sorted_history(ticket: TicketRecord) -> List[StatusTransition]:
        return sorted(ticket.status_history, key=lambda t: (t.changed_at, t.id))

    @staticmethod
    def is_resolved(ticket: TicketRecord) -> bool:
        return ticket.status in RESOLVED_STATUSES

    def resolution_instant(self, ticket: TicketRecord) -> Optional[datetime]:
        """
        When the ticket reached a terminal state.

        Returns:
            The latest RESOLVED/CLOSED transition time; otherwise ``updated_at``
            for a terminal ticket whose last modification is more than the
            housekeeping threshold after creation; otherwise None.
        """
        terminal = [t.changed_at for t in ticket.status_history if t.status in RESOLVED_STATUSES]
        if terminal:
            return max(terminal)

        if not self.is_resolved(ticket) or ticket.updated_at is None:
            return None

        touched_after = (ticket.updated_at - ticket.created_at).total_seconds() / 60
        if touched_after > self.bands.housekeeping_threshold_minutes:
            return ticket.updated_at
        return None

    def is_plausible_resolution(self, minutes: Optional[float]) -> bool:
        return (
            minutes is not None
            and self.bands.resolution_min_minutes <= minutes <= self.bands.resolution_max_minutes
        )

    def resolution_minutes(self, ticket: TicketRecord) -> Optional[float]:
        resolved_at = self.resolution_instant(ticket)
        if resolved_at is None:
            return None
        return self.working_minutes(ticket.created_at, resolved_at)

    def first_response_minutes(self, ticket: TicketRecord) -> Optional[float]:
        """Working minutes until the first status change away from OPEN."""
        for transition in self.sorted_history(ticket):
            if transition.status != TicketStatus.OPEN.value:
                return self.working_minutes(ticket.created_at, transition.changed_at)
        return None

    def is_plausible_first_response(self, minutes: Optional[float]) -> bool:
        return minutes is not None and 0 < minutes <= self.bands.first_response_max_minutes

    @staticmethod
    def _phase_delta(
        history: Sequence[StatusTransition],
        from_status: str,
        to_status: str,
    ) -> Optional[float]:
        """Wall-clock minutes from the first ``from_status`` to the next ``to_status``."""
        started = next((t.changed_at for t in history if t.status == from_status), None)
        if started is None:
            return None
        ended = next(
            (t.changed_at for t in history if t.status == to_status and t.changed_at >= started),
            None,
        )
        if ended is None:
            return None
        return (ended - started).total_seconds() / 60

    def travel_minutes(self, ticket: TicketRecord) -> float:
        """
        Sum of the outbound and return travel legs of a visit.

        Edge Cases:
            - Missing endpoint of a leg → that leg contributes 0
            - Leg outside (0, travel_leg_max] → contributes 0
            - Legs summing past travel_total_max → 0
        """
        history = self.sorted_history(ticket)
        total = 0.0
        for from_status, to_status in TRAVEL_LEGS:
            leg = self._phase_delta(history, from_status, to_status)
            if leg is not None and 0 < leg <= self.bands.travel_leg_max_minutes:
                total += leg
        if total > self.bands.travel_total_max_minutes:
            return 0.0
        return total

    def onsite_minutes(self, ticket: TicketRecord) -> float:
        """Wall-clock minutes on site, from arrival/work start to visit resolution."""
        history = self.sorted_history(ticket)
        for start_phase in ONSITE_START_PHASES:
            delta = self._phase_delta(history, start_phase, ONSITE_END_PHASE)
            if delta is not None:
                if 0 < delta <= self.bands.onsite_max_minutes:
                    return delta
                return 0.0
        return 0.0

    def downtime_minutes(self, ticket: TicketRecord, now: datetime) -> float:
        """Working minutes the machine was down: creation to resolution, or to now."""
        resolved_at = self.resolution_instant(ticket)
        end = resolved_at if resolved_at is not None and self.is_resolved(ticket) else now
        return self.working_minutes(ticket.created_at, end)

    def ticket_metrics(self, ticket: TicketRecord, now: datetime) -> TicketMetrics:
        """Derive every per-ticket timing metric in one pass."""
        resolved_at = self.resolution_instant(ticket)
        resolution = (
            self.working_minutes(ticket.created_at, resolved_at) if resolved_at is not None else None
        )
        first_response = self.first_response_minutes(ticket)
        is_resolved = self.is_resolved(ticket)

        return TicketMetrics(
            ticket_id=ticket.id,
            is_resolved=is_resolved,
            resolved_at=resolved_at,
            resolution_minutes=resolution,
            resolution_outlier=resolution is not None and not self.is_plausible_resolution(resolution),
            first_response_minutes=first_response,
            first_response_outlier=(
                first_response is not None and not self.is_plausible_first_response(first_response)
            ),
            travel_minutes=self.travel_minutes(ticket),
            onsite_minutes=self.onsite_minutes(ticket),
            downtime_minutes=self.downtime_minutes(ticket, now),
            had_onsite_visit=any(
                t.status.startswith(TicketStatus.ONSITE_VISIT.value) for t in ticket.status_history
            ),
        )

    # =========================================================================
    # SLA evaluation
    # =========================================================================

    def evaluate_business_hours_sla(self, ticket: TicketRecord, now: datetime) -> SlaEvaluation:
        """
        Evaluate a ticket against the priority SLA table in working hours.

        Closed tickets breach when the working hours used exceed the allowance.
        Open tickets breach once ``now`` is past the projected deadline.
        """
        priority = self.sla_table.resolve_priority(ticket.priority)
        allowed = self.sla_table.allowed_hours(priority)
        deadline = WorkCalendar.project_deadline(ticket.created_at, allowed, self.calendar)

        resolved_at = self.resolution_instant(ticket)
        is_closed = self.is_resolved(ticket) and resolved_at is not None
        end = resolved_at if is_closed else now
        used_hours = self.working_minutes(ticket.created_at, end) / 60

        if is_closed:
            breached = used_hours > allowed
        else:
            breached = WorkCalendar.to_local(now, self.calendar) > deadline

        return SlaEvaluation(
            priority=priority,
            allowed_hours=allowed,
            deadline=deadline,
            working_hours_used=used_hours,
            is_closed=is_closed,
            breached=breached,
        )

    def is_due_date_breached(self, ticket: TicketRecord, now: datetime) -> bool:
        """Breach against the stored SLA due date (resolution, or now if open)."""
        if ticket.sla_due_at is None:
            return False
        resolved_at = self.resolution_instant(ticket)
        reference = resolved_at if resolved_at is not None and self.is_resolved(ticket) else now
        return reference > ticket.sla_due_at

    def is_due_date_at_risk(self, ticket: TicketRecord, now: datetime) -> bool:
        """Open, not yet breached, and due within the at-risk margin of working time."""
        if ticket.sla_due_at is None or self.is_resolved(ticket) or now > ticket.sla_due_at:
            return False
        return self.working_minutes(now, ticket.sla_due_at) <= self.sla_table.at_risk_minutes

    def due_date_overrun_minutes(self, ticket: TicketRecord, now: datetime) -> float:
        """Working minutes past the stored SLA due date."""
        if ticket.sla_due_at is None:
            return 0.0
        resolved_at = self.resolution_instant(ticket)
        reference = resolved_at if resolved_at is not None and self.is_resolved(ticket) else now
        return self.working_minutes(ticket.sla_due_at, reference)

    # =========================================================================
    # Attendance
    # =========================================================================

    def session_minutes(self, session: AttendanceSession) -> Optional[float]:
        """
        Wall-clock minutes of a closed check-in session.

        Returns:
            Minutes capped at ``session_max_minutes``; None for an open session
            or one whose check-out precedes its check-in.
        """
        if session.check_out_at is None:
            return None
        minutes = (session.check_out_at - session.check_in_at).total_seconds() / 60
        if minutes < 0:
            return None
        return min(minutes, self.attendance_rules.session_max_minutes)

    def is_auto_checkout(self, session: AttendanceSession) -> bool:
        """Closed by the system, or long enough that it must have been."""
        if session.status == AttendanceStatus.AUTO_CHECKED_OUT.value:
            return True
        if session.check_out_at is None:
            return False
        minutes = (session.check_out_at - session.check_in_at).total_seconds() / 60
        return minutes >= self.attendance_rules.auto_checkout_minutes

    def is_late_check_in(self, check_in_at: datetime) -> bool:
        local = WorkCalendar.to_local(check_in_at, self.calendar)
        return local.time() >= self.attendance_rules.late_check_in

    @staticmethod
    def activity_minutes(entry: ActivityLogEntry) -> float:
        """Logged duration, else the span to ``end_time``; open entries count 0."""
        if entry.duration is not None:
            return float(max(entry.duration, 0))
        if entry.end_time is None:
            return 0.0
        return max(0.0, (entry.end_time - entry.start_time).total_seconds() / 60)

    # =========================================================================
    # Aggregation helpers
    # =========================================================================

    @staticmethod
    def average(values: Iterable[Optional[float]]) -> float:
        """Mean of the non-None values, 0 when there are none."""
        present = [v for v in values if v is not None]
        if not present:
            return 0.0
        return sum(present) / len(present)

    def average_resolution(self, metrics: Iterable[TicketMetrics]) -> float:
        """Average resolution minutes, excluding outliers."""
        return self.average(m.plausible_resolution for m in metrics)

    def average_first_response(self, metrics: Iterable[TicketMetrics]) -> float:
        return self.average(m.plausible_first_response for m in metrics)

    def average_travel(self, metrics: Iterable[TicketMetrics]) -> float:
        return self.average(m.travel_minutes for m in metrics if m.travel_minutes > 0)

    def average_onsite(self, metrics: Iterable[TicketMetrics]) -> float:
        return self.average(m.onsite_minutes for m in metrics if m.onsite_minutes > 0)

    @staticmethod
    def rate(part: float, whole: float) -> float:
        """Percentage rounded to two decimals; 0 for an empty whole."""
        if not whole:
            return 0.0
        return round(part / whole * 100, 2)

    # =========================================================================
    # Composite scores
    # =========================================================================

    @staticmethod
    def clamp_score(value: float) -> float:
        return max(0.0, min(100.0, float(value)))

    @classmethod
    def weighted_score(cls, components: Sequence[Tuple[float, float]]) -> float:
        """
        Weighted linear combination of sub-scores.

        Each sub-score is clamped to [0, 100] before weighting, so the result
        stays within [0, 100] regardless of the inputs.
        """
        total_weight = sum(weight for _, weight in components)
        if total_weight <= 0:
            return 0.0
        combined = sum(cls.clamp_score(value) * weight for value, weight in components)
        return round(cls.clamp_score(combined / total_weight), 2)

    def customer_health_score(self, issue_count: int, ticket_count: int) -> float:
        """Health of a customer's installed base from issue pressure and ticket volume."""
        return self.weighted_score([
            (100 - issue_count * 5, self.weights.health_issues),
            (100 - ticket_count * 2, self.weights.health_volume),
        ])

    @staticmethod
    def risk_level(health_score: float) -> RiskLevel:
        if health_score < 50:
            return RiskLevel.HIGH
        if health_score < 75:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW

    def agent_performance_score(
        self,
        resolution_rate: float,
        average_resolution_hours: float,
        average_travel_hours: float,
        average_onsite_hours: float,
    ) -> float:
        """
        Agent performance index.

        Speed assumes four working hours as a good resolution; efficiency
        assumes three hours of travel plus on-site work per visit. A neutral
        50 is used when the agent has no timing data.
        """
        speed = 100 - (average_resolution_hours - 4) * 6 if average_resolution_hours > 0 else 50
        field_hours = average_travel_hours + average_onsite_hours
        efficiency = 100 - (field_hours - 3) * 10 if field_hours > 0 else 50
        return self.weighted_score([
            (resolution_rate, self.weights.performance_resolution),
            (speed, self.weights.performance_speed),
            (efficiency, self.weights.performance_efficiency),
        ])

    def asset_health_score(self, critical_count: int) -> float:
        return self.clamp_score(100 - critical_count * 20)

    @staticmethod
    def count_by(values: Iterable[Optional[str]]) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for value in values:
            if value is None:
                continue
            counts[value] = counts.get(value, 0) + 1
        return counts
