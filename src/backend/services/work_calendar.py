"""
Work Calendar - Pure functions for working-time arithmetic.

Measures elapsed working minutes between two instants and projects SLA
deadlines forward under a weekly calendar (opening time, closing time,
working weekdays). No I/O and no ambient configuration: every call takes a
WorkCalendarConfig, defaulting to DEFAULT_WORK_CALENDAR.
"""
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import FrozenSet, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import logging

from core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Upper bound on day iterations (about ten years) for opening and deadline searches
MAX_DAY_WALK = 3650


@dataclass(frozen=True)
class WorkCalendarConfig:
    """
    Immutable weekly working calendar.

    Attributes:
        start_hour / start_minute: Daily opening time
        end_hour / end_minute: Daily closing time
        working_weekdays: Python weekday numbers (Monday=0 ... Sunday=6)
        timezone: IANA zone that aware instants are converted to before the
            working window is applied. Naive instants are taken as local
            wall-clock time.

    Raises:
        ConfigurationError: On an empty weekday set, out-of-range values, or
            a closing time not after the opening time.
    """

    start_hour: int = 9
    end_hour: int = 17
    end_minute: int = 30
    working_weekdays: FrozenSet[int] = frozenset({0, 1, 2, 3, 4, 5})
    start_minute: int = 0
    timezone: Optional[str] = None
    _tz: Optional[ZoneInfo] = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self):
        weekdays = frozenset(self.working_weekdays)
        object.__setattr__(self, "working_weekdays", weekdays)

        if not weekdays:
            raise ConfigurationError("Work calendar needs at least one working weekday")
        if any(day not in range(7) for day in weekdays):
            raise ConfigurationError(f"Working weekdays must be within 0..6, got {sorted(weekdays)}")
        if not (0 <= self.start_hour <= 23 and 0 <= self.end_hour <= 23):
            raise ConfigurationError("Working hours must be within 0..23")
        if not (0 <= self.start_minute <= 59 and 0 <= self.end_minute <= 59):
            raise ConfigurationError("Working minutes must be within 0..59")
        if self.end_hour <= self.start_hour:
            raise ConfigurationError(
                f"Closing hour {self.end_hour} must be after opening hour {self.start_hour}"
            )

        if self.timezone:
            try:
                object.__setattr__(self, "_tz", ZoneInfo(self.timezone))
            except (ZoneInfoNotFoundError, ValueError) as exc:
                raise ConfigurationError(f"Unknown calendar timezone: {self.timezone}") from exc

    @property
    def opening_time(self) -> time:
        return time(self.start_hour, self.start_minute)

    @property
    def closing_time(self) -> time:
        return time(self.end_hour, self.end_minute)

    @property
    def minutes_per_day(self) -> float:
        return float(
            (self.end_hour * 60 + self.end_minute) - (self.start_hour * 60 + self.start_minute)
        )

    @property
    def tzinfo(self) -> Optional[ZoneInfo]:
        return self._tz


DEFAULT_WORK_CALENDAR = WorkCalendarConfig()


class WorkCalendar:
    """Pure functions for working-time evaluation (no database access)."""

    @staticmethod
    def to_local(instant: datetime, config: WorkCalendarConfig = DEFAULT_WORK_CALENDAR) -> datetime:
        """Convert an aware instant to the calendar timezone; naive values pass through."""
        if instant.tzinfo is not None and config.tzinfo is not None:
            return instant.astimezone(config.tzinfo)
        return instant

    @staticmethod
    def working_window(
        day: date,
        config: WorkCalendarConfig = DEFAULT_WORK_CALENDAR,
        tzinfo=None,
    ) -> Tuple[datetime, datetime]:
        """Opening and closing instants of ``day`` (ignores the weekday rule)."""
        return (
            datetime.combine(day, config.opening_time, tzinfo=tzinfo),
            datetime.combine(day, config.closing_time, tzinfo=tzinfo),
        )

    @staticmethod
    def is_working_day(day: date, config: WorkCalendarConfig = DEFAULT_WORK_CALENDAR) -> bool:
        return day.weekday() in config.working_weekdays

    @staticmethod
    def is_within_working_hours(
        instant: datetime,
        config: WorkCalendarConfig = DEFAULT_WORK_CALENDAR,
    ) -> bool:
        """True when ``instant`` falls inside a working day's opening window."""
        local = WorkCalendar.to_local(instant, config)
        if not WorkCalendar.is_working_day(local.date(), config):
            return False
        opening, closing = WorkCalendar.working_window(local.date(), config, local.tzinfo)
        return opening <= local <= closing

    @staticmethod
    def elapsed_working_minutes(
        start: datetime,
        end: datetime,
        config: WorkCalendarConfig = DEFAULT_WORK_CALENDAR,
    ) -> float:
        """
        Count working minutes between two instants.

        Args:
            start: Interval start (naive local, or aware)
            end: Interval end, same awareness as ``start``
            config: Calendar to evaluate against

        Returns:
            Unrounded working minutes, never negative. Callers round only
            where an integer is displayed.

        Edge Cases:
            - start >= end → 0
            - Same calendar day → the single clamped overlap with that day's window
            - Non-working days contribute nothing
            - Whole weeks between the first and last day are counted
              arithmetically, so interval length never bounds the call
        """
        start = WorkCalendar.to_local(start, config)
        end = WorkCalendar.to_local(end, config)
        if start >= end:
            return 0.0

        first = start.date()
        last = end.date()
        total = WorkCalendar._day_overlap(first, start, end, config)
        if first == last:
            return total
        total += WorkCalendar._day_overlap(last, start, end, config)

        weeks, remainder = divmod((last - first).days - 1, 7)
        total += weeks * len(config.working_weekdays) * config.minutes_per_day
        for offset in range(1, remainder + 1):
            total += WorkCalendar._day_overlap(first + timedelta(days=offset), start, end, config)
        return total

    @staticmethod
    def _day_overlap(
        day: date,
        start: datetime,
        end: datetime,
        config: WorkCalendarConfig,
    ) -> float:
        """Minutes of [start, end] inside ``day``'s working window."""
        if not WorkCalendar.is_working_day(day, config):
            return 0.0
        opening, closing = WorkCalendar.working_window(day, config, start.tzinfo)
        overlap_start = max(start, opening)
        overlap_end = min(end, closing)
        if overlap_end > overlap_start:
            return (overlap_end - overlap_start).total_seconds() / 60
        return 0.0

    @staticmethod
    def next_opening(
        instant: datetime,
        config: WorkCalendarConfig = DEFAULT_WORK_CALENDAR,
    ) -> datetime:
        """
        Earliest working instant at or after ``instant``.

        Inside a working window the instant itself is returned; otherwise the
        next working day's opening time.
        """
        local = WorkCalendar.to_local(instant, config)
        current = local.date()

        for _ in range(MAX_DAY_WALK):
            if WorkCalendar.is_working_day(current, config):
                opening, closing = WorkCalendar.working_window(current, config, local.tzinfo)
                if local < opening:
                    return opening
                if local < closing:
                    return local
            current += timedelta(days=1)
            local = datetime.combine(current, time.min, tzinfo=local.tzinfo)

        raise ConfigurationError(f"No working window found within {MAX_DAY_WALK} days")

    @staticmethod
    def project_deadline(
        start: datetime,
        required_working_hours: float,
        config: WorkCalendarConfig = DEFAULT_WORK_CALENDAR,
    ) -> datetime:
        """
        Project the instant at which ``required_working_hours`` have elapsed.

        Args:
            start: Instant the clock starts (naive local, or aware)
            required_working_hours: Working hours to consume
            config: Calendar to evaluate against

        Returns:
            Deadline in the calendar's local time (naive if ``start`` was naive).

        Edge Cases:
            - Start outside hours or on a non-working day → clock starts at the
              next opening time
            - Requirement ending exactly at closing time → that closing time
            - Zero hours → the effective start
        """
        remaining = max(0.0, float(required_working_hours) * 60)
        cursor = WorkCalendar.next_opening(start, config)
        current = cursor.date()

        for _ in range(MAX_DAY_WALK):
            if WorkCalendar.is_working_day(current, config):
                opening, closing = WorkCalendar.working_window(current, config, cursor.tzinfo)
                if cursor < opening:
                    cursor = opening
                available = max(0.0, (closing - cursor).total_seconds() / 60)
                if remaining <= available:
                    return cursor + timedelta(minutes=remaining)
                remaining -= available

            current += timedelta(days=1)
            cursor = datetime.combine(current, config.opening_time, tzinfo=cursor.tzinfo)

        logger.error(
            f"Deadline projection exceeded {MAX_DAY_WALK} days from {start.isoformat()} "
            f"for {required_working_hours}h"
        )
        raise ConfigurationError(f"Deadline projection exceeded {MAX_DAY_WALK} days")
