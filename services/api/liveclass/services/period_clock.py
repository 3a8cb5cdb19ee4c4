"""Canonical school-day timeline: maps wall-clock time to a class-period state.

Every component that needs to know "which period is it" goes through
``PeriodClock``; nothing else keeps its own copy of the bell schedule.

Rules are evaluated first-match-wins on ``(hour, minute, weekday)`` in the
school's time zone:

1. Saturday / Sunday                      -> AFTER_SCHOOL
2. before the first pre-class bell        -> BEFORE_SCHOOL
3. at or after the end of school          -> AFTER_SCHOOL
4. inside the lunch window                -> LUNCH_TIME
5. inside a period, both ends inclusive   -> IN_CLASS(period)
6. within ``pre_class_minutes`` of a start -> PRE_CLASS(period)
7. anything else                          -> BREAK_TIME(next period)
"""

from dataclasses import dataclass
from datetime import datetime, time, timedelta
from enum import Enum
from zoneinfo import ZoneInfo


class PeriodStatus(str, Enum):
    BEFORE_SCHOOL = "beforeSchool"
    IN_CLASS = "inClass"
    PRE_CLASS = "preClass"
    BREAK_TIME = "breakTime"
    LUNCH_TIME = "lunchTime"
    AFTER_SCHOOL = "afterSchool"


@dataclass(frozen=True)
class PeriodState:
    """One point on the school-day timeline.

    ``period`` is the current period for IN_CLASS and the upcoming period for
    PRE_CLASS / BREAK_TIME; it is None for the other states.
    """

    status: PeriodStatus
    period: int | None = None

    @classmethod
    def before_school(cls) -> "PeriodState":
        return cls(PeriodStatus.BEFORE_SCHOOL)

    @classmethod
    def in_class(cls, period: int) -> "PeriodState":
        return cls(PeriodStatus.IN_CLASS, period)

    @classmethod
    def pre_class(cls, period: int) -> "PeriodState":
        return cls(PeriodStatus.PRE_CLASS, period)

    @classmethod
    def break_time(cls, next_period: int) -> "PeriodState":
        return cls(PeriodStatus.BREAK_TIME, next_period)

    @classmethod
    def lunch_time(cls) -> "PeriodState":
        return cls(PeriodStatus.LUNCH_TIME)

    @classmethod
    def after_school(cls) -> "PeriodState":
        return cls(PeriodStatus.AFTER_SCHOOL)

    def __str__(self) -> str:
        if self.period is None:
            return self.status.value
        return f"{self.status.value}({self.period})"


def _minutes(t: time) -> int:
    return t.hour * 60 + t.minute


@dataclass(frozen=True)
class PeriodWindow:
    period: int
    start: time
    end: time

    @property
    def start_minute(self) -> int:
        return _minutes(self.start)

    @property
    def end_minute(self) -> int:
        return _minutes(self.end)

    def contains(self, minute_of_day: int) -> bool:
        return self.start_minute <= minute_of_day <= self.end_minute


@dataclass(frozen=True)
class BellSchedule:
    """Period table plus the thresholds that frame the school day.

    The lunch window is open at both ends: it starts strictly after
    ``lunch_start`` and ends strictly before ``lunch_end``.
    """

    periods: tuple[PeriodWindow, ...]
    lunch_start: time
    lunch_end: time
    school_end: time
    pre_class_minutes: int = 10

    def __post_init__(self) -> None:
        if not self.periods:
            raise ValueError("bell schedule needs at least one period")
        numbers = [p.period for p in self.periods]
        if numbers != list(range(1, len(self.periods) + 1)):
            raise ValueError("periods must be numbered 1..N in order")
        for prev, nxt in zip(self.periods, self.periods[1:]):
            if nxt.start_minute <= prev.end_minute:
                raise ValueError(f"period {nxt.period} overlaps period {prev.period}")

    @property
    def school_start_minute(self) -> int:
        """First pre-class bell: anything earlier is BEFORE_SCHOOL."""
        return self.periods[0].start_minute - self.pre_class_minutes

    def get(self, period: int) -> PeriodWindow | None:
        if 1 <= period <= len(self.periods):
            return self.periods[period - 1]
        return None

    def first_period_after(self, minute_of_day: int) -> PeriodWindow | None:
        for window in self.periods:
            if window.start_minute > minute_of_day:
                return window
        return None


DEFAULT_BELL_SCHEDULE = BellSchedule(
    periods=(
        PeriodWindow(1, time(8, 20), time(9, 10)),
        PeriodWindow(2, time(9, 20), time(10, 10)),
        PeriodWindow(3, time(10, 20), time(11, 10)),
        PeriodWindow(4, time(11, 20), time(12, 10)),
        PeriodWindow(5, time(13, 10), time(14, 0)),
        PeriodWindow(6, time(14, 10), time(15, 0)),
        PeriodWindow(7, time(15, 10), time(16, 0)),
    ),
    lunch_start=time(12, 10),
    lunch_end=time(13, 0),
    school_end=time(16, 0),
    pre_class_minutes=10,
)


class PeriodClock:
    """Pure timeline calculator bound to a bell schedule and a time zone."""

    def __init__(
        self,
        schedule: BellSchedule = DEFAULT_BELL_SCHEDULE,
        timezone_name: str = "Asia/Seoul",
    ) -> None:
        self.schedule = schedule
        self.tz = ZoneInfo(timezone_name)

    def localize(self, now: datetime) -> datetime:
        """Convert ``now`` to school-local time. Naive values are taken as local."""
        if now.tzinfo is None:
            return now.replace(tzinfo=self.tz)
        return now.astimezone(self.tz)

    def status(self, now: datetime) -> PeriodState:
        local = self.localize(now)
        return self.status_at(local.hour, local.minute, local.weekday())

    def status_at(self, hour: int, minute: int, weekday: int) -> PeriodState:
        """Timeline state for a local wall-clock time; ``weekday`` is Mon=0..Sun=6."""
        if not (0 <= hour <= 23 and 0 <= minute <= 59 and 0 <= weekday <= 6):
            raise ValueError(f"invalid wall-clock time {hour:02d}:{minute:02d} weekday={weekday}")

        schedule = self.schedule
        m = hour * 60 + minute

        if weekday >= 5:
            return PeriodState.after_school()
        if m < schedule.school_start_minute:
            return PeriodState.before_school()
        if m >= _minutes(schedule.school_end):
            return PeriodState.after_school()
        if _minutes(schedule.lunch_start) < m < _minutes(schedule.lunch_end):
            return PeriodState.lunch_time()

        for window in schedule.periods:
            if window.contains(m):
                return PeriodState.in_class(window.period)

        for window in schedule.periods:
            if window.start_minute - schedule.pre_class_minutes <= m < window.start_minute:
                return PeriodState.pre_class(window.period)

        upcoming = schedule.first_period_after(m)
        if upcoming is None:
            return PeriodState.after_school()
        return PeriodState.break_time(upcoming.period)

    def weekday_index(self, now: datetime) -> int:
        """Mon=0 .. Sun=6 in school-local time."""
        return self.localize(now).weekday()

    def _at(self, local: datetime, t: time) -> datetime:
        return datetime.combine(local.date(), t, tzinfo=self.tz)

    def window(self, state: PeriodState, now: datetime) -> tuple[int, int]:
        """Epoch seconds (start, end) of the time span ``state`` belongs to."""
        local = self.localize(now)
        schedule = self.schedule
        now_epoch = int(local.timestamp())

        if state.status == PeriodStatus.IN_CLASS:
            window = schedule.get(state.period or 0)
            if window is not None:
                return self._epoch(local, window.start), self._epoch(local, window.end)

        elif state.status == PeriodStatus.BREAK_TIME:
            window = schedule.get(state.period or 0)
            previous = schedule.get((state.period or 0) - 1)
            if window is not None:
                start = self._epoch(local, previous.end) if previous else now_epoch
                return start, self._epoch(local, window.start)

        elif state.status == PeriodStatus.PRE_CLASS:
            window = schedule.get(state.period or 0)
            if window is not None:
                return now_epoch, self._epoch(local, window.start)

        elif state.status == PeriodStatus.LUNCH_TIME:
            after_lunch = schedule.first_period_after(_minutes(schedule.lunch_start))
            end = after_lunch.start if after_lunch else schedule.lunch_end
            return self._epoch(local, schedule.lunch_start), self._epoch(local, end)

        elif state.status == PeriodStatus.BEFORE_SCHOOL:
            return now_epoch, self._epoch(local, schedule.periods[0].start)

        elif state.status == PeriodStatus.AFTER_SCHOOL:
            start = self._at(local, schedule.school_end)
            if local.time() < schedule.school_end:
                # Weekend mornings belong to the span that began at the previous dismissal.
                start -= timedelta(days=1)
            return int(start.timestamp()), int((start + timedelta(days=1)).timestamp())

        return now_epoch, now_epoch + 3600

    def _epoch(self, local: datetime, t: time) -> int:
        return int(self._at(local, t).timestamp())


def format_hhmm(t: time) -> str:
    return f"{t.hour:02d}:{t.minute:02d}"
