"""Tests for the school-day timeline."""

from datetime import datetime, time, timezone
from zoneinfo import ZoneInfo

import pytest

from liveclass.services.period_clock import (
    DEFAULT_BELL_SCHEDULE,
    BellSchedule,
    PeriodClock,
    PeriodState,
    PeriodStatus,
    PeriodWindow,
    format_hhmm,
)

SEOUL = ZoneInfo("Asia/Seoul")


def seoul(hour: int, minute: int, day: int = 4) -> datetime:
    """Wall-clock time in Seoul, week of Monday 2024-03-04 (day 4) to Sunday (day 10)."""
    return datetime(2024, 3, day, hour, minute, tzinfo=SEOUL)


class TestStatus:
    @pytest.mark.parametrize(
        "hour,minute,expected",
        [
            (0, 0, PeriodState.before_school()),
            (8, 9, PeriodState.before_school()),
            (8, 10, PeriodState.pre_class(1)),
            (8, 20, PeriodState.in_class(1)),
            (9, 10, PeriodState.in_class(1)),
            (9, 11, PeriodState.pre_class(2)),
            (10, 15, PeriodState.pre_class(3)),
            (10, 35, PeriodState.in_class(3)),
            (12, 10, PeriodState.in_class(4)),
            (12, 11, PeriodState.lunch_time()),
            (12, 59, PeriodState.lunch_time()),
            (13, 0, PeriodState.pre_class(5)),
            (15, 59, PeriodState.in_class(7)),
            (16, 0, PeriodState.after_school()),
            (23, 59, PeriodState.after_school()),
        ],
    )
    def test_weekday_timeline(self, clock, hour, minute, expected):
        assert clock.status(seoul(hour, minute)) == expected

    @pytest.mark.parametrize("day", [9, 10])
    def test_weekend_is_after_school(self, clock, day):
        """Saturday and Sunday report after-school even during class hours."""
        assert clock.status(seoul(10, 35, day=day)) == PeriodState.after_school()

    def test_utc_input_is_converted_to_school_time(self, clock):
        # 01:35 UTC == 10:35 KST
        assert clock.status(datetime(2024, 3, 4, 1, 35, tzinfo=timezone.utc)) == PeriodState.in_class(3)

    def test_naive_input_is_school_local(self, clock):
        assert clock.status(datetime(2024, 3, 4, 10, 35)) == PeriodState.in_class(3)

    def test_every_minute_of_the_week_has_exactly_one_state(self, clock):
        statuses = set(PeriodStatus)
        for weekday in range(7):
            for hour in range(24):
                for minute in range(60):
                    state = clock.status_at(hour, minute, weekday)
                    assert state.status in statuses
                    if state.status in (PeriodStatus.IN_CLASS, PeriodStatus.PRE_CLASS, PeriodStatus.BREAK_TIME):
                        assert 1 <= state.period <= 7
                    else:
                        assert state.period is None

    def test_period_minutes_are_inclusive_on_both_ends(self, clock):
        minutes_in_period_one = sum(
            1
            for hour in range(24)
            for minute in range(60)
            if clock.status_at(hour, minute, 0) == PeriodState.in_class(1)
        )
        assert minutes_in_period_one == 51

    def test_break_time_unreachable_with_default_table(self, clock):
        seen = {clock.status_at(h, m, 2).status for h in range(24) for m in range(60)}
        assert PeriodStatus.BREAK_TIME not in seen

    @pytest.mark.parametrize("hour,minute,weekday", [(24, 0, 0), (10, 60, 0), (10, 0, 7), (-1, 0, 0)])
    def test_invalid_wall_clock_raises(self, clock, hour, minute, weekday):
        with pytest.raises(ValueError):
            clock.status_at(hour, minute, weekday)


class TestCustomSchedule:
    @pytest.fixture
    def wide_gap_clock(self):
        schedule = BellSchedule(
            periods=(
                PeriodWindow(1, time(9, 0), time(9, 50)),
                PeriodWindow(2, time(10, 10), time(11, 0)),
            ),
            lunch_start=time(11, 0),
            lunch_end=time(11, 0),
            school_end=time(11, 0),
            pre_class_minutes=5,
        )
        return PeriodClock(schedule, timezone_name="Asia/Seoul")

    def test_break_time_between_distant_periods(self, wide_gap_clock):
        assert wide_gap_clock.status_at(9, 55, 0) == PeriodState.break_time(2)
        assert wide_gap_clock.status_at(10, 5, 0) == PeriodState.pre_class(2)

    def test_school_start_follows_pre_class_window(self, wide_gap_clock):
        assert wide_gap_clock.status_at(8, 54, 0) == PeriodState.before_school()
        assert wide_gap_clock.status_at(8, 55, 0) == PeriodState.pre_class(1)

    def test_overlapping_periods_rejected(self):
        with pytest.raises(ValueError, match="overlaps"):
            BellSchedule(
                periods=(
                    PeriodWindow(1, time(9, 0), time(9, 50)),
                    PeriodWindow(2, time(9, 40), time(10, 30)),
                ),
                lunch_start=time(12, 0),
                lunch_end=time(13, 0),
                school_end=time(16, 0),
            )

    def test_misnumbered_periods_rejected(self):
        with pytest.raises(ValueError):
            BellSchedule(
                periods=(PeriodWindow(2, time(9, 0), time(9, 50)),),
                lunch_start=time(12, 0),
                lunch_end=time(13, 0),
                school_end=time(16, 0),
            )


class TestWindow:
    def _epoch(self, hour, minute, day=4):
        return int(seoul(hour, minute, day).timestamp())

    def test_in_class_window_is_period_bounds(self, clock):
        now = seoul(10, 35)
        assert clock.window(clock.status(now), now) == (self._epoch(10, 20), self._epoch(11, 10))

    def test_pre_class_window_ends_at_period_start(self, clock):
        now = seoul(10, 15)
        assert clock.window(clock.status(now), now) == (self._epoch(10, 15), self._epoch(10, 20))

    def test_lunch_window_runs_until_fifth_period(self, clock):
        now = seoul(12, 30)
        assert clock.window(PeriodState.lunch_time(), now) == (self._epoch(12, 10), self._epoch(13, 10))

    def test_before_school_window_ends_at_first_bell(self, clock):
        now = seoul(7, 0)
        assert clock.window(PeriodState.before_school(), now) == (self._epoch(7, 0), self._epoch(8, 20))

    def test_after_school_window_spans_a_day(self, clock):
        start, end = clock.window(PeriodState.after_school(), seoul(18, 0))
        assert start == self._epoch(16, 0)
        assert end - start == 86400

    def test_weekend_morning_window_starts_before_now(self, clock):
        now = seoul(9, 0, day=9)
        start, end = clock.window(clock.status(now), now)
        assert start == self._epoch(16, 0, day=8)
        assert start <= int(now.timestamp()) < end

    def test_weekday_index(self, clock):
        assert clock.weekday_index(seoul(10, 0)) == 0
        assert clock.weekday_index(seoul(10, 0, day=10)) == 6
        assert clock.weekday_index(datetime(2024, 3, 4, 10, 0, tzinfo=SEOUL)) == 0


def test_state_str():
    assert str(PeriodState.in_class(3)) == "inClass(3)"
    assert str(PeriodState.lunch_time()) == "lunchTime"


def test_format_hhmm():
    assert format_hhmm(DEFAULT_BELL_SCHEDULE.get(1).start) == "08:20"
    assert format_hhmm(DEFAULT_BELL_SCHEDULE.get(5).end) == "14:00"
