"""Streak math: consecutive UTC days with an Anky session."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from anky.leaderboard.streaks import (
    ANKYVERSE_START,
    SECONDS_PER_DAY,
    active_days,
    calculate_writer_stats,
    days_in_ankyverse,
    utc_day,
)

D = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


@dataclass
class Sess:
    start_time: int | None
    is_anky: bool = True


def on_day(offset: int, hour: int = 12, is_anky: bool = True) -> Sess:
    day = D.replace(hour=hour) + timedelta(days=offset)
    return Sess(start_time=int(day.timestamp()), is_anky=is_anky)


GAPPED = [on_day(0), on_day(1), on_day(2), on_day(5), on_day(6)]


class TestStreakMath:
    """Current and max streak over active days."""

    def test_gapped_days_max_streak(self):
        """[D, D+1, D+2, D+5, D+6] has a longest run of 3."""
        stats = calculate_writer_stats(GAPPED, now=D + timedelta(days=6))
        assert stats.max_streak == 3

    def test_current_streak_when_last_day_is_today(self):
        stats = calculate_writer_stats(GAPPED, now=D + timedelta(days=6, hours=8))
        assert stats.current_streak == 2

    def test_current_streak_when_last_day_is_yesterday(self):
        stats = calculate_writer_stats(GAPPED, now=D + timedelta(days=7))
        assert stats.current_streak == 2

    def test_current_streak_broken_after_two_days(self):
        """No session today or yesterday: current streak is 0, max is kept."""
        stats = calculate_writer_stats(GAPPED, now=D + timedelta(days=8))
        assert stats.current_streak == 0
        assert stats.max_streak == 3

    def test_no_sessions(self):
        stats = calculate_writer_stats([], now=D)
        assert stats.current_streak == 0
        assert stats.max_streak == 0

    def test_single_day(self):
        stats = calculate_writer_stats([on_day(0)], now=D)
        assert stats.current_streak == 1
        assert stats.max_streak == 1

    def test_multiple_sessions_same_day_count_once(self):
        sessions = [on_day(0, hour=1), on_day(0, hour=23), on_day(1)]
        stats = calculate_writer_stats(sessions, now=D + timedelta(days=1))
        assert stats.current_streak == 2
        assert stats.max_streak == 2

    def test_non_anky_sessions_ignored(self):
        """Only Anky sessions make a day active."""
        sessions = [on_day(0), on_day(1, is_anky=False), on_day(2)]
        stats = calculate_writer_stats(sessions, now=D + timedelta(days=2))
        assert stats.max_streak == 1
        assert stats.current_streak == 1

    def test_unknown_start_ignored(self):
        sessions = [Sess(start_time=None), on_day(0)]
        stats = calculate_writer_stats(sessions, now=D)
        assert stats.max_streak == 1

    def test_input_order_does_not_matter(self):
        now = D + timedelta(days=6)
        assert calculate_writer_stats(list(reversed(GAPPED)), now) == calculate_writer_stats(GAPPED, now)

    def test_pure(self):
        """Same input, same output."""
        now = D + timedelta(days=6)
        assert calculate_writer_stats(GAPPED, now) == calculate_writer_stats(GAPPED, now)


class TestUtcDays:
    """Day bucketing is by UTC calendar day."""

    def test_midnight_boundary(self):
        before = int(datetime(2026, 3, 1, 23, 59, 59, tzinfo=timezone.utc).timestamp())
        after = before + 1
        assert utc_day(before) != utc_day(after)

    def test_active_days_sorted_and_distinct(self):
        days = active_days([on_day(2), on_day(0), on_day(0, hour=3)])
        assert days == [utc_day(on_day(0).start_time), utc_day(on_day(2).start_time)]


class TestDaysInAnkyverse:
    """Elapsed whole days since the Ankyverse began."""

    def test_day_zero(self):
        assert days_in_ankyverse(datetime.fromtimestamp(ANKYVERSE_START, tz=timezone.utc)) == 0

    def test_ten_days(self):
        now = datetime.fromtimestamp(ANKYVERSE_START + 10 * SECONDS_PER_DAY + 1, tz=timezone.utc)
        assert days_in_ankyverse(now) == 10

    def test_same_for_every_writer(self):
        now = D + timedelta(days=6)
        a = calculate_writer_stats(GAPPED, now)
        b = calculate_writer_stats([], now)
        assert a.days_in_ankyverse == b.days_in_ankyverse == days_in_ankyverse(now)
