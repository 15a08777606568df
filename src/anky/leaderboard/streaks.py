"""Writing streak math: consecutive UTC days with at least one Anky session."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Protocol

# 2023-08-10T05:00:00-04:00, the first day of the Ankyverse.
ANKYVERSE_START = 1691658000
SECONDS_PER_DAY = 86400


class SessionLike(Protocol):
    is_anky: bool
    start_time: int | None


@dataclass(frozen=True)
class WriterStats:
    """Streak and tenure metrics for one writer."""

    current_streak: int
    max_streak: int
    days_in_ankyverse: int


def days_in_ankyverse(now: datetime) -> int:
    """Whole days elapsed since ANKYVERSE_START."""
    return int((now.timestamp() - ANKYVERSE_START) // SECONDS_PER_DAY)


def utc_day(epoch_seconds: int) -> date:
    """UTC calendar day of an epoch timestamp."""
    return datetime.fromtimestamp(epoch_seconds, tz=timezone.utc).date()


def active_days(sessions: Iterable[SessionLike]) -> list[date]:
    """Distinct UTC days with an Anky session, ascending.

    Sessions whose start was never observed cannot be placed on a day and
    are ignored.
    """
    return sorted({
        utc_day(s.start_time)
        for s in sessions
        if s.is_anky and s.start_time is not None
    })


def calculate_writer_stats(
    sessions: Iterable[SessionLike], now: datetime | None = None,
) -> WriterStats:
    """Compute current/max streak and days in the Ankyverse.

    A gap of exactly one day between active days extends the running streak;
    any other gap restarts it at 1. The running streak only counts as current
    if the last active day is today or yesterday (UTC).
    """
    if now is None:
        now = datetime.now(timezone.utc)
    tenure = days_in_ankyverse(now)

    days = active_days(sessions)
    if not days:
        return WriterStats(current_streak=0, max_streak=0, days_in_ankyverse=tenure)

    running = 1
    max_streak = 1
    for prev, curr in zip(days, days[1:]):
        running = running + 1 if (curr - prev).days == 1 else 1
        max_streak = max(max_streak, running)

    today = now.astimezone(timezone.utc).date()
    current_streak = running if (today - days[-1]).days <= 1 else 0

    return WriterStats(
        current_streak=current_streak,
        max_streak=max_streak,
        days_in_ankyverse=tenure,
    )
