from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Iterable, TypeVar
from zoneinfo import ZoneInfo

from ..domain.models import parse_instant

PACIFIC = ZoneInfo("America/Los_Angeles")
RESET_WEEKDAY = 1  # Tuesday
RESET_TIME = time(8, 0)

R = TypeVar("R")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WeeklyResetClock:
    """WoW weekly reset: every Tuesday 08:00 Pacific wall-clock time.

    The reset follows Pacific daylight saving, so it lands at 15:00 UTC in
    summer and 16:00 UTC in winter.
    """

    def __init__(self, now: Callable[[], datetime] = utcnow):
        self._now = now

    def now(self) -> datetime:
        return parse_instant(self._now())

    def _last_reset_day(self, at: datetime) -> date:
        local = at.astimezone(PACIFIC)
        days_back = (local.weekday() - RESET_WEEKDAY) % 7
        if days_back == 0 and local.time() < RESET_TIME:
            days_back = 7
        return local.date() - timedelta(days=days_back)

    @staticmethod
    def _reset_instant(day: date) -> datetime:
        return datetime.combine(day, RESET_TIME, tzinfo=PACIFIC).astimezone(timezone.utc)

    def last_reset(self) -> datetime:
        return self._reset_instant(self._last_reset_day(self.now()))

    def next_reset(self) -> datetime:
        return self._reset_instant(self._last_reset_day(self.now()) + timedelta(days=7))

    def is_after_reset(self, when: datetime | str | int | float) -> bool:
        return parse_instant(when) >= self.last_reset()

    def time_until_next_reset(self) -> timedelta:
        remaining = self.next_reset() - self.now()
        return max(remaining, timedelta(0))

    def filter_weekly(self, runs: Iterable[R]) -> list[R]:
        """Runs (anything with ``completed_at``) finished since the last reset."""
        cutoff = self.last_reset()
        weekly: list[R] = []
        for run in runs:
            completed = getattr(run, "completed_at", None)
            if completed is None:
                continue
            if parse_instant(completed) >= cutoff:
                weekly.append(run)
        return weekly
