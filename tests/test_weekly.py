from datetime import datetime, timedelta, timezone

import pytest

from mplusbot.domain.models import Run
from mplusbot.utils.weekly import PACIFIC, WeeklyResetClock


def _clock(iso: str) -> WeeklyResetClock:
    at = datetime.fromisoformat(iso)
    return WeeklyResetClock(now=lambda: at)


def _utc(iso: str) -> datetime:
    return datetime.fromisoformat(iso).replace(tzinfo=timezone.utc)


def test_summer_reset_is_15_utc():
    clock = _clock("2025-07-17T12:00:00+00:00")  # Thursday
    assert clock.last_reset() == _utc("2025-07-15T15:00:00")
    assert clock.next_reset() == _utc("2025-07-22T15:00:00")


def test_winter_reset_is_16_utc():
    clock = _clock("2025-01-16T12:00:00+00:00")
    assert clock.last_reset() == _utc("2025-01-14T16:00:00")
    assert clock.next_reset() == _utc("2025-01-21T16:00:00")


def test_reset_across_dst_start():
    # DST starts Sunday 2025-03-09
    clock = _clock("2025-03-10T12:00:00+00:00")
    assert clock.last_reset() == _utc("2025-03-04T16:00:00")
    assert clock.next_reset() == _utc("2025-03-11T15:00:00")


@pytest.mark.parametrize(
    "local_time, expected_last",
    [
        ("2025-07-15T07:59:00", "2025-07-08T15:00:00"),
        ("2025-07-15T08:00:00", "2025-07-15T15:00:00"),
        ("2025-07-15T08:01:00", "2025-07-15T15:00:00"),
    ],
)
def test_tuesday_morning_boundary(local_time, expected_last):
    at = datetime.fromisoformat(local_time).replace(tzinfo=PACIFIC)
    clock = WeeklyResetClock(now=lambda: at)
    assert clock.last_reset() == _utc(expected_last)


def test_last_reset_is_tuesday_8am_pacific():
    clock = _clock("2025-11-05T03:00:00+00:00")
    local = clock.last_reset().astimezone(PACIFIC)
    assert local.weekday() == 1
    assert (local.hour, local.minute) == (8, 0)
    assert clock.next_reset() - clock.last_reset() in (timedelta(days=7), timedelta(days=7, hours=1))


def test_time_until_next_reset():
    clock = _clock("2025-07-22T14:00:00+00:00")
    assert clock.time_until_next_reset() == timedelta(hours=1)


def test_is_after_reset_accepts_strings_and_epoch_ms():
    clock = _clock("2025-07-17T12:00:00+00:00")
    assert clock.is_after_reset("2025-07-15T15:00:00.000Z")
    assert not clock.is_after_reset("2025-07-15T14:59:59Z")
    assert clock.is_after_reset(1_752_609_600_000)


def test_filter_weekly_keeps_runs_since_reset():
    clock = _clock("2025-07-17T12:00:00+00:00")
    old = Run("Halls of Atonement", 12, "2025-07-14T20:00:00Z", num_keystone_upgrades=1)
    new = Run("The Dawnbreaker", 14, "2025-07-15T15:30:00Z")
    assert clock.filter_weekly([old, new]) == [new]
