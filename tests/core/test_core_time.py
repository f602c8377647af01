"""
Tests for core.time — Clock protocol and temporal helpers.
"""

import pytest
from datetime import datetime, timezone, timedelta

from core.time import FixedClock, SystemClock, ValidityWindow, days_elapsed, whole_days_elapsed

T0 = datetime(2026, 5, 4, 10, 0, 0, tzinfo=timezone.utc)


# ── Clock Tests ──────────────────────────────────────────────

class TestSystemClock:
    def test_returns_utc_datetime(self):
        dt = SystemClock().now_utc()
        assert dt.tzinfo == timezone.utc


class TestFixedClock:
    def test_returns_fixed_time(self):
        clock = FixedClock(T0)
        assert clock.now_utc() == T0
        assert clock.now_utc() == T0

    def test_advance_by_timedelta_and_seconds(self):
        clock = FixedClock(T0)
        clock.advance(timedelta(days=2))
        clock.advance(30)
        assert clock.now_utc() == T0 + timedelta(days=2, seconds=30)

    def test_rejects_naive_datetime(self):
        with pytest.raises(ValueError):
            FixedClock(datetime(2026, 5, 4))


# ── ValidityWindow Tests ─────────────────────────────────────

class TestValidityWindow:
    def test_inclusive_bounds(self):
        window = ValidityWindow(start=T0, end=T0 + timedelta(days=1))
        assert window.contains(T0)
        assert window.contains(T0 + timedelta(days=1))
        assert not window.contains(T0 + timedelta(days=1, seconds=1))
        assert not window.contains(T0 - timedelta(seconds=1))

    def test_open_ended(self):
        assert ValidityWindow().contains(T0)
        assert ValidityWindow(start=T0).contains(T0 + timedelta(days=3650))
        assert ValidityWindow(end=T0).contains(T0 - timedelta(days=3650))

    def test_end_must_follow_start(self):
        with pytest.raises(ValueError):
            ValidityWindow(start=T0, end=T0)


# ── Elapsed Days Tests ───────────────────────────────────────

class TestElapsedDays:
    def test_fractional_days(self):
        assert days_elapsed(T0, T0 + timedelta(hours=36)) == 1.5

    def test_whole_days_round_up(self):
        assert whole_days_elapsed(T0, T0 + timedelta(days=2)) == 2
        assert whole_days_elapsed(T0, T0 + timedelta(days=2, minutes=1)) == 3
        assert whole_days_elapsed(T0, T0 - timedelta(days=1)) == 0
