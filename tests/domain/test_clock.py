"""Tests for the deterministic clock used by ledger services."""

from datetime import date, datetime, timezone

from coldstore_kernel.domain.clock import DeterministicClock, SystemClock


def test_deterministic_clock_is_stable():
    clock = DeterministicClock()
    assert clock.now() == clock.now()
    assert clock.today() == date(2024, 1, 1)


def test_advance_days_moves_today():
    clock = DeterministicClock()
    clock.advance_days(3)
    assert clock.today() == date(2024, 1, 4)


def test_tick_and_set_time():
    clock = DeterministicClock()
    first = clock.now()
    assert (clock.tick() - first).total_seconds() == 1

    target = datetime(2025, 3, 31, 23, 0, tzinfo=timezone.utc)
    clock.set_time(target)
    assert clock.now() == target


def test_system_clock_is_timezone_aware():
    assert SystemClock().now().tzinfo is not None
