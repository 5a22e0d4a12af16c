"""Tests for ActiveHours."""

from datetime import UTC, datetime

from outreach.discovery.hours import ActiveHours

CHICAGO = "America/Chicago"


def test_inside_working_hours() -> None:
    hours = ActiveHours(timezone=CHICAGO)
    # Wednesday 2026-03-04 10:00 in Chicago (UTC-6)
    assert hours.contains(datetime(2026, 3, 4, 16, 0, tzinfo=UTC)) is True


def test_before_start_and_at_end() -> None:
    hours = ActiveHours(timezone=CHICAGO)
    assert hours.contains(datetime(2026, 3, 4, 14, 59, tzinfo=UTC)) is False  # 08:59
    assert hours.contains(datetime(2026, 3, 5, 0, 0, tzinfo=UTC)) is False  # 18:00


def test_weekend_excluded() -> None:
    hours = ActiveHours(timezone=CHICAGO)
    # Saturday 2026-03-07 12:00 local
    assert hours.contains(datetime(2026, 3, 7, 18, 0, tzinfo=UTC)) is False


def test_custom_days() -> None:
    hours = ActiveHours(start_hour=0, end_hour=24, days=frozenset({5}), timezone="UTC")
    assert hours.contains(datetime(2026, 3, 7, 12, 0, tzinfo=UTC)) is True
    assert hours.contains(datetime(2026, 3, 4, 12, 0, tzinfo=UTC)) is False


def test_naive_moment_read_as_utc() -> None:
    hours = ActiveHours(timezone="UTC")
    assert hours.contains(datetime(2026, 3, 4, 10, 0)) is True


def test_from_settings() -> None:
    hours = ActiveHours.from_settings()
    assert hours.start_hour == 9
    assert hours.end_hour == 18
    assert hours.days == frozenset({0, 1, 2, 3, 4})
    assert hours.timezone == CHICAGO
