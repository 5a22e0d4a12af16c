"""Tests for Settings configuration model."""

from pathlib import Path

import pytest

from outreach.config import Settings


class TestGetActiveDays:
    def test_parses_comma_separated(self):
        s = Settings(active_days="0,2,4")
        assert s.get_active_days() == {0, 2, 4}

    def test_handles_spaces(self):
        s = Settings(active_days=" 1 , 3 ")
        assert s.get_active_days() == {1, 3}

    def test_empty_string_returns_empty_set(self):
        s = Settings(active_days="")
        assert s.get_active_days() == set()


class TestActionLimits:
    def test_parses_daily_limits(self):
        s = Settings(daily_action_limits="comment:10, like:30")
        assert s.get_daily_action_limits() == {"comment": 10, "like": 30}

    def test_empty_limits(self):
        s = Settings(daily_action_limits="", weekly_action_limits="")
        assert s.get_daily_action_limits() == {}
        assert s.get_weekly_action_limits() == {}

    def test_default_weekly_invitation_limit(self):
        s = Settings()
        assert s.get_weekly_action_limits() == {"connection_request": 200}


class TestDefaults:
    def test_default_database_path(self):
        s = Settings()
        assert s.database_path == Path("data/outreach.db")

    def test_default_scheduler_timezone(self):
        s = Settings()
        assert s.scheduler_timezone == "America/Chicago"

    def test_default_intervals(self):
        s = Settings()
        assert s.posts_interval_minutes == 60
        assert s.people_interval_minutes == 90
        assert s.meeting_followups_interval_minutes == 15

    def test_default_lookback(self):
        s = Settings()
        assert s.lookback_minutes == 30

    def test_default_active_hours(self):
        s = Settings()
        assert (s.active_hours_start, s.active_hours_end) == (9, 18)
        assert s.get_active_days() == {0, 1, 2, 3, 4}


class TestValidation:
    def test_unknown_env_var_raises(self):
        with pytest.raises(ValueError, match="extra_forbidden"):
            Settings(**{"nonexistent_field": "value"})

    def test_active_hours_start_out_of_range(self):
        with pytest.raises(ValueError):
            Settings(active_hours_start=25)
