"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


def _parse_limits(raw: str) -> dict[str, int]:
    limits: dict[str, int] = {}
    for item in raw.split(","):
        if not item.strip():
            continue
        name, _, value = item.partition(":")
        limits[name.strip()] = int(value.strip())
    return limits


class Settings(BaseSettings):
    """Outreach configuration. All values come from environment variables."""

    # Database
    database_path: Path = Field(default=Path("data/outreach.db"))

    # Turso (hosted libSQL): when set, overrides local database_path
    turso_database_url: str = Field(default="")
    turso_auth_token: str = Field(default="")

    # Scheduler
    scheduler_timezone: str = Field(default="America/Chicago")
    posts_interval_minutes: int = Field(default=60)
    people_interval_minutes: int = Field(default=90)
    meeting_followups_interval_minutes: int = Field(default=15)

    # Discovery window
    lookback_minutes: int = Field(default=30)
    max_items_per_run: int = Field(default=5)
    # Entities held back by a cap wait this long in the carry-over queue
    deferred_max_age_hours: int = Field(default=72, ge=1)

    # Active hours (weekday numbers: Monday=0 ... Sunday=6)
    active_hours_start: int = Field(default=9, ge=0, le=23)
    active_hours_end: int = Field(default=18, ge=0, le=24)
    active_days: str = Field(default="0,1,2,3,4")

    # Activity limits, "action_type:limit" pairs
    daily_action_limits: str = Field(
        default="connection_request:35,comment:10,like:30,message:20"
    )
    weekly_action_limits: str = Field(default="connection_request:200")

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)

    def get_active_days(self) -> set[int]:
        """Parse ACTIVE_DAYS into a set of weekday numbers."""
        if not self.active_days.strip():
            return set()
        return {int(day.strip()) for day in self.active_days.split(",") if day.strip()}

    def get_daily_action_limits(self) -> dict[str, int]:
        """Parse DAILY_ACTION_LIMITS into ``{action_type: limit}``."""
        return _parse_limits(self.daily_action_limits)

    def get_weekly_action_limits(self) -> dict[str, int]:
        """Parse WEEKLY_ACTION_LIMITS into ``{action_type: limit}``."""
        return _parse_limits(self.weekly_action_limits)


settings = Settings()
