"""
Typed settings for the GoldAgent scheduler using pydantic-settings.

Every value can be overridden through a ``GOLDAGENT_``-prefixed environment
variable. ``GOLDAGENT_HOME`` redirects the data root that holds the schedule
store, the daemon's pid/lock markers and its logs.

Usage:
    from goldagent.settings import get_settings

    settings = get_settings()
    print(settings.store_file)
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_home() -> Path:
    return Path.home() / ".goldagent"


class SchedulerSettings(BaseSettings):
    """Scheduler daemon configuration and data-root layout."""

    model_config = SettingsConfigDict(
        env_prefix="GOLDAGENT_",
        extra="ignore",
    )

    home: Path = Field(default_factory=_default_home)
    max_concurrency: int = Field(default=4, ge=1, le=64)
    command_timeout: float = Field(default=600.0, gt=0)
    hook_read_timeout: float = Field(default=30.0, gt=0)
    shutdown_grace: float = Field(default=30.0, ge=0)
    retry_delay: float = Field(default=3.0, ge=0)
    start_timeout: float = Field(default=4.0, gt=0)

    @field_validator("home", mode="after")
    @classmethod
    def expand_home(cls, v: Path) -> Path:
        return v.expanduser()

    # Data-root layout
    @property
    def store_file(self) -> Path:
        return self.home / "schedule.json"

    @property
    def store_lock_file(self) -> Path:
        return self.home / "schedule.json.lock"

    @property
    def pid_file(self) -> Path:
        return self.home / "scheduler.pid"

    @property
    def instance_lock_file(self) -> Path:
        return self.home / "scheduler.lock"

    @property
    def start_lock_file(self) -> Path:
        return self.home / "scheduler.start.lock"

    @property
    def generation_file(self) -> Path:
        return self.home / "scheduler.generation"

    @property
    def logs_dir(self) -> Path:
        return self.home / "logs"

    @property
    def daemon_log_file(self) -> Path:
        return self.logs_dir / "scheduler.log"

    def ensure_directories(self) -> None:
        """Create the data root and log directory with private permissions."""
        for directory in (self.home, self.logs_dir):
            directory.mkdir(parents=True, exist_ok=True, mode=0o700)


@lru_cache(maxsize=1)
def get_settings() -> SchedulerSettings:
    """Get the cached settings instance (reads the environment once)."""
    return SchedulerSettings()


def clear_settings_cache() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    get_settings.cache_clear()
