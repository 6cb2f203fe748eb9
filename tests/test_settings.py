"""Tests for the pydantic-settings based configuration."""

import os
import stat
from pathlib import Path

import pytest
from pydantic import ValidationError

from goldagent.settings import SchedulerSettings, clear_settings_cache, get_settings


class TestSchedulerSettings:
    """Defaults, environment overrides and derived paths."""

    def test_home_from_environment(self, isolate_data_root):
        assert get_settings().home == Path(isolate_data_root)

    def test_default_home(self, monkeypatch):
        monkeypatch.delenv("GOLDAGENT_HOME", raising=False)
        assert SchedulerSettings().home == Path.home() / ".goldagent"

    def test_tilde_expanded(self, monkeypatch):
        monkeypatch.setenv("GOLDAGENT_HOME", "~/somewhere")
        assert SchedulerSettings().home == Path.home() / "somewhere"

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("GOLDAGENT_RETRY_DELAY", raising=False)
        s = SchedulerSettings()
        assert s.max_concurrency == 4
        assert s.command_timeout == 600
        assert s.hook_read_timeout == 30
        assert s.shutdown_grace == 30
        assert s.retry_delay == 3

    def test_numeric_override(self, monkeypatch):
        monkeypatch.setenv("GOLDAGENT_MAX_CONCURRENCY", "9")
        monkeypatch.setenv("GOLDAGENT_COMMAND_TIMEOUT", "1.5")
        s = SchedulerSettings()
        assert s.max_concurrency == 9
        assert s.command_timeout == 1.5

    def test_invalid_concurrency(self, monkeypatch):
        monkeypatch.setenv("GOLDAGENT_MAX_CONCURRENCY", "0")
        with pytest.raises(ValidationError):
            SchedulerSettings()

    def test_derived_paths(self, settings):
        home = settings.home
        assert settings.store_file == home / "schedule.json"
        assert settings.store_lock_file == home / "schedule.json.lock"
        assert settings.pid_file == home / "scheduler.pid"
        assert settings.instance_lock_file == home / "scheduler.lock"
        assert settings.generation_file == home / "scheduler.generation"
        assert settings.daemon_log_file == home / "logs" / "scheduler.log"

    def test_ensure_directories_private(self, monkeypatch, tmp_path):
        monkeypatch.setenv("GOLDAGENT_HOME", str(tmp_path / "fresh"))
        s = SchedulerSettings()
        s.ensure_directories()
        assert s.logs_dir.is_dir()
        assert stat.S_IMODE(os.stat(s.home).st_mode) & 0o077 == 0


class TestSettingsCache:
    def test_cached_until_cleared(self, monkeypatch, tmp_path):
        first = get_settings()
        assert get_settings() is first

        monkeypatch.setenv("GOLDAGENT_HOME", str(tmp_path))
        assert get_settings() is first
        clear_settings_cache()
        assert get_settings().home == tmp_path
