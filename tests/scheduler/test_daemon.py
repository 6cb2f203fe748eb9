"""Tests for scheduler daemon lifecycle management."""

import os
import threading
import time
from unittest.mock import patch

import pytest

from goldagent.scheduler import daemon
from goldagent.scheduler.daemon import (
    SchedulerStatus,
    acquire_instance_lock,
    bump_generation,
    get_daemon_pid,
    release_instance_lock,
    reload_daemon,
    start_daemon,
    start_daemon_background,
    stop_daemon,
    write_pid_file,
)
from goldagent.scheduler.errors import LifecycleError


@pytest.fixture
def fake_daemon(settings):
    """Stand-in for a live daemon: this process holds the lock and pid file."""
    held = []

    def spawn(_settings):
        lock_f = acquire_instance_lock(_settings)
        if lock_f is not None:
            held.append(lock_f)
            write_pid_file(_settings)

    yield spawn, held
    for lock_f in held:
        release_instance_lock(lock_f)


class TestGetDaemonPid:
    """Liveness detection and stale marker cleanup."""

    def test_no_pid_file(self, settings):
        assert get_daemon_pid(settings) is None

    def test_live_daemon(self, settings, fake_daemon):
        spawn, _ = fake_daemon
        spawn(settings)
        assert get_daemon_pid(settings) == os.getpid()

    def test_dead_pid_is_cleared(self, settings):
        settings.pid_file.write_text("999999999\n")
        with patch("goldagent.scheduler.daemon.is_process_running", return_value=False):
            assert get_daemon_pid(settings) is None
        assert not settings.pid_file.exists()

    def test_garbage_pid_is_cleared(self, settings):
        settings.pid_file.write_text("not-a-pid")
        assert get_daemon_pid(settings) is None
        assert not settings.pid_file.exists()

    def test_live_pid_without_lock_is_stale(self, settings):
        # Our own pid is alive, but nobody holds the instance lock
        settings.pid_file.write_text(f"{os.getpid()}\n")
        assert get_daemon_pid(settings) is None
        assert not settings.pid_file.exists()


class TestStartDaemonBackground:
    """Check-then-spawn under the start lock."""

    def test_starts_when_absent(self, settings, fake_daemon):
        spawn, _ = fake_daemon
        with patch.object(daemon, "_spawn_scheduler_process", side_effect=spawn) as mock_spawn:
            result = start_daemon_background(settings)
        assert result.status == SchedulerStatus.STARTED
        assert result.pid == os.getpid()
        mock_spawn.assert_called_once()

    def test_already_running(self, settings, fake_daemon):
        spawn, _ = fake_daemon
        spawn(settings)
        with patch.object(daemon, "_spawn_scheduler_process") as mock_spawn:
            result = start_daemon_background(settings)
        assert result.status == SchedulerStatus.ALREADY_RUNNING
        mock_spawn.assert_not_called()

    def test_concurrent_starts_spawn_once(self, settings, fake_daemon):
        spawn, _ = fake_daemon
        spawn_count = []

        def slow_spawn(_settings):
            spawn_count.append(1)
            time.sleep(0.2)
            spawn(_settings)

        results = []
        barrier = threading.Barrier(2)

        def attempt():
            barrier.wait()
            results.append(start_daemon_background(settings))

        with patch.object(daemon, "_spawn_scheduler_process", side_effect=slow_spawn):
            threads = [threading.Thread(target=attempt) for _ in range(2)]
            for t in threads:
                t.start()
            for t in threads:
                t.join(timeout=10)

        assert len(spawn_count) == 1
        assert sorted(r.status.value for r in results) == ["already_running", "started"]

    def test_spawned_process_never_comes_up(self, monkeypatch):
        from goldagent.settings import clear_settings_cache, get_settings

        monkeypatch.setenv("GOLDAGENT_START_TIMEOUT", "0.3")
        clear_settings_cache()
        settings = get_settings()
        with patch.object(daemon, "_spawn_scheduler_process"):
            with pytest.raises(LifecycleError):
                start_daemon_background(settings)


class TestReload:
    """Generation marker and start-on-reload."""

    def test_bump_generation_changes_token(self, settings):
        first = bump_generation(settings)
        second = bump_generation(settings)
        assert first != second
        assert settings.generation_file.read_text() == second

    def test_reload_live_daemon(self, settings, fake_daemon):
        spawn, _ = fake_daemon
        spawn(settings)
        result = reload_daemon(settings)
        assert result.status == SchedulerStatus.RELOADED
        assert settings.generation_file.exists()

    def test_reload_starts_when_stale(self, settings, fake_daemon):
        spawn, _ = fake_daemon
        settings.pid_file.write_text("999999999\n")
        with patch.object(daemon, "_spawn_scheduler_process", side_effect=spawn) as mock_spawn:
            result = reload_daemon(settings)
        assert result.status == SchedulerStatus.STARTED
        mock_spawn.assert_called_once()


class TestStop:
    """Stopping the daemon."""

    def test_stop_when_not_running(self, settings):
        assert stop_daemon(settings) is False

    def test_stop_sends_sigterm(self, settings, fake_daemon):
        spawn, held = fake_daemon
        spawn(settings)

        def fake_terminate(pid):
            release_instance_lock(held.pop())
            return True

        with patch("goldagent.scheduler.daemon.terminate_process", side_effect=fake_terminate) as mock_term:
            assert stop_daemon(settings, timeout=2) is True
        mock_term.assert_called_once_with(os.getpid())


class TestForegroundDaemon:
    """start_daemon() in-process."""

    def test_second_instance_exits_1(self, settings, fake_daemon):
        spawn, _ = fake_daemon
        spawn(settings)
        assert start_daemon(settings) == 1

    def test_runs_until_stopped_and_cleans_up(self, settings, fake_runner):
        started = threading.Event()
        contexts = []
        real_create = daemon.DaemonContext.create

        def create(*args, **kwargs):
            ctx = real_create(*args, **kwargs)
            contexts.append(ctx)
            started.set()
            return ctx

        codes = []
        with patch.object(daemon.DaemonContext, "create", side_effect=create):
            thread = threading.Thread(target=lambda: codes.append(start_daemon(settings, runner=fake_runner)))
            thread.start()
            assert started.wait(5)

            deadline = time.monotonic() + 5
            while get_daemon_pid(settings) is None and time.monotonic() < deadline:
                time.sleep(0.05)
            assert get_daemon_pid(settings) == os.getpid()

            contexts[0].stop_event.set()
            thread.join(timeout=10)

        assert codes == [0]
        assert not settings.pid_file.exists()
        lock_f = acquire_instance_lock(settings)
        assert lock_f is not None
        release_instance_lock(lock_f)
