"""Scheduler daemon lifecycle for GoldAgent.

At most one scheduler process runs per data root. The live daemon holds an
exclusive ``flock`` on ``scheduler.lock`` for its whole life and publishes its
pid in ``scheduler.pid``. Starting is serialised through a second lock so two
concurrent ``start`` calls cannot both spawn. Reloading writes a fresh token to
the generation marker, which the daemon compares on every tick.
"""

import fcntl
import logging
import os
import signal
import subprocess
import sys
import threading
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import IO, Iterator, Optional

from goldagent.scheduler.command_runner import ProcessRunner
from goldagent.scheduler.errors import LifecycleError
from goldagent.scheduler.loop import DaemonContext, SchedulerLoop
from goldagent.scheduler.platform import is_process_running, terminate_process
from goldagent.settings import SchedulerSettings, get_settings

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class SchedulerStatus(str, Enum):
    STARTED = "started"
    ALREADY_RUNNING = "already_running"
    RELOADED = "reloaded"


@dataclass(frozen=True)
class LifecycleResult:
    status: SchedulerStatus
    pid: int


# ----------------------------------------------------------------------
# Lock and marker files
# ----------------------------------------------------------------------


def acquire_instance_lock(settings: SchedulerSettings) -> Optional[IO]:
    """Take the per-data-root instance lock without blocking.

    Returns the open lock file (keep it open to keep the lock), or None if
    another process holds it.
    """
    settings.ensure_directories()
    lock_f = open(settings.instance_lock_file, "a")
    try:
        fcntl.flock(lock_f.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
    except BlockingIOError:
        lock_f.close()
        return None
    except OSError as e:
        lock_f.close()
        raise LifecycleError(f"cannot lock {settings.instance_lock_file}: {e}") from e
    return lock_f


def release_instance_lock(lock_f: IO) -> None:
    try:
        fcntl.flock(lock_f.fileno(), fcntl.LOCK_UN)
    finally:
        lock_f.close()


def _instance_lock_held(settings: SchedulerSettings) -> bool:
    if not settings.instance_lock_file.exists():
        return False
    lock_f = acquire_instance_lock(settings)
    if lock_f is None:
        return True
    release_instance_lock(lock_f)
    return False


@contextmanager
def _start_lock(settings: SchedulerSettings) -> Iterator[None]:
    settings.ensure_directories()
    try:
        lock_f = open(settings.start_lock_file, "a")
        fcntl.flock(lock_f.fileno(), fcntl.LOCK_EX)
    except OSError as e:
        raise LifecycleError(f"cannot lock {settings.start_lock_file}: {e}") from e
    try:
        yield
    finally:
        release_instance_lock(lock_f)


def write_pid_file(settings: SchedulerSettings) -> None:
    """Write the current PID to the PID file."""
    tmp = settings.pid_file.with_suffix(".pid.tmp")
    tmp.write_text(f"{os.getpid()}\n", encoding="utf-8")
    os.replace(tmp, settings.pid_file)


def remove_pid_file(settings: SchedulerSettings, expected: Optional[str] = None) -> None:
    """Remove the PID file, optionally only if it still holds ``expected``."""
    try:
        if expected is not None and settings.pid_file.read_text(encoding="utf-8").strip() != expected:
            return
        settings.pid_file.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        raise LifecycleError(f"cannot remove stale pid file {settings.pid_file}: {e}") from e


def get_daemon_pid(settings: Optional[SchedulerSettings] = None) -> Optional[int]:
    """Get the PID of the running daemon, or None if not running.

    A pid file whose process is gone, or whose instance lock is free, is
    stale and gets removed.
    """
    settings = settings or get_settings()
    try:
        raw = settings.pid_file.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        return None
    except OSError as e:
        raise LifecycleError(f"cannot read pid file {settings.pid_file}: {e}") from e

    try:
        pid = int(raw)
    except ValueError:
        pid = None

    if pid is not None and is_process_running(pid) and _instance_lock_held(settings):
        return pid

    logger.info("Clearing stale scheduler pid file (%s)", raw or "empty")
    remove_pid_file(settings, expected=raw)
    return None


def bump_generation(settings: SchedulerSettings) -> str:
    """Publish a new generation token so the live daemon reloads the store."""
    settings.ensure_directories()
    token = uuid.uuid4().hex
    tmp = settings.generation_file.with_suffix(".tmp")
    try:
        tmp.write_text(token, encoding="utf-8")
        os.replace(tmp, settings.generation_file)
    except OSError as e:
        raise LifecycleError(f"cannot write generation marker: {e}") from e
    return token


# ----------------------------------------------------------------------
# Client side: start / reload / stop
# ----------------------------------------------------------------------


def _spawn_scheduler_process(settings: SchedulerSettings) -> None:
    """Spawn ``python -m goldagent.scheduler`` detached from this session."""
    env = os.environ.copy()
    env["GOLDAGENT_HOME"] = str(settings.home)
    try:
        with open(settings.daemon_log_file, "a") as log_f:
            subprocess.Popen(
                [sys.executable, "-m", "goldagent.scheduler"],
                stdin=subprocess.DEVNULL,
                stdout=log_f,
                stderr=subprocess.STDOUT,
                start_new_session=True,
                env=env,
            )
    except OSError as e:
        raise LifecycleError(f"failed to spawn scheduler background process: {e}") from e


def _wait_for_pid(settings: SchedulerSettings, timeout: float) -> Optional[int]:
    deadline = time.monotonic() + timeout
    while True:
        pid = get_daemon_pid(settings)
        if pid is not None or time.monotonic() >= deadline:
            return pid
        time.sleep(0.1)


def start_daemon_background(settings: Optional[SchedulerSettings] = None) -> LifecycleResult:
    """Start the scheduler daemon in the background unless one is live.

    Raises:
        LifecycleError: the process could not be spawned or never came up.
    """
    settings = settings or get_settings()
    with _start_lock(settings):
        pid = get_daemon_pid(settings)
        if pid:
            return LifecycleResult(SchedulerStatus.ALREADY_RUNNING, pid)

        _spawn_scheduler_process(settings)
        pid = _wait_for_pid(settings, settings.start_timeout)
        if pid is None:
            raise LifecycleError(
                f"scheduler start requested, but no pid was published within "
                f"{settings.start_timeout}s (see {settings.daemon_log_file})"
            )
        return LifecycleResult(SchedulerStatus.STARTED, pid)


def reload_daemon(settings: Optional[SchedulerSettings] = None) -> LifecycleResult:
    """Make the live daemon re-read the store; start one if none is live."""
    settings = settings or get_settings()
    pid = get_daemon_pid(settings)
    if pid:
        bump_generation(settings)
        return LifecycleResult(SchedulerStatus.RELOADED, pid)

    result = start_daemon_background(settings)
    if result.status == SchedulerStatus.ALREADY_RUNNING:
        # Another caller started it first; it may have loaded before our write
        bump_generation(settings)
        return LifecycleResult(SchedulerStatus.RELOADED, result.pid)
    return result


def stop_daemon(settings: Optional[SchedulerSettings] = None, timeout: Optional[float] = None) -> bool:
    """Stop the running daemon. Returns True if it exited."""
    settings = settings or get_settings()
    pid = get_daemon_pid(settings)
    if not pid:
        return False

    if not terminate_process(pid):
        return get_daemon_pid(settings) is None

    timeout = settings.shutdown_grace + 5 if timeout is None else timeout
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if not get_daemon_pid(settings):
            return True
        time.sleep(0.2)
    return False


# ----------------------------------------------------------------------
# Daemon side
# ----------------------------------------------------------------------


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr)


def start_daemon(
    settings: Optional[SchedulerSettings] = None,
    runner: Optional[ProcessRunner] = None,
) -> int:
    """Run the scheduler in the current process until signalled.

    Returns a process exit code: 0 after a clean shutdown, 1 if another
    daemon already owns this data root.
    """
    settings = settings or get_settings()
    lock_f = acquire_instance_lock(settings)
    if lock_f is None:
        logger.warning("Scheduler already running for %s", settings.home)
        return 1

    pid_token = str(os.getpid())
    try:
        ctx = DaemonContext.create(settings, runner=runner)
        loop = SchedulerLoop(ctx)

        def signal_handler(signum, frame):
            logger.info("Received signal %s, shutting down...", signum)
            ctx.stop_event.set()

        write_pid_file(settings)
        if threading.current_thread() is threading.main_thread():
            signal.signal(signal.SIGTERM, signal_handler)
            signal.signal(signal.SIGINT, signal_handler)

        logger.info("Starting scheduler daemon (PID: %s, home: %s)", pid_token, settings.home)
        loop.run()
    finally:
        remove_pid_file(settings, expected=pid_token)
        release_instance_lock(lock_f)
    logger.info("Scheduler daemon stopped")
    return 0
