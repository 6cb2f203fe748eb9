"""CLI subcommands for the scheduler.

Handles command-line operations like starting/stopping the daemon and
adding, listing and removing jobs and hooks. Every handler returns True on
success and False on failure; the runner maps that to the exit code.
"""

from typing import Optional

from goldagent.messaging import emit_error, emit_info, emit_success, emit_table, emit_warning
from goldagent.scheduler.errors import SchedulerError
from goldagent.scheduler.store import ScheduleStore
from goldagent.settings import get_settings


def _store() -> ScheduleStore:
    return ScheduleStore.from_settings(get_settings())


def _notify_daemon() -> None:
    """Ask the daemon to pick up a store change; start it if needed."""
    from goldagent.scheduler.daemon import SchedulerStatus, reload_daemon

    try:
        result = reload_daemon()
    except SchedulerError as e:
        emit_warning(f"Saved, but the scheduler could not be started: {e}")
        emit_warning("Run 'goldagent start' manually.")
        return
    if result.status == SchedulerStatus.STARTED:
        emit_info(f"Scheduler daemon started (PID {result.pid})")
    else:
        emit_info(f"Scheduler daemon reloaded (PID {result.pid})")


def handle_serve() -> bool:
    """Run the scheduler daemon in the foreground."""
    from goldagent.scheduler.daemon import configure_logging, start_daemon

    configure_logging()
    try:
        code = start_daemon()
    except SchedulerError as e:
        emit_error(f"Scheduler failed: {e}")
        return False
    if code != 0:
        emit_error("Scheduler daemon already running for this data root")
        return False
    return True


def handle_start() -> bool:
    """Start the scheduler daemon in background."""
    from goldagent.scheduler.daemon import SchedulerStatus, start_daemon_background

    emit_info("Starting scheduler daemon...")
    try:
        result = start_daemon_background()
    except SchedulerError as e:
        emit_error(f"Failed to start scheduler daemon: {e}")
        return False

    if result.status == SchedulerStatus.ALREADY_RUNNING:
        emit_warning(f"Scheduler daemon already running (PID {result.pid})")
        return False

    emit_success(f"Scheduler daemon started (PID {result.pid})")
    return True


def handle_stop() -> bool:
    """Stop the scheduler daemon."""
    from goldagent.scheduler.daemon import get_daemon_pid, stop_daemon

    try:
        pid = get_daemon_pid()
        if not pid:
            emit_info("Scheduler daemon is not running")
            return True

        emit_info(f"Stopping scheduler daemon (PID {pid})...")
        stopped = stop_daemon()
    except SchedulerError as e:
        emit_error(f"Failed to stop scheduler daemon: {e}")
        return False

    if stopped:
        emit_success("Scheduler daemon stopped")
        return True
    emit_error("Scheduler daemon did not exit in time")
    return False


def handle_status() -> bool:
    """Show scheduler daemon status."""
    from goldagent.scheduler.daemon import get_daemon_pid

    try:
        pid = get_daemon_pid()
        snapshot = _store().snapshot()
    except SchedulerError as e:
        emit_error(str(e))
        return False

    if pid:
        emit_success(f"Scheduler daemon: RUNNING (PID {pid})")
    else:
        emit_warning("Scheduler daemon: STOPPED")

    enabled_jobs = sum(1 for j in snapshot.jobs if j.enabled)
    enabled_hooks = sum(1 for h in snapshot.hooks if h.enabled)
    emit_info(f"Jobs: {len(snapshot.jobs)} total, {enabled_jobs} enabled")
    emit_info(f"Hooks: {len(snapshot.hooks)} total, {enabled_hooks} enabled")
    emit_info(f"Data root: {get_settings().home}")
    return True


def handle_reload() -> bool:
    """Make the daemon re-read the store (starting it if needed)."""
    from goldagent.scheduler.daemon import SchedulerStatus, reload_daemon

    try:
        result = reload_daemon()
    except SchedulerError as e:
        emit_error(f"Reload failed: {e}")
        return False
    if result.status == SchedulerStatus.STARTED:
        emit_success(f"Scheduler daemon was not running; started it (PID {result.pid})")
    else:
        emit_success(f"Scheduler daemon reloaded (PID {result.pid})")
    return True


# ----------------------------------------------------------------------
# Jobs
# ----------------------------------------------------------------------


def handle_jobs_add(
    schedule: str,
    command: str,
    name: Optional[str] = None,
    retry_max: int = 1,
) -> bool:
    try:
        job = _store().add_job(schedule, command, name=name, retry_max=retry_max)
    except SchedulerError as e:
        emit_error(f"Could not add job: {e}")
        return False

    emit_success(f"Added job {job.id} ({job.name})")
    _notify_daemon()
    return True


def handle_jobs_list() -> bool:
    """List all scheduled jobs."""
    try:
        jobs = _store().list_jobs()
    except SchedulerError as e:
        emit_error(str(e))
        return False

    if not jobs:
        emit_info("No scheduled jobs configured.")
        emit_info("Use 'goldagent jobs add <schedule> <command>' to create one.")
        return True

    rows = [
        [
            job.id,
            job.name,
            job.schedule_expr,
            "yes" if job.enabled else "no",
            job.last_run_at[:19] if job.last_run_at else "never",
            job.last_status.value,
            job.command,
        ]
        for job in jobs
    ]
    emit_table(
        f"Scheduled jobs ({len(jobs)})",
        ["ID", "Name", "Schedule", "Enabled", "Last run", "Status", "Command"],
        rows,
    )
    return True


def handle_jobs_remove(job_id: str) -> bool:
    store = _store()
    try:
        job = store.get_job(job_id)
        removed = job is not None and store.remove_job(job_id)
    except SchedulerError as e:
        emit_error(f"Could not remove job: {e}")
        return False

    if not removed:
        emit_error(f"No job with id {job_id}")
        return False
    emit_success(f"Removed job {job_id} ({job.name})")
    _notify_daemon()
    return True


# ----------------------------------------------------------------------
# Hooks
# ----------------------------------------------------------------------


def handle_hooks_add(
    kind: str,
    target: str,
    command: str,
    reference: Optional[str] = None,
    interval_secs: int = 30,
    name: Optional[str] = None,
    retry_max: int = 1,
) -> bool:
    try:
        hook = _store().add_hook(
            kind,
            target,
            command,
            reference=reference,
            interval_secs=interval_secs,
            name=name,
            retry_max=retry_max,
        )
    except SchedulerError as e:
        emit_error(f"Could not add hook: {e}")
        return False

    emit_success(f"Added {hook.kind.value} hook {hook.id} ({hook.name}) on {hook.target}")
    _notify_daemon()
    return True


def handle_hooks_list() -> bool:
    """List all hooks."""
    try:
        hooks = _store().list_hooks()
    except SchedulerError as e:
        emit_error(str(e))
        return False

    if not hooks:
        emit_info("No hooks configured.")
        emit_info("Use 'goldagent hooks add <git|perforce> <target> <command>' to create one.")
        return True

    rows = [
        [
            hook.id,
            hook.name,
            hook.kind.value,
            hook.target,
            hook.reference or "-",
            f"{hook.interval_secs}s",
            hook.detector_state.value,
            hook.last_seen_value or "-",
            hook.action_command,
        ]
        for hook in hooks
    ]
    emit_table(
        f"Hooks ({len(hooks)})",
        ["ID", "Name", "Kind", "Target", "Ref", "Interval", "State", "Last seen", "Command"],
        rows,
    )
    return True


def handle_hooks_remove(hook_id: str) -> bool:
    store = _store()
    try:
        hook = store.get_hook(hook_id)
        removed = hook is not None and store.remove_hook(hook_id)
    except SchedulerError as e:
        emit_error(f"Could not remove hook: {e}")
        return False

    if not removed:
        emit_error(f"No hook with id {hook_id}")
        return False
    emit_success(f"Removed hook {hook_id} ({hook.name})")
    _notify_daemon()
    return True
