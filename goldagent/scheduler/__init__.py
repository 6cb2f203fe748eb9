"""GoldAgent Scheduler - run shell commands on cron schedules and VCS changes.

Components:
    - cron: 5/6-field cron expression parsing and matching
    - store: Job and hook definitions with locked JSON persistence
    - hooks: Git/Perforce change detection
    - executor: Command execution, retries and outcome recording
    - loop: The shared tick loop of the daemon
    - daemon: Single-instance background process management
"""

from goldagent.scheduler.daemon import (
    LifecycleResult,
    SchedulerStatus,
    get_daemon_pid,
    reload_daemon,
    start_daemon_background,
    stop_daemon,
)
from goldagent.scheduler.errors import (
    ExecutionError,
    HookReadError,
    LifecycleError,
    ParseError,
    SchedulerError,
    StoreIOError,
    ValidationError,
)
from goldagent.scheduler.models import DetectorState, Hook, HookKind, Job, RunStatus
from goldagent.scheduler.store import ScheduleStore

__all__ = [
    "DetectorState",
    "ExecutionError",
    "Hook",
    "HookKind",
    "HookReadError",
    "Job",
    "LifecycleError",
    "LifecycleResult",
    "ParseError",
    "RunStatus",
    "ScheduleStore",
    "SchedulerError",
    "SchedulerStatus",
    "StoreIOError",
    "ValidationError",
    "get_daemon_pid",
    "reload_daemon",
    "start_daemon_background",
    "stop_daemon",
]
