"""Error taxonomy for the scheduler.

Parse and validation errors surface immediately to the caller. Execution
errors are recorded against the job or hook that produced them and never stop
the scheduler loop. Lifecycle errors only abort the start/serve attempt.
"""

from typing import Optional


class SchedulerError(Exception):
    """Base class for all scheduler errors."""


class ParseError(SchedulerError):
    """A cron expression or directive payload could not be parsed."""

    def __init__(self, reason: str, field_index: Optional[int] = None):
        self.reason = reason
        self.field_index = field_index
        if field_index is None:
            super().__init__(reason)
        else:
            super().__init__(f"field {field_index}: {reason}")


class ValidationError(SchedulerError):
    """A directive or CLI argument is missing or has the wrong type."""


class StoreIOError(SchedulerError):
    """The schedule store could not be read, written or locked."""


class ExecutionError(SchedulerError):
    """A child process could not be spawned or did not complete cleanly."""


class HookReadError(ExecutionError):
    """A hook's change signature could not be read (transient)."""


class LifecycleError(SchedulerError):
    """The daemon lock could not be acquired, detected or cleaned up."""
