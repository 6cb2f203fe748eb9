"""Hook change detection.

A hook watches a version-control signal (a git commit id or the newest
perforce changelist line) and fires its action when the signal changes.

Detector states:
    unknown  -> tracking   first successful read; value recorded, nothing fires
    tracking -> tracking   value differs from the last one: fire ("changed")
    (any)    -> (same)     read failed: state and last value are kept

Values are opaque tokens: they are only ever compared for equality.
"""

import logging
import shlex
from dataclasses import dataclass
from typing import Optional

from goldagent.scheduler.command_runner import ProcessRunner
from goldagent.scheduler.errors import ExecutionError, HookReadError
from goldagent.scheduler.models import DetectorState, Hook, HookKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Change:
    previous: str
    current: str


class ChangeDetector:
    """Per-hook state machine fed with successive signature reads."""

    def __init__(self, last_seen: Optional[str] = None, state: DetectorState = DetectorState.UNKNOWN):
        if last_seen is None:
            state = DetectorState.UNKNOWN
        self.last_seen = last_seen
        self.state = DetectorState(state)
        self.failures = 0

    @classmethod
    def for_hook(cls, hook: Hook) -> "ChangeDetector":
        return cls(hook.last_seen_value, hook.detector_state)

    def observe(self, value: str) -> Optional[Change]:
        """Feed a successful read. Returns the Change if the hook should fire."""
        self.failures = 0
        if self.state == DetectorState.UNKNOWN:
            self.last_seen = value
            self.state = DetectorState.TRACKING
            return None
        if value == self.last_seen:
            return None

        change = Change(previous=self.last_seen, current=value)
        self.last_seen = value
        # "changed" is transient; the detector is tracking again immediately
        self.state = DetectorState.TRACKING
        return change

    def record_failure(self, error: Exception) -> None:
        """A read failed; keep state and value, retry on the next poll."""
        self.failures += 1


def _first_line(text: str) -> str:
    return next((line.strip() for line in text.splitlines() if line.strip()), "")


def signature_command(hook: Hook) -> str:
    if hook.kind == HookKind.GIT:
        return f"git -C {shlex.quote(hook.target)} rev-parse {shlex.quote(hook.reference or 'HEAD')}"
    return f"p4 changes -m 1 {shlex.quote(hook.target)}"


def read_signature(hook: Hook, runner: ProcessRunner, timeout: float) -> str:
    """Read the hook's current change token.

    Raises:
        HookReadError: the target is unreachable, the tool failed or timed
            out, or it printed nothing usable.
    """
    command = signature_command(hook)
    try:
        result = runner.run(command, timeout=timeout)
    except ExecutionError as e:
        raise HookReadError(f"{hook.kind.value} read failed for {hook.target}: {e}") from e

    if result.timed_out:
        raise HookReadError(f"{hook.kind.value} read timed out after {timeout}s for {hook.target}")
    if result.exit_code != 0:
        detail = result.stderr.strip() or result.stdout.strip()
        raise HookReadError(
            f"{hook.kind.value} read exited {result.exit_code} for {hook.target}: {detail}"
        )

    signature = _first_line(result.stdout)
    if not signature:
        raise HookReadError(f"{hook.kind.value} read returned empty output for {hook.target}")
    return signature


def render_command_template(hook: Hook, previous: str, current: str) -> str:
    """Substitute ``${HOOK_*}`` placeholders in the hook's action command."""
    replacements = {
        "${HOOK_ID}": hook.id,
        "${HOOK_NAME}": hook.name,
        "${HOOK_SOURCE}": hook.kind.value,
        "${HOOK_TARGET}": hook.target,
        "${HOOK_REF}": hook.reference or "HEAD",
        "${HOOK_PREVIOUS}": previous,
        "${HOOK_CURRENT}": current,
    }
    command = hook.action_command
    for placeholder, value in replacements.items():
        command = command.replace(placeholder, value)
    return command
