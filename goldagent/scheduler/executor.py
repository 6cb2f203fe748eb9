"""Executor for scheduled jobs and hook actions.

Runs the configured command through the process runner with identifying
environment variables, classifies the outcome, appends a record to the
entity's log file and writes the status back to the store. Command failures
never escape as exceptions; they become a status value.
"""

import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

from pydantic import BaseModel

from goldagent.scheduler.command_runner import ProcessRunner
from goldagent.scheduler.errors import ExecutionError, StoreIOError
from goldagent.scheduler.hooks import Change, render_command_template
from goldagent.scheduler.models import DetectorState, Hook, Job, RunStatus
from goldagent.scheduler.store import ScheduleStore
from goldagent.settings import SchedulerSettings

logger = logging.getLogger(__name__)


class ExecutionResult(BaseModel):
    exit_code: Optional[int]
    stdout: str = ""
    stderr: str = ""
    duration: float = 0.0
    status: RunStatus
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == RunStatus.SUCCESS


class Executor:
    """Runs commands for due jobs and fired hooks."""

    def __init__(
        self,
        settings: SchedulerSettings,
        store: ScheduleStore,
        runner: ProcessRunner,
        stop_event: Optional[threading.Event] = None,
    ):
        self.settings = settings
        self.store = store
        self.runner = runner
        self.stop_event = stop_event or threading.Event()

    def run(self, command: str, env: Optional[Dict[str, str]] = None) -> ExecutionResult:
        """Run one command once, bounded by ``command_timeout``."""
        try:
            result = self.runner.run(command, env=env, timeout=self.settings.command_timeout)
        except ExecutionError as e:
            return ExecutionResult(exit_code=None, status=RunStatus.FAILURE, error=str(e))

        if result.timed_out:
            status = RunStatus.TIMEOUT
            error = f"timed out after {self.settings.command_timeout}s"
        elif result.exit_code == 0:
            status = RunStatus.SUCCESS
            error = None
        else:
            status = RunStatus.FAILURE
            error = f"exited with code {result.exit_code}"

        return ExecutionResult(
            exit_code=result.exit_code,
            stdout=result.stdout,
            stderr=result.stderr,
            duration=result.duration,
            status=status,
            error=error,
        )

    def _base_env(self, entity_id: str, kind: str, triggered_at: datetime) -> Dict[str, str]:
        return {
            "GOLDAGENT_ENTITY_ID": entity_id,
            "GOLDAGENT_ENTITY_KIND": kind,
            "GOLDAGENT_TRIGGER_TS": triggered_at.isoformat(timespec="seconds"),
            "GOLDAGENT_HOME": str(self.settings.home),
        }

    def _run_with_retry(
        self,
        entity_id: str,
        label: str,
        command: str,
        env: Dict[str, str],
        retry_max: int,
    ) -> ExecutionResult:
        attempts = retry_max + 1
        result = None
        for attempt in range(1, attempts + 1):
            result = self.run(command, env)
            self._append_log(entity_id, label, command, attempt, attempts, result)
            if result.success or result.status == RunStatus.TIMEOUT:
                break
            if attempt < attempts:
                logger.warning(
                    "%s failed (attempt %d/%d): %s", label, attempt, attempts, result.error
                )
                if self.stop_event.wait(self.settings.retry_delay):
                    break
        return result

    def run_job(self, job: Job, triggered_at: datetime) -> ExecutionResult:
        """Run a due job from the caller's snapshot and record the outcome."""
        label = f"job {job.id} ({job.name})"
        logger.info("Running %s: %s", label, job.command)
        env = self._base_env(job.id, "job", triggered_at)
        result = self._run_with_retry(job.id, label, job.command, env, job.retry_max)

        if result.success:
            logger.info("%s succeeded in %.1fs", label, result.duration)
        else:
            logger.warning("%s finished with status %s: %s", label, result.status.value, result.error)

        try:
            if not self.store.update_job_status(
                job.id, result.status, triggered_at.isoformat(timespec="seconds"), result.exit_code
            ):
                logger.info("%s was removed while running; outcome not recorded", label)
        except StoreIOError as e:
            logger.error("Could not record outcome of %s: %s", label, e)
        return result

    def run_hook(self, hook: Hook, change: Change, triggered_at: datetime) -> ExecutionResult:
        """Run a hook's action for one detected change and record the outcome."""
        label = f"hook {hook.id} ({hook.name})"
        command = render_command_template(hook, change.previous, change.current)
        logger.info("Running %s for %s -> %s", label, change.previous, change.current)
        env = self._base_env(hook.id, "hook", triggered_at)
        env["GOLDAGENT_HOOK_PREVIOUS"] = change.previous
        env["GOLDAGENT_HOOK_CURRENT"] = change.current
        result = self._run_with_retry(hook.id, label, command, env, hook.retry_max)

        if not result.success:
            logger.warning("%s finished with status %s: %s", label, result.status.value, result.error)

        try:
            self.store.update_hook_state(
                hook.id,
                change.current,
                DetectorState.TRACKING,
                triggered_at=triggered_at.isoformat(timespec="seconds"),
                status=result.status,
            )
        except StoreIOError as e:
            logger.error("Could not record outcome of %s: %s", label, e)
        return result

    def _append_log(
        self,
        entity_id: str,
        label: str,
        command: str,
        attempt: int,
        attempts: int,
        result: ExecutionResult,
    ) -> None:
        log_file = Path(self.settings.logs_dir) / f"{entity_id}.log"
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
            with open(log_file, "a", encoding="utf-8") as log_f:
                log_f.write(f"\n{'=' * 60}\n")
                log_f.write(f"{label} attempt {attempt}/{attempts}\n")
                log_f.write(f"Finished: {datetime.now().isoformat(timespec='seconds')}\n")
                log_f.write(f"Command: {command}\n")
                log_f.write(f"{'=' * 60}\n")
                if result.stdout:
                    log_f.write(f"stdout:\n{result.stdout}\n")
                if result.stderr:
                    log_f.write(f"stderr:\n{result.stderr}\n")
                if result.error:
                    log_f.write(f"error: {result.error}\n")
                log_f.write(
                    f"Exit Code: {result.exit_code} Status: {result.status.value} "
                    f"Duration: {result.duration:.2f}s\n"
                )
        except OSError as e:
            logger.warning("Could not write log for %s: %s", label, e)
