"""Persisted schedule store.

One JSON file per data root holds every job and hook. The file is the
single source of truth: every mutation is a read-modify-write performed
while holding an exclusive ``fcntl.flock`` on a sidecar lock file, and the
new contents are written to a temp file and renamed into place so that a
reloading daemon never sees a half-written store.
"""

import fcntl
import json
import logging
import os
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Tuple

from goldagent.scheduler import cron
from goldagent.scheduler.errors import StoreIOError, ValidationError
from goldagent.scheduler.models import (
    DetectorState,
    Hook,
    HookKind,
    Job,
    RunStatus,
)

logger = logging.getLogger(__name__)

STORE_VERSION = 1
MAX_RETRY = 10


@dataclass(frozen=True)
class Snapshot:
    """Immutable view of the store at one instant."""

    jobs: Tuple[Job, ...]
    hooks: Tuple[Hook, ...]


class ScheduleStore:
    """CRUD over the schedule file with cross-process locking."""

    def __init__(self, path: Path, lock_path: Optional[Path] = None):
        self.path = Path(path)
        self.lock_path = Path(lock_path) if lock_path else self.path.with_name(self.path.name + ".lock")

    @classmethod
    def from_settings(cls, settings) -> "ScheduleStore":
        return cls(settings.store_file, settings.store_lock_file)

    # ------------------------------------------------------------------
    # Locking and raw I/O
    # ------------------------------------------------------------------

    @contextmanager
    def _locked(self, exclusive: bool = True) -> Iterator[None]:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
            lock_f = open(self.lock_path, "a")
        except OSError as e:
            raise StoreIOError(f"cannot open lock file {self.lock_path}: {e}") from e
        try:
            try:
                fcntl.flock(lock_f.fileno(), fcntl.LOCK_EX if exclusive else fcntl.LOCK_SH)
            except OSError as e:
                raise StoreIOError(f"cannot lock {self.lock_path}: {e}") from e
            try:
                yield
            finally:
                fcntl.flock(lock_f.fileno(), fcntl.LOCK_UN)
        finally:
            lock_f.close()

    def _read(self) -> Tuple[List[Job], List[Hook]]:
        if not self.path.exists():
            return [], []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise StoreIOError(f"store file {self.path} is corrupt: {e}") from e
        except OSError as e:
            raise StoreIOError(f"cannot read store file {self.path}: {e}") from e

        if isinstance(data, list):
            # Bare list of jobs, as written by early versions
            data = {"jobs": data, "hooks": []}
        try:
            jobs = [Job.from_dict(j) for j in data.get("jobs", [])]
            hooks = [Hook.from_dict(h) for h in data.get("hooks", [])]
        except (TypeError, ValueError) as e:
            raise StoreIOError(f"store file {self.path} has invalid records: {e}") from e
        return jobs, hooks

    def _write(self, jobs: List[Job], hooks: List[Hook]) -> None:
        payload = {
            "version": STORE_VERSION,
            "updated_at": datetime.now().isoformat(timespec="seconds"),
            "jobs": [j.to_dict() for j in jobs],
            "hooks": [h.to_dict() for h in hooks],
        }
        try:
            fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), prefix=".schedule_", suffix=".tmp")
        except OSError as e:
            raise StoreIOError(f"cannot create temp file next to {self.path}: {e}") from e
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except BaseException as e:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            if isinstance(e, OSError):
                raise StoreIOError(f"cannot write store file {self.path}: {e}") from e
            raise

    @contextmanager
    def _transaction(self) -> Iterator[Tuple[List[Job], List[Hook]]]:
        """Yield mutable job/hook lists; they are written back on clean exit."""
        with self._locked(exclusive=True):
            jobs, hooks = self._read()
            yield jobs, hooks
            self._write(jobs, hooks)

    def _taken_ids(self, jobs: List[Job], hooks: List[Hook]) -> set:
        return {j.id for j in jobs} | {h.id for h in hooks}

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def snapshot(self) -> Snapshot:
        with self._locked(exclusive=False):
            jobs, hooks = self._read()
        return Snapshot(jobs=tuple(jobs), hooks=tuple(hooks))

    def list_jobs(self) -> List[Job]:
        return list(self.snapshot().jobs)

    def list_hooks(self) -> List[Hook]:
        return list(self.snapshot().hooks)

    def get_job(self, job_id: str) -> Optional[Job]:
        return next((j for j in self.list_jobs() if j.id == job_id), None)

    def get_hook(self, hook_id: str) -> Optional[Hook]:
        return next((h for h in self.list_hooks() if h.id == hook_id), None)

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    def add_job(
        self,
        schedule: str,
        command: str,
        name: Optional[str] = None,
        retry_max: int = 1,
    ) -> Job:
        """Validate and persist a new job.

        Raises:
            ParseError: the schedule is not valid cron.
            ValidationError: the command is empty or retry_max out of range.
        """
        cron.validate(schedule)
        if not command or not command.strip():
            raise ValidationError("job command must not be empty")
        _check_retry(retry_max)

        with self._transaction() as (jobs, hooks):
            taken = self._taken_ids(jobs, hooks)
            job = Job(schedule_expr=schedule.strip(), command=command, name=name or "", retry_max=retry_max)
            while job.id in taken:
                job = Job(schedule_expr=schedule.strip(), command=command, name=name or "", retry_max=retry_max)
            jobs.append(job)
        logger.info("Added job %s (%s)", job.id, job.schedule_expr)
        return job

    def remove_job(self, job_id: str) -> bool:
        return self._remove(job_id, hooks=False)

    def update_job_status(
        self,
        job_id: str,
        status: RunStatus,
        ran_at: str,
        exit_code: Optional[int] = None,
    ) -> bool:
        """Record a run outcome. Used by the executor only.

        Returns False if the job was removed while it was running.
        """
        def apply(job: Job) -> None:
            job.last_status = RunStatus(status)
            job.last_run_at = ran_at
            job.last_exit_code = exit_code

        return self._update(job_id, apply, hooks=False)

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def add_hook(
        self,
        kind: str,
        target: str,
        command: str,
        reference: Optional[str] = None,
        interval_secs: int = 30,
        name: Optional[str] = None,
        retry_max: int = 1,
    ) -> Hook:
        try:
            kind = HookKind(kind)
        except ValueError:
            raise ValidationError(f"unknown hook kind {kind!r}, expected 'git' or 'perforce'") from None
        if not target or not target.strip():
            raise ValidationError("hook target must not be empty")
        if not command or not command.strip():
            raise ValidationError("hook command must not be empty")
        if isinstance(interval_secs, bool) or not isinstance(interval_secs, int) or interval_secs < 1:
            raise ValidationError(f"invalid interval {interval_secs!r}, expected >= 1 second")
        if kind == HookKind.PERFORCE and reference:
            raise ValidationError("perforce hooks do not take a reference")
        _check_retry(retry_max)

        def build() -> Hook:
            return Hook(
                kind=kind,
                target=target.strip(),
                action_command=command,
                name=name or "",
                reference=reference,
                interval_secs=interval_secs,
                retry_max=retry_max,
            )

        with self._transaction() as (jobs, hooks):
            taken = self._taken_ids(jobs, hooks)
            hook = build()
            while hook.id in taken:
                hook = build()
            hooks.append(hook)
        logger.info("Added %s hook %s on %s", hook.kind.value, hook.id, hook.target)
        return hook

    def remove_hook(self, hook_id: str) -> bool:
        return self._remove(hook_id, hooks=True)

    def update_hook_state(
        self,
        hook_id: str,
        last_seen_value: Optional[str],
        detector_state: DetectorState,
        triggered_at: Optional[str] = None,
        status: Optional[RunStatus] = None,
    ) -> bool:
        """Persist detector progress and, after a firing, its outcome."""
        def apply(hook: Hook) -> None:
            hook.last_seen_value = last_seen_value
            hook.detector_state = DetectorState(detector_state)
            if triggered_at is not None:
                hook.last_triggered_at = triggered_at
            if status is not None:
                hook.last_status = RunStatus(status)

        return self._update(hook_id, apply, hooks=True)

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    def _remove(self, entity_id: str, hooks: bool) -> bool:
        with self._locked(exclusive=True):
            job_list, hook_list = self._read()
            items = hook_list if hooks else job_list
            kept = [item for item in items if item.id != entity_id]
            if len(kept) == len(items):
                return False
            if hooks:
                self._write(job_list, kept)
            else:
                self._write(kept, hook_list)
        logger.info("Removed %s %s", "hook" if hooks else "job", entity_id)
        return True

    def _update(self, entity_id: str, apply: Callable, hooks: bool) -> bool:
        with self._locked(exclusive=True):
            job_list, hook_list = self._read()
            items = hook_list if hooks else job_list
            for item in items:
                if item.id == entity_id:
                    apply(item)
                    self._write(job_list, hook_list)
                    return True
        return False


def _check_retry(retry_max: int) -> None:
    if isinstance(retry_max, bool) or not isinstance(retry_max, int) or not 0 <= retry_max <= MAX_RETRY:
        raise ValidationError(f"retry_max must be an integer between 0 and {MAX_RETRY}")
