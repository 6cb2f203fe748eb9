"""Process runner used by the executor and hook signature reads.

``ProcessRunner`` is the seam: production code uses ``SubprocessRunner``,
tests hand in a fake that returns scripted ``ProcessResult`` values.
"""

import logging
import os
import signal
import subprocess
import threading
import time
from dataclasses import dataclass
from typing import Dict, Optional, Protocol, Set

from goldagent.scheduler.errors import ExecutionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessResult:
    exit_code: Optional[int]
    stdout: str
    stderr: str
    duration: float
    timed_out: bool = False


class ProcessRunner(Protocol):
    """Runs a shell command line to completion (or timeout)."""

    def run(
        self,
        command: str,
        env: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> ProcessResult:
        ...

    def terminate_all(self) -> int:
        ...


def _kill_process_group(proc: subprocess.Popen) -> None:
    """Terminate a child and everything it spawned.

    Children are started in their own session, so the process group id is
    the child's pid. SIGTERM first, SIGKILL if it lingers.
    """
    try:
        pgid = os.getpgid(proc.pid)
        os.killpg(pgid, signal.SIGTERM)
        try:
            proc.wait(timeout=1.0)
        except subprocess.TimeoutExpired:
            os.killpg(pgid, signal.SIGKILL)
    except OSError:
        try:
            if proc.poll() is None:
                proc.kill()
        except OSError:
            pass


class SubprocessRunner:
    """Run commands through ``/bin/sh -c`` in a fresh process group."""

    def __init__(self):
        self._running: Set[subprocess.Popen] = set()
        self._lock = threading.Lock()

    def run(
        self,
        command: str,
        env: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> ProcessResult:
        child_env = os.environ.copy()
        if env:
            child_env.update(env)

        started = time.monotonic()
        try:
            proc = subprocess.Popen(
                command,
                shell=True,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=child_env,
                start_new_session=True,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as e:
            raise ExecutionError(f"failed to spawn {command!r}: {e}") from e

        with self._lock:
            self._running.add(proc)
        try:
            try:
                stdout, stderr = proc.communicate(timeout=timeout)
                timed_out = False
            except subprocess.TimeoutExpired:
                logger.warning("Command exceeded %ss, killing: %s", timeout, command)
                _kill_process_group(proc)
                stdout, stderr = proc.communicate()
                timed_out = True
        finally:
            with self._lock:
                self._running.discard(proc)

        return ProcessResult(
            exit_code=proc.returncode,
            stdout=stdout or "",
            stderr=stderr or "",
            duration=time.monotonic() - started,
            timed_out=timed_out,
        )

    def terminate_all(self) -> int:
        """Kill every child still running. Returns how many were signalled."""
        with self._lock:
            procs = list(self._running)
        for proc in procs:
            _kill_process_group(proc)
        return len(procs)
