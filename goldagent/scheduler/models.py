"""Job and hook record definitions.

Both records round-trip through JSON via ``to_dict``/``from_dict``; unknown
keys in the store file are ignored so older daemons can read newer files.
"""

import os
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class RunStatus(str, Enum):
    """Outcome of the most recent execution of a job or hook action."""

    NEVER_RUN = "never_run"
    SUCCESS = "success"
    FAILURE = "failure"
    TIMEOUT = "timeout"


class HookKind(str, Enum):
    GIT = "git"
    PERFORCE = "perforce"


class DetectorState(str, Enum):
    UNKNOWN = "unknown"
    TRACKING = "tracking"
    CHANGED = "changed"


def new_id(prefix: str) -> str:
    """Time-ordered random identifier, e.g. ``job-018f3c2a9b1e-7c41d2e0a9b3``.

    Millisecond timestamp followed by 48 random bits, so ids minted by
    separate processes in the same millisecond still differ.
    """
    millis = int(time.time() * 1000)
    return f"{prefix}-{millis:012x}-{os.urandom(6).hex()}"


def _now() -> str:
    return datetime.now().isoformat(timespec="seconds")


@dataclass
class Job:
    """A command run on a cron schedule."""

    schedule_expr: str
    command: str
    id: str = field(default_factory=lambda: new_id("job"))
    name: str = ""
    enabled: bool = True
    retry_max: int = 1
    created_at: str = field(default_factory=_now)
    last_run_at: Optional[str] = None
    last_status: RunStatus = RunStatus.NEVER_RUN
    last_exit_code: Optional[int] = None

    def __post_init__(self):
        if not self.name:
            self.name = self.id
        self.last_status = RunStatus(self.last_status)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["last_status"] = self.last_status.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Job":
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class Hook:
    """A watcher that fires ``action_command`` when a VCS signature changes."""

    kind: HookKind
    target: str
    action_command: str
    id: str = field(default_factory=lambda: new_id("hook"))
    name: str = ""
    reference: Optional[str] = None
    interval_secs: int = 30
    enabled: bool = True
    retry_max: int = 1
    created_at: str = field(default_factory=_now)
    last_seen_value: Optional[str] = None
    detector_state: DetectorState = DetectorState.UNKNOWN
    last_triggered_at: Optional[str] = None
    last_status: RunStatus = RunStatus.NEVER_RUN

    def __post_init__(self):
        if not self.name:
            self.name = self.id
        self.kind = HookKind(self.kind)
        self.detector_state = DetectorState(self.detector_state)
        self.last_status = RunStatus(self.last_status)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["kind"] = self.kind.value
        data["detector_state"] = self.detector_state.value
        data["last_status"] = self.last_status.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Hook":
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})
