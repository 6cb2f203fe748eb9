"""Local action directives embedded in generated chat responses.

A response may carry one control line of the form::

    [[LOCAL_ACTION:{"op": "add_job", "schedule": "0 9 * * 1-5", "command": "echo hi"}]]

The line is cut out of the text, its payload is parsed into one of six
strictly-typed action models and applied to the schedule store. The rest of
the response is always delivered; the outcome (or the reason the directive
was rejected) is appended to it as a note.
"""

import json
import logging
from typing import Annotated, Callable, List, Literal, Optional, Tuple, Union

import pydantic
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from goldagent.scheduler.daemon import LifecycleResult, SchedulerStatus, reload_daemon
from goldagent.scheduler.errors import ParseError, SchedulerError, ValidationError
from goldagent.scheduler.store import MAX_RETRY, ScheduleStore
from goldagent.settings import get_settings

logger = logging.getLogger(__name__)

LOCAL_ACTION_PREFIX = "[[LOCAL_ACTION:"
LOCAL_ACTION_SUFFIX = "]]"


class _Action(BaseModel):
    model_config = ConfigDict(extra="forbid", strict=True, frozen=True)


class AddJobAction(_Action):
    op: Literal["add_job"]
    schedule: str = Field(min_length=1)
    command: str = Field(min_length=1)
    name: Optional[str] = None
    retry_max: int = Field(default=1, ge=0, le=MAX_RETRY)


class RemoveJobAction(_Action):
    op: Literal["remove_job"]
    id: str = Field(min_length=1)


class ListJobsAction(_Action):
    op: Literal["list_jobs"]


class AddHookAction(_Action):
    op: Literal["add_hook"]
    kind: Literal["git", "perforce"]
    target: str = Field(min_length=1)
    command: str = Field(min_length=1)
    reference: Optional[str] = None
    interval_secs: int = Field(default=30, ge=1)
    name: Optional[str] = None
    retry_max: int = Field(default=1, ge=0, le=MAX_RETRY)


class RemoveHookAction(_Action):
    op: Literal["remove_hook"]
    id: str = Field(min_length=1)


class ListHooksAction(_Action):
    op: Literal["list_hooks"]


LocalAction = Annotated[
    Union[
        AddJobAction,
        RemoveJobAction,
        ListJobsAction,
        AddHookAction,
        RemoveHookAction,
        ListHooksAction,
    ],
    Field(discriminator="op"),
]

_action_adapter: TypeAdapter = TypeAdapter(LocalAction)


class ActionAck(BaseModel):
    """Outcome of one applied directive, surfaced back into the conversation."""

    success: bool
    op: str
    affected_id: Optional[str] = None
    message: str


class DispatchResult(BaseModel):
    """What the chat loop shows the user: text plus the directive outcome."""

    text: str
    ack: Optional[ActionAck] = None
    error: Optional[str] = None


def _describe_validation_error(err: pydantic.ValidationError) -> str:
    parts = []
    for item in err.errors():
        loc = ".".join(str(p) for p in item.get("loc", ())) or "payload"
        parts.append(f"{loc}: {item.get('msg')}")
    return "; ".join(parts)


def parse_local_action(payload: str):
    """Parse a directive payload into its typed action model.

    Raises:
        ParseError: the payload is not valid JSON.
        ValidationError: unknown or missing ``op``, missing or mistyped
            fields, or fields the op does not accept.
    """
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise ParseError(f"directive payload is not valid JSON: {e.msg} (column {e.colno})") from e
    if not isinstance(data, dict):
        raise ValidationError("directive payload must be a JSON object with an 'op' field")
    try:
        return _action_adapter.validate_python(data)
    except pydantic.ValidationError as e:
        raise ValidationError(f"invalid directive: {_describe_validation_error(e)}") from e


def extract_local_action(raw: str) -> Tuple[Optional[_Action], str, Optional[SchedulerError]]:
    """Split a response into (action, remaining text, rejection error).

    Only the first directive line is interpreted; later ones are left in the
    text untouched.
    """
    action = None
    error = None
    seen = False
    kept: List[str] = []

    for line in raw.splitlines():
        stripped = line.strip()
        if (
            not seen
            and stripped.startswith(LOCAL_ACTION_PREFIX)
            and stripped.endswith(LOCAL_ACTION_SUFFIX)
        ):
            seen = True
            payload = stripped[len(LOCAL_ACTION_PREFIX):-len(LOCAL_ACTION_SUFFIX)]
            try:
                action = parse_local_action(payload)
            except SchedulerError as e:
                error = e
            continue
        kept.append(line)

    return action, "\n".join(kept).strip(), error


def _append_note(text: str, note: str) -> str:
    return f"{text}\n\n{note}" if text else note


class ActionDispatcher:
    """Applies parsed directives to the schedule store."""

    def __init__(
        self,
        store: ScheduleStore,
        notifier: Optional[Callable[[], LifecycleResult]] = None,
    ):
        self.store = store
        self.notifier = notifier or reload_daemon

    def dispatch(self, raw: str) -> DispatchResult:
        action, text, error = extract_local_action(raw)
        if error is not None:
            logger.warning("Rejected local action directive: %s", error)
            return DispatchResult(
                text=_append_note(text, f"[local action rejected: {error}]"),
                error=str(error),
            )
        if action is None:
            return DispatchResult(text=text)

        try:
            ack = self.apply(action)
        except SchedulerError as e:
            logger.warning("Local action %s failed: %s", action.op, e)
            ack = ActionAck(success=False, op=action.op, message=f"[local action failed: {e}]")

        return DispatchResult(
            text=_append_note(text, ack.message),
            ack=ack,
            error=None if ack.success else ack.message,
        )

    def apply(self, action: _Action) -> ActionAck:
        if isinstance(action, AddJobAction):
            job = self.store.add_job(action.schedule, action.command, action.name, action.retry_max)
            message = (
                f"Created job {job.id} | {job.name} | {job.schedule_expr} | "
                f"retry={job.retry_max} | {job.command}"
            )
            return self._mutated(action.op, job.id, message)

        if isinstance(action, AddHookAction):
            hook = self.store.add_hook(
                action.kind,
                action.target,
                action.command,
                reference=action.reference,
                interval_secs=action.interval_secs,
                name=action.name,
                retry_max=action.retry_max,
            )
            message = (
                f"Created {hook.kind.value} hook {hook.id} | {hook.name} | {hook.target} | "
                f"interval={hook.interval_secs}s | retry={hook.retry_max} | {hook.action_command}"
            )
            return self._mutated(action.op, hook.id, message)

        if isinstance(action, RemoveJobAction):
            if not self.store.remove_job(action.id):
                return ActionAck(success=False, op=action.op, affected_id=action.id,
                                 message=f"No job with id {action.id}")
            return self._mutated(action.op, action.id, f"Removed job {action.id}")

        if isinstance(action, RemoveHookAction):
            if not self.store.remove_hook(action.id):
                return ActionAck(success=False, op=action.op, affected_id=action.id,
                                 message=f"No hook with id {action.id}")
            return self._mutated(action.op, action.id, f"Removed hook {action.id}")

        if isinstance(action, ListJobsAction):
            jobs = self.store.list_jobs()
            if not jobs:
                return ActionAck(success=True, op=action.op, message="No scheduled jobs.")
            lines = ["Scheduled jobs:"]
            for job in jobs:
                lines.append(
                    f"- {job.id} | {job.name} | {job.schedule_expr} | "
                    f"retry={job.retry_max} | {job.last_status.value} | {job.command}"
                )
            return ActionAck(success=True, op=action.op, message="\n".join(lines))

        if isinstance(action, ListHooksAction):
            hooks = self.store.list_hooks()
            if not hooks:
                return ActionAck(success=True, op=action.op, message="No hooks.")
            lines = ["Hooks:"]
            for hook in hooks:
                lines.append(
                    f"- {hook.id} | {hook.name} | {hook.kind.value} | target={hook.target} | "
                    f"ref={hook.reference or '-'} | interval={hook.interval_secs}s | "
                    f"retry={hook.retry_max} | {hook.action_command}"
                )
            return ActionAck(success=True, op=action.op, message="\n".join(lines))

        raise ValidationError(f"unsupported action {action!r}")

    def _mutated(self, op: str, affected_id: str, message: str) -> ActionAck:
        return ActionAck(
            success=True,
            op=op,
            affected_id=affected_id,
            message=f"{message}\n{self._scheduler_note()}",
        )

    def _scheduler_note(self) -> str:
        try:
            result = self.notifier()
        except SchedulerError as e:
            logger.warning("Store changed but scheduler notification failed: %s", e)
            return (
                f"Warning: the change was saved, but the scheduler could not be "
                f"started: {e}. Run `goldagent start` manually."
            )
        if result.status == SchedulerStatus.STARTED:
            return f"Started the scheduler (pid={result.pid})."
        return f"Reloaded the scheduler to apply the change (pid={result.pid})."


def dispatch_response(
    raw: str,
    store: Optional[ScheduleStore] = None,
    notifier: Optional[Callable[[], LifecycleResult]] = None,
) -> DispatchResult:
    """Extract and apply the directive in ``raw`` against the configured store."""
    store = store or ScheduleStore.from_settings(get_settings())
    return ActionDispatcher(store, notifier).dispatch(raw)
