"""Scheduler loop.

One shared tick drives both cron jobs and hook polling. Each tick computes
the due set from an immutable snapshot of the store and hands every due item
to a bounded thread pool, so a slow command never delays the next tick. Tick
evaluation itself runs only on the loop thread and is never concurrent with
itself.

The loop owns no global state: everything it needs lives in the
``DaemonContext`` built at startup and passed in explicitly.
"""

import logging
import math
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

from goldagent.scheduler import cron
from goldagent.scheduler.command_runner import ProcessRunner, SubprocessRunner
from goldagent.scheduler.errors import HookReadError, ParseError, StoreIOError
from goldagent.scheduler.executor import Executor
from goldagent.scheduler.hooks import ChangeDetector, read_signature
from goldagent.scheduler.models import Hook, Job
from goldagent.scheduler.store import ScheduleStore, Snapshot
from goldagent.settings import SchedulerSettings

logger = logging.getLogger(__name__)

# Longest window of missed seconds evaluated after a late wake-up
MAX_CATCHUP_SECONDS = 120


@dataclass
class DaemonContext:
    """Process-owned state of a running daemon."""

    settings: SchedulerSettings
    store: ScheduleStore
    runner: ProcessRunner
    executor: Executor
    stop_event: threading.Event = field(default_factory=threading.Event)
    clock: Callable[[], datetime] = datetime.now

    @classmethod
    def create(
        cls,
        settings: SchedulerSettings,
        runner: Optional[ProcessRunner] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> "DaemonContext":
        store = ScheduleStore.from_settings(settings)
        runner = runner or SubprocessRunner()
        stop_event = threading.Event()
        executor = Executor(settings, store, runner, stop_event)
        return cls(settings, store, runner, executor, stop_event, clock)


@dataclass(frozen=True)
class ScheduledJob:
    job: Job
    schedule: cron.ParsedSchedule


def compute_tick_interval(jobs: Iterable[ScheduledJob], hooks: Iterable[Hook]) -> int:
    """Seconds between ticks: fine enough for the finest schedule."""
    if any(sj.schedule.needs_second_resolution for sj in jobs):
        return 1
    interval = 60
    for hook in hooks:
        interval = math.gcd(interval, hook.interval_secs)
    return max(interval, 1)


def due_jobs(
    jobs: Iterable[ScheduledJob],
    since: Optional[datetime],
    now: datetime,
) -> List[Job]:
    """Jobs matching any whole second in ``(since, now]``; each at most once."""
    end = now.replace(microsecond=0)
    if since is None:
        start = end
    else:
        start = since.replace(microsecond=0) + timedelta(seconds=1)
        start = max(start, end - timedelta(seconds=MAX_CATCHUP_SECONDS - 1))

    instants: List[datetime] = []
    t = start
    while t <= end:
        instants.append(t)
        t += timedelta(seconds=1)

    return [sj.job for sj in jobs if any(sj.schedule.matches(i) for i in instants)]


class SchedulerLoop:
    """Fixed-cadence tick loop over a reloadable snapshot."""

    def __init__(self, ctx: DaemonContext):
        self.ctx = ctx
        self._pool = ThreadPoolExecutor(
            max_workers=ctx.settings.max_concurrency, thread_name_prefix="goldagent_run"
        )
        self._futures: Set[Future] = set()
        self._futures_lock = threading.Lock()

        self._jobs: Tuple[ScheduledJob, ...] = ()
        self._hooks: Tuple[Hook, ...] = ()
        self._detectors: Dict[str, ChangeDetector] = {}
        self._last_poll: Dict[str, float] = {}
        self._inflight_hooks: Set[str] = set()
        self._inflight_lock = threading.Lock()

        self._generation: Optional[str] = None
        self._loaded = False
        self._last_tick: Optional[datetime] = None
        self.tick_interval = 60

    # ------------------------------------------------------------------
    # Snapshot handling
    # ------------------------------------------------------------------

    def _read_generation(self) -> Optional[str]:
        try:
            return self.ctx.settings.generation_file.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning("Could not read generation marker: %s", e)
            return self._generation

    def reload(self) -> None:
        """Replace the in-memory snapshot with the store's current contents."""
        generation = self._read_generation()
        snapshot: Snapshot = self.ctx.store.snapshot()

        jobs = []
        for job in snapshot.jobs:
            if not job.enabled:
                continue
            try:
                jobs.append(ScheduledJob(job, cron.parse(job.schedule_expr)))
            except ParseError as e:
                logger.error("Skipping job %s with invalid schedule %r: %s", job.id, job.schedule_expr, e)
        hooks = tuple(h for h in snapshot.hooks if h.enabled)

        detectors = {}
        for hook in hooks:
            detectors[hook.id] = self._detectors.get(hook.id) or ChangeDetector.for_hook(hook)
        last_poll = {h.id: self._last_poll[h.id] for h in hooks if h.id in self._last_poll}

        # Swap everything at once; the tick only reads these attributes
        self._jobs = tuple(jobs)
        self._hooks = hooks
        self._detectors = detectors
        self._last_poll = last_poll
        self._generation = generation
        self.tick_interval = compute_tick_interval(self._jobs, self._hooks)
        self._loaded = True
        logger.info(
            "Loaded %d job(s) and %d hook(s); tick every %ds",
            len(self._jobs), len(self._hooks), self.tick_interval,
        )

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def due_hooks(self, now: datetime) -> List[Hook]:
        ts = now.timestamp()
        due = []
        with self._inflight_lock:
            for hook in self._hooks:
                if hook.id in self._inflight_hooks:
                    continue
                last = self._last_poll.get(hook.id)
                # Half a tick of slack so sub-second wake-up jitter does not skip a cycle
                if last is None or ts - last >= hook.interval_secs - self.tick_interval / 2:
                    due.append(hook)
        return due

    def tick(self, now: Optional[datetime] = None) -> int:
        """Evaluate one tick and dispatch due work. Returns items dispatched."""
        now = now or self.ctx.clock()
        if not self._loaded or self._read_generation() != self._generation:
            if self._loaded:
                logger.info("Generation marker changed, reloading store")
            try:
                self.reload()
            except StoreIOError as e:
                logger.error("Store reload failed, keeping previous snapshot: %s", e)

        jobs = due_jobs(self._jobs, self._last_tick, now)
        hooks = self.due_hooks(now)
        self._last_tick = now

        for job in jobs:
            self._submit(self.ctx.executor.run_job, job, now)
        for hook in hooks:
            with self._inflight_lock:
                self._inflight_hooks.add(hook.id)
            self._last_poll[hook.id] = now.timestamp()
            self._submit(self._poll_hook, hook, self._detectors[hook.id], now)
        return len(jobs) + len(hooks)

    def _submit(self, fn, *args) -> None:
        future = self._pool.submit(fn, *args)
        with self._futures_lock:
            self._futures.add(future)
        future.add_done_callback(self._on_done)

    def _on_done(self, future: Future) -> None:
        with self._futures_lock:
            self._futures.discard(future)
        if not future.cancelled() and future.exception() is not None:
            logger.error("Dispatched unit failed", exc_info=future.exception())

    def _poll_hook(self, hook: Hook, detector: ChangeDetector, now: datetime) -> None:
        try:
            try:
                value = read_signature(hook, self.ctx.runner, self.ctx.settings.hook_read_timeout)
            except HookReadError as e:
                detector.record_failure(e)
                logger.warning(
                    "Hook %s (%s) poll failed (%d in a row), will retry: %s",
                    hook.id, hook.name, detector.failures, e,
                )
                return

            change = detector.observe(value)
            try:
                self.ctx.store.update_hook_state(hook.id, detector.last_seen, detector.state)
            except StoreIOError as e:
                logger.error("Could not persist state of hook %s: %s", hook.id, e)

            if change is not None:
                logger.info("Hook %s (%s) changed: %s -> %s", hook.id, hook.name, change.previous, change.current)
                self.ctx.executor.run_hook(hook, change, now)
        finally:
            with self._inflight_lock:
                self._inflight_hooks.discard(hook.id)

    # ------------------------------------------------------------------
    # Run / shutdown
    # ------------------------------------------------------------------

    def seconds_until_next_tick(self, now: datetime) -> float:
        interval = self.tick_interval
        return interval - (now.timestamp() % interval) + 0.01

    def run(self) -> None:
        """Run until the context's stop event is set, then shut down."""
        stop = self.ctx.stop_event
        try:
            self.reload()
        except StoreIOError as e:
            logger.error("Initial store load failed: %s", e)

        while not stop.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("Error in scheduler tick")
            stop.wait(self.seconds_until_next_tick(self.ctx.clock()))

        self.shutdown()

    def pending(self) -> List[Future]:
        with self._futures_lock:
            return list(self._futures)

    def shutdown(self, grace: Optional[float] = None) -> None:
        """Stop dispatching, give in-flight work ``grace`` seconds, then kill it."""
        grace = self.ctx.settings.shutdown_grace if grace is None else grace
        self.ctx.stop_event.set()
        self._pool.shutdown(wait=False, cancel_futures=True)

        pending = self.pending()
        if pending:
            logger.info("Waiting up to %ss for %d running execution(s)", grace, len(pending))
            _, not_done = wait(pending, timeout=grace)
            if not_done:
                killed = self.ctx.runner.terminate_all()
                logger.warning("Grace period over, killed %d process(es)", killed)
                wait(not_done, timeout=5)
        logger.info("Scheduler loop stopped")
