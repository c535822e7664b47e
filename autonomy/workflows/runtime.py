"""
runtime.py — In-process workflow runtime for long-lived per-entity loops.

A workflow is an async function `fn(ctx, *args)` registered under a name and
started under a stable id (`account-state-{acc}`, `poi-state-{poi}`, …). At
most one execution per id runs at a time; starting a running id is a no-op
and a finished id may be started again.

  runtime = WorkflowRuntime()
  runtime.register_workflow("AccountStateWorkflow", account_state_workflow)
  runtime.register_activity("CalculateAccountState", activities.calculate_account_state)

  await runtime.signal_with_start("account-state-a1", "accountCheckSignal",
                                  "AccountStateWorkflow", "a1")

Inside a workflow:

  fired = await ctx.select_timer_or_signal(300, "accountCheckSignal")
  metric = await ctx.execute_activity("CalculateAccountState", account)
  await ctx.start_child_workflow("symptom-follow-up-a1", "SymptomFollowUpWorkflow", account)
  ctx.continue_as_new(account)

Signals with the same name are coalesced: a burst of N signals sets one
pending flag, which guarantees at least one more iteration after the burst.
The flag outlives continue-as-new, so a signal delivered while an iteration
is running is seen by the next run.

Activities run with schedule-to-start, start-to-close and heartbeat
deadlines and are retried with exponential backoff. Arguments and results
cross the activity and child-workflow boundary through the msgpack codec.
"""

import asyncio
import contextvars
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from pymongo.errors import PyMongoError

from autonomy.core.config import settings
from autonomy.core.errors import (
    InvalidInputError,
    InvariantViolation,
    NotFoundError,
    StopRenew,
    TransientError,
)
from autonomy.core.reporting import report_exception
from autonomy.workflows import codec

logger = logging.getLogger(__name__)

SIGNAL = "signal"
TIMER = "timer"

WorkflowFn = Callable[..., Awaitable[Any]]
ActivityFn = Callable[..., Awaitable[Any]]


# ── Options & control flow ────────────────────────────────────────────────────

@dataclass
class ActivityOptions:
    schedule_to_start: float = field(default_factory=lambda: settings.activity_schedule_to_start_seconds)
    start_to_close: float = field(default_factory=lambda: settings.activity_start_to_close_seconds)
    heartbeat: float = field(default_factory=lambda: settings.activity_heartbeat_seconds)
    max_attempts: int = field(default_factory=lambda: settings.activity_max_attempts)
    initial_backoff: float = 1.0
    backoff_coefficient: float = 2.0
    non_retryable: tuple = (InvariantViolation, InvalidInputError, NotFoundError, StopRenew)


class ContinueAsNew(Exception):
    """Raised by ctx.continue_as_new(); the runtime restarts the workflow."""

    def __init__(self, *args: Any) -> None:
        super().__init__("continue as new")
        self.workflow_args = args


class WorkflowNotRegistered(LookupError):
    pass


# ── Heartbeats ────────────────────────────────────────────────────────────────

@dataclass
class ActivityInfo:
    name: str
    workflow_id: str
    attempt: int
    last_heartbeat: float = field(default_factory=time.monotonic)


_activity_info: contextvars.ContextVar[Optional[ActivityInfo]] = contextvars.ContextVar(
    "activity_info", default=None,
)


def heartbeat() -> None:
    """Record liveness from inside an activity; a no-op outside one."""
    info = _activity_info.get()
    if info is not None:
        info.last_heartbeat = time.monotonic()


def activity_info() -> Optional[ActivityInfo]:
    return _activity_info.get()


# ── Executions ────────────────────────────────────────────────────────────────

class _Execution:
    def __init__(self, workflow_id: str, name: str, args: tuple) -> None:
        self.workflow_id = workflow_id
        self.name = name
        self.args = args
        self.run_id = 0
        self.task: Optional[asyncio.Task] = None
        self.signals: dict[str, asyncio.Event] = {}
        self.result: Any = None
        self.error: Optional[BaseException] = None

    def channel(self, signal_name: str) -> asyncio.Event:
        if signal_name not in self.signals:
            self.signals[signal_name] = asyncio.Event()
        return self.signals[signal_name]

    @property
    def running(self) -> bool:
        return self.task is not None and not self.task.done()


class WorkflowContext:
    """Handle a running workflow uses to talk to the runtime."""

    def __init__(self, runtime: "WorkflowRuntime", execution: _Execution) -> None:
        self.runtime = runtime
        self._execution = execution

    @property
    def workflow_id(self) -> str:
        return self._execution.workflow_id

    @property
    def run_id(self) -> int:
        return self._execution.run_id

    async def select_timer_or_signal(self, delay: float, signal_name: str) -> str:
        """
        Park until `delay` seconds pass or `signal_name` is received.

        Returns SIGNAL or TIMER. The losing branch is cancelled; a signal
        that is already pending wins immediately.
        """
        event = self._execution.channel(signal_name)
        if event.is_set():
            event.clear()
            return SIGNAL

        signal_task = asyncio.ensure_future(event.wait())
        timer_task = asyncio.ensure_future(asyncio.sleep(delay))
        try:
            done, _ = await asyncio.wait({signal_task, timer_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            signal_task.cancel()
            timer_task.cancel()

        if signal_task in done:
            event.clear()
            return SIGNAL
        return TIMER

    async def sleep(self, delay: float) -> None:
        await asyncio.sleep(delay)

    async def execute_activity(self, name: str, *args: Any, options: Optional[ActivityOptions] = None) -> Any:
        return await self.runtime.execute_activity(self.workflow_id, name, args, options)

    async def start_child_workflow(self, workflow_id: str, name: str, *args: Any) -> Any:
        """Start (or join) a child workflow and wait for its result."""
        await self.runtime.start_workflow(workflow_id, name, *codec.decode_args(codec.encode_args(args)))
        return await self.runtime.wait(workflow_id)

    def continue_as_new(self, *args: Any) -> None:
        raise ContinueAsNew(*args)


# ── Runtime ───────────────────────────────────────────────────────────────────

class WorkflowRuntime:
    def __init__(self, concurrency: Optional[int] = None) -> None:
        self._workflows: dict[str, WorkflowFn] = {}
        self._activities: dict[str, ActivityFn] = {}
        self._executions: dict[str, _Execution] = {}
        self._slots = asyncio.Semaphore(concurrency or settings.activity_concurrency)
        self._closed = False

    # ── Registration ──────────────────────────────────────────────────────────

    def register_workflow(self, name: str, fn: WorkflowFn) -> None:
        self._workflows[name] = fn

    def register_activity(self, name: str, fn: ActivityFn) -> None:
        self._activities[name] = fn

    # ── Client API ────────────────────────────────────────────────────────────

    async def start_workflow(self, workflow_id: str, name: str, *args: Any) -> bool:
        """Start `name` under `workflow_id`; False if that id is already running."""
        if self._closed:
            raise RuntimeError("workflow runtime is shut down")
        if name not in self._workflows:
            raise WorkflowNotRegistered(name)

        execution = self._executions.get(workflow_id)
        if execution is not None and execution.running:
            return False

        new = _Execution(workflow_id, name, args)
        if execution is not None:
            # pending signals survive a restart of the same id
            new.signals = execution.signals
        self._executions[workflow_id] = new
        new.task = asyncio.create_task(self._drive(new), name=workflow_id)
        logger.debug("Workflow started id=%s name=%s", workflow_id, name)
        return True

    async def signal(self, workflow_id: str, signal_name: str) -> None:
        execution = self._executions.get(workflow_id)
        if execution is None or not execution.running:
            raise NotFoundError(f"workflow {workflow_id} is not running")
        execution.channel(signal_name).set()

    async def signal_with_start(self, workflow_id: str, signal_name: str, name: str, *args: Any) -> None:
        await self.start_workflow(workflow_id, name, *args)
        await self.signal(workflow_id, signal_name)

    async def cancel(self, workflow_id: str) -> None:
        execution = self._executions.get(workflow_id)
        if execution is None or not execution.running:
            return
        execution.task.cancel()
        await asyncio.gather(execution.task, return_exceptions=True)
        logger.info("Workflow cancelled id=%s", workflow_id)

    async def wait(self, workflow_id: str, timeout: Optional[float] = None) -> Any:
        """Wait for the execution under `workflow_id` to end; re-raise its error."""
        execution = self._executions.get(workflow_id)
        if execution is None:
            raise NotFoundError(f"workflow {workflow_id} not found")
        task = execution.task
        if task is not None and not task.done():
            await asyncio.wait({task}, timeout=timeout)
            if not task.done():
                raise asyncio.TimeoutError(f"workflow {workflow_id} still running")
        if task is not None and task.cancelled():
            raise TransientError(f"workflow {workflow_id} was cancelled")
        if execution.error is not None:
            raise execution.error
        return execution.result

    def is_running(self, workflow_id: str) -> bool:
        execution = self._executions.get(workflow_id)
        return execution is not None and execution.running

    def running_ids(self) -> list[str]:
        return sorted(wid for wid, e in self._executions.items() if e.running)

    def run_id(self, workflow_id: str) -> int:
        execution = self._executions.get(workflow_id)
        return execution.run_id if execution else 0

    async def shutdown(self) -> None:
        self._closed = True
        tasks = [e.task for e in self._executions.values() if e.running]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Workflow runtime stopped (%d workflows cancelled)", len(tasks))

    # ── Execution loop ────────────────────────────────────────────────────────

    async def _drive(self, execution: _Execution) -> None:
        fn = self._workflows[execution.name]
        args = execution.args
        while True:
            ctx = WorkflowContext(self, execution)
            try:
                execution.result = await fn(ctx, *args)
                return
            except ContinueAsNew as renew:
                args = renew.workflow_args
                execution.args = args
                execution.run_id += 1
                # yield so a tight loop cannot starve the event loop
                await asyncio.sleep(0)
            except StopRenew as exc:
                logger.info("Workflow stopped id=%s reason=%s", execution.workflow_id, exc)
                return
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.exception("Workflow failed id=%s error=%s", execution.workflow_id, exc)
                report_exception(exc)
                execution.error = exc
                return

    # ── Activities ────────────────────────────────────────────────────────────

    async def execute_activity(
        self, workflow_id: str, name: str, args: tuple, options: Optional[ActivityOptions] = None,
    ) -> Any:
        fn = self._activities.get(name)
        if fn is None:
            raise WorkflowNotRegistered(name)
        options = options or ActivityOptions()
        payload = codec.encode_args(args)

        backoff = options.initial_backoff
        attempt = 1
        while True:
            try:
                result = await self._invoke(fn, name, workflow_id, attempt, codec.decode_args(payload), options)
                return codec.decode(codec.encode(result))
            except options.non_retryable:
                raise
            except (TransientError, PyMongoError, OSError, asyncio.TimeoutError) as exc:
                if attempt >= options.max_attempts:
                    raise
                logger.warning(
                    "Activity retry name=%s workflow=%s attempt=%d error=%s", name, workflow_id, attempt, exc,
                )
                await asyncio.sleep(backoff)
                backoff *= options.backoff_coefficient
                attempt += 1

    async def _invoke(
        self, fn: ActivityFn, name: str, workflow_id: str, attempt: int, args: tuple, options: ActivityOptions,
    ) -> Any:
        try:
            await asyncio.wait_for(self._slots.acquire(), options.schedule_to_start)
        except asyncio.TimeoutError:
            raise TransientError(f"activity {name} not started within {options.schedule_to_start}s")

        try:
            info = ActivityInfo(name=name, workflow_id=workflow_id, attempt=attempt)
            ctx = contextvars.copy_context()
            ctx.run(_activity_info.set, info)
            task = asyncio.get_running_loop().create_task(fn(*args), context=ctx)
            return await self._watch(task, info, options)
        finally:
            self._slots.release()

    async def _watch(self, task: asyncio.Task, info: ActivityInfo, options: ActivityOptions) -> Any:
        started = time.monotonic()
        tick = min(options.heartbeat, options.start_to_close) / 4
        try:
            while True:
                done, _ = await asyncio.wait({task}, timeout=tick)
                if done:
                    return task.result()
                now = time.monotonic()
                if now - started > options.start_to_close:
                    raise TransientError(f"activity {info.name} exceeded start-to-close {options.start_to_close}s")
                if now - info.last_heartbeat > options.heartbeat:
                    raise TransientError(f"activity {info.name} missed heartbeat {options.heartbeat}s")
        finally:
            if not task.done():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
