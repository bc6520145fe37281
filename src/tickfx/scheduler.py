"""Update schedulers — one consumer's update lifecycle.

An UpdateScheduler owns an interaction zone. Interactions reaching that zone
(through proxies the zone has read, or pushed inside it) request update
passes. Requests are coalesced into task chains:

- a request while a pass of this scheduler runs is chained behind it; only
  the latest chained reason is kept,
- an async request while a pass is already scheduled is dropped, that pass
  will see the current state anyway,
- a chain longer than the configured stack cap raises UpdateLoopError,
- an async chain that runs past the frame budget continues on the next frame,
- a scheduler updated twice within one runner of an update cycle returns its
  cached result the second time.

Usage:
    state = wrap({"count": 0})

    def render(reason):
        print(state["count"])
        return True

    scheduler = UpdateScheduler("counter", render)
    scheduler.add_update_trigger(UpdateTrigger.PROPERTY_SET)
    scheduler.update()            # synchronous pass, reads state in its zone
    state["count"] = 1            # requests an async pass on the next frame
    await scheduler.resolve_after_update()
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, TypeVar

from tickfx import _anchor
from tickfx.config import get_configuration
from tickfx.cycle import UpdateCycle, bump_deadline, bump_runner, open_cycle, open_rescheduled
from tickfx.errors import RescheduleSignal, UpdateLoopError
from tickfx.frames import FrameHost, get_default_frame_host
from tickfx.proxy import detach_zone, ignore_interaction_tracking, wrap
from tickfx.trigger import UpdateTrigger
from tickfx.zone import InteractionData, InteractionEvent, Zone, create_event, current_zone, push_interaction

logger = logging.getLogger("tickfx.scheduler")

T = TypeVar("T")

UpdateCallback = Callable[[InteractionEvent], "bool | Awaitable[bool]"]
CompletionHook = Callable[[bool, "BaseException | None"], None]


class _TaskChain:
    """Progress of one chain. Survives reschedules."""

    __slots__ = ("task", "stack", "updated", "steps")

    def __init__(self, task: InteractionEvent) -> None:
        self.task = task
        self.stack: list[InteractionEvent] = []
        self.updated = False
        # Steps executed in the current frame.
        self.steps = 0


@ignore_interaction_tracking
class UpdateScheduler:
    """Coordinates the update passes of one consumer."""

    def __init__(
        self,
        label: str,
        perform_update: UpdateCallback,
        *,
        trigger: UpdateTrigger = UpdateTrigger.ANY,
        isolate: bool = False,
        parent: UpdateScheduler | None = None,
        frames: FrameHost | None = None,
    ) -> None:
        self._label = label
        self._perform_update = perform_update
        self._frames = frames if frames is not None else get_default_frame_host()

        parent_zone = parent._zone if parent is not None else current_zone()
        self._zone: Zone = parent_zone.create(
            f"{label}-ProcessorZone ({_anchor.new_id():x})", isolate=isolate
        ).add_trigger_restriction(UpdateTrigger, trigger)

        # Schedule state. Only this scheduler writes it.
        self._pending = False
        self._async_running = False
        self._sync_running = False
        self._chained_next_task: InteractionEvent | None = None
        self._completion_hooks: list[CompletionHook] = []
        self._blocked = False
        self._deconstructed = False

        # runner id -> result, latest runner only
        self._run_cache: dict[int, bool] = {}

    @property
    def label(self) -> str:
        return self._label

    @property
    def zone(self) -> Zone:
        return self._zone

    @property
    def is_pending(self) -> bool:
        return self._pending

    @property
    def is_running(self) -> bool:
        return self._sync_running or self._async_running

    @property
    def is_blocked(self) -> bool:
        return self._blocked

    # ─── Public API ──────────────────────────────────────────────────────────

    def add_update_trigger(self, trigger: UpdateTrigger) -> None:
        """Request an async pass for every interaction on the zone matching trigger."""

        def _on_interaction(reason: InteractionEvent) -> None:
            if reason.trigger & trigger:
                self._schedule_update_task(reason)

        self._zone.add_interaction_listener(UpdateTrigger, _on_interaction)

    def deconstruct(self) -> None:
        """Stop listening. Passes already running or scheduled still complete."""
        self._deconstructed = True
        self._zone.remove_interaction_listener(UpdateTrigger)
        detach_zone(self._zone)

    def register_object(self, obj: T) -> T:
        """Wrap obj with this scheduler's zone attached as a listener."""
        return wrap(obj, self._zone)

    def switch_to_update_zone(self, fn: Callable[..., T], *args: Any) -> T:
        """Run fn inside this scheduler's zone."""
        return self._zone.execute(fn, *args)

    def notify_input_change(self, source: Any, property: Any = None) -> bool:
        """Report a user input on source. Pushed as INPUT_CHANGE in this zone."""
        data = InteractionData(source, property)
        return self._zone.execute(push_interaction, UpdateTrigger, UpdateTrigger.INPUT_CHANGE, data)

    def update(self) -> bool:
        """Run a synchronous pass now. Returns whether anything was updated.

        Called while a pass of this scheduler is running, the request is
        chained behind it and False is returned.
        """
        reason = self._manual_reason()
        if self._sync_running or self._async_running:
            self._chain_task(reason)
            return False

        self._sync_running = True
        try:
            with open_cycle(self, forced_sync=True, clock=self._frames.now) as cycle:
                runner_id = cycle.runner.id
                cached = self._run_cache.get(runner_id)
                if cached is not None:
                    # Cache hits must not eat into the next real budget check.
                    bump_deadline(cycle)
                    return cached

                try:
                    updated = self._execute_chain(_TaskChain(reason), cycle)
                except Exception as error:
                    self._chained_next_task = None
                    if isinstance(error, UpdateLoopError) or not get_configuration().ignore_errors:
                        self._release_completion_hooks(False, error)
                        raise
                    self._log_ignored(error)
                    updated = False
                except BaseException as error:
                    self._chained_next_task = None
                    self._release_completion_hooks(False, error)
                    raise

                self._run_cache.clear()
                self._run_cache[runner_id] = updated
        finally:
            self._sync_running = False

        self._release_completion_hooks(updated, None)
        return updated

    def update_async(self) -> None:
        """Request an async pass on the next frame."""
        self._schedule_update_task(self._manual_reason())

    def resolve_after_update(self) -> asyncio.Future[bool]:
        """Future of the next pass's result. Already False when nothing is pending.

        Rejected with the pass's error.
        """
        future: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
        if not (self._pending or self._async_running or self._sync_running):
            future.set_result(False)
            return future

        def _settle(updated: bool, error: BaseException | None) -> None:
            if future.done():
                return
            if isinstance(error, asyncio.CancelledError):
                future.cancel()
            elif error is not None:
                future.set_exception(error)
            else:
                future.set_result(updated)

        self._completion_hooks.append(_settle)
        return future

    # ─── Scheduling ──────────────────────────────────────────────────────────

    def _manual_reason(self) -> InteractionEvent:
        return create_event(
            UpdateTrigger, UpdateTrigger.MANUAL, self._zone, InteractionData(self, "manual update")
        )

    def _chain_task(self, reason: InteractionEvent) -> None:
        # Coalesce: only the latest reason survives until the chain picks it up.
        self._chained_next_task = reason

    def _schedule_update_task(self, reason: InteractionEvent) -> None:
        running = self._sync_running or self._async_running
        if get_configuration().log_update_trigger:
            logger.debug(
                "Update trigger: %s\n\tTrigger: %s\n\tIs dropped: %s\n\tIs chained: %s\n\tStacktrace:\n%s",
                self._zone.name, reason, self._pending and not running, running, reason.stacktrace,
            )

        if self._deconstructed or self._blocked:
            return
        if running:
            self._chain_task(reason)
            return
        if self._pending:
            return

        self._request_frame(_TaskChain(reason), None)

    def _request_frame(self, chain: _TaskChain, previous: UpdateCycle | None) -> None:
        self._pending = True
        self._frames.request_frame(lambda timestamp: self._run_frame(chain, previous, timestamp))

    async def _run_frame(self, chain: _TaskChain, previous: UpdateCycle | None, timestamp: float) -> None:
        self._pending = False
        self._async_running = True
        chain.steps = 0

        if previous is None:
            opener = open_cycle(self, forced_sync=False, clock=self._frames.now)
        else:
            opener = open_rescheduled(previous)

        try:
            with opener as cycle:
                updated = await self._execute_chain_async(chain, cycle)
        except RescheduleSignal:
            # Still running: new requests keep chaining while we wait.
            self._request_frame(chain, cycle)
            return
        except Exception as error:
            self._async_running = False
            self._settle_failed(error)
            return
        except BaseException as error:
            # Cancelled or interrupted: settle waiters and stay usable.
            self._async_running = False
            self._chained_next_task = None
            self._release_completion_hooks(False, error)
            raise

        self._async_running = False
        self._release_completion_hooks(updated, None)

    def _settle_failed(self, error: Exception) -> None:
        self._chained_next_task = None
        if not isinstance(error, UpdateLoopError) and get_configuration().ignore_errors:
            self._log_ignored(error)
            self._release_completion_hooks(False, None)
            return

        # Block further passes for good. A broken consumer must not lock up the loop.
        self._blocked = True
        logger.error("Update of %s failed, scheduler blocked", self._zone.name, exc_info=error)
        self._release_completion_hooks(False, error)

    # ─── Chain execution ─────────────────────────────────────────────────────

    def _begin_step(self, chain: _TaskChain, cycle: UpdateCycle, reschedulable: bool) -> None:
        config = get_configuration()
        if len(chain.stack) >= config.stack_cap:
            raise UpdateLoopError("Call loop detected", chain.stack)

        # The first step of a frame always runs, so every frame makes progress.
        if (
            reschedulable
            and chain.steps > 0
            and not cycle.forced_sync
            and cycle.elapsed() > config.frame_time
        ):
            raise RescheduleSignal()

        # Pushed after the checks: a rescheduled step is counted once.
        chain.stack.append(chain.task)

    def _finish_step(self, chain: _TaskChain, cycle: UpdateCycle, updated: bool, started: float) -> bool:
        """Record a finished step. Returns True when a chained task follows."""
        chain.updated = bool(updated) or chain.updated
        chain.steps += 1
        bump_runner(cycle, self)

        if get_configuration().log_update_performance:
            now = self._frames.now()
            logger.debug(
                "Update performance: %s\n\tUpdate time: %.3f ms\n\tFrame time: %.3f ms\n\tUpdated: %s\n\tChain: %s",
                self._zone.name, now - started, now - cycle.deadline_base, chain.updated,
                [str(reason) for reason in chain.stack],
            )

        next_task = self._chained_next_task
        if next_task is None:
            return False
        self._chained_next_task = None

        # A user input starts a new action, not a loop.
        if chain.task.trigger == UpdateTrigger.INPUT_CHANGE:
            chain.stack = []
        chain.task = next_task
        return True

    def _perform_sync(self, reason: InteractionEvent) -> bool:
        result = self._perform_update(reason)
        if inspect.isawaitable(result):
            if inspect.iscoroutine(result):
                result.close()
            raise TypeError(
                f"{self._label}: perform_update returned an awaitable during a synchronous update"
            )
        return result

    def _execute_chain(self, chain: _TaskChain, cycle: UpdateCycle) -> bool:
        while True:
            self._begin_step(chain, cycle, reschedulable=False)
            started = self._frames.now()
            updated = self._zone.execute(self._perform_sync, chain.task)
            if not self._finish_step(chain, cycle, updated, started):
                return chain.updated

    async def _execute_chain_async(self, chain: _TaskChain, cycle: UpdateCycle) -> bool:
        while True:
            self._begin_step(chain, cycle, reschedulable=True)
            started = self._frames.now()
            updated = await self._zone.execute_async(self._perform_update, chain.task)
            if not self._finish_step(chain, cycle, updated, started):
                return chain.updated

    # ─── Completion ──────────────────────────────────────────────────────────

    def _release_completion_hooks(self, updated: bool, error: BaseException | None) -> None:
        while self._completion_hooks:
            hook = self._completion_hooks.pop()
            hook(updated, error)

    def _log_ignored(self, error: BaseException) -> None:
        logger.warning("Update of %s failed, error ignored", self._zone.name, exc_info=error)

    def __repr__(self) -> str:
        if self._sync_running or self._async_running:
            state = "running"
        elif self._pending:
            state = "pending"
        else:
            state = "idle"
        return f"UpdateScheduler({self._label!r}, {state})"
