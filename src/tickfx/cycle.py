"""Update cycles — one shared "now" for every scheduler in a tick.

The first scheduler that starts a pass opens a cycle and becomes its
initiator. Every scheduler updated from inside that pass (at any nesting
depth) joins the same cycle and so shares its deadline and its runner, the
cache key for "already updated in this pass".

Only the call that created a cycle closes it. The active cycle is kept in a
ContextVar, so concurrent asyncio tasks never see each other's cycle.
"""

from __future__ import annotations

import contextvars
from contextlib import contextmanager
from typing import Any, Callable, Iterator

from tickfx import _anchor
from tickfx.frames import monotonic_ms
from tickfx.proxy import ignore_interaction_tracking

Clock = Callable[[], float]


class Runner:
    """Token of one logical pass inside a cycle."""

    __slots__ = ("id", "timestamp")

    def __init__(self, id: int, timestamp: float) -> None:
        self.id = id
        self.timestamp = timestamp

    def __repr__(self) -> str:
        return f"Runner({self.id})"


@ignore_interaction_tracking
class UpdateCycle:
    __slots__ = ("initiator", "created_at", "deadline_base", "forced_sync", "runner", "clock")

    def __init__(self, initiator: Any, *, forced_sync: bool, runner: Runner, clock: Clock,
                 created_at: float, deadline_base: float) -> None:
        self.initiator = initiator
        self.forced_sync = forced_sync
        self.runner = runner
        self.clock = clock
        self.created_at = created_at
        self.deadline_base = deadline_base

    def elapsed(self) -> float:
        """Milliseconds since the deadline base."""
        return self.clock() - self.deadline_base

    def __repr__(self) -> str:
        mode = "sync" if self.forced_sync else "async"
        return f"UpdateCycle({self.runner!r}, {mode})"


_current_cycle: contextvars.ContextVar[UpdateCycle | None] = contextvars.ContextVar(
    "current_update_cycle", default=None
)


def current_cycle() -> UpdateCycle | None:
    return _current_cycle.get()


@contextmanager
def _enter(cycle: UpdateCycle) -> Iterator[UpdateCycle]:
    token = _current_cycle.set(cycle)
    try:
        yield cycle
    finally:
        _current_cycle.reset(token)


@contextmanager
def open_cycle(initiator: Any, *, forced_sync: bool, clock: Clock = monotonic_ms) -> Iterator[UpdateCycle]:
    """Join the active cycle, or open a new one with initiator as its owner."""
    active = _current_cycle.get()
    if active is not None:
        yield active
        return

    now = clock()
    cycle = UpdateCycle(
        initiator,
        forced_sync=forced_sync,
        runner=Runner(_anchor.new_id(), now),
        clock=clock,
        created_at=now,
        deadline_base=now,
    )
    with _enter(cycle):
        yield cycle


@contextmanager
def open_rescheduled(previous: UpdateCycle) -> Iterator[UpdateCycle]:
    """Continue previous on a new frame: same runner, fresh deadline."""
    active = _current_cycle.get()
    if active is not None:
        yield active
        return

    cycle = UpdateCycle(
        previous.initiator,
        forced_sync=previous.forced_sync,
        runner=previous.runner,
        clock=previous.clock,
        created_at=previous.created_at,
        deadline_base=previous.clock(),
    )
    with _enter(cycle):
        yield cycle


def bump_runner(cycle: UpdateCycle, requestor: Any) -> None:
    """Start a new logical pass. Only the initiator may do that."""
    if requestor is not cycle.initiator:
        return
    cycle.runner = Runner(_anchor.new_id(), cycle.clock())


def bump_deadline(cycle: UpdateCycle) -> None:
    """Restart the frame budget clock."""
    cycle.deadline_base = cycle.clock()
