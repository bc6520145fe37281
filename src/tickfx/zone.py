"""Interaction zones — hierarchical execution contexts for interaction events.

A zone is entered with execute(). While inside, every interaction pushed with
push_interaction() is attributed to that zone: its listeners are called and
the event bubbles up to the parent zone, unless the zone is isolated.

Each zone may restrict which trigger bits it lets through, per interaction
kind. A push the current zone does not allow is reported as silent (False).

The current zone lives in a ContextVar, so asyncio tasks each carry their own.
"""

from __future__ import annotations

import contextvars
import inspect
import time
import traceback
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, TypeVar

from tickfx.config import get_configuration

T = TypeVar("T")

InteractionListener = Callable[["InteractionEvent"], None]

_ALL_TRIGGERS = ~0


@dataclass(frozen=True, eq=False)
class InteractionData:
    """What was interacted with."""

    source: Any
    property: Any = None

    def __str__(self) -> str:
        source_name = type(self.source).__name__
        if self.property is not None:
            return f"[ {source_name} => {self.property} ]"
        return f"[ {source_name} ]"


@dataclass(frozen=True, eq=False)
class InteractionEvent:
    """Immutable record of one observed interaction (an update reason)."""

    kind: type
    trigger: int
    origin: Zone
    data: InteractionData
    timestamp: float = field(default_factory=lambda: time.perf_counter() * 1000.0)
    stacktrace: str = ""

    def __str__(self) -> str:
        try:
            trigger_name = self.kind(self.trigger).name or str(self.trigger)
        except (TypeError, ValueError):
            trigger_name = str(self.trigger)
        return f"{self.origin.name} -> {trigger_name} {self.data}"


class Zone:
    """Hierarchical execution zone with filtered interaction fan-out."""

    __slots__ = ("_name", "_parent", "_isolated", "_trigger_mapping", "_interaction_listener")

    def __init__(self, name: str, parent: Zone | None = None, *, isolate: bool = False) -> None:
        self._name = name
        self._parent = parent
        self._isolated = isolate or parent is None
        self._trigger_mapping: dict[type, int] = {}
        # kind -> {listener: zone the listener was registered in}
        self._interaction_listener: dict[type, dict[InteractionListener, Zone]] = {}

    @property
    def name(self) -> str:
        return self._name

    @property
    def parent(self) -> Zone | None:
        return self._parent

    @property
    def isolated(self) -> bool:
        return self._isolated

    def create(self, name: str, *, isolate: bool = False) -> Zone:
        """Create a child zone."""
        return Zone(name, self, isolate=isolate)

    def add_trigger_restriction(self, kind: type, allowed: int) -> Zone:
        """Set (or replace) the trigger bits this zone lets through for kind."""
        self._trigger_mapping[kind] = int(allowed)
        return self

    def trigger_mask(self, kind: type) -> int:
        return self._trigger_mapping.get(kind, _ALL_TRIGGERS)

    def add_interaction_listener(self, kind: type, listener: InteractionListener) -> Zone:
        """Listen for interactions of kind. The listener runs in the zone it was added from."""
        self._interaction_listener.setdefault(kind, {})[listener] = current_zone()
        return self

    def remove_interaction_listener(self, kind: type, listener: InteractionListener | None = None) -> Zone:
        """Remove one listener, or every listener of kind when none is given."""
        if listener is None:
            self._interaction_listener.pop(kind, None)
        else:
            self._interaction_listener.get(kind, {}).pop(listener, None)
        return self

    def execute(self, fn: Callable[..., T], *args: Any) -> T:
        """Run fn inside this zone."""
        token = _current_zone.set(self)
        try:
            return fn(*args)
        finally:
            _current_zone.reset(token)

    async def execute_async(self, fn: Callable[..., T | Awaitable[T]], *args: Any) -> T:
        """Run fn inside this zone, awaiting its result when it is awaitable."""
        token = _current_zone.set(self)
        try:
            result = fn(*args)
            if inspect.isawaitable(result):
                result = await result
            return result
        finally:
            _current_zone.reset(token)

    def _call_interaction_listener(self, event: InteractionEvent) -> bool:
        """Call listeners of this zone and bubble to the parent.

        Returns False when this zone or any non-isolated ancestor blocks the trigger.
        """
        if self.trigger_mask(event.kind) & event.trigger == 0:
            return False

        listeners = self._interaction_listener.get(event.kind)
        if listeners:
            for listener, zone in list(listeners.items()):
                zone.execute(listener, event)

        if self._isolated:
            return True
        return self._parent._call_interaction_listener(event)

    def __repr__(self) -> str:
        return f"Zone({self._name!r})"


# Isolated root so parent listeners never fire for top-level interactions.
ROOT_ZONE = Zone("Default")

_current_zone: contextvars.ContextVar[Zone] = contextvars.ContextVar(
    "current_zone", default=ROOT_ZONE
)


def current_zone() -> Zone:
    """The zone the caller is executing in."""
    return _current_zone.get()


def create_event(kind: type, trigger: int, origin: Zone, data: InteractionData) -> InteractionEvent:
    """Create an event. Stack traces are only captured with trigger logging on."""
    stack = ""
    if get_configuration().log_update_trigger:
        stack = "".join(traceback.format_stack(limit=16)[:-1])
    return InteractionEvent(kind, trigger, origin, data, stacktrace=stack)


def push_interaction(kind: type, trigger: int, data: InteractionData) -> bool:
    """Dispatch an interaction in the current zone.

    Returns False when the current zone (or a non-isolated ancestor) does not
    allow trigger for kind. The interaction is silent then.
    """
    zone = current_zone()
    if zone.trigger_mask(kind) & trigger == 0:
        return False

    event = create_event(kind, trigger, zone, data)
    return zone._call_interaction_listener(event)
