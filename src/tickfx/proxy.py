"""Interaction proxies — make reads, writes, deletes and calls observable.

wrap(obj) returns an InteractionProxy that behaves like obj for attribute and
item access, iteration, operators and calls, while:

- every read attaches the current zone as a listener of the proxy,
- every write, delete and call dispatches an UpdateTrigger interaction,
- every non-primitive value read or returned is wrapped as well.

Dispatch pushes the interaction into the current zone first. If that zone
lets it through, it is pushed again inside every zone that ever read the
proxy, so a mutation made anywhere reaches everything that observed it.

The mapping original <-> proxy lives in _anchor and is a bijection:
wrap(wrap(obj)) is wrap(obj), get_original(wrap(obj)) is obj.
"""

from __future__ import annotations

import collections
import inspect
import operator
import types
from enum import Enum
from typing import Any, Iterator, TypeVar

from tickfx import _anchor
from tickfx._anchor import ProxyEntry
from tickfx.trigger import UpdateTrigger
from tickfx.zone import InteractionData, InteractionEvent, Zone, current_zone, push_interaction

T = TypeVar("T")

_PRIMITIVES = (
    type(None), bool, int, float, complex, str, bytes, range, slice,
    Enum, type, types.ModuleType,
    types.GeneratorType, types.CoroutineType, types.AsyncGeneratorType,
)

# Values created fresh on every access: bound methods and dict views. They are
# proxied but never registered, and share the listener zones of the object
# they were read from.
_TRANSIENT = (
    types.MethodType, types.BuiltinMethodType, types.MethodWrapperType,
    type({}.keys()), type({}.values()), type({}.items()),
)

_ignored_classes: set[type] = set()

_SET = UpdateTrigger.PROPERTY_SET
_DELETE = UpdateTrigger.PROPERTY_DELETE

# Builtin mutators whose effect is known. Other methods of these types are
# reads and dispatch nothing. Any other call is UNCAPTURED_CALL.
_MUTATOR_TRIGGERS: dict[type, dict[str, UpdateTrigger]] = {
    tuple: {},
    frozenset: {},
    list: {
        "append": _SET, "extend": _SET, "insert": _SET, "sort": _SET, "reverse": _SET,
        "__setitem__": _SET, "__iadd__": _SET, "__imul__": _SET,
        "pop": _DELETE, "remove": _DELETE, "clear": _DELETE, "__delitem__": _DELETE,
    },
    dict: {
        "update": _SET, "setdefault": _SET, "__setitem__": _SET, "__ior__": _SET,
        "pop": _DELETE, "popitem": _DELETE, "clear": _DELETE, "__delitem__": _DELETE,
    },
    set: {
        "add": _SET, "update": _SET, "symmetric_difference_update": _SET,
        "__ior__": _SET, "__ixor__": _SET,
        "discard": _DELETE, "remove": _DELETE, "pop": _DELETE, "clear": _DELETE,
        "difference_update": _DELETE, "intersection_update": _DELETE,
        "__isub__": _DELETE, "__iand__": _DELETE,
    },
    bytearray: {
        "append": _SET, "extend": _SET, "insert": _SET, "reverse": _SET, "__setitem__": _SET,
        "__iadd__": _SET, "__imul__": _SET,
        "pop": _DELETE, "remove": _DELETE, "clear": _DELETE, "__delitem__": _DELETE,
    },
    collections.deque: {
        "append": _SET, "appendleft": _SET, "extend": _SET, "extendleft": _SET,
        "insert": _SET, "rotate": _SET, "reverse": _SET, "__setitem__": _SET,
        "__iadd__": _SET, "__imul__": _SET,
        "pop": _DELETE, "popleft": _DELETE, "remove": _DELETE, "clear": _DELETE,
        "__delitem__": _DELETE,
    },
}


def ignore_class(cls: type) -> None:
    """Never proxy instances of cls (or its subclasses)."""
    _ignored_classes.add(cls)


def ignore_interaction_tracking(cls: type[T]) -> type[T]:
    """Class decorator form of ignore_class()."""
    ignore_class(cls)
    return cls


def _is_untrackable(value: Any) -> bool:
    if isinstance(value, _PRIMITIVES) or inspect.isawaitable(value):
        return True
    return isinstance(value, tuple(_ignored_classes))


def _entry_of(value: Any) -> ProxyEntry | None:
    if type(value) is InteractionProxy:
        return value._interaction_entry
    entry = _anchor.entries.get(id(value))
    if entry is not None and entry.original is value:
        return entry
    return None


def _create_entry(original: Any, listener_zones: set[Zone] | None = None,
                  receiver: InteractionProxy | None = None) -> ProxyEntry:
    entry = ProxyEntry(original, listener_zones)
    proxy = InteractionProxy.__new__(InteractionProxy)
    object.__setattr__(proxy, "_interaction_entry", entry)
    object.__setattr__(proxy, "_interaction_receiver", receiver)
    entry.proxy = proxy
    return entry


def wrap(target: T, zone: Zone | None = None) -> T:
    """Return the proxy of target, creating it on first use.

    Primitives and ignored classes come back unchanged. When zone is given it
    is attached as a listener.
    """
    entry = _entry_of(target)
    if entry is None:
        if _is_untrackable(target):
            return target
        entry = _create_entry(target)
        if not isinstance(target, _TRANSIENT):
            _anchor.entries[id(target)] = entry

    if zone is not None:
        entry.listener_zones.add(zone)
    return entry.proxy


def get_original(value: T) -> T:
    """Unwrap a proxy. Anything else is returned as is."""
    if type(value) is InteractionProxy:
        return value._interaction_entry.original
    return value


def release(target: Any) -> None:
    """Forget target's proxy. A later wrap() creates a new one."""
    original = get_original(target)
    entry = _anchor.entries.get(id(original))
    if entry is not None and entry.original is original:
        del _anchor.entries[id(original)]


def detach_zone(zone: Zone) -> None:
    """Stop notifying zone.

    Entries stay registered even without listeners: proxies handed out earlier
    must remain the proxy of their original. Use release() to drop one.
    """
    for entry in _anchor.entries.values():
        entry.listener_zones.discard(zone)


def is_proxy(value: Any) -> bool:
    return type(value) is InteractionProxy


# ─── Interception ─────────────────────────────────────────────────────────────

def _attach_current_zone(entry: ProxyEntry) -> None:
    entry.listener_zones.add(current_zone())


def _convert(parent: ProxyEntry, value: Any, receiver: InteractionProxy | None = None) -> Any:
    """Wrap a value read from parent. Nested proxies inherit parent's listeners."""
    if _is_untrackable(value):
        return value

    if isinstance(value, _TRANSIENT):
        return _create_entry(value, parent.listener_zones, receiver).proxy

    proxy = wrap(value)
    proxy._interaction_entry.listener_zones.update(parent.listener_zones)
    return proxy


def _dispatch(entry: ProxyEntry, trigger: UpdateTrigger, source: Any, prop: Any = None) -> None:
    data = InteractionData(source, prop)

    # A silent current zone swallows the interaction completely.
    if not push_interaction(UpdateTrigger, trigger, data):
        return

    origin = current_zone()
    for zone in list(entry.listener_zones):
        if zone is not origin:
            zone.execute(push_interaction, UpdateTrigger, trigger, data)


def _call_trigger(target: Any) -> UpdateTrigger:
    owner = getattr(target, "__self__", None)
    name = getattr(target, "__name__", None)
    if owner is not None and name is not None:
        # Judge the method by the class that defines it, so overrides count as unknown.
        for cls in type(owner).__mro__:
            if name in vars(cls):
                known = _MUTATOR_TRIGGERS.get(cls)
                if known is not None:
                    return known.get(name, UpdateTrigger.NONE)
                break
    return UpdateTrigger.UNCAPTURED_CALL


def _call(target: Any, receiver: InteractionProxy | None, args: tuple, kwargs: dict) -> Any:
    # Python methods first run with the proxy as self, so writes through self
    # are observed. A TypeError there is retried with the original receiver.
    if (
        receiver is not None
        and isinstance(target, types.MethodType)
        and isinstance(target.__func__, types.FunctionType)
    ):
        try:
            return target.__func__(receiver, *args, **kwargs)
        except TypeError:
            return target(*args, **kwargs)

    # Builtins never see proxies, neither as receiver nor as argument.
    if isinstance(target, (types.BuiltinFunctionType, types.MethodWrapperType)):
        args = tuple(get_original(arg) for arg in args)
        kwargs = {key: get_original(value) for key, value in kwargs.items()}
    return target(*args, **kwargs)


# ─── Operators ────────────────────────────────────────────────────────────────
# Operators run on the originals. Non-primitive results are wrapped and inherit
# the listeners of the left-hand proxy.

def _compare(op):
    def method(self, other):
        entry = self._interaction_entry
        _attach_current_zone(entry)
        return op(entry.original, get_original(other))
    return method


def _binary(op):
    def method(self, other):
        entry = self._interaction_entry
        _attach_current_zone(entry)
        return _convert(entry, op(entry.original, get_original(other)))
    return method


def _reflected(op):
    def method(self, other):
        entry = self._interaction_entry
        _attach_current_zone(entry)
        return _convert(entry, op(get_original(other), entry.original))
    return method


def _unary(op):
    def method(self):
        entry = self._interaction_entry
        _attach_current_zone(entry)
        return _convert(entry, op(entry.original))
    return method


def _inplace(name, op):
    def method(self, other):
        entry = self._interaction_entry
        target = getattr(entry.original, name, None)
        if target is None:
            # No in-place support (tuple, frozenset, ...): rebind like a = a + b.
            _attach_current_zone(entry)
            return _convert(entry, op(entry.original, get_original(other)))

        trigger = _call_trigger(target)
        try:
            result = target(get_original(other))
        finally:
            if trigger:
                _dispatch(entry, trigger, entry.original, name)
        if result is NotImplemented:
            return NotImplemented
        if result is entry.original:
            return self
        return _convert(entry, result)
    return method


class InteractionProxy:
    """Stand-in for a wrapped object. Create with wrap(), not directly."""

    __slots__ = ("_interaction_entry", "_interaction_receiver")

    # --- get ---

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_interaction_"):
            raise AttributeError(name)
        entry = self._interaction_entry
        value = getattr(entry.original, name)
        _attach_current_zone(entry)
        receiver = self if getattr(value, "__self__", None) is entry.original else None
        return _convert(entry, value, receiver)

    def __getitem__(self, key: Any) -> Any:
        entry = self._interaction_entry
        value = entry.original[get_original(key)]
        _attach_current_zone(entry)
        return _convert(entry, value)

    def __iter__(self) -> Iterator[Any]:
        entry = self._interaction_entry
        _attach_current_zone(entry)
        for item in entry.original:
            yield _convert(entry, item)

    def __len__(self) -> int:
        entry = self._interaction_entry
        _attach_current_zone(entry)
        return len(entry.original)

    def __contains__(self, item: Any) -> bool:
        entry = self._interaction_entry
        _attach_current_zone(entry)
        return get_original(item) in entry.original

    def __bool__(self) -> bool:
        entry = self._interaction_entry
        _attach_current_zone(entry)
        return bool(entry.original)

    # --- set ---

    def __setattr__(self, name: str, value: Any) -> None:
        entry = self._interaction_entry
        try:
            setattr(entry.original, name, get_original(value))
        finally:
            _dispatch(entry, UpdateTrigger.PROPERTY_SET, entry.original, name)

    def __setitem__(self, key: Any, value: Any) -> None:
        entry = self._interaction_entry
        try:
            entry.original[get_original(key)] = get_original(value)
        finally:
            _dispatch(entry, UpdateTrigger.PROPERTY_SET, entry.original, key)

    # --- delete ---

    def __delattr__(self, name: str) -> None:
        entry = self._interaction_entry
        try:
            delattr(entry.original, name)
        finally:
            _dispatch(entry, UpdateTrigger.PROPERTY_DELETE, entry.original, name)

    def __delitem__(self, key: Any) -> None:
        entry = self._interaction_entry
        try:
            del entry.original[get_original(key)]
        finally:
            _dispatch(entry, UpdateTrigger.PROPERTY_DELETE, entry.original, key)

    # --- apply ---

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        entry = self._interaction_entry
        target = entry.original
        if not callable(target):
            raise TypeError(f"'{type(target).__name__}' object is not callable")

        receiver = self._interaction_receiver
        source = get_original(receiver) if receiver is not None else getattr(target, "__self__", target)
        trigger = _call_trigger(target)
        try:
            result = _call(target, receiver, args, kwargs)
            return _convert(entry, result)
        finally:
            if trigger:
                _dispatch(entry, trigger, source, getattr(target, "__name__", None))

    # --- operators ---

    __lt__ = _compare(operator.lt)
    __le__ = _compare(operator.le)
    __gt__ = _compare(operator.gt)
    __ge__ = _compare(operator.ge)

    __add__ = _binary(operator.add)
    __sub__ = _binary(operator.sub)
    __mul__ = _binary(operator.mul)
    __matmul__ = _binary(operator.matmul)
    __truediv__ = _binary(operator.truediv)
    __floordiv__ = _binary(operator.floordiv)
    __mod__ = _binary(operator.mod)
    __pow__ = _binary(operator.pow)
    __lshift__ = _binary(operator.lshift)
    __rshift__ = _binary(operator.rshift)
    __and__ = _binary(operator.and_)
    __or__ = _binary(operator.or_)
    __xor__ = _binary(operator.xor)

    __radd__ = _reflected(operator.add)
    __rsub__ = _reflected(operator.sub)
    __rmul__ = _reflected(operator.mul)
    __rmatmul__ = _reflected(operator.matmul)
    __rtruediv__ = _reflected(operator.truediv)
    __rfloordiv__ = _reflected(operator.floordiv)
    __rmod__ = _reflected(operator.mod)
    __rpow__ = _reflected(operator.pow)
    __rlshift__ = _reflected(operator.lshift)
    __rrshift__ = _reflected(operator.rshift)
    __rand__ = _reflected(operator.and_)
    __ror__ = _reflected(operator.or_)
    __rxor__ = _reflected(operator.xor)

    __neg__ = _unary(operator.neg)
    __pos__ = _unary(operator.pos)
    __abs__ = _unary(operator.abs)
    __invert__ = _unary(operator.invert)

    __iadd__ = _inplace("__iadd__", operator.add)
    __isub__ = _inplace("__isub__", operator.sub)
    __imul__ = _inplace("__imul__", operator.mul)
    __iand__ = _inplace("__iand__", operator.and_)
    __ior__ = _inplace("__ior__", operator.or_)
    __ixor__ = _inplace("__ixor__", operator.xor)

    # --- identity helpers, never tracked ---

    def __eq__(self, other: Any) -> bool:
        return self._interaction_entry.original == get_original(other)

    def __ne__(self, other: Any) -> bool:
        return self._interaction_entry.original != get_original(other)

    def __hash__(self) -> int:
        return hash(self._interaction_entry.original)

    def __repr__(self) -> str:
        return repr(self._interaction_entry.original)

    def __str__(self) -> str:
        return str(self._interaction_entry.original)

    def __dir__(self) -> list[str]:
        return dir(self._interaction_entry.original)


ignore_class(InteractionProxy)
ignore_class(Zone)
ignore_class(InteractionEvent)
ignore_class(InteractionData)
ignore_class(ProxyEntry)
