"""Data anchor — plain Python structures that hold the proxy registry.

Every wrapped object has exactly one ProxyEntry, keyed by id(original). The
entry holds the original strongly, so the id stays valid for as long as the
entry lives. Entries go away only through proxy.release(); proxy.detach_zone()
only strips a listener zone.
"""

from __future__ import annotations

import itertools
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from tickfx.zone import Zone


class ProxyEntry:
    """One wrapped object: the original, its proxy and the zones that read it."""

    __slots__ = ("original", "proxy", "listener_zones")

    def __init__(self, original: Any, listener_zones: set[Zone] | None = None) -> None:
        self.original = original
        self.proxy: Any = None
        self.listener_zones: set[Zone] = listener_zones if listener_zones is not None else set()


# id(original) -> entry
entries: dict[int, ProxyEntry] = {}

# ID generation for runners and scheduler labels
_id_counter = itertools.count(1)


def new_id() -> int:
    return next(_id_counter)
