"""Frame hosts — where "the next animation frame" comes from.

A scheduler never sleeps by itself. It asks its FrameHost for a callback on
the next frame and measures its budget with the host's clock. The callback
gets the frame timestamp (ms) and may return an awaitable, which the host
must drive to completion.
"""

from __future__ import annotations

import asyncio
import contextvars
import inspect
import time
from typing import Any, Awaitable, Callable, Protocol

FrameCallback = Callable[[float], "Awaitable[None] | None"]


class FrameHost(Protocol):
    def request_frame(self, callback: FrameCallback) -> Any: ...

    def cancel_frame(self, handle: Any) -> None: ...

    def now(self) -> float: ...


def monotonic_ms() -> float:
    return time.perf_counter() * 1000.0


class AsyncioFrameHost:
    """Frames on the running asyncio loop, `interval` seconds apart.

    Callbacks run in a fresh contextvars.Context: a zone or update cycle that
    was active when the frame was requested must not leak into the frame.
    """

    def __init__(self, interval: float = 1 / 60, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._interval = interval
        self._loop = loop
        self._tasks: set[asyncio.Task] = set()

    def request_frame(self, callback: FrameCallback) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(
            self._interval, self._fire, loop, callback, context=contextvars.Context()
        )

    def cancel_frame(self, handle: asyncio.TimerHandle) -> None:
        handle.cancel()

    def now(self) -> float:
        return monotonic_ms()

    def _fire(self, loop: asyncio.AbstractEventLoop, callback: FrameCallback) -> None:
        result = callback(self.now())
        if inspect.isawaitable(result):
            # Hold a reference until done, the loop only keeps weak ones.
            task = loop.create_task(_drive(result))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)


async def _drive(awaitable: Awaitable[None]) -> None:
    await awaitable


_default_host: FrameHost = AsyncioFrameHost()


def get_default_frame_host() -> FrameHost:
    return _default_host


def set_default_frame_host(host: FrameHost) -> None:
    """Frame host used by schedulers created without an explicit one."""
    global _default_host
    _default_host = host
