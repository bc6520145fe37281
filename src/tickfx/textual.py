"""Textual integration for tickfx. Opt-in, requires textual.

Frames come from the app's refresh cycle instead of a timer, and update passes
are held back while the widget tree is not queryable (app not running, or
inside pause()).
"""

from __future__ import annotations

import functools
import inspect
from contextlib import contextmanager
from typing import Any, Awaitable

from textual.css.query import NoMatches

from tickfx.frames import FrameCallback, monotonic_ms

# Module-owned pause state, keyed by id(app) so multiple apps work in tests.
_paused_apps: set[int] = set()


@contextmanager
def pause(app):
    """Suspend update passes during widget replacement."""
    key = id(app)
    _paused_apps.add(key)
    try:
        yield
    finally:
        _paused_apps.discard(key)


def is_safe(app) -> bool:
    """Is the widget tree in a queryable state?"""
    return app.is_running and id(app) not in _paused_apps


class _Frame:
    __slots__ = ("callback", "cancelled")

    def __init__(self, callback: FrameCallback) -> None:
        self.callback = callback
        self.cancelled = False


class TextualFrameHost:
    """Frames after the app's next screen refresh.

    While the app is paused or not running the frame is deferred to the
    following refresh, so a pass never queries a half-built widget tree.
    """

    def __init__(self, app) -> None:
        self._app = app

    def request_frame(self, callback: FrameCallback) -> _Frame:
        frame = _Frame(callback)
        self._app.call_after_refresh(self._fire, frame)
        return frame

    def cancel_frame(self, handle: _Frame) -> None:
        handle.cancelled = True

    def now(self) -> float:
        return monotonic_ms()

    def _fire(self, frame: _Frame) -> Awaitable[None] | None:
        if frame.cancelled:
            return None
        if not is_safe(self._app):
            self._app.call_after_refresh(self._fire, frame)
            return None
        # Textual awaits what a refresh callback returns.
        return frame.callback(self.now())


def guard_no_matches(perform_update):
    """Wrap a perform_update so a missing widget counts as "no update"."""

    @functools.wraps(perform_update)
    def _guarded(reason: Any):
        try:
            result = perform_update(reason)
        except NoMatches:
            return False
        if inspect.isawaitable(result):
            return _await_guarded(result)
        return result

    return _guarded


async def _await_guarded(awaitable: Awaitable[bool]) -> bool:
    try:
        return await awaitable
    except NoMatches:
        return False
