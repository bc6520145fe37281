"""Shared fixtures: a hand-cranked frame host and global state reset."""

import inspect
import itertools

import pytest

from tickfx import _anchor
from tickfx.config import Configuration, set_configuration
from tickfx.frames import get_default_frame_host, set_default_frame_host


class ManualFrameHost:
    """Frames fire only when a test says so.

    The clock advances by `step` ms on every now() call, so elapsed time is
    deterministic and never zero.
    """

    def __init__(self, step=1.0):
        self.time = 0.0
        self.step = step
        self.fired = 0
        self._frames = {}
        self._ids = itertools.count(1)

    def request_frame(self, callback):
        handle = next(self._ids)
        self._frames[handle] = callback
        return handle

    def cancel_frame(self, handle):
        self._frames.pop(handle, None)

    def now(self):
        self.time += self.step
        return self.time

    @property
    def pending(self):
        return len(self._frames)

    async def run_frame(self):
        frames, self._frames = self._frames, {}
        for callback in frames.values():
            self.fired += 1
            result = callback(self.now())
            if inspect.isawaitable(result):
                await result

    async def run_until_idle(self, limit=100):
        while self._frames and limit:
            await self.run_frame()
            limit -= 1


@pytest.fixture
def frames():
    return ManualFrameHost()


@pytest.fixture(autouse=True)
def _isolated_state(frames):
    previous_host = get_default_frame_host()
    set_default_frame_host(frames)
    set_configuration(Configuration())
    yield
    set_configuration(Configuration())
    set_default_frame_host(previous_host)
    _anchor.entries.clear()
