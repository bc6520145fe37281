"""Error types raised by the update machinery."""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from tickfx.zone import InteractionEvent


class ConfigurationError(Exception):
    """Configuration file missing or malformed."""


class UpdateLoopError(Exception):
    """Too many chained update passes. Always fatal to the current chain.

    .chain holds every reason of the chain, most recent last. The message
    lists the last 20 of them.
    """

    def __init__(self, message: str, chain: Iterable[InteractionEvent]) -> None:
        self.chain: list[InteractionEvent] = list(chain)
        lines = "\n".join(str(reason) for reason in self.chain[-20:])
        super().__init__(f"{message}: \n{lines}")


class RescheduleSignal(BaseException):
    """Frame budget exceeded, continue the chain on the next frame.

    Internal. A BaseException so consumer `except Exception` blocks don't
    catch it; the scheduler that initiated the cycle always does.
    """
