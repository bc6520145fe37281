"""Update triggers — the kinds of interaction a scheduler can react to."""

from __future__ import annotations

from enum import IntFlag


class UpdateTrigger(IntFlag):
    """Bit mask of interaction kinds. Combine with |, test with &."""

    NONE = 0

    # Proxy interactions
    PROPERTY_SET = 1 << 0
    PROPERTY_DELETE = 1 << 1
    UNCAPTURED_CALL = 1 << 2

    # Requested from outside
    MANUAL = 1 << 3
    INPUT_CHANGE = 1 << 4

    ANY = (1 << 5) - 1
