"""tickfx: interaction-driven update scheduling for Python."""

from importlib.metadata import version as _version

__version__ = _version("tickfx")

from tickfx.trigger import UpdateTrigger
from tickfx.zone import InteractionData, InteractionEvent, Zone, ROOT_ZONE, current_zone, push_interaction
from tickfx.proxy import (
    InteractionProxy,
    wrap,
    get_original,
    release,
    detach_zone,
    is_proxy,
    ignore_class,
    ignore_interaction_tracking,
)
from tickfx.cycle import UpdateCycle, current_cycle
from tickfx.scheduler import UpdateScheduler
from tickfx.frames import FrameHost, AsyncioFrameHost, get_default_frame_host, set_default_frame_host
from tickfx.config import Configuration, configure, get_configuration, set_configuration, load_configuration
from tickfx.errors import ConfigurationError, UpdateLoopError
# textual NOT auto-imported — opt-in only

__all__ = [
    "UpdateTrigger",
    "InteractionData",
    "InteractionEvent",
    "Zone",
    "ROOT_ZONE",
    "current_zone",
    "push_interaction",
    "InteractionProxy",
    "wrap",
    "get_original",
    "release",
    "detach_zone",
    "is_proxy",
    "ignore_class",
    "ignore_interaction_tracking",
    "UpdateCycle",
    "current_cycle",
    "UpdateScheduler",
    "FrameHost",
    "AsyncioFrameHost",
    "get_default_frame_host",
    "set_default_frame_host",
    "Configuration",
    "configure",
    "get_configuration",
    "set_configuration",
    "load_configuration",
    "ConfigurationError",
    "UpdateLoopError",
]
