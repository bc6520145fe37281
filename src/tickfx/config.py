"""Scheduler configuration.

One process-wide Configuration, read by every scheduler at the moment it
needs a value. Replace it with set_configuration() or configure(), or load it
from a YAML file:

    updating:
      frame_time: 100      # ms budget before a chain is rescheduled
      stack_cap: 10        # max chained passes before UpdateLoopError
    error:
      ignore: false        # consumer errors count as "no update"
    log:
      update_trigger: false
      update_performance: false
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from tickfx.errors import ConfigurationError


@dataclass(frozen=True)
class Configuration:
    frame_time: float = 100.0
    stack_cap: int = 10
    ignore_errors: bool = False
    log_update_trigger: bool = False
    log_update_performance: bool = False


_configuration = Configuration()


def get_configuration() -> Configuration:
    return _configuration


def set_configuration(configuration: Configuration) -> None:
    global _configuration
    _configuration = configuration


def configure(**overrides: Any) -> Configuration:
    """Replace single fields of the active configuration. Returns the new one."""
    new = dataclasses.replace(_configuration, **overrides)
    set_configuration(new)
    return new


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigurationError(f"Missing config file: {path}")
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Invalid YAML root object in config file: {path}")
    return data


def load_configuration(path: Path | str) -> Configuration:
    """Read a Configuration from YAML. Missing keys keep their defaults."""
    raw = _load_yaml(Path(path))
    defaults = Configuration()

    updating = raw.get("updating") or {}
    error = raw.get("error") or {}
    log = raw.get("log") or {}

    try:
        return Configuration(
            frame_time=float(updating.get("frame_time", defaults.frame_time)),
            stack_cap=int(updating.get("stack_cap", defaults.stack_cap)),
            ignore_errors=bool(error.get("ignore", defaults.ignore_errors)),
            log_update_trigger=bool(log.get("update_trigger", defaults.log_update_trigger)),
            log_update_performance=bool(log.get("update_performance", defaults.log_update_performance)),
        )
    except (AttributeError, TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid configuration in {path}: {exc}") from exc
