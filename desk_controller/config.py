"""
Runtime settings.

Values come from environment variables; the CLI loads a ``.env`` file into
the environment first.
"""

import logging
import os
from dataclasses import dataclass

from desk_controller.monitor import DEFAULT_POLL_INTERVAL

logger = logging.getLogger(__name__)

ENV_ADDRESS = "DESK_ADDRESS"
ENV_LOG_LEVEL = "DESK_LOG_LEVEL"
ENV_MONITOR_INTERVAL = "DESK_MONITOR_INTERVAL"
ENV_CONNECT_TIMEOUT = "DESK_CONNECT_TIMEOUT"
ENV_SCAN_TIMEOUT = "DESK_SCAN_TIMEOUT"

DEFAULT_ADDRESS = "C2:6D:5B:C4:17:12"
DEFAULT_CONNECT_TIMEOUT = 30.0
DEFAULT_SCAN_TIMEOUT = 10.0

# Presets in meters
SIT_HEIGHT_M = 0.74
STAND_HEIGHT_M = 1.12


def _positive_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not a number, using %s", name, raw, default)
        return default
    if value <= 0:
        logger.warning("Ignoring %s=%r: must be positive, using %s", name, raw, default)
        return default
    return value


def resolve_log_level(raw: str | None, verbose: bool = False) -> int:
    """
    Turn a ``DESK_LOG_LEVEL`` value into a logging level.

    Accepts level names in any case or integers. ``verbose`` lowers the
    threshold to DEBUG but keeps anything already more verbose.
    """
    level = logging.INFO
    if raw and raw.strip():
        value = raw.strip()
        if value.isdigit():
            level = int(value)
        else:
            named = logging.getLevelName(value.upper())
            if isinstance(named, int):
                level = named
    if verbose:
        level = min(level, logging.DEBUG)
    return level


@dataclass(frozen=True)
class Settings:
    address: str = DEFAULT_ADDRESS
    monitor_interval: float = DEFAULT_POLL_INTERVAL
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    scan_timeout: float = DEFAULT_SCAN_TIMEOUT

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the current environment."""
        return cls(
            address=os.getenv(ENV_ADDRESS) or DEFAULT_ADDRESS,
            monitor_interval=_positive_float(ENV_MONITOR_INTERVAL, DEFAULT_POLL_INTERVAL),
            connect_timeout=_positive_float(ENV_CONNECT_TIMEOUT, DEFAULT_CONNECT_TIMEOUT),
            scan_timeout=_positive_float(ENV_SCAN_TIMEOUT, DEFAULT_SCAN_TIMEOUT),
        )
