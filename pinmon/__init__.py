"""pinmon package for pin-monitor."""

from .events import Event, reduce_pin
from .monitor import PinMonitor
from .pinconfig import ConfigurationError, PinConfig, resolve_pins
from .state import EdgeBuffer, PinChange, PinState, Sample

__all__ = [
    "ConfigurationError",
    "EdgeBuffer",
    "Event",
    "PinChange",
    "PinConfig",
    "PinMonitor",
    "PinState",
    "Sample",
    "reduce_pin",
    "resolve_pins",
]
