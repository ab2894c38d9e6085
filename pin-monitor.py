#!/usr/bin/env python3
"""pin-monitor: report Firmata input pin changes as metering events.

Watches digital inputs of a microcontroller running StandardFirmata and
publishes one line per reported change:

    pin name value timestamp duration count total [rate unit]

Run with --help for options and examples.
"""

from __future__ import annotations

from pinmon.cli import main, resolve_args
from pinmon.config import apply_defaults, build_arg_parser, resolved_config_dict
from pinmon.constants import VERSION
from pinmon.pinconfig import ConfigurationError, resolve_pins

__all__ = [
    "ConfigurationError",
    "VERSION",
    "apply_defaults",
    "build_arg_parser",
    "main",
    "resolve_args",
    "resolve_pins",
    "resolved_config_dict",
]

if __name__ == "__main__":
    raise SystemExit(main())
