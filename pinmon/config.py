from __future__ import annotations

import argparse
import os
import tomllib
from argparse import RawDescriptionHelpFormatter
from dataclasses import asdict
from typing import Dict, Mapping, Optional

from .constants import DEFAULT_BAUD, DEFAULT_INTERVAL_S, USAGE_EXAMPLES
from .pinconfig import ConfigurationError, PinConfig

BUILTIN_DEFAULTS = {
    "port": None,
    "baud": DEFAULT_BAUD,
    "connect_timeout": 10.0,
    "interval": DEFAULT_INTERVAL_S,
    "template": "",
    "pins": [],
    "json": False,
    "command": None,
    "url": None,
    "log_file": None,
    "verbose": False,
    "json_log": False,
    "no_banner": False,
}

ENV_VARS = {
    "port": "PINMON_PORT",
    "baud": "PINMON_BAUD",
    "interval": "PINMON_INTERVAL",
    "template": "PINMON_TEMPLATE",
    "pins": "PINMON_PINS",
    "json": "PINMON_JSON",
    "command": "PINMON_EXEC",
    "url": "PINMON_URL",
    "log_file": "PINMON_LOG_FILE",
    "verbose": "PINMON_VERBOSE",
}

# (section, key) in the TOML file for each setting.
TOML_KEYS = {
    "port": ("serial", "port"),
    "baud": ("serial", "baud"),
    "connect_timeout": ("serial", "connect_timeout"),
    "interval": ("pins", "interval"),
    "template": ("pins", "template"),
    "pins": ("pins", "overrides"),
    "json": ("output", "json"),
    "command": ("output", "exec"),
    "url": ("output", "url"),
    "log_file": ("output", "log_file"),
    "verbose": ("logging", "verbose"),
    "json_log": ("logging", "json_log"),
    "no_banner": ("logging", "no_banner"),
}


def get_bool_env(name: str, default: bool = False, environ: Optional[Mapping[str, str]] = None) -> bool:
    env = os.environ if environ is None else environ
    val = env.get(name)
    if val is None:
        return default
    val = val.lower()
    if val in ("1", "true", "yes", "on"):
        return True
    if val in ("0", "false", "no", "off"):
        return False
    return default


def _convert(key: str, raw: str, source: str):
    """Convert a string setting to the type of its built-in default."""
    default = BUILTIN_DEFAULTS[key]
    if isinstance(default, list):
        return raw.split()
    if isinstance(default, (int, float)):
        try:
            return type(default)(raw)
        except ValueError:
            raise ConfigurationError(f"{source}: invalid {key} {raw!r}") from None
    return raw


def config_defaults_from_env(environ: Optional[Mapping[str, str]] = None) -> dict:
    """Map PINMON_* environment variables onto settings."""
    env = os.environ if environ is None else environ
    out = {}
    for key, name in ENV_VARS.items():
        if env.get(name) in (None, ""):
            continue
        if isinstance(BUILTIN_DEFAULTS[key], bool):
            out[key] = get_bool_env(name, BUILTIN_DEFAULTS[key], env)
        else:
            out[key] = _convert(key, env[name], name)
    return out


def load_toml_config(path: str) -> dict:
    """Load TOML configuration from path."""
    with open(path, "rb") as f:
        return tomllib.load(f)


def _get_cfg(cfg: dict, section: str, key: str, default=None):
    sec = cfg.get(section, {})
    if not isinstance(sec, dict):
        return default
    return sec.get(key, default)


def _check_toml_value(key: str, val, where: str):
    """Check a TOML value against the type of its built-in default."""
    default = BUILTIN_DEFAULTS[key]
    if isinstance(default, list):
        if isinstance(val, str):
            return val.split()
        if isinstance(val, list) and all(isinstance(v, (str, int)) and not isinstance(v, bool) for v in val):
            return [str(v) for v in val]
        raise ConfigurationError(f"{where}: expected a list of pin strings, got {val!r}")
    if isinstance(default, bool):
        if isinstance(val, bool):
            return val
        raise ConfigurationError(f"{where}: expected true or false, got {val!r}")
    if isinstance(default, int):
        if isinstance(val, int) and not isinstance(val, bool):
            return val
        raise ConfigurationError(f"{where}: expected an integer, got {val!r}")
    if isinstance(default, float):
        if isinstance(val, (int, float)) and not isinstance(val, bool):
            return float(val)
        raise ConfigurationError(f"{where}: expected a number, got {val!r}")
    if isinstance(val, str):
        return val
    raise ConfigurationError(f"{where}: expected a string, got {val!r}")


def config_defaults_from(cfg: dict) -> dict:
    """Map TOML config onto settings (only keys present in the file).

    Raises ConfigurationError for values of the wrong type."""
    out = {}
    for key, (section, name) in TOML_KEYS.items():
        val = _get_cfg(cfg, section, name)
        if val is None:
            continue
        out[key] = _check_toml_value(key, val, f"config [{section}] {name}")
    return out


def apply_defaults(args, cfg: Optional[dict] = None, environ: Optional[Mapping[str, str]] = None):
    """Fill settings left unset on the command line.

    Precedence: command line, then TOML config, then environment, then
    built-in defaults."""
    toml_defaults = config_defaults_from(cfg or {})
    env_defaults = config_defaults_from_env(environ)
    for key, default in BUILTIN_DEFAULTS.items():
        if getattr(args, key, None) not in (None, []):
            continue
        if key in toml_defaults:
            val = toml_defaults[key]
        elif key in env_defaults:
            val = env_defaults[key]
        else:
            val = list(default) if isinstance(default, list) else default
        setattr(args, key, val)
    return args


def resolved_config_dict(args, pins: Dict[int, PinConfig]) -> dict:
    return {
        "serial": {"port": args.port, "baud": args.baud, "connect_timeout": args.connect_timeout},
        "pins": {
            "interval": args.interval,
            "template": args.template,
            "resolved": {str(pin): asdict(cfg) for pin, cfg in sorted(pins.items())},
        },
        "output": {
            "json": bool(args.json),
            "exec": args.command,
            "url": args.url,
            "log_file": args.log_file,
        },
        "logging": {
            "verbose": bool(args.verbose),
            "json_log": bool(args.json_log),
            "no_banner": bool(args.no_banner),
        },
    }


def build_arg_parser():
    """Construct the CLI argument parser for the daemon.

    Every setting defaults to None so that unset options can be backfilled
    from the TOML config, the environment and the built-in defaults."""
    ap = argparse.ArgumentParser(
        description="Report Firmata input pin changes as timestamped metering events.",
        epilog=USAGE_EXAMPLES,
        formatter_class=RawDescriptionHelpFormatter,
    )
    ap.set_defaults(**{key: None for key in BUILTIN_DEFAULTS})
    ap.add_argument("pins", nargs="*", metavar="PIN",
                    help="Pin override: pin[:name[:mode[:strategy[:trigger[:frequency[:unit]]]]]]")
    ap.add_argument("-p", "--port", help="Serial device of the Firmata board (e.g., /dev/ttyACM0).")
    ap.add_argument("--baud", type=int, help=f"Serial baud rate (default: {DEFAULT_BAUD}).")
    ap.add_argument("--connect-timeout", type=float,
                    help="Seconds to wait for the Firmata version report (default: 10).")
    ap.add_argument("-t", "--template",
                    help="Defaults for every pin: name:mode:strategy:trigger:frequency:unit.")
    ap.add_argument("-i", "--interval", type=float,
                    help=f"Poll tick in seconds; debounced pins report at most once per tick (default: {DEFAULT_INTERVAL_S}).")
    json_group = ap.add_mutually_exclusive_group()
    json_group.add_argument("--json", dest="json", action="store_true", help="Publish events as JSON objects.")
    json_group.add_argument("--raw", dest="json", action="store_false", help="Publish events as space-separated fields.")
    ap.add_argument("-e", "--exec", dest="command",
                    help="Run this command per event (raw fields as arguments, JSON on stdin with --json).")
    ap.add_argument("--url", help="POST each event as JSON to this URL.")
    ap.add_argument("--log-file", help="Append each event line to this file.")
    ap.add_argument("--verbose", dest="verbose", action="store_true", help="Verbose logging (includes every sample).")
    ap.add_argument("--no-verbose", dest="verbose", action="store_false", help="Disable verbose logging.")
    ap.add_argument("--json-log", dest="json_log", action="store_true", help="Emit JSON diagnostic log lines.")
    ap.add_argument("--no-banner", dest="no_banner", action="store_true", help="Disable the startup banner.")
    ap.add_argument("--banner", dest="no_banner", action="store_false", help="Enable the startup banner.")
    ap.add_argument("--config", help="Path to a TOML config file. CLI args override config values.")
    ap.add_argument("--print-config", action="store_true", help="Print the resolved configuration and exit.")
    ap.add_argument("--version", action="store_true", help="Print version and exit.")
    return ap
