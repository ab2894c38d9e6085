from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Optional

from .constants import (
    DEFAULT_FREQUENCY,
    DEFAULT_MODE,
    DEFAULT_STRATEGY,
    DEFAULT_TRIGGER,
    DEFAULT_UNIT,
    MODES,
    STRATEGIES,
    TRIGGERS,
)

# Field order of a pin override string. The template omits "pin".
FIELDS = ("name", "mode", "strategy", "trigger", "frequency", "unit")

# Values each trigger reports (and computes a rate) for.
TRIGGER_PATTERNS = {
    "none": frozenset(),
    "falling": frozenset({0}),
    "rising": frozenset({1}),
    "any": frozenset({0, 1}),
}


class ConfigurationError(ValueError):
    """Raised when a pin template or override cannot be resolved."""


@dataclass(frozen=True)
class PinConfig:
    """Fully resolved configuration of one observed pin."""
    pin: int
    name: str = ""
    mode: str = DEFAULT_MODE
    strategy: str = DEFAULT_STRATEGY
    trigger: str = DEFAULT_TRIGGER
    frequency: float = DEFAULT_FREQUENCY
    unit: str = DEFAULT_UNIT

    @property
    def pattern(self) -> frozenset:
        return TRIGGER_PATTERNS[self.trigger]

    @property
    def debounced(self) -> bool:
        return self.strategy == "debounce"


HARD_DEFAULTS = {
    "name": "",
    "mode": DEFAULT_MODE,
    "strategy": DEFAULT_STRATEGY,
    "trigger": DEFAULT_TRIGGER,
    "frequency": DEFAULT_FREQUENCY,
    "unit": DEFAULT_UNIT,
}


def _split(text: Optional[str], nfields: int, what: str) -> list:
    parts = [p.strip() for p in (text or "").split(":")]
    if len(parts) > nfields:
        raise ConfigurationError(f"{what}: too many fields in {text!r} (at most {nfields})")
    return parts + [""] * (nfields - len(parts))


def _check_choice(field: str, value: str, choices, where: str) -> str:
    value = value.lower()
    if value not in choices:
        raise ConfigurationError(
            f"{where}: invalid {field} {value!r} (expected one of: {', '.join(choices)})"
        )
    return value


def _check_frequency(value, where: str) -> float:
    try:
        freq = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{where}: invalid frequency {value!r} (not a number)") from None
    # NaN fails the comparison as well
    if not freq > 0 or freq == float("inf"):
        raise ConfigurationError(f"{where}: invalid frequency {value!r} (must be a positive number)")
    return freq


def _check_label(field: str, value: str, where: str) -> str:
    # Labels are single fields of the space-separated raw event line.
    if any(ch.isspace() for ch in value):
        raise ConfigurationError(f"{where}: invalid {field} {value!r} (must not contain whitespace)")
    return value


def _validate(fields: dict, where: str) -> dict:
    return {
        "name": _check_label("name", fields["name"], where),
        "mode": _check_choice("mode", fields["mode"], MODES, where),
        "strategy": _check_choice("strategy", fields["strategy"], STRATEGIES, where),
        "trigger": _check_choice("trigger", fields["trigger"], TRIGGERS, where),
        "frequency": _check_frequency(fields["frequency"], where),
        "unit": _check_label("unit", fields["unit"], where),
    }


def parse_template(template: Optional[str]) -> dict:
    """Parse ``name:mode:strategy:trigger:frequency:unit`` into validated fields.

    Empty or missing fields take the hard defaults.
    """
    parts = _split(template, len(FIELDS), "template")
    fields = {}
    for key, raw in zip(FIELDS, parts):
        fields[key] = raw if raw != "" else HARD_DEFAULTS[key]
    return _validate(fields, "template")


def parse_pin(text: str) -> int:
    raw = (text or "").strip()
    if not (raw.isascii() and raw.isdigit()):
        raise ConfigurationError(f"pin {raw!r}: invalid pin number (must be a non-negative integer)")
    return int(raw)


def resolve_pin(override: str, template: Optional[dict] = None) -> PinConfig:
    """Resolve one ``pin[:name[:mode[:strategy[:trigger[:frequency[:unit]]]]]]`` string.

    Non-empty fields override the template; empty fields fall back to it.
    """
    if template is None:
        template = parse_template(None)
    parts = _split(override, len(FIELDS) + 1, f"pin {override!r}")
    pin = parse_pin(parts[0])
    fields = dict(template)
    for key, raw in zip(FIELDS, parts[1:]):
        if raw != "":
            fields[key] = raw
    return PinConfig(pin=pin, **_validate(fields, f"pin {pin}"))


def resolve_pins(template: Optional[str], overrides: Iterable[str]) -> Dict[int, PinConfig]:
    """Resolve a template plus override strings into ``{pin: PinConfig}``."""
    base = parse_template(template)
    pins: Dict[int, PinConfig] = {}
    for override in overrides:
        cfg = resolve_pin(override, base)
        if cfg.pin in pins:
            raise ConfigurationError(f"pin {cfg.pin}: configured more than once")
        pins[cfg.pin] = cfg
    return pins
