from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional

from .constants import SECONDS_PER_HOUR
from .pinconfig import PinConfig
from .state import EdgeBuffer

# Outcomes of a reduction.
STALE = "stale"
SUPPRESSED = "suppressed"
IDLE = "idle"
REPORTED = "reported"


@dataclass(frozen=True)
class Event:
    """A reported pin transition.

    ``rate`` and ``unit`` are set only when the pin's trigger matched the
    transition and the duration was strictly positive."""
    pin: int
    name: str
    value: int
    timestamp: float
    duration: float
    count: int
    total: int
    rate: Optional[float] = None
    unit: Optional[str] = None

    def as_tuple(self) -> tuple:
        """Flat ordered field tuple; rate/unit are included only when a rate was computed."""
        fields = (self.pin, self.name, self.value, self.timestamp, self.duration, self.count, self.total)
        if self.rate is not None:
            fields += (self.rate, self.unit)
        return fields


@dataclass(frozen=True)
class Reduction:
    event: Optional[Event] = None
    outcome: str = REPORTED


def reduce_pin(buffer: EdgeBuffer, cfg: PinConfig) -> Reduction:
    """Consume the pending sample of ``cfg.pin`` and decide whether it is reported.

    The opposite value's last entry marks the most recent transition. A sample
    whose own value was already entered after that transition is a stale
    repeat and is dropped without counting. Duration is measured edge-to-edge
    for the ``any`` trigger and level-to-level (since this value was last
    entered) otherwise.
    """
    sample = buffer.take(cfg.pin)
    if sample is None:
        return Reduction(outcome=IDLE)

    st = buffer.state(cfg.pin)
    value = sample.value
    t = sample.timestamp
    mark = st.last[value]
    opposite = st.last[1 - value]

    change_ts = opposite.timestamp if opposite.timestamp is not None else t
    prev_ts = mark.timestamp if mark.timestamp is not None else change_ts
    mark.timestamp = t

    if prev_ts > change_ts:
        st.discarded += 1
        return Reduction(outcome=STALE)

    mark.count += 1

    if cfg.trigger == "any":
        duration = t - change_ts
    else:
        duration = t - prev_ts

    event = Event(
        pin=cfg.pin,
        name=cfg.name,
        value=value,
        timestamp=t,
        duration=duration,
        count=mark.count,
        total=st.total,
    )

    if value in cfg.pattern:
        if duration > 0:
            rate = SECONDS_PER_HOUR / (cfg.frequency * duration)
            event = replace(event, rate=rate, unit=cfg.unit)
    elif cfg.trigger != "none":
        return Reduction(outcome=SUPPRESSED)

    return Reduction(event=event)
