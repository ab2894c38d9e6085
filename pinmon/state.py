from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Dict, Optional


@dataclass(frozen=True)
class Sample:
    """A raw pin observation: the value the pin changed to and when."""
    value: int
    timestamp: float


@dataclass
class ValueMark:
    """When a pin last entered one binary value, and how often it has."""
    timestamp: Optional[float] = None
    count: int = 0


@dataclass
class PinState:
    """Holds mutable runtime state for one observed pin.

    ``current`` is the pending sample not yet reduced; ``last[v]`` tracks the
    most recent entry into value ``v``. Counters only grow for the lifetime of
    the process."""
    current: Optional[Sample] = None
    last: tuple = field(default_factory=lambda: (ValueMark(), ValueMark()))
    discarded: int = 0
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def total(self) -> int:
        return self.last[0].count + self.last[1].count


class EdgeBuffer:
    """Per-pin state store. One PinState per pin, created on first use."""
    def __init__(self):
        self._states: Dict[int, PinState] = {}

    def state(self, pin: int) -> PinState:
        st = self._states.get(pin)
        if st is None:
            st = self._states.setdefault(pin, PinState())
        return st

    def __contains__(self, pin: int) -> bool:
        return pin in self._states

    def pins(self):
        return sorted(self._states)

    def accept(self, pin: int, sample: Sample) -> None:
        """Store ``sample`` as the pending sample, replacing any unconsumed one."""
        self.state(pin).current = sample

    def take(self, pin: int) -> Optional[Sample]:
        """Consume and return the pending sample for ``pin`` (None if nothing is pending)."""
        st = self._states.get(pin)
        if st is None:
            return None
        sample, st.current = st.current, None
        return sample

    def pending(self):
        return [pin for pin, st in sorted(self._states.items()) if st.current is not None]


@dataclass(frozen=True)
class PinChange:
    """Message from the device session: ``pin`` went from ``old`` to ``new``.

    ``old`` is None for the first report of a pin."""
    pin: int
    old: Optional[int]
    new: int
    timestamp: float

    @property
    def sample(self) -> Sample:
        return Sample(value=self.new, timestamp=self.timestamp)
