from __future__ import annotations

import queue
import threading
from typing import Dict, List, Optional

from .constants import DEFAULT_INTERVAL_S
from .events import STALE, SUPPRESSED, Event, reduce_pin
from .logging import JsonLogger
from .pinconfig import PinConfig
from .state import EdgeBuffer, PinChange
from .util import now_s


class PinMonitor:
    """Pin event monitor.

    Consumes ``PinChange`` messages from the device session and routes them by
    each pin's reporting strategy: ``instant`` pins are reduced as soon as a
    sample arrives, ``debounce`` pins only keep the latest sample and are
    reduced once per poll tick. Reported events go to the publisher."""
    def __init__(
        self,
        pins: Dict[int, PinConfig],
        logger: JsonLogger,
        publisher=None,
        interval_s: float = DEFAULT_INTERVAL_S,
        verbose: bool = False,
    ):
        """
        Initialize the monitor.

        Construction is side-effect free; the loop thread is started by start().
        """
        self.pins = dict(pins)
        self.logger = logger
        self.publisher = publisher
        self.interval_s = float(interval_s)
        self.verbose = bool(verbose)
        self.buffer = EdgeBuffer()

        self.samples: queue.Queue = queue.Queue()
        self._stop_evt = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._next_tick = now_s() + self.interval_s

    def handle_change(self, change: PinChange) -> Optional[Event]:
        """Dispatch one device change. Returns the event reported for instant pins."""
        cfg = self.pins.get(change.pin)
        if cfg is None:
            if self.verbose:
                self.logger.emit("unknown_pin", pin=change.pin)
            return None
        if change.old == change.new:
            return None
        if self.verbose:
            self.logger.emit("sample", pin=change.pin, old=change.old, new=change.new, ts=change.timestamp)

        st = self.buffer.state(cfg.pin)
        with st.lock:
            self.buffer.accept(cfg.pin, change.sample)
            if cfg.debounced:
                return None
            return self._reduce(cfg)

    def flush(self) -> List[Event]:
        """Reduce every debounced pin with a pending sample (one poll tick)."""
        events = []
        for pin in self.buffer.pending():
            cfg = self.pins[pin]
            if not cfg.debounced:
                continue
            with self.buffer.state(pin).lock:
                event = self._reduce(cfg)
            if event is not None:
                events.append(event)
        return events

    def _reduce(self, cfg: PinConfig) -> Optional[Event]:
        result = reduce_pin(self.buffer, cfg)
        if result.outcome == STALE:
            if self.verbose:
                self.logger.emit("stale_sample", pin=cfg.pin,
                                 discarded=self.buffer.state(cfg.pin).discarded)
        elif result.outcome == SUPPRESSED:
            if self.verbose:
                self.logger.emit("suppressed", pin=cfg.pin, trigger=cfg.trigger)
        if result.event is not None:
            self._report(result.event)
        return result.event

    def _report(self, event: Event):
        if self.verbose:
            self.logger.emit("event", pin=event.pin, value=event.value, duration=event.duration,
                             count=event.count, total=event.total, rate=event.rate)
        if self.publisher is not None:
            self.publisher.publish(event)

    def poll(self, timeout_s: float = 0.0):
        """Process queued changes for up to ``timeout_s``, flushing at each tick."""
        deadline = now_s() + timeout_s
        while True:
            now = now_s()
            if now >= self._next_tick:
                self.flush()
                self._next_tick = now + self.interval_s
            wait = min(deadline, self._next_tick) - now
            try:
                change = self.samples.get(timeout=wait) if wait > 0 else self.samples.get_nowait()
            except queue.Empty:
                if now_s() >= deadline:
                    return
                continue
            self.handle_change(change)

    def start(self):
        """Start the monitor loop thread."""
        self._thread = threading.Thread(target=self._loop, daemon=True)
        self._thread.start()

    def stop(self):
        """Stop the loop and report any debounced samples still pending."""
        self._stop_evt.set()
        if self._thread is not None:
            self._thread.join(timeout=1.0)
            self._thread = None
        self.flush()

    def _loop(self):
        """Main periodic loop. Dispatches device changes and flushes debounced pins."""
        while not self._stop_evt.is_set():
            self.poll(self.interval_s)
