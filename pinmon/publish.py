from __future__ import annotations

import json
import math
import queue
import shlex
import subprocess
import sys
import threading
from typing import List, Optional

import requests

from .events import Event
from .logging import JsonLogger

FIELD_NAMES = ("pin", "name", "value", "timestamp", "duration", "count", "total", "rate", "unit")


def raw_fields(event: Event) -> List[str]:
    """Render an event as its ordered field strings (rate/unit only when present)."""
    out = []
    for val in event.as_tuple():
        if isinstance(val, float):
            out.append(f"{val:.9f}")
        else:
            out.append(str(val))
    return out


def raw_line(event: Event) -> str:
    return " ".join(f if f != "" else "-" for f in raw_fields(event))


def _coerce(text: str):
    try:
        return int(text)
    except ValueError:
        pass
    try:
        num = float(text)
    except ValueError:
        return text
    # nan and inf have no JSON representation
    return num if math.isfinite(num) else text


def json_object(event: Event) -> dict:
    """Event as a JSON-ready dict: numeric-looking fields as numbers, empty fields omitted."""
    return {
        key: _coerce(text)
        for key, text in zip(FIELD_NAMES, raw_fields(event))
        if text != ""
    }


def format_event(event: Event, json_mode: bool) -> str:
    if json_mode:
        return json.dumps(json_object(event))
    return raw_line(event)


class EventPublisher:
    """Delivers reported events to the configured sinks.

    Sinks: stdout (when nothing else is configured), an append-only log file,
    an external command run once per event, and an HTTP webhook. When started,
    delivery happens on one background thread so events keep their order and
    the monitor loop never waits on I/O. Failed deliveries are logged and
    dropped."""
    def __init__(
        self,
        logger: JsonLogger,
        json_mode: bool = False,
        log_file: Optional[str] = None,
        command: Optional[str] = None,
        url: Optional[str] = None,
        stream=None,
        timeout_s: float = 5.0,
    ):
        self.logger = logger
        self.json_mode = bool(json_mode)
        self.log_file = log_file or None
        self.command = shlex.split(command) if command else None
        self.url = url or None
        self.stream = stream
        self._timeout = timeout_s
        self._q: queue.Queue = queue.Queue()
        self._thread: Optional[threading.Thread] = None

    @property
    def to_stdout(self) -> bool:
        return not (self.log_file or self.command or self.url)

    def publish(self, event: Event):
        if self._thread is not None:
            self._q.put(event)
        else:
            self.deliver(event)

    def start(self):
        """Start the background delivery thread."""
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def stop(self, timeout_s: float = 5.0):
        """Deliver what is queued, then stop the delivery thread."""
        t = self._thread
        if t is None:
            return
        self._q.put(None)
        t.join(timeout=timeout_s)
        self._thread = None

    def _run(self):
        while True:
            event = self._q.get()
            if event is None:
                return
            self.deliver(event)

    def deliver(self, event: Event):
        """Send one event to every configured sink."""
        line = format_event(event, self.json_mode)
        if self.to_stdout:
            print(line, file=self.stream if self.stream is not None else sys.stdout, flush=True)
        if self.log_file:
            try:
                with open(self.log_file, "a", encoding="utf-8") as f:
                    f.write(line + "\n")
            except OSError as e:
                self.logger.emit("publish_error", sink="log_file", pin=event.pin, error=str(e))
        if self.command:
            self._exec(event, line)
        if self.url:
            self._post(event)

    def _exec(self, event: Event, line: str):
        # JSON goes to stdin; raw fields are appended as arguments.
        if self.json_mode:
            argv, stdin = self.command, line + "\n"
        else:
            argv, stdin = self.command + raw_fields(event), None
        try:
            subprocess.run(argv, input=stdin, text=True, check=True, timeout=self._timeout)
        except (OSError, subprocess.SubprocessError) as e:
            self.logger.emit("publish_error", sink="exec", pin=event.pin, error=str(e))

    def _post(self, event: Event):
        try:
            resp = requests.post(self.url, json=json_object(event), timeout=self._timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            self.logger.emit("publish_error", sink="url", pin=event.pin, error=str(e))
