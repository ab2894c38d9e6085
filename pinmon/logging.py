from __future__ import annotations

import json
import sys
import threading
import time


class JsonLogger:
    """Minimal structured logger.

    Emits single-line events for startup, device and publishing diagnostics.
    Output goes to stderr by default so the event stream on stdout stays
    machine-readable."""
    def __init__(self, enable_json: bool, stream=None):
        """Create a JSON logger.

        Args:
            enable_json: Emit JSON objects instead of human-readable lines.
            stream: A file-like object (defaults to stderr) used for output.
        """
        self.enable_json = enable_json
        self.stream = stream
        self._lock = threading.Lock()

    def emit(self, event: str, **fields):
        """Emit an event with a name and optional key/value fields."""
        t = time.time()
        # ts_iso is local time with milliseconds
        ts_iso = time.strftime('%Y-%m-%d %H:%M:%S', time.localtime(t)) + f'.{int((t - int(t))*1000):03d}'
        if self.enable_json:
            payload = {"ts": t, "ts_iso": ts_iso, "event": event, **fields}
            msg = json.dumps(payload, sort_keys=True)
        else:
            msg = f"[{ts_iso}] {event}"
            if fields:
                msg += " " + " ".join(f"{k}={v}" for k, v in fields.items())
        stream = self.stream if self.stream is not None else sys.stderr
        # Reader, loop and publisher threads all log.
        with self._lock:
            print(msg, file=stream, flush=True)
