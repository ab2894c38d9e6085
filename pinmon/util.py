from __future__ import annotations

import time


def now_s() -> float:
    """Monotonic clock in seconds."""
    return time.monotonic()


def wall_s() -> float:
    """Wall-clock time in seconds since the epoch, used to stamp samples."""
    return time.time_ns() / 1e9
