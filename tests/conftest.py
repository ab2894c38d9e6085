import importlib.util
import sys
import builtins
from pathlib import Path

import pytest

def load_module():
    script = Path(__file__).resolve().parents[1] / "pin-monitor.py"
    spec = importlib.util.spec_from_file_location("pin_monitor", script)
    mod = importlib.util.module_from_spec(spec)
    sys.modules["pin_monitor"] = mod
    assert spec.loader is not None
    spec.loader.exec_module(mod)
    return mod

# Expose helper for tests without explicit imports.
builtins.load_module = load_module


class CapturingLogger:
    """Minimal logger that matches the .emit(event, **fields) contract."""
    def __init__(self):
        self.events = []

    def emit(self, event: str, **fields):
        self.events.append((event, fields))

    def names(self):
        return [e for e, _ in self.events]


@pytest.fixture
def logger():
    return CapturingLogger()
