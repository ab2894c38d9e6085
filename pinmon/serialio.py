from __future__ import annotations

import threading
from typing import Dict, Iterable, List, Optional, Tuple

import serial  # pyserial

from .logging import JsonLogger
from .pinconfig import PinConfig
from .state import PinChange
from .util import now_s, wall_s

# Firmata command bytes (MIDI-style: high bit set on commands only).
DIGITAL_MESSAGE = 0x90
ANALOG_MESSAGE = 0xE0
REPORT_ANALOG = 0xC0
REPORT_DIGITAL = 0xD0
START_SYSEX = 0xF0
SET_PIN_MODE = 0xF4
SET_DIGITAL_PIN_VALUE = 0xF5
END_SYSEX = 0xF7
REPORT_VERSION = 0xF9
SYSTEM_RESET = 0xFF

PIN_MODE_INPUT = 0x00
PIN_MODE_PULLUP = 0x0B

# Firmata 2.5 introduced PIN_MODE_PULLUP and SET_DIGITAL_PIN_VALUE.
PULLUP_MIN_VERSION = (2, 5)

MAX_PIN = 127


class FirmataError(RuntimeError):
    """Raised when the device does not speak a usable Firmata dialect."""


def _message_length(cmd: int) -> int:
    """Number of data bytes following a (non-SysEx) command byte."""
    high = cmd & 0xF0
    if high in (DIGITAL_MESSAGE, ANALOG_MESSAGE):
        return 2
    if high in (REPORT_ANALOG, REPORT_DIGITAL):
        return 1
    if cmd in (REPORT_VERSION, SET_PIN_MODE, SET_DIGITAL_PIN_VALUE):
        return 2
    return 0


class FirmataParser:
    """Incremental decoder for the Firmata byte stream.

    ``feed()`` returns decoded messages as tuples: ``("version", major, minor)``
    or ``("digital", port, mask)``. SysEx blocks, analog reports and unknown
    commands are skipped."""
    def __init__(self):
        self._cmd: Optional[int] = None
        self._data: List[int] = []
        self._in_sysex = False

    def feed(self, data: bytes) -> List[tuple]:
        out = []
        for b in data:
            if self._in_sysex:
                if b == END_SYSEX:
                    self._in_sysex = False
                continue
            if b == START_SYSEX:
                self._in_sysex = True
                self._cmd = None
                continue
            if b & 0x80:
                self._cmd = b if _message_length(b) else None
                self._data = []
                continue
            if self._cmd is None:
                continue
            self._data.append(b)
            if len(self._data) == _message_length(self._cmd):
                msg = self._decode(self._cmd, self._data)
                if msg is not None:
                    out.append(msg)
                self._cmd = None
        return out

    @staticmethod
    def _decode(cmd: int, data: List[int]) -> Optional[tuple]:
        if cmd & 0xF0 == DIGITAL_MESSAGE:
            return ("digital", cmd & 0x0F, data[0] | (data[1] << 7))
        if cmd == REPORT_VERSION:
            return ("version", data[0], data[1])
        return None


class FirmataSession:
    """Firmata conversation with one microcontroller over an open serial port.

    Negotiates the protocol version, configures the observed pins and turns
    digital port reports into ``PinChange`` messages."""
    def __init__(self, ser, logger: JsonLogger, pins: Dict[int, PinConfig]):
        self.ser = ser
        self.logger = logger
        self.pins = dict(pins)
        self.version: Optional[Tuple[int, int]] = None
        self._parser = FirmataParser()
        self._values: Dict[int, int] = {}
        self._output_masks: Dict[int, int] = {}
        self._write_lock = threading.Lock()

    @property
    def supports_pullup(self) -> bool:
        return self.version is not None and self.version >= PULLUP_MIN_VERSION

    def _write(self, data: bytes):
        with self._write_lock:
            self.ser.write(data)
            self.ser.flush()

    def read_chunk(self) -> bytes:
        return self.ser.read(self.ser.in_waiting or 1)

    def connect(self, timeout_s: float = 10.0, retry_s: float = 1.0) -> Tuple[int, int]:
        """Query the protocol version, retrying until the firmware answers.

        Boards that reset on port open need a moment before StandardFirmata
        starts listening, so the query is repeated every ``retry_s`` seconds.

        Raises:
            FirmataError: No version report arrived within ``timeout_s``.
        """
        deadline = now_s() + timeout_s
        next_query = 0.0
        while now_s() < deadline:
            if now_s() >= next_query:
                self._write(bytes([REPORT_VERSION]))
                next_query = now_s() + retry_s
            for msg in self._parser.feed(self.read_chunk()):
                if msg[0] == "version":
                    self.version = (msg[1], msg[2])
                    self.logger.emit("firmata_version", major=msg[1], minor=msg[2],
                                     pullup=self.supports_pullup)
                    return self.version
        raise FirmataError(f"no Firmata version report within {timeout_s:g}s")

    def _set_output_bit(self, pin: int):
        port, bit = divmod(pin, 8)
        mask = self._output_masks.get(port, 0) | (1 << bit)
        self._output_masks[port] = mask
        self._write(bytes([DIGITAL_MESSAGE | port, mask & 0x7F, (mask >> 7) & 0x7F]))

    def setup_pins(self):
        """Set pin modes and enable digital reporting for every observed port."""
        for pin, cfg in sorted(self.pins.items()):
            if pin > MAX_PIN:
                raise FirmataError(f"pin {pin}: Firmata addresses pins 0..{MAX_PIN} only")
            if cfg.mode == "pullup" and self.supports_pullup:
                self._write(bytes([SET_PIN_MODE, pin, PIN_MODE_PULLUP]))
            elif cfg.mode == "pullup":
                # Pre-2.5 firmware: an input driven high enables the AVR pull-up.
                self._write(bytes([SET_PIN_MODE, pin, PIN_MODE_INPUT]))
                self._set_output_bit(pin)
            else:
                self._write(bytes([SET_PIN_MODE, pin, PIN_MODE_INPUT]))
            self.logger.emit("pin_mode", pin=pin, mode=cfg.mode)
        for port in sorted({pin // 8 for pin in self.pins}):
            self._write(bytes([REPORT_DIGITAL | port, 1]))

    def decode(self, data: bytes, timestamp: float) -> List[PinChange]:
        """Decode raw bytes into changes of observed pins.

        Only pins whose value differs from the last report produce a change;
        the first report for a pin has ``old=None``."""
        changes = []
        for msg in self._parser.feed(data):
            if msg[0] != "digital":
                continue
            _, port, mask = msg
            for pin in range(port * 8, port * 8 + 8):
                if pin not in self.pins:
                    continue
                new = (mask >> (pin - port * 8)) & 1
                old = self._values.get(pin)
                if old == new:
                    continue
                self._values[pin] = new
                changes.append(PinChange(pin=pin, old=old, new=new, timestamp=timestamp))
        return changes


class FirmataReader(threading.Thread):
    """Background serial reader.

    Continuously reads from the device and pushes each decoded ``PinChange``
    onto ``out_q`` for the monitor loop."""
    def __init__(self, session: FirmataSession, out_q, stop_evt, logger, verbose: bool = False):
        super().__init__(daemon=True)
        self.session = session
        self.out_q = out_q
        self.stop_evt = stop_evt
        self.logger = logger
        self.verbose = bool(verbose)

    def run(self):
        """Thread entry point. Reads until stopped or the port fails."""
        while not self.stop_evt.is_set():
            try:
                data = self.session.read_chunk()
            except (serial.SerialException, OSError) as e:
                self.logger.emit("serial_read_error", error=str(e))
                break
            if not data:
                continue
            if self.verbose:
                self.logger.emit("serial_rx", data=data.hex())
            for change in self.session.decode(data, wall_s()):
                self.out_q.put(change)


def open_session(port: str, baud: int, logger: JsonLogger, pins: Iterable[PinConfig]) -> FirmataSession:
    """Open ``port`` with pyserial and wrap it in a FirmataSession."""
    ser = serial.Serial(port, baud, timeout=0.25)
    return FirmataSession(ser, logger, {cfg.pin: cfg for cfg in pins})
