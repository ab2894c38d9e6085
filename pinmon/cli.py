from __future__ import annotations

import json
import math
import os
import signal
import sys
import threading
import time
import tomllib

import serial  # pyserial

from .config import apply_defaults, build_arg_parser, load_toml_config, resolved_config_dict
from .constants import VERSION
from .logging import JsonLogger
from .monitor import PinMonitor
from .pinconfig import ConfigurationError, resolve_pins
from .publish import EventPublisher
from .serialio import FirmataError, FirmataReader, open_session


def resolve_args(argv=None):
    """Parse arguments and resolve the pin table.

    Returns (args, pins). Raises ConfigurationError for invalid settings."""
    ap = build_arg_parser()
    args = ap.parse_args(argv)
    cfg = {}
    if args.config:
        try:
            cfg = load_toml_config(args.config)
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise ConfigurationError(f"config {args.config}: {e}") from None
    apply_defaults(args, cfg)
    if not (math.isfinite(args.interval) and args.interval > 0):
        raise ConfigurationError(f"invalid interval {args.interval!r} (must be a positive number)")
    pins = resolve_pins(args.template, args.pins)
    return args, pins


def main(argv=None):
    """CLI entry point. Resolves configuration, connects to the board and runs the monitor."""
    if argv is None:
        argv = sys.argv[1:]
    if not argv and not os.environ.get("PINMON_PORT"):
        build_arg_parser().print_help()
        return 0

    try:
        args, pins = resolve_args(argv)
    except ConfigurationError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    if args.version:
        print(VERSION)
        return 0

    # Print resolved configuration and exit (does not open the serial port).
    if args.print_config:
        print(json.dumps(resolved_config_dict(args, pins), indent=2, sort_keys=True))
        return 0

    if not pins:
        print("ERROR: no pins configured", file=sys.stderr)
        return 2

    if not args.port:
        raise SystemExit("Normal mode requires -p/--port")

    logger = JsonLogger(enable_json=bool(args.json_log))
    publisher = EventPublisher(
        logger,
        json_mode=args.json,
        log_file=args.log_file,
        command=args.command,
        url=args.url,
    )

    try:
        session = open_session(args.port, args.baud, logger, pins.values())
    except serial.SerialException as e:
        logger.emit("serial_open_error", port=args.port, error=str(e))
        return 3

    try:
        session.connect(timeout_s=args.connect_timeout)
        session.setup_pins()
    except (FirmataError, serial.SerialException) as e:
        logger.emit("firmata_error", port=args.port, error=str(e))
        session.ser.close()
        return 3

    mon = PinMonitor(pins, logger, publisher=publisher, interval_s=args.interval, verbose=args.verbose)

    if not args.no_banner:
        print(f"pin-monitor {VERSION}", file=sys.stderr)
        # Structured startup event for log scraping
        logger.emit(
            "startup",
            version=VERSION,
            port=args.port,
            baud=args.baud,
            firmata="%d.%d" % session.version,
            interval_s=args.interval,
            pins=",".join(str(p) for p in sorted(pins)),
            json=bool(args.json),
            verbose=bool(args.verbose),
        )

    stop = threading.Event()
    reader = FirmataReader(session, mon.samples, stop, logger, verbose=args.verbose)
    publisher.start()
    reader.start()
    mon.start()

    signal.signal(signal.SIGINT, lambda *_: stop.set())
    signal.signal(signal.SIGTERM, lambda *_: stop.set())

    exit_code = 0
    while not stop.is_set():
        if not reader.is_alive():
            logger.emit("serial_thread_dead")
            exit_code = 3
            stop.set()
            break
        time.sleep(0.2)

    reader.join(timeout=1.0)
    mon.stop()
    publisher.stop()
    session.ser.close()
    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
