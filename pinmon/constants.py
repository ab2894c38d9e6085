from __future__ import annotations

VERSION = "1.0.0"

MODES = ("input", "pullup")
STRATEGIES = ("instant", "debounce")
TRIGGERS = ("none", "falling", "rising", "any")

DEFAULT_MODE = "input"
DEFAULT_STRATEGY = "instant"
DEFAULT_TRIGGER = "none"
DEFAULT_FREQUENCY = 1.0
DEFAULT_UNIT = ""

DEFAULT_BAUD = 57600
DEFAULT_INTERVAL_S = 0.1

SECONDS_PER_HOUR = 3600.0


USAGE_EXAMPLES = """\
Usage examples:
  # Watch pins 2 and 3 on an Arduino running StandardFirmata
  python pin-monitor.py -p /dev/ttyACM0 2 3

  # Energy meter S0 output on pin 2 (1000 impulses/kWh), report W on falling edges
  python pin-monitor.py -p /dev/ttyACM0 2:meter:pullup:debounce:falling:1000:kW

  # Shared template, pin 4 only overrides the unit
  python pin-monitor.py -p /dev/ttyACM0 --template ':pullup:debounce:falling:1000:kW' 2 3 4::::::W

  # Publish each event as JSON to an MQTT broker
  python pin-monitor.py -p /dev/ttyACM0 --json --exec 'mosquitto_pub -h broker -t meters -s' 2

  # Print the resolved pin configuration and exit
  python pin-monitor.py --print-config 2:meter::debounce:falling:500
"""
