import io
import json
import subprocess

import pytest
import requests

from pinmon.events import Event
from pinmon.publish import EventPublisher, format_event, json_object, raw_fields, raw_line

RATED = Event(pin=2, name="meter", value=0, timestamp=102.0, duration=2.0, count=1, total=2,
              rate=1800.0, unit="W")
PLAIN = Event(pin=3, name="", value=1, timestamp=1700000000.123456789, duration=0.0, count=1, total=1)


def test_raw_line_formats_reals_with_nine_decimals():
    assert raw_line(RATED) == "2 meter 0 102.000000000 2.000000000 1 2 1800.000000000 W"


def test_raw_line_marks_empty_name():
    line = raw_line(PLAIN)
    assert line.startswith("3 - 1 ")
    assert len(line.split()) == 7


def test_raw_fields_keep_empty_strings():
    assert raw_fields(PLAIN)[1] == ""


def test_json_object_omits_empty_fields_and_coerces_numbers():
    obj = json_object(PLAIN)
    assert list(obj) == ["pin", "value", "timestamp", "duration", "count", "total"]
    assert obj["pin"] == 3 and isinstance(obj["pin"], int)
    assert isinstance(obj["timestamp"], float)

    obj = json_object(RATED)
    assert obj["rate"] == 1800.0
    assert obj["unit"] == "W"
    assert obj["name"] == "meter"


def test_json_object_numeric_looking_name_becomes_number():
    ev = Event(pin=4, name="12", value=1, timestamp=1.0, duration=0.0, count=1, total=1)
    assert json_object(ev)["name"] == 12


def _reject_constant(name):
    raise ValueError(f"non-standard JSON constant {name}")


@pytest.mark.parametrize("label", ["nan", "inf", "-Infinity", "NaN"])
def test_json_object_keeps_non_finite_labels_as_strings(label):
    ev = Event(pin=5, name=label, value=0, timestamp=1.0, duration=1.0, count=1, total=1,
               rate=3600.0, unit=label)
    obj = json_object(ev)
    assert obj["name"] == label
    assert obj["unit"] == label
    line = format_event(ev, json_mode=True)
    assert json.loads(line, parse_constant=_reject_constant)["name"] == label


def test_format_event_json():
    assert json.loads(format_event(RATED, json_mode=True))["total"] == 2


def test_stdout_sink(logger):
    out = io.StringIO()
    pub = EventPublisher(logger, stream=out)
    assert pub.to_stdout
    pub.publish(RATED)
    assert out.getvalue() == raw_line(RATED) + "\n"


def test_log_file_sink_appends(logger, tmp_path):
    path = tmp_path / "events.log"
    pub = EventPublisher(logger, json_mode=True, log_file=str(path))
    assert not pub.to_stdout
    pub.publish(RATED)
    pub.publish(PLAIN)
    lines = path.read_text().splitlines()
    assert [json.loads(line)["pin"] for line in lines] == [2, 3]


def test_log_file_error_is_logged(logger, tmp_path):
    pub = EventPublisher(logger, log_file=str(tmp_path / "missing" / "events.log"))
    pub.publish(RATED)
    assert logger.events[0][0] == "publish_error"
    assert logger.events[0][1]["sink"] == "log_file"


def test_exec_passes_raw_fields_as_arguments(logger, monkeypatch):
    calls = []
    monkeypatch.setattr(subprocess, "run", lambda argv, **kw: calls.append((argv, kw)))
    pub = EventPublisher(logger, command="notify-meter --topic 'a b'")
    pub.publish(RATED)
    argv, kw = calls[0]
    assert argv == ["notify-meter", "--topic", "a b"] + raw_fields(RATED)
    assert kw["input"] is None


def test_exec_pipes_json_on_stdin(logger, monkeypatch):
    calls = []
    monkeypatch.setattr(subprocess, "run", lambda argv, **kw: calls.append((argv, kw)))
    pub = EventPublisher(logger, json_mode=True, command="mosquitto_pub -t meters -s")
    pub.publish(RATED)
    argv, kw = calls[0]
    assert argv == ["mosquitto_pub", "-t", "meters", "-s"]
    assert json.loads(kw["input"])["rate"] == 1800.0


def test_exec_failure_is_logged_not_raised(logger, monkeypatch):
    def boom(argv, **kw):
        raise subprocess.CalledProcessError(1, argv)

    monkeypatch.setattr(subprocess, "run", boom)
    pub = EventPublisher(logger, command="false")
    pub.publish(RATED)
    assert logger.names() == ["publish_error"]
    assert logger.events[0][1]["sink"] == "exec"


class DummyResponse:
    def __init__(self, status=200):
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} error")


def test_url_posts_json(logger, monkeypatch):
    calls = []

    def post(url, **kw):
        calls.append((url, kw))
        return DummyResponse()

    monkeypatch.setattr("requests.post", post)
    pub = EventPublisher(logger, url="http://example.invalid/hook")
    pub.publish(RATED)
    url, kw = calls[0]
    assert url == "http://example.invalid/hook"
    assert kw["json"] == json_object(RATED)
    assert logger.events == []


@pytest.mark.parametrize("exc", [requests.ConnectionError("down"), None])
def test_url_failure_never_raises(logger, monkeypatch, exc):
    def post(url, **kw):
        if exc is not None:
            raise exc
        return DummyResponse(500)

    monkeypatch.setattr("requests.post", post)
    pub = EventPublisher(logger, url="http://example.invalid/hook")
    pub.publish(RATED)
    assert logger.names() == ["publish_error"]


def test_background_delivery_keeps_order(logger):
    out = io.StringIO()
    pub = EventPublisher(logger, stream=out)
    pub.start()
    events = [Event(pin=2, name="", value=i % 2, timestamp=float(i), duration=1.0, count=i, total=i)
              for i in range(1, 6)]
    for ev in events:
        pub.publish(ev)
    pub.stop()
    assert out.getvalue().splitlines() == [raw_line(ev) for ev in events]
