import json
import logging

from circl.obs import logging as obs_logging


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("circl.test", logging.INFO, __file__, 1, "hello", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_redacts_coordinates_and_secrets():
    formatter = obs_logging.JSONLogFormatter()
    line = formatter.format(_record(lat=40.0, lon=-75.0, access_token="abc", latency_ms=12.5, observer_id="u1"))
    payload = json.loads(line)
    assert payload["msg"] == "hello"
    assert payload["lat"] == "[redacted]"
    assert payload["lon"] == "[redacted]"
    assert payload["access_token"] == "[redacted]"
    assert payload["latency_ms"] == 12.5
    assert payload["observer_id"] == "u1"


def test_formatter_includes_bound_context():
    formatter = obs_logging.JSONLogFormatter()
    tokens = obs_logging.bind_context(request_id="req-1", user_id="amy")
    try:
        payload = json.loads(formatter.format(_record()))
        assert obs_logging.current_request_id() == "req-1"
    finally:
        obs_logging.reset_context(tokens)
    assert payload["request_id"] == "req-1"
    assert payload["user_id"] == "amy"
    assert obs_logging.current_request_id() is None


def test_long_values_are_truncated():
    formatter = obs_logging.JSONLogFormatter()
    payload = json.loads(formatter.format(_record(note="x" * 1000)))
    assert len(payload["note"]) == 257
