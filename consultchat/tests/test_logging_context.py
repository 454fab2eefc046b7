"""Tests for structured logging helpers."""
import json
import logging

from consultchat.core.logging import (
    JsonFormatter,
    RequestIdFilter,
    latency_bucket_ms,
    log_event,
    request_id_ctx_var,
)


def _record(msg="hello", **extra):
    record = logging.LogRecord("consultchat", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_request_and_user():
    token = request_id_ctx_var.set("rid-42")
    try:
        record = _record(user_id="user_alice", event_type="quota.denied")
        RequestIdFilter().filter(record)
        line = json.loads(JsonFormatter().format(record))
    finally:
        request_id_ctx_var.reset(token)
    assert line["request_id"] == "rid-42"
    assert line["user_id"] == "user_alice"
    assert line["event_type"] == "quota.denied"
    assert line["message"] == "hello"


def test_latency_buckets():
    assert latency_bucket_ms(None) == "unknown"
    assert latency_bucket_ms(5) != latency_bucket_ms(5000)


def test_log_event_truncates_long_values(caplog):
    with caplog.at_level(logging.INFO, logger="consultchat"):
        log_event("info", "chat.answered", user_id="user_alice", extra={"body": "x" * 2000})
    record = caplog.records[-1]
    assert record.user_id == "user_alice"
    assert record.body.endswith("...<truncated>")
    assert len(record.body) < 600
