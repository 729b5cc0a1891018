import json
import logging
import sys

from slotbook.utils.logging_config import JsonFormatter
from slotbook.utils.request_id import bound_request_id


def _record(**extra: object) -> logging.LogRecord:
    record = logging.LogRecord("slotbook.test", logging.WARNING, __file__, 1, "presence_%s", ("write_failed",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_extra_fields_and_request_id() -> None:
    with bound_request_id("req-9"):
        payload = json.loads(JsonFormatter().format(_record(table_id=10, user_id=3)))
    assert payload["message"] == "presence_write_failed"
    assert payload["level"] == "WARNING"
    assert payload["request_id"] == "req-9"
    assert payload["table_id"] == 10
    assert payload["user_id"] == 3


def test_json_formatter_renders_exceptions() -> None:
    try:
        raise ValueError("boom")
    except ValueError:
        record = _record()
        record.exc_info = sys.exc_info()
    payload = json.loads(JsonFormatter().format(record))
    assert "ValueError: boom" in payload["exception"]
