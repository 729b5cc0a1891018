import json
from datetime import date, time
from typing import Any, List

import pytest
from slotbook.models import ReservationStatus
from slotbook.utils import audit_log
from slotbook.utils.request_id import bound_request_id


def test_emit_audit_log_outputs_json(monkeypatch: pytest.MonkeyPatch) -> None:
    messages: List[str] = []

    class DummyLogger:
        def info(self, message: str) -> None:
            messages.append(message)

    monkeypatch.setattr(audit_log, "_audit_logger", DummyLogger())

    with bound_request_id("req-123"):
        audit_log.emit_audit_log(
            action="reservation.created",
            initiator="user",
            reservation_id=1,
            venue_id=3,
            table_id=2,
            user_id=4,
            reservation_date=date(2026, 5, 20),
            start_time=time(18, 30),
            guest_count=2,
            status=ReservationStatus.CONFIRMED,
        )
    assert len(messages) == 1
    payload = json.loads(messages[0])
    assert payload["action"] == "reservation.created"
    assert payload["request_id"] == "req-123"
    assert payload["status"] == "confirmed"
    assert payload["reservation_date"] == "2026-05-20"
    assert payload["start_time"] == "18:30:00"
    assert "timestamp" in payload


def test_emit_audit_log_drops_empty_fields(monkeypatch: pytest.MonkeyPatch) -> None:
    messages: List[str] = []

    class DummyLogger:
        def info(self, message: str) -> None:
            messages.append(message)

    monkeypatch.setattr(audit_log, "_audit_logger", DummyLogger())

    audit_log.emit_audit_log(
        action="reservation.conflict",
        initiator="user",
        reservation_id=None,
        venue_id=None,
        table_id=2,
        user_id=4,
        extra={"reason": "slot_taken"},
    )
    payload = json.loads(messages[0])
    assert "reservation_id" not in payload
    assert payload["reason"] == "slot_taken"


def test_emit_audit_log_raises_on_logger_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    class DummyLogger:
        def info(self, _: Any) -> None:
            raise ValueError("fail")

    monkeypatch.setattr(audit_log, "_audit_logger", DummyLogger())

    with pytest.raises(RuntimeError):
        audit_log.emit_audit_log(
            action="reservation.created",
            initiator="user",
            reservation_id=1,
            venue_id=3,
            table_id=2,
            user_id=4,
        )
