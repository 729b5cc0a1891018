"""JSON audit trail for booking outcomes, one line per event on the ``audit`` logger."""
from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, time, timezone
from enum import Enum
from typing import Any, Literal, Optional

from .request_id import get_request_id

AuditAction = Literal["reservation.created", "reservation.conflict"]
AuditInitiator = Literal["user", "system"]


def _build_audit_logger() -> logging.Logger:
    audit = logging.getLogger("audit")
    audit.setLevel(logging.INFO)
    if not audit.handlers:
        stream = logging.StreamHandler()
        stream.setFormatter(logging.Formatter("%(message)s"))
        audit.addHandler(stream)
    # Audit lines bypass the application formatter.
    audit.propagate = False
    return audit


_audit_logger = _build_audit_logger()


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (date, time, datetime)):
        return value.isoformat()
    return value


@dataclass(frozen=True)
class AuditEvent:
    action: AuditAction
    initiator: AuditInitiator
    reservation_id: Optional[int]
    venue_id: Optional[int]
    table_id: Optional[int]
    user_id: Optional[int]
    reservation_date: Optional[date] = None
    start_time: Optional[time] = None
    guest_count: Optional[int] = None
    status: Optional[str] = None
    message: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        fields = asdict(self)
        extra = fields.pop("extra")
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": "info",
            "request_id": get_request_id(),
        }
        payload.update({key: _jsonable(value) for key, value in fields.items()})
        payload.update(extra)
        return {key: value for key, value in payload.items() if value is not None}


def emit_audit_log(**fields: Any) -> None:
    """Write one audit line. Raises RuntimeError if the event cannot be logged."""
    try:
        event = AuditEvent(**fields)
        _audit_logger.info(json.dumps(event.to_payload(), ensure_ascii=True, default=str))
    except Exception as exc:
        raise RuntimeError("failed to emit audit log") from exc
