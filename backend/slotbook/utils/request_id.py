from __future__ import annotations

import re
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

REQUEST_ID_HEADER = "X-Request-ID"
_MAX_LENGTH = 128
_ALLOWED = re.compile(r"^[A-Za-z0-9._:-]+$")

_current: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def generate_request_id() -> str:
    return uuid.uuid4().hex


def resolve_request_id(incoming: Optional[str]) -> str:
    """Reuse a well-formed incoming id, otherwise mint a new one."""
    if incoming:
        candidate = incoming.strip()
        if len(candidate) <= _MAX_LENGTH and _ALLOWED.match(candidate):
            return candidate
    return generate_request_id()


def set_request_id(request_id: Optional[str]) -> None:
    _current.set(request_id)


def get_request_id() -> Optional[str]:
    return _current.get()


@contextmanager
def bound_request_id(request_id: str) -> Iterator[str]:
    """Make ``request_id`` current for the block and restore the previous one afterwards."""
    token = _current.set(request_id)
    try:
        yield request_id
    finally:
        _current.reset(token)
