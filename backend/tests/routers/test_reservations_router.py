from datetime import date, datetime, time
from typing import Any, List, cast

import pytest
from fastapi import HTTPException
from slotbook.domain.errors import ConflictError, StoreError, ValidationError
from slotbook.models import Reservation, ReservationStatus, RestaurantTable, Venue
from slotbook.routers import reservations as router
from slotbook.schemas import ReservationCreate, ReservationRead
from slotbook.services.notifications import NotificationDispatcher
from sqlalchemy.ext.asyncio import AsyncSession


class DummySession:
    async def __aenter__(self) -> "DummySession":
        return self

    async def __aexit__(self, exc_type: object, exc: object, tb: object) -> bool:
        return False

    def begin(self) -> "DummySession":
        return self


def _venue() -> Venue:
    return Venue(
        id=1,
        name="Harbour Grill",
        address="1 Quay St",
        opening_time=time(17, 0),
        closing_time=time(22, 0),
        slot_duration_minutes=90,
    )


def _table() -> RestaurantTable:
    return RestaurantTable(id=10, venue_id=1, table_number="T1", capacity=4, is_active=True)


def _reservation() -> Reservation:
    now = datetime(2026, 5, 1, 12, 0)
    return Reservation(
        id=100,
        user_id=200,
        venue_id=1,
        table_id=10,
        reservation_date=date(2026, 5, 20),
        start_time=time(18, 30),
        end_time=time(20, 0),
        guest_count=2,
        customer_name="Grace",
        customer_email="grace@example.com",
        customer_phone="+15550111",
        member_number=None,
        notes=None,
        status=ReservationStatus.CONFIRMED,
        created_at=now,
        updated_at=now,
    )


def _payload() -> ReservationCreate:
    return ReservationCreate(
        table_id=10,
        reservation_date=date(2026, 5, 20),
        start_time="18:30",  # type: ignore[arg-type]
        guest_count=2,
        customer_name="Grace",
        customer_email="grace@example.com",
        customer_phone="+15550111",
    )


@pytest.fixture
def audit_calls(monkeypatch: pytest.MonkeyPatch) -> List[dict[str, Any]]:
    calls: List[dict[str, Any]] = []

    def fake_emit(**kwargs: Any) -> None:
        calls.append(kwargs)

    monkeypatch.setattr(router, "SqlAlchemyVenueRepository", lambda s: s)  # type: ignore[assignment]
    monkeypatch.setattr(router, "SqlAlchemyReservationRepository", lambda s: s)  # type: ignore[assignment]
    monkeypatch.setattr(router, "emit_audit_log", fake_emit)
    return calls


@pytest.fixture
def notified(monkeypatch: pytest.MonkeyPatch) -> List[Reservation]:
    sent: List[Reservation] = []

    async def fake_notify(dispatcher: object, *, reservation: Reservation, **kwargs: object) -> None:
        sent.append(reservation)

    monkeypatch.setattr(router.reservation_usecase, "notify_reservation_confirmed", fake_notify)
    return sent


async def _call() -> ReservationRead:
    return await router.create_reservation(
        payload=_payload(),
        session=cast(AsyncSession, DummySession()),
        dispatcher=cast(NotificationDispatcher, object()),
        user_id=200,
    )


def _fail_with(monkeypatch: pytest.MonkeyPatch, error: Exception) -> None:
    async def fake_create(*args: object, **kwargs: object) -> None:
        raise error

    monkeypatch.setattr(router.reservation_usecase, "create_reservation", fake_create)


@pytest.mark.asyncio
async def test_create_reservation_audits_and_notifies(
    monkeypatch: pytest.MonkeyPatch,
    audit_calls: List[dict[str, Any]],
    notified: List[Reservation],
) -> None:
    reservation = _reservation()

    async def fake_create(*args: object, **kwargs: Any) -> tuple[Reservation, RestaurantTable, Venue]:
        assert kwargs["start_time"] == time(18, 30)
        assert kwargs["customer"].email == "grace@example.com"
        return reservation, _table(), _venue()

    monkeypatch.setattr(router.reservation_usecase, "create_reservation", fake_create)

    result = await _call()

    assert result.reservation_id == 100
    assert result.model_dump(mode="json")["end_time"] == "20:00"
    assert [c["action"] for c in audit_calls] == ["reservation.created"]
    assert audit_calls[0]["venue_id"] == 1
    assert notified == [reservation]


@pytest.mark.asyncio
async def test_conflict_returns_409_with_fixed_detail(
    monkeypatch: pytest.MonkeyPatch,
    audit_calls: List[dict[str, Any]],
    notified: List[Reservation],
) -> None:
    _fail_with(monkeypatch, ConflictError("slot already booked"))

    with pytest.raises(HTTPException) as excinfo:
        await _call()

    assert excinfo.value.status_code == 409
    assert excinfo.value.detail == router.SLOT_TAKEN_DETAIL
    assert [c["action"] for c in audit_calls] == ["reservation.conflict"]
    assert notified == []


@pytest.mark.asyncio
async def test_validation_error_returns_422(
    monkeypatch: pytest.MonkeyPatch,
    audit_calls: List[dict[str, Any]],
    notified: List[Reservation],
) -> None:
    _fail_with(monkeypatch, ValidationError("guest_count must be between 1 and 4"))

    with pytest.raises(HTTPException) as excinfo:
        await _call()

    assert excinfo.value.status_code == 422
    assert audit_calls == []


@pytest.mark.asyncio
async def test_store_failure_returns_503_without_notifying(
    monkeypatch: pytest.MonkeyPatch,
    audit_calls: List[dict[str, Any]],
    notified: List[Reservation],
) -> None:
    _fail_with(monkeypatch, StoreError("connection lost"))

    with pytest.raises(HTTPException) as excinfo:
        await _call()

    assert excinfo.value.status_code == 503
    assert excinfo.value.detail == router.WRITE_FAILED_DETAIL
    assert notified == []


@pytest.mark.asyncio
async def test_audit_failure_does_not_fail_booking(
    monkeypatch: pytest.MonkeyPatch,
    notified: List[Reservation],
) -> None:
    async def fake_create(*args: object, **kwargs: object) -> tuple[Reservation, RestaurantTable, Venue]:
        return _reservation(), _table(), _venue()

    def broken_emit(**kwargs: Any) -> None:
        raise RuntimeError("log sink down")

    monkeypatch.setattr(router, "SqlAlchemyVenueRepository", lambda s: s)  # type: ignore[assignment]
    monkeypatch.setattr(router, "SqlAlchemyReservationRepository", lambda s: s)  # type: ignore[assignment]
    monkeypatch.setattr(router.reservation_usecase, "create_reservation", fake_create)
    monkeypatch.setattr(router, "emit_audit_log", broken_emit)

    result = await _call()

    assert result.reservation_id == 100
    assert len(notified) == 1
