import logging
from typing import Any, List

from fastapi import APIRouter, Depends, HTTPException, Path, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_current_user_id, get_dispatcher, get_session
from ..domain.errors import ConflictError, NotFoundError, StoreError, ValidationError
from ..domain.services import CustomerDetails
from ..infrastructure.repositories import SqlAlchemyReservationRepository, SqlAlchemyVenueRepository
from ..schemas import ReservationCreate, ReservationRead
from ..services.notifications import NotificationDispatcher
from ..usecases import reservations as reservation_usecase
from ..utils.audit_log import emit_audit_log

logger = logging.getLogger(__name__)

router = APIRouter(prefix="", tags=["reservations"])

SLOT_TAKEN_DETAIL = "This time slot has just been booked. Please select another slot."
WRITE_FAILED_DETAIL = "Failed to create reservation"


def _audit(**fields: Any) -> None:
    # Audit failures never change the booking outcome.
    try:
        emit_audit_log(**fields)
    except RuntimeError:
        logger.exception("reservation_audit_failed", extra={"action": fields.get("action")})


@router.post("/reservations", response_model=ReservationRead, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    payload: ReservationCreate,
    session: AsyncSession = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    user_id: int = Depends(get_current_user_id),
) -> ReservationRead:
    venue_repo = SqlAlchemyVenueRepository(session)
    res_repo = SqlAlchemyReservationRepository(session)
    customer = CustomerDetails(
        name=payload.customer_name,
        email=payload.customer_email,
        phone=payload.customer_phone,
        member_number=payload.member_number,
        notes=payload.notes,
    )
    try:
        async with session.begin():
            reservation, table, venue = await reservation_usecase.create_reservation(
                venue_repo,
                res_repo,
                user_id=user_id,
                table_id=payload.table_id,
                reservation_date=payload.reservation_date,
                start_time=payload.start_time,
                guest_count=payload.guest_count,
                customer=customer,
            )
    except NotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="table not found")
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    except ConflictError:
        _audit(
            action="reservation.conflict",
            initiator="user",
            reservation_id=None,
            venue_id=None,
            table_id=payload.table_id,
            user_id=user_id,
            reservation_date=payload.reservation_date,
            start_time=payload.start_time,
            guest_count=payload.guest_count,
        )
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=SLOT_TAKEN_DETAIL)
    except (StoreError, SQLAlchemyError):
        logger.exception("reservation_write_failed", extra={"table_id": payload.table_id})
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=WRITE_FAILED_DETAIL)

    _audit(
        action="reservation.created",
        initiator="user",
        reservation_id=reservation.id,
        venue_id=venue.id,
        table_id=table.id,
        user_id=user_id,
        reservation_date=reservation.reservation_date,
        start_time=reservation.start_time,
        guest_count=reservation.guest_count,
        status=reservation.status,
    )

    await reservation_usecase.notify_reservation_confirmed(
        dispatcher,
        reservation=reservation,
        table=table,
        venue=venue,
    )
    return ReservationRead.from_db(reservation=reservation)


@router.get("/me/reservations", response_model=List[ReservationRead])
async def list_my_reservations(
    session: AsyncSession = Depends(get_session),
    user_id: int = Depends(get_current_user_id),
) -> list[ReservationRead]:
    res_repo = SqlAlchemyReservationRepository(session)
    rows = await reservation_usecase.list_user_reservations(res_repo, user_id=user_id)
    return [ReservationRead.from_db(reservation=row) for row in rows]


@router.get("/me/reservations/{reservation_id}", response_model=ReservationRead)
async def get_my_reservation(
    reservation_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    user_id: int = Depends(get_current_user_id),
) -> ReservationRead:
    res_repo = SqlAlchemyReservationRepository(session)
    reservation = await reservation_usecase.get_user_reservation(
        res_repo, reservation_id=reservation_id, user_id=user_id
    )
    if reservation is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="reservation not found")
    return ReservationRead.from_db(reservation=reservation)
