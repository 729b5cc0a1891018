import logging
from datetime import date, time

from ..domain.errors import NotFoundError, ValidationError
from ..domain.repositories import ReservationRepository, VenueRepository
from ..domain.services import CustomerDetails, SlotSnapshot, validate_reservation
from ..domain.slots import compute_end_time, generate_slots
from ..models import Reservation, ReservationStatus, RestaurantTable, Venue
from ..services.notifications import NotificationDispatcher, ReservationDetails

logger = logging.getLogger(__name__)


async def create_reservation(
    venue_repo: VenueRepository,
    res_repo: ReservationRepository,
    *,
    user_id: int,
    table_id: int,
    reservation_date: date,
    start_time: time,
    guest_count: int,
    customer: CustomerDetails,
) -> tuple[Reservation, RestaurantTable, Venue]:
    """
    Check the slot is free, then insert a confirmed reservation.

    The pre-check only gives a friendly early answer. Two callers can both pass
    it; the unique active-slot key on insert decides the winner and the loser
    gets ConflictError from the repository.
    """
    row = await venue_repo.get_table_with_venue(table_id)
    if row is None:
        raise NotFoundError("table not found")
    table, venue = row

    try:
        end_time = compute_end_time(start_time, venue.slot_duration_minutes)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc

    slot_taken = await res_repo.has_active(table.id, reservation_date, start_time)
    snapshot = SlotSnapshot(
        table_active=table.is_active,
        capacity=table.capacity,
        offered_slots=tuple(generate_slots(venue.opening_time, venue.closing_time, venue.slot_duration_minutes)),
        slot_taken=slot_taken,
    )
    validate_reservation(snapshot, start_time=start_time, guest_count=guest_count, customer=customer)

    reservation = await res_repo.create(
        user_id=user_id,
        venue_id=venue.id,
        table_id=table.id,
        reservation_date=reservation_date,
        start_time=start_time,
        end_time=end_time,
        guest_count=guest_count,
        customer=customer,
        status=ReservationStatus.CONFIRMED,
    )
    return reservation, table, venue


async def notify_reservation_confirmed(
    dispatcher: NotificationDispatcher,
    *,
    reservation: Reservation,
    table: RestaurantTable,
    venue: Venue,
) -> None:
    """Send the confirmation once. The booking is already committed, so failures only get logged."""
    details = ReservationDetails.from_reservation(reservation=reservation, table=table, venue=venue)
    try:
        await dispatcher.dispatch(details)
    except Exception:
        logger.exception("reservation_notification_failed", extra={"reservation_id": reservation.id})


async def list_venue_reservations(
    res_repo: ReservationRepository,
    *,
    venue_id: int,
    on_date: date,
) -> list[Reservation]:
    return await res_repo.list_active_for_venue(venue_id, on_date)


async def list_user_reservations(
    res_repo: ReservationRepository,
    *,
    user_id: int,
) -> list[Reservation]:
    return await res_repo.list_by_user(user_id)


async def get_user_reservation(
    res_repo: ReservationRepository,
    *,
    reservation_id: int,
    user_id: int,
) -> Reservation | None:
    return await res_repo.get_for_user(reservation_id, user_id)
