from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import StrEnum
from typing import Callable, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..domain.errors import NotFoundError, StoreError, ValidationError
from ..domain.repositories import PresenceRepository, ReservationRepository, VenueRepository
from ..domain.slots import generate_slots
from ..models import Reservation, RestaurantTable, SlotPresence, Venue
from ..utils.time import format_slot_time, utc_now_naive

logger = logging.getLogger(__name__)

CAPACITY_FILTERS = ("all", "2", "4", "6+")


class SlotState(StrEnum):
    FREE = "free"
    BOOKED = "booked"
    IN_PROGRESS = "in_progress"


@dataclass
class SlotCell:
    time: str
    state: SlotState
    reservation_id: Optional[int] = None
    viewer_count: int = 0


@dataclass
class TableAvailability:
    table: RestaurantTable
    slots: List[SlotCell] = field(default_factory=list)


def filter_tables_by_capacity(tables: Iterable[RestaurantTable], capacity: str) -> List[RestaurantTable]:
    if capacity not in CAPACITY_FILTERS:
        raise ValidationError(f"capacity filter must be one of {', '.join(CAPACITY_FILTERS)}")
    if capacity == "all":
        return list(tables)
    if capacity == "6+":
        return [t for t in tables if t.capacity >= 6]
    wanted = int(capacity)
    return [t for t in tables if t.capacity == wanted]


def build_availability(
    venue: Venue,
    tables: Iterable[RestaurantTable],
    reservations: Iterable[Reservation],
    presences: Iterable[SlotPresence],
    *,
    capacity: str = "all",
) -> List[TableAvailability]:
    """Overlay booked reservations and other viewers' presence on the venue's slot grid."""
    times = generate_slots(venue.opening_time, venue.closing_time, venue.slot_duration_minutes)
    booked = {(r.table_id, format_slot_time(r.start_time)): r.id for r in reservations}
    viewing: dict[tuple[int, str], int] = {}
    for presence in presences:
        slot = (presence.table_id, format_slot_time(presence.slot_time))
        viewing[slot] = viewing.get(slot, 0) + 1

    grid: List[TableAvailability] = []
    active = [t for t in tables if t.is_active]
    for table in filter_tables_by_capacity(active, capacity):
        row = TableAvailability(table=table)
        for slot_time in times:
            slot = (table.id, slot_time)
            if slot in booked:
                row.slots.append(SlotCell(time=slot_time, state=SlotState.BOOKED, reservation_id=booked[slot]))
            elif viewing.get(slot):
                row.slots.append(SlotCell(time=slot_time, state=SlotState.IN_PROGRESS, viewer_count=viewing[slot]))
            else:
                row.slots.append(SlotCell(time=slot_time, state=SlotState.FREE))
        grid.append(row)
    return grid


async def list_availability(
    venue_repo: VenueRepository,
    res_repo: ReservationRepository,
    presence_repo: PresenceRepository,
    *,
    venue_id: int,
    on_date: date,
    user_id: int,
    capacity: str = "all",
    clock: Callable[[], datetime] = utc_now_naive,
) -> tuple[Venue, List[TableAvailability]]:
    venue = await venue_repo.get_venue(venue_id)
    if venue is None:
        raise NotFoundError("venue not found")
    tables = await venue_repo.list_active_tables(venue_id)
    reservations = await res_repo.list_active_for_venue(venue_id, on_date)
    try:
        presences = await presence_repo.list_active_for_venue(
            venue_id, on_date, now=clock(), exclude_user_id=user_id
        )
    except (StoreError, SQLAlchemyError, OSError):
        logger.warning("presence_overlay_unavailable", extra={"venue_id": venue_id}, exc_info=True)
        presences = []
    return venue, build_availability(venue, tables, reservations, presences, capacity=capacity)
