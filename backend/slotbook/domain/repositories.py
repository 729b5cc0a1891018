from __future__ import annotations

from datetime import date, datetime, time
from typing import Protocol

from ..models import Member, Reservation, ReservationStatus, RestaurantTable, SlotPresence, Venue
from .services import CustomerDetails
from .slots import SlotKey


class VenueRepository(Protocol):
    async def list_venues(self) -> list[Venue]: ...

    async def get_venue(self, venue_id: int) -> Venue | None: ...

    async def list_active_tables(self, venue_id: int) -> list[RestaurantTable]: ...

    async def get_table_with_venue(self, table_id: int) -> tuple[RestaurantTable, Venue] | None: ...


class ReservationRepository(Protocol):
    async def has_active(self, table_id: int, reservation_date: date, start_time: time) -> bool: ...

    async def create(
        self,
        *,
        user_id: int,
        venue_id: int,
        table_id: int,
        reservation_date: date,
        start_time: time,
        end_time: time,
        guest_count: int,
        customer: CustomerDetails,
        status: ReservationStatus,
    ) -> Reservation: ...

    async def list_active_for_venue(self, venue_id: int, reservation_date: date) -> list[Reservation]: ...

    async def list_by_user(self, user_id: int) -> list[Reservation]: ...

    async def get_for_user(self, reservation_id: int, user_id: int) -> Reservation | None: ...


class PresenceRepository(Protocol):
    """Each call is its own unit of work against the store."""

    async def upsert(self, *, user_id: int, key: SlotKey, viewed_at: datetime, expires_at: datetime) -> int: ...

    async def touch(self, presence_id: int, *, user_id: int, viewed_at: datetime, expires_at: datetime) -> bool: ...

    async def delete(self, presence_id: int, *, user_id: int) -> SlotPresence | None: ...

    async def list_active(self, key: SlotKey, *, now: datetime, exclude_user_id: int) -> list[SlotPresence]: ...

    async def list_active_for_venue(
        self,
        venue_id: int,
        slot_date: date,
        *,
        now: datetime,
        exclude_user_id: int,
    ) -> list[SlotPresence]: ...


class MemberRepository(Protocol):
    async def get_by_number(self, member_number: str) -> Member | None: ...
