from __future__ import annotations

from datetime import date, datetime, time
from typing import Any, List, Optional, Tuple, cast

from sqlalchemy import Select, delete, select, update
from sqlalchemy.dialects.mysql import insert as mysql_insert
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..domain.errors import ConflictError, StoreError
from ..domain.repositories import (
    MemberRepository,
    PresenceRepository,
    ReservationRepository,
    VenueRepository,
)
from ..domain.services import CustomerDetails
from ..domain.slots import SlotKey, active_slot_key
from ..models import (
    ACTIVE_RESERVATION_STATUSES,
    Member,
    Reservation,
    ReservationStatus,
    RestaurantTable,
    SlotPresence,
    Venue,
)
from ..utils.time import utc_now_naive

_ACTIVE_SLOT_MARKERS = ("uq_res_active_slot", "active_slot_key")


class SqlAlchemyVenueRepository(VenueRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list_venues(self) -> List[Venue]:
        rows = await self.session.scalars(select(Venue).order_by(Venue.name))
        return list(rows.all())

    async def get_venue(self, venue_id: int) -> Venue | None:
        return await self.session.get(Venue, venue_id)

    async def list_active_tables(self, venue_id: int) -> List[RestaurantTable]:
        stmt = (
            select(RestaurantTable)
            .where(RestaurantTable.venue_id == venue_id, RestaurantTable.is_active.is_(True))
            .order_by(RestaurantTable.table_number)
        )
        rows = await self.session.scalars(stmt)
        return list(rows.all())

    async def get_table_with_venue(self, table_id: int) -> Optional[Tuple[RestaurantTable, Venue]]:
        stmt: Select[Tuple[RestaurantTable, Venue]] = (
            select(RestaurantTable, Venue)
            .join(Venue, RestaurantTable.venue_id == Venue.id)
            .where(RestaurantTable.id == table_id)
        )
        row = (await self.session.execute(stmt)).first()
        return cast(Optional[Tuple[RestaurantTable, Venue]], row)


class SqlAlchemyReservationRepository(ReservationRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def has_active(self, table_id: int, reservation_date: date, start_time: time) -> bool:
        stmt = select(Reservation.id).where(
            Reservation.table_id == table_id,
            Reservation.reservation_date == reservation_date,
            Reservation.start_time == start_time,
            Reservation.status.in_(ACTIVE_RESERVATION_STATUSES),
        )
        return await self.session.scalar(stmt.limit(1)) is not None

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
    ) -> Reservation:
        now = utc_now_naive()
        reservation = Reservation(
            user_id=user_id,
            venue_id=venue_id,
            table_id=table_id,
            reservation_date=reservation_date,
            start_time=start_time,
            end_time=end_time,
            guest_count=guest_count,
            customer_name=customer.name.strip(),
            customer_email=customer.email.strip(),
            customer_phone=customer.phone.strip(),
            member_number=(customer.member_number or "").strip() or None,
            notes=customer.notes or None,
            status=status,
            active_slot_key=(
                active_slot_key(table_id, reservation_date, start_time)
                if status in ACTIVE_RESERVATION_STATUSES
                else None
            ),
            created_at=now,
            updated_at=now,
        )
        self.session.add(reservation)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            if any(marker in str(exc.orig) for marker in _ACTIVE_SLOT_MARKERS):
                raise ConflictError("slot already booked") from exc
            raise StoreError("reservation insert rejected") from exc
        except SQLAlchemyError as exc:
            raise StoreError("reservation insert failed") from exc
        return reservation

    async def list_active_for_venue(self, venue_id: int, reservation_date: date) -> List[Reservation]:
        stmt = (
            select(Reservation)
            .where(
                Reservation.venue_id == venue_id,
                Reservation.reservation_date == reservation_date,
                Reservation.status.in_(ACTIVE_RESERVATION_STATUSES),
            )
            .order_by(Reservation.table_id, Reservation.start_time)
        )
        rows = await self.session.scalars(stmt)
        return list(rows.all())

    async def list_by_user(self, user_id: int) -> List[Reservation]:
        stmt = (
            select(Reservation)
            .where(Reservation.user_id == user_id)
            .order_by(Reservation.reservation_date, Reservation.start_time)
        )
        rows = await self.session.scalars(stmt)
        return list(rows.all())

    async def get_for_user(self, reservation_id: int, user_id: int) -> Reservation | None:
        stmt = select(Reservation).where(Reservation.id == reservation_id, Reservation.user_id == user_id)
        return await self.session.scalar(stmt)


def _presence_upsert(dialect_name: str, values: dict[str, Any]) -> Any:
    """Insert-or-refresh on the viewer/slot natural key; the later write wins."""
    if dialect_name == "mysql":
        mysql_stmt = mysql_insert(SlotPresence).values(**values)
        return mysql_stmt.on_duplicate_key_update(
            viewed_at=mysql_stmt.inserted.viewed_at,
            expires_at=mysql_stmt.inserted.expires_at,
        )
    if dialect_name in ("postgresql", "sqlite"):
        builder = pg_insert if dialect_name == "postgresql" else sqlite_insert
        stmt = builder(SlotPresence).values(**values)
        return stmt.on_conflict_do_update(
            index_elements=["user_id", "venue_id", "table_id", "slot_date", "slot_time"],
            set_={"viewed_at": stmt.excluded.viewed_at, "expires_at": stmt.excluded.expires_at},
        )
    raise StoreError(f"presence upsert not supported on {dialect_name}")


class SqlAlchemyPresenceRepository(PresenceRepository):
    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self.sessionmaker = sessionmaker

    async def upsert(self, *, user_id: int, key: SlotKey, viewed_at: datetime, expires_at: datetime) -> int:
        values = {
            "user_id": user_id,
            "venue_id": key.venue_id,
            "table_id": key.table_id,
            "slot_date": key.slot_date,
            "slot_time": key.slot_time,
            "viewed_at": viewed_at,
            "expires_at": expires_at,
        }
        async with self.sessionmaker.begin() as session:
            dialect_name = session.get_bind().dialect.name
            await session.execute(_presence_upsert(dialect_name, values))
            presence_id = await session.scalar(
                select(SlotPresence.id).where(
                    SlotPresence.user_id == user_id,
                    SlotPresence.venue_id == key.venue_id,
                    SlotPresence.table_id == key.table_id,
                    SlotPresence.slot_date == key.slot_date,
                    SlotPresence.slot_time == key.slot_time,
                )
            )
        if presence_id is None:
            raise StoreError("presence row missing after upsert")
        return int(presence_id)

    async def touch(self, presence_id: int, *, user_id: int, viewed_at: datetime, expires_at: datetime) -> bool:
        stmt = (
            update(SlotPresence)
            .where(SlotPresence.id == presence_id, SlotPresence.user_id == user_id)
            .values(viewed_at=viewed_at, expires_at=expires_at)
        )
        async with self.sessionmaker.begin() as session:
            result = await session.execute(stmt)
        return bool(result.rowcount)

    async def delete(self, presence_id: int, *, user_id: int) -> SlotPresence | None:
        async with self.sessionmaker.begin() as session:
            presence = await session.scalar(
                select(SlotPresence).where(SlotPresence.id == presence_id, SlotPresence.user_id == user_id)
            )
            if presence is None:
                return None
            await session.execute(delete(SlotPresence).where(SlotPresence.id == presence_id))
        return presence

    async def list_active(self, key: SlotKey, *, now: datetime, exclude_user_id: int) -> List[SlotPresence]:
        stmt = (
            select(SlotPresence)
            .where(
                SlotPresence.venue_id == key.venue_id,
                SlotPresence.table_id == key.table_id,
                SlotPresence.slot_date == key.slot_date,
                SlotPresence.slot_time == key.slot_time,
                SlotPresence.user_id != exclude_user_id,
                SlotPresence.expires_at > now,
            )
            .order_by(SlotPresence.viewed_at)
        )
        async with self.sessionmaker() as session:
            rows = await session.scalars(stmt)
            return list(rows.all())

    async def list_active_for_venue(
        self,
        venue_id: int,
        slot_date: date,
        *,
        now: datetime,
        exclude_user_id: int,
    ) -> List[SlotPresence]:
        stmt = select(SlotPresence).where(
            SlotPresence.venue_id == venue_id,
            SlotPresence.slot_date == slot_date,
            SlotPresence.user_id != exclude_user_id,
            SlotPresence.expires_at > now,
        )
        async with self.sessionmaker() as session:
            rows = await session.scalars(stmt)
            return list(rows.all())


class SqlAlchemyMemberRepository(MemberRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_number(self, member_number: str) -> Member | None:
        return await self.session.scalar(select(Member).where(Member.member_number == member_number))
