from datetime import date, datetime, time
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_serializer, field_validator

from .models import Member, Reservation, ReservationStatus, RestaurantTable, SlotPresence, Venue
from .domain.slots import generate_slots
from .usecases.slots import SlotState, TableAvailability
from .utils.time import format_slot_time, parse_slot_time


def _coerce_slot_time(value: Any) -> Any:
    if isinstance(value, str):
        return parse_slot_time(value)
    return value


class VenueRead(BaseModel):
    venue_id: int
    name: str
    address: str
    opening_time: time
    closing_time: time
    slot_duration_minutes: int
    slots: List[str]

    @field_serializer("opening_time", "closing_time")
    def serialize_time(self, value: time) -> str:
        return format_slot_time(value)

    @classmethod
    def from_db(cls, *, venue: Venue) -> "VenueRead":
        return cls(
            venue_id=venue.id,
            name=venue.name,
            address=venue.address,
            opening_time=venue.opening_time,
            closing_time=venue.closing_time,
            slot_duration_minutes=venue.slot_duration_minutes,
            slots=generate_slots(venue.opening_time, venue.closing_time, venue.slot_duration_minutes),
        )


class TableRead(BaseModel):
    table_id: int
    venue_id: int
    table_number: str
    capacity: int

    @classmethod
    def from_db(cls, *, table: RestaurantTable) -> "TableRead":
        return cls(
            table_id=table.id,
            venue_id=table.venue_id,
            table_number=table.table_number,
            capacity=table.capacity,
        )


class SlotCellRead(BaseModel):
    time: str
    state: SlotState
    reservation_id: Optional[int] = None
    viewer_count: int = 0


class TableAvailabilityRead(BaseModel):
    table: TableRead
    slots: List[SlotCellRead]

    @classmethod
    def from_row(cls, row: TableAvailability) -> "TableAvailabilityRead":
        return cls(
            table=TableRead.from_db(table=row.table),
            slots=[
                SlotCellRead(
                    time=cell.time,
                    state=cell.state,
                    reservation_id=cell.reservation_id,
                    viewer_count=cell.viewer_count,
                )
                for cell in row.slots
            ],
        )


class AvailabilityRead(BaseModel):
    venue: VenueRead
    on_date: date
    tables: List[TableAvailabilityRead]


class ReservationCreate(BaseModel):
    table_id: int
    reservation_date: date
    start_time: time
    guest_count: int = Field(ge=1)
    customer_name: str
    customer_email: str
    customer_phone: str
    member_number: Optional[str] = None
    notes: Optional[str] = None

    coerce_start_time = field_validator("start_time", mode="before")(_coerce_slot_time)


class ReservationRead(BaseModel):
    reservation_id: int
    user_id: int
    venue_id: int
    table_id: int
    reservation_date: date
    start_time: time
    end_time: time
    guest_count: int
    customer_name: str
    customer_email: str
    customer_phone: str
    member_number: Optional[str]
    notes: Optional[str]
    status: ReservationStatus

    @field_serializer("start_time", "end_time")
    def serialize_time(self, value: time) -> str:
        return format_slot_time(value)

    @classmethod
    def from_db(cls, *, reservation: Reservation) -> "ReservationRead":
        return cls(
            reservation_id=reservation.id,
            user_id=reservation.user_id,
            venue_id=reservation.venue_id,
            table_id=reservation.table_id,
            reservation_date=reservation.reservation_date,
            start_time=reservation.start_time,
            end_time=reservation.end_time,
            guest_count=reservation.guest_count,
            customer_name=reservation.customer_name,
            customer_email=reservation.customer_email,
            customer_phone=reservation.customer_phone,
            member_number=reservation.member_number,
            notes=reservation.notes,
            status=reservation.status,
        )


class PresenceBegin(BaseModel):
    venue_id: int
    table_id: int
    slot_date: date
    slot_time: time
    presence_id: Optional[int] = Field(default=None, ge=1)

    coerce_slot_time = field_validator("slot_time", mode="before")(_coerce_slot_time)


class PresenceRead(BaseModel):
    presence_id: Optional[int]
    expires_in_seconds: int


class ViewerRead(BaseModel):
    user_id: int
    viewed_at: datetime
    expires_at: datetime

    @classmethod
    def from_db(cls, *, presence: SlotPresence) -> "ViewerRead":
        return cls(user_id=presence.user_id, viewed_at=presence.viewed_at, expires_at=presence.expires_at)


class ViewersRead(BaseModel):
    viewers: List[ViewerRead]
    is_locked: bool

    @classmethod
    def from_db(cls, presences: List[SlotPresence]) -> "ViewersRead":
        return cls(viewers=[ViewerRead.from_db(presence=p) for p in presences], is_locked=bool(presences))


class MemberRead(BaseModel):
    member_number: str
    name: str
    email: str
    phone: str

    @classmethod
    def from_db(cls, *, member: Member) -> "MemberRead":
        return cls(member_number=member.member_number, name=member.name, email=member.email, phone=member.phone)
