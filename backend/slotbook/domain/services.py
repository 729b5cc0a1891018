from dataclasses import dataclass
from datetime import time
from typing import Optional

from ..utils.time import format_slot_time
from .errors import ConflictError, ValidationError


@dataclass(frozen=True)
class CustomerDetails:
    name: str
    email: str
    phone: str
    member_number: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class SlotSnapshot:
    table_active: bool
    capacity: int
    offered_slots: tuple[str, ...]
    slot_taken: bool


def validate_reservation(
    snapshot: SlotSnapshot,
    *,
    start_time: time,
    guest_count: int,
    customer: CustomerDetails,
) -> None:
    """
    Pure validation: customer fields present, table bookable, guest count within
    capacity, start time is an offered slot, and the slot is not already held.
    Raises ValidationError for bad input and ConflictError for a taken slot.
    """
    missing = [
        field
        for field, value in (("name", customer.name), ("email", customer.email), ("phone", customer.phone))
        if not (value or "").strip()
    ]
    if missing:
        raise ValidationError(f"missing required customer fields: {', '.join(missing)}")
    if not snapshot.table_active:
        raise ValidationError("table is not available for booking")
    if guest_count < 1 or guest_count > snapshot.capacity:
        raise ValidationError(f"guest_count must be between 1 and {snapshot.capacity}")
    if format_slot_time(start_time) not in snapshot.offered_slots:
        raise ValidationError("start_time is not an offered slot for this venue")
    if snapshot.slot_taken:
        raise ConflictError("slot already booked")
