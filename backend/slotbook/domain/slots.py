from __future__ import annotations

from dataclasses import dataclass
from datetime import date, time

from ..utils.time import format_slot_time, from_minutes, to_minutes


@dataclass(frozen=True)
class SlotKey:
    """One bookable slot: a table at a start time on a date."""

    venue_id: int
    table_id: int
    slot_date: date
    slot_time: time

    @property
    def topic(self) -> str:
        # Change events are fanned out per table; readers re-check the exact slot.
        return presence_topic(self.table_id)


def presence_topic(table_id: int) -> str:
    return f"slot_presence:table:{table_id}"


def generate_slots(opening_time: time, closing_time: time, duration_minutes: int) -> list[str]:
    """
    Ordered ``HH:MM`` start times from opening, stepping by the slot duration.

    Only the start is compared with closing time, so the last slot may run past
    closing. A window shorter than one slot still yields the opening slot.
    """
    if duration_minutes <= 0:
        raise ValueError("slot duration must be positive")

    cursor = to_minutes(opening_time)
    closing = to_minutes(closing_time)
    slots: list[str] = []
    while cursor < closing:
        slots.append(format_slot_time(from_minutes(cursor)))
        cursor += duration_minutes
    return slots


def compute_end_time(start_time: time, duration_minutes: int) -> time:
    """Start plus duration. Raises ValueError if the slot would cross midnight."""
    if duration_minutes <= 0:
        raise ValueError("slot duration must be positive")
    try:
        return from_minutes(to_minutes(start_time) + duration_minutes)
    except ValueError as exc:
        raise ValueError("slot would end after midnight") from exc


def active_slot_key(table_id: int, reservation_date: date, start_time: time) -> str:
    return f"{table_id}:{reservation_date.isoformat()}:{format_slot_time(start_time)}"
