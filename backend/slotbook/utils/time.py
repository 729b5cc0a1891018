from datetime import datetime, time, timezone

SLOT_TIME_FORMAT = "%H:%M"
MINUTES_PER_DAY = 24 * 60


def utc_now_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def from_minutes(minutes: int) -> time:
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ValueError("minutes must fall within a single day")
    return time(hour=minutes // 60, minute=minutes % 60)


def parse_slot_time(value: str) -> time:
    """Parse ``HH:MM`` or ``HH:MM:SS`` into a wall-clock time (seconds dropped)."""
    text = value.strip()
    for fmt in (SLOT_TIME_FORMAT, "%H:%M:%S"):
        try:
            parsed = datetime.strptime(text, fmt).time()
        except ValueError:
            continue
        return parsed.replace(second=0, microsecond=0)
    raise ValueError(f"invalid slot time: {value!r}")


def format_slot_time(value: time) -> str:
    return value.strftime(SLOT_TIME_FORMAT)
