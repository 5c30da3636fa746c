"""Time-of-day slot helpers used by the schedule grid and overlap checks.

All interval arithmetic is done in minutes since midnight on half-open
intervals ``[start, end)``.
"""
from datetime import date, time, timedelta
from typing import Iterator, Union

MINUTES_PER_DAY = 24 * 60

TimeLike = Union[time, int]


def to_minutes(value: TimeLike) -> int:
    """Minutes since midnight for a ``time`` (ints pass through)."""
    if isinstance(value, int):
        return value
    return value.hour * 60 + value.minute


def from_minutes(minutes: int) -> time:
    return time(hour=minutes // 60, minute=minutes % 60)


def parse_time(value: str) -> time:
    """Parse ``HH:MM`` / ``HH:MM:SS`` / ``HH`` into a time.

    Raises:
        ValueError: if the string is not a valid wall-clock time
    """
    parts = value.strip().split(":")
    if not 1 <= len(parts) <= 3 or not all(p.isdigit() for p in parts):
        raise ValueError(f"Invalid time '{value}'")
    hour = int(parts[0])
    minute = int(parts[1]) if len(parts) > 1 else 0
    second = int(parts[2]) if len(parts) > 2 else 0
    return time(hour=hour, minute=minute, second=second)


class DaySlots:
    """Lazy, restartable sequence of slot start times from 00:00.

    Every ``iter()`` starts over; nothing is materialised up front.
    """

    def __init__(self, granularity_minutes: int = 30):
        if granularity_minutes <= 0 or granularity_minutes > MINUTES_PER_DAY:
            raise ValueError(f"Invalid slot granularity: {granularity_minutes}")
        self.granularity_minutes = granularity_minutes

    def __iter__(self) -> Iterator[time]:
        for minutes in range(0, MINUTES_PER_DAY, self.granularity_minutes):
            yield from_minutes(minutes)

    def __len__(self) -> int:
        return len(range(0, MINUTES_PER_DAY, self.granularity_minutes))

    def __repr__(self) -> str:
        return f"DaySlots(granularity_minutes={self.granularity_minutes})"


def slots_for_day(granularity_minutes: int = 30) -> DaySlots:
    """Slots covering the whole day, 00:00-23:30 at the default granularity."""
    return DaySlots(granularity_minutes)


def overlaps(a_start: TimeLike, a_end: TimeLike, b_start: TimeLike, b_end: TimeLike) -> bool:
    """True if two half-open intervals share any minute. Touching ends don't."""
    return to_minutes(a_start) < to_minutes(b_end) and to_minutes(b_start) < to_minutes(a_end)


def covers(slot: TimeLike, start: TimeLike, end: TimeLike) -> bool:
    """True if the slot's start minute lies inside ``[start, end)``."""
    return to_minutes(start) <= to_minutes(slot) < to_minutes(end)


def iter_days(from_date: date, to_date: date) -> Iterator[date]:
    """Every calendar day in ``[from_date, to_date]``."""
    current = from_date
    while current <= to_date:
        yield current
        current += timedelta(days=1)


def format_time(value: time) -> str:
    return value.strftime("%H:%M")
