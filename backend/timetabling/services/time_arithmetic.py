from __future__ import annotations

import re
from typing import Protocol

from timetabling.core.exceptions import FormatError

TIME_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")

MINUTES_PER_DAY = 24 * 60


class TimeInterval(Protocol):
    start_time: str
    end_time: str


class DayInterval(TimeInterval, Protocol):
    day: str


def to_minutes(value: str) -> int:
    """Convert an ``HH:MM`` wall-clock string to minutes since midnight."""
    if not isinstance(value, str) or not TIME_PATTERN.fullmatch(value):
        raise FormatError(str(value))
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def minutes_to_time(value: int) -> str:
    if not 0 <= value < MINUTES_PER_DAY:
        raise ValueError(f"Minute offset {value} is outside a single day")
    hours = value // 60
    minutes = value % 60
    return f"{hours:02d}:{minutes:02d}"


def intervals_overlap(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    # Half-open: touching at a boundary is not an overlap.
    return a_start < b_end and b_start < a_end


def overlaps(a: TimeInterval, b: TimeInterval) -> bool:
    return intervals_overlap(
        to_minutes(a.start_time),
        to_minutes(a.end_time),
        to_minutes(b.start_time),
        to_minutes(b.end_time),
    )


def same_day_overlap(a: DayInterval, b: DayInterval) -> bool:
    return a.day == b.day and overlaps(a, b)
