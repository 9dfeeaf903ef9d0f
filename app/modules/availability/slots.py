"""Bookable start-time computation over weekly availability.

Pure functions only: callers load availability rules, blocked intervals and
existing bookings, then ask which start times are free on a given date.

Rules use the stored weekday convention 0=Sunday .. 6=Saturday and local
wall-clock times in the tutor's timezone. Blocked intervals are absolute
instants; naive values are read as tutor-local.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Protocol

from app.shared.exceptions import InvalidInputException

MINUTES_PER_DAY = 24 * 60

ClockValue = str | time


class WeeklyWindow(Protocol):
    day_of_week: int
    start_time: ClockValue
    end_time: ClockValue
    is_available: bool


class BlockedWindow(Protocol):
    start_datetime: datetime
    end_datetime: datetime


class BookedLesson(Protocol):
    lesson_time: ClockValue
    duration_minutes: int | None


def parse_clock(value: ClockValue, *, allow_end_of_day: bool = False) -> int:
    """Convert ``HH:MM``/``HH:MM:SS`` (or ``time``) into minutes after midnight.

    With ``allow_end_of_day`` the value closes a window, so ``24:00`` and a
    stored midnight (``00:00``) both mean the end of the day.
    """
    if isinstance(value, time):
        minutes = value.hour * 60 + value.minute
        return MINUTES_PER_DAY if allow_end_of_day and minutes == 0 else minutes

    if not isinstance(value, str):
        raise InvalidInputException(f"Malformed time value: {value!r}")

    parts = value.strip().split(":")
    if len(parts) not in (2, 3) or not all(part.isdigit() for part in parts):
        raise InvalidInputException(f"Malformed time value: {value!r}")

    hours, minutes = int(parts[0]), int(parts[1])
    seconds = int(parts[2]) if len(parts) == 3 else 0
    if minutes > 59 or seconds > 59:
        raise InvalidInputException(f"Malformed time value: {value!r}")
    if hours == 24 and minutes == 0 and seconds == 0 and allow_end_of_day:
        return MINUTES_PER_DAY
    if hours > 23:
        raise InvalidInputException(f"Malformed time value: {value!r}")
    if allow_end_of_day and hours == 0 and minutes == 0:
        return MINUTES_PER_DAY
    return hours * 60 + minutes


def window_minutes(start: ClockValue, end: ClockValue) -> tuple[int, int]:
    """Minute bounds of a weekly window; an end of midnight closes the day."""
    return parse_clock(start), parse_clock(end, allow_end_of_day=True)


def format_clock(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def weekday_index(day: date) -> int:
    """Weekday with Sunday as 0."""
    return (day.weekday() + 1) % 7


def _require_positive(name: str, value: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidInputException(f"{name} must be a positive number of minutes")


def _rule_bounds(rules: Iterable[WeeklyWindow], day: date) -> list[tuple[int, int]]:
    target = weekday_index(day)
    bounds = []
    for rule in rules:
        if int(rule.day_of_week) != target or not rule.is_available:
            continue
        start, end = window_minutes(rule.start_time, rule.end_time)
        if end > start:
            bounds.append((start, end))
    return bounds


def _blocked_ranges(blocked: Iterable[BlockedWindow], tz: tzinfo) -> list[tuple[datetime, datetime]]:
    ranges = []
    for item in blocked:
        start, end = item.start_datetime, item.end_datetime
        if start.tzinfo is None:
            start = start.replace(tzinfo=tz)
        if end.tzinfo is None:
            end = end.replace(tzinfo=tz)
        ranges.append((start, end))
    return ranges


def _booked_ranges(bookings: Iterable[BookedLesson], fallback_duration: int) -> list[tuple[int, int]]:
    ranges = []
    for booking in bookings:
        start = parse_clock(booking.lesson_time)
        length = booking.duration_minutes or fallback_duration
        ranges.append((start, start + length))
    return ranges


def _local_instant(day: date, minutes: int, tz: tzinfo) -> datetime:
    return datetime.combine(day, time(0), tzinfo=tz) + timedelta(minutes=minutes)


def _is_free(
    day: date,
    start: int,
    duration: int,
    tz: tzinfo,
    blocked: list[tuple[datetime, datetime]],
    booked: list[tuple[int, int]],
) -> bool:
    end = start + duration
    for booked_start, booked_end in booked:
        if start < booked_end and end > booked_start:
            return False

    if blocked:
        slot_start = _local_instant(day, start, tz)
        slot_end = _local_instant(day, end, tz)
        for blocked_start, blocked_end in blocked:
            if slot_start < blocked_end and slot_end > blocked_start:
                return False
    return True


def compute_available_start_times(
    rules: Iterable[WeeklyWindow],
    blocked: Iterable[BlockedWindow],
    bookings: Iterable[BookedLesson],
    day: date,
    duration_minutes: int,
    step_minutes: int,
    tz: tzinfo,
) -> list[str]:
    """Return ascending ``HH:MM`` start times free for a lesson on ``day``.

    ``bookings`` should already be restricted to the tutor's pending and
    confirmed lessons on ``day``; a booking without a duration is assumed to
    last ``duration_minutes``.
    """
    _require_positive("duration_minutes", duration_minutes)
    _require_positive("step_minutes", step_minutes)

    windows = _rule_bounds(rules, day)
    if not windows:
        return []

    blocked_ranges = _blocked_ranges(blocked, tz)
    booked_ranges = _booked_ranges(bookings, duration_minutes)

    available: set[int] = set()
    for window_start, window_end in windows:
        candidate = window_start
        while candidate + duration_minutes <= window_end:
            if candidate not in available and _is_free(
                day, candidate, duration_minutes, tz, blocked_ranges, booked_ranges
            ):
                available.add(candidate)
            candidate += step_minutes

    return [format_clock(minutes) for minutes in sorted(available)]


def is_slot_bookable(
    rules: Iterable[WeeklyWindow],
    blocked: Iterable[BlockedWindow],
    bookings: Iterable[BookedLesson],
    day: date,
    start_time: ClockValue,
    duration_minutes: int,
    tz: tzinfo,
    *,
    require_availability: bool = True,
) -> bool:
    """Check a single requested lesson against the same snapshot."""
    _require_positive("duration_minutes", duration_minutes)
    start = parse_clock(start_time)
    end = start + duration_minutes
    if end > MINUTES_PER_DAY:
        return False

    if require_availability:
        windows = _rule_bounds(rules, day)
        if not any(window_start <= start and end <= window_end for window_start, window_end in windows):
            return False

    return _is_free(
        day,
        start,
        duration_minutes,
        tz,
        _blocked_ranges(blocked, tz),
        _booked_ranges(bookings, duration_minutes),
    )
