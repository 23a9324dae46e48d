"""Shared time utilities used by attendance, matching and round planning."""

from __future__ import annotations

import math
from datetime import date, datetime, timezone

UTC = timezone.utc

MINUTES_PER_DAY = 24 * 60


def parse_hhmm_to_minutes(value: str | None) -> int | None:
    """Parse HH:MM (or HH:MM:SS) into minutes after midnight."""
    if not value or ":" not in str(value):
        return None
    try:
        parts = str(value).strip().split(":")
        h = int(parts[0])
        m = int(parts[1])
    except (TypeError, ValueError, IndexError):
        return None
    if h < 0 or h > 23 or m < 0 or m > 59:
        return None
    return h * 60 + m


def minutes_to_hhmm(minutes: int) -> str:
    minutes = int(minutes) % MINUTES_PER_DAY
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def calc_duration_minutes(start: str | None, end: str | None) -> int | None:
    """Duration between two HH:MM times in minutes (overnight aware)."""
    s = parse_hhmm_to_minutes(start)
    e = parse_hhmm_to_minutes(end)
    if s is None or e is None:
        return None
    diff = e - s
    if diff < 0:
        diff += MINUTES_PER_DAY
    return diff


def intervals(start: int, end: int) -> list[tuple[int, int]]:
    """Split a same-day minute range into intervals, wrapping at midnight."""
    if end > start:
        return [(start, end)]
    return [(start, MINUTES_PER_DAY), (0, end)]


def minute_ranges_overlap(a: tuple[int, int], b: tuple[int, int]) -> bool:
    return max(a[0], b[0]) < min(a[1], b[1])


def time_overlap(start_a: str, end_a: str, start_b: str, end_b: str) -> bool:
    """Return True if two HH:MM time ranges overlap (supports overnight ranges)."""
    a0 = parse_hhmm_to_minutes(start_a)
    a1 = parse_hhmm_to_minutes(end_a)
    b0 = parse_hhmm_to_minutes(start_b)
    b1 = parse_hhmm_to_minutes(end_b)
    if None in (a0, a1, b0, b1):
        return False

    for x in intervals(a0, a1):
        for y in intervals(b0, b1):
            if minute_ranges_overlap(x, y):
                return True
    return False


def within_window(start: int, end: int, window_start: int, window_end: int) -> bool:
    """Check that [start, end] lies inside a window that may wrap past midnight."""
    if window_end > window_start:
        return window_start <= start and end <= window_end
    # Overnight window: shift early-morning times onto the next day.
    if start < window_start:
        start += MINUTES_PER_DAY
    if end < start:
        end += MINUTES_PER_DAY
    return window_start <= start and end <= window_end + MINUTES_PER_DAY


def parse_timestamp(value: datetime | str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp into an aware UTC datetime.

    Naive values are taken to be UTC. Unparsable input yields None.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def parse_date(value: date | str | None) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        return None


def week_key(datum: date) -> str:
    monday = datum.fromordinal(datum.toordinal() - datum.weekday())
    return monday.isoformat()


def iso_day_of_week(datum: date) -> int:
    """1 = Monday through 7 = Sunday."""
    return datum.isoweekday()


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def now_utc() -> datetime:
    return datetime.now(UTC)
