"""Attendance status of a scheduled shift from clock-in/out evidence.

Status logic, first match wins:
  - absent:    shift explicitly marked with the absence status code
  - worked:    clock-in and clock-out recorded
  - present:   clock-in without clock-out
  - late:      shift currently running, no clock-in, grace period elapsed
  - scheduled: shift not started yet, or ended with no clock data

A shift that ended without any clock data stays "scheduled": missing clock
records are not evidence of non-attendance.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from .settings import DEFAULT_ATTENDANCE, AttendanceConfig
from .time_utils import now_utc, parse_timestamp

logger = logging.getLogger(__name__)


class AttendanceStatus(str, Enum):
    SCHEDULED = "scheduled"
    PRESENT = "present"
    LATE = "late"
    WORKED = "worked"
    ABSENT = "absent"


@dataclass(frozen=True)
class ShiftAttendanceRecord:
    shift_start: datetime | str | None
    shift_end: datetime | str | None
    clocked_in: datetime | str | None = None
    clocked_out: datetime | str | None = None
    status_code: int | str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> ShiftAttendanceRecord:
        """Build from a loose row (record-store or JSON style keys)."""

        def pick(*keys: str) -> Any:
            for key in keys:
                if row.get(key) not in (None, ""):
                    return row[key]
            return None

        return cls(
            shift_start=pick("shift_start", "Shift Start Time", "start"),
            shift_end=pick("shift_end", "Shift End Time", "end"),
            clocked_in=pick("clocked_in", "Clocked In"),
            clocked_out=pick("clocked_out", "Clocked Out"),
            status_code=pick("status_code", "Shift Status Code", "Shift Status"),
        )


@dataclass(frozen=True)
class AttendanceDetails:
    status: AttendanceStatus
    clocked_in: datetime | None
    clocked_out: datetime | None
    shift_start: datetime | None
    shift_end: datetime | None
    minutes_late: int
    minutes_early: int
    is_overnight: bool
    has_ended: bool

    def to_dict(self) -> dict[str, Any]:
        def iso(value: datetime | None) -> str | None:
            return value.isoformat() if value is not None else None

        return {
            "status": self.status.value,
            "clocked_in": iso(self.clocked_in),
            "clocked_out": iso(self.clocked_out),
            "shift_start": iso(self.shift_start),
            "shift_end": iso(self.shift_end),
            "minutes_late": self.minutes_late,
            "minutes_early": self.minutes_early,
            "is_overnight": self.is_overnight,
            "has_ended": self.has_ended,
        }


@dataclass(frozen=True)
class _Parsed:
    start: datetime | None
    end: datetime | None
    effective_end: datetime | None
    clocked_in: datetime | None
    clocked_out: datetime | None
    status_code: int | None


def _status_code(value: int | str | None) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def _effective_end(start: datetime | None, end: datetime | None) -> datetime | None:
    if end is None:
        return None
    if start is not None and end < start:
        return end + timedelta(days=1)
    return end


def _parse(record: ShiftAttendanceRecord) -> _Parsed:
    start = parse_timestamp(record.shift_start)
    end = parse_timestamp(record.shift_end)
    return _Parsed(
        start=start,
        end=end,
        effective_end=_effective_end(start, end),
        clocked_in=parse_timestamp(record.clocked_in),
        clocked_out=parse_timestamp(record.clocked_out),
        status_code=_status_code(record.status_code),
    )


def _reference(now: datetime | str | None) -> datetime:
    if now is None:
        return now_utc()
    parsed = parse_timestamp(now)
    if parsed is None:
        logger.warning("Unparsable reference time %r, using current time", now)
        return now_utc()
    return parsed


def _classify(parsed: _Parsed, now: datetime, config: AttendanceConfig) -> AttendanceStatus:
    if parsed.status_code is not None and parsed.status_code == config.absent_status_code:
        return AttendanceStatus.ABSENT
    if parsed.clocked_in is not None and parsed.clocked_out is not None:
        return AttendanceStatus.WORKED
    if parsed.clocked_in is not None:
        return AttendanceStatus.PRESENT

    if parsed.start is None or parsed.effective_end is None:
        return AttendanceStatus.SCHEDULED

    if parsed.start <= now < parsed.effective_end:
        if now - parsed.start > timedelta(minutes=config.late_grace_minutes):
            return AttendanceStatus.LATE
    return AttendanceStatus.SCHEDULED


def classify_attendance(
    record: ShiftAttendanceRecord,
    now: datetime | str | None = None,
    *,
    config: AttendanceConfig = DEFAULT_ATTENDANCE,
) -> AttendanceStatus:
    """Classify a shift's attendance status at reference time ``now``."""
    return _classify(_parse(record), _reference(now), config)


def _whole_minutes(delta: timedelta) -> int:
    return int(delta.total_seconds() // 60)


def attendance_details(
    record: ShiftAttendanceRecord,
    now: datetime | str | None = None,
    *,
    config: AttendanceConfig = DEFAULT_ATTENDANCE,
) -> AttendanceDetails:
    """Status plus early/late arrival and shift timing annotations."""
    reference = _reference(now)
    parsed = _parse(record)
    status = _classify(parsed, reference, config)

    minutes_late = 0
    minutes_early = 0
    if parsed.clocked_in is not None and parsed.start is not None:
        diff = _whole_minutes(parsed.clocked_in - parsed.start)
        if diff > 0:
            minutes_late = diff
        elif diff < 0:
            minutes_early = -diff
    elif status == AttendanceStatus.LATE and parsed.start is not None:
        minutes_late = _whole_minutes(reference - parsed.start)

    has_ended = parsed.effective_end is not None and reference > parsed.effective_end
    is_overnight = parsed.start is not None and parsed.end is not None and parsed.end < parsed.start

    return AttendanceDetails(
        status=status,
        clocked_in=parsed.clocked_in,
        clocked_out=parsed.clocked_out,
        shift_start=parsed.start,
        shift_end=parsed.end,
        minutes_late=minutes_late,
        minutes_early=minutes_early,
        is_overnight=is_overnight,
        has_ended=has_ended,
    )


def is_shift_active(record: ShiftAttendanceRecord, now: datetime | str | None = None) -> bool:
    parsed = _parse(record)
    if parsed.start is None or parsed.effective_end is None:
        return False
    reference = _reference(now)
    return parsed.start <= reference <= parsed.effective_end


def has_shift_ended(record: ShiftAttendanceRecord, now: datetime | str | None = None) -> bool:
    parsed = _parse(record)
    if parsed.effective_end is None:
        return False
    return _reference(now) > parsed.effective_end


def count_by_status(
    records: Iterable[ShiftAttendanceRecord],
    now: datetime | str | None = None,
    *,
    config: AttendanceConfig = DEFAULT_ATTENDANCE,
) -> dict[AttendanceStatus, int]:
    reference = _reference(now)
    counts = {status: 0 for status in AttendanceStatus}
    for record in records:
        counts[classify_attendance(record, reference, config=config)] += 1
    return counts


def filter_by_status(
    records: Iterable[ShiftAttendanceRecord],
    status: AttendanceStatus | str,
    now: datetime | str | None = None,
    *,
    config: AttendanceConfig = DEFAULT_ATTENDANCE,
) -> list[ShiftAttendanceRecord]:
    items = list(records)
    if status == "all":
        return items
    wanted = AttendanceStatus(status)
    reference = _reference(now)
    return [r for r in items if classify_attendance(r, reference, config=config) == wanted]


def _format_minutes(minutes: int) -> str:
    if minutes < 60:
        return f"{minutes} min"
    hours, mins = divmod(minutes, 60)
    if mins == 0:
        return f"{hours}h"
    return f"{hours}h {mins}m"


def format_late_by(minutes: int) -> str:
    if minutes < 1:
        return ""
    return _format_minutes(minutes)


def format_early_by(minutes: int) -> str:
    if minutes < 1:
        return ""
    return f"{_format_minutes(minutes)} early"
