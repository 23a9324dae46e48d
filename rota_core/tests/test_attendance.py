"""Tests for shift attendance classification."""

import logging
from datetime import datetime, timedelta, timezone

import pytest

from rota_core.attendance import (
    AttendanceStatus,
    ShiftAttendanceRecord,
    attendance_details,
    classify_attendance,
    count_by_status,
    filter_by_status,
    format_early_by,
    format_late_by,
    has_shift_ended,
    is_shift_active,
)
from rota_core.settings import AttendanceConfig

START = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def _shift(**kwargs) -> ShiftAttendanceRecord:
    fields = {"shift_start": "2026-03-02T09:00:00Z", "shift_end": "2026-03-02T17:00:00Z"}
    fields.update(kwargs)
    return ShiftAttendanceRecord(**fields)


class TestClassify:
    def test_before_start_is_scheduled(self):
        assert classify_attendance(_shift(), START - timedelta(minutes=30)) == AttendanceStatus.SCHEDULED

    def test_grace_boundary(self):
        record = _shift()
        assert classify_attendance(record, START + timedelta(minutes=5)) == AttendanceStatus.SCHEDULED
        assert classify_attendance(record, START + timedelta(minutes=5, seconds=1)) == AttendanceStatus.LATE

    def test_worked_regardless_of_timing(self):
        record = _shift(clocked_in="2026-03-02T09:40:00Z", clocked_out="2026-03-02T16:00:00Z")
        for now in (START - timedelta(days=1), START + timedelta(minutes=10), START + timedelta(days=2)):
            assert classify_attendance(record, now) == AttendanceStatus.WORKED

    def test_clocked_in_is_present(self):
        record = _shift(clocked_in="2026-03-02T08:55:00Z")
        assert classify_attendance(record, START + timedelta(hours=1)) == AttendanceStatus.PRESENT

    def test_absent_code_overrides_everything(self):
        record = _shift(
            clocked_in="2026-03-02T09:00:00Z",
            clocked_out="2026-03-02T17:00:00Z",
            status_code=1002,
        )
        assert classify_attendance(record, START - timedelta(hours=3)) == AttendanceStatus.ABSENT
        assert classify_attendance(_shift(status_code="1002"), START) == AttendanceStatus.ABSENT

    def test_other_status_code_ignored(self):
        assert classify_attendance(_shift(status_code=1001), START - timedelta(hours=1)) == AttendanceStatus.SCHEDULED

    def test_ended_without_clock_data_stays_scheduled(self):
        assert classify_attendance(_shift(), START + timedelta(hours=9)) == AttendanceStatus.SCHEDULED

    def test_overnight_shift_late_after_midnight(self):
        record = _shift(shift_start="2026-03-02T22:00:00Z", shift_end="2026-03-02T06:00:00Z")
        now = datetime(2026, 3, 3, 3, 0, tzinfo=timezone.utc)
        assert classify_attendance(record, now) == AttendanceStatus.LATE

    def test_unparsable_times_default_to_scheduled(self):
        record = _shift(shift_start="soon", shift_end=None)
        assert classify_attendance(record, START) == AttendanceStatus.SCHEDULED

    def test_unparsable_clock_in_treated_as_missing(self):
        record = _shift(clocked_in="garbage")
        assert classify_attendance(record, START + timedelta(minutes=20)) == AttendanceStatus.LATE

    def test_invalid_reference_time_falls_back_to_now(self, monkeypatch, caplog):
        monkeypatch.setattr("rota_core.attendance.now_utc", lambda: START + timedelta(minutes=20))
        with caplog.at_level(logging.WARNING, logger="rota_core.attendance"):
            assert classify_attendance(_shift(), "not a time") == AttendanceStatus.LATE
        assert "not a time" in caplog.text

    def test_reference_time_as_string(self):
        assert classify_attendance(_shift(), "2026-03-02T09:30:00Z") == AttendanceStatus.LATE

    def test_custom_grace(self):
        config = AttendanceConfig(late_grace_minutes=10)
        now = START + timedelta(minutes=8)
        assert classify_attendance(_shift(), now, config=config) == AttendanceStatus.SCHEDULED

    def test_custom_absent_code(self):
        config = AttendanceConfig(absent_status_code=7)
        assert classify_attendance(_shift(status_code=7), START, config=config) == AttendanceStatus.ABSENT
        assert classify_attendance(_shift(status_code=1002), START, config=config) == AttendanceStatus.SCHEDULED

    def test_pure(self):
        record = _shift(clocked_in="2026-03-02T09:07:00Z")
        now = START + timedelta(minutes=30)
        assert classify_attendance(record, now) == classify_attendance(record, now)
        assert attendance_details(record, now) == attendance_details(record, now)


class TestDetails:
    def test_minutes_late_from_clock_in(self):
        details = attendance_details(_shift(clocked_in="2026-03-02T09:12:00Z"), START + timedelta(hours=1))
        assert details.status == AttendanceStatus.PRESENT
        assert details.minutes_late == 12
        assert details.minutes_early == 0

    def test_minutes_early(self):
        details = attendance_details(_shift(clocked_in="2026-03-02T08:50:00Z"), START)
        assert details.minutes_early == 10
        assert details.minutes_late == 0

    def test_late_without_clock_in(self):
        details = attendance_details(_shift(), START + timedelta(minutes=20))
        assert details.status == AttendanceStatus.LATE
        assert details.minutes_late == 20

    def test_overnight_flags(self):
        record = _shift(shift_start="2026-03-02T22:00:00Z", shift_end="2026-03-02T06:00:00Z")
        during = attendance_details(record, datetime(2026, 3, 3, 3, 0, tzinfo=timezone.utc))
        after = attendance_details(record, datetime(2026, 3, 3, 6, 30, tzinfo=timezone.utc))
        assert during.is_overnight is True
        assert during.has_ended is False
        assert after.has_ended is True

    def test_to_dict(self):
        payload = attendance_details(_shift(), START - timedelta(minutes=1)).to_dict()
        assert payload["status"] == "scheduled"
        assert payload["shift_start"] == "2026-03-02T09:00:00+00:00"
        assert payload["clocked_in"] is None

    def test_from_row_display_keys(self):
        record = ShiftAttendanceRecord.from_row(
            {
                "Shift Start Time": "2026-03-02T09:00:00Z",
                "Shift End Time": "2026-03-02T17:00:00Z",
                "Clocked In": "",
                "Shift Status Code": "1002",
            }
        )
        assert record.clocked_in is None
        assert classify_attendance(record, START) == AttendanceStatus.ABSENT


class TestShiftWindow:
    def test_active(self):
        assert is_shift_active(_shift(), START + timedelta(hours=2))
        assert not is_shift_active(_shift(), START - timedelta(minutes=1))

    def test_ended(self):
        assert has_shift_ended(_shift(), START + timedelta(hours=8, minutes=1))
        assert not has_shift_ended(_shift(), START + timedelta(hours=8))
        assert not has_shift_ended(_shift(shift_end=None), START + timedelta(days=3))


class TestAggregates:
    @pytest.fixture
    def records(self):
        return [
            _shift(),
            _shift(clocked_in="2026-03-02T09:00:00Z"),
            _shift(clocked_in="2026-03-02T09:00:00Z", clocked_out="2026-03-02T10:00:00Z"),
            _shift(status_code=1002),
            _shift(shift_start="2026-03-02T12:00:00Z", shift_end="2026-03-02T18:00:00Z"),
        ]

    def test_count_includes_every_status(self, records):
        counts = count_by_status(records, START + timedelta(minutes=30))
        assert counts == {
            AttendanceStatus.SCHEDULED: 1,
            AttendanceStatus.PRESENT: 1,
            AttendanceStatus.LATE: 1,
            AttendanceStatus.WORKED: 1,
            AttendanceStatus.ABSENT: 1,
        }

    def test_count_empty(self):
        counts = count_by_status([], START)
        assert set(counts) == set(AttendanceStatus)
        assert sum(counts.values()) == 0

    def test_filter(self, records):
        now = START + timedelta(minutes=30)
        assert filter_by_status(records, "all", now) == records
        late = filter_by_status(records, AttendanceStatus.LATE, now)
        assert late == [records[0]]
        assert filter_by_status(records, "worked", now) == [records[2]]


class TestFormatting:
    def test_late(self):
        assert format_late_by(0) == ""
        assert format_late_by(12) == "12 min"
        assert format_late_by(60) == "1h"
        assert format_late_by(65) == "1h 5m"

    def test_early(self):
        assert format_early_by(0) == ""
        assert format_early_by(10) == "10 min early"
        assert format_early_by(125) == "2h 5m early"
