"""Rota assignment core: attendance, carer suitability scoring and round planning."""

from .attendance import AttendanceStatus, ShiftAttendanceRecord, attendance_details, classify_attendance
from .geo import distance, travel_time
from .matching import (
    MatchingContext,
    MatchingOptions,
    MatchResult,
    SuitabilityScorer,
    find_matching_staff,
    match_unassigned_visits,
    score_match,
)
from .rounds import Round, build_rounds, plan_rounds, visits_bounds

# io: XLSX export is imported lazily
from .io import load_input, render_rounds_xlsx

__all__ = [
    "AttendanceStatus",
    "MatchResult",
    "MatchingContext",
    "MatchingOptions",
    "Round",
    "ShiftAttendanceRecord",
    "SuitabilityScorer",
    "attendance_details",
    "build_rounds",
    "classify_attendance",
    "distance",
    "find_matching_staff",
    "load_input",
    "match_unassigned_visits",
    "plan_rounds",
    "render_rounds_xlsx",
    "score_match",
    "travel_time",
    "visits_bounds",
]
