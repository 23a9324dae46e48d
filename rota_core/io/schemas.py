"""Column constants, pipe helpers, and type coercion for CSV I/O."""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Input CSV column names
# ---------------------------------------------------------------------------

SERVICE_USERS_COLS = [
    "service_user_id",
    "full_name",
    "latitude",
    "longitude",
    "funding_type",
    "weekly_funded_hours",
    "access_notes",
    "key_safe_location",
    "preferred_gender",
    "care_type",
    "active",
]

STAFF_COLS = [
    "staff_id",
    "name",
    "job_title",
    "capabilities",
    "latitude",
    "longitude",
    "contracted_hours",
    "scheduled_hours",
    "gender",
    "active",
]

VISITS_COLS = [
    "visit_id",
    "service_user_id",
    "visit_type",
    "date",
    "start",
    "end",
    "duration_minutes",
    "status",
    "staff_id",
    "activities",
    "notes",
]

RELATIONSHIPS_COLS = [
    "service_user_id",
    "staff_id",
    "is_preferred_carer",
    "is_excluded",
    "exclusion_reason",
    "total_visits",
    "continuity_score",
    "status",
    "last_visit_date",
]

AVAILABILITY_COLS = [
    "staff_id",
    "day_of_week",
    "specific_date",
    "available_from",
    "available_to",
    "availability_type",
    "is_preferred_time",
    "active",
]

SHIFTS_COLS = [
    "staff_id",
    "date",
    "start",
    "end",
]

REQUIRED_FILES = {
    "service_users.csv": SERVICE_USERS_COLS,
    "staff.csv": STAFF_COLS,
    "visits.csv": VISITS_COLS,
    "relationships.csv": RELATIONSHIPS_COLS,
}

OPTIONAL_FILES = {
    "availability.csv": AVAILABILITY_COLS,
    "shifts.csv": SHIFTS_COLS,
}

# ---------------------------------------------------------------------------
# Export sheet columns
# ---------------------------------------------------------------------------

ROUNDS_COLS = [
    "round_id",
    "name",
    "round_type",
    "date",
    "start_time",
    "end_time",
    "visits",
    "service_users",
    "visit_minutes",
    "travel_minutes",
    "travel_miles",
    "staff_id",
    "fully_assigned",
    "warnings",
]

ROUND_VISITS_COLS = [
    "round_id",
    "sequence",
    "visit_id",
    "service_user_id",
    "service_user",
    "start",
    "end",
    "duration_minutes",
    "staff_id",
]

MATCHES_COLS = [
    "visit_id",
    "rank",
    "staff_id",
    "staff_name",
    "score",
    "availability",
    "continuity",
    "skills",
    "preference",
    "travel",
    "available",
    "has_skills",
    "warnings",
]

# ---------------------------------------------------------------------------
# Pipe-separated field helpers
# ---------------------------------------------------------------------------

PIPE = "|"


def pipe_join(values: list | None) -> str:
    """Join a list into a pipe-separated string. Empty/None -> empty string."""
    if not values:
        return ""
    return PIPE.join(str(v) for v in values if v is not None and str(v).strip())


def pipe_split(value: str | None) -> list[str]:
    """Split a pipe-separated string into a list. Empty/None -> empty list."""
    if not value or not str(value).strip():
        return []
    return [v.strip() for v in str(value).split(PIPE) if v.strip()]


# ---------------------------------------------------------------------------
# Type coercion helpers for reading CSV values
# ---------------------------------------------------------------------------


def to_float_or_none(value: str | None) -> float | None:
    if value is None or str(value).strip() == "":
        return None
    try:
        return float(value)
    except (ValueError, TypeError):
        return None


def to_int(value: str | None, default: int = 0) -> int:
    """Coerce a CSV string to int. Empty/None -> default."""
    if value is None or str(value).strip() == "":
        return default
    try:
        return int(float(value))
    except (ValueError, TypeError):
        return default


def to_int_or_none(value: str | None) -> int | None:
    if value is None or str(value).strip() == "":
        return None
    try:
        return int(float(value))
    except (ValueError, TypeError):
        return None


def to_bool(value: str | None, default: bool = False) -> bool:
    """Coerce a CSV string to bool. TRUE/true/1/yes -> True; empty -> default."""
    if value is None or str(value).strip() == "":
        return default
    return str(value).strip().upper() in ("TRUE", "1", "YES", "Y")


def fmt_bool(value: bool) -> str:
    """Format a bool for CSV/XLSX output."""
    return "TRUE" if value else "FALSE"
