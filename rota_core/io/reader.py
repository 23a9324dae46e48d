"""Read a CSV input directory into a RotaSnapshot."""

from __future__ import annotations

import csv
import json
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

from rota_core.matching import index_relationships
from rota_core.models import (
    ActivityCategory,
    AvailabilityType,
    CareType,
    Coordinates,
    FundingType,
    GenderPreference,
    RelationshipStatus,
    RotaSnapshot,
    ServiceUser,
    ServiceUserStaffRelationship,
    StaffAvailability,
    StaffMember,
    StaffShift,
    Visit,
    VisitStatus,
    VisitType,
    parse_enum,
)
from rota_core.time_utils import parse_date

from .schemas import OPTIONAL_FILES, REQUIRED_FILES, pipe_split, to_bool, to_float_or_none, to_int, to_int_or_none

logger = logging.getLogger(__name__)

T = TypeVar("T")


def load_input(directory: Path | str) -> RotaSnapshot:
    """Read CSV input dir -> RotaSnapshot.

    Raises FileNotFoundError if meta.json or a required CSV is missing.
    Rows that cannot be parsed are skipped; each skip is logged and recorded
    in ``snapshot.warnings``.
    """
    d = Path(directory)

    meta = _read_json(d / "meta.json")
    warnings: list[str] = []
    tables = {name: _read_csv(d / name, columns, warnings) for name, columns in REQUIRED_FILES.items()}
    for name, columns in OPTIONAL_FILES.items():
        path = d / name
        tables[name] = _read_csv(path, columns, warnings) if path.exists() else []

    service_users = _parse_rows(tables["service_users.csv"], "service_users.csv", _service_user, warnings)
    staff = _parse_rows(tables["staff.csv"], "staff.csv", _staff_member, warnings)
    visits = _parse_rows(tables["visits.csv"], "visits.csv", lambda row: _visit(row, warnings), warnings)
    relationships = _parse_rows(tables["relationships.csv"], "relationships.csv", _relationship, warnings)
    availability = _parse_rows(tables["availability.csv"], "availability.csv", _availability, warnings)
    shifts = _parse_rows(tables["shifts.csv"], "shifts.csv", _shift, warnings)

    # -- one relationship per pair, exclusion wins ------------------------------
    collapsed = list(index_relationships(relationships).values())
    if len(collapsed) != len(relationships):
        warnings.append(
            f"relationships.csv: collapsed {len(relationships) - len(collapsed)} duplicate row(s)"
        )

    return RotaSnapshot(
        snapshot_id=str(meta.get("snapshot_id") or d.name),
        visits=visits,
        service_users={su.id: su for su in service_users},
        staff=staff,
        relationships=collapsed,
        availability=availability,
        shifts=shifts,
        warnings=warnings,
    )


# ---------------------------------------------------------------------------
# Row parsers; each raises ValueError/KeyError on a malformed row
# ---------------------------------------------------------------------------


def _required(row: dict[str, str], key: str) -> str:
    value = (row.get(key) or "").strip()
    if not value:
        raise ValueError(f"missing {key}")
    return value


def _coordinates(row: dict[str, str]) -> Coordinates | None:
    lat = to_float_or_none(row.get("latitude"))
    lng = to_float_or_none(row.get("longitude"))
    if lat is None or lng is None:
        return None
    if not (-90 <= lat <= 90 and -180 <= lng <= 180):
        return None
    return Coordinates(latitude=lat, longitude=lng)


def _service_user(row: dict[str, str]) -> ServiceUser:
    return ServiceUser(
        id=_required(row, "service_user_id"),
        full_name=(row.get("full_name") or "").strip(),
        location=_coordinates(row),
        funding_type=parse_enum(FundingType, row.get("funding_type")),
        weekly_funded_hours=to_float_or_none(row.get("weekly_funded_hours")),
        access_notes=(row.get("access_notes") or "").strip(),
        key_safe_location=(row.get("key_safe_location") or "").strip(),
        preferred_gender=parse_enum(GenderPreference, row.get("preferred_gender")) or GenderPreference.NO_PREFERENCE,
        care_package=parse_enum(CareType, row.get("care_type")),
        active=to_bool(row.get("active"), default=True),
    )


def _staff_member(row: dict[str, str]) -> StaffMember:
    return StaffMember(
        id=_required(row, "staff_id"),
        name=(row.get("name") or "").strip(),
        job_title=(row.get("job_title") or "").strip(),
        capabilities=frozenset(pipe_split(row.get("capabilities"))),
        base_location=_coordinates(row),
        contracted_hours=to_float_or_none(row.get("contracted_hours")),
        scheduled_hours=to_float_or_none(row.get("scheduled_hours")),
        gender=parse_enum(GenderPreference, row.get("gender")),
        active=to_bool(row.get("active"), default=True),
    )


def _visit(row: dict[str, str], warnings: list[str]) -> Visit:
    visit_id = _required(row, "visit_id")
    visit_type = parse_enum(VisitType, row.get("visit_type"))
    if visit_type is None:
        raise ValueError(f"unknown visit_type {row.get('visit_type')!r}")
    visit_date = parse_date(row.get("date"))
    if visit_date is None:
        raise ValueError(f"unparsable date {row.get('date')!r}")

    activities: list[ActivityCategory] = []
    for label in pipe_split(row.get("activities")):
        activity = parse_enum(ActivityCategory, label)
        if activity is None:
            message = f"visits.csv: visit {visit_id} has unknown activity {label!r}, ignored"
            logger.warning(message)
            warnings.append(message)
            continue
        activities.append(activity)

    return Visit(
        id=visit_id,
        service_user_id=_required(row, "service_user_id"),
        visit_type=visit_type,
        visit_date=visit_date,
        start=(row.get("start") or "").strip(),
        end=(row.get("end") or "").strip(),
        duration_minutes=to_int_or_none(row.get("duration_minutes")),
        status=parse_enum(VisitStatus, row.get("status")) or VisitStatus.SCHEDULED,
        staff_id=(row.get("staff_id") or "").strip() or None,
        required_activities=tuple(activities),
        notes=(row.get("notes") or "").strip(),
    )


def _relationship(row: dict[str, str]) -> ServiceUserStaffRelationship:
    return ServiceUserStaffRelationship(
        service_user_id=_required(row, "service_user_id"),
        staff_id=_required(row, "staff_id"),
        is_preferred_carer=to_bool(row.get("is_preferred_carer")),
        is_excluded=to_bool(row.get("is_excluded")),
        exclusion_reason=(row.get("exclusion_reason") or "").strip(),
        total_visits=max(to_int(row.get("total_visits")), 0),
        continuity_score=to_float_or_none(row.get("continuity_score")),
        status=parse_enum(RelationshipStatus, row.get("status")) or RelationshipStatus.ACTIVE,
        last_visit_date=parse_date(row.get("last_visit_date") or None),
    )


def _availability(row: dict[str, str]) -> StaffAvailability:
    day_of_week = to_int_or_none(row.get("day_of_week"))
    specific_date = parse_date(row.get("specific_date") or None)
    if day_of_week is None and specific_date is None:
        raise ValueError("needs day_of_week or specific_date")
    if day_of_week is not None and not 1 <= day_of_week <= 7:
        raise ValueError(f"day_of_week out of range: {day_of_week}")
    return StaffAvailability(
        staff_id=_required(row, "staff_id"),
        available_from=_required(row, "available_from"),
        available_to=_required(row, "available_to"),
        availability_type=parse_enum(AvailabilityType, row.get("availability_type")) or AvailabilityType.AVAILABLE,
        day_of_week=day_of_week,
        specific_date=specific_date,
        is_preferred_time=to_bool(row.get("is_preferred_time")),
        active=to_bool(row.get("active"), default=True),
    )


def _shift(row: dict[str, str]) -> StaffShift:
    shift_date = parse_date(row.get("date"))
    if shift_date is None:
        raise ValueError(f"unparsable date {row.get('date')!r}")
    return StaffShift(
        staff_id=_required(row, "staff_id"),
        shift_date=shift_date,
        start=_required(row, "start"),
        end=_required(row, "end"),
    )


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _parse_rows(
    rows: list[dict[str, str]],
    source: str,
    parse: Callable[[dict[str, str]], T],
    warnings: list[str],
) -> list[T]:
    parsed: list[T] = []
    # Header is line 1.
    for line_no, row in enumerate(rows, start=2):
        try:
            parsed.append(parse(row))
        except (KeyError, ValueError) as exc:
            message = f"{source}: skipped line {line_no} ({exc})"
            logger.warning(message)
            warnings.append(message)
    return parsed


def _read_json(path: Path) -> dict[str, Any]:
    """Read and parse a JSON file."""
    if not path.exists():
        raise FileNotFoundError(f"Required file not found: {path}")
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def _read_csv(path: Path, columns: list[str], warnings: list[str]) -> list[dict[str, str]]:
    """Read a CSV file into a list of dicts via csv.DictReader.

    Expected columns absent from the header are reported in ``warnings``;
    their values then read as empty.
    """
    if not path.exists():
        raise FileNotFoundError(f"Required file not found: {path}")
    with open(path, newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        rows = list(reader)
        header = reader.fieldnames or []
    missing = [c for c in columns if c not in header]
    if missing:
        message = f"{path.name}: missing column(s) {', '.join(missing)}"
        logger.warning(message)
        warnings.append(message)
    return rows
