"""Suitability scoring of care workers for domiciliary visits.

Five sub-scores, each capped by a configurable maximum (defaults in
``rota_core.settings``):

  - availability (30): clash with other commitments, availability windows,
    remaining contracted hours
  - continuity (25): visit history with the service user
  - skills (20): required activities covered by the carer's capabilities
  - preference (15): preferred carer / gender preference; exclusion is a veto
  - travel (10): distance from the carer's previous visit or base

Each sub-score is rounded to whole points before summing, so the breakdown
always adds up to the total.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, timedelta
from functools import cached_property
from typing import Any

from .geo import distance_or_none, travel_time
from .models import (
    ActivityCategory,
    AvailabilityType,
    CareType,
    Coordinates,
    GenderPreference,
    RelationshipStatus,
    RotaSnapshot,
    ServiceUser,
    ServiceUserStaffRelationship,
    StaffAvailability,
    StaffMember,
    StaffShift,
    Visit,
)
from .settings import DEFAULT_MATCHING, MatchingConfig, ScoreWeights
from .skills import canonical_name, compute_skill_match
from .time_utils import (
    MINUTES_PER_DAY,
    calc_duration_minutes,
    iso_day_of_week,
    minute_ranges_overlap,
    parse_hhmm_to_minutes,
    round_half_up,
    week_key,
    within_window,
)

logger = logging.getLogger(__name__)

SCORE_COMPONENTS = ("availability", "continuity", "skills", "preference", "travel")


@dataclass(frozen=True)
class ScoreBreakdown:
    availability: int = 0
    continuity: int = 0
    skills: int = 0
    preference: int = 0
    travel: int = 0

    @property
    def total(self) -> int:
        return self.availability + self.continuity + self.skills + self.preference + self.travel

    def to_dict(self) -> dict[str, int]:
        return {name: getattr(self, name) for name in SCORE_COMPONENTS}


@dataclass
class MatchResult:
    staff_id: str
    staff_name: str
    visit_id: str
    service_user_id: str
    score: int
    breakdown: ScoreBreakdown
    is_available: bool
    has_required_skills: bool
    is_excluded: bool = False
    requires_overtime: bool = False
    distance_miles: float | None = None
    travel_minutes: int | None = None
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "staff_id": self.staff_id,
            "staff_name": self.staff_name,
            "visit_id": self.visit_id,
            "service_user_id": self.service_user_id,
            "score": self.score,
            "breakdown": self.breakdown.to_dict(),
            "is_available": self.is_available,
            "has_required_skills": self.has_required_skills,
            "is_excluded": self.is_excluded,
            "requires_overtime": self.requires_overtime,
            "distance_miles": round(self.distance_miles, 2) if self.distance_miles is not None else None,
            "travel_minutes": self.travel_minutes,
            "warnings": list(self.warnings),
        }


def index_relationships(
    relationships: Sequence[ServiceUserStaffRelationship],
) -> dict[tuple[str, str], ServiceUserStaffRelationship]:
    """One relationship per (service user, staff) pair; an excluding row wins."""
    index: dict[tuple[str, str], ServiceUserStaffRelationship] = {}
    for rel in relationships:
        key = (rel.service_user_id, rel.staff_id)
        current = index.get(key)
        if current is None:
            index[key] = rel
            continue
        logger.warning("Duplicate relationship rows for service user %s / staff %s", *key)
        if rel.excluded and not current.excluded:
            index[key] = rel
    return index


@dataclass(frozen=True)
class MatchingContext:
    """Snapshot slice needed to score candidates for one visit."""

    visit: Visit
    service_user: ServiceUser
    staff: Sequence[StaffMember] = ()
    visits: Sequence[Visit] = ()
    service_users: Mapping[str, ServiceUser] = field(default_factory=dict)
    relationships: Sequence[ServiceUserStaffRelationship] = ()
    availability: Sequence[StaffAvailability] = ()
    shifts: Sequence[StaffShift] = ()
    required_skills: tuple[ActivityCategory, ...] | None = None
    preferred_staff_ids: frozenset[str] = frozenset()
    excluded_staff_ids: frozenset[str] = frozenset()
    care_type: CareType | None = None

    @classmethod
    def from_snapshot(cls, snapshot: RotaSnapshot, visit: Visit, service_user: ServiceUser, **kwargs: Any) -> MatchingContext:
        kwargs.setdefault("care_type", service_user.care_package)
        return cls(
            visit=visit,
            service_user=service_user,
            staff=snapshot.staff,
            visits=snapshot.visits,
            service_users=snapshot.service_users,
            relationships=snapshot.relationships,
            availability=snapshot.availability,
            shifts=snapshot.shifts,
            **kwargs,
        )

    @cached_property
    def relationship_index(self) -> dict[tuple[str, str], ServiceUserStaffRelationship]:
        return index_relationships(self.relationships)

    def relationship(self, service_user_id: str, staff_id: str) -> ServiceUserStaffRelationship | None:
        return self.relationship_index.get((service_user_id, staff_id))


@dataclass(frozen=True)
class MatchingOptions:
    limit: int | None = 10
    include_unavailable: bool = False
    include_overtime: bool = False


@dataclass(frozen=True)
class _Availability:
    fraction: float
    is_available: bool
    requires_overtime: bool
    warnings: list[str]


@dataclass(frozen=True)
class _Preference:
    fraction: float
    is_excluded: bool
    warnings: list[str]


@dataclass(frozen=True)
class _Travel:
    fraction: float
    distance_miles: float | None
    warnings: list[str]


# ---- Availability -----------------------------------------------------------


def _commitment_ranges(staff_id: str, visit: Visit, ctx: MatchingContext) -> list[tuple[str, int, int]]:
    """Other commitments around the visit as (label, start, end) minute ranges.

    Ranges are relative to midnight of the visit date: the previous day's
    overnight spill starts at 0, and for a visit running past midnight the
    next day's commitments are shifted by a full day.
    """
    ranges: list[tuple[str, int, int]] = []
    previous_day = visit.visit_date - timedelta(days=1)
    visit_end = visit.end_minutes
    next_day = visit.visit_date + timedelta(days=1) if visit_end is not None and visit_end > MINUTES_PER_DAY else None

    def place(label: str, day: date, start: int, end: int) -> None:
        if day == visit.visit_date:
            ranges.append((label, start, end))
        elif day == previous_day and end > MINUTES_PER_DAY:
            ranges.append((label, 0, end - MINUTES_PER_DAY))
        elif day == next_day:
            ranges.append((label, start + MINUTES_PER_DAY, end + MINUTES_PER_DAY))

    for other in ctx.visits:
        if other.id == visit.id or other.staff_id != staff_id or other.is_cancelled:
            continue
        start = other.start_minutes
        end = other.end_minutes
        if start is None or end is None:
            continue
        place(f"visit {other.id} ({other.start}-{other.end})", other.visit_date, start, end)

    for shift in ctx.shifts:
        if shift.staff_id != staff_id:
            continue
        start = parse_hhmm_to_minutes(shift.start)
        duration = calc_duration_minutes(shift.start, shift.end)
        if start is None or duration is None:
            continue
        place(f"shift {shift.start}-{shift.end}", shift.shift_date, start, start + duration)

    return ranges


def _rows_for_date(rows: list[StaffAvailability], day: date) -> list[StaffAvailability]:
    dated = [a for a in rows if a.specific_date == day]
    if dated:
        return dated
    weekday = iso_day_of_week(day)
    return [a for a in rows if a.specific_date is None and a.day_of_week == weekday]


def _window_fraction(
    staff: StaffMember,
    visit: Visit,
    ctx: MatchingContext,
    config: MatchingConfig,
) -> tuple[float | None, list[str]]:
    """Availability-window fraction, or None when the visit is outside all windows."""
    rows = [a for a in ctx.availability if a.staff_id == staff.id and a.active]
    if not rows:
        return config.availability_available, []

    day_rows = _rows_for_date(rows, visit.visit_date)
    if not day_rows:
        return None, ["Not available on this day"]

    start = visit.start_minutes
    end = visit.end_minutes
    if start is None or end is None:
        return None, ["Visit time unknown"]

    for row in day_rows:
        if row.availability_type != AvailabilityType.UNAVAILABLE:
            continue
        row_start = parse_hhmm_to_minutes(row.available_from)
        row_end = parse_hhmm_to_minutes(row.available_to)
        if row_start is None or row_end is None:
            continue
        if row_end <= row_start:
            row_end += MINUTES_PER_DAY
        if minute_ranges_overlap((start, end), (row_start, row_end)):
            return None, ["Marked unavailable at this time"]

    best: float | None = None
    warnings: list[str] = []
    for row in day_rows:
        if row.availability_type == AvailabilityType.UNAVAILABLE:
            continue
        row_start = parse_hhmm_to_minutes(row.available_from)
        row_end = parse_hhmm_to_minutes(row.available_to)
        if row_start is None or row_end is None:
            continue
        if not within_window(start, end, row_start, row_end):
            continue
        if row.is_preferred_time or row.availability_type == AvailabilityType.PREFERRED:
            fraction = config.availability_preferred
        elif row.availability_type == AvailabilityType.EMERGENCY_ONLY:
            fraction = config.availability_emergency_only
        else:
            fraction = config.availability_available
        if best is None or fraction > best:
            best = fraction

    if best is None:
        return None, ["Not available at this time"]
    if best == config.availability_emergency_only:
        warnings.append("Only available for emergencies")
    return best, warnings


def _scheduled_hours(staff: StaffMember, visit: Visit, ctx: MatchingContext) -> float:
    if staff.scheduled_hours is not None:
        return float(staff.scheduled_hours)

    wk = week_key(visit.visit_date)
    minutes = 0
    for other in ctx.visits:
        if other.id == visit.id or other.staff_id != staff.id or other.is_cancelled:
            continue
        if week_key(other.visit_date) == wk:
            minutes += other.duration or 0
    for shift in ctx.shifts:
        if shift.staff_id == staff.id and week_key(shift.shift_date) == wk:
            minutes += calc_duration_minutes(shift.start, shift.end) or 0
    return minutes / 60.0


def _capacity_factor(staff: StaffMember, visit: Visit, ctx: MatchingContext, config: MatchingConfig) -> tuple[float, list[str]]:
    contracted = staff.contracted_hours
    if not contracted or contracted <= 0:
        ratio = 0.5
        warnings: list[str] = []
    else:
        projected = _scheduled_hours(staff, visit, ctx) + (visit.duration or 0) / 60.0
        remaining = contracted - projected
        ratio = min(max(remaining / contracted, 0.0), 1.0)
        warnings = []
        if remaining < 0:
            warnings.append(f"Exceeds contracted hours ({projected:.1f}h of {contracted:.1f}h)")
    return config.capacity_floor + (1 - config.capacity_floor) * ratio, warnings


def _availability(
    staff: StaffMember,
    visit: Visit,
    ctx: MatchingContext,
    config: MatchingConfig,
    *,
    include_overtime: bool,
) -> _Availability:
    start = visit.start_minutes
    end = visit.end_minutes
    if start is not None and end is not None:
        for label, busy_start, busy_end in _commitment_ranges(staff.id, visit, ctx):
            if minute_ranges_overlap((start, end), (busy_start, busy_end)):
                return _Availability(
                    fraction=0.0,
                    is_available=False,
                    requires_overtime=False,
                    warnings=[f"Scheduling conflict: overlaps {label}"],
                )

    window, warnings = _window_fraction(staff, visit, ctx, config)
    capacity, capacity_warnings = _capacity_factor(staff, visit, ctx, config)

    if window is None:
        if include_overtime:
            return _Availability(
                fraction=config.availability_overtime * capacity,
                is_available=False,
                requires_overtime=True,
                warnings=["Visit time outside regular availability - would require overtime"] + capacity_warnings,
            )
        return _Availability(fraction=0.0, is_available=False, requires_overtime=False, warnings=warnings)

    return _Availability(
        fraction=window * capacity,
        is_available=True,
        requires_overtime=False,
        warnings=warnings + capacity_warnings,
    )


# ---- Continuity / preference ------------------------------------------------


def _continuity_fraction(rel: ServiceUserStaffRelationship | None, config: MatchingConfig) -> float:
    if rel is None or rel.status == RelationshipStatus.INACTIVE:
        return config.continuity_baseline
    if rel.continuity_score is not None:
        ratio = min(max(float(rel.continuity_score) / 100.0, 0.0), 1.0)
        return config.continuity_baseline + (1 - config.continuity_baseline) * ratio
    if rel.total_visits >= config.regular_visit_threshold:
        return config.continuity_regular
    if rel.total_visits > 0:
        return config.continuity_visited
    return config.continuity_baseline


def _preference(
    staff: StaffMember,
    service_user: ServiceUser,
    rel: ServiceUserStaffRelationship | None,
    ctx: MatchingContext,
    config: MatchingConfig,
) -> _Preference:
    if (rel is not None and rel.excluded) or staff.id in ctx.excluded_staff_ids:
        reason = (rel.exclusion_reason if rel is not None else "") or "Staff excluded from this service user"
        return _Preference(fraction=0.0, is_excluded=True, warnings=[f"Excluded: {reason}"])

    active_rel = rel is not None and rel.status != RelationshipStatus.INACTIVE
    if (active_rel and rel.preferred) or staff.id in ctx.preferred_staff_ids:
        return _Preference(fraction=1.0, is_excluded=False, warnings=[])

    wanted = service_user.preferred_gender
    if wanted == GenderPreference.NO_PREFERENCE or staff.gender == wanted:
        return _Preference(fraction=config.preference_neutral, is_excluded=False, warnings=[])
    if staff.gender is None:
        return _Preference(fraction=0.0, is_excluded=False, warnings=[])
    return _Preference(fraction=0.0, is_excluded=False, warnings=["Gender preference not met"])


# ---- Travel -----------------------------------------------------------------


def _travel_origin(staff: StaffMember, visit: Visit, ctx: MatchingContext) -> Coordinates | None:
    """Location the carer travels from: previous visit, else next visit, else base."""
    start = visit.start_minutes
    end = visit.end_minutes
    if start is not None and end is not None:
        prior: tuple[int, Coordinates] | None = None
        following: tuple[int, Coordinates] | None = None
        for other in ctx.visits:
            if other.id == visit.id or other.staff_id != staff.id or other.is_cancelled:
                continue
            if other.visit_date != visit.visit_date:
                continue
            su = ctx.service_users.get(other.service_user_id)
            if su is None or su.location is None:
                continue
            other_start = other.start_minutes
            other_end = other.end_minutes
            if other_start is None or other_end is None:
                continue
            if other_end <= start and (prior is None or other_end > prior[0]):
                prior = (other_end, su.location)
            elif other_start >= end and (following is None or other_start < following[0]):
                following = (other_start, su.location)
        if prior is not None:
            return prior[1]
        if following is not None:
            return following[1]
    return staff.base_location


def _travel(
    staff: StaffMember,
    visit: Visit,
    service_user: ServiceUser,
    ctx: MatchingContext,
    config: MatchingConfig,
) -> _Travel:
    miles = distance_or_none(_travel_origin(staff, visit, ctx), service_user.location)
    if miles is None:
        return _Travel(fraction=config.travel_unknown, distance_miles=None, warnings=["Location unknown"])

    thresholds = config.travel_thresholds
    if miles < thresholds.excellent:
        return _Travel(fraction=1.0, distance_miles=miles, warnings=[])
    if miles < thresholds.good:
        return _Travel(fraction=config.travel_good, distance_miles=miles, warnings=[])
    if miles < thresholds.acceptable:
        return _Travel(fraction=config.travel_acceptable, distance_miles=miles, warnings=[])
    return _Travel(fraction=0.0, distance_miles=miles, warnings=[f"Long travel distance: {miles:.1f} miles"])


def _points(maximum: int, fraction: float) -> int:
    return round_half_up(maximum * min(max(fraction, 0.0), 1.0))


def _activity_names(activities: Sequence[ActivityCategory]) -> str:
    return ", ".join(a.value.replace("_", " ") for a in activities)


# ---- Scorer -----------------------------------------------------------------


class SuitabilityScorer:
    """Scores and ranks candidate carers for a visit."""

    def __init__(self, config: MatchingConfig = DEFAULT_MATCHING) -> None:
        self.config = config

    def weights(self, care_type: CareType | None) -> ScoreWeights:
        return self.config.weights_for(care_type)

    def score_match(
        self,
        visit: Visit,
        service_user: ServiceUser,
        staff: StaffMember,
        context: MatchingContext,
        *,
        include_overtime: bool = False,
    ) -> MatchResult:
        config = self.config
        weights = self.weights(context.care_type)
        rel = context.relationship(service_user.id, staff.id)

        availability = _availability(staff, visit, context, config, include_overtime=include_overtime)
        continuity = _continuity_fraction(rel, config)

        required = context.required_skills if context.required_skills is not None else visit.required_activities
        skill_match = compute_skill_match(required, staff.capabilities, affinity_map=config.skill_affinity)

        preference = _preference(staff, service_user, rel, context, config)

        if weights.travel > 0:
            travel = _travel(staff, visit, service_user, context, config)
        else:
            travel = _Travel(fraction=0.0, distance_miles=None, warnings=[])

        breakdown = ScoreBreakdown(
            availability=_points(weights.availability, availability.fraction),
            continuity=_points(weights.continuity, continuity),
            skills=_points(weights.skills, skill_match.ratio),
            preference=_points(weights.preference, preference.fraction),
            travel=_points(weights.travel, travel.fraction),
        )
        score = min(max(breakdown.total, 0), 100)

        warnings = list(availability.warnings)
        if not skill_match.has_all:
            warnings.append(f"Missing required skills: {_activity_names(skill_match.missing)}")
        warnings.extend(preference.warnings)
        warnings.extend(travel.warnings)

        logger.debug(
            "Scored staff %s for visit %s: %s %s",
            staff.id,
            visit.id,
            score,
            breakdown.to_dict(),
        )

        return MatchResult(
            staff_id=staff.id,
            staff_name=staff.name,
            visit_id=visit.id,
            service_user_id=service_user.id,
            score=score,
            breakdown=breakdown,
            is_available=availability.is_available and not preference.is_excluded,
            has_required_skills=skill_match.has_all,
            is_excluded=preference.is_excluded,
            requires_overtime=availability.requires_overtime,
            distance_miles=travel.distance_miles,
            travel_minutes=(
                travel_time(travel.distance_miles, speed_mph=config.travel_speed_mph)
                if travel.distance_miles is not None
                else None
            ),
            warnings=warnings,
        )

    def find_matching_staff(
        self,
        context: MatchingContext,
        options: MatchingOptions = MatchingOptions(),
    ) -> list[MatchResult]:
        """Rank active staff for the context's visit, best first."""
        results: list[MatchResult] = []
        for staff in context.staff:
            if not staff.active:
                continue
            result = self.score_match(
                context.visit,
                context.service_user,
                staff,
                context,
                include_overtime=options.include_overtime,
            )
            if not options.include_unavailable:
                if result.is_excluded:
                    continue
                if not result.is_available and not (options.include_overtime and result.requires_overtime):
                    continue
            results.append(result)

        # deterministic ordering
        results.sort(key=lambda r: (-r.score, canonical_name(r.staff_name), r.staff_id))
        if options.limit is not None:
            return results[: options.limit]
        return results


_DEFAULT_SCORER = SuitabilityScorer()


def score_match(visit: Visit, service_user: ServiceUser, staff: StaffMember, context: MatchingContext) -> MatchResult:
    return _DEFAULT_SCORER.score_match(visit, service_user, staff, context)


def find_matching_staff(context: MatchingContext, options: MatchingOptions = MatchingOptions()) -> list[MatchResult]:
    return _DEFAULT_SCORER.find_matching_staff(context, options)


# ---- Batch ------------------------------------------------------------------


@dataclass
class MatchBatch:
    results: dict[str, list[MatchResult]] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "results": {vid: [r.to_dict() for r in rows] for vid, rows in self.results.items()},
            "warnings": list(self.warnings),
        }


def match_unassigned_visits(
    snapshot: RotaSnapshot,
    *,
    visit_date: date,
    scorer: SuitabilityScorer | None = None,
    options: MatchingOptions = MatchingOptions(),
    care_type: CareType | None = None,
) -> MatchBatch:
    """Rank candidates for every open visit on a date.

    Visits whose service user is missing from the snapshot are skipped with a
    warning; the rest of the batch still runs.
    """
    scorer = scorer or _DEFAULT_SCORER
    batch = MatchBatch()
    open_visits = sorted(
        (
            v
            for v in snapshot.visits
            if v.visit_date == visit_date and not v.is_assigned and not v.is_cancelled
        ),
        key=lambda v: (v.start_minutes if v.start_minutes is not None else MINUTES_PER_DAY, v.id),
    )

    for visit in open_visits:
        service_user = snapshot.service_users.get(visit.service_user_id)
        if service_user is None:
            message = f"Visit {visit.id}: service user {visit.service_user_id} not found"
            logger.warning(message)
            batch.warnings.append(message)
            continue
        context = MatchingContext.from_snapshot(
            snapshot,
            visit,
            service_user,
            care_type=care_type or service_user.care_package,
        )
        batch.results[visit.id] = scorer.find_matching_staff(context, options)

    logger.info(
        "Matched %d open visits on %s (%d skipped)",
        len(batch.results),
        visit_date.isoformat(),
        len(batch.warnings),
    )
    return batch
