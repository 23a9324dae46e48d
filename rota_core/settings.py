"""Tunable constants for scoring, attendance and round planning.

Every number the algorithms depend on lives here so deployments can override
them (see ``rota_mcp.config``) without touching algorithm code.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from .models import ActivityCategory, CareType, VisitType, parse_enum
from .time_utils import parse_hhmm_to_minutes

# ---- Scoring weights --------------------------------------------------------


@dataclass(frozen=True)
class ScoreWeights:
    """Maximum points per sub-score. Must sum to 100."""

    availability: int = 30
    continuity: int = 25
    skills: int = 20
    preference: int = 15
    travel: int = 10

    def __post_init__(self) -> None:
        values = self.as_dict()
        negative = [k for k, v in values.items() if v < 0]
        if negative:
            raise ValueError(f"Score weights must not be negative: {negative}")
        total = sum(values.values())
        if total != 100:
            raise ValueError(f"Score weights must sum to 100, got {total}")

    def as_dict(self) -> dict[str, int]:
        return {
            "availability": self.availability,
            "continuity": self.continuity,
            "skills": self.skills,
            "preference": self.preference,
            "travel": self.travel,
        }


CARE_TYPE_WEIGHTS: dict[CareType, ScoreWeights] = {
    CareType.RESIDENTIAL: ScoreWeights(availability=35, continuity=30, skills=25, preference=10, travel=0),
    CareType.DOMICILIARY: ScoreWeights(),
    CareType.SUPPORTED_LIVING: ScoreWeights(availability=30, continuity=35, skills=20, preference=15, travel=0),
    CareType.EXTRA_CARE: ScoreWeights(availability=35, continuity=25, skills=25, preference=15, travel=0),
    CareType.LIVE_IN: ScoreWeights(availability=25, continuity=40, skills=25, preference=10, travel=0),
}


@dataclass(frozen=True)
class TravelThresholds:
    """Distance bands in miles; anything at or beyond ``acceptable`` scores 0."""

    excellent: float = 1.0
    good: float = 3.0
    acceptable: float = 5.0


# Capability tag -> activities it qualifies a carer for. Tags are compared
# after canonical_name(); an activity label is always its own qualification.
SKILL_AFFINITY: dict[str, frozenset[ActivityCategory]] = {
    "medication trained": frozenset({ActivityCategory.MEDICATION}),
    "medication administration": frozenset({ActivityCategory.MEDICATION}),
    "moving and handling": frozenset({ActivityCategory.MOBILITY, ActivityCategory.PERSONAL_CARE}),
    "hoist": frozenset({ActivityCategory.MOBILITY}),
    "food hygiene": frozenset({ActivityCategory.MEAL_PREPARATION, ActivityCategory.MEAL_SUPPORT}),
    "dysphagia": frozenset({ActivityCategory.MEAL_SUPPORT}),
    "care certificate": frozenset(
        {
            ActivityCategory.PERSONAL_CARE,
            ActivityCategory.DOMESTIC,
            ActivityCategory.COMPANIONSHIP,
            ActivityCategory.MEAL_SUPPORT,
        }
    ),
    "clinical observations": frozenset({ActivityCategory.HEALTH_MONITORING}),
    "driver": frozenset({ActivityCategory.COMMUNITY}),
    "night support": frozenset({ActivityCategory.NIGHT_CHECK}),
}


@dataclass(frozen=True)
class MatchingConfig:
    weights_by_care_type: Mapping[CareType, ScoreWeights] = field(
        default_factory=lambda: dict(CARE_TYPE_WEIGHTS)
    )
    default_care_type: CareType = CareType.DOMICILIARY
    travel_thresholds: TravelThresholds = TravelThresholds()
    travel_speed_mph: float = 20.0
    # Fractions of each sub-score maximum.
    availability_preferred: float = 1.0
    availability_available: float = 25 / 30
    availability_emergency_only: float = 10 / 30
    availability_overtime: float = 0.5
    capacity_floor: float = 0.5
    continuity_baseline: float = 0.2
    continuity_regular: float = 0.8
    continuity_visited: float = 0.6
    regular_visit_threshold: int = 5
    preference_neutral: float = 1 / 3
    travel_unknown: float = 0.5
    travel_good: float = 0.7
    travel_acceptable: float = 0.4
    skill_affinity: Mapping[str, frozenset[ActivityCategory]] = field(
        default_factory=lambda: dict(SKILL_AFFINITY)
    )

    def weights_for(self, care_type: CareType | None) -> ScoreWeights:
        key = care_type or self.default_care_type
        return self.weights_by_care_type.get(key) or self.weights_by_care_type[self.default_care_type]


DEFAULT_MATCHING = MatchingConfig()


def matching_config_from_dict(data: Mapping[str, Any] | None, base: MatchingConfig = DEFAULT_MATCHING) -> MatchingConfig:
    """Overlay a JSON-style profile onto ``base``.

    Recognised keys: ``weights`` (care type -> weight dict),
    ``default_care_type``, ``travel_thresholds``, ``travel_speed_mph`` and any
    scalar field of MatchingConfig.
    """
    if not data:
        return base

    updates: dict[str, Any] = {}

    weights_raw = data.get("weights") or {}
    if weights_raw:
        weights = dict(base.weights_by_care_type)
        for key, value in weights_raw.items():
            care_type = parse_enum(CareType, key)
            if care_type is None:
                raise ValueError(f"Unknown care type in weights: {key!r}")
            weights[care_type] = ScoreWeights(**{k: int(v) for k, v in value.items()})
        updates["weights_by_care_type"] = weights

    if data.get("default_care_type"):
        care_type = parse_enum(CareType, data["default_care_type"])
        if care_type is None:
            raise ValueError(f"Unknown default_care_type: {data['default_care_type']!r}")
        updates["default_care_type"] = care_type

    thresholds = data.get("travel_thresholds")
    if thresholds:
        updates["travel_thresholds"] = TravelThresholds(**{k: float(v) for k, v in thresholds.items()})

    affinity = data.get("skill_affinity")
    if affinity:
        merged = dict(base.skill_affinity)
        for tag, activities in affinity.items():
            parsed = {parse_enum(ActivityCategory, a) for a in activities}
            merged[str(tag)] = frozenset(a for a in parsed if a is not None)
        updates["skill_affinity"] = merged

    scalar_fields = {
        "travel_speed_mph",
        "availability_preferred",
        "availability_available",
        "availability_emergency_only",
        "availability_overtime",
        "capacity_floor",
        "continuity_baseline",
        "continuity_regular",
        "continuity_visited",
        "preference_neutral",
        "travel_unknown",
        "travel_good",
        "travel_acceptable",
    }
    for key in scalar_fields & set(data):
        updates[key] = float(data[key])
    if "regular_visit_threshold" in data:
        updates["regular_visit_threshold"] = int(data["regular_visit_threshold"])

    return replace(base, **updates)


# ---- Attendance -------------------------------------------------------------


@dataclass(frozen=True)
class AttendanceConfig:
    late_grace_minutes: int = 5
    absent_status_code: int = 1002


DEFAULT_ATTENDANCE = AttendanceConfig()


# ---- Round planning ---------------------------------------------------------


@dataclass(frozen=True)
class TimeWindow:
    start: str
    end: str

    @property
    def start_minutes(self) -> int:
        return parse_hhmm_to_minutes(self.start) or 0

    @property
    def end_minutes(self) -> int:
        return parse_hhmm_to_minutes(self.end) or 0


VISIT_TYPE_WINDOWS: dict[VisitType, TimeWindow | None] = {
    VisitType.MORNING: TimeWindow("06:00", "11:00"),
    VisitType.LUNCH: TimeWindow("11:00", "14:30"),
    VisitType.AFTERNOON: TimeWindow("13:00", "17:00"),
    VisitType.TEA: TimeWindow("16:00", "18:30"),
    VisitType.EVENING: TimeWindow("17:30", "21:00"),
    VisitType.BEDTIME: TimeWindow("19:30", "23:30"),
    VisitType.NIGHT: TimeWindow("21:00", "08:00"),
    VisitType.WAKING_NIGHT: TimeWindow("21:00", "08:00"),
    VisitType.SLEEP_IN: TimeWindow("21:00", "08:00"),
    # Unrestricted.
    VisitType.EMERGENCY: None,
    VisitType.ASSESSMENT: None,
    VisitType.REVIEW: None,
}


@dataclass(frozen=True)
class RoundConstraints:
    max_visits_per_round: int = 8
    max_duration_minutes: int = 240
    max_travel_minutes: int = 60
    travel_speed_mph: float = 20.0
    windows: Mapping[VisitType, TimeWindow | None] = field(
        default_factory=lambda: dict(VISIT_TYPE_WINDOWS)
    )

    def window_for(self, visit_type: VisitType) -> TimeWindow | None:
        return self.windows.get(visit_type)


DEFAULT_ROUND_CONSTRAINTS = RoundConstraints()
