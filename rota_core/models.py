"""Typed records consumed and produced by the rota core.

Records arrive from the repository layer as loose rows; the intake code in
``rota_core.io`` turns them into these frozen dataclasses. Enumerations are
closed: parsers accept the enum, its label or the legacy numeric option-set
code, and return ``None`` for anything else.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, TypeVar

from .time_utils import calc_duration_minutes, parse_hhmm_to_minutes

E = TypeVar("E", bound=Enum)


class VisitType(str, Enum):
    MORNING = "morning"
    LUNCH = "lunch"
    AFTERNOON = "afternoon"
    TEA = "tea"
    EVENING = "evening"
    BEDTIME = "bedtime"
    NIGHT = "night"
    WAKING_NIGHT = "waking_night"
    SLEEP_IN = "sleep_in"
    EMERGENCY = "emergency"
    ASSESSMENT = "assessment"
    REVIEW = "review"

    @property
    def display_name(self) -> str:
        return _VISIT_TYPE_NAMES[self]


_VISIT_TYPE_NAMES = {
    VisitType.MORNING: "Morning",
    VisitType.LUNCH: "Lunch",
    VisitType.AFTERNOON: "Afternoon",
    VisitType.TEA: "Tea",
    VisitType.EVENING: "Evening",
    VisitType.BEDTIME: "Bedtime",
    VisitType.NIGHT: "Night",
    VisitType.WAKING_NIGHT: "Waking Night",
    VisitType.SLEEP_IN: "Sleep-in",
    VisitType.EMERGENCY: "Emergency",
    VisitType.ASSESSMENT: "Assessment",
    VisitType.REVIEW: "Review",
}


class VisitStatus(str, Enum):
    SCHEDULED = "scheduled"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    MISSED = "missed"
    LATE = "late"


class ActivityCategory(str, Enum):
    PERSONAL_CARE = "personal_care"
    MEDICATION = "medication"
    MEAL_PREPARATION = "meal_preparation"
    MEAL_SUPPORT = "meal_support"
    MOBILITY = "mobility"
    DOMESTIC = "domestic"
    COMPANIONSHIP = "companionship"
    COMMUNITY = "community"
    HEALTH_MONITORING = "health_monitoring"
    NIGHT_CHECK = "night_check"
    OTHER = "other"


class AvailabilityType(str, Enum):
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    PREFERRED = "preferred"
    EMERGENCY_ONLY = "emergency_only"


class RelationshipStatus(str, Enum):
    ACTIVE = "active"
    PREFERRED = "preferred"
    EXCLUDED = "excluded"
    INACTIVE = "inactive"


class FundingType(str, Enum):
    LOCAL_AUTHORITY = "local_authority"
    NHS_CHC = "nhs_chc"
    PRIVATE = "private"
    MIXED = "mixed"


class GenderPreference(str, Enum):
    MALE = "male"
    FEMALE = "female"
    NO_PREFERENCE = "no_preference"


class CareType(str, Enum):
    RESIDENTIAL = "residential"
    DOMICILIARY = "domiciliary"
    SUPPORTED_LIVING = "supported_living"
    EXTRA_CARE = "extra_care"
    LIVE_IN = "live_in"


# Legacy option-set codes used by the record store.
_CODES: dict[type[Enum], dict[int, Enum]] = {
    VisitType: {i + 1: v for i, v in enumerate(VisitType)},
    VisitStatus: {i + 1: v for i, v in enumerate(VisitStatus)},
    ActivityCategory: {
        **{i + 1: v for i, v in enumerate(list(ActivityCategory)[:-1])},
        99: ActivityCategory.OTHER,
    },
    AvailabilityType: {i + 1: v for i, v in enumerate(AvailabilityType)},
    RelationshipStatus: {i + 1: v for i, v in enumerate(RelationshipStatus)},
    FundingType: {i + 1: v for i, v in enumerate(FundingType)},
    GenderPreference: {i + 1: v for i, v in enumerate(GenderPreference)},
    # CarePackageType codes: 1 domiciliary, 2 supported living, 3 extra care, 4 live-in.
    CareType: {
        1: CareType.DOMICILIARY,
        2: CareType.SUPPORTED_LIVING,
        3: CareType.EXTRA_CARE,
        4: CareType.LIVE_IN,
    },
}


def parse_enum(enum_cls: type[E], value: Any) -> E | None:
    """Resolve an enum from an instance, a label, a member name or a numeric code."""
    if value is None:
        return None
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _CODES.get(enum_cls, {}).get(int(value))  # type: ignore[return-value]
    text = str(value).strip()
    if not text:
        return None
    if text.lstrip("-").isdigit():
        return _CODES.get(enum_cls, {}).get(int(text))  # type: ignore[return-value]
    key = text.lower().replace("-", "_").replace(" ", "_")
    for member in enum_cls:
        if member.value == key or member.name.lower() == key:
            return member
    return None


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float

    def as_tuple(self) -> tuple[float, float]:
        return (self.latitude, self.longitude)


@dataclass(frozen=True)
class Visit:
    id: str
    service_user_id: str
    visit_type: VisitType
    visit_date: date
    start: str
    end: str
    duration_minutes: int | None = None
    status: VisitStatus = VisitStatus.SCHEDULED
    staff_id: str | None = None
    required_activities: tuple[ActivityCategory, ...] = ()
    notes: str = ""
    round_id: str | None = None
    sequence_order: int | None = None

    def __post_init__(self) -> None:
        if self.duration_minutes is not None and self.duration_minutes < 0:
            raise ValueError(f"Visit {self.id}: duration_minutes must not be negative")

    @property
    def start_minutes(self) -> int | None:
        return parse_hhmm_to_minutes(self.start)

    @property
    def end_minutes(self) -> int | None:
        """End in minutes after midnight of the visit date (may exceed 24h)."""
        start = self.start_minutes
        if start is None:
            return None
        duration = self.duration
        if duration is None:
            return None
        return start + duration

    @property
    def duration(self) -> int | None:
        if self.duration_minutes is not None:
            return self.duration_minutes
        return calc_duration_minutes(self.start, self.end)

    @property
    def is_assigned(self) -> bool:
        return bool(self.staff_id)

    @property
    def is_cancelled(self) -> bool:
        return self.status == VisitStatus.CANCELLED


@dataclass(frozen=True)
class ServiceUser:
    id: str
    full_name: str
    location: Coordinates | None = None
    funding_type: FundingType | None = None
    weekly_funded_hours: float | None = None
    access_notes: str = ""
    key_safe_location: str = ""
    preferred_gender: GenderPreference = GenderPreference.NO_PREFERENCE
    care_package: CareType | None = None
    active: bool = True


@dataclass(frozen=True)
class StaffMember:
    id: str
    name: str
    job_title: str = ""
    capabilities: frozenset[str] = frozenset()
    base_location: Coordinates | None = None
    contracted_hours: float | None = None
    scheduled_hours: float | None = None
    gender: GenderPreference | None = None
    active: bool = True


@dataclass(frozen=True)
class ServiceUserStaffRelationship:
    service_user_id: str
    staff_id: str
    is_preferred_carer: bool = False
    is_excluded: bool = False
    exclusion_reason: str = ""
    total_visits: int = 0
    continuity_score: float | None = None
    status: RelationshipStatus = RelationshipStatus.ACTIVE
    last_visit_date: date | None = None

    @property
    def excluded(self) -> bool:
        return self.is_excluded or self.status == RelationshipStatus.EXCLUDED

    @property
    def preferred(self) -> bool:
        return self.is_preferred_carer or self.status == RelationshipStatus.PREFERRED


@dataclass(frozen=True)
class StaffAvailability:
    staff_id: str
    available_from: str
    available_to: str
    availability_type: AvailabilityType = AvailabilityType.AVAILABLE
    day_of_week: int | None = None
    specific_date: date | None = None
    is_preferred_time: bool = False
    active: bool = True


@dataclass(frozen=True)
class StaffShift:
    staff_id: str
    shift_date: date
    start: str
    end: str


@dataclass
class RotaSnapshot:
    """One consistent fetch of every record the core needs."""

    snapshot_id: str
    visits: list[Visit] = field(default_factory=list)
    service_users: dict[str, ServiceUser] = field(default_factory=dict)
    staff: list[StaffMember] = field(default_factory=list)
    relationships: list[ServiceUserStaffRelationship] = field(default_factory=list)
    availability: list[StaffAvailability] = field(default_factory=list)
    shifts: list[StaffShift] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def visit(self, visit_id: str) -> Visit | None:
        return next((v for v in self.visits if v.id == visit_id), None)

    def staff_member(self, staff_id: str) -> StaffMember | None:
        return next((s for s in self.staff if s.id == staff_id), None)

    def counts(self) -> dict[str, int]:
        return {
            "visits": len(self.visits),
            "service_users": len(self.service_users),
            "staff": len(self.staff),
            "relationships": len(self.relationships),
            "availability": len(self.availability),
            "shifts": len(self.shifts),
        }
