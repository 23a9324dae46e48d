"""Group a day's visits of one type into travel-feasible rounds.

A round is an ordered run of visits one carer can work in sequence: each
visit must be reachable from the previous one (its start no earlier than the
previous end plus estimated travel), sit inside the visit type's time window,
and keep the round within its visit, duration and travel limits.
"""

from __future__ import annotations

import logging
import string
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Any

from .geo import BoundingBox, bounds_of, center_of, distance_or_none, travel_time
from .models import Coordinates, ServiceUser, Visit, VisitType, parse_enum
from .settings import DEFAULT_ROUND_CONSTRAINTS, RoundConstraints, TimeWindow
from .time_utils import MINUTES_PER_DAY, minute_ranges_overlap, minutes_to_hhmm, within_window

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Round:
    id: str
    name: str
    round_type: VisitType
    visit_date: date
    visits: tuple[Visit, ...]
    staff_id: str | None = None
    total_visit_minutes: int = 0
    total_travel_minutes: int = 0
    total_travel_miles: float = 0.0
    service_user_count: int = 0
    is_fully_assigned: bool = False
    start_time: str | None = None
    end_time: str | None = None
    out_of_window_visit_ids: tuple[str, ...] = ()
    is_unclustered: bool = False
    warnings: tuple[str, ...] = ()

    @property
    def visit_ids(self) -> list[str]:
        return [v.id for v in self.visits]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "round_type": self.round_type.value,
            "visit_date": self.visit_date.isoformat(),
            "staff_id": self.staff_id,
            "visits": [
                {
                    "id": v.id,
                    "service_user_id": v.service_user_id,
                    "start": v.start,
                    "end": v.end,
                    "duration_minutes": v.duration,
                    "staff_id": v.staff_id,
                }
                for v in self.visits
            ],
            "total_visit_minutes": self.total_visit_minutes,
            "total_travel_minutes": self.total_travel_minutes,
            "total_travel_miles": round(self.total_travel_miles, 2),
            "service_user_count": self.service_user_count,
            "is_fully_assigned": self.is_fully_assigned,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "out_of_window_visit_ids": list(self.out_of_window_visit_ids),
            "is_unclustered": self.is_unclustered,
            "warnings": list(self.warnings),
        }


@dataclass
class RoundPlan:
    rounds: list[Round] = field(default_factory=list)
    skipped_visit_ids: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "rounds": [r.to_dict() for r in self.rounds],
            "skipped_visit_ids": list(self.skipped_visit_ids),
            "warnings": list(self.warnings),
        }


# ---- Travel helpers ---------------------------------------------------------


def _location(visit: Visit, service_users: Mapping[str, ServiceUser]) -> Coordinates | None:
    su = service_users.get(visit.service_user_id)
    return su.location if su is not None else None


def travel_between(
    a: Visit,
    b: Visit,
    service_users: Mapping[str, ServiceUser],
    *,
    speed_mph: float = DEFAULT_ROUND_CONSTRAINTS.travel_speed_mph,
) -> tuple[float | None, int | None]:
    """(miles, minutes) between two visits' service users; (None, None) when unknown."""
    miles = distance_or_none(_location(a, service_users), _location(b, service_users))
    if miles is None:
        return None, None
    return miles, travel_time(miles, speed_mph=speed_mph)


def travel_matrix(
    visits: Sequence[Visit],
    service_users: Mapping[str, ServiceUser],
    *,
    speed_mph: float = DEFAULT_ROUND_CONSTRAINTS.travel_speed_mph,
) -> list[list[int | None]]:
    """Pairwise travel minutes; None where either end is unlocated."""
    matrix: list[list[int | None]] = []
    for a in visits:
        row: list[int | None] = []
        for b in visits:
            if a is b:
                row.append(0)
                continue
            _, minutes = travel_between(a, b, service_users, speed_mph=speed_mph)
            row.append(minutes)
        matrix.append(row)
    return matrix


def _by_start(visit: Visit) -> tuple[int, str]:
    start = visit.start_minutes
    return (start if start is not None else MINUTES_PER_DAY * 2, visit.id)


def optimise_visit_order(visits: Sequence[Visit], service_users: Mapping[str, ServiceUser]) -> list[Visit]:
    """Nearest-neighbour ordering starting from the earliest visit.

    Ignores time windows; intended for callers reordering a round by hand.
    After an unlocated visit the next visit is simply the next by time.
    """
    remaining = sorted(visits, key=_by_start)
    if len(remaining) <= 2:
        return remaining

    ordered = [remaining.pop(0)]
    while remaining:
        origin = _location(ordered[-1], service_users)
        best_idx = 0
        if origin is not None:
            best_dist: float | None = None
            for idx, candidate in enumerate(remaining):
                miles = distance_or_none(origin, _location(candidate, service_users))
                if miles is None:
                    continue
                if best_dist is None or miles < best_dist:
                    best_dist = miles
                    best_idx = idx
        ordered.append(remaining.pop(best_idx))
    return ordered


def visits_bounds(
    visits: Iterable[Visit],
    service_users: Mapping[str, ServiceUser],
    *,
    padding_ratio: float = 0.1,
) -> BoundingBox | None:
    return bounds_of((_location(v, service_users) for v in visits), padding_ratio=padding_ratio)


def visits_center_point(visits: Iterable[Visit], service_users: Mapping[str, ServiceUser]) -> Coordinates | None:
    return center_of(_location(v, service_users) for v in visits)


# ---- Round statistics -------------------------------------------------------


def _timeline(visit: Visit, window: TimeWindow | None) -> tuple[int, int] | None:
    """Start/end minutes, with early-morning times moved after midnight for overnight windows."""
    start = visit.start_minutes
    end = visit.end_minutes
    if start is None or end is None:
        return None
    if window is not None and window.end_minutes <= window.start_minutes and start < window.start_minutes:
        start += MINUTES_PER_DAY
        end += MINUTES_PER_DAY
    return start, end


def _stats(
    visits: Sequence[Visit],
    service_users: Mapping[str, ServiceUser],
    window: TimeWindow | None,
    speed_mph: float,
) -> dict[str, Any]:
    travel_minutes = 0
    travel_miles = 0.0
    for prev, nxt in zip(visits, visits[1:]):
        miles, minutes = travel_between(prev, nxt, service_users, speed_mph=speed_mph)
        if miles is not None and minutes is not None:
            travel_miles += miles
            travel_minutes += minutes

    timelines = [t for t in (_timeline(v, window) for v in visits) if t is not None]
    staff_ids = {v.staff_id for v in visits}
    shared_staff = next(iter(staff_ids)) if len(staff_ids) == 1 else None

    return {
        "total_visit_minutes": sum(v.duration or 0 for v in visits),
        "total_travel_minutes": travel_minutes,
        "total_travel_miles": travel_miles,
        "service_user_count": len({v.service_user_id for v in visits}),
        "staff_id": shared_staff,
        "start_time": minutes_to_hhmm(min(t[0] for t in timelines)) if timelines else None,
        "end_time": minutes_to_hhmm(max(t[1] for t in timelines)) if timelines else None,
    }


def summarise_round(
    round_: Round,
    service_users: Mapping[str, ServiceUser],
    *,
    constraints: RoundConstraints = DEFAULT_ROUND_CONSTRAINTS,
) -> Round:
    """Recompute a round's statistics for its current visit order.

    A carer set on the round itself assigns the whole round as one unit and
    is kept; otherwise the carer shared by every visit, if any, is reported.
    """
    stats = _stats(round_.visits, service_users, constraints.window_for(round_.round_type), constraints.travel_speed_mph)
    if round_.staff_id:
        stats["staff_id"] = round_.staff_id
    present = {v.id for v in round_.visits}
    out_of_window = tuple(vid for vid in round_.out_of_window_visit_ids if vid in present)
    all_assigned = bool(round_.visits) and (bool(round_.staff_id) or all(v.is_assigned for v in round_.visits))
    return replace(
        round_,
        out_of_window_visit_ids=out_of_window,
        is_fully_assigned=all_assigned and not out_of_window,
        **stats,
    )


# ---- Planning ---------------------------------------------------------------


@dataclass
class _Draft:
    visits: list[Visit]
    travel_minutes: int = 0
    out_of_window: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    unclustered: bool = False

    @property
    def visit_minutes(self) -> int:
        return sum(v.duration or 0 for v in self.visits)


def _round_label(index: int) -> str:
    letters = string.ascii_uppercase
    label = ""
    index += 1
    while index:
        index, rem = divmod(index - 1, 26)
        label = letters[rem] + label
    return label


class _Planner:
    def __init__(
        self,
        visit_type: VisitType,
        visit_date: date,
        service_users: Mapping[str, ServiceUser],
        constraints: RoundConstraints,
    ) -> None:
        self.visit_type = visit_type
        self.visit_date = visit_date
        self.service_users = service_users
        self.constraints = constraints
        self.window = constraints.window_for(visit_type)

    def sort_key(self, visit: Visit) -> tuple[int, str]:
        timeline = _timeline(visit, self.window)
        return (timeline[0] if timeline is not None else MINUTES_PER_DAY * 3, visit.id)

    def in_window(self, visit: Visit) -> bool:
        if self.window is None:
            return True
        start = visit.start_minutes
        end = visit.end_minutes
        if start is None or end is None:
            return False
        return within_window(start, end, self.window.start_minutes, self.window.end_minutes)

    def leg(self, a: Visit, b: Visit) -> tuple[float, int] | None:
        miles, minutes = travel_between(a, b, self.service_users, speed_mph=self.constraints.travel_speed_mph)
        if miles is None or minutes is None:
            return None
        return miles, minutes

    def chain(self, located: list[Visit]) -> list[_Draft]:
        remaining = sorted(located, key=self.sort_key)
        drafts: list[_Draft] = []
        while remaining:
            draft = _Draft(visits=[remaining.pop(0)])
            while True:
                picked = self.nearest_reachable(draft, remaining)
                if picked is None:
                    break
                candidate, minutes = picked
                remaining.remove(candidate)
                draft.visits.append(candidate)
                draft.travel_minutes += minutes
            drafts.append(draft)
        return drafts

    def nearest_reachable(self, draft: _Draft, remaining: list[Visit]) -> tuple[Visit, int] | None:
        c = self.constraints
        if len(draft.visits) >= c.max_visits_per_round:
            return None
        last = draft.visits[-1]
        last_end = _timeline(last, self.window)[1]

        best: tuple[float, int, str, Visit, int] | None = None
        for candidate in remaining:
            leg = self.leg(last, candidate)
            if leg is None:
                continue
            miles, minutes = leg
            start = _timeline(candidate, self.window)[0]
            if start < last_end + minutes:
                continue
            if draft.travel_minutes + minutes > c.max_travel_minutes:
                continue
            working = draft.visit_minutes + (candidate.duration or 0) + draft.travel_minutes + minutes
            if working > c.max_duration_minutes:
                continue
            key = (miles, start, candidate.id)
            if best is None or key < best[:3]:
                best = (miles, start, candidate.id, candidate, minutes)
        if best is None:
            return None
        return best[3], best[4]

    def fits(self, draft: _Draft, visit: Visit) -> bool:
        """No time clash with the draft's visits and room for one more."""
        c = self.constraints
        if len(draft.visits) >= c.max_visits_per_round:
            return False
        if draft.visit_minutes + draft.travel_minutes + (visit.duration or 0) > c.max_duration_minutes:
            return False
        timeline = _timeline(visit, self.window)
        if timeline is None:
            return False
        for other in draft.visits:
            other_timeline = _timeline(other, self.window)
            if other_timeline is not None and minute_ranges_overlap(timeline, other_timeline):
                return False
        return True

    def least_loaded(self, drafts: list[_Draft], visit: Visit) -> _Draft | None:
        options = [d for d in drafts if not d.unclustered and self.fits(d, visit)]
        if not options:
            return None
        return min(options, key=lambda d: (len(d.visits), d.visit_minutes + d.travel_minutes, self.first(d)))

    def first(self, draft: _Draft) -> tuple[int, str]:
        return min(self.sort_key(v) for v in draft.visits)

    def finish(self, drafts: list[_Draft]) -> list[Round]:
        clustered = sorted((d for d in drafts if not d.unclustered), key=self.first)
        unclustered = [d for d in drafts if d.unclustered]

        rounds: list[Round] = []
        base = f"{self.visit_date.isoformat()}-{self.visit_type.value}"
        type_name = self.visit_type.display_name
        for idx, draft in enumerate(clustered):
            label = _round_label(idx)
            rounds.append(self.build(draft, f"{base}-{label.lower()}", f"{type_name} Round {label}"))
        for draft in unclustered:
            rounds.append(self.build(draft, f"{base}-unclustered", f"{type_name} Unclustered"))
        return rounds

    def build(self, draft: _Draft, round_id: str, name: str) -> Round:
        visits = tuple(sorted(draft.visits, key=self.sort_key))
        round_ = Round(
            id=round_id,
            name=name,
            round_type=self.visit_type,
            visit_date=self.visit_date,
            visits=visits,
            out_of_window_visit_ids=tuple(draft.out_of_window),
            is_unclustered=draft.unclustered,
            warnings=tuple(draft.warnings),
        )
        return summarise_round(round_, self.service_users, constraints=self.constraints)


def plan_rounds(
    visits: Iterable[Visit],
    visit_type: VisitType | str,
    visit_date: date,
    *,
    service_users: Mapping[str, ServiceUser],
    constraints: RoundConstraints = DEFAULT_ROUND_CONSTRAINTS,
) -> RoundPlan:
    """Partition one day's visits of one type into rounds.

    Visits whose service user is unknown are skipped and reported. Visits
    outside the type's time window are placed best-effort and flag their
    round as not fully assigned. Unlocated visits join the least-loaded
    round they fit into, otherwise an unclustered round.
    """
    vt = parse_enum(VisitType, visit_type)
    if vt is None:
        raise ValueError(f"Unknown visit type: {visit_type!r}")

    plan = RoundPlan()
    candidates = [v for v in visits if v.visit_date == visit_date and v.visit_type == vt and not v.is_cancelled]
    if not candidates:
        return plan

    planner = _Planner(vt, visit_date, service_users, constraints)
    located: list[Visit] = []
    unlocated: list[Visit] = []
    out_of_window: list[Visit] = []

    for visit in sorted(candidates, key=planner.sort_key):
        su = service_users.get(visit.service_user_id)
        if su is None:
            message = f"Visit {visit.id}: service user {visit.service_user_id} not found"
            logger.warning(message)
            plan.skipped_visit_ids.append(visit.id)
            plan.warnings.append(message)
            continue
        if visit.start_minutes is None or visit.end_minutes is None or not planner.in_window(visit):
            out_of_window.append(visit)
        elif su.location is None:
            unlocated.append(visit)
        else:
            located.append(visit)

    drafts = planner.chain(located)

    window = planner.window
    for visit in out_of_window:
        if visit.start_minutes is None or visit.end_minutes is None:
            message = f"Visit {visit.id}: scheduled time unknown"
        else:
            message = (
                f"Visit {visit.id} ({visit.start}-{visit.end}) is outside the "
                f"{vt.display_name} window {window.start}-{window.end}"
            )
        logger.warning(message)
        plan.warnings.append(message)
        target = planner.least_loaded(drafts, visit)
        if target is None:
            target = _Draft(visits=[], unclustered=visit.start_minutes is None)
            drafts.append(target)
        target.visits.append(visit)
        target.out_of_window.append(visit.id)
        target.warnings.append(message)

    leftovers: _Draft | None = None
    for visit in unlocated:
        target = planner.least_loaded(drafts, visit)
        if target is not None:
            target.visits.append(visit)
            target.warnings.append(f"Visit {visit.id}: location unknown, travel not estimated")
            continue
        if leftovers is None:
            leftovers = _Draft(visits=[], unclustered=True)
            drafts.append(leftovers)
        leftovers.visits.append(visit)

    merged = _merge_unclustered([d for d in drafts if d.visits])
    plan.rounds = planner.finish(merged)

    logger.info(
        "Planned %d %s rounds for %s from %d visits (%d skipped)",
        len(plan.rounds),
        vt.value,
        visit_date.isoformat(),
        len(candidates),
        len(plan.skipped_visit_ids),
    )
    return plan


def _merge_unclustered(drafts: list[_Draft]) -> list[_Draft]:
    merged: list[_Draft] = []
    bucket: _Draft | None = None
    for draft in drafts:
        if not draft.unclustered:
            merged.append(draft)
            continue
        if bucket is None:
            bucket = draft
            merged.append(bucket)
            continue
        bucket.visits.extend(draft.visits)
        bucket.out_of_window.extend(draft.out_of_window)
        bucket.warnings.extend(draft.warnings)
    return merged


def build_rounds(
    visits: Iterable[Visit],
    visit_type: VisitType | str,
    visit_date: date,
    *,
    service_users: Mapping[str, ServiceUser],
    constraints: RoundConstraints = DEFAULT_ROUND_CONSTRAINTS,
) -> list[Round]:
    return plan_rounds(
        visits,
        visit_type,
        visit_date,
        service_users=service_users,
        constraints=constraints,
    ).rounds
