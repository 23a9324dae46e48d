"""Capability-to-activity fit helpers."""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterable, Mapping, Set
from dataclasses import dataclass

from .models import ActivityCategory


def canonical_name(value: str | None) -> str:
    s = unicodedata.normalize("NFKD", (value or ""))
    s = "".join(ch for ch in s if not unicodedata.combining(ch))
    s = s.lower().strip()
    s = re.sub(r"[^a-z0-9]+", " ", s)
    s = re.sub(r"\s+", " ", s)
    return s.strip()


@dataclass(frozen=True)
class SkillMatch:
    required: tuple[ActivityCategory, ...]
    matched: tuple[ActivityCategory, ...]
    missing: tuple[ActivityCategory, ...]

    @property
    def ratio(self) -> float:
        if not self.required:
            return 1.0
        return len(self.matched) / len(self.required)

    @property
    def has_all(self) -> bool:
        return not self.missing


def covered_activities(
    capabilities: Iterable[str],
    *,
    affinity_map: Mapping[str, Set[ActivityCategory]],
) -> set[ActivityCategory]:
    """Activities a set of capability tags qualifies a carer for.

    A tag naming an activity covers it directly; other tags cover whatever
    the affinity map lists for them, exact key first, then keys contained
    in the tag ("level 3 medication trained" -> "medication trained").
    """
    canonical_affinity = {canonical_name(k): v for k, v in affinity_map.items()}
    by_label = {canonical_name(a.value): a for a in ActivityCategory}

    covered: set[ActivityCategory] = set()
    for tag in capabilities:
        norm = canonical_name(tag)
        if not norm:
            continue
        if norm in by_label:
            covered.add(by_label[norm])
        if norm in canonical_affinity:
            covered.update(canonical_affinity[norm])
            continue
        for key, allowed in canonical_affinity.items():
            if key and key in norm:
                covered.update(allowed)
    return covered


def compute_skill_match(
    required: Iterable[ActivityCategory],
    capabilities: Iterable[str],
    *,
    affinity_map: Mapping[str, Set[ActivityCategory]],
) -> SkillMatch:
    """Compare required activities with what a carer's capabilities cover."""
    required_unique = tuple(dict.fromkeys(required))
    covered = covered_activities(capabilities, affinity_map=affinity_map)
    matched = tuple(a for a in required_unique if a in covered)
    missing = tuple(a for a in required_unique if a not in covered)
    return SkillMatch(required=required_unique, matched=matched, missing=missing)
