import pytest

from rota_core.models import ActivityCategory, CareType, VisitType, parse_enum
from rota_core.settings import (
    CARE_TYPE_WEIGHTS,
    DEFAULT_MATCHING,
    DEFAULT_ROUND_CONSTRAINTS,
    ScoreWeights,
    matching_config_from_dict,
)
from rota_core.skills import canonical_name, compute_skill_match, covered_activities


class TestScoreWeights:
    def test_defaults(self):
        assert ScoreWeights().as_dict() == {
            "availability": 30,
            "continuity": 25,
            "skills": 20,
            "preference": 15,
            "travel": 10,
        }

    def test_must_sum_to_100(self):
        with pytest.raises(ValueError):
            ScoreWeights(availability=40)

    def test_no_negative(self):
        with pytest.raises(ValueError):
            ScoreWeights(availability=50, travel=-10)

    def test_care_type_tables_valid(self):
        for care_type, weights in CARE_TYPE_WEIGHTS.items():
            assert sum(weights.as_dict().values()) == 100, care_type
        assert CARE_TYPE_WEIGHTS[CareType.LIVE_IN].travel == 0

    def test_component_caps_vary_by_care_type(self):
        assert CARE_TYPE_WEIGHTS[CareType.DOMICILIARY] == ScoreWeights()
        assert CARE_TYPE_WEIGHTS[CareType.LIVE_IN].continuity == 40
        assert CARE_TYPE_WEIGHTS[CareType.RESIDENTIAL].availability == 35

    def test_weights_for_falls_back_to_default(self):
        assert DEFAULT_MATCHING.weights_for(None) == ScoreWeights()


class TestMatchingProfile:
    def test_empty_profile_is_base(self):
        assert matching_config_from_dict({}) is DEFAULT_MATCHING
        assert matching_config_from_dict(None) is DEFAULT_MATCHING

    def test_overlay(self):
        config = matching_config_from_dict(
            {
                "description": "ignored",
                "weights": {"domiciliary": {"availability": 25, "continuity": 35, "skills": 20, "preference": 15, "travel": 5}},
                "default_care_type": "supported_living",
                "travel_thresholds": {"excellent": 2, "good": 4, "acceptable": 8},
                "continuity_baseline": 0.1,
                "regular_visit_threshold": 3,
                "skill_affinity": {"peg feeding": ["meal_support", "health_monitoring"]},
            }
        )
        assert config.weights_for(CareType.DOMICILIARY).continuity == 35
        assert config.weights_for(CareType.RESIDENTIAL) == CARE_TYPE_WEIGHTS[CareType.RESIDENTIAL]
        assert config.default_care_type == CareType.SUPPORTED_LIVING
        assert config.travel_thresholds.acceptable == 8
        assert config.continuity_baseline == 0.1
        assert config.regular_visit_threshold == 3
        assert config.skill_affinity["peg feeding"] == frozenset(
            {ActivityCategory.MEAL_SUPPORT, ActivityCategory.HEALTH_MONITORING}
        )
        assert "medication trained" in config.skill_affinity

    def test_bad_weights_rejected(self):
        with pytest.raises(ValueError):
            matching_config_from_dict({"weights": {"domiciliary": {"availability": 90}}})

    def test_unknown_care_type_rejected(self):
        with pytest.raises(ValueError):
            matching_config_from_dict({"weights": {"hospital": {}}})


class TestRoundWindows:
    def test_windows(self):
        morning = DEFAULT_ROUND_CONSTRAINTS.window_for(VisitType.MORNING)
        assert (morning.start_minutes, morning.end_minutes) == (360, 660)
        assert DEFAULT_ROUND_CONSTRAINTS.window_for(VisitType.EMERGENCY) is None


class TestParseEnum:
    def test_label_name_and_code(self):
        assert parse_enum(VisitType, "Waking Night") == VisitType.WAKING_NIGHT
        assert parse_enum(VisitType, "SLEEP_IN") == VisitType.SLEEP_IN
        assert parse_enum(VisitType, 1) == VisitType.MORNING
        assert parse_enum(CareType, "3") == CareType.EXTRA_CARE
        assert parse_enum(ActivityCategory, 99) == ActivityCategory.OTHER

    def test_unknown(self):
        assert parse_enum(VisitType, "brunch") is None
        assert parse_enum(VisitType, 500) is None
        assert parse_enum(VisitType, "") is None
        assert parse_enum(VisitType, True) is None


class TestSkills:
    def test_canonical_name(self):
        assert canonical_name("  Moving & Handling ") == "moving handling"
        assert canonical_name("Café") == "cafe"
        assert canonical_name(None) == ""

    def test_direct_label(self):
        covered = covered_activities(["Personal Care"], affinity_map={})
        assert covered == {ActivityCategory.PERSONAL_CARE}

    def test_affinity_substring(self):
        covered = covered_activities(["NVQ3 Food Hygiene Level 2"], affinity_map=DEFAULT_MATCHING.skill_affinity)
        assert ActivityCategory.MEAL_PREPARATION in covered

    def test_match_ratio(self):
        match = compute_skill_match(
            [ActivityCategory.PERSONAL_CARE, ActivityCategory.MOBILITY, ActivityCategory.PERSONAL_CARE],
            ["Hoist"],
            affinity_map=DEFAULT_MATCHING.skill_affinity,
        )
        assert match.required == (ActivityCategory.PERSONAL_CARE, ActivityCategory.MOBILITY)
        assert match.matched == (ActivityCategory.MOBILITY,)
        assert match.missing == (ActivityCategory.PERSONAL_CARE,)
        assert match.ratio == 0.5
        assert match.has_all is False

    def test_nothing_required(self):
        match = compute_skill_match([], [], affinity_map={})
        assert match.ratio == 1.0
        assert match.has_all is True
