"""Load the minimal CSV fixture and run it through matching and round planning."""

from __future__ import annotations

import shutil
from datetime import date
from pathlib import Path

import pytest

from rota_core.io.reader import load_input
from rota_core.matching import MatchingContext, MatchingOptions, find_matching_staff, match_unassigned_visits
from rota_core.models import (
    ActivityCategory,
    CareType,
    Coordinates,
    GenderPreference,
    VisitStatus,
    VisitType,
)
from rota_core.rounds import plan_rounds

FIXTURES_DIR = Path(__file__).parent / "fixtures" / "minimal"
DAY = date(2026, 3, 2)


@pytest.fixture
def snapshot():
    return load_input(FIXTURES_DIR)


class TestLoadInput:
    def test_counts(self, snapshot):
        assert snapshot.snapshot_id == "snap-minimal"
        assert snapshot.counts() == {
            "visits": 7,
            "service_users": 4,
            "staff": 4,
            "relationships": 3,
            "availability": 3,
            "shifts": 1,
        }

    def test_service_user_fields(self, snapshot):
        su = snapshot.service_users["SU-1"]
        assert su.full_name == "Margaret Hill"
        assert su.location == Coordinates(51.5, -0.12)
        assert su.preferred_gender == GenderPreference.FEMALE
        assert su.care_package == CareType.DOMICILIARY
        assert su.key_safe_location == "Left of door"

    def test_legacy_care_type_code(self, snapshot):
        assert snapshot.service_users["SU-3"].care_package == CareType.DOMICILIARY

    def test_missing_coordinates(self, snapshot):
        assert snapshot.service_users["SU-4"].location is None

    def test_staff_fields(self, snapshot):
        amira = snapshot.staff_member("ST-1")
        assert amira.name == "Amira Khan"
        assert "Medication Trained" in amira.capabilities
        assert amira.contracted_hours == 37.5
        assert amira.scheduled_hours is None
        assert snapshot.staff_member("ST-4").active is False

    def test_visit_fields(self, snapshot):
        v1 = snapshot.visit("V-1")
        assert v1.visit_type == VisitType.MORNING
        assert v1.visit_date == DAY
        assert v1.duration == 45
        assert v1.required_activities == (ActivityCategory.PERSONAL_CARE, ActivityCategory.MEDICATION)
        assert v1.staff_id is None
        assert snapshot.visit("V-2").staff_id == "ST-2"
        assert snapshot.visit("V-6").status == VisitStatus.CANCELLED

    def test_malformed_rows_skipped_with_warning(self, snapshot):
        assert snapshot.visit("V-7") is None
        assert any("visits.csv" in w and "line 8" in w for w in snapshot.warnings)
        assert any(w.startswith("availability.csv") for w in snapshot.warnings)

    def test_duplicate_relationship_exclusion_wins(self, snapshot):
        rows = [r for r in snapshot.relationships if (r.service_user_id, r.staff_id) == ("SU-1", "ST-2")]
        assert len(rows) == 1
        assert rows[0].excluded is True
        assert rows[0].exclusion_reason == "Family request"
        assert any("duplicate" in w for w in snapshot.warnings)

    def test_missing_required_file(self, tmp_path):
        target = tmp_path / "input"
        shutil.copytree(FIXTURES_DIR, target)
        (target / "staff.csv").unlink()
        with pytest.raises(FileNotFoundError):
            load_input(target)

    def test_header_complete(self, snapshot):
        assert not any("missing column" in w for w in snapshot.warnings)

    def test_missing_column_reported(self, tmp_path):
        target = tmp_path / "input"
        shutil.copytree(FIXTURES_DIR, target)
        visits_csv = target / "visits.csv"
        lines = visits_csv.read_text(encoding="utf-8").splitlines()
        visits_csv.write_text("\n".join(line.rsplit(",", 1)[0] for line in lines) + "\n", encoding="utf-8")

        snapshot = load_input(target)
        assert "visits.csv: missing column(s) notes" in snapshot.warnings
        assert snapshot.visit("V-4").notes == ""
        assert len(snapshot.visits) == 7

    def test_optional_files(self, tmp_path):
        target = tmp_path / "input"
        shutil.copytree(FIXTURES_DIR, target)
        (target / "availability.csv").unlink()
        (target / "shifts.csv").unlink()
        snapshot = load_input(target)
        assert snapshot.availability == []
        assert snapshot.shifts == []


class TestSnapshotMatching:
    def test_best_carer_for_first_visit(self, snapshot):
        visit = snapshot.visit("V-1")
        context = MatchingContext.from_snapshot(snapshot, visit, snapshot.service_users["SU-1"])
        results = find_matching_staff(context)
        assert [r.staff_id for r in results] == ["ST-1"]
        best = results[0]
        assert best.score == 95
        assert best.breakdown.to_dict() == {
            "availability": 30,
            "continuity": 20,
            "skills": 20,
            "preference": 15,
            "travel": 10,
        }

    def test_excluded_and_unavailable_visible_on_request(self, snapshot):
        visit = snapshot.visit("V-1")
        context = MatchingContext.from_snapshot(snapshot, visit, snapshot.service_users["SU-1"])
        results = find_matching_staff(context, MatchingOptions(include_unavailable=True))
        by_id = {r.staff_id: r for r in results}
        assert set(by_id) == {"ST-1", "ST-2", "ST-3"}
        assert by_id["ST-2"].is_excluded is True
        assert "Excluded: Family request" in by_id["ST-2"].warnings
        assert "Not available on this day" in by_id["ST-3"].warnings

    def test_batch(self, snapshot):
        batch = match_unassigned_visits(snapshot, visit_date=DAY)
        assert set(batch.results) == {"V-1", "V-3", "V-4", "V-5"}
        assert any("SU-9" in w for w in batch.warnings)


class TestSnapshotRounds:
    def test_morning(self, snapshot):
        plan = plan_rounds(snapshot.visits, VisitType.MORNING, DAY, service_users=snapshot.service_users)
        assert plan.skipped_visit_ids == []
        (r,) = plan.rounds
        assert r.visit_ids == ["V-1", "V-2", "V-3", "V-4"]
        assert r.total_travel_minutes == 6
        assert r.total_visit_minutes == 120
        assert r.service_user_count == 4
        assert (r.start_time, r.end_time) == ("08:00", "11:00")
        assert r.is_fully_assigned is False
        assert r.staff_id is None

    def test_lunch_with_missing_service_user(self, snapshot):
        plan = plan_rounds(snapshot.visits, VisitType.LUNCH, DAY, service_users=snapshot.service_users)
        assert plan.rounds == []
        assert plan.skipped_visit_ids == ["V-8"]
