"""Environment and profile handling for the MCP server."""

from __future__ import annotations

import json
import os

import pytest

from rota_core.settings import DEFAULT_MATCHING, DEFAULT_ROUND_CONSTRAINTS
from rota_mcp.config import (
    attendance_config,
    load_env,
    load_matching_profiles,
    matching_config,
    round_constraints,
    runtime_config,
)

ENV_VARS = (
    "ROTA_INPUT_DIR",
    "ROTA_EXPORT_DIR",
    "ROTA_PROFILE_FILE",
    "ROTA_LATE_GRACE_MINUTES",
    "ROTA_ABSENT_STATUS_CODE",
    "ROTA_TRAVEL_SPEED_MPH",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestRuntimeConfig:
    def test_defaults(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = runtime_config()
        assert config.input_dir == (tmp_path / "data").resolve()
        assert config.export_dir == (tmp_path / "exports").resolve()
        assert config.export_dir.is_dir()
        assert config.profile_file is None

    def test_from_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ROTA_INPUT_DIR", str(tmp_path / "in"))
        monkeypatch.setenv("ROTA_EXPORT_DIR", str(tmp_path / "out"))
        monkeypatch.setenv("ROTA_PROFILE_FILE", str(tmp_path / "profiles.json"))
        config = runtime_config()
        assert config.input_dir == (tmp_path / "in").resolve()
        assert (tmp_path / "out").is_dir()
        assert config.profile_file == (tmp_path / "profiles.json").resolve()

    def test_load_env_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ROTA_DOTENV_MARKER", "placeholder")
        monkeypatch.delenv("ROTA_DOTENV_MARKER")
        env_file = tmp_path / ".env"
        env_file.write_text("ROTA_DOTENV_MARKER=loaded\n", encoding="utf-8")
        load_env(env_file)
        assert os.environ["ROTA_DOTENV_MARKER"] == "loaded"


class TestNumericOverrides:
    def test_attendance_defaults(self):
        config = attendance_config()
        assert config.late_grace_minutes == 5
        assert config.absent_status_code == 1002

    def test_attendance_from_env(self, monkeypatch):
        monkeypatch.setenv("ROTA_LATE_GRACE_MINUTES", "15")
        monkeypatch.setenv("ROTA_ABSENT_STATUS_CODE", "9")
        config = attendance_config()
        assert config.late_grace_minutes == 15
        assert config.absent_status_code == 9

    def test_not_a_number(self, monkeypatch):
        monkeypatch.setenv("ROTA_LATE_GRACE_MINUTES", "soon")
        with pytest.raises(ValueError, match="ROTA_LATE_GRACE_MINUTES"):
            attendance_config()

    def test_negative(self, monkeypatch):
        monkeypatch.setenv("ROTA_LATE_GRACE_MINUTES", "-1")
        with pytest.raises(ValueError):
            attendance_config()

    def test_travel_speed(self, monkeypatch):
        assert round_constraints() is DEFAULT_ROUND_CONSTRAINTS
        monkeypatch.setenv("ROTA_TRAVEL_SPEED_MPH", "30")
        assert round_constraints().travel_speed_mph == 30.0
        assert round_constraints().max_visits_per_round == DEFAULT_ROUND_CONSTRAINTS.max_visits_per_round

    def test_zero_speed_rejected(self, monkeypatch):
        monkeypatch.setenv("ROTA_TRAVEL_SPEED_MPH", "0")
        with pytest.raises(ValueError, match="positive"):
            round_constraints()


class TestProfiles:
    def test_bundled_profiles(self):
        profiles = load_matching_profiles()
        assert {"default", "continuity_first", "rural", "supported_living"} <= set(profiles)

    def test_missing_file(self, tmp_path):
        assert load_matching_profiles(tmp_path / "missing.json") == {}
        assert matching_config("default", tmp_path / "missing.json") == DEFAULT_MATCHING

    def test_unknown_profile(self):
        with pytest.raises(ValueError, match="not found"):
            matching_config("does_not_exist")

    def test_rural_profile(self):
        config = matching_config("rural")
        assert config.travel_thresholds.acceptable == 15
        assert config.travel_speed_mph == 30

    def test_env_speed_overrides_profile(self, monkeypatch):
        monkeypatch.setenv("ROTA_TRAVEL_SPEED_MPH", "12")
        assert matching_config("rural").travel_speed_mph == 12.0

    def test_custom_profile_file(self, tmp_path):
        path = tmp_path / "profiles.json"
        path.write_text(
            json.dumps({"night": {"description": "Night cover", "continuity_baseline": 0.0}}),
            encoding="utf-8",
        )
        assert matching_config("night", path).continuity_baseline == 0.0
        with pytest.raises(ValueError):
            matching_config("rural", path)
