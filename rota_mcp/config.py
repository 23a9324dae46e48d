from __future__ import annotations

import json
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from rota_core.settings import (
    DEFAULT_ATTENDANCE,
    DEFAULT_MATCHING,
    DEFAULT_ROUND_CONSTRAINTS,
    AttendanceConfig,
    MatchingConfig,
    RoundConstraints,
    matching_config_from_dict,
)


@dataclass(frozen=True)
class RuntimeConfig:
    input_dir: Path
    export_dir: Path
    profile_file: Path | None


def load_env(dotenv_path: str | Path | None = None) -> None:
    path = Path(dotenv_path) if dotenv_path else None
    if path and path.exists():
        load_dotenv(path)
        return
    load_dotenv()


def runtime_config() -> RuntimeConfig:
    input_dir = Path(os.getenv("ROTA_INPUT_DIR", "./data")).expanduser().resolve()
    export_dir = Path(os.getenv("ROTA_EXPORT_DIR", "./exports")).expanduser().resolve()
    profile_env = os.getenv("ROTA_PROFILE_FILE", "").strip()
    profile_file = Path(profile_env).expanduser().resolve() if profile_env else None
    export_dir.mkdir(parents=True, exist_ok=True)
    return RuntimeConfig(input_dir=input_dir, export_dir=export_dir, profile_file=profile_file)


def _env_number(name: str, cast: type[int] | type[float]) -> int | float | None:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    try:
        value = cast(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc
    if value < 0:
        raise ValueError(f"{name} must not be negative, got {raw!r}")
    return value


def attendance_config() -> AttendanceConfig:
    grace = _env_number("ROTA_LATE_GRACE_MINUTES", int)
    absent = _env_number("ROTA_ABSENT_STATUS_CODE", int)
    return AttendanceConfig(
        late_grace_minutes=DEFAULT_ATTENDANCE.late_grace_minutes if grace is None else int(grace),
        absent_status_code=DEFAULT_ATTENDANCE.absent_status_code if absent is None else int(absent),
    )


def _travel_speed() -> float | None:
    speed = _env_number("ROTA_TRAVEL_SPEED_MPH", float)
    if speed is not None and speed <= 0:
        raise ValueError("ROTA_TRAVEL_SPEED_MPH must be positive")
    return None if speed is None else float(speed)


def round_constraints() -> RoundConstraints:
    speed = _travel_speed()
    if speed is None:
        return DEFAULT_ROUND_CONSTRAINTS
    return replace(DEFAULT_ROUND_CONSTRAINTS, travel_speed_mph=speed)


def load_matching_profiles(profile_file: Path | None = None) -> dict[str, Any]:
    if profile_file is None:
        profile_file = Path(__file__).resolve().parent.parent / "config" / "matching_profiles.json"
    if not profile_file.exists():
        return {}
    with profile_file.open("r", encoding="utf-8") as fh:
        return json.load(fh)


def matching_config(profile_name: str = "default", profile_file: Path | None = None) -> MatchingConfig:
    """Build the scorer configuration for a named profile.

    ``default`` resolves even when no profile file exists. The travel speed
    environment override applies on top of any profile.
    """
    profiles = load_matching_profiles(profile_file)
    if profile_name not in profiles and profile_name != "default":
        available = sorted(profiles)
        raise ValueError(f"Profile '{profile_name}' not found. Available: {available}")

    config = matching_config_from_dict(profiles.get(profile_name), DEFAULT_MATCHING)
    speed = _travel_speed()
    if speed is not None:
        config = replace(config, travel_speed_mph=speed)
    return config
