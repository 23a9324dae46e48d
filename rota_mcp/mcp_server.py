"""rota-mcp MCP server.

Exposes tools for attendance classification, carer suitability ranking,
round planning and round export over a CSV snapshot directory.
"""
from __future__ import annotations

import argparse
import os
from datetime import date
from pathlib import Path
from typing import Any

from mcp.server.fastmcp import FastMCP

from rota_core.attendance import ShiftAttendanceRecord, attendance_details
from rota_core.io import load_input, render_rounds_xlsx
from rota_core.matching import (
    MatchingContext,
    MatchingOptions,
    SuitabilityScorer,
    match_unassigned_visits as _match_unassigned_visits,
)
from rota_core.models import RotaSnapshot, VisitType, parse_enum
from rota_core.rounds import plan_rounds, visits_bounds as _visits_bounds

from .config import (
    attendance_config,
    load_env,
    load_matching_profiles,
    matching_config,
    round_constraints,
    runtime_config,
)

mcp = FastMCP(
    "rota-mcp",
    host=os.getenv("HOST", "127.0.0.1"),
    port=int(os.getenv("PORT", "8000")),
    instructions=(
        "Rota assignment assistant for domiciliary care. "
        "Classifies shift attendance, ranks carers for visits, "
        "and groups a day's visits into travel-feasible rounds. "
        "Reads CSV snapshots; never writes back to the record store."
    ),
)

_ENV_FILE: str | None = None


def _load_env() -> None:
    load_env(_ENV_FILE or os.getenv("ROTA_ENV_FILE"))


def _snapshot(input_dir: str | None) -> RotaSnapshot:
    _load_env()
    directory = Path(input_dir) if input_dir else runtime_config().input_dir
    return load_input(directory)


def _scorer(profile_name: str) -> SuitabilityScorer:
    _load_env()
    return SuitabilityScorer(matching_config(profile_name, runtime_config().profile_file))


def _context(snapshot: RotaSnapshot, visit_id: str) -> MatchingContext:
    visit = snapshot.visit(visit_id)
    if visit is None:
        raise ValueError(f"Visit '{visit_id}' not found in snapshot {snapshot.snapshot_id}")
    service_user = snapshot.service_users.get(visit.service_user_id)
    if service_user is None:
        raise ValueError(f"Service user '{visit.service_user_id}' for visit '{visit_id}' not found")
    return MatchingContext.from_snapshot(snapshot, visit, service_user)


def _visit_type(value: str) -> VisitType:
    visit_type = parse_enum(VisitType, value)
    if visit_type is None:
        raise ValueError(f"Unknown visit type '{value}'. Available: {[v.value for v in VisitType]}")
    return visit_type


# -- Profiles & snapshot --

@mcp.tool()
def list_profiles() -> dict[str, Any]:
    """List matching profiles with their descriptions and weight overrides."""
    _load_env()
    profiles = load_matching_profiles(runtime_config().profile_file)
    result = {}
    for name, profile in profiles.items():
        result[name] = {
            "description": profile.get("description", ""),
            "default_care_type": profile.get("default_care_type", "domiciliary"),
            "weights": profile.get("weights", {}),
        }
    return result


@mcp.tool()
def snapshot_summary(input_dir: str | None = None) -> dict[str, Any]:
    """Load a CSV snapshot directory and report record counts and intake warnings."""
    snapshot = _snapshot(input_dir)
    return {
        "snapshot_id": snapshot.snapshot_id,
        "counts": snapshot.counts(),
        "warnings": snapshot.warnings,
    }


# -- Attendance --

@mcp.tool()
def classify_attendance(
    shift_start: str,
    shift_end: str,
    clocked_in: str | None = None,
    clocked_out: str | None = None,
    status_code: int | None = None,
    now: str | None = None,
) -> dict[str, Any]:
    """Classify a shift as scheduled, present, late, worked or absent.

    Timestamps are ISO-8601. ``now`` defaults to the current time.
    """
    _load_env()
    record = ShiftAttendanceRecord(
        shift_start=shift_start,
        shift_end=shift_end,
        clocked_in=clocked_in,
        clocked_out=clocked_out,
        status_code=status_code,
    )
    return attendance_details(record, now, config=attendance_config()).to_dict()


# -- Matching --

@mcp.tool()
def score_match(
    visit_id: str,
    staff_id: str,
    profile_name: str = "default",
    input_dir: str | None = None,
) -> dict[str, Any]:
    """Score one carer for one visit, with the five-part breakdown and warnings."""
    snapshot = _snapshot(input_dir)
    context = _context(snapshot, visit_id)
    staff = snapshot.staff_member(staff_id)
    if staff is None:
        raise ValueError(f"Staff member '{staff_id}' not found in snapshot {snapshot.snapshot_id}")
    result = _scorer(profile_name).score_match(context.visit, context.service_user, staff, context)
    return result.to_dict()


@mcp.tool()
def find_matching_staff(
    visit_id: str,
    limit: int = 10,
    include_unavailable: bool = False,
    include_overtime: bool = False,
    profile_name: str = "default",
    input_dir: str | None = None,
) -> list[dict[str, Any]]:
    """Rank carers for a visit, best first."""
    snapshot = _snapshot(input_dir)
    context = _context(snapshot, visit_id)
    options = MatchingOptions(
        limit=limit,
        include_unavailable=include_unavailable,
        include_overtime=include_overtime,
    )
    return [r.to_dict() for r in _scorer(profile_name).find_matching_staff(context, options)]


@mcp.tool()
def match_unassigned_visits(
    visit_date: str,
    limit: int = 5,
    include_overtime: bool = False,
    profile_name: str = "default",
    input_dir: str | None = None,
) -> dict[str, Any]:
    """Rank carers for every unassigned visit on a date (YYYY-MM-DD)."""
    snapshot = _snapshot(input_dir)
    batch = _match_unassigned_visits(
        snapshot,
        visit_date=date.fromisoformat(visit_date),
        scorer=_scorer(profile_name),
        options=MatchingOptions(limit=limit, include_overtime=include_overtime),
    )
    return batch.to_dict()


# -- Rounds --

@mcp.tool()
def build_rounds(
    visit_date: str,
    visit_type: str,
    input_dir: str | None = None,
) -> dict[str, Any]:
    """Group a day's visits of one type into rounds one carer can work in sequence.

    Returns rounds plus any skipped visit ids and planning warnings.
    """
    snapshot = _snapshot(input_dir)
    plan = plan_rounds(
        snapshot.visits,
        _visit_type(visit_type),
        date.fromisoformat(visit_date),
        service_users=snapshot.service_users,
        constraints=round_constraints(),
    )
    return plan.to_dict()


@mcp.tool()
def visits_bounds(
    visit_date: str,
    visit_type: str | None = None,
    input_dir: str | None = None,
) -> dict[str, Any] | None:
    """Map bounding box (north/south/east/west) of a day's located visits, or null."""
    snapshot = _snapshot(input_dir)
    day = date.fromisoformat(visit_date)
    wanted = _visit_type(visit_type) if visit_type else None
    visits = [
        v
        for v in snapshot.visits
        if v.visit_date == day and not v.is_cancelled and (wanted is None or v.visit_type == wanted)
    ]
    bounds = _visits_bounds(visits, snapshot.service_users)
    return bounds.to_dict() if bounds is not None else None


@mcp.tool()
def export_rounds_xlsx(
    visit_date: str,
    visit_types: list[str] | None = None,
    include_matches: bool = False,
    profile_name: str = "default",
    input_dir: str | None = None,
) -> dict[str, Any]:
    """Plan rounds for a date and write them to an XLSX workbook in the export dir.

    With ``include_matches`` the workbook also ranks carers for unassigned visits.
    """
    snapshot = _snapshot(input_dir)
    day = date.fromisoformat(visit_date)
    types = [_visit_type(t) for t in visit_types] if visit_types else list(VisitType)
    constraints = round_constraints()

    rounds = []
    warnings: list[str] = []
    for visit_type in types:
        plan = plan_rounds(
            snapshot.visits,
            visit_type,
            day,
            service_users=snapshot.service_users,
            constraints=constraints,
        )
        rounds.extend(plan.rounds)
        warnings.extend(plan.warnings)

    matches = None
    if include_matches:
        batch = _match_unassigned_visits(snapshot, visit_date=day, scorer=_scorer(profile_name))
        matches = batch.results
        warnings.extend(batch.warnings)

    target = runtime_config().export_dir / f"rounds-{snapshot.snapshot_id}-{day.isoformat()}.xlsx"
    render_rounds_xlsx(rounds, target, service_users=snapshot.service_users, matches=matches)
    return {
        "path": str(target),
        "rounds": len(rounds),
        "warnings": warnings,
    }


# -- Server entrypoints --

async def _run_http() -> None:
    import uvicorn
    from starlette.middleware.base import BaseHTTPMiddleware
    from starlette.responses import JSONResponse, PlainTextResponse
    from starlette.routing import Route

    api_key = os.getenv("MCP_API_KEY")

    class BearerAuth(BaseHTTPMiddleware):
        async def dispatch(self, request, call_next):
            if request.url.path == "/health":
                return await call_next(request)
            auth = request.headers.get("authorization", "")
            if not auth.startswith("Bearer ") or auth[7:] != api_key:
                return JSONResponse({"error": "unauthorized"}, status_code=401)
            return await call_next(request)

    starlette_app = mcp.streamable_http_app()

    if api_key:
        starlette_app.add_middleware(BearerAuth)

    starlette_app.routes.append(
        Route("/health", lambda r: PlainTextResponse("ok"))
    )

    config = uvicorn.Config(
        starlette_app,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8080")),
        log_level="info",
    )
    await uvicorn.Server(config).serve()


def main() -> None:
    global _ENV_FILE

    parser = argparse.ArgumentParser(description="Run rota-mcp MCP server")
    parser.add_argument("--env-file", default=None, help="Path to .env file")
    parser.add_argument(
        "--transport",
        default=None,
        choices=["stdio", "sse", "streamable-http"],
        help="MCP transport (default: streamable-http when PORT is set, else stdio)",
    )
    args = parser.parse_args()
    _ENV_FILE = args.env_file

    transport = args.transport
    if transport is None:
        transport = "streamable-http" if os.getenv("PORT") else "stdio"

    if transport == "streamable-http":
        import anyio
        anyio.run(_run_http)
    else:
        mcp.run(transport=transport)


if __name__ == "__main__":
    main()
