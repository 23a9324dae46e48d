"""Render planned rounds (and optional match rankings) to an XLSX workbook."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

from rota_core.matching import MatchResult
from rota_core.models import ServiceUser
from rota_core.rounds import Round

from .schemas import MATCHES_COLS, ROUND_VISITS_COLS, ROUNDS_COLS, fmt_bool, pipe_join


def _get_openpyxl():
    try:
        from openpyxl import Workbook
        from openpyxl.styles import Font, PatternFill
        return Workbook, Font, PatternFill
    except ImportError as exc:
        raise ImportError("openpyxl is required for XLSX export: pip install openpyxl") from exc


def _style_headers(worksheets):
    """Apply bold + blue fill to header row of each worksheet."""
    _, Font, PatternFill = _get_openpyxl()
    header_font = Font(bold=True)
    header_fill = PatternFill(start_color="D9E1F2", end_color="D9E1F2", fill_type="solid")
    for ws in worksheets:
        for cell in ws[1]:
            cell.font = header_font
            cell.fill = header_fill
        ws.freeze_panes = "A2"


def _round_row(r: Round) -> dict[str, Any]:
    return {
        "round_id": r.id,
        "name": r.name,
        "round_type": r.round_type.value,
        "date": r.visit_date.isoformat(),
        "start_time": r.start_time or "",
        "end_time": r.end_time or "",
        "visits": len(r.visits),
        "service_users": r.service_user_count,
        "visit_minutes": r.total_visit_minutes,
        "travel_minutes": r.total_travel_minutes,
        "travel_miles": round(r.total_travel_miles, 2),
        "staff_id": r.staff_id or "",
        "fully_assigned": fmt_bool(r.is_fully_assigned),
        "warnings": pipe_join(list(r.warnings)),
    }


def _match_row(visit_id: str, rank: int, m: MatchResult) -> dict[str, Any]:
    return {
        "visit_id": visit_id,
        "rank": rank,
        "staff_id": m.staff_id,
        "staff_name": m.staff_name,
        "score": m.score,
        **m.breakdown.to_dict(),
        "available": fmt_bool(m.is_available),
        "has_skills": fmt_bool(m.has_required_skills),
        "warnings": pipe_join(m.warnings),
    }


def render_rounds_xlsx(
    rounds: Sequence[Round],
    path: Path | str,
    *,
    service_users: Mapping[str, ServiceUser] | None = None,
    matches: Mapping[str, Sequence[MatchResult]] | None = None,
) -> Path:
    """Render rounds to a multi-sheet XLSX workbook.

    Sheets: Rounds (one row per round), Round Visits (one row per stop), and
    Matches when ranked candidates are passed in.

    Returns the path to the written file.
    """
    Workbook, _, _ = _get_openpyxl()
    path = Path(path)
    names = {sid: su.full_name for sid, su in (service_users or {}).items()}

    wb = Workbook()
    all_sheets = []

    # --- Rounds sheet ---
    ws_rounds = wb.active
    ws_rounds.title = "Rounds"
    ws_rounds.append(ROUNDS_COLS)
    for r in rounds:
        row = _round_row(r)
        ws_rounds.append([row.get(c, "") for c in ROUNDS_COLS])
    all_sheets.append(ws_rounds)

    # --- Round Visits sheet ---
    ws_visits = wb.create_sheet("Round Visits")
    ws_visits.append(ROUND_VISITS_COLS)
    for r in rounds:
        for seq, v in enumerate(r.visits, 1):
            ws_visits.append([
                r.id,
                seq,
                v.id,
                v.service_user_id,
                names.get(v.service_user_id, ""),
                v.start,
                v.end,
                v.duration if v.duration is not None else "",
                v.staff_id or "",
            ])
    all_sheets.append(ws_visits)

    # --- Matches sheet (optional) ---
    if matches:
        ws_matches = wb.create_sheet("Matches")
        ws_matches.append(MATCHES_COLS)
        for visit_id, ranked in matches.items():
            for rank, m in enumerate(ranked, 1):
                row = _match_row(visit_id, rank, m)
                ws_matches.append([row.get(c, "") for c in MATCHES_COLS])
        all_sheets.append(ws_matches)

    _style_headers(all_sheets)

    path.parent.mkdir(parents=True, exist_ok=True)
    wb.save(str(path))
    return path
