"""Input/output layer for rota snapshots and round exports.

Public API:
    load_input(directory)             -- read CSV input dir -> RotaSnapshot
    render_rounds_xlsx(rounds, path)  -- write Rounds / Round Visits / Matches workbook
"""

from .reader import load_input

__all__ = [
    "load_input",
    "render_rounds_xlsx",
]


# Lazy import for the optional heavy dependency (openpyxl).
def render_rounds_xlsx(*args, **kwargs):
    from .xlsx import render_rounds_xlsx as _fn
    return _fn(*args, **kwargs)
