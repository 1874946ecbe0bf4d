from __future__ import annotations

from typing import TYPE_CHECKING

from mutate.core.schema import ReplaceCharactersParams, Replacement
from mutate.core.workbook import Grid, WorkbookState, cell_text, is_empty, resolve_column

if TYPE_CHECKING:  # pragma: no cover
    from mutate.core.engine import ExecutionLog

RULE = "REPLACE_CHARACTERS"


def _target_columns(grid: Grid, replacement: Replacement, log: "ExecutionLog") -> set[int] | None:
    if replacement.scope != "specific_columns":
        return None
    indices: set[int] = set()
    for identifier in replacement.columns or []:
        index = resolve_column(grid, identifier)
        if index is None:
            log.warning(f'Column "{identifier}" not found, skipping')
            continue
        indices.add(index)
    return indices


def _replace_in(rows: Grid, replacement: Replacement, columns: set[int] | None) -> int:
    row_numbers = set(replacement.rows or []) if replacement.scope == "specific_rows" else None
    changed = 0
    for position, row in enumerate(rows):
        if row_numbers is not None and position + 1 not in row_numbers:
            continue
        for index, value in enumerate(row):
            if columns is not None and index not in columns:
                continue
            if is_empty(value):
                continue
            original = value if isinstance(value, str) else cell_text(value)
            updated = original.replace(replacement.find, replacement.replace)
            if updated != original:
                row[index] = updated
                changed += 1
    return changed


def apply(state: WorkbookState, params: ReplaceCharactersParams, log: "ExecutionLog") -> WorkbookState:
    name, grid = state.active(RULE)
    rows = [list(row) for row in grid]

    total = 0
    for replacement in params.replacements:
        # columns resolve against the header as it stood before this rule
        columns = _target_columns(grid, replacement, log)
        changed = _replace_in(rows, replacement, columns)
        total += changed
        log.info(f'Replaced "{replacement.find}" with "{replacement.replace}" in {changed} cell(s) ({replacement.scope})')

    log.info(f'Replaced characters in {total} cell(s) of "{name}"')
    return state.with_sheet(name, rows)
