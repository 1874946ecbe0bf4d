from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, Callable

from mutate.core.errors import TransformError
from mutate.core.schema import DeleteRowsParams, RowCondition
from mutate.core.workbook import Grid, WorkbookState, cell_at, cell_text, is_blank_row, is_empty, resolve_column

if TYPE_CHECKING:  # pragma: no cover
    from mutate.core.engine import ExecutionLog

RULE = "DELETE_ROWS"


def _cell_matcher(condition: RowCondition) -> Callable[[Any], bool]:
    if condition.type == "empty":
        return is_empty

    if condition.type == "contains":
        needle = (condition.value or "").lower()
        return lambda value: needle in cell_text(value).lower()

    regex = re.compile(condition.value or "", re.IGNORECASE)
    return lambda value: regex.search(cell_text(value)) is not None


def _rows_matching(grid: Grid, condition: RowCondition) -> set[int]:
    matches = _cell_matcher(condition)
    column: int | None = None
    if condition.column:
        column = resolve_column(grid, condition.column)
        if column is None:
            raise TransformError(RULE, f'Column "{condition.column}" not found')

    selected: set[int] = set()
    for position in range(1, len(grid)):
        row = grid[position]
        if column is not None:
            hit = matches(cell_at(row, column))
        elif condition.type == "empty":
            hit = is_blank_row(row)
        else:
            hit = any(matches(value) for value in row)
        if hit:
            selected.add(position)
    return selected


def apply(state: WorkbookState, params: DeleteRowsParams, log: "ExecutionLog") -> WorkbookState:
    name, grid = state.active(RULE)

    if params.method == "rows":
        requested = sorted(set(params.rows or []))
        out_of_range = [number for number in requested if number > len(grid)]
        if out_of_range:
            log.warning(f'Rows {out_of_range} are beyond the end of "{name}" ({len(grid)} rows)')
        targets = {number - 1 for number in requested if number <= len(grid)}
    else:
        assert params.condition is not None
        targets = _rows_matching(grid, params.condition)
        where = f'column "{params.condition.column}"' if params.condition.column else "any column"
        log.info(f"Matching rows where {where} is {params.condition.type} {params.condition.value or ''}".rstrip())

    rows = [list(row) for position, row in enumerate(grid) if position not in targets]
    log.info(f'Deleted {len(targets)} row(s) from "{name}"')
    return state.with_sheet(name, rows).bump(rows=len(targets))
