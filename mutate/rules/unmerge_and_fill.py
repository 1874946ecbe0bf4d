from __future__ import annotations

from typing import TYPE_CHECKING

from mutate.core.schema import UnmergeAndFillParams
from mutate.core.workbook import WorkbookState, cell_at, is_empty, resolve_column, set_cell

if TYPE_CHECKING:  # pragma: no cover
    from mutate.core.engine import ExecutionLog

RULE = "UNMERGE_AND_FILL"


def apply(state: WorkbookState, params: UnmergeAndFillParams, log: "ExecutionLog") -> WorkbookState:
    """Carry the last non-empty value of each column into the blanks after it.

    Only data rows are scanned; the header row is never filled.
    """

    name, grid = state.active(RULE)
    rows = [list(row) for row in grid]

    if params.fill_direction == "down":
        order = range(1, len(rows))
    else:
        order = range(len(rows) - 1, 0, -1)

    columns_filled = 0
    for identifier in params.columns:
        index = resolve_column(grid, identifier)
        if index is None:
            log.warning(f'Column "{identifier}" not found in "{name}", skipping')
            continue

        carry = None
        filled = 0
        for position in order:
            value = cell_at(rows[position], index)
            if not is_empty(value):
                carry = value
            elif carry is not None:
                set_cell(rows[position], index, carry)
                filled += 1

        columns_filled += 1
        log.info(f'Filled {filled} empty cell(s) {params.fill_direction} in column "{identifier}"')

    return state.with_sheet(name, rows).bump(columns=columns_filled)
