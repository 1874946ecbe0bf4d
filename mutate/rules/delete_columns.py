from __future__ import annotations

from typing import TYPE_CHECKING

from mutate.core.schema import DeleteColumnsParams
from mutate.core.workbook import WorkbookState, column_letter, resolve_column

if TYPE_CHECKING:  # pragma: no cover
    from mutate.core.engine import ExecutionLog

RULE = "DELETE_COLUMNS"


def apply(state: WorkbookState, params: DeleteColumnsParams, log: "ExecutionLog") -> WorkbookState:
    name, grid = state.active(RULE)
    if not params.columns:
        log.info("No columns specified for deletion, skipping")
        return state

    # resolve everything against the original layout before anything shifts
    doomed: set[int] = set()
    for identifier in params.columns:
        index = resolve_column(grid, identifier)
        if index is None:
            log.warning(f'Column "{identifier}" not found in "{name}", skipping')
            continue
        doomed.add(index)

    if not doomed:
        log.info("No valid columns resolved, skipping")
        return state

    rows = [[value for index, value in enumerate(row) if index not in doomed] for row in grid]
    letters = ", ".join(column_letter(index) for index in sorted(doomed))
    log.info(f'Deleted {len(doomed)} column(s) from "{name}": {letters}')
    return state.with_sheet(name, rows).bump(columns=len(doomed))
