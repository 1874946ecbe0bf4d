from __future__ import annotations

from typing import TYPE_CHECKING

from mutate.core.errors import ColumnValidationError
from mutate.core.schema import ValidateColumnsParams
from mutate.core.workbook import WorkbookState, width

if TYPE_CHECKING:  # pragma: no cover
    from mutate.core.engine import ExecutionLog

RULE = "VALIDATE_COLUMNS"


def apply(state: WorkbookState, params: ValidateColumnsParams, log: "ExecutionLog") -> WorkbookState:
    name, grid = state.active(RULE)
    expected = params.num_of_columns
    actual = width(grid)

    if actual == expected:
        log.info(f'Column count of "{name}" validated: {actual}')
        return state

    if params.on_failure == "stop":
        raise ColumnValidationError(expected, actual)

    message = f"Column count mismatch. Expected {expected}, found {actual}"
    if params.on_failure == "notify":
        log.warning(message)
    else:
        log.info(f"{message} (continuing)")
    return state
