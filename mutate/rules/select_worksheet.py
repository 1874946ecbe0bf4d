from __future__ import annotations

import re
from typing import TYPE_CHECKING

from mutate.core.errors import TransformError, WorksheetNotFoundError
from mutate.core.schema import SelectWorksheetParams
from mutate.core.workbook import WorkbookState

if TYPE_CHECKING:  # pragma: no cover
    from mutate.core.engine import ExecutionLog

RULE = "SELECT_WORKSHEET"


def _find_sheet(names: list[str], params: SelectWorksheetParams) -> str | None:
    if params.type == "name":
        return params.value if params.value in names else None

    if params.type == "index":
        raw = params.value.strip()
        if not raw.lstrip("-").isdigit():
            raise TransformError(RULE, f"Sheet index must be an integer, got {params.value!r}")
        index = int(raw)
        if 0 <= index < len(names):
            return names[index]
        return None

    regex = re.compile(params.value, re.IGNORECASE)
    return next((name for name in names if regex.search(name)), None)


def apply(state: WorkbookState, params: SelectWorksheetParams, log: "ExecutionLog") -> WorkbookState:
    names = state.sheet_names
    target = _find_sheet(names, params)
    if target is None:
        raise WorksheetNotFoundError(RULE, params.value, names)

    log.info(f'Selected worksheet "{target}" by {params.type} "{params.value}"')
    return state.select(target).bump(sheets=1)
