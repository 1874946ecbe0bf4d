from __future__ import annotations

from typing import TYPE_CHECKING

from mutate.core.schema import EvaluateFormulasParams
from mutate.core.workbook import WorkbookState

if TYPE_CHECKING:  # pragma: no cover
    from mutate.core.engine import ExecutionLog


def apply(state: WorkbookState, params: EvaluateFormulasParams, log: "ExecutionLog") -> WorkbookState:
    # the flag is read when the workbook is decoded; nothing changes here
    if params.enabled:
        log.info("Formula evaluation enabled (cached results are used)")
    else:
        log.info("Formula evaluation disabled (formula text is kept)")
    return state
