"""Rule appliers keyed by rule kind.

Every applier has the signature ``apply(state, params, log) -> WorkbookState``
and returns a new state without touching the one it was given.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable

from mutate.core.errors import TransformError
from mutate.core.workbook import WorkbookState

from . import (
    combine_worksheets,
    delete_columns,
    delete_rows,
    evaluate_formulas,
    replace_characters,
    select_worksheet,
    unmerge_and_fill,
    validate_columns,
)

if TYPE_CHECKING:  # pragma: no cover
    from mutate.core.engine import ExecutionLog

Applier = Callable[[WorkbookState, Any, "ExecutionLog"], WorkbookState]

APPLIERS: dict[str, Applier] = {
    "SELECT_WORKSHEET": select_worksheet.apply,
    "VALIDATE_COLUMNS": validate_columns.apply,
    "UNMERGE_AND_FILL": unmerge_and_fill.apply,
    "DELETE_ROWS": delete_rows.apply,
    "DELETE_COLUMNS": delete_columns.apply,
    "COMBINE_WORKSHEETS": combine_worksheets.apply,
    "EVALUATE_FORMULAS": evaluate_formulas.apply,
    "REPLACE_CHARACTERS": replace_characters.apply,
}


def get_applier(kind: str) -> Applier:
    try:
        return APPLIERS[kind]
    except KeyError as exc:
        raise TransformError(kind, "Unsupported rule type") from exc


__all__ = ["APPLIERS", "Applier", "get_applier"]
