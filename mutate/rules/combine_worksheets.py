from __future__ import annotations

from typing import TYPE_CHECKING, Any

from mutate.core.errors import TransformError, WorksheetNotFoundError
from mutate.core.schema import CombineWorksheetsParams
from mutate.core.workbook import Grid, WorkbookState, cell_at, cell_text, is_blank_row, is_empty

if TYPE_CHECKING:  # pragma: no cover
    from mutate.core.engine import ExecutionLog

RULE = "COMBINE_WORKSHEETS"
BASE_NAME = "Combined"


def unique_sheet_name(existing: dict[str, Grid] | list[str], base: str = BASE_NAME) -> str:
    name = base
    counter = 1
    while name in existing:
        name = f"{base}_{counter}"
        counter += 1
    return name


def _non_blank(grid: Grid) -> Grid:
    return [list(row) for row in grid if not is_blank_row(row)]


def _append(grids: list[Grid]) -> Grid:
    combined: Grid = []
    for rows in (_non_blank(grid) for grid in grids):
        # the first sheet with any rows supplies the header
        combined.extend(rows[1:] if combined else rows)
    return combined


def _header_keys(header: list[Any]) -> list[str]:
    return [cell_text(value).strip() if not is_empty(value) else f"column_{index + 1}" for index, value in enumerate(header)]


def _merge(grids: list[Grid]) -> Grid:
    headers: list[str] = []
    records: list[dict[str, Any]] = []
    for grid in grids:
        rows = _non_blank(grid)
        if not rows:
            continue
        keys = _header_keys(rows[0])
        for key in keys:
            if key not in headers:
                headers.append(key)
        for row in rows[1:]:
            record: dict[str, Any] = {}
            for index, key in enumerate(keys):
                record.setdefault(key, cell_at(row, index))
            records.append(record)

    combined: Grid = [list(headers)]
    combined.extend([record.get(key) for key in headers] for record in records)
    return combined


def apply(state: WorkbookState, params: CombineWorksheetsParams, log: "ExecutionLog") -> WorkbookState:
    sources = list(params.source_sheets) or list(dict.fromkeys(state.history))
    if not sources:
        raise TransformError(RULE, "No source sheets provided and no prior selections found")

    for sheet_name in sources:
        if sheet_name not in state.sheets:
            raise WorksheetNotFoundError(RULE, sheet_name, state.sheet_names)

    grids = [state.sheets[sheet_name] for sheet_name in sources]
    combined = _append(grids) if params.operation == "append" else _merge(grids)
    target = unique_sheet_name(state.sheets)

    log.info(
        f'Combined {len(sources)} worksheet(s) ({", ".join(sources)}) by {params.operation} '
        f'into "{target}" with {len(combined)} row(s)'
    )
    return state.with_sheet(target, combined).select(target).bump(sheets=len(sources))
