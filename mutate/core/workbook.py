"""In-memory workbook state threaded through the rule fold."""
from __future__ import annotations

import re
import zipfile
from dataclasses import dataclass, field, replace
from io import BytesIO
from typing import Any, Iterable, Mapping

from openpyxl import load_workbook
from openpyxl.utils import column_index_from_string, get_column_letter
from openpyxl.utils.exceptions import InvalidFileException

from mutate.core.errors import TransformError

Grid = list[list[Any]]

_LETTERS_RE = re.compile(r"^[A-Za-z]{1,3}$")


@dataclass(frozen=True, slots=True)
class StateCounters:
    rows_processed: int = 0
    columns_processed: int = 0
    sheets_processed: int = 0


@dataclass(frozen=True, slots=True)
class WorkbookState:
    """Sheets keyed by name in workbook order.

    Rules never mutate a state in place; every helper below returns a copy.
    """

    sheets: dict[str, Grid]
    selected_sheet: str | None = None
    history: tuple[str, ...] = ()
    metadata: StateCounters = field(default_factory=StateCounters)

    def __post_init__(self) -> None:
        if self.selected_sheet is not None and self.selected_sheet not in self.sheets:
            raise ValueError(f"selected sheet {self.selected_sheet!r} is not in the workbook")

    @classmethod
    def from_sheets(cls, sheets: Mapping[str, Iterable[Iterable[Any]]]) -> "WorkbookState":
        return cls(sheets={name: [list(row) for row in rows] for name, rows in sheets.items()})

    @property
    def sheet_names(self) -> list[str]:
        return list(self.sheets)

    def active_sheet_name(self) -> str | None:
        if self.selected_sheet is not None:
            return self.selected_sheet
        return next(iter(self.sheets), None)

    def active(self, rule: str) -> tuple[str, Grid]:
        name = self.active_sheet_name()
        if name is None:
            raise TransformError(rule, "Workbook has no worksheets")
        return name, self.sheets[name]

    def with_sheet(self, name: str, grid: Grid) -> "WorkbookState":
        sheets = dict(self.sheets)
        sheets[name] = grid
        return replace(self, sheets=sheets)

    def select(self, name: str) -> "WorkbookState":
        return replace(self, selected_sheet=name, history=(*self.history, name))

    def bump(self, *, rows: int = 0, columns: int = 0, sheets: int = 0) -> "WorkbookState":
        counters = self.metadata
        return replace(
            self,
            metadata=StateCounters(
                rows_processed=counters.rows_processed + rows,
                columns_processed=counters.columns_processed + columns,
                sheets_processed=counters.sheets_processed + sheets,
            ),
        )


# ----------------------------------------------------------------------
# cell and column helpers
# ----------------------------------------------------------------------
def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    return False


def cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def width(grid: Grid) -> int:
    return max((len(row) for row in grid), default=0)


def cell_at(row: list[Any], index: int) -> Any:
    return row[index] if index < len(row) else None


def set_cell(row: list[Any], index: int, value: Any) -> None:
    if index >= len(row):
        row.extend([None] * (index + 1 - len(row)))
    row[index] = value


def is_blank_row(row: Iterable[Any]) -> bool:
    return all(is_empty(value) for value in row)


def column_letter(index: int) -> str:
    """0-based column index to spreadsheet letters."""

    return get_column_letter(index + 1)


def resolve_column(grid: Grid, identifier: str) -> int | None:
    """Resolve a header name, column letter or 1-based number to a 0-based index."""

    ident = str(identifier).strip()
    if not ident:
        return None

    if grid:
        for position, value in enumerate(grid[0]):
            if not is_empty(value) and cell_text(value).strip() == ident:
                return position

    index: int | None = None
    if _LETTERS_RE.match(ident):
        index = column_index_from_string(ident.upper()) - 1
    elif ident.isdigit() and int(ident) >= 1:
        index = int(ident) - 1

    if index is None or index >= width(grid):
        return None
    return index


# ----------------------------------------------------------------------
# decoding
# ----------------------------------------------------------------------
def _trim_grid(rows: Iterable[Iterable[Any]]) -> Grid:
    grid = [list(row) for row in rows]
    while grid and is_blank_row(grid[-1]):
        grid.pop()
    return grid


def parse_workbook(data: bytes, *, evaluate_formulas: bool = True) -> WorkbookState:
    """Decode XLSX bytes into a :class:`WorkbookState`.

    With ``evaluate_formulas`` the cached results of formula cells are read;
    otherwise the formula text itself is kept.
    """

    try:
        workbook = load_workbook(BytesIO(data), data_only=evaluate_formulas)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError) as exc:
        raise TransformError("parse", f"Unable to read workbook: {exc}") from exc

    try:
        sheets = {
            worksheet.title: _trim_grid(worksheet.iter_rows(values_only=True))
            for worksheet in workbook.worksheets
        }
    finally:
        workbook.close()

    if not sheets:
        raise TransformError("parse", "Workbook has no worksheets")
    return WorkbookState(sheets=sheets)


__all__ = [
    "Grid",
    "StateCounters",
    "WorkbookState",
    "is_empty",
    "cell_text",
    "width",
    "cell_at",
    "set_cell",
    "is_blank_row",
    "column_letter",
    "resolve_column",
    "parse_workbook",
]
