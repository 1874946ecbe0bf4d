from __future__ import annotations

import io
from datetime import date, datetime, time
from typing import Any

import pandas as pd

from mutate.core.workbook import Grid, cell_text, is_blank_row, width


def _text(value: Any) -> str:
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return cell_text(value)


def export_delimited(grid: Grid, *, delimiter: str = ",", encoding: str = "utf-8") -> bytes:
    """Serialize a sheet as delimited text; blank rows are dropped."""

    rows = [row for row in grid if not is_blank_row(row)]
    if not rows:
        return b""

    columns = width(rows)
    padded = [[_text(row[index]) if index < len(row) else "" for index in range(columns)] for row in rows]
    df = pd.DataFrame(padded, dtype=object)

    buffer = io.StringIO()
    df.to_csv(buffer, sep=delimiter, index=False, header=False, lineterminator="\n")
    return buffer.getvalue().encode(encoding)
