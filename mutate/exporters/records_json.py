from __future__ import annotations

from datetime import date, datetime, time
from typing import Any

import pandas as pd

from mutate.core.workbook import Grid, cell_at, cell_text, is_blank_row, is_empty, width


def _headers(header: list[Any], columns: int) -> list[str]:
    names: list[str] = []
    seen: dict[str, int] = {}
    for index in range(columns):
        value = cell_at(header, index)
        name = cell_text(value).strip() if not is_empty(value) else f"column_{index + 1}"
        if name in seen:
            seen[name] += 1
            name = f"{name}_{seen[name]}"
        else:
            seen[name] = 0
        names.append(name)
    return names


def _plain(value: Any) -> Any:
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return value


def export_json_records(grid: Grid, *, encoding: str = "utf-8") -> bytes:
    """Serialize a sheet as a JSON array of objects keyed by the header row."""

    rows = [row for row in grid if not is_blank_row(row)]
    if not rows:
        return "[]".encode(encoding)

    columns = width(rows)
    headers = _headers(rows[0], columns)
    body = [[_plain(cell_at(row, index)) for index in range(columns)] for row in rows[1:]]
    df = pd.DataFrame(body, columns=headers, dtype=object)
    return df.to_json(orient="records", force_ascii=False).encode(encoding)
