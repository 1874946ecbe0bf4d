"""Helpers shared by the test modules."""
from __future__ import annotations

from io import BytesIO
from typing import Any

import httpx
from openpyxl import Workbook


def workbook_bytes(sheets: dict[str, list[list[Any]]]) -> bytes:
    workbook = Workbook()
    workbook.remove(workbook.active)
    for name, rows in sheets.items():
        worksheet = workbook.create_sheet(name)
        for row in rows:
            worksheet.append(row)
    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def rule(kind: str, rule_id: str | None = None, **params: Any) -> dict[str, Any]:
    return {"id": rule_id or f"r-{kind.lower()}", "type": kind, "params": params}


DATA_SHEET = [
    ["A", "B", "C"],
    [1, 2, 3],
    [4, 5, 6],
    [7, 8, 9],
    [10, 11, 12],
]

TWO_SHEETS = {
    "Summary": [["Report", "Generated"], ["Quarterly", "2024-04-01"]],
    "Data": DATA_SHEET,
}


class Recorder:
    """Mock webhook destination answering with a scripted sequence of status codes."""

    def __init__(self, *statuses: int) -> None:
        self.statuses = list(statuses) or [200]
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        return httpx.Response(status, text="ok" if status < 300 else "nope")
