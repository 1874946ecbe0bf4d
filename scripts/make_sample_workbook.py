#!/usr/bin/env python
from __future__ import annotations

import argparse
from pathlib import Path

from openpyxl import Workbook


SUMMARY_ROWS = [
    ["Report", "Generated"],
    ["Quarterly sales", "2024-04-01"],
]

DATA_HEADER = ["Region", "Product", "Units", "Notes"]
DATA_ROWS = [
    ["North", "Widget", 120, "ok"],
    [None, "Gadget", 75, "n/a"],
    [None, "Gizmo", 30, ""],
    ["South", "Widget", 98, "TOTAL"],
    [None, "Gadget", 64, "check"],
]


def main() -> None:
    parser = argparse.ArgumentParser(description="Write a two-sheet sample workbook for trying out rules")
    parser.add_argument("--output", required=True, help="Output path (.xlsx)")
    args = parser.parse_args()

    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)

    workbook = Workbook()
    summary = workbook.active
    summary.title = "Summary"
    for row in SUMMARY_ROWS:
        summary.append(row)

    data = workbook.create_sheet("Data")
    data.append(DATA_HEADER)
    for row in DATA_ROWS:
        data.append(row)
    data.append(["", "", "=SUM(C2:C6)", "formula"])

    workbook.save(output)
    print(f"Sample workbook written to {output}")


if __name__ == "__main__":
    main()
