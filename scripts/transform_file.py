#!/usr/bin/env python
"""Apply a YAML rule configuration to a local workbook.

Example configuration::

    id: demo
    organizationId: local
    rules:
      - id: r1
        type: SELECT_WORKSHEET
        params: {type: name, value: Data}
      - id: r2
        type: DELETE_COLUMNS
        params: {columns: [D]}
    outputFormat: {type: CSV, delimiter: ","}
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from mutate.core.engine import transform_workbook
from mutate.core.errors import MutateError
from mutate.exporters import encode_sheet, output_file_name
from mutate.infrastructure import load_configuration_file


def main() -> int:
    parser = argparse.ArgumentParser(description="Run transformation rules against a workbook")
    parser.add_argument("--config", required=True, help="YAML configuration file")
    parser.add_argument("--input", required=True, help="Input workbook (.xlsx)")
    parser.add_argument("--output-dir", default=".", help="Directory for the output and the log")
    parser.add_argument("--verbose", action="store_true", help="Echo engine log lines to stderr")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    source = Path(args.input)
    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    try:
        configuration = load_configuration_file(Path(args.config))
        outcome = transform_workbook(source.read_bytes(), configuration.rules)
    except (MutateError, OSError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    log_path = output_dir / f"{source.stem}_transformed.log"
    log_path.write_text("\n".join(outcome.log) + "\n", encoding="utf-8")

    if outcome.error is not None:
        print(f"transformation failed: {outcome.error}", file=sys.stderr)
        print(f"log written to {log_path}", file=sys.stderr)
        return 1

    _, grid = outcome.output_sheet()
    encoded = encode_sheet(grid, configuration.output_format)
    output_path = output_dir / output_file_name(source.name, encoded.extension)
    output_path.write_bytes(encoded.data)

    print(f"{encoded.row_count} rows written to {output_path}")
    print(f"log written to {log_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
