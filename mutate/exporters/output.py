"""Output artifact encoding for transformed sheets."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePath
from typing import Protocol

from mutate.core.errors import TransformError
from mutate.core.schema import OutputFormat
from mutate.core.workbook import Grid, is_blank_row, width

from .delimited import export_delimited
from .records_json import export_json_records


@dataclass(slots=True)
class EncodedOutput:
    data: bytes
    extension: str
    content_type: str
    row_count: int
    column_count: int

    @property
    def size(self) -> int:
        return len(self.data)


class OutputEncoder(Protocol):
    """Contract for turning a sheet into an output artifact."""

    def encode(self, grid: Grid, output_format: OutputFormat) -> EncodedOutput: ...


class DefaultOutputEncoder:
    """CSV/TSV and JSON encoder backed by pandas."""

    def encode(self, grid: Grid, output_format: OutputFormat) -> EncodedOutput:
        rows = [row for row in grid if not is_blank_row(row)]
        try:
            if output_format.type == "JSON":
                data = export_json_records(rows, encoding=output_format.encoding)
                return EncodedOutput(
                    data=data,
                    extension="json",
                    content_type="application/json",
                    row_count=max(len(rows) - 1, 0),
                    column_count=width(rows),
                )

            data = export_delimited(rows, delimiter=output_format.delimiter, encoding=output_format.encoding)
        except LookupError as exc:
            raise TransformError("output", f"Unsupported encoding {output_format.encoding!r}") from exc

        tab_separated = output_format.delimiter == "\t"
        return EncodedOutput(
            data=data,
            extension="tsv" if tab_separated else "csv",
            content_type="text/tab-separated-values" if tab_separated else "text/csv",
            row_count=len(rows),
            column_count=width(rows),
        )


def encode_sheet(grid: Grid, output_format: OutputFormat, encoder: OutputEncoder | None = None) -> EncodedOutput:
    return (encoder or DefaultOutputEncoder()).encode(grid, output_format)


def output_file_name(input_name: str, extension: str) -> str:
    stem = PurePath(input_name).stem or "output"
    return f"{stem}_transformed.{extension}"
