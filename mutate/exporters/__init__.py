"""Output encoders."""

from .delimited import export_delimited
from .output import DefaultOutputEncoder, EncodedOutput, OutputEncoder, encode_sheet, output_file_name
from .records_json import export_json_records

__all__ = [
    "DefaultOutputEncoder",
    "EncodedOutput",
    "OutputEncoder",
    "encode_sheet",
    "export_delimited",
    "export_json_records",
    "output_file_name",
]
