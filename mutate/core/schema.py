"""Wire models: transformation rules, configurations and message payloads.

Rules are decoded into one closed model per rule kind so that unknown kinds or
misshapen parameters are rejected before the engine ever runs.
"""
from __future__ import annotations

import base64
import binascii
import re
from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from mutate.core.errors import RuleDecodeError, TransformError


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RuleParams(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        frozen=True,
    )


def _check_pattern(value: str) -> str:
    try:
        re.compile(value)
    except re.error as exc:
        raise ValueError(f"invalid regular expression {value!r}: {exc}") from exc
    return value


# ----------------------------------------------------------------------
# rule parameters
# ----------------------------------------------------------------------
class SelectWorksheetParams(RuleParams):
    type: Literal["name", "pattern", "index"] = "name"
    value: str

    @field_validator("value", mode="before")
    @classmethod
    def _coerce_index(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @model_validator(mode="after")
    def _check_value(self) -> "SelectWorksheetParams":
        if self.type == "pattern":
            _check_pattern(self.value)
        return self


class ValidateColumnsParams(RuleParams):
    num_of_columns: int = Field(ge=0)
    on_failure: Literal["stop", "notify", "continue"] = "stop"


class UnmergeAndFillParams(RuleParams):
    columns: list[str] = Field(min_length=1)
    fill_direction: Literal["down", "up"] = "down"


class RowCondition(RuleParams):
    type: Literal["contains", "empty", "pattern"]
    column: str | None = None
    value: str | None = None

    @model_validator(mode="after")
    def _check_value(self) -> "RowCondition":
        if self.type in {"contains", "pattern"} and not self.value:
            raise ValueError(f"condition type {self.type!r} requires a value")
        if self.type == "pattern" and self.value:
            _check_pattern(self.value)
        return self


class DeleteRowsParams(RuleParams):
    method: Literal["rows", "condition"]
    rows: list[Annotated[int, Field(ge=1)]] | None = None
    condition: RowCondition | None = None

    @model_validator(mode="after")
    def _check_method(self) -> "DeleteRowsParams":
        if self.method == "rows" and not self.rows:
            raise ValueError("method 'rows' requires a non-empty rows list")
        if self.method == "condition" and self.condition is None:
            raise ValueError("method 'condition' requires a condition")
        return self


class DeleteColumnsParams(RuleParams):
    columns: list[str] = Field(default_factory=list)


class CombineWorksheetsParams(RuleParams):
    source_sheets: list[str] = Field(default_factory=list)
    operation: Literal["append", "merge"] = "append"


class EvaluateFormulasParams(RuleParams):
    enabled: bool = True


class Replacement(RuleParams):
    find: str = Field(min_length=1)
    replace: str = ""
    scope: Literal["all", "specific_columns", "specific_rows"] = "all"
    columns: list[str] | None = None
    rows: list[Annotated[int, Field(ge=1)]] | None = None

    @model_validator(mode="after")
    def _check_scope(self) -> "Replacement":
        if self.scope == "specific_columns" and not self.columns:
            raise ValueError("scope 'specific_columns' requires columns")
        if self.scope == "specific_rows" and not self.rows:
            raise ValueError("scope 'specific_rows' requires rows")
        return self


class ReplaceCharactersParams(RuleParams):
    replacements: list[Replacement] = Field(min_length=1)

    @model_validator(mode="before")
    @classmethod
    def _upgrade_legacy_shape(cls, data: Any) -> Any:
        # older configurations stored a single {search, replace, columns?}
        if isinstance(data, dict) and "replacements" not in data and "search" in data:
            columns = data.get("columns") or None
            return {
                "replacements": [
                    {
                        "find": data.get("search"),
                        "replace": data.get("replace") or "",
                        "scope": "specific_columns" if columns else "all",
                        "columns": columns,
                    }
                ]
            }
        return data


# ----------------------------------------------------------------------
# rules
# ----------------------------------------------------------------------
class BaseRule(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str


class SelectWorksheetRule(BaseRule):
    type: Literal["SELECT_WORKSHEET"] = "SELECT_WORKSHEET"
    params: SelectWorksheetParams


class ValidateColumnsRule(BaseRule):
    type: Literal["VALIDATE_COLUMNS"] = "VALIDATE_COLUMNS"
    params: ValidateColumnsParams


class UnmergeAndFillRule(BaseRule):
    type: Literal["UNMERGE_AND_FILL"] = "UNMERGE_AND_FILL"
    params: UnmergeAndFillParams


class DeleteRowsRule(BaseRule):
    type: Literal["DELETE_ROWS"] = "DELETE_ROWS"
    params: DeleteRowsParams


class DeleteColumnsRule(BaseRule):
    type: Literal["DELETE_COLUMNS"] = "DELETE_COLUMNS"
    params: DeleteColumnsParams


class CombineWorksheetsRule(BaseRule):
    type: Literal["COMBINE_WORKSHEETS"] = "COMBINE_WORKSHEETS"
    params: CombineWorksheetsParams


class EvaluateFormulasRule(BaseRule):
    type: Literal["EVALUATE_FORMULAS"] = "EVALUATE_FORMULAS"
    params: EvaluateFormulasParams


class ReplaceCharactersRule(BaseRule):
    type: Literal["REPLACE_CHARACTERS"] = "REPLACE_CHARACTERS"
    params: ReplaceCharactersParams


Rule = Annotated[
    Union[
        SelectWorksheetRule,
        ValidateColumnsRule,
        UnmergeAndFillRule,
        DeleteRowsRule,
        DeleteColumnsRule,
        CombineWorksheetsRule,
        EvaluateFormulasRule,
        ReplaceCharactersRule,
    ],
    Field(discriminator="type"),
]

_RULES_ADAPTER: TypeAdapter[list[Rule]] = TypeAdapter(list[Rule])


def decode_rules(raw: Any) -> list[Rule]:
    """Validate a list of raw rule dictionaries."""

    try:
        return _RULES_ADAPTER.validate_python(raw)
    except ValidationError as exc:
        raise RuleDecodeError(f"Invalid rule definition: {exc}") from exc


def formulas_enabled(rules: list[Rule]) -> bool:
    """Whether cell values should be read as evaluated results."""

    enabled = True
    for rule in rules:
        if isinstance(rule, EvaluateFormulasRule):
            enabled = rule.params.enabled
    return enabled


# ----------------------------------------------------------------------
# configurations
# ----------------------------------------------------------------------
class OutputFormat(WireModel):
    type: Literal["CSV", "JSON"] = "CSV"
    delimiter: str = Field(default=",", min_length=1, max_length=1)
    encoding: str = "utf-8"


class Configuration(WireModel):
    id: str
    organization_id: str
    name: str = ""
    rules: list[Rule] = Field(default_factory=list)
    output_format: OutputFormat = Field(default_factory=OutputFormat)
    version: int = Field(default=1, ge=1)
    callback_url: str | None = None
    webhook_id: str | None = None
    is_active: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Configuration":
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise RuleDecodeError(f"Invalid configuration {data.get('id')!r}: {exc}") from exc

    def same_definition(self, other: "Configuration") -> bool:
        # compare dumps so defaults that were spelled out still match
        return [rule.model_dump() for rule in self.rules] == [rule.model_dump() for rule in other.rules] and (
            self.output_format.model_dump() == other.output_format.model_dump()
        )


# ----------------------------------------------------------------------
# queue and webhook payloads
# ----------------------------------------------------------------------
class JobOptions(WireModel):
    debug: bool = False


class QueueJobPayload(WireModel):
    job_id: str
    organization_id: str
    configuration_id: str
    file_data: str
    file_name: str
    conversion_type: str = "XLSX_TO_CSV"
    callback_url: str | None = None
    options: JobOptions = Field(default_factory=JobOptions)

    @classmethod
    def from_file(
        cls,
        *,
        job_id: str,
        organization_id: str,
        configuration_id: str,
        file_name: str,
        data: bytes,
        conversion_type: str = "XLSX_TO_CSV",
        callback_url: str | None = None,
        options: JobOptions | None = None,
    ) -> "QueueJobPayload":
        return cls(
            job_id=job_id,
            organization_id=organization_id,
            configuration_id=configuration_id,
            file_data=base64.b64encode(data).decode("ascii"),
            file_name=file_name,
            conversion_type=conversion_type,
            callback_url=callback_url,
            options=options or JobOptions(),
        )

    def file_bytes(self) -> bytes:
        try:
            return base64.b64decode(self.file_data, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise TransformError("parse", "fileData is not valid base64") from exc

    @property
    def file_size(self) -> int:
        # decoded length without materialising the bytes
        padding = self.file_data.count("=", max(len(self.file_data) - 2, 0))
        return max(len(self.file_data) * 3 // 4 - padding, 0)


class WebhookPayload(WireModel):
    job_id: str
    status: Literal["completed", "failed"]
    organization_id: str
    configuration_id: str
    download_url: str | None = None
    expires_at: str | None = None
    error: str | None = None
    execution_log: list[str] = Field(default_factory=list)
    completed_at: str
    file_size: int | None = None
    original_file_name: str | None = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)

    def body(self) -> bytes:
        """Exact bytes that are signed and sent."""

        return self.model_dump_json(by_alias=True, exclude_none=True).encode("utf-8")


__all__ = [
    "Rule",
    "SelectWorksheetRule",
    "ValidateColumnsRule",
    "UnmergeAndFillRule",
    "DeleteRowsRule",
    "DeleteColumnsRule",
    "CombineWorksheetsRule",
    "EvaluateFormulasRule",
    "ReplaceCharactersRule",
    "SelectWorksheetParams",
    "ValidateColumnsParams",
    "UnmergeAndFillParams",
    "RowCondition",
    "DeleteRowsParams",
    "DeleteColumnsParams",
    "CombineWorksheetsParams",
    "EvaluateFormulasParams",
    "Replacement",
    "ReplaceCharactersParams",
    "decode_rules",
    "formulas_enabled",
    "OutputFormat",
    "Configuration",
    "JobOptions",
    "QueueJobPayload",
    "WebhookPayload",
]
