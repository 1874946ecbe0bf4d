"""Sequential rule engine.

``apply_rules`` folds an ordered list of decoded rules over a
:class:`~mutate.core.workbook.WorkbookState`.  The fold stops at the first
failing rule; the execution log written so far is returned together with the
error so callers can persist both.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterator, Sequence

from mutate.core.errors import TransformError
from mutate.core.schema import Rule, formulas_enabled
from mutate.core.workbook import Grid, WorkbookState, parse_workbook
from mutate.rules import get_applier

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExecutionLog:
    """Timestamped, append-only record of what the engine did."""

    def __init__(self, *, clock: Clock | None = None) -> None:
        self._clock = clock or _utcnow
        self._lines: list[str] = []

    def _stamp(self) -> str:
        return self._clock().isoformat(timespec="milliseconds").replace("+00:00", "Z")

    def info(self, message: str) -> None:
        self._lines.append(f"{self._stamp()}: {message}")
        logger.info(message)

    def warning(self, message: str) -> None:
        self._lines.append(f"{self._stamp()}: WARNING: {message}")
        logger.warning(message)

    @property
    def lines(self) -> list[str]:
        return list(self._lines)

    def __len__(self) -> int:
        return len(self._lines)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._lines))


@dataclass(slots=True)
class TransformOutcome:
    state: WorkbookState | None
    log: list[str]
    error: TransformError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def output_sheet(self) -> tuple[str, Grid]:
        """Sheet to serialize: the selected one, else the first."""

        if self.state is None:
            raise TransformError("output", "No workbook state to serialize")
        return self.state.active("output")


def apply_rules(
    initial: WorkbookState,
    rules: Sequence[Rule],
    *,
    log: ExecutionLog | None = None,
) -> TransformOutcome:
    log = log or ExecutionLog()
    state = initial
    log.info(f"Starting transformation with {len(rules)} rule(s)")

    for position, rule in enumerate(rules, start=1):
        log.info(f"Applying rule {position}/{len(rules)}: {rule.type} ({rule.id})")
        applier = get_applier(rule.type)
        try:
            state = applier(state, rule.params, log)
        except TransformError as exc:
            log.warning(f"Rule {rule.type} failed: {exc.reason}")
            return TransformOutcome(state=state, log=log.lines, error=exc)
        except Exception as exc:
            logger.exception("Unexpected error while applying %s (%s)", rule.type, rule.id)
            error = TransformError(rule.type, str(exc) or exc.__class__.__name__)
            log.warning(f"Rule {rule.type} failed: {error.reason}")
            return TransformOutcome(state=state, log=log.lines, error=error)

    counters = state.metadata
    log.info(
        "Transformation completed: "
        f"{counters.rows_processed} row(s), {counters.columns_processed} column(s), "
        f"{counters.sheets_processed} sheet(s) processed"
    )
    return TransformOutcome(state=state, log=log.lines)


def transform_workbook(
    data: bytes,
    rules: Sequence[Rule],
    *,
    log: ExecutionLog | None = None,
) -> TransformOutcome:
    """Decode XLSX bytes and run the rules over them."""

    log = log or ExecutionLog()
    try:
        initial = parse_workbook(data, evaluate_formulas=formulas_enabled(list(rules)))
    except TransformError as exc:
        log.warning(f"Unable to read input: {exc.reason}")
        return TransformOutcome(state=None, log=log.lines, error=exc)
    log.info(f"Loaded workbook with sheets: {', '.join(initial.sheet_names)}")
    return apply_rules(initial, rules, log=log)


__all__ = ["ExecutionLog", "TransformOutcome", "apply_rules", "transform_workbook"]
