"""Error taxonomy for the transformation pipeline.

Each subsystem owns one base class so callers can catch a whole family at
its boundary: :class:`TransformError` for the rule engine, :class:`WorkerError`
for job orchestration and :class:`WebhookError` for notifications.  The
``retryable`` flag is read by the queue broker when deciding whether a failed
job is redelivered.
"""
from __future__ import annotations

from typing import Sequence


class MutateError(Exception):
    """Base class for every error raised by this package."""

    retryable: bool = False


# ----------------------------------------------------------------------
# rule engine
# ----------------------------------------------------------------------
class TransformError(MutateError):
    """Raised when a rule cannot be applied to the workbook."""

    def __init__(self, rule: str, reason: str) -> None:
        super().__init__(f"{rule}: {reason}")
        self.rule = rule
        self.reason = reason


class WorksheetNotFoundError(TransformError):
    def __init__(self, rule: str, sheet_name: str, available: Sequence[str]) -> None:
        names = ", ".join(f'"{name}"' for name in available) or "none"
        super().__init__(rule, f'Worksheet "{sheet_name}" not found (available: {names})')
        self.sheet_name = sheet_name
        self.available = list(available)


class ColumnValidationError(TransformError):
    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            "VALIDATE_COLUMNS",
            f"Column count mismatch. Expected {expected}, found {actual}",
        )
        self.expected = expected
        self.actual = actual


class RuleDecodeError(MutateError):
    """Raised when stored rule parameters do not match any rule shape."""


# ----------------------------------------------------------------------
# worker
# ----------------------------------------------------------------------
class WorkerError(MutateError):
    """Base class for job orchestration failures."""


class ConfigurationNotFound(WorkerError):
    def __init__(self, configuration_id: str) -> None:
        super().__init__(f"Configuration {configuration_id} not found")
        self.configuration_id = configuration_id


class JobNotFound(WorkerError):
    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job {job_id} not found")
        self.job_id = job_id


class JobStateError(WorkerError):
    def __init__(self, job_id: str, current: str, target: str) -> None:
        super().__init__(f"Job {job_id} cannot move from {current} to {target}")
        self.job_id = job_id
        self.current = current
        self.target = target


class JobTimeout(WorkerError):
    def __init__(self, job_id: str, seconds: float) -> None:
        super().__init__(f"Job {job_id} timed out after {seconds:g}s")
        self.job_id = job_id
        self.seconds = seconds


class StorageError(WorkerError):
    retryable = True

    def __init__(self, op: str, key: str, reason: str | None = None) -> None:
        message = f"Storage {op} failed for {key}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.op = op
        self.key = key


# ----------------------------------------------------------------------
# webhooks
# ----------------------------------------------------------------------
class WebhookError(MutateError):
    """Base class for notification failures."""


class WebhookValidationError(WebhookError):
    def __init__(self, url: str, reason: str) -> None:
        super().__init__(reason)
        self.url = url
        self.reason = reason


class WebhookDeliveryError(WebhookError):
    retryable = True

    def __init__(self, message: str, *, status_code: int | None = None, body: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


def is_retryable(exc: BaseException) -> bool:
    """Unknown exceptions are retryable; domain errors declare it themselves."""

    if isinstance(exc, MutateError):
        return exc.retryable
    return True


__all__ = [
    "MutateError",
    "TransformError",
    "WorksheetNotFoundError",
    "ColumnValidationError",
    "RuleDecodeError",
    "WorkerError",
    "ConfigurationNotFound",
    "JobNotFound",
    "JobStateError",
    "JobTimeout",
    "StorageError",
    "WebhookError",
    "WebhookValidationError",
    "WebhookDeliveryError",
    "is_retryable",
]
