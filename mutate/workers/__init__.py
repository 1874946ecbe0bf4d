"""Background workers."""

from .pipeline import JobResult, TransformationWorker

__all__ = ["JobResult", "TransformationWorker"]
