"""Domain layer definitions."""

from .runs import ChangeRecord, Outcome, RunMode, RunSummary, WorkerResult, WorkItem

__all__ = [
    "ChangeRecord",
    "Outcome",
    "RunMode",
    "RunSummary",
    "WorkerResult",
    "WorkItem",
]
