"""Concurrent execution of carry-over units."""

from .aggregate import OutcomeAggregator, classify
from .orchestrator import WorkOrchestrator, build_worklist
from .unit import CarryOverWorker, RunContext

__all__ = [
    "CarryOverWorker",
    "OutcomeAggregator",
    "RunContext",
    "WorkOrchestrator",
    "build_worklist",
    "classify",
]
