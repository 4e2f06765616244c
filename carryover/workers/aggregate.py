from __future__ import annotations

import logging
from pathlib import Path
from typing import Mapping, Sequence

from carryover.domain import Outcome, RunSummary, WorkerResult, WorkItem
from carryover.infrastructure.logs import UNIT_LOGGER_NAME, append_change_lines

logger = logging.getLogger(__name__)


def classify(result: WorkerResult | None) -> Outcome:
    """Classify one unit from its typed result.

    A unit without a result, without log records or without an exit status
    never ran to completion and counts as failed.
    """

    if result is None or not result.log_records:
        return Outcome.FAILED
    if result.exit_status is None or result.exit_status != 0:
        return Outcome.FAILED
    if result.skipped:
        return Outcome.SKIPPED
    return Outcome.SUCCESS


class OutcomeAggregator:
    """Reduces worker results into a :class:`RunSummary` and merges their logs."""

    def __init__(self, change_log: Path | None = None, *, verbose_log: Path | None = None) -> None:
        self._change_log = change_log
        self._verbose_log = verbose_log
        self._unit_logger = logging.getLogger(UNIT_LOGGER_NAME)

    def _merge_logs(self, worklist: Sequence[WorkItem], results: Mapping[str, WorkerResult | None]) -> None:
        logger.info("Aggregating logs...")
        change_lines: list[str] = []
        for item in worklist:
            result = results.get(item.server_id)
            if result is None:
                continue
            for record in result.log_records:
                self._unit_logger.handle(record)
            if result.change_record is not None:
                change_lines.append(result.change_record.format())

        if self._change_log is not None:
            append_change_lines(self._change_log, change_lines)

    def aggregate(
        self,
        worklist: Sequence[WorkItem],
        results: Mapping[str, WorkerResult | None],
        *,
        pool_failed: bool = False,
    ) -> RunSummary:
        counts = {outcome: 0 for outcome in Outcome}
        for item in worklist:
            outcome = classify(results.get(item.server_id))
            counts[outcome] += 1
            if outcome is Outcome.FAILED and results.get(item.server_id) is None:
                logger.error("VPS %s produced no worker result", item.server_id)

        self._merge_logs(worklist, results)

        summary = RunSummary(
            total=len(worklist),
            succeeded=counts[Outcome.SUCCESS],
            skipped=counts[Outcome.SKIPPED],
            failed=counts[Outcome.FAILED],
            pool_failed=pool_failed,
        )
        logger.info(
            "Summary: total=%d success=%d skipped=%d failed=%d",
            summary.total,
            summary.succeeded,
            summary.skipped,
            summary.failed,
        )
        target = self._verbose_log or "the verbose log"
        if summary.failed > 0:
            logger.error("Run completed with failures. Check %s for details.", target)
            if pool_failed:
                logger.error("Worker pool also reported a failure.")
        elif pool_failed:
            logger.error("Worker pool reported a failure, but no failed workers were detected.")
        return summary


__all__ = ["OutcomeAggregator", "classify"]
