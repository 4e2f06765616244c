"""Fan-out of per-server carry-over work over a fixed thread pool."""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Sequence

from carryover.core.errors import ConfigError, TargetNotFoundError
from carryover.core.report import ReportMap
from carryover.core.schema import ServerRecord
from carryover.domain import RunMode, RunSummary, WorkerResult, WorkItem
from carryover.infrastructure.panel import PanelClient
from carryover.workers.aggregate import OutcomeAggregator
from carryover.workers.unit import CarryOverWorker, RunContext

logger = logging.getLogger(__name__)

ALL_TARGETS = "all"
DEFAULT_PARALLEL_JOBS = 5


def _work_item(mode: RunMode, record: ServerRecord) -> WorkItem:
    if mode is RunMode.REPORT:
        return WorkItem(
            server_id=record.server_id,
            bandwidth_limit=record.bandwidth_limit,
            plan_id=record.plan_id,
            ip_list=record.ip_addresses,
        )
    return WorkItem(
        server_id=record.server_id,
        bandwidth_limit=record.bandwidth_limit,
        plan_id=record.plan_id,
        bandwidth_used=record.bandwidth_used,
    )


def build_worklist(mode: RunMode, target: str, inventory: Sequence[ServerRecord]) -> list[WorkItem]:
    """Select the servers to process: every one for ``"all"``, else one by id."""

    if target == ALL_TARGETS:
        return [_work_item(mode, record) for record in inventory]

    wanted = str(target).strip()
    for record in inventory:
        if record.server_id == wanted:
            if mode is RunMode.REPORT:
                logger.info("VPS %s IPs: %s", wanted, ",".join(record.ip_addresses) or "(none)")
            return [_work_item(mode, record)]
    raise TargetNotFoundError(f"VPS {wanted} not found in list.")


class WorkOrchestrator:
    def __init__(
        self,
        client: PanelClient,
        aggregator: OutcomeAggregator,
        *,
        parallel_jobs: int = DEFAULT_PARALLEL_JOBS,
    ) -> None:
        if parallel_jobs < 1:
            raise ConfigError("parallel_jobs must be at least 1")
        self._client = client
        self._aggregator = aggregator
        self._parallel_jobs = parallel_jobs

    def dispatch(
        self,
        worklist: Sequence[WorkItem],
        context: RunContext,
    ) -> tuple[dict[str, WorkerResult | None], bool]:
        """Run every unit once and join; return results by id and the pool failure flag."""

        worker = CarryOverWorker(context)
        results: dict[str, WorkerResult | None] = {}
        pool_failed = False

        with ThreadPoolExecutor(max_workers=self._parallel_jobs, thread_name_prefix="carryover") as pool:
            futures = {pool.submit(worker.process, item): item for item in worklist}
            for future in as_completed(futures):
                item = futures[future]
                try:
                    result = future.result()
                except Exception:
                    pool_failed = True
                    results[item.server_id] = None
                    logger.exception("Worker for VPS %s crashed", item.server_id)
                    continue
                if result.exit_status is None:
                    pool_failed = True
                    logger.error("Worker for VPS %s crashed", item.server_id)
                results[item.server_id] = result

        if pool_failed:
            logger.error("One or more VPS operations failed in the worker pool.")
        return results, pool_failed

    def run(
        self,
        mode: RunMode | str,
        target: str,
        inventory: Sequence[ServerRecord],
        report_map: ReportMap | None = None,
    ) -> RunSummary:
        mode = RunMode(mode)
        if mode is RunMode.REPORT and report_map is None:
            raise ConfigError("Report mode requires a report map")

        worklist = build_worklist(mode, target, inventory)
        if not worklist:
            logger.info("No VPS to process.")
            return RunSummary()

        logger.info("Processing %d VPS(s) with %d jobs...", len(worklist), self._parallel_jobs)
        context = RunContext(mode=mode, client=self._client, report_map=report_map)
        results, pool_failed = self.dispatch(worklist, context)
        return self._aggregator.aggregate(worklist, results, pool_failed=pool_failed)


__all__ = ["WorkOrchestrator", "build_worklist", "ALL_TARGETS"]
