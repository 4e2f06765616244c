"""Application service that runs one carry-over batch end to end."""
from __future__ import annotations

import logging
from pathlib import Path

import httpx

from carryover.core.config import Settings
from carryover.core.report import ReportMap, load_report_map
from carryover.core.schema import ServerRecord
from carryover.domain import RunMode, RunSummary
from carryover.infrastructure import InventoryFetcher, PanelClient, redact
from carryover.workers import OutcomeAggregator, WorkOrchestrator
from carryover.workers.orchestrator import ALL_TARGETS

logger = logging.getLogger(__name__)


class CarryOverService:
    """Coordinates the report map, inventory snapshot and worker pool of a run."""

    def __init__(self, settings: Settings, *, transport: httpx.BaseTransport | None = None) -> None:
        self._settings = settings
        self._transport = transport

    # ------------------------------------------------------------------
    # wiring
    # ------------------------------------------------------------------
    def make_client(self) -> PanelClient:
        settings = self._settings
        return PanelClient(
            settings.resolved_api_base(),
            insecure=settings.insecure,
            log_responses=settings.log_api_responses,
            max_log_chars=settings.log_api_max_chars,
            timeout=settings.timeout,
            transport=self._transport,
        )

    def _announce(self, client: PanelClient) -> None:
        logger.info("API base: %s", redact(client.api_base))
        if client.insecure:
            logger.info("TLS verification disabled (insecure=true).")
        if self._settings.log_api_responses:
            logger.info("API response logging enabled.")

    def load_report(self, path: Path | None = None) -> ReportMap:
        report_path = path or self._settings.report_file
        logger.info("Manual reset using report file: %s", report_path)
        return load_report_map(report_path)

    # ------------------------------------------------------------------
    # use cases
    # ------------------------------------------------------------------
    def list_servers(self) -> list[ServerRecord]:
        client = self.make_client()
        try:
            return InventoryFetcher(client).fetch_all()
        finally:
            client.close()

    def run(
        self,
        mode: RunMode | str = RunMode.DELTA,
        target: str = ALL_TARGETS,
        *,
        report_path: Path | None = None,
    ) -> RunSummary:
        mode = RunMode(mode)
        client = self.make_client()
        try:
            self._announce(client)

            report_map: ReportMap | None = None
            if mode is RunMode.REPORT:
                report_map = self.load_report(report_path)

            logger.info("Fetching VPS data...")
            was_insecure = client.insecure
            inventory = InventoryFetcher(client).fetch_all()
            if client.insecure and not was_insecure:
                logger.info("TLS verification disabled for this run.")

            orchestrator = WorkOrchestrator(
                client,
                OutcomeAggregator(self._settings.change_log, verbose_log=self._settings.verbose_log),
                parallel_jobs=self._settings.parallel_jobs,
            )
            summary = orchestrator.run(mode, target, inventory, report_map)
        finally:
            client.close()

        logger.info("Done.")
        return summary


__all__ = ["CarryOverService"]
