"""Server inventory retrieval.

The panel caps list responses at its page size without saying so, so a short
answer to the "everything" request may be truncated.  In that case the
fetcher walks the pages explicitly and merges them by server id.
"""
from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from carryover.core.errors import FetchError, TransportError
from carryover.core.schema import ServerRecord
from carryover.infrastructure.panel import PanelClient

logger = logging.getLogger(__name__)

PAGE_SIZE = 50
MAX_PAGES = 1000
EMPTY_PAGES_TO_STOP = 2


def _entries_by_id(servers: Any) -> dict[str, dict[str, Any]]:
    """Normalise a ``vs`` payload (object or array) into ``{id: entry}``."""

    entries: dict[str, dict[str, Any]] = {}
    if isinstance(servers, dict):
        for key, entry in servers.items():
            if isinstance(entry, dict):
                entries[str(entry.get("vpsid", key))] = entry
    elif isinstance(servers, list):
        for entry in servers:
            if isinstance(entry, dict) and entry.get("vpsid") is not None:
                entries[str(entry["vpsid"])] = entry
    return entries


class InventoryFetcher:
    def __init__(
        self,
        client: PanelClient,
        *,
        page_size: int = PAGE_SIZE,
        max_pages: int = MAX_PAGES,
    ) -> None:
        self._client = client
        self._page_size = page_size
        self._max_pages = max_pages

    def _fetch_page(self, page: int) -> dict[str, dict[str, Any]]:
        try:
            body = self._client.list_servers(page=page, page_size=self._page_size)
        except TransportError as exc:
            logger.warning("Inventory page %d failed; treating as empty: %s", page, exc)
            return {}
        try:
            payload = json.loads(body)
        except ValueError:
            return {}
        if not isinstance(payload, dict):
            return {}
        return _entries_by_id(payload.get("vs"))

    def _sweep(self) -> dict[str, dict[str, Any]]:
        merged: dict[str, dict[str, Any]] = {}
        empty_streak = 0
        page = 0
        while empty_streak < EMPTY_PAGES_TO_STOP and page < self._max_pages:
            entries = self._fetch_page(page)
            if entries:
                empty_streak = 0
                merged.update(entries)
            else:
                empty_streak += 1
            page += 1
        if page >= self._max_pages:
            logger.warning("Pagination stopped at the %d page ceiling", self._max_pages)
        return merged

    def fetch_raw(self) -> dict[str, dict[str, Any]]:
        """Return the merged inventory as raw panel entries keyed by id."""

        try:
            body = self._client.list_servers(page_size=0)
        except TransportError as exc:
            raise FetchError(f"Inventory request failed: {exc}") from exc

        if not body.strip():
            raise FetchError("API returned empty response")
        try:
            payload = json.loads(body)
        except ValueError as exc:
            raise FetchError("API response is not valid JSON") from exc
        if not isinstance(payload, dict) or "vs" not in payload or payload["vs"] is None:
            raise FetchError("API response missing 'vs' field")

        entries = _entries_by_id(payload["vs"])
        if len(entries) <= self._page_size:
            logger.info(
                "Small result set (%d), attempting pagination to ensure all VPS are retrieved...",
                len(entries),
            )
            paged = self._sweep()
            if paged:
                return paged
        return entries

    def fetch_all(self) -> list[ServerRecord]:
        """Return a single consistent snapshot of every server."""

        records: list[ServerRecord] = []
        for server_id, entry in self.fetch_raw().items():
            try:
                records.append(ServerRecord(**{"vpsid": server_id, **entry}))
            except PydanticValidationError as exc:
                logger.error("Inventory entry %s ignored: %s", server_id, exc)
        logger.info("Inventory loaded: %d VPS(s)", len(records))
        return records


__all__ = ["InventoryFetcher", "PAGE_SIZE", "MAX_PAGES"]
