from __future__ import annotations

import json
import logging
import sys
import threading
from pathlib import Path
from urllib.parse import parse_qs

sys.path.append(str(Path(__file__).resolve().parents[1]))

import httpx
import pytest

from carryover.core.schema import ServerRecord

API_BASE = "https://panel.example:4085/index.php?adminapikey=KEY123&adminapipass=PASS456"


class FakePanel:
    """In-memory stand-in for the panel's admin API.

    ``servers`` is the inventory keyed by id; ``pages`` (when set) is what the
    paginated listing returns, one dict per page index.
    """

    def __init__(self, servers: dict[str, dict] | None = None) -> None:
        self.servers: dict[str, dict] = servers or {}
        self.pages: list[dict] | None = None
        self.reset_failures: set[str] = set()
        self.update_failures: set[str] = set()
        self.resets: list[str] = []
        self.updates: list[dict[str, str]] = []
        self.requests: list[httpx.Request] = []
        self._lock = threading.Lock()

    def add(self, vpsid: str, bandwidth, used, plid="1", **extra) -> None:
        self.servers[str(vpsid)] = {
            "vpsid": str(vpsid),
            "bandwidth": bandwidth,
            "used_bandwidth": used,
            "plid": plid,
            **extra,
        }

    def _listing(self, request: httpx.Request) -> httpx.Response:
        page = request.url.params.get("page")
        if page is None:
            return httpx.Response(200, json={"vs": self.servers})
        pages = self.pages
        if pages is None:
            # a panel that ignores paging and returns everything on page 0
            pages = [self.servers] if self.servers else []
        index = int(page)
        content = pages[index] if index < len(pages) else {}
        return httpx.Response(200, json={"vs": content})

    def handler(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            self.requests.append(request)
        params = request.url.params
        act = params.get("act")

        if act == "vs" and "bwreset" in params:
            server_id = params["bwreset"]
            with self._lock:
                self.resets.append(server_id)
            if server_id in self.reset_failures:
                return httpx.Response(200, json={"error": ["reset refused"]})
            return httpx.Response(200, json={"done": 1})

        if act == "vs":
            return self._listing(request)

        if act == "managevps":
            form = {key: values[0] for key, values in parse_qs(request.content.decode("utf-8")).items()}
            form["vpsid"] = params["vpsid"]
            with self._lock:
                self.updates.append(form)
            if params["vpsid"] in self.update_failures:
                return httpx.Response(200, json={"done": {"done": False}, "error": ["bad limit"]})
            return httpx.Response(200, json={"done": {"done": True}})

        return httpx.Response(404, text=json.dumps({"error": "unknown act"}))

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture()
def panel() -> FakePanel:
    return FakePanel()


@pytest.fixture()
def record_factory():
    def build(vpsid, bandwidth=100, used=10, plid="1", **extra) -> ServerRecord:
        return ServerRecord(vpsid=vpsid, bandwidth=bandwidth, used_bandwidth=used, plid=plid, **extra)

    return build


@pytest.fixture(autouse=True)
def restore_carryover_handlers():
    root = logging.getLogger("carryover")
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
