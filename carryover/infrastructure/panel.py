"""HTTP client for the hosting control panel's admin API."""
from __future__ import annotations

import json
import logging
import re
import ssl
from typing import Any, Mapping
from urllib.parse import urlencode

import httpx

from carryover.core.errors import PanelRejectedError, TransportError

logger = logging.getLogger(__name__)

REDACTED = "REDACTED"
TRUNCATION_MARKER = "...[truncated]"
CREDENTIAL_PARAMS = ("adminapikey", "adminapipass")
_CREDENTIAL_PATTERN = re.compile(r"((?:%s)=)[^&\s]*" % "|".join(CREDENTIAL_PARAMS))

MAX_REDIRECTS = 5
TRANSPORT_RETRIES = 3

Log = logging.Logger | logging.LoggerAdapter


def redact(text: str) -> str:
    """Replace credential query values in ``text`` with a fixed token."""

    return _CREDENTIAL_PATTERN.sub(rf"\g<1>{REDACTED}", text)


def is_certificate_failure(exc: BaseException) -> bool:
    """Return ``True`` when the exception chain points at TLS verification."""

    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, ssl.SSLCertVerificationError):
            return True
        if "CERTIFICATE_VERIFY_FAILED" in str(current):
            return True
        current = current.__cause__ or current.__context__
    return False


def _load_json(body: str) -> Any:
    try:
        return json.loads(body)
    except ValueError:
        return None


def reset_confirmed(body: str) -> bool:
    payload = _load_json(body)
    if not isinstance(payload, dict):
        return False
    return payload.get("done") in (1, "1")


def update_confirmed(body: str) -> bool:
    payload = _load_json(body)
    if not isinstance(payload, dict):
        return False
    done = payload.get("done")
    if not isinstance(done, dict):
        return False
    return done.get("done") in (True, "true")


class PanelClient:
    """Client for the panel's ``index.php`` admin API.

    TLS verification is on unless ``insecure`` is set.  When a call fails on
    certificate verification the client retries it once without verification
    and, if the panel answered, stays insecure for the rest of its life.  The
    switch belongs to this instance only; :meth:`fork` hands a worker its own
    copy of the current state.
    """

    def __init__(
        self,
        api_base: str,
        *,
        insecure: bool = False,
        log_responses: bool = True,
        max_log_chars: int = 2000,
        timeout: float = 30.0,
        retries: int = TRANSPORT_RETRIES,
        transport: httpx.BaseTransport | None = None,
        log: Log | None = None,
    ) -> None:
        if not api_base.startswith(("http://", "https://")):
            raise ValueError("api_base must include scheme and host")

        self._api_base = api_base
        self._insecure = insecure
        self._log_responses = log_responses
        self._max_log_chars = max_log_chars
        self._timeout = timeout
        self._retries = retries
        self._transport = transport
        self._log = log or logger
        self._clients: dict[bool, httpx.Client] = {}

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    @property
    def api_base(self) -> str:
        return self._api_base

    @property
    def insecure(self) -> bool:
        return self._insecure

    def url(self, **params: Any) -> str:
        """Append ``params`` to the credential-bearing base URL."""

        separator = "&" if "?" in self._api_base else "?"
        return f"{self._api_base}{separator}{urlencode(params)}"

    def _http(self, verify: bool) -> httpx.Client:
        client = self._clients.get(verify)
        if client is None:
            transport = self._transport or httpx.HTTPTransport(verify=verify, retries=self._retries)
            client = httpx.Client(transport=transport, follow_redirects=False, timeout=self._timeout)
            self._clients[verify] = client
        return client

    def _send(self, method: str, url: str, data: Mapping[str, Any] | None, *, verify: bool) -> httpx.Response:
        """Send one call, following redirects with the original method and body."""

        client = self._http(verify)
        response = client.request(method, url, data=data)
        hops = 0
        while response.is_redirect:
            if hops >= MAX_REDIRECTS:
                raise httpx.TooManyRedirects("Exceeded maximum allowed redirects.", request=response.request)
            hops += 1
            target = response.url.join(response.headers["Location"])
            self._log.info("API %s redirected to %s", method, redact(str(target)))
            response = client.request(method, target, data=data)
        return response

    def log_payload(self, label: str, payload: str) -> None:
        """Log a response body line by line, capped at ``max_log_chars``."""

        if not payload:
            self._log.info("%s (empty)", label)
            return

        length = len(payload)
        if length > self._max_log_chars:
            self._log.info("%s (truncated, %d chars)", label, length)
            payload = payload[: self._max_log_chars] + TRUNCATION_MARKER
        else:
            self._log.info("%s (%d chars)", label, length)

        for line in redact(payload).splitlines():
            self._log.info("%s", line)

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    def request(self, url: str, data: Mapping[str, Any] | None = None, *, method: str | None = None) -> str:
        """Issue one panel call and return the response body.

        GET is used without a body and POST with one; ``method`` overrides
        the choice.
        """

        method = method or ("POST" if data is not None else "GET")
        safe_url = redact(url)
        self._log.info("API %s %s", method, safe_url)
        if data is not None and self._log_responses:
            fields = " ".join(f"{key}={value}" for key, value in data.items())
            self._log.info("API %s data: %s", method, redact(fields))

        try:
            response = self._send(method, url, data, verify=not self._insecure)
        except httpx.RequestError as exc:
            if self._insecure or not is_certificate_failure(exc):
                self._log.error("API %s failed: %s", method, exc)
                raise TransportError(f"API {method} {safe_url} failed: {exc}", body=str(exc)) from exc

            self._log.error("SSL verification failed; retrying with verification disabled.")
            try:
                response = self._send(method, url, data, verify=False)
            except httpx.RequestError as retry_exc:
                self._log.error("API %s failed: %s", method, retry_exc)
                raise TransportError(
                    f"API {method} {safe_url} failed: {retry_exc}", body=str(retry_exc)
                ) from retry_exc
            self._insecure = True
            self._log.info("TLS verification disabled for this client.")

        body = response.text
        if response.is_error:
            self._log.error("API %s failed (HTTP %d).", method, response.status_code)
            self.log_payload(f"API error response for {safe_url}", body)
            raise TransportError(
                f"API {method} {safe_url} failed with HTTP {response.status_code}",
                body=body,
                status_code=response.status_code,
            )

        if self._log_responses:
            self.log_payload(f"API response for {safe_url}", body)
        return body

    def list_servers(self, *, page: int | None = None, page_size: int = 0) -> str:
        params: dict[str, Any] = {"act": "vs", "api": "json", "reslen": page_size}
        if page is not None:
            params["page"] = page
        return self.request(self.url(**params))

    def reset_usage(self, server_id: str) -> str:
        """Reset the bandwidth counter of ``server_id``; raise unless confirmed."""

        body = self.request(self.url(act="vs", bwreset=server_id, api="json"), method="POST")
        if not reset_confirmed(body):
            raise PanelRejectedError(f"reset failed: {body}", body=body)
        return body

    def update_limit(self, server_id: str, limit: int, plan_id: str) -> str:
        """Set the bandwidth limit of ``server_id`` while keeping its plan."""

        data = {"editvps": 1, "bandwidth": limit, "plid": plan_id}
        body = self.request(self.url(act="managevps", vpsid=server_id, api="json"), data)
        if not update_confirmed(body):
            raise PanelRejectedError(f"update failed: {body}", body=body)
        return body

    def fork(self, *, log: Log | None = None) -> "PanelClient":
        """Return an independent client sharing config and current TLS state."""

        return PanelClient(
            self._api_base,
            insecure=self._insecure,
            log_responses=self._log_responses,
            max_log_chars=self._max_log_chars,
            timeout=self._timeout,
            retries=self._retries,
            transport=self._transport,
            log=log or self._log,
        )

    def close(self) -> None:
        clients = list(self._clients.values())
        self._clients.clear()
        for client in clients:
            client.close()


__all__ = [
    "PanelClient",
    "REDACTED",
    "TRUNCATION_MARKER",
    "is_certificate_failure",
    "redact",
    "reset_confirmed",
    "update_confirmed",
]
