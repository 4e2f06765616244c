from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

IPV4_PATTERN = re.compile(r"^[0-9]{1,3}(\.[0-9]{1,3}){3}$")

RawNumber = str | int | float | None


def _collect_strings(node: Any, *, include_keys: bool) -> list[str]:
    collected: list[str] = []
    if isinstance(node, str):
        collected.append(node)
    elif isinstance(node, dict):
        for key, value in node.items():
            if include_keys:
                collected.append(str(key))
            collected.extend(_collect_strings(value, include_keys=False))
    elif isinstance(node, list):
        for item in node:
            collected.extend(_collect_strings(item, include_keys=False))
    return collected


def clean_ips(candidates: list[Any]) -> tuple[str, ...]:
    """Keep dotted-quad strings only, stripped of whitespace, unique and sorted."""

    cleaned = {"".join(str(item).split()) for item in candidates if item is not None}
    return tuple(sorted(ip for ip in cleaned if IPV4_PATTERN.match(ip)))


def extract_ips(entry: dict[str, Any]) -> tuple[str, ...]:
    """Gather the IPs of one inventory entry from its ``ip`` and ``ips`` fields."""

    candidates: list[Any] = [entry.get("ip")]
    ips = entry.get("ips")
    if isinstance(ips, dict):
        candidates.extend(_collect_strings(ips, include_keys=True))
    elif ips is not None:
        candidates.extend(_collect_strings(ips, include_keys=False))
    return clean_ips(candidates)


class ServerRecord(BaseModel):
    """One virtual server as reported by the panel inventory."""

    model_config = ConfigDict(frozen=True)

    server_id: str
    bandwidth_limit: RawNumber = 0
    bandwidth_used: RawNumber = 0
    plan_id: str = "0"
    ip_addresses: tuple[str, ...] = Field(default_factory=tuple)
    name: str | None = None
    hostname: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _from_panel(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "vpsid" not in data:
            return data
        return {
            "server_id": data.get("vpsid"),
            "bandwidth_limit": data.get("bandwidth"),
            "bandwidth_used": data.get("used_bandwidth"),
            "plan_id": data.get("plid"),
            "ip_addresses": extract_ips(data),
            "name": data.get("vps_name"),
            "hostname": data.get("hostname"),
        }

    @field_validator("server_id", mode="before")
    @classmethod
    def _server_id(cls, value: Any) -> str:
        text = "" if value is None else str(value).strip()
        if not text:
            raise ValueError("server id must not be empty")
        return text

    @field_validator("plan_id", mode="before")
    @classmethod
    def _plan_id(cls, value: Any) -> str:
        if value is None or str(value).strip() == "":
            return "0"
        return str(value).strip()

    @field_validator("name", "hostname", mode="before")
    @classmethod
    def _optional_text(cls, value: Any) -> str | None:
        return None if value is None else str(value)
