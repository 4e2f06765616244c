"""Carry-over rules.

Two policies decide the next period's limit of a server:

* delta mode keeps ``limit - used`` (or ``limit + used`` for the panel's
  negative-limit convention) from the panel's own counters;
* report mode takes the remaining allowance recorded for one of the server's
  IPs in an external report.

A limit of ``0`` means an unlimited plan in both policies: only the usage
counter is reset.
"""
from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable

from carryover.core.errors import ValidationError
from carryover.core.report import ReportMap

logger = logging.getLogger(__name__)

NUMERIC_PATTERN = re.compile(r"^-?[0-9]+([.][0-9]+)?$")
MIN_REMAINING = 1

Log = logging.Logger | logging.LoggerAdapter


class PlanAction(str, Enum):
    RESET_ONLY = "reset_only"
    RESET_AND_UPDATE = "reset_and_update"
    SKIP = "skip"


@dataclass(frozen=True, slots=True)
class CarryOverPlan:
    action: PlanAction
    limit: int
    used: int | None = None
    new_limit: int | None = None
    matched_ip: str | None = None

    @property
    def mutates_limit(self) -> bool:
        return self.action is PlanAction.RESET_AND_UPDATE


def _raw_text(raw: Any) -> str:
    if raw is None:
        return ""
    if isinstance(raw, float) and raw.is_integer():
        return str(int(raw))
    return str(raw).strip()


def normalize_int(raw: Any, label: str, log: Log | None = None) -> int:
    """Turn a panel number into an integer GB count.

    Empty and ``null`` values count as 0; non-numeric values also become 0 and
    are reported.  Fractions are floored, so negative values move away from
    zero.
    """

    log = log or logger
    text = _raw_text(raw)
    if text == "" or text == "null":
        return 0
    if not NUMERIC_PATTERN.match(text):
        log.error("%s value '%s' is not numeric; defaulting to 0", label, text)
        return 0

    value = math.floor(Decimal(text))
    if Decimal(text) != value:
        log.info("%s normalized: %s -> %d (truncated decimals)", label, text, value)
    return value


def normalize_remaining(remaining: Decimal, log: Log | None = None) -> int:
    """Floor a report allowance, never going below one GB."""

    log = log or logger
    value = math.floor(remaining)
    if remaining != value:
        log.info("remaining normalized: %s -> %d (truncated decimals)", remaining, value)
    if 0 < remaining < 1:
        log.info("remaining < 1 GB; using %d GB to avoid unlimited", MIN_REMAINING)
        return MIN_REMAINING
    if value <= 0:
        log.info("remaining <= 0 GB; using %d GB to avoid unlimited", MIN_REMAINING)
        return MIN_REMAINING
    return value


def plan_delta(raw_limit: Any, raw_used: Any, log: Log | None = None) -> CarryOverPlan:
    """Plan a carry-over from the panel's limit and usage counters."""

    limit = normalize_int(raw_limit, "limit", log)
    used = normalize_int(raw_used, "used", log)

    if limit == 0:
        return CarryOverPlan(PlanAction.RESET_ONLY, limit=limit, used=used)
    if limit > 0 and used > limit:
        return CarryOverPlan(PlanAction.SKIP, limit=limit, used=used)

    new_limit = limit + used if limit < 0 else limit - used
    return CarryOverPlan(PlanAction.RESET_AND_UPDATE, limit=limit, used=used, new_limit=new_limit)


def plan_report(
    raw_limit: Any,
    ip_list: Iterable[str] | None,
    report_map: ReportMap,
    log: Log | None = None,
) -> CarryOverPlan:
    """Plan a carry-over from the remaining allowance in the report."""

    log = log or logger
    limit = normalize_int(raw_limit, "limit", log)
    if limit == 0:
        return CarryOverPlan(PlanAction.RESET_ONLY, limit=limit)

    ips = [ip.strip() for ip in (ip_list or ()) if ip and ip.strip()]
    if not ips:
        raise ValidationError("no IPs found for server")

    entry = report_map.lookup(ips)
    if entry is None:
        raise ValidationError(f"no report entry for IPs ({','.join(ips)})")
    log.info("report match: %s remaining=%s", entry.ip, entry.raw)

    if entry.unlimited:
        raise ValidationError("report remaining is unlimited; refusing to set limit")
    if not entry.resolvable or entry.remaining is None:
        raise ValidationError(f"remaining value '{entry.raw}' is not numeric; refusing to set limit")

    new_limit = normalize_remaining(entry.remaining, log)
    return CarryOverPlan(
        PlanAction.RESET_AND_UPDATE,
        limit=limit,
        new_limit=new_limit,
        matched_ip=entry.ip,
    )


__all__ = [
    "CarryOverPlan",
    "PlanAction",
    "normalize_int",
    "normalize_remaining",
    "plan_delta",
    "plan_report",
]
