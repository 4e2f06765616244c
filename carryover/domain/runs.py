"""Domain entities for a single carry-over run."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

CHANGE_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class RunMode(str, Enum):
    DELTA = "delta"
    REPORT = "report"


class Outcome(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class WorkItem:
    """One server's pending carry-over, the unit of concurrent dispatch."""

    server_id: str
    bandwidth_limit: Any
    plan_id: str
    bandwidth_used: Any | None = None
    ip_list: tuple[str, ...] | None = None


@dataclass(frozen=True, slots=True)
class ChangeRecord:
    """Audit entry written once the panel confirmed a new limit."""

    server_id: str
    plan_id: str
    new_limit: int
    limit: int | None = None
    used: int | None = None
    timestamp: datetime = field(default_factory=datetime.now)

    def format(self) -> str:
        stamp = self.timestamp.strftime(CHANGE_TIMESTAMP_FORMAT)
        if self.used is not None and self.limit is not None:
            usage = f"{self.used}/{self.limit} "
        else:
            usage = ""
        return f"{stamp}  VPS {self.server_id}  {usage}=> 0/{self.new_limit} (plan {self.plan_id})"


@dataclass(slots=True)
class WorkerResult:
    """Everything one worker reports back about its unit."""

    server_id: str
    exit_status: int | None
    skipped: bool = False
    log_records: list[logging.LogRecord] = field(default_factory=list)
    log_lines: list[str] = field(default_factory=list)
    change_record: ChangeRecord | None = None


@dataclass(frozen=True, slots=True)
class RunSummary:
    total: int = 0
    succeeded: int = 0
    skipped: int = 0
    failed: int = 0
    pool_failed: bool = False

    @property
    def ok(self) -> bool:
        return self.failed == 0 and not self.pool_failed

    def as_dict(self) -> dict[str, int | bool]:
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "skipped": self.skipped,
            "failed": self.failed,
            "pool_failed": self.pool_failed,
        }
