"""Parser for the external allowance report.

Each useful report line names one or more panel IPs and the allowance left on
them, for example::

    3. customer-a - 10.0.0.1, 10.0.0.2 | plan: gold | remaining: 0.4GB

The IP list is the text after the first ``"- "`` up to the next ``|``; the
remaining allowance is the text after the first ``:`` of the last ``|`` field,
cut at the ``GB`` unit.  Lines that do not follow this shape are ignored.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping

from carryover.core.errors import ReportParseError

logger = logging.getLogger(__name__)

IP_MARKER = "- "
FIELD_SEPARATOR = "|"
VALUE_SEPARATOR = ":"
UNIT_SUFFIX = "GB"
UNLIMITED_TOKENS = frozenset({"unlimited", "نامحدود"})
NUMERIC_PATTERN = re.compile(r"^-?[0-9]+(\.[0-9]+)?$")


@dataclass(frozen=True, slots=True)
class ReportEntry:
    """Remaining allowance recorded for one IP."""

    ip: str
    raw: str
    remaining: Decimal | None = None
    unlimited: bool = False

    @property
    def resolvable(self) -> bool:
        return self.remaining is not None and not self.unlimited


@dataclass(frozen=True, slots=True)
class ReportLine:
    ips: tuple[str, ...]
    raw_remaining: str

    def entries(self) -> Iterator[ReportEntry]:
        remaining, unlimited = parse_remaining(self.raw_remaining)
        for ip in self.ips:
            yield ReportEntry(ip=ip, raw=self.raw_remaining, remaining=remaining, unlimited=unlimited)


def parse_remaining(raw: str) -> tuple[Decimal | None, bool]:
    """Classify a raw remaining value as numeric, unlimited or unresolvable."""

    value = raw.strip()
    if value.lower() in UNLIMITED_TOKENS:
        return None, True
    if not NUMERIC_PATTERN.match(value):
        return None, False
    try:
        return Decimal(value), False
    except InvalidOperation:  # pragma: no cover - guarded by the pattern
        return None, False


def parse_report_line(line: str) -> ReportLine | None:
    """Return the IPs and raw remaining value of a report line, or ``None``."""

    if FIELD_SEPARATOR not in line or IP_MARKER not in line:
        return None

    after_marker = line.split(IP_MARKER, 1)[1]
    ip_segment = after_marker.split(FIELD_SEPARATOR, 1)[0]
    ips = tuple(part.strip() for part in ip_segment.split(",") if part.strip())
    if not ips:
        return None

    last_field = line.rsplit(FIELD_SEPARATOR, 1)[1]
    if VALUE_SEPARATOR not in last_field:
        return None
    value = last_field.split(VALUE_SEPARATOR, 1)[1]
    value = value.split(UNIT_SUFFIX, 1)[0].strip()
    if not value:
        return None

    return ReportLine(ips=ips, raw_remaining=value)


class ReportMap(Mapping[str, ReportEntry]):
    """Read-only IP lookup built from a report."""

    def __init__(self, entries: Iterable[ReportEntry]) -> None:
        table: dict[str, ReportEntry] = {}
        for entry in entries:
            table[entry.ip] = entry
        self._entries = MappingProxyType(table)

    def __getitem__(self, ip: str) -> ReportEntry:
        return self._entries[ip]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def lookup(self, ips: Iterable[str]) -> ReportEntry | None:
        """Return the entry of the first IP, in order, that the report knows."""

        for ip in ips:
            ip = ip.strip()
            if not ip:
                continue
            entry = self._entries.get(ip)
            if entry is not None:
                return entry
        return None


def build_report_map(text: str, *, source: str = "report") -> ReportMap:
    entries: list[ReportEntry] = []
    for number, line in enumerate(text.splitlines(), start=1):
        parsed = parse_report_line(line)
        if parsed is None:
            if line.strip():
                logger.debug("Report %s line %d skipped: %r", source, number, line)
            continue
        entries.extend(parsed.entries())

    if not entries:
        raise ReportParseError(f"No report entries found in {source}")

    report_map = ReportMap(entries)
    logger.info("Report map loaded: %d IP entries from %s", len(entries), source)
    return report_map


def load_report_map(path: Path) -> ReportMap:
    """Read the report file at ``path`` and build its IP lookup."""

    if not path.is_file():
        raise ReportParseError(f"Report file not found: {path}")
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ReportParseError(f"Report file {path} could not be read: {exc}") from exc
    return build_report_map(text, source=str(path))


__all__ = [
    "ReportEntry",
    "ReportLine",
    "ReportMap",
    "build_report_map",
    "load_report_map",
    "parse_remaining",
    "parse_report_line",
]
