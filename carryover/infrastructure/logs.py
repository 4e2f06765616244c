"""Log sinks for carry-over runs.

The run writes to two files: the verbose log, which receives every
informational and error line, and the change log, an audit trail with one
line per confirmed limit change.  Workers never touch either file directly;
each unit logs into its own :class:`UnitLog` buffer and the aggregator replays
the buffers once the pool has joined.
"""
from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Iterable

from carryover.core.config import Settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
ROOT_LOGGER_NAME = "carryover"
UNIT_LOGGER_NAME = "carryover.units"

_INSTALLED_ATTR = "_carryover_installed"


def make_formatter() -> logging.Formatter:
    return logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)


class _BufferHandler(logging.Handler):
    def __init__(self) -> None:
        super().__init__(logging.DEBUG)
        self.records: list[logging.LogRecord] = []
        self.lines: list[str] = []

    def emit(self, record: logging.LogRecord) -> None:
        line = self.format(record)
        # freeze the message so a later replay does not re-render live args
        record.msg = record.getMessage()
        record.args = None
        self.records.append(record)
        self.lines.append(line)


class UnitLog:
    """Private log buffer of a single unit of work.

    The logger is deliberately not registered with :mod:`logging`'s manager:
    it has no parent, so nothing it records leaks into the shared handlers
    before aggregation, and it is garbage collected with the unit.
    """

    def __init__(self, server_id: str) -> None:
        self.server_id = server_id
        self.logger = logging.Logger(f"{UNIT_LOGGER_NAME}.{server_id}", logging.DEBUG)
        self._handler = _BufferHandler()
        self._handler.setFormatter(make_formatter())
        self.logger.addHandler(self._handler)

    @property
    def records(self) -> list[logging.LogRecord]:
        return list(self._handler.records)

    @property
    def lines(self) -> list[str]:
        return list(self._handler.lines)


def configure_logging(settings: Settings, *, console: bool = True, verbose: bool = False) -> logging.Logger:
    """Attach the verbose-log file handler (and optionally stderr) to the package logger."""

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(logging.DEBUG)
    for handler in list(root.handlers):
        if getattr(handler, _INSTALLED_ATTR, False):
            root.removeHandler(handler)
            handler.close()

    level = logging.DEBUG if verbose else logging.INFO
    formatter = make_formatter()

    settings.log_dir.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(settings.verbose_log, mode="a", encoding="utf-8")
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    setattr(file_handler, _INSTALLED_ATTR, True)
    root.addHandler(file_handler)

    if console:
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setLevel(level)
        stream_handler.setFormatter(formatter)
        setattr(stream_handler, _INSTALLED_ATTR, True)
        root.addHandler(stream_handler)

    return root


def append_change_lines(path: Path, lines: Iterable[str]) -> int:
    """Append audit lines to the change log and return how many were written."""

    pending = [line for line in lines if line]
    if not pending:
        return 0
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as fp:
        for line in pending:
            fp.write(f"{line}\n")
    return len(pending)


__all__ = [
    "DATE_FORMAT",
    "LOG_FORMAT",
    "UNIT_LOGGER_NAME",
    "UnitLog",
    "append_change_lines",
    "configure_logging",
    "make_formatter",
]
