from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Sequence

from carryover.application import CarryOverService
from carryover.core.config import load_settings
from carryover.core.errors import CarryOverError
from carryover.domain import RunMode
from carryover.infrastructure import configure_logging
from carryover.workers.orchestrator import ALL_TARGETS

logger = logging.getLogger("carryover.cli")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="carryover", description="Bandwidth carry-over for panel VPSs")
    parser.add_argument("--config", help="YAML settings file (default: $CARRYOVER_CONFIG or /etc/vps_carryover.yaml)")
    parser.add_argument("--verbose", action="store_true", help="log debug lines as well")

    # --config is also accepted after the sub-command
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", default=argparse.SUPPRESS, help=argparse.SUPPRESS)
    commands = parser.add_subparsers(dest="command", required=True)

    run = commands.add_parser("run", parents=[common], help="carry unused bandwidth over for one or all VPSs")
    run.add_argument("--mode", choices=[mode.value for mode in RunMode], default=RunMode.DELTA.value)
    run.add_argument("--target", default=ALL_TARGETS, help="'all' or a single VPS id")
    run.add_argument("--report", help="allowance report used by --mode report")

    commands.add_parser("cron", parents=[common], help="delta carry-over of every VPS, logging to file only")
    commands.add_parser("list", parents=[common], help="print the VPS inventory")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    try:
        settings = load_settings(args.config)
    except CarryOverError as exc:
        logger.error("%s", exc)
        return 1

    configure_logging(settings, console=args.command != "cron", verbose=args.verbose)
    service = CarryOverService(settings)

    try:
        if args.command == "list":
            print("Fetching VPS list...")
            for record in service.list_servers():
                print(f"VPS {record.server_id}: {record.name} ({record.hostname})")
            return 0

        if args.command == "cron":
            summary = service.run(RunMode.DELTA, ALL_TARGETS)
        else:
            report_path = Path(args.report) if args.report else None
            summary = service.run(RunMode(args.mode), args.target, report_path=report_path)
    except CarryOverError as exc:
        logger.error("%s", exc)
        return 1

    return 0 if summary.ok else 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
