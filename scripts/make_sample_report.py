#!/usr/bin/env python
from __future__ import annotations

import argparse
from pathlib import Path


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate a sample allowance report for --mode report")
    parser.add_argument("--output", required=True, help="output file path (.txt)")
    parser.add_argument(
        "--ip",
        action="append",
        default=None,
        help="panel IP listed on the sample line (repeatable)",
    )
    parser.add_argument("--remaining", default="120.5", help="remaining allowance in GB, or 'unlimited'")
    args = parser.parse_args()

    ips = args.ip or ["10.0.0.1", "10.0.0.2"]
    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)

    lines = [
        "VPS allowance report",
        f"1. sample-customer - {', '.join(ips)} | plan: sample | remaining: {args.remaining}GB",
        "2. unlimited-customer - 10.0.9.9 | plan: unlimited | remaining: unlimited",
    ]
    output.write_text("\n".join(lines) + "\n", encoding="utf-8")

    print(f"Sample report written: {output}")


if __name__ == "__main__":
    main()
