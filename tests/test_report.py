from __future__ import annotations

from decimal import Decimal

import pytest

from carryover.core.errors import ReportParseError
from carryover.core.report import build_report_map, load_report_map, parse_report_line


SAMPLE_REPORT = """\
VPS allowance report, generated 2026-10-01
1. customer-a - 10.0.0.1, 10.0.0.2 | plan: gold | remaining: 0.4GB
2. customer-b - 10.0.0.3 | remaining: 250.75 GB
3. customer-c - 10.0.0.4 | remaining: نامحدود
4. customer-d - 10.0.0.5 | remaining: unknown
"""


@pytest.mark.parametrize(
    "line",
    [
        "",
        "just a header line",
        "- 10.0.0.1 no separator here: 5GB",
        "10.0.0.1 | remaining: 5GB",
        "- | remaining: 5GB",
        "- ,  , | remaining: 5GB",
        "- 10.0.0.1 | remaining 5GB",
        "- 10.0.0.1 | remaining: GB",
        "- 10.0.0.1 | remaining:   ",
    ],
)
def test_malformed_lines_are_skipped(line):
    assert parse_report_line(line) is None


def test_line_grammar_extracts_ips_and_value():
    parsed = parse_report_line("7. host-x - 10.0.0.1 , 10.0.0.2,| zone: eu | remaining: 12.5GB left")

    assert parsed is not None
    assert parsed.ips == ("10.0.0.1", "10.0.0.2")
    assert parsed.raw_remaining == "12.5"


def test_value_comes_from_last_field_only():
    parsed = parse_report_line("- 10.0.0.9 | used: 3GB | remaining: 7GB")

    assert parsed is not None
    assert parsed.raw_remaining == "7"


def test_shared_value_is_given_to_every_ip():
    report = build_report_map("- 10.0.0.1, 10.0.0.2 | remaining: 0.4GB")

    assert set(report) == {"10.0.0.1", "10.0.0.2"}
    assert report["10.0.0.1"].remaining == Decimal("0.4")
    assert report["10.0.0.2"].remaining == Decimal("0.4")


def test_report_entries_are_classified():
    report = build_report_map(SAMPLE_REPORT)

    assert len(report) == 5
    assert report["10.0.0.3"].remaining == Decimal("250.75")
    assert report["10.0.0.3"].resolvable
    assert report["10.0.0.4"].unlimited
    assert not report["10.0.0.4"].resolvable
    assert report["10.0.0.5"].remaining is None
    assert not report["10.0.0.5"].unlimited
    assert not report["10.0.0.5"].resolvable


def test_duplicate_ip_last_line_wins():
    report = build_report_map(
        "- 10.0.0.1 | remaining: 5GB\n"
        "- 10.0.0.1 | remaining: 9GB\n"
    )

    assert report["10.0.0.1"].raw == "9"


def test_lookup_takes_first_match_in_order():
    report = build_report_map(
        "- 10.0.0.2 | remaining: 20GB\n"
        "- 10.0.0.3 | remaining: 30GB\n"
    )

    assert report.lookup(["10.0.0.1", " 10.0.0.3", "10.0.0.2"]).ip == "10.0.0.3"
    assert report.lookup(["10.0.0.9"]) is None
    assert report.lookup([]) is None


def test_report_map_is_read_only():
    report = build_report_map("- 10.0.0.1 | remaining: 5GB")

    with pytest.raises(TypeError):
        report["10.0.0.9"] = report["10.0.0.1"]  # type: ignore[index]


def test_report_without_entries_fails():
    with pytest.raises(ReportParseError):
        build_report_map("header\nno usable lines\n")

    with pytest.raises(ReportParseError):
        build_report_map("")


def test_load_report_map_reads_utf8_file(tmp_path):
    path = tmp_path / "vps_report.txt"
    path.write_text(SAMPLE_REPORT, encoding="utf-8")

    report = load_report_map(path)

    assert report["10.0.0.4"].raw == "نامحدود"


def test_load_report_map_missing_file(tmp_path):
    with pytest.raises(ReportParseError):
        load_report_map(tmp_path / "absent.txt")
