from __future__ import annotations

import pytest

from carryover import cli
from carryover.application import CarryOverService


@pytest.fixture()
def config(tmp_path, monkeypatch):
    for key in ("CONFIG", "HOST", "KEY", "PASSWORD", "API_BASE", "LOG_DIR", "REPORT_FILE"):
        monkeypatch.delenv(f"CARRYOVER_{key}", raising=False)
    path = tmp_path / "carryover.yaml"
    path.write_text(
        "host: panel.example\n"
        "key: KEY123\n"
        "password: PASS456\n"
        "parallel_jobs: 2\n"
        f"log_dir: {tmp_path / 'logs'}\n",
        encoding="utf-8",
    )
    return path


@pytest.fixture()
def wired_panel(panel, monkeypatch):
    panel.add(101, 1000, 400, plid="1", vps_name="v101", hostname="h101.example", ip="10.0.0.1")
    panel.add(102, 0, 20, plid="2", vps_name="v102", hostname="h102.example", ip="10.0.0.2")

    def service(settings):
        return CarryOverService(settings, transport=panel.transport)

    monkeypatch.setattr(cli, "CarryOverService", service)
    return panel


def test_run_all_succeeds(config, wired_panel, tmp_path):
    assert cli.main(["--config", str(config), "run"]) == 0

    verbose = (tmp_path / "logs" / "carryover.log").read_text(encoding="utf-8")
    assert "Summary: total=2 success=2 skipped=0 failed=0" in verbose
    assert "WORKER_EXIT=0" in verbose
    assert "PASS456" not in verbose
    changes = (tmp_path / "logs" / "carryover_changes.log").read_text(encoding="utf-8")
    assert "VPS 101  400/1000 => 0/600 (plan 1)" in changes


def test_cron_reports_failures_through_exit_code(config, wired_panel, capsys):
    wired_panel.reset_failures.add("102")

    assert cli.main(["--config", str(config), "cron"]) == 1
    assert "Summary:" not in capsys.readouterr().err


def test_report_mode(config, wired_panel, tmp_path):
    report = tmp_path / "vps_report.txt"
    report.write_text("1. a - 10.0.0.1 | remaining: 42GB\n", encoding="utf-8")

    code = cli.main(["--config", str(config), "run", "--mode", "report", "--target", "101", "--report", str(report)])

    assert code == 0
    assert wired_panel.updates[-1]["bandwidth"] == "42"


def test_unknown_target_exits_nonzero(config, wired_panel):
    assert cli.main(["--config", str(config), "run", "--target", "999"]) == 1
    assert wired_panel.resets == []


def test_missing_report_exits_before_touching_the_panel(config, wired_panel, tmp_path):
    code = cli.main(["--config", str(config), "run", "--mode", "report", "--report", str(tmp_path / "none.txt")])

    assert code == 1
    assert wired_panel.requests == []


def test_list_prints_inventory(config, wired_panel, capsys):
    assert cli.main(["list", "--config", str(config)]) == 0

    out = capsys.readouterr().out
    assert "VPS 101: v101 (h101.example)" in out
    assert "VPS 102: v102 (h102.example)" in out


def test_missing_config_exits_nonzero(tmp_path):
    assert cli.main(["--config", str(tmp_path / "absent.yaml"), "run"]) == 1
