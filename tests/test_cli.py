"""Tests for the command-line interface."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

from tickcron import cli
from tickcron.config import settings
from tickcron.cron.storage import CronStorage


def _run_cli(monkeypatch: pytest.MonkeyPatch, *argv: str) -> int:
    """Invoke the CLI entry point and return its exit code."""
    monkeypatch.setattr(sys, "argv", ["tickcron", *argv])
    with pytest.raises(SystemExit) as exc_info:
        cli.main()
    return exc_info.value.code


@pytest.fixture
def storage_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    path = tmp_path / "jobs.json"
    monkeypatch.setattr(settings, "storage_path", path)
    monkeypatch.setattr(settings, "executor", "command")
    return path


class TestCli:
    def test_check_valid(self, monkeypatch, capsys) -> None:
        assert _run_cli(monkeypatch, "check", "*/15 * * * *", "-n", "2") == 0
        out = capsys.readouterr().out
        assert "every 15 minutes" in out

    def test_check_invalid(self, monkeypatch, capsys) -> None:
        assert _run_cli(monkeypatch, "check", "* * *") == 1
        assert "wrong field count" in capsys.readouterr().out

    def test_add_and_toggle(self, monkeypatch, storage_path: Path) -> None:
        assert _run_cli(
            monkeypatch, "add", "--name", "Disk", "--schedule", "*/5 * * * *",
            "--action", "df -h", "--timeout-ms", "500",
        ) == 0
        jobs = CronStorage(storage_path).load()
        assert [(j.name, j.timeout_ms) for j in jobs] == [("Disk", 500)]

        assert _run_cli(monkeypatch, "toggle", jobs[0].id) == 0
        assert CronStorage(storage_path).load()[0].enabled is False

    def test_add_rejects_bad_schedule(self, monkeypatch, storage_path: Path) -> None:
        code = _run_cli(
            monkeypatch, "add", "--name", "Bad", "--schedule", "* *", "--action", "x",
        )
        assert code == 1
        assert CronStorage(storage_path).load() == []

    def test_import(self, monkeypatch, storage_path: Path, tmp_path: Path) -> None:
        config = tmp_path / "jobs.yaml"
        config.write_text(
            "jobs:\n"
            "  - name: ok\n"
            "    schedule: '0 9 * * 1-5'\n"
            "    action: echo hi\n"
            "    timeout_ms: 1000\n"
            "  - name: broken\n"
            "    schedule: '0 9'\n"
            "    action: echo hi\n"
            "  - name: off\n"
            "    schedule: '* * * * *'\n"
            "    action: echo off\n"
            "    enabled: false\n"
        )

        assert _run_cli(monkeypatch, "import", str(config)) == 0

        jobs = CronStorage(storage_path).load()
        assert [j.name for j in jobs] == ["ok", "off"]
        assert jobs[1].enabled is False

    def test_import_coerces_scalars_and_skips_non_mappings(
        self, monkeypatch, capsys, storage_path: Path, tmp_path: Path
    ) -> None:
        config = tmp_path / "jobs.yaml"
        config.write_text(
            "jobs:\n"
            "  - just-a-string\n"
            "  - name: 2026\n"
            "    schedule: '0 0 1 1 *'\n"
            "    action: 42\n"
        )

        assert _run_cli(monkeypatch, "import", str(config)) == 0

        out = capsys.readouterr().out
        assert "Skipping entry" in out
        assert "Imported 1 of 2 jobs" in out
        jobs = CronStorage(storage_path).load()
        assert [(j.name, j.action) for j in jobs] == [("2026", "42")]

    def test_run_unknown_job(self, monkeypatch, storage_path: Path) -> None:
        assert _run_cli(monkeypatch, "run", "job_missing") == 1
