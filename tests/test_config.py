"""Tests for settings loading."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from tickcron.config import TICKCRON_DIR, Settings


class TestSettings:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.chdir(tmp_path)
        config = Settings(_env_file=None)
        assert config.check_interval == 1.0
        assert config.timezone == "UTC"
        assert config.executor == "command"
        assert config.get_storage_path() == TICKCRON_DIR / "jobs.json"
        assert config.get_executor_options() == {"shell": True}

    def test_environment_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TICKCRON_CHECK_INTERVAL", "0.5")
        monkeypatch.setenv("TICKCRON_EXECUTOR", "simulated")
        monkeypatch.setenv("TICKCRON_SIMULATED_FAILURE_RATE", "0.25")
        monkeypatch.setenv("TICKCRON_STORAGE_PATH", "/var/lib/tickcron/jobs.json")

        config = Settings(_env_file=None)

        assert config.check_interval == 0.5
        assert config.get_storage_path() == Path("/var/lib/tickcron/jobs.json")
        assert config.get_executor_options() == {
            "min_delay": 0.5,
            "max_delay": 3.0,
            "failure_rate": 0.25,
        }

    def test_rejects_unknown_executor(self) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, executor="docker")

    def test_command_without_shell(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TICKCRON_COMMAND_SHELL", "false")
        config = Settings(_env_file=None)
        assert config.get_executor_options() == {"shell": False}
