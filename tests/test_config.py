from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import allure
import pytest

from claude_todo.config import DEFAULT_MODEL, Settings
from claude_todo.queue.errors import ConfigurationError

pytestmark = [
    allure.epic("Configuration"),
    allure.feature("Settings"),
]

_ENV_NAMES = (
    "CLAUDE_TODO_DB_PATH",
    "CLAUDE_TODO_CLI_PATH",
    "CLAUDE_TODO_MODEL",
    "CLAUDE_TODO_EXTRA_ARGS",
    "CLAUDE_TODO_PROJECT_ROOT",
    "CLAUDE_TODO_STREAM_OUTPUT",
    "CLAUDE_TODO_AVAILABILITY_TIMEOUT_SECONDS",
    "CLAUDE_TODO_MAX_ATTEMPTS",
    "CLAUDE_TODO_CHECK_INTERVAL",
    "CLAUDE_TODO_IDLE_TIMEOUT",
    "CLAUDE_TODO_STOP_FILE",
    "CLAUDE_TODO_RANDOM_DELAY_MIN",
    "CLAUDE_TODO_RANDOM_DELAY_MAX",
    "CLAUDE_TODO_DEFAULT_PRIORITY",
    "CLAUDE_TODO_CLAIM_MAX_RETRIES",
    "CLAUDE_TODO_CLAIM_RETRY_BACKOFF_SECONDS",
    "CLAUDE_TODO_STUCK_AFTER_HOURS",
    "CLAUDE_TODO_SQLITE_BUSY_TIMEOUT_MS",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_NAMES:
        monkeypatch.delenv(name, raising=False)


def test_defaults() -> None:
    settings = Settings.from_env()
    settings.validate()

    assert settings.db_path == Path(".claude_todo.db")
    assert settings.executor.cli_path == "claude"
    assert settings.executor.model == DEFAULT_MODEL
    assert settings.executor.extra_args == ()
    assert settings.executor.project_root is None
    assert settings.worker.max_attempts == 10
    assert settings.worker.check_interval_seconds == 3
    assert settings.worker.idle_timeout_seconds == 0
    assert settings.worker.stop_file == Path("claude-runner.stop")
    assert settings.worker.random_delay_min_seconds == 60
    assert settings.worker.random_delay_max_seconds == 300
    assert settings.queue.default_priority == "normal"
    assert settings.queue.claim_max_retries == 3
    assert settings.queue.stuck_after_hours == 24


def test_env_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("CLAUDE_TODO_DB_PATH", str(tmp_path / "env.db"))
    monkeypatch.setenv("CLAUDE_TODO_CLI_PATH", "/opt/claude")
    monkeypatch.setenv("CLAUDE_TODO_MODEL", "claude-opus-4")
    monkeypatch.setenv("CLAUDE_TODO_EXTRA_ARGS", "--add-dir  /srv ")
    monkeypatch.setenv("CLAUDE_TODO_PROJECT_ROOT", str(tmp_path))
    monkeypatch.setenv("CLAUDE_TODO_STREAM_OUTPUT", "yes")
    monkeypatch.setenv("CLAUDE_TODO_MAX_ATTEMPTS", "4")
    monkeypatch.setenv("CLAUDE_TODO_IDLE_TIMEOUT", "90")
    monkeypatch.setenv("CLAUDE_TODO_STOP_FILE", "")
    monkeypatch.setenv("CLAUDE_TODO_DEFAULT_PRIORITY", "high")

    settings = Settings.from_env()
    settings.validate()

    assert settings.db_path == tmp_path / "env.db"
    assert settings.executor.cli_path == "/opt/claude"
    assert settings.executor.model == "claude-opus-4"
    assert settings.executor.extra_args == ("--add-dir", "/srv")
    assert settings.executor.project_root == tmp_path
    assert settings.executor.stream_output is True
    assert settings.worker.max_attempts == 4
    assert settings.worker.idle_timeout_seconds == 90
    assert settings.worker.stop_file is None
    assert settings.queue.default_priority == "high"


def test_explicit_db_path_wins(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("CLAUDE_TODO_DB_PATH", str(tmp_path / "env.db"))

    assert Settings.from_env(tmp_path / "cli.db").db_path == tmp_path / "cli.db"


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("CLAUDE_TODO_MAX_ATTEMPTS", "ten"),
        ("CLAUDE_TODO_CLAIM_RETRY_BACKOFF_SECONDS", "fast"),
        ("CLAUDE_TODO_STREAM_OUTPUT", "maybe"),
    ],
)
def test_malformed_env_values(monkeypatch: pytest.MonkeyPatch, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)

    with pytest.raises(ConfigurationError, match=name):
        Settings.from_env()


@pytest.mark.parametrize(
    ("section", "changes", "message"),
    [
        ("executor", {"cli_path": " "}, "CLAUDE_TODO_CLI_PATH"),
        ("executor", {"model": ""}, "CLAUDE_TODO_MODEL"),
        ("worker", {"max_attempts": 0}, "CLAUDE_TODO_MAX_ATTEMPTS"),
        ("worker", {"check_interval_seconds": -1}, "CLAUDE_TODO_CHECK_INTERVAL"),
        ("worker", {"check_interval_seconds": 0}, "CLAUDE_TODO_CHECK_INTERVAL must be >= 1"),
        ("worker", {"idle_timeout_seconds": -1}, "CLAUDE_TODO_IDLE_TIMEOUT"),
        ("worker", {"random_delay_min_seconds": -1}, "CLAUDE_TODO_RANDOM_DELAY_MIN"),
        ("worker", {"random_delay_max_seconds": 10}, "CLAUDE_TODO_RANDOM_DELAY_MAX"),
        ("queue", {"claim_max_retries": 0}, "CLAUDE_TODO_CLAIM_MAX_RETRIES"),
        ("queue", {"claim_retry_backoff_seconds": -0.5}, "BACKOFF_SECONDS"),
        ("queue", {"stuck_after_hours": 0}, "CLAUDE_TODO_STUCK_AFTER_HOURS"),
        ("queue", {"default_priority": "urgent"}, "CLAUDE_TODO_DEFAULT_PRIORITY"),
    ],
)
def test_validate_rejects_bad_values(
    section: str,
    changes: dict[str, object],
    message: str,
) -> None:
    settings = Settings()
    settings = replace(settings, **{section: replace(getattr(settings, section), **changes)})

    with pytest.raises(ConfigurationError, match=message):
        settings.validate()
