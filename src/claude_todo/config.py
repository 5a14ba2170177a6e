"""Runtime configuration for the task queue, executor and worker."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from claude_todo.queue.errors import ConfigurationError
from claude_todo.queue.models import TaskPriority

DEFAULT_MODEL = "claude-sonnet-4-20250514"


@dataclass(slots=True, frozen=True)
class ExecutorSettings:
    """How the Claude CLI is located and invoked."""

    cli_path: str = "claude"
    model: str = DEFAULT_MODEL
    extra_args: tuple[str, ...] = ()
    project_root: Path | None = None
    stream_output: bool = False
    availability_timeout_seconds: float = 5.0


@dataclass(slots=True, frozen=True)
class WorkerSettings:
    """Worker loop pacing and stop conditions."""

    max_attempts: int = 10
    check_interval_seconds: int = 3
    idle_timeout_seconds: int = 0
    stop_file: Path | None = Path("claude-runner.stop")
    random_delay_min_seconds: int = 60
    random_delay_max_seconds: int = 300


@dataclass(slots=True, frozen=True)
class QueueSettings:
    """Producer defaults and claim protocol tuning."""

    default_priority: str = TaskPriority.NORMAL.value
    claim_max_retries: int = 3
    claim_retry_backoff_seconds: float = 0.1
    stuck_after_hours: int = 24
    sqlite_busy_timeout_ms: int = 5_000


@dataclass(slots=True, frozen=True)
class Settings:
    """Application settings, built once at process start."""

    db_path: Path = Path(".claude_todo.db")
    executor: ExecutorSettings = field(default_factory=ExecutorSettings)
    worker: WorkerSettings = field(default_factory=WorkerSettings)
    queue: QueueSettings = field(default_factory=QueueSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from ``CLAUDE_TODO_*`` environment variables."""

        project_root = os.getenv("CLAUDE_TODO_PROJECT_ROOT", "").strip()
        stop_file = os.getenv("CLAUDE_TODO_STOP_FILE", "claude-runner.stop").strip()
        return cls(
            db_path=db_path or Path(os.getenv("CLAUDE_TODO_DB_PATH", ".claude_todo.db")),
            executor=ExecutorSettings(
                cli_path=os.getenv("CLAUDE_TODO_CLI_PATH", "claude"),
                model=os.getenv("CLAUDE_TODO_MODEL", DEFAULT_MODEL),
                extra_args=_split_args(os.getenv("CLAUDE_TODO_EXTRA_ARGS", "")),
                project_root=Path(project_root) if project_root else None,
                stream_output=_env_bool("CLAUDE_TODO_STREAM_OUTPUT", default=False),
                availability_timeout_seconds=_env_float(
                    "CLAUDE_TODO_AVAILABILITY_TIMEOUT_SECONDS",
                    default=5.0,
                ),
            ),
            worker=WorkerSettings(
                max_attempts=_env_int("CLAUDE_TODO_MAX_ATTEMPTS", default=10),
                check_interval_seconds=_env_int("CLAUDE_TODO_CHECK_INTERVAL", default=3),
                idle_timeout_seconds=_env_int("CLAUDE_TODO_IDLE_TIMEOUT", default=0),
                stop_file=Path(stop_file) if stop_file else None,
                random_delay_min_seconds=_env_int("CLAUDE_TODO_RANDOM_DELAY_MIN", default=60),
                random_delay_max_seconds=_env_int("CLAUDE_TODO_RANDOM_DELAY_MAX", default=300),
            ),
            queue=QueueSettings(
                default_priority=os.getenv(
                    "CLAUDE_TODO_DEFAULT_PRIORITY",
                    TaskPriority.NORMAL.value,
                ).strip(),
                claim_max_retries=_env_int("CLAUDE_TODO_CLAIM_MAX_RETRIES", default=3),
                claim_retry_backoff_seconds=_env_float(
                    "CLAUDE_TODO_CLAIM_RETRY_BACKOFF_SECONDS",
                    default=0.1,
                ),
                stuck_after_hours=_env_int("CLAUDE_TODO_STUCK_AFTER_HOURS", default=24),
                sqlite_busy_timeout_ms=_env_int("CLAUDE_TODO_SQLITE_BUSY_TIMEOUT_MS", default=5000),
            ),
        )

    def validate(self) -> None:
        """Raise :class:`ConfigurationError` for values the worker cannot run with."""

        if not self.executor.cli_path.strip():
            raise ConfigurationError("CLAUDE_TODO_CLI_PATH must not be empty.")
        if not self.executor.model.strip():
            raise ConfigurationError("CLAUDE_TODO_MODEL must not be empty.")
        if self.worker.max_attempts < 1:
            raise ConfigurationError("CLAUDE_TODO_MAX_ATTEMPTS must be >= 1.")
        if self.worker.check_interval_seconds < 1:
            raise ConfigurationError("CLAUDE_TODO_CHECK_INTERVAL must be >= 1.")
        if self.worker.idle_timeout_seconds < 0:
            raise ConfigurationError("CLAUDE_TODO_IDLE_TIMEOUT must be >= 0.")
        if self.worker.random_delay_min_seconds < 0:
            raise ConfigurationError("CLAUDE_TODO_RANDOM_DELAY_MIN must be >= 0.")
        if self.worker.random_delay_max_seconds < self.worker.random_delay_min_seconds:
            raise ConfigurationError(
                "CLAUDE_TODO_RANDOM_DELAY_MAX must be >= CLAUDE_TODO_RANDOM_DELAY_MIN.",
            )
        if self.queue.claim_max_retries < 1:
            raise ConfigurationError("CLAUDE_TODO_CLAIM_MAX_RETRIES must be >= 1.")
        if self.queue.claim_retry_backoff_seconds < 0:
            raise ConfigurationError("CLAUDE_TODO_CLAIM_RETRY_BACKOFF_SECONDS must be >= 0.")
        if self.queue.stuck_after_hours < 1:
            raise ConfigurationError("CLAUDE_TODO_STUCK_AFTER_HOURS must be >= 1.")
        if self.queue.default_priority not in {priority.value for priority in TaskPriority}:
            raise ConfigurationError(
                f"Invalid CLAUDE_TODO_DEFAULT_PRIORITY: {self.queue.default_priority!r}. "
                "Expected one of: low, normal, high.",
            )


def _split_args(value: str) -> tuple[str, ...]:
    return tuple(part for part in value.split(" ") if part)


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError as error:
        raise ConfigurationError(f"Invalid integer value for {name}: {value!r}") from error


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value.strip())
    except ValueError as error:
        raise ConfigurationError(f"Invalid number value for {name}: {value!r}") from error


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ConfigurationError(f"Invalid boolean value for {name}: {value!r}")
