"""Controllers for task queue CLI commands."""

from __future__ import annotations

import os
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path

from claude_todo.config import Settings
from claude_todo.queue.backend import ClaudeCliExecutor
from claude_todo.queue.claimer import QueueClaimer
from claude_todo.queue.events import TaskEventDispatcher
from claude_todo.queue.models import Task, TaskStatus
from claude_todo.queue.repository import TaskRepository
from claude_todo.queue.services import TodoService
from claude_todo.queue.shutdown import ShutdownToken, Sleeper, install_signal_handlers
from claude_todo.queue.state_machine import is_terminal
from claude_todo.queue.worker import QueueWorker

_RELEVANT_ENV_VARS = (
    "CLAUDE_TODO_CLI_PATH",
    "CLAUDE_TODO_MODEL",
    "CLAUDE_TODO_PROJECT_ROOT",
    "CLAUDE_TODO_EXTRA_ARGS",
    "PATH",
    "HOME",
)
_ACTIVE_STATUSES = (TaskStatus.PENDING.value, TaskStatus.IN_PROGRESS.value)


@dataclass(slots=True)
class PushCommand:
    """CLI input for enqueuing one task."""

    db_path: Path | None
    group: str
    description: str
    priority: str | None


@dataclass(slots=True)
class PopCommand:
    """CLI input for claiming the next task without executing it."""

    db_path: Path | None
    group: str | None
    wait: bool = False
    max_wait_seconds: int = 300


@dataclass(slots=True)
class RunTaskCommand:
    """CLI input for executing a single task."""

    db_path: Path | None
    task_id: int
    model: str | None
    max_attempts: int | None


@dataclass(slots=True)
class WorkerCommand:
    """CLI input for the continuous worker."""

    db_path: Path | None
    group: str | None
    idle_timeout_seconds: int | None
    check_interval_seconds: int | None
    max_attempts: int | None
    model: str | None


@dataclass(slots=True)
class ListTasksCommand:
    """CLI input for task listing."""

    db_path: Path | None
    group: str | None
    statuses: tuple[str, ...]
    show_all: bool
    limit: int


@dataclass(slots=True)
class InspectTaskCommand:
    """CLI input for task inspection."""

    db_path: Path | None
    task_id: int


@dataclass(slots=True)
class StuckTasksCommand:
    """CLI input for the stuck in-progress report."""

    db_path: Path | None
    hours: int | None


@dataclass(slots=True)
class CommandResult:
    """Lines to render plus the process outcome."""

    lines: list[str]
    success: bool


class TodoCliController:
    """Coordinates queue, worker and inspection CLI operations."""

    def push(self, command: PushCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _repository(settings) as repository:
            service = TodoService(store=repository)
            task = service.push(
                command.group,
                command.description,
                command.priority or settings.queue.default_priority,
            )
        return [
            "Task created successfully!",
            f"  ID: {task.id}",
            f"  Group: {task.group}",
            f"  Priority: {task.priority.value}",
            f"  Status: {task.status.value}",
        ]

    def pop(self, command: PopCommand) -> list[str]:
        """Claim one task, optionally polling until one shows up."""

        settings = _settings(command.db_path)
        token = ShutdownToken()
        sleeper = Sleeper(token)
        started = time.monotonic()
        with _repository(settings) as repository, install_signal_handlers(token):
            claimer = _claimer(repository=repository, settings=settings, sleeper=sleeper)
            while True:
                task = claimer.claim(command.group)
                if task is not None:
                    waited = int(time.monotonic() - started)
                    lines = [f"Found task after waiting {waited} seconds"] if waited > 0 else []
                    return [*lines, "Task retrieved successfully!", *_task_lines(task)]
                if not command.wait:
                    return ["No available tasks at this time."]
                if time.monotonic() - started >= command.max_wait_seconds:
                    return [f"No tasks found after waiting {command.max_wait_seconds} seconds."]
                stop_file = settings.worker.stop_file
                if stop_file is not None and stop_file.exists():
                    return ["Stop file detected. Exiting..."]
                if not sleeper.sleep(settings.worker.check_interval_seconds):
                    return [f"Stopped: {token.reason}"]

    def run_task(
        self,
        command: RunTaskCommand,
        *,
        emit: Callable[[str], None],
        on_countdown: Callable[[int], None] | None = None,
        output_sink: Callable[[str], None] | None = None,
    ) -> CommandResult:
        """Execute one task by id, retrying in place on usage limits."""

        settings = _settings(command.db_path)
        max_attempts = command.max_attempts or settings.worker.max_attempts
        token = ShutdownToken()
        with _repository(settings) as repository, install_signal_handlers(token):
            worker = _worker(
                repository=repository,
                settings=settings,
                token=token,
                emit=emit,
                on_countdown=on_countdown,
                output_sink=output_sink,
            )
            task = worker.service.get_task(command.task_id)
            emit(f'Executing task {task.id} from group "{task.group}"')
            for line in _environment_lines(settings=settings, model=command.model):
                emit(line)
            outcome = worker.run_one(task, max_attempts=max_attempts, model=command.model)

        lines = [outcome.message]
        if not outcome.success and not is_terminal(outcome.task.status):
            lines.append("Task remains in progress.")
        return CommandResult(lines=lines, success=outcome.success)

    def run_worker(
        self,
        command: WorkerCommand,
        *,
        emit: Callable[[str], None],
        on_countdown: Callable[[int], None] | None = None,
        output_sink: Callable[[str], None] | None = None,
    ) -> list[str]:
        settings = _settings(command.db_path)
        idle_timeout = (
            command.idle_timeout_seconds
            if command.idle_timeout_seconds is not None
            else settings.worker.idle_timeout_seconds
        )
        check_interval = (
            command.check_interval_seconds
            if command.check_interval_seconds is not None
            else settings.worker.check_interval_seconds
        )
        token = ShutdownToken()
        emit("Starting worker...")
        if command.group is not None:
            emit(f"Processing tasks from group: {command.group}")
        emit(f"Idle timeout: {f'{idle_timeout} seconds' if idle_timeout > 0 else 'disabled'}")
        emit(f"Check interval: {check_interval} seconds")

        with _repository(settings) as repository, install_signal_handlers(token):
            worker = _worker(
                repository=repository,
                settings=settings,
                token=token,
                emit=emit,
                on_countdown=on_countdown,
                output_sink=output_sink,
            )
            summary = worker.run(
                group=command.group,
                check_interval_seconds=check_interval,
                idle_timeout_seconds=idle_timeout,
                max_attempts_per_task=command.max_attempts or settings.worker.max_attempts,
                model=command.model,
            )

        return [
            "Worker summary: "
            f"processed={summary.processed} succeeded={summary.succeeded} "
            f"failed={summary.failed} idle_polls={summary.idle_polls}",
            f"Stop reason: {summary.stop_reason or '-'}",
        ]

    def list_tasks(self, command: ListTasksCommand) -> list[str]:
        settings = _settings(command.db_path)
        if command.show_all:
            statuses = list(TaskStatus)
        else:
            statuses = [TaskStatus(value) for value in (command.statuses or _ACTIVE_STATUSES)]
        with _repository(settings) as repository:
            tasks = repository.list_tasks(
                group=command.group,
                statuses=statuses,
                limit=command.limit,
            )
            group_stats = (
                repository.stats_by_group(command.group) if command.group is not None else None
            )
            group_names = repository.list_group_names() if command.group is None else []

        if not tasks:
            return ["No matching tasks found."]

        lines = [f"Tasks: {len(tasks)}"]
        if group_stats is not None:
            lines.append(
                f"Group {command.group}: "
                + " ".join(f"{status.value}={count}" for status, count in group_stats.items()),
            )
        if group_names:
            lines.append(f"Groups: {', '.join(group_names)}")
        for task in tasks:
            lines.append(
                f"  #{task.id} [{task.group}] status={task.status.value} "
                f"priority={task.priority.value} created={task.created_at.isoformat()} "
                f"{_preview(task.description)}",
            )
        if command.limit > 0 and len(tasks) >= command.limit:
            lines.append(f"Showing first {command.limit} tasks; use --limit to see more.")
        return lines

    def inspect_task(self, command: InspectTaskCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _repository(settings) as repository:
            details = repository.get_task_details(task_id=command.task_id)
        if details is None:
            return [f"Task not found: {command.task_id}"]

        task = details.task
        lines = [
            *_task_lines(task),
            f"Updated: {_format_optional(task.updated_at)}",
            f"Executed: {_format_optional(task.executed_at)}",
            f"Completed: {_format_optional(task.completed_at)}",
            f"Version: {task.version}",
            f"Result: {task.result if task.result is not None else '-'}",
            f"Events: {len(details.events)}",
        ]
        for event in details.events:
            lines.append(
                f"  {event.created_at.isoformat()} {event.event_type} "
                f"{event.status_from.value if event.status_from else '-'} -> "
                f"{event.status_to.value if event.status_to else '-'}",
            )
        return lines

    def stuck_tasks(self, command: StuckTasksCommand) -> list[str]:
        """List IN_PROGRESS tasks untouched for longer than the threshold."""

        settings = _settings(command.db_path)
        hours = command.hours or settings.queue.stuck_after_hours
        with _repository(settings) as repository:
            tasks = repository.find_stuck_tasks(older_than=timedelta(hours=hours))
        if not tasks:
            return [f"No tasks in progress for more than {hours} hours."]
        lines = [f"Stuck tasks (in progress > {hours}h): {len(tasks)}"]
        for task in tasks:
            lines.append(
                f"  #{task.id} [{task.group}] executed={_format_optional(task.executed_at)} "
                f"{_preview(task.description)}",
            )
        return lines

    def check_cli(self, *, db_path: Path | None = None) -> CommandResult:
        settings = _settings(db_path)
        executor = ClaudeCliExecutor(settings.executor)
        version = executor.version()
        if version is None:
            return CommandResult(
                lines=[f"Claude CLI is not available: {settings.executor.cli_path}"],
                success=False,
            )
        return CommandResult(
            lines=[f"Claude CLI is available: {settings.executor.cli_path} ({version})"],
            success=True,
        )


def _settings(db_path: Path | None) -> Settings:
    settings = Settings.from_env(db_path=db_path)
    settings.validate()
    return settings


def _claimer(*, repository: TaskRepository, settings: Settings, sleeper: Sleeper) -> QueueClaimer:
    return QueueClaimer(
        repository,
        sleeper=sleeper,
        max_retries=settings.queue.claim_max_retries,
        retry_backoff_seconds=settings.queue.claim_retry_backoff_seconds,
    )


def _worker(  # noqa: PLR0913
    *,
    repository: TaskRepository,
    settings: Settings,
    token: ShutdownToken,
    emit: Callable[[str], None],
    on_countdown: Callable[[int], None] | None,
    output_sink: Callable[[str], None] | None,
) -> QueueWorker:
    dispatcher = TaskEventDispatcher()
    sleeper = Sleeper(token)
    return QueueWorker(
        service=TodoService(store=repository, dispatcher=dispatcher),
        claimer=_claimer(repository=repository, settings=settings, sleeper=sleeper),
        executor=ClaudeCliExecutor(
            settings.executor,
            dispatcher=dispatcher,
            output_sink=output_sink,
        ),
        sleeper=sleeper,
        random_delay_seconds=(
            settings.worker.random_delay_min_seconds,
            settings.worker.random_delay_max_seconds,
        ),
        stop_file=settings.worker.stop_file,
        stream_output=settings.executor.stream_output,
        on_progress=emit,
        on_countdown=on_countdown,
    )


def _environment_lines(*, settings: Settings, model: str | None) -> list[str]:
    lines = [
        f"Current directory: {settings.executor.project_root or Path.cwd()}",
        f"Claude path: {settings.executor.cli_path}",
        f"Claude model: {model or settings.executor.model}",
        "Environment variables:",
    ]
    for name in _RELEVANT_ENV_VARS:
        value = os.environ.get(name, "<not set>")
        if len(value) > 100:
            value = value[:97] + "..."
        lines.append(f"  {name}: {value}")
    return lines


def _task_lines(task: Task) -> list[str]:
    return [
        f"ID: {task.id}",
        f"Group: {task.group}",
        f"Priority: {task.priority.value}",
        f"Status: {task.status.value}",
        f"Created: {task.created_at.isoformat()}",
        f"Description: {task.description}",
    ]


def _format_optional(value: datetime | None) -> str:
    return value.isoformat() if value is not None else "-"


def _preview(text: str, limit: int = 60) -> str:
    flat = " ".join(text.split())
    return flat if len(flat) <= limit else flat[: limit - 3] + "..."


@contextmanager
def _repository(settings: Settings) -> Iterator[TaskRepository]:
    repository = TaskRepository(
        db_path=settings.db_path,
        sqlite_busy_timeout_ms=settings.queue.sqlite_busy_timeout_ms,
    )
    repository.init_schema()
    try:
        yield repository
    finally:
        repository.close()
