"""CLI entrypoint for claude-todo."""

import logging
from collections.abc import Callable
from functools import wraps
from pathlib import Path

import rich_click as click

from claude_todo import __version__
from claude_todo.queue.controllers import (
    InspectTaskCommand,
    ListTasksCommand,
    PopCommand,
    PushCommand,
    RunTaskCommand,
    StuckTasksCommand,
    TodoCliController,
    WorkerCommand,
)
from claude_todo.queue.errors import ClaudeTodoError
from claude_todo.queue.models import TaskPriority, TaskStatus
from claude_todo.queue.shutdown import format_remaining

click.rich_click.USE_MARKDOWN = True
TODO_CONTROLLER = TodoCliController()

_DB_PATH_OPTION = click.option(
    "--db-path",
    type=click.Path(path_type=Path),
    default=None,
    help="SQLite DB path (default: CLAUDE_TODO_DB_PATH or .claude_todo.db).",
)


def _surface_errors(func: Callable[..., None]) -> Callable[..., None]:
    @wraps(func)
    def wrapper(*args: object, **kwargs: object) -> None:
        try:
            func(*args, **kwargs)
        except ClaudeTodoError as error:
            raise click.ClickException(str(error)) from error

    return wrapper


@click.group()
@click.version_option(version=__version__, prog_name="claude-todo")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging verbosity.",
)
def claude_todo(log_level: str) -> None:
    """Persistent task queue that runs coding tasks through the Claude CLI."""

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@claude_todo.command("push")
@_DB_PATH_OPTION
@click.argument("group")
@click.argument("description")
@click.option(
    "--priority",
    "-p",
    type=click.Choice([priority.value for priority in TaskPriority], case_sensitive=False),
    default=None,
    help="Task priority (default: CLAUDE_TODO_DEFAULT_PRIORITY or normal).",
)
@_surface_errors
def push(db_path: Path | None, group: str, description: str, priority: str | None) -> None:
    """Add a task to the queue."""

    try:
        lines = TODO_CONTROLLER.push(
            PushCommand(
                db_path=db_path,
                group=group,
                description=description,
                priority=priority,
            ),
        )
    except ValueError as error:
        if isinstance(error, ClaudeTodoError):
            raise
        raise click.BadParameter(str(error)) from error
    _emit_lines(lines)


@claude_todo.command("pop")
@_DB_PATH_OPTION
@click.argument("group", required=False)
@click.option("--wait", "-w", is_flag=True, help="Poll until a task becomes available.")
@click.option(
    "--max-wait",
    type=click.IntRange(min=0),
    default=300,
    show_default=True,
    help="Maximum seconds to wait with --wait.",
)
@_surface_errors
def pop(db_path: Path | None, group: str | None, wait: bool, max_wait: int) -> None:
    """Claim the next task and mark it in progress without executing it."""

    _emit_lines(
        TODO_CONTROLLER.pop(
            PopCommand(
                db_path=db_path,
                group=group,
                wait=wait,
                max_wait_seconds=max_wait,
            ),
        ),
    )


@claude_todo.command("run")
@_DB_PATH_OPTION
@click.argument("task_id", type=int)
@click.option("--model", "-m", default=None, help="Override the Claude model.")
@click.option(
    "--max-attempts",
    type=click.IntRange(min=1),
    default=None,
    help="Max attempts on usage limits (default: CLAUDE_TODO_MAX_ATTEMPTS or 10).",
)
@_surface_errors
def run(db_path: Path | None, task_id: int, model: str | None, max_attempts: int | None) -> None:
    """Execute one task by id."""

    result = TODO_CONTROLLER.run_task(
        RunTaskCommand(
            db_path=db_path,
            task_id=task_id,
            model=model,
            max_attempts=max_attempts,
        ),
        emit=click.echo,
        on_countdown=_echo_countdown,
        output_sink=_echo_raw,
    )
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException(f"Task {task_id} was not completed.")


@claude_todo.command("worker")
@_DB_PATH_OPTION
@click.option("--group", "-g", default=None, help="Only process tasks from this group.")
@click.option(
    "--idle-timeout",
    type=click.IntRange(min=0),
    default=None,
    help="Stop after this many idle seconds; 0 never stops (default: CLAUDE_TODO_IDLE_TIMEOUT).",
)
@click.option(
    "--check-interval",
    type=click.IntRange(min=1),
    default=None,
    help="Seconds between polls (default: CLAUDE_TODO_CHECK_INTERVAL or 3).",
)
@click.option(
    "--max-attempts",
    type=click.IntRange(min=1),
    default=None,
    help="Max attempts per task on usage limits (default: CLAUDE_TODO_MAX_ATTEMPTS or 10).",
)
@click.option("--model", "-m", default=None, help="Override the Claude model.")
@_surface_errors
def worker(  # noqa: PLR0913
    db_path: Path | None,
    group: str | None,
    idle_timeout: int | None,
    check_interval: int | None,
    max_attempts: int | None,
    model: str | None,
) -> None:
    """Process queued tasks continuously."""

    _emit_lines(
        TODO_CONTROLLER.run_worker(
            WorkerCommand(
                db_path=db_path,
                group=group,
                idle_timeout_seconds=idle_timeout,
                check_interval_seconds=check_interval,
                max_attempts=max_attempts,
                model=model,
            ),
            emit=click.echo,
            on_countdown=_echo_countdown,
            output_sink=_echo_raw,
        ),
    )


@claude_todo.command("tasks")
@_DB_PATH_OPTION
@click.argument("group", required=False)
@click.option(
    "--status",
    "-s",
    "statuses",
    multiple=True,
    type=click.Choice([status.value for status in TaskStatus], case_sensitive=False),
    help="Status filter; repeatable (default: pending and in_progress).",
)
@click.option("--all", "-a", "show_all", is_flag=True, help="Show tasks in every status.")
@click.option(
    "--limit",
    "-l",
    type=click.IntRange(min=0, max=1000),
    default=50,
    show_default=True,
    help="Max tasks to print; 0 means no limit.",
)
@_surface_errors
def tasks(
    db_path: Path | None,
    group: str | None,
    statuses: tuple[str, ...],
    show_all: bool,
    limit: int,
) -> None:
    """List tasks, in-progress first."""

    _emit_lines(
        TODO_CONTROLLER.list_tasks(
            ListTasksCommand(
                db_path=db_path,
                group=group,
                statuses=tuple(status.lower() for status in statuses),
                show_all=show_all,
                limit=limit,
            ),
        ),
    )


@claude_todo.command("inspect")
@_DB_PATH_OPTION
@click.argument("task_id", type=int)
@_surface_errors
def inspect_task(db_path: Path | None, task_id: int) -> None:
    """Show one task with its event history."""

    _emit_lines(
        TODO_CONTROLLER.inspect_task(InspectTaskCommand(db_path=db_path, task_id=task_id)),
    )


@claude_todo.command("stuck")
@_DB_PATH_OPTION
@click.option(
    "--hours",
    type=click.IntRange(min=1),
    default=None,
    help="Threshold in hours (default: CLAUDE_TODO_STUCK_AFTER_HOURS or 24).",
)
@_surface_errors
def stuck(db_path: Path | None, hours: int | None) -> None:
    """List tasks that have been in progress for too long."""

    _emit_lines(TODO_CONTROLLER.stuck_tasks(StuckTasksCommand(db_path=db_path, hours=hours)))


@claude_todo.command("check-cli")
@_surface_errors
def check_cli() -> None:
    """Check that the configured Claude CLI can be launched."""

    result = TODO_CONTROLLER.check_cli()
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Claude CLI check failed.")


def _echo_countdown(remaining_seconds: int) -> None:
    click.echo(f"\rWaiting... {format_remaining(remaining_seconds)} remaining", nl=False)
    if remaining_seconds <= 1:
        click.echo("")


def _echo_raw(line: str) -> None:
    click.echo(line, nl=False)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    claude_todo()
