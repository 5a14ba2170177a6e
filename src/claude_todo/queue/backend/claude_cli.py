"""Subprocess-based executor for the Claude CLI."""

from __future__ import annotations

import logging
import os
import subprocess
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import IO

from claude_todo.config import ExecutorSettings
from claude_todo.queue.backend.base import ExecutionOptions, ExecutionResult
from claude_todo.queue.backend.stream_json import extract_text
from claude_todo.queue.errors import ExecutionError, RateLimitError
from claude_todo.queue.events import TaskEventDispatcher, TaskExecutedEvent, TaskFailedEvent
from claude_todo.queue.failure_classifier import FailureKind, classify_failure
from claude_todo.queue.models import Task

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _ProcessOutput:
    stdout: str
    stderr: str
    text: str
    exit_code: int


class ClaudeCliExecutor:
    """Run one task description through ``claude --print`` and classify the outcome.

    The CLI runs without a timeout and in its own session, so a terminal
    Ctrl-C reaches only the worker and never the running CLI. stdout is
    consumed line by line while the process runs and stderr is drained on a
    helper thread, so neither pipe can fill up and block the child.
    """

    def __init__(
        self,
        settings: ExecutorSettings,
        *,
        dispatcher: TaskEventDispatcher | None = None,
        output_sink: Callable[[str], None] | None = None,
    ) -> None:
        self.settings = settings
        self.dispatcher = dispatcher or TaskEventDispatcher()
        self.output_sink = output_sink

    def resolve_model(self, options: ExecutionOptions | None = None) -> str:
        return (options.model if options is not None else None) or self.settings.model

    def build_command(self, task: Task, options: ExecutionOptions | None = None) -> list[str]:
        model = self.resolve_model(options)
        return [
            self.settings.cli_path,
            "--dangerously-skip-permissions",
            "--print",
            "--output-format=stream-json",
            f"--model={model}",
            "--verbose",
            *self.settings.extra_args,
            task.description,
        ]

    def execute(self, task: Task, options: ExecutionOptions | None = None) -> ExecutionResult:
        """Execute ``task`` and return its text output.

        Raises ``RateLimitError`` when the output carries a usage-limit
        signature (regardless of exit code) and ``ExecutionError`` when the
        CLI cannot be started or exits non-zero.
        """

        options = options or ExecutionOptions()
        command = self.build_command(task, options)
        logger.info(
            "Executing Claude CLI for task %s (model=%s)",
            task.id,
            self.resolve_model(options),
        )

        started = time.monotonic()
        try:
            output = self._run_process(command, stream_output=options.stream_output)
        except (OSError, ValueError) as error:
            failure = ExecutionError(
                task.id,
                f"Failed to start {self.settings.cli_path}: {error}",
            )
            self.dispatcher.dispatch(TaskFailedEvent(task=task, error=failure))
            raise failure from error
        execution_time = time.monotonic() - started

        classification = classify_failure(
            exit_code=output.exit_code,
            stdout=output.stdout,
            stderr=output.stderr,
        )
        if classification is not None and classification.kind is FailureKind.RATE_LIMIT:
            resume_at = classification.resume_at or int(time.time())
            logger.warning(
                "Usage limit hit for task %s (pattern=%r, resume_at=%d)",
                task.id,
                classification.matched_pattern,
                resume_at,
            )
            raise RateLimitError(resume_at, matched_pattern=classification.matched_pattern)

        if classification is not None:
            failure = ExecutionError(
                task.id,
                output.stderr.strip() or "Unknown error",
                exit_code=output.exit_code,
            )
            logger.error(
                "Claude CLI exited with code %d for task %s",
                output.exit_code,
                task.id,
            )
            self.dispatcher.dispatch(TaskFailedEvent(task=task, error=failure))
            raise failure

        result = ExecutionResult.succeeded(output.text, execution_time)
        logger.info("Task %s executed: %s", task.id, result.summary())
        self.dispatcher.dispatch(TaskExecutedEvent(task=task, result=result))
        return result

    def is_available(self) -> bool:
        return self.version() is not None

    def version(self) -> str | None:
        """Return ``claude --version`` output, ``None`` when the check fails."""

        try:
            completed = subprocess.run(  # noqa: S603
                [self.settings.cli_path, "--version"],
                capture_output=True,
                text=True,
                timeout=self.settings.availability_timeout_seconds,
                cwd=self.settings.project_root,
                env=os.environ.copy(),
                check=False,
            )
        except (OSError, subprocess.SubprocessError) as error:
            logger.warning("Failed to check Claude CLI availability: %s", error)
            return None
        if completed.returncode != 0:
            logger.warning(
                "Claude CLI availability check exited with code %d",
                completed.returncode,
            )
            return None
        return completed.stdout.strip()

    def _run_process(self, command: list[str], *, stream_output: bool) -> _ProcessOutput:
        stdout_lines: list[str] = []
        stderr_lines: list[str] = []
        text_parts: list[str] = []

        with subprocess.Popen(  # noqa: S603
            command,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
            cwd=self.settings.project_root,
            env=os.environ.copy(),
            start_new_session=True,
        ) as process:
            stderr_reader = threading.Thread(
                target=_drain_stream,
                args=(process.stderr, stderr_lines),
                name="claude-cli-stderr",
                daemon=True,
            )
            stderr_reader.start()

            if process.stdout is not None:
                for line in process.stdout:
                    stdout_lines.append(line)
                    logger.debug("Claude CLI stdout: %s", line.rstrip("\n"))
                    text_parts.append(extract_text(line))
                    if stream_output and self.output_sink is not None:
                        self.output_sink(line)

            exit_code = process.wait()
            stderr_reader.join()

        return _ProcessOutput(
            stdout="".join(stdout_lines),
            stderr="".join(stderr_lines),
            text="".join(text_parts).strip(),
            exit_code=exit_code,
        )


def _drain_stream(stream: IO[str] | None, sink: list[str]) -> None:
    if stream is None:
        return
    for line in stream:
        logger.debug("Claude CLI stderr: %s", line.rstrip("\n"))
        sink.append(line)
