"""Queue worker that executes claimed tasks through the Claude CLI."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from claude_todo.queue.backend.base import ExecutionOptions, TaskExecutor
from claude_todo.queue.claimer import QueueClaimer
from claude_todo.queue.errors import ExecutionError, RateLimitError
from claude_todo.queue.models import Task, TaskStatus
from claude_todo.queue.services import TodoService
from claude_todo.queue.shutdown import ShutdownToken, Sleeper, format_remaining

logger = logging.getLogger(__name__)

IDLE_TIMEOUT_REASON = "Idle timeout reached. Stopping worker."
MAX_ATTEMPTS_MESSAGE = "Max attempts reached"


@dataclass(slots=True)
class TaskRunOutcome:
    """Result of driving one task through execute/retry/finalize."""

    success: bool
    task: Task
    message: str
    attempts: int = 0


@dataclass(slots=True)
class WorkerRunSummary:
    """Aggregate worker counters for CLI reporting."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    idle_polls: int = 0
    stop_reason: str | None = None


class QueueWorker:
    """Claims tasks one at a time and runs them to a final state.

    Usage limits are retried in place: the task stays IN_PROGRESS while the
    worker waits for the resume time plus a random delay. Execution errors
    mark the task FAILED. A shutdown request is honoured at every wait, never
    in the middle of a CLI run.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        service: TodoService,
        claimer: QueueClaimer,
        executor: TaskExecutor,
        sleeper: Sleeper,
        random_delay_seconds: tuple[int, int] = (60, 300),
        stop_file: Path | None = None,
        stream_output: bool = False,
        clock: Callable[[], float] = time.monotonic,
        on_progress: Callable[[str], None] | None = None,
        on_countdown: Callable[[int], None] | None = None,
    ) -> None:
        self.service = service
        self.claimer = claimer
        self.executor = executor
        self.sleeper = sleeper
        self.random_delay_seconds = random_delay_seconds
        self.stop_file = stop_file
        self.stream_output = stream_output
        self._clock = clock
        self._on_progress = on_progress
        self._on_countdown = on_countdown

    @property
    def token(self) -> ShutdownToken:
        return self.sleeper.token

    def run_one(self, task: Task, *, max_attempts: int, model: str | None = None) -> TaskRunOutcome:
        """Single-task mode: claim ``task`` if needed, then execute with retries."""

        if task.status is TaskStatus.PENDING:
            task = self.service.update_status(task, TaskStatus.IN_PROGRESS)
            self._emit(f"Task {task.id} status updated from pending to in_progress")
        elif task.status is not TaskStatus.IN_PROGRESS:
            return TaskRunOutcome(
                success=False,
                task=task,
                message=(
                    f"Task {task.id} cannot be executed (current status: {task.status.value})"
                ),
            )
        return self.execute_with_retry(task, max_attempts=max_attempts, model=model)

    def execute_with_retry(
        self,
        task: Task,
        *,
        max_attempts: int,
        model: str | None = None,
    ) -> TaskRunOutcome:
        """Execute an IN_PROGRESS task until it completes, fails or runs out of attempts."""

        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

        options = ExecutionOptions(model=model, stream_output=self.stream_output)
        for attempt in range(1, max_attempts + 1):
            self._emit(f"Execution attempt {attempt}/{max_attempts}")
            try:
                result = self.executor.execute(task, options)
            except RateLimitError as error:
                if attempt >= max_attempts:
                    logger.warning(
                        "Task %s: usage limit on final attempt %d; left in progress",
                        task.id,
                        attempt,
                    )
                    return TaskRunOutcome(
                        success=False,
                        task=task,
                        message=MAX_ATTEMPTS_MESSAGE,
                        attempts=attempt,
                    )
                self._emit(str(error))
                if not self._wait_for_resume(error):
                    return TaskRunOutcome(
                        success=False,
                        task=task,
                        message="Shutdown requested while waiting for usage limit reset",
                        attempts=attempt,
                    )
                continue
            except ExecutionError as error:
                failed = self.service.update_status(task, TaskStatus.FAILED, result=str(error))
                return TaskRunOutcome(
                    success=False,
                    task=failed,
                    message=f"Task execution failed: {error}",
                    attempts=attempt,
                )
            except Exception as error:  # noqa: BLE001
                logger.exception("Unexpected error while executing task %s", task.id)
                failed = self.service.update_status(
                    task,
                    TaskStatus.FAILED,
                    result=f"Unexpected error: {error}",
                )
                return TaskRunOutcome(
                    success=False,
                    task=failed,
                    message=f"Unexpected error: {error}",
                    attempts=attempt,
                )

            completed = self.service.update_status(
                task,
                TaskStatus.COMPLETED,
                result=result.output,
            )
            return TaskRunOutcome(
                success=True,
                task=completed,
                message=f"Task completed successfully! {result.summary()}",
                attempts=attempt,
            )

        return TaskRunOutcome(
            success=False,
            task=task,
            message=MAX_ATTEMPTS_MESSAGE,
            attempts=max_attempts,
        )

    def run(
        self,
        *,
        group: str | None = None,
        check_interval_seconds: float = 3,
        idle_timeout_seconds: float = 0,
        max_attempts_per_task: int = 10,
        model: str | None = None,
    ) -> WorkerRunSummary:
        """Continuous mode: claim and execute until idle, stopped or shut down."""

        if check_interval_seconds <= 0:
            raise ValueError("check_interval_seconds must be > 0")
        summary = WorkerRunSummary()
        last_activity = self._clock()
        logger.info(
            "Worker started (group=%s, idle_timeout=%s, check_interval=%s)",
            group or "*",
            idle_timeout_seconds or "disabled",
            check_interval_seconds,
        )

        while not self.token.is_set():
            try:
                task = self.claimer.claim(group)
                if task is None:
                    summary.idle_polls += 1
                    reason = self._stop_reason(
                        idle_timeout_seconds=idle_timeout_seconds,
                        last_activity=last_activity,
                    )
                    if reason is not None:
                        summary.stop_reason = reason
                        self._emit(reason)
                        break
                    self.sleeper.sleep(check_interval_seconds)
                    continue

                last_activity = self._clock()
                self._emit(
                    f"Processing task #{task.id} "
                    f"(group={task.group}, priority={task.priority.value})",
                )
                outcome = self.execute_with_retry(
                    task,
                    max_attempts=max_attempts_per_task,
                    model=model,
                )
                summary.processed += 1
                if outcome.success:
                    summary.succeeded += 1
                else:
                    summary.failed += 1
                self._emit(f"Task #{task.id}: {outcome.message}")
            except Exception as error:  # noqa: BLE001
                logger.exception("Unexpected error in worker loop")
                self._emit(f"Unexpected error: {error}")
                self.sleeper.sleep(check_interval_seconds)

        if summary.stop_reason is None:
            summary.stop_reason = self.token.reason or "Shutdown requested"
        logger.info(
            "Worker stopped: %s (processed=%d succeeded=%d failed=%d)",
            summary.stop_reason,
            summary.processed,
            summary.succeeded,
            summary.failed,
        )
        return summary

    def _stop_reason(self, *, idle_timeout_seconds: float, last_activity: float) -> str | None:
        if idle_timeout_seconds > 0 and self._clock() - last_activity >= idle_timeout_seconds:
            return IDLE_TIMEOUT_REASON
        if self.stop_file is not None and self.stop_file.exists():
            return f"Stop file detected ({self.stop_file}). Stopping worker."
        return None

    def _wait_for_resume(self, error: RateLimitError) -> bool:
        wait_seconds = error.wait_seconds
        self._emit(f"Waiting for usage limit reset ({format_remaining(wait_seconds)})")
        if not self.sleeper.countdown(wait_seconds, on_tick=self._on_countdown):
            return False
        low, high = self.random_delay_seconds
        self._emit("Wait time completed. Adding random delay...")
        return self.sleeper.random_sleep(low, high)

    def _emit(self, message: str) -> None:
        logger.info(message)
        if self._on_progress is not None:
            self._on_progress(message)
