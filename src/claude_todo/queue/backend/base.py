"""Executor interface for running one task through an external CLI."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from claude_todo.queue.models import Task


@dataclass(slots=True)
class ExecutionOptions:
    """Per-call overrides for one execution."""

    model: str | None = None
    stream_output: bool = False


@dataclass(slots=True, frozen=True)
class ExecutionResult:
    """Outcome of one CLI run."""

    success: bool
    output: str
    error_output: str | None = None
    exit_code: int | None = None
    execution_time: float | None = None

    @classmethod
    def succeeded(cls, output: str, execution_time: float) -> ExecutionResult:
        return cls(
            success=True,
            output=output,
            error_output=None,
            exit_code=0,
            execution_time=execution_time,
        )

    @classmethod
    def failed(
        cls,
        output: str,
        error_output: str,
        exit_code: int,
        execution_time: float,
    ) -> ExecutionResult:
        return cls(
            success=False,
            output=output,
            error_output=error_output,
            exit_code=exit_code,
            execution_time=execution_time,
        )

    def summary(self) -> str:
        elapsed = self.execution_time or 0.0
        if self.success:
            return f"Success ({elapsed:.2f}s)"
        exit_code = self.exit_code if self.exit_code is not None else -1
        return f"Failed with exit code {exit_code} ({elapsed:.2f}s)"


class TaskExecutor(Protocol):
    """Protocol implemented by task executors."""

    def execute(self, task: Task, options: ExecutionOptions | None = None) -> ExecutionResult:
        """Run ``task`` to completion.

        Raises ``RateLimitError`` for usage-limit responses and
        ``ExecutionError`` for launch failures or non-zero exits.
        """

    def is_available(self) -> bool:
        """Probe whether the CLI can be launched."""
