"""Error taxonomy for queue, execution and worker failures."""

from __future__ import annotations

import math
import time

from claude_todo.queue.models import TaskStatus


class ClaudeTodoError(RuntimeError):
    """Base error for the task queue."""


class ConfigurationError(ClaudeTodoError, ValueError):
    """Invalid runtime configuration."""


class InvalidPriority(ClaudeTodoError, ValueError):
    """Producer supplied an unrecognized priority."""

    def __init__(self, priority: str) -> None:
        super().__init__(f"Invalid priority: {priority}")
        self.priority = priority


class InvalidTransition(ClaudeTodoError):
    """Requested status change is not allowed by the state machine."""

    def __init__(self, status_from: TaskStatus, status_to: TaskStatus) -> None:
        super().__init__(f"Cannot transition from {status_from.value} to {status_to.value}")
        self.status_from = status_from
        self.status_to = status_to


class TaskNotFound(ClaudeTodoError):
    """Lookup by id found nothing."""

    def __init__(self, task_id: int) -> None:
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id


class VersionConflict(ClaudeTodoError):
    """Optimistic-lock mismatch: the row changed since it was read."""

    def __init__(self, task_id: int, *, expected_version: int, actual_version: int | None) -> None:
        super().__init__(
            f"Version conflict for task {task_id}: "
            f"expected={expected_version} actual={actual_version}",
        )
        self.task_id = task_id
        self.expected_version = expected_version
        self.actual_version = actual_version


class ClaimFailed(ClaudeTodoError):
    """Claim retries were exhausted while version conflicts persisted."""


class ExecutionError(ClaudeTodoError):
    """The CLI could not be started or exited with a non-zero code."""

    def __init__(self, task_id: int | None, error: str, *, exit_code: int | None = None) -> None:
        super().__init__(f"Task {task_id if task_id is not None else 0} execution failed: {error}")
        self.task_id = task_id
        self.error = error
        self.exit_code = exit_code


class RateLimitError(ClaudeTodoError):
    """Transient usage-limit response; retry after ``resume_at``."""

    def __init__(self, resume_at: int, *, matched_pattern: str | None = None) -> None:
        wait_minutes = math.ceil(max(0, resume_at - int(time.time())) / 60)
        super().__init__(
            f"Claude AI usage limit reached. Please wait {wait_minutes} minutes before retrying.",
        )
        self.resume_at = resume_at
        self.matched_pattern = matched_pattern

    @property
    def wait_seconds(self) -> int:
        return max(0, self.resume_at - int(time.time()))
