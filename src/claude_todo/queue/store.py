"""Store interface consumed by the claimer, service and worker."""

from __future__ import annotations

from collections.abc import Collection
from typing import Protocol

from claude_todo.queue.models import Task, TaskCreate


class TaskStore(Protocol):
    """Persistence contract for tasks with optimistic locking."""

    def create(self, payload: TaskCreate) -> Task:
        """Insert a pending task and return it with its assigned id."""

    def find_by_id(self, task_id: int) -> Task | None:
        """Return the task or ``None``."""

    def save(self, task: Task, *, expected_version: int) -> Task:
        """Write ``task`` if the stored version equals ``expected_version``.

        Returns the stored task with its new version.  Raises
        ``VersionConflict`` on mismatch and ``TaskNotFound`` for unknown ids.
        """

    def busy_groups(self) -> set[str]:
        """Distinct groups that currently have an in-progress task."""

    def find_next_candidate(
        self,
        *,
        group: str | None,
        exclude_groups: Collection[str],
    ) -> Task | None:
        """Best pending task by priority desc, created_at asc."""
