"""Task status transition rules.

The table below is the only description of legal status changes; every code
path that moves a task goes through :func:`apply_transition`.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime

from claude_todo.queue.errors import InvalidTransition
from claude_todo.queue.models import Task, TaskStatus
from claude_todo.storage.common import utc_now

_ALLOWED_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: frozenset({TaskStatus.IN_PROGRESS, TaskStatus.FAILED}),
    TaskStatus.IN_PROGRESS: frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED}),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.FAILED: frozenset(),
}

TERMINAL_STATUSES: frozenset[TaskStatus] = frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED})


def can_transition(status_from: TaskStatus, status_to: TaskStatus) -> bool:
    """Return whether ``status_from -> status_to`` is a legal move."""

    return status_to in _ALLOWED_TRANSITIONS[status_from]


def ensure_transition(status_from: TaskStatus, status_to: TaskStatus) -> None:
    """Raise :class:`InvalidTransition` unless the move is legal."""

    if not can_transition(status_from, status_to):
        raise InvalidTransition(status_from, status_to)


def is_terminal(status: TaskStatus) -> bool:
    return status in TERMINAL_STATUSES


def apply_transition(
    task: Task,
    status_to: TaskStatus,
    *,
    result: str | None = None,
    now: datetime | None = None,
) -> Task:
    """Return a copy of ``task`` moved to ``status_to`` with timestamps stamped.

    ``updated_at`` is set on every transition, ``executed_at`` when the task is
    claimed and ``completed_at`` only on completion.  The store version is left
    untouched; it changes when the copy is saved.
    """

    ensure_transition(task.status, status_to)
    stamp = now or utc_now()
    changes: dict[str, object] = {"status": status_to, "updated_at": stamp}
    if status_to is TaskStatus.IN_PROGRESS:
        changes["executed_at"] = stamp
    if status_to is TaskStatus.COMPLETED:
        changes["completed_at"] = stamp
    if result is not None:
        changes["result"] = result
    return replace(task, **changes)
