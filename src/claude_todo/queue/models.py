"""Domain models for the task queue."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class TaskStatus(str, Enum):
    """Durable task lifecycle states."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class TaskPriority(str, Enum):
    """Queue ordering hint; never consulted by transition logic."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"

    @property
    def weight(self) -> int:
        return _PRIORITY_WEIGHTS[self]


_PRIORITY_WEIGHTS: dict[TaskPriority, int] = {
    TaskPriority.LOW: 1,
    TaskPriority.NORMAL: 2,
    TaskPriority.HIGH: 3,
}


@dataclass(slots=True)
class TaskCreate:
    """Input payload for enqueuing a task."""

    group: str
    description: str
    priority: TaskPriority = TaskPriority.NORMAL


@dataclass(slots=True)
class Task:
    """One unit of work as read from the store."""

    id: int | None
    group: str
    description: str
    status: TaskStatus
    priority: TaskPriority
    created_at: datetime
    updated_at: datetime | None = None
    executed_at: datetime | None = None
    completed_at: datetime | None = None
    result: str | None = None
    version: int = 1

    def __str__(self) -> str:
        return f"[{self.group}] {self.id if self.id is not None else 'new'} - {self.status.value}"


@dataclass(slots=True)
class TaskEventView:
    """Task event entry for the audit trail."""

    event_id: int
    task_id: int
    event_type: str
    status_from: TaskStatus | None
    status_to: TaskStatus | None
    created_at: datetime
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class TaskDetails:
    """Task with its event stream."""

    task: Task
    events: list[TaskEventView]
