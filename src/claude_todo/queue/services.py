"""Use-case services for the task queue."""

from __future__ import annotations

import logging

from claude_todo.queue.errors import InvalidPriority, TaskNotFound
from claude_todo.queue.events import TaskCreatedEvent, TaskEventDispatcher
from claude_todo.queue.models import Task, TaskCreate, TaskPriority, TaskStatus
from claude_todo.queue.state_machine import apply_transition
from claude_todo.queue.store import TaskStore

logger = logging.getLogger(__name__)

MAX_GROUP_LENGTH = 100


def parse_priority(value: str | TaskPriority) -> TaskPriority:
    """Resolve a priority name, raising :class:`InvalidPriority` for unknown ones."""

    if isinstance(value, TaskPriority):
        return value
    try:
        return TaskPriority(value.strip().lower())
    except ValueError as error:
        raise InvalidPriority(value) from error


class TodoService:
    """Producer side of the queue plus single-task status updates."""

    def __init__(self, *, store: TaskStore, dispatcher: TaskEventDispatcher | None = None) -> None:
        self.store = store
        self.dispatcher = dispatcher or TaskEventDispatcher()

    def push(
        self,
        group: str,
        description: str,
        priority: str | TaskPriority = TaskPriority.NORMAL,
    ) -> Task:
        """Enqueue a new PENDING task and notify ``TaskCreatedEvent`` listeners."""

        resolved_priority = parse_priority(priority)
        group = group.strip()
        if not group:
            raise ValueError("Task group must not be blank.")
        if len(group) > MAX_GROUP_LENGTH:
            raise ValueError(f"Task group must be at most {MAX_GROUP_LENGTH} characters.")
        if not description.strip():
            raise ValueError("Task description must not be blank.")

        task = self.store.create(
            TaskCreate(group=group, description=description, priority=resolved_priority),
        )
        logger.info("Task created: %s (priority=%s)", task, task.priority.value)
        self.dispatcher.dispatch(TaskCreatedEvent(task=task))
        return task

    def get_task(self, task_id: int) -> Task:
        task = self.store.find_by_id(task_id)
        if task is None:
            raise TaskNotFound(task_id)
        return task

    def update_status(self, task: Task, status: TaskStatus, *, result: str | None = None) -> Task:
        """Move ``task`` through the state machine and persist it."""

        updated = apply_transition(task, status, result=result)
        saved = self.store.save(updated, expected_version=task.version)
        logger.info("Task %s: %s -> %s", saved.id, task.status.value, saved.status.value)
        return saved
