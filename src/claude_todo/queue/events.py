"""In-process task notifications."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

from claude_todo.queue.errors import ClaudeTodoError
from claude_todo.queue.models import Task

if TYPE_CHECKING:
    from claude_todo.queue.backend.base import ExecutionResult

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class TaskCreatedEvent:
    task: Task


@dataclass(slots=True, frozen=True)
class TaskExecutedEvent:
    task: Task
    result: ExecutionResult


@dataclass(slots=True, frozen=True)
class TaskFailedEvent:
    task: Task
    error: ClaudeTodoError


TaskEvent = TaskCreatedEvent | TaskExecutedEvent | TaskFailedEvent
EventT = TypeVar("EventT", TaskCreatedEvent, TaskExecutedEvent, TaskFailedEvent)


class TaskEventDispatcher:
    """Synchronous observer registry keyed by event class.

    Listeners run in subscription order on the dispatching thread. A listener
    exception propagates to the code that dispatched the event.
    """

    def __init__(self) -> None:
        self._listeners: dict[type, list[Callable[[object], None]]] = defaultdict(list)

    def subscribe(self, event_type: type[EventT], listener: Callable[[EventT], None]) -> None:
        self._listeners[event_type].append(listener)  # type: ignore[arg-type]

    def dispatch(self, event: TaskEvent) -> None:
        listeners = self._listeners.get(type(event), [])
        logger.debug("Dispatching %s to %d listener(s)", type(event).__name__, len(listeners))
        for listener in listeners:
            listener(event)
