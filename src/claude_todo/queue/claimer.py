"""Claim protocol: pick the next eligible task and win it via optimistic locking."""

from __future__ import annotations

import logging

from claude_todo.queue.errors import ClaimFailed, VersionConflict
from claude_todo.queue.models import Task, TaskStatus
from claude_todo.queue.shutdown import Sleeper
from claude_todo.queue.state_machine import apply_transition
from claude_todo.queue.store import TaskStore

logger = logging.getLogger(__name__)


class QueueClaimer:
    """Atomically move one PENDING task to IN_PROGRESS.

    A group with an IN_PROGRESS task is excluded from candidates, so at most
    one task per group runs at a time. Lost races surface as
    ``VersionConflict`` from the store and are retried with a linear backoff.
    """

    def __init__(
        self,
        store: TaskStore,
        *,
        sleeper: Sleeper | None = None,
        max_retries: int = 3,
        retry_backoff_seconds: float = 0.1,
    ) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        self.store = store
        self.sleeper = sleeper or Sleeper()
        self.max_retries = max_retries
        self.retry_backoff_seconds = retry_backoff_seconds

    def claim(self, group: str | None = None) -> Task | None:
        """Return the claimed task, ``None`` when nothing is eligible."""

        last_conflict: VersionConflict | None = None
        for attempt in range(1, self.max_retries + 1):
            busy = self.store.busy_groups()
            if group is not None and group in busy:
                return None
            candidate = self.store.find_next_candidate(group=group, exclude_groups=busy)
            if candidate is None:
                return None

            claimed = apply_transition(candidate, TaskStatus.IN_PROGRESS)
            try:
                task = self.store.save(claimed, expected_version=candidate.version)
            except VersionConflict as error:
                last_conflict = error
                logger.warning(
                    "Claim conflict on task %s (attempt %d/%d)",
                    candidate.id,
                    attempt,
                    self.max_retries,
                )
                if attempt < self.max_retries and not self.sleeper.sleep(
                    self.retry_backoff_seconds * attempt,
                ):
                    break
                continue

            logger.info("Claimed task %s", task)
            return task

        raise ClaimFailed(
            f"Failed to claim a task after {self.max_retries} attempts",
        ) from last_conflict
