"""Persistent task store backed by SQLModel + SQLite."""

from __future__ import annotations

import json
from collections.abc import Collection
from datetime import datetime, timedelta
from pathlib import Path

from sqlalchemy import case, func, or_
from sqlalchemy import update as sa_update
from sqlmodel import Session, col, select

from claude_todo.queue.errors import TaskNotFound, VersionConflict
from claude_todo.queue.models import (
    Task,
    TaskCreate,
    TaskDetails,
    TaskEventView,
    TaskPriority,
    TaskStatus,
)
from claude_todo.storage.alembic_runner import upgrade_head
from claude_todo.storage.common import (
    build_sqlite_engine,
    to_db_datetime,
    to_utc_aware_datetime,
    utc_now,
)
from claude_todo.storage.sqlmodel_models import TodoTaskEventRow, TodoTaskRow

_STATUS_LIST_RANK = case(
    {
        TaskStatus.IN_PROGRESS.value: 1,
        TaskStatus.PENDING.value: 2,
        TaskStatus.COMPLETED.value: 3,
        TaskStatus.FAILED.value: 4,
    },
    value=col(TodoTaskRow.status),
    else_=5,
)
_PRIORITY_RANK = case(
    {priority.value: priority.weight for priority in TaskPriority},
    value=col(TodoTaskRow.priority),
    else_=0,
)


class TaskRepository:
    """Queue persistence facade implementing the ``TaskStore`` contract.

    Every update is a compare-and-swap on the ``version`` column: the row is
    written only while it still carries the version the caller read, and the
    write bumps it by one.
    """

    def __init__(self, db_path: Path, *, sqlite_busy_timeout_ms: int = 5_000) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=sqlite_busy_timeout_ms)

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations."""

        upgrade_head(self.db_path)

    def create(self, payload: TaskCreate) -> Task:
        """Insert a pending task."""

        now = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            row = TodoTaskRow(
                group_name=payload.group,
                description=payload.description,
                status=TaskStatus.PENDING.value,
                priority=payload.priority.value,
                created_at=now,
                version=1,
            )
            session.add(row)
            session.flush()
            if row.id is None:
                raise RuntimeError("Task insert did not return an id.")
            self._add_event(
                session=session,
                task_id=row.id,
                event_type="created",
                status_from=None,
                status_to=TaskStatus.PENDING,
                details={"group": payload.group, "priority": payload.priority.value},
            )
            session.commit()
            session.refresh(row)
            return _to_task(row)

    def find_by_id(self, task_id: int) -> Task | None:
        with Session(self.engine) as session:
            row = session.get(TodoTaskRow, task_id)
            return _to_task(row) if row is not None else None

    def save(self, task: Task, *, expected_version: int) -> Task:
        """Compare-and-swap write of all mutable task fields."""

        if task.id is None:
            raise ValueError("Cannot save a task without an id; use create().")

        # Read in its own transaction: a WAL read snapshot held open across
        # the UPDATE would fail with SQLITE_BUSY once another writer commits.
        stored = self.find_by_id(task.id)
        if stored is None:
            raise TaskNotFound(task.id)
        if stored.version != expected_version:
            raise VersionConflict(
                task.id,
                expected_version=expected_version,
                actual_version=stored.version,
            )

        new_version = expected_version + 1
        with Session(self.engine) as session:
            result = session.exec(
                sa_update(TodoTaskRow)
                .where(
                    col(TodoTaskRow.id) == task.id,
                    col(TodoTaskRow.version) == expected_version,
                )
                .values(
                    group_name=task.group,
                    description=task.description,
                    status=task.status.value,
                    priority=task.priority.value,
                    updated_at=_optional_db_datetime(task.updated_at),
                    executed_at=_optional_db_datetime(task.executed_at),
                    completed_at=_optional_db_datetime(task.completed_at),
                    result=task.result,
                    version=new_version,
                )
                .execution_options(synchronize_session=False),
            )
            if result.rowcount != 1:
                session.rollback()
                raise VersionConflict(
                    task.id,
                    expected_version=expected_version,
                    actual_version=None,
                )
            if stored.status is not task.status:
                claimed = (
                    stored.status is TaskStatus.PENDING and task.status is TaskStatus.IN_PROGRESS
                )
                self._add_event(
                    session=session,
                    task_id=task.id,
                    event_type="claimed" if claimed else "status_changed",
                    status_from=stored.status,
                    status_to=task.status,
                    details={"version": new_version, "has_result": task.result is not None},
                )
            session.commit()

        return Task(
            id=task.id,
            group=task.group,
            description=task.description,
            status=task.status,
            priority=task.priority,
            created_at=task.created_at,
            updated_at=task.updated_at,
            executed_at=task.executed_at,
            completed_at=task.completed_at,
            result=task.result,
            version=new_version,
        )

    def busy_groups(self) -> set[str]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(TodoTaskRow.group_name)
                .where(TodoTaskRow.status == TaskStatus.IN_PROGRESS.value)
                .distinct(),
            ).all()
        return set(rows)

    def find_next_candidate(
        self,
        *,
        group: str | None,
        exclude_groups: Collection[str],
    ) -> Task | None:
        statement = select(TodoTaskRow).where(TodoTaskRow.status == TaskStatus.PENDING.value)
        if group is not None:
            statement = statement.where(TodoTaskRow.group_name == group)
        if exclude_groups:
            statement = statement.where(col(TodoTaskRow.group_name).not_in(list(exclude_groups)))
        statement = statement.order_by(
            _PRIORITY_RANK.desc(),
            col(TodoTaskRow.created_at).asc(),
            col(TodoTaskRow.id).asc(),
        ).limit(1)
        with Session(self.engine) as session:
            row = session.exec(statement).one_or_none()
            return _to_task(row) if row is not None else None

    def list_tasks(
        self,
        *,
        group: str | None = None,
        statuses: Collection[TaskStatus] | None = None,
        limit: int = 50,
    ) -> list[Task]:
        """List tasks, in-progress first, then by priority and recency."""

        statement = select(TodoTaskRow)
        if group is not None:
            statement = statement.where(TodoTaskRow.group_name == group)
        if statuses:
            statement = statement.where(
                col(TodoTaskRow.status).in_([status.value for status in statuses]),
            )
        statement = statement.order_by(
            _STATUS_LIST_RANK.asc(),
            _PRIORITY_RANK.desc(),
            col(TodoTaskRow.created_at).desc(),
        )
        if limit > 0:
            statement = statement.limit(limit)
        with Session(self.engine) as session:
            rows = session.exec(statement).all()
        return [_to_task(row) for row in rows]

    def list_group_names(self) -> list[str]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(TodoTaskRow.group_name).distinct().order_by(col(TodoTaskRow.group_name)),
            ).all()
        return list(rows)

    def stats_by_group(self, group: str) -> dict[TaskStatus, int]:
        """Count tasks per status for one group."""

        stats = dict.fromkeys(TaskStatus, 0)
        with Session(self.engine) as session:
            rows = session.exec(
                select(TodoTaskRow.status, func.count())
                .where(TodoTaskRow.group_name == group)
                .group_by(col(TodoTaskRow.status)),
            ).all()
        for status_value, count in rows:
            stats[TaskStatus(status_value)] = int(count)
        return stats

    def find_stuck_tasks(self, *, older_than: timedelta) -> list[Task]:
        """In-progress tasks untouched for longer than ``older_than``.

        Nothing requeues these automatically; a stuck task keeps its whole
        group out of the claim candidates until an operator resolves it.
        """

        threshold = to_db_datetime(utc_now() - older_than)
        statement = (
            select(TodoTaskRow)
            .where(
                TodoTaskRow.status == TaskStatus.IN_PROGRESS.value,
                or_(
                    col(TodoTaskRow.updated_at) < threshold,
                    col(TodoTaskRow.updated_at).is_(None) & (col(TodoTaskRow.created_at) < threshold),
                ),
            )
            .order_by(col(TodoTaskRow.created_at).asc())
        )
        with Session(self.engine) as session:
            rows = session.exec(statement).all()
        return [_to_task(row) for row in rows]

    def get_task_details(self, *, task_id: int) -> TaskDetails | None:
        """Return task details with event stream."""

        with Session(self.engine) as session:
            row = session.get(TodoTaskRow, task_id)
            if row is None:
                return None
            event_rows = session.exec(
                select(TodoTaskEventRow)
                .where(TodoTaskEventRow.task_id == task_id)
                .order_by(col(TodoTaskEventRow.created_at).asc(), col(TodoTaskEventRow.id).asc()),
            ).all()
            task = _to_task(row)

        events: list[TaskEventView] = []
        for event_row in event_rows:
            details = {}
            if event_row.details_json:
                parsed = json.loads(event_row.details_json)
                if isinstance(parsed, dict):
                    details = parsed
            events.append(
                TaskEventView(
                    event_id=event_row.id or 0,
                    task_id=event_row.task_id,
                    event_type=event_row.event_type,
                    status_from=(
                        TaskStatus(event_row.status_from)
                        if event_row.status_from is not None
                        else None
                    ),
                    status_to=(
                        TaskStatus(event_row.status_to) if event_row.status_to is not None else None
                    ),
                    created_at=to_utc_aware_datetime(event_row.created_at),
                    details=details,
                ),
            )
        return TaskDetails(task=task, events=events)

    def _add_event(  # noqa: PLR0913
        self,
        *,
        session: Session,
        task_id: int,
        event_type: str,
        status_from: TaskStatus | None,
        status_to: TaskStatus | None,
        details: dict[str, object],
    ) -> None:
        session.add(
            TodoTaskEventRow(
                task_id=task_id,
                event_type=event_type,
                status_from=status_from.value if status_from is not None else None,
                status_to=status_to.value if status_to is not None else None,
                details_json=json.dumps(details, ensure_ascii=False, sort_keys=True)
                if details
                else None,
                created_at=to_db_datetime(utc_now()),
            ),
        )


def _optional_db_datetime(value: datetime | None) -> datetime | None:
    return to_db_datetime(value) if value is not None else None


def _optional_aware_datetime(value: datetime | None) -> datetime | None:
    return to_utc_aware_datetime(value) if value is not None else None


def _to_task(row: TodoTaskRow) -> Task:
    return Task(
        id=row.id,
        group=row.group_name,
        description=row.description,
        status=TaskStatus(row.status),
        priority=TaskPriority(row.priority),
        created_at=to_utc_aware_datetime(row.created_at),
        updated_at=_optional_aware_datetime(row.updated_at),
        executed_at=_optional_aware_datetime(row.executed_at),
        completed_at=_optional_aware_datetime(row.completed_at),
        result=row.result,
        version=row.version,
    )
