from __future__ import annotations

import sqlite3
from dataclasses import replace
from datetime import timedelta
from pathlib import Path

import allure
import pytest
from sqlalchemy import update as sa_update
from sqlmodel import Session, col

from claude_todo.queue.errors import TaskNotFound, VersionConflict
from claude_todo.queue.models import TaskCreate, TaskPriority, TaskStatus
from claude_todo.queue.repository import TaskRepository
from claude_todo.queue.state_machine import apply_transition
from claude_todo.storage.common import to_db_datetime, utc_now
from claude_todo.storage.sqlmodel_models import TodoTaskRow

pytestmark = [
    allure.epic("Task Queue"),
    allure.feature("Task Store"),
]


def test_init_schema_applies_migrations_to_head(tmp_path: Path) -> None:
    db_path = tmp_path / "migrations.db"
    repository = TaskRepository(db_path)
    repository.init_schema()
    repository.init_schema()
    repository.close()

    with sqlite3.connect(db_path) as connection:
        version = connection.execute("SELECT version_num FROM alembic_version").fetchone()
        tables = {
            row[0]
            for row in connection.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
        }
    assert version == ("20261019_0001",)
    assert {"claude_todo_tasks", "claude_todo_task_events"} <= tables


def test_create_assigns_id_and_initial_state(repository: TaskRepository) -> None:
    task = repository.create(
        TaskCreate(group="backend", description="Fix login", priority=TaskPriority.HIGH),
    )

    assert task.id is not None
    assert task.status is TaskStatus.PENDING
    assert task.priority is TaskPriority.HIGH
    assert task.version == 1
    assert task.created_at.tzinfo is not None
    assert task.updated_at is None
    assert task.completed_at is None
    assert repository.find_by_id(task.id) == task


def test_find_by_id_returns_none_for_unknown_task(repository: TaskRepository) -> None:
    assert repository.find_by_id(404) is None


def test_save_bumps_version_and_persists_fields(repository: TaskRepository) -> None:
    task = repository.create(TaskCreate(group="g", description="d"))
    claimed = apply_transition(task, TaskStatus.IN_PROGRESS)

    saved = repository.save(claimed, expected_version=task.version)

    assert saved.version == 2
    stored = repository.find_by_id(task.id)
    assert stored is not None
    assert stored.version == 2
    assert stored.status is TaskStatus.IN_PROGRESS
    assert stored.executed_at is not None


def test_save_rejects_stale_version(repository: TaskRepository) -> None:
    task = repository.create(TaskCreate(group="g", description="d"))
    repository.save(apply_transition(task, TaskStatus.IN_PROGRESS), expected_version=1)

    with pytest.raises(VersionConflict) as error:
        repository.save(apply_transition(task, TaskStatus.FAILED), expected_version=1)

    assert error.value.expected_version == 1
    assert error.value.actual_version == 2
    stored = repository.find_by_id(task.id)
    assert stored is not None
    assert stored.status is TaskStatus.IN_PROGRESS


def test_save_unknown_task_raises_not_found(repository: TaskRepository) -> None:
    task = repository.create(TaskCreate(group="g", description="d"))

    with pytest.raises(TaskNotFound):
        repository.save(replace(task, id=999), expected_version=1)


def test_busy_groups_lists_groups_with_in_progress_tasks(repository: TaskRepository) -> None:
    running = repository.create(TaskCreate(group="alpha", description="a"))
    repository.create(TaskCreate(group="beta", description="b"))
    repository.save(apply_transition(running, TaskStatus.IN_PROGRESS), expected_version=1)

    assert repository.busy_groups() == {"alpha"}


def test_find_next_candidate_orders_by_priority_then_age(repository: TaskRepository) -> None:
    low = repository.create(TaskCreate(group="a", description="low", priority=TaskPriority.LOW))
    first_normal = repository.create(TaskCreate(group="b", description="normal 1"))
    repository.create(TaskCreate(group="c", description="normal 2"))
    high = repository.create(
        TaskCreate(group="d", description="high", priority=TaskPriority.HIGH),
    )

    candidate = repository.find_next_candidate(group=None, exclude_groups=set())
    assert candidate is not None
    assert candidate.id == high.id

    candidate = repository.find_next_candidate(group=None, exclude_groups={"d"})
    assert candidate is not None
    assert candidate.id == first_normal.id

    candidate = repository.find_next_candidate(group="a", exclude_groups=set())
    assert candidate is not None
    assert candidate.id == low.id

    assert repository.find_next_candidate(group="a", exclude_groups={"a"}) is None


def test_list_tasks_orders_in_progress_first(repository: TaskRepository) -> None:
    pending = repository.create(TaskCreate(group="g", description="pending"))
    running = repository.create(TaskCreate(group="g", description="running"))
    repository.save(apply_transition(running, TaskStatus.IN_PROGRESS), expected_version=1)

    tasks = repository.list_tasks()
    assert [task.id for task in tasks] == [running.id, pending.id]

    only_pending = repository.list_tasks(statuses=[TaskStatus.PENDING])
    assert [task.id for task in only_pending] == [pending.id]


def test_stats_and_group_names(repository: TaskRepository) -> None:
    first = repository.create(TaskCreate(group="web", description="1"))
    repository.create(TaskCreate(group="web", description="2"))
    repository.create(TaskCreate(group="api", description="3"))
    repository.save(apply_transition(first, TaskStatus.FAILED), expected_version=1)

    stats = repository.stats_by_group("web")

    assert stats[TaskStatus.PENDING] == 1
    assert stats[TaskStatus.FAILED] == 1
    assert stats[TaskStatus.IN_PROGRESS] == 0
    assert repository.list_group_names() == ["api", "web"]


def test_task_details_include_event_trail(repository: TaskRepository) -> None:
    task = repository.create(TaskCreate(group="g", description="d"))
    claimed = repository.save(apply_transition(task, TaskStatus.IN_PROGRESS), expected_version=1)
    repository.save(
        apply_transition(claimed, TaskStatus.COMPLETED, result="ok"),
        expected_version=claimed.version,
    )

    details = repository.get_task_details(task_id=task.id)

    assert details is not None
    assert details.task.status is TaskStatus.COMPLETED
    assert details.task.completed_at is not None
    assert [event.event_type for event in details.events] == [
        "created",
        "claimed",
        "status_changed",
    ]
    assert details.events[-1].status_from is TaskStatus.IN_PROGRESS
    assert details.events[-1].status_to is TaskStatus.COMPLETED
    assert repository.get_task_details(task_id=12345) is None


def test_find_stuck_tasks_uses_last_update_time(repository: TaskRepository) -> None:
    stale = repository.create(TaskCreate(group="a", description="stale"))
    fresh = repository.create(TaskCreate(group="b", description="fresh"))
    repository.save(apply_transition(stale, TaskStatus.IN_PROGRESS), expected_version=1)
    repository.save(apply_transition(fresh, TaskStatus.IN_PROGRESS), expected_version=1)

    long_ago = to_db_datetime(utc_now() - timedelta(hours=30))
    with Session(repository.engine) as session:
        session.exec(
            sa_update(TodoTaskRow)
            .where(col(TodoTaskRow.id) == stale.id)
            .values(updated_at=long_ago, executed_at=long_ago),
        )
        session.commit()

    stuck = repository.find_stuck_tasks(older_than=timedelta(hours=24))

    assert [task.id for task in stuck] == [stale.id]
