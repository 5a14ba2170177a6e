"""SQLModel ORM tables for the task queue."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, Text
from sqlmodel import Field, SQLModel


class TodoTaskRow(SQLModel, table=True):
    __tablename__ = "claude_todo_tasks"  # type: ignore[bad-override]
    __table_args__ = (
        Index("claude_todo_tasks_idx_group_status", "group_name", "status"),
        Index("claude_todo_tasks_idx_status_created", "status", "created_at"),
    )

    id: int | None = Field(default=None, primary_key=True)
    group_name: str = Field(sa_column=Column(String(100), nullable=False))
    description: str = Field(sa_column=Column(Text, nullable=False))
    status: str = Field(sa_column=Column(String(20), nullable=False))
    priority: str = Field(sa_column=Column(String(10), nullable=False))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    executed_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    completed_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    result: str | None = Field(default=None, sa_column=Column(Text))
    version: int = Field(default=1)


class TodoTaskEventRow(SQLModel, table=True):
    __tablename__ = "claude_todo_task_events"  # type: ignore[bad-override]
    __table_args__ = (Index("claude_todo_task_events_idx_task_time", "task_id", "created_at"),)

    id: int | None = Field(default=None, primary_key=True)
    task_id: int = Field(
        sa_column=Column(
            ForeignKey("claude_todo_tasks.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    event_type: str = Field(index=True)
    status_from: str | None = None
    status_to: str | None = None
    details_json: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
