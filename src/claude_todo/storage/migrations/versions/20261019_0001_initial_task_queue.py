"""Create task queue and task event tables."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "claude_todo_tasks",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("group_name", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("priority", sa.String(length=10), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("executed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("result", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "claude_todo_tasks_idx_group_status",
        "claude_todo_tasks",
        ["group_name", "status"],
        unique=False,
    )
    op.create_index(
        "claude_todo_tasks_idx_status_created",
        "claude_todo_tasks",
        ["status", "created_at"],
        unique=False,
    )

    op.create_table(
        "claude_todo_task_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("task_id", sa.Integer(), nullable=False),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("status_from", sa.String(), nullable=True),
        sa.Column("status_to", sa.String(), nullable=True),
        sa.Column("details_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["task_id"], ["claude_todo_tasks.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_claude_todo_task_events_task_id",
        "claude_todo_task_events",
        ["task_id"],
        unique=False,
    )
    op.create_index(
        "ix_claude_todo_task_events_event_type",
        "claude_todo_task_events",
        ["event_type"],
        unique=False,
    )
    op.create_index(
        "claude_todo_task_events_idx_task_time",
        "claude_todo_task_events",
        ["task_id", "created_at"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("claude_todo_task_events_idx_task_time", table_name="claude_todo_task_events")
    op.drop_index("ix_claude_todo_task_events_event_type", table_name="claude_todo_task_events")
    op.drop_index("ix_claude_todo_task_events_task_id", table_name="claude_todo_task_events")
    op.drop_table("claude_todo_task_events")
    op.drop_index("claude_todo_tasks_idx_status_created", table_name="claude_todo_tasks")
    op.drop_index("claude_todo_tasks_idx_group_status", table_name="claude_todo_tasks")
    op.drop_table("claude_todo_tasks")
