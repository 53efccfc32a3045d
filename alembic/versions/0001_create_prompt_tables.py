"""create prompt task tables

Revision ID: 0001
Revises:
Create Date: 2025-07-21
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "prompt_tasks",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("original_prompt", sa.Text(), nullable=False),
        sa.Column("context", sa.Text(), nullable=True),
        sa.Column("target_audience", sa.String(length=500), nullable=True),
        sa.Column("provider", sa.String(length=50), nullable=False),
        sa.Column("ai_model", sa.String(length=255), nullable=True),
        sa.Column("max_rounds", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=20), server_default="queued", nullable=False),
        sa.Column("outcome", sa.String(length=20), nullable=True),
        sa.Column("progress", sa.Integer(), server_default="0", nullable=False),
        sa.Column("error_kind", sa.String(length=50), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_prompt_tasks_status", "prompt_tasks", ["status"])

    op.create_table(
        "multi_agent_sessions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("task_id", sa.String(), sa.ForeignKey("prompt_tasks.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("current_round", sa.Integer(), server_default="0", nullable=False),
        sa.Column("rounds_completed", sa.Integer(), server_default="0", nullable=False),
        sa.Column("rounds", postgresql.JSONB(astext_type=sa.Text()), server_default="[]", nullable=False),
        sa.Column("final_decision", sa.String(length=20), server_default="unset", nullable=False),
        sa.Column("session_metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "prompt_improvements",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("task_id", sa.String(), sa.ForeignKey("prompt_tasks.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("improved_prompt", sa.Text(), nullable=False),
        sa.Column("analysis", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("improvements_metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("provider_used", sa.String(length=50), nullable=True),
        sa.Column("ai_model_used", sa.String(length=255), nullable=True),
        sa.Column("quality_score", sa.Integer(), nullable=True),
        sa.Column("processing_time_seconds", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "task_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("task_id", sa.String(), sa.ForeignKey("prompt_tasks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("ts", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("progress", sa.Integer(), server_default="0", nullable=False),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
    )
    op.create_index("ix_task_events_task_id_ts", "task_events", ["task_id", "ts"])


def downgrade() -> None:
    op.drop_index("ix_task_events_task_id_ts", table_name="task_events")
    op.drop_table("task_events")
    op.drop_table("prompt_improvements")
    op.drop_table("multi_agent_sessions")
    op.drop_index("ix_prompt_tasks_status", table_name="prompt_tasks")
    op.drop_table("prompt_tasks")
