"""
Create rate limit and scheduled job tables

Revision ID: create_auth_guard_tables
Revises:
Create Date: 2026-10-16 09:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "create_auth_guard_tables"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create rate limit and scheduled job tables"""

    # Fixed-window rate limit state, one row per key
    op.create_table(
        "rate_limits",
        sa.Column("key", sa.String(length=512), nullable=False),
        sa.Column("window_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("count", sa.Integer(), nullable=False),
        sa.Column("window_ms", sa.Integer(), nullable=False),
        sa.Column("limit", sa.Integer(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=True,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=True,
        ),
        sa.CheckConstraint("count >= 0", name="ck_rate_limits_count_non_negative"),
        sa.CheckConstraint("window_ms > 0", name="ck_rate_limits_window_positive"),
        sa.CheckConstraint('"limit" > 0', name="ck_rate_limits_limit_positive"),
        sa.PrimaryKeyConstraint("key"),
    )

    # One-shot and recurring jobs
    op.create_table(
        "scheduled_jobs",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("type", sa.String(length=64), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "recurring_interval",
            sa.Enum("DAILY", "WEEKLY", "MONTHLY", name="recurrenceinterval"),
            nullable=True,
        ),
        sa.Column("recurring_days", sa.JSON(), nullable=True),
        sa.Column("recurring_time", sa.String(length=5), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False),
        sa.Column(
            "status",
            sa.Enum(
                "SCHEDULED", "COMPLETED", "CANCELLED", "FAILED", name="jobstatus"
            ),
            nullable=False,
        ),
        sa.Column("last_run_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("retry_count", sa.Integer(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=True,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=True,
        ),
        sa.CheckConstraint("retry_count >= 0", name="ck_retry_count_non_negative"),
        sa.CheckConstraint(
            "(recurring_interval IS NULL AND recurring_time IS NULL) OR "
            "(recurring_interval IS NOT NULL AND recurring_time IS NOT NULL)",
            name="ck_recurrence_complete",
        ),
        sa.PrimaryKeyConstraint("id"),
    )

    # Create indexes
    op.create_index("ix_scheduled_jobs_type", "scheduled_jobs", ["type"])
    op.create_index("ix_scheduled_jobs_status", "scheduled_jobs", ["status"])
    op.create_index(
        "idx_scheduled_jobs_active_due", "scheduled_jobs", ["active", "scheduled_for"]
    )


def downgrade() -> None:
    """Drop rate limit and scheduled job tables"""

    op.drop_index("idx_scheduled_jobs_active_due", table_name="scheduled_jobs")
    op.drop_index("ix_scheduled_jobs_status", table_name="scheduled_jobs")
    op.drop_index("ix_scheduled_jobs_type", table_name="scheduled_jobs")
    op.drop_table("scheduled_jobs")
    op.drop_table("rate_limits")

    # Drop enums
    sa.Enum(name="jobstatus").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="recurrenceinterval").drop(op.get_bind(), checkfirst=True)
