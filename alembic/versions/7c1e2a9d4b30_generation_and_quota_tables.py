"""Create generation job, stage output and quota tables.

Revision ID: 7c1e2a9d4b30
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "7c1e2a9d4b30"
down_revision = None
branch_labels = None
depends_on = None

_quota_period = postgresql.ENUM("DAY", "WEEK", "MONTH", name="quota_period", create_type=False)


def upgrade() -> None:
  """Upgrade schema."""
  _quota_period.create(op.get_bind(), checkfirst=True)

  op.create_table(
    "generation_jobs",
    sa.Column("job_id", sa.String(), nullable=False),
    sa.Column("subject", sa.String(), nullable=False),
    sa.Column("status", sa.String(), nullable=False),
    sa.Column("completion_percentage", sa.Integer(), server_default="0", nullable=False),
    sa.Column("error_message", sa.Text(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.CheckConstraint("status IN ('pending', 'running', 'complete', 'failed')", name="ck_generation_jobs_status"),
    sa.CheckConstraint("completion_percentage BETWEEN 0 AND 100", name="ck_generation_jobs_completion"),
    sa.PrimaryKeyConstraint("job_id"),
  )
  op.create_index(op.f("ix_generation_jobs_subject"), "generation_jobs", ["subject"], unique=False)

  op.create_table(
    "generation_stage_outputs",
    sa.Column("job_id", sa.String(), nullable=False),
    sa.Column("stage_index", sa.Integer(), nullable=False),
    sa.Column("stage_key", sa.String(), nullable=False),
    sa.Column("value_json", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("recovered_by", sa.String(), nullable=False),
    sa.Column("from_fallback", sa.Boolean(), server_default="false", nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.ForeignKeyConstraint(["job_id"], ["generation_jobs.job_id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("job_id", "stage_index"),
  )

  op.create_table(
    "quota_buckets",
    sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
    sa.Column("subject", sa.String(), nullable=False),
    sa.Column("metric_key", sa.String(), nullable=False),
    sa.Column("period", _quota_period, nullable=False),
    sa.Column("period_start", sa.Date(), nullable=False),
    sa.Column("used", sa.BigInteger(), server_default="0", nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("subject", "metric_key", "period", "period_start", name="ux_quota_buckets_key"),
  )
  op.create_index(op.f("ix_quota_buckets_subject"), "quota_buckets", ["subject"], unique=False)
  op.create_index(op.f("ix_quota_buckets_metric_key"), "quota_buckets", ["metric_key"], unique=False)

  op.create_table(
    "quota_usage_logs",
    sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
    sa.Column("subject", sa.String(), nullable=False),
    sa.Column("action_type", sa.String(), nullable=False),
    sa.Column("quantity", sa.Integer(), nullable=False),
    sa.Column("job_id", sa.String(), nullable=True),
    sa.Column("metadata_json", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index(op.f("ix_quota_usage_logs_subject"), "quota_usage_logs", ["subject"], unique=False)
  op.create_index(op.f("ix_quota_usage_logs_job_id"), "quota_usage_logs", ["job_id"], unique=False)


def downgrade() -> None:
  """Downgrade schema."""
  op.drop_index(op.f("ix_quota_usage_logs_job_id"), table_name="quota_usage_logs")
  op.drop_index(op.f("ix_quota_usage_logs_subject"), table_name="quota_usage_logs")
  op.drop_table("quota_usage_logs")
  op.drop_index(op.f("ix_quota_buckets_metric_key"), table_name="quota_buckets")
  op.drop_index(op.f("ix_quota_buckets_subject"), table_name="quota_buckets")
  op.drop_table("quota_buckets")
  op.drop_table("generation_stage_outputs")
  op.drop_index(op.f("ix_generation_jobs_subject"), table_name="generation_jobs")
  op.drop_table("generation_jobs")
  _quota_period.drop(op.get_bind(), checkfirst=True)
