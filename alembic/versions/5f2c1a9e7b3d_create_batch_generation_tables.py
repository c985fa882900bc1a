"""create batch generation tables

Revision ID: 5f2c1a9e7b3d
Revises:
Create Date: 2026-01-06 10:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "5f2c1a9e7b3d"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
  """Upgrade schema."""
  op.create_table(
    "generation_jobs",
    sa.Column("job_id", sa.String(), nullable=False),
    sa.Column("display_id", sa.String(), nullable=False),
    sa.Column("user_id", sa.String(), nullable=False),
    sa.Column("keyword", sa.String(), nullable=False),
    sa.Column("variant_key", sa.String(), server_default="default", nullable=False),
    sa.Column("params_json", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("target_count", sa.Integer(), nullable=False),
    sa.Column("completed_count", sa.Integer(), server_default="0", nullable=False),
    sa.Column("status", sa.String(), nullable=False),
    sa.Column("cost_per_item", sa.Integer(), nullable=False),
    sa.Column("last_error", sa.Text(), nullable=True),
    sa.Column("idempotency_key", sa.String(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("error_at", sa.DateTime(timezone=True), nullable=True),
    sa.CheckConstraint("target_count >= 1", name="ck_generation_jobs_target_positive"),
    sa.CheckConstraint("completed_count <= target_count", name="ck_generation_jobs_completed_le_target"),
    sa.PrimaryKeyConstraint("job_id"),
    sa.UniqueConstraint("display_id"),
    sa.UniqueConstraint("user_id", "idempotency_key", name="ux_generation_jobs_user_idempotency"),
  )
  op.create_index(op.f("ix_generation_jobs_user_id"), "generation_jobs", ["user_id"], unique=False)
  op.create_index(op.f("ix_generation_jobs_keyword"), "generation_jobs", ["keyword"], unique=False)
  op.create_index(op.f("ix_generation_jobs_status"), "generation_jobs", ["status"], unique=False)
  op.create_index("ix_generation_jobs_active_updated", "generation_jobs", ["updated_at"], unique=False, postgresql_where=sa.text("status IN ('PENDING', 'IN_PROGRESS')"))

  op.create_table(
    "generation_artifacts",
    sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
    sa.Column("job_id", sa.String(), nullable=False),
    sa.Column("item_index", sa.Integer(), nullable=False),
    sa.Column("title", sa.String(), nullable=True),
    sa.Column("content", sa.Text(), nullable=False),
    sa.Column("prompt_tokens", sa.Integer(), server_default="0", nullable=False),
    sa.Column("completion_tokens", sa.Integer(), server_default="0", nullable=False),
    sa.Column("total_tokens", sa.Integer(), server_default="0", nullable=False),
    sa.Column("retry_count_at_success", sa.Integer(), server_default="0", nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.CheckConstraint("item_index >= 1", name="ck_generation_artifacts_index_positive"),
    sa.ForeignKeyConstraint(["job_id"], ["generation_jobs.job_id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("job_id", "item_index", name="ux_generation_artifacts_job_index"),
  )
  op.create_index(op.f("ix_generation_artifacts_job_id"), "generation_artifacts", ["job_id"], unique=False)

  op.create_table(
    "reference_sources",
    sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
    sa.Column("keyword", sa.String(), nullable=False),
    sa.Column("source_key", sa.String(), nullable=False),
    sa.Column("rank", sa.Integer(), nullable=False),
    sa.Column("title", sa.String(), nullable=True),
    sa.Column("content", sa.Text(), nullable=True),
    sa.Column("collected_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("keyword", "source_key", name="ux_reference_sources_keyword_source"),
  )
  op.create_index(op.f("ix_reference_sources_keyword"), "reference_sources", ["keyword"], unique=False)

  op.create_table(
    "reference_summary_cache",
    sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
    sa.Column("source_id", sa.Integer(), nullable=False),
    sa.Column("variant_key", sa.String(), nullable=False),
    sa.Column("category", sa.String(), nullable=False),
    sa.Column("summary", sa.Text(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.ForeignKeyConstraint(["source_id"], ["reference_sources.id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("source_id", "variant_key", name="ux_reference_summary_cache_source_variant"),
  )
  op.create_index(op.f("ix_reference_summary_cache_variant_key"), "reference_summary_cache", ["variant_key"], unique=False)

  op.create_table(
    "credit_accounts",
    sa.Column("user_id", sa.String(), nullable=False),
    sa.Column("balance", sa.BigInteger(), server_default="0", nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.PrimaryKeyConstraint("user_id"),
  )

  op.create_table(
    "credit_transactions",
    sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
    sa.Column("user_id", sa.String(), nullable=False),
    sa.Column("kind", sa.String(), nullable=False),
    sa.Column("amount", sa.BigInteger(), nullable=False),
    sa.Column("balance_after", sa.BigInteger(), nullable=False),
    sa.Column("reference_type", sa.String(), nullable=True),
    sa.Column("reference_id", sa.String(), nullable=True),
    sa.Column("reason", sa.String(), nullable=True),
    sa.Column("metadata_json", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index(op.f("ix_credit_transactions_user_id"), "credit_transactions", ["user_id"], unique=False)
  op.create_index(
    "ux_credit_transactions_reference_kind", "credit_transactions", ["reference_type", "reference_id", "kind"], unique=True, postgresql_where=sa.text("reference_id IS NOT NULL AND kind IN ('charge', 'refund')")
  )

  op.create_table(
    "notifications",
    sa.Column("id", sa.UUID(), nullable=False),
    sa.Column("user_id", sa.String(), nullable=False),
    sa.Column("job_id", sa.String(), nullable=True),
    sa.Column("template_id", sa.String(), nullable=False),
    sa.Column("importance", sa.String(), server_default="normal", nullable=False),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("body", sa.Text(), nullable=False),
    sa.Column("data_json", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("read", sa.Boolean(), server_default="false", nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index(op.f("ix_notifications_user_id"), "notifications", ["user_id"], unique=False)
  op.create_index(op.f("ix_notifications_template_id"), "notifications", ["template_id"], unique=False)
  op.create_index("ux_notifications_job_template", "notifications", ["job_id", "template_id"], unique=True, postgresql_where=sa.text("job_id IS NOT NULL"))

  op.create_table(
    "prompt_logs",
    sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
    sa.Column("user_id", sa.String(), nullable=True),
    sa.Column("job_id", sa.String(), nullable=True),
    sa.Column("artifact_index", sa.Integer(), nullable=True),
    sa.Column("purpose", sa.String(), nullable=False),
    sa.Column("model", sa.String(), nullable=False),
    sa.Column("system_prompt", sa.Text(), nullable=True),
    sa.Column("user_prompt", sa.Text(), nullable=True),
    sa.Column("response", sa.Text(), nullable=True),
    sa.Column("prompt_tokens", sa.Integer(), nullable=True),
    sa.Column("completion_tokens", sa.Integer(), nullable=True),
    sa.Column("total_tokens", sa.Integer(), nullable=True),
    sa.Column("duration_ms", sa.Integer(), nullable=True),
    sa.Column("success", sa.Boolean(), nullable=False),
    sa.Column("metadata_json", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index(op.f("ix_prompt_logs_user_id"), "prompt_logs", ["user_id"], unique=False)
  op.create_index(op.f("ix_prompt_logs_job_id"), "prompt_logs", ["job_id"], unique=False)


def downgrade() -> None:
  """Downgrade schema."""
  op.drop_index(op.f("ix_prompt_logs_job_id"), table_name="prompt_logs")
  op.drop_index(op.f("ix_prompt_logs_user_id"), table_name="prompt_logs")
  op.drop_table("prompt_logs")
  op.drop_index("ux_notifications_job_template", table_name="notifications")
  op.drop_index(op.f("ix_notifications_template_id"), table_name="notifications")
  op.drop_index(op.f("ix_notifications_user_id"), table_name="notifications")
  op.drop_table("notifications")
  op.drop_index("ux_credit_transactions_reference_kind", table_name="credit_transactions")
  op.drop_index(op.f("ix_credit_transactions_user_id"), table_name="credit_transactions")
  op.drop_table("credit_transactions")
  op.drop_table("credit_accounts")
  op.drop_index(op.f("ix_reference_summary_cache_variant_key"), table_name="reference_summary_cache")
  op.drop_table("reference_summary_cache")
  op.drop_index(op.f("ix_reference_sources_keyword"), table_name="reference_sources")
  op.drop_table("reference_sources")
  op.drop_index(op.f("ix_generation_artifacts_job_id"), table_name="generation_artifacts")
  op.drop_table("generation_artifacts")
  op.drop_index("ix_generation_jobs_active_updated", table_name="generation_jobs")
  op.drop_index(op.f("ix_generation_jobs_status"), table_name="generation_jobs")
  op.drop_index(op.f("ix_generation_jobs_keyword"), table_name="generation_jobs")
  op.drop_index(op.f("ix_generation_jobs_user_id"), table_name="generation_jobs")
  op.drop_table("generation_jobs")
