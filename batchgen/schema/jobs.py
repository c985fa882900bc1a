from __future__ import annotations

import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, func, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from batchgen.core.database import Base


class GenerationJob(Base):
  __tablename__ = "generation_jobs"
  __table_args__ = (
    UniqueConstraint("user_id", "idempotency_key", name="ux_generation_jobs_user_idempotency"),
    CheckConstraint("target_count >= 1", name="ck_generation_jobs_target_positive"),
    CheckConstraint("completed_count <= target_count", name="ck_generation_jobs_completed_le_target"),
    Index("ix_generation_jobs_active_updated", "updated_at", postgresql_where=text("status IN ('PENDING', 'IN_PROGRESS')")),
  )

  job_id: Mapped[str] = mapped_column(String, primary_key=True)
  display_id: Mapped[str] = mapped_column(String, nullable=False, unique=True)
  user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  keyword: Mapped[str] = mapped_column(String, nullable=False, index=True)
  variant_key: Mapped[str] = mapped_column(String, nullable=False, server_default="default")
  params_json: Mapped[dict] = mapped_column(JSONB, nullable=False)
  target_count: Mapped[int] = mapped_column(Integer, nullable=False)
  completed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
  status: Mapped[str] = mapped_column(String, nullable=False, index=True)
  cost_per_item: Mapped[int] = mapped_column(Integer, nullable=False)
  last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
  idempotency_key: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
  started_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  completed_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  error_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class GenerationArtifact(Base):
  __tablename__ = "generation_artifacts"
  __table_args__ = (
    UniqueConstraint("job_id", "item_index", name="ux_generation_artifacts_job_index"),
    CheckConstraint("item_index >= 1", name="ck_generation_artifacts_index_positive"),
  )

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  job_id: Mapped[str] = mapped_column(ForeignKey("generation_jobs.job_id", ondelete="CASCADE"), nullable=False, index=True)
  item_index: Mapped[int] = mapped_column(Integer, nullable=False)
  title: Mapped[str | None] = mapped_column(String, nullable=True)
  content: Mapped[str] = mapped_column(Text, nullable=False)
  prompt_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
  completion_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
  total_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
  retry_count_at_success: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
