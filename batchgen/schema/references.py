"""SQLAlchemy models for ranked reference sources and their cached summaries."""

from __future__ import annotations

import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from batchgen.core.database import Base


class ReferenceSource(Base):
  """A ranked upstream document collected for a keyword by the rank crawler."""

  __tablename__ = "reference_sources"
  __table_args__ = (UniqueConstraint("keyword", "source_key", name="ux_reference_sources_keyword_source"),)

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  keyword: Mapped[str] = mapped_column(String, nullable=False, index=True)
  source_key: Mapped[str] = mapped_column(String, nullable=False)
  rank: Mapped[int] = mapped_column(Integer, nullable=False)
  title: Mapped[str | None] = mapped_column(String, nullable=True)
  content: Mapped[str | None] = mapped_column(Text, nullable=True)
  collected_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ReferenceSummaryCache(Base):
  """Summary of one source, computed once per variant and reused across jobs."""

  __tablename__ = "reference_summary_cache"
  __table_args__ = (UniqueConstraint("source_id", "variant_key", name="ux_reference_summary_cache_source_variant"),)

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  source_id: Mapped[int] = mapped_column(ForeignKey("reference_sources.id", ondelete="CASCADE"), nullable=False)
  variant_key: Mapped[str] = mapped_column(String, nullable=False, index=True)
  category: Mapped[str] = mapped_column(String, nullable=False)
  summary: Mapped[str] = mapped_column(Text, nullable=False)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
