"""Storage for ranked reference sources and their per-variant summaries."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert

from batchgen.core.database import get_session_factory
from batchgen.schema.references import ReferenceSource, ReferenceSummaryCache

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReferenceSourceRecord:
  """One ranked upstream document for a keyword."""

  source_id: int
  rank: int
  title: str | None
  content: str | None


class ReferenceRepository(Protocol):
  """Repository contract for the reference-material cache."""

  async def list_top_sources(self, keyword: str, limit: int) -> list[ReferenceSourceRecord]:
    """Return the best-ranked sources for a keyword."""

  async def get_summary(self, source_id: int, variant_key: str) -> str | None:
    """Return the cached summary for ``(source_id, variant_key)``."""

  async def save_summary(self, source_id: int, variant_key: str, *, category: str, summary: str) -> None:
    """Persist a summary; an existing entry for the same key is kept."""


class PostgresReferenceRepository(ReferenceRepository):
  """Read ranked sources and cache summaries in Postgres."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def list_top_sources(self, keyword: str, limit: int) -> list[ReferenceSourceRecord]:
    if limit <= 0:
      return []
    async with self._session_factory() as session:
      stmt = select(ReferenceSource).where(ReferenceSource.keyword == keyword).order_by(ReferenceSource.rank.asc()).limit(limit)
      result = await session.execute(stmt)
      return [ReferenceSourceRecord(source_id=row.id, rank=row.rank, title=row.title, content=row.content) for row in result.scalars().all()]

  async def get_summary(self, source_id: int, variant_key: str) -> str | None:
    async with self._session_factory() as session:
      stmt = select(ReferenceSummaryCache.summary).where(ReferenceSummaryCache.source_id == source_id, ReferenceSummaryCache.variant_key == variant_key)
      result = await session.execute(stmt)
      return result.scalar_one_or_none()

  async def save_summary(self, source_id: int, variant_key: str, *, category: str, summary: str) -> None:
    async with self._session_factory() as session:
      # First writer wins; racing jobs computing the same summary are harmless.
      stmt = insert(ReferenceSummaryCache).values(source_id=source_id, variant_key=variant_key, category=category, summary=summary).on_conflict_do_nothing(constraint="ux_reference_summary_cache_source_variant")
      await session.execute(stmt)
      await session.commit()
