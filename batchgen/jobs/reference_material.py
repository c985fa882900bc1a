"""Shared reference material: ranked source summaries cached per (source, variant)."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from batchgen.jobs.models import ReferenceMaterial
from batchgen.storage.reference_repo import ReferenceRepository

if TYPE_CHECKING:
  from batchgen.ai.generation import GenerationClient

logger = logging.getLogger(__name__)

DEFAULT_VARIANT_KEY = "default"

# Post types that read as explainers; everything else is treated as a first-hand review.
INFORMATIONAL_POST_TYPES: frozenset[str] = frozenset({"general_info", "medical_info", "legal_info"})

_SENTENCE_ENDINGS = (".", "!", "?")


def post_category(variant_key: str | None) -> str:
  """Return ``info`` for informational post types, otherwise ``review``."""
  return "info" if variant_key in INFORMATIONAL_POST_TYPES else "review"


def truncate_at_sentence(text: str, max_length: int) -> str:
  """Cut text to ``max_length``, backing up to the last sentence end when it is not too early."""
  if len(text) <= max_length:
    return text

  truncated = text[:max_length]
  last_sentence_end = max(truncated.rfind(mark) for mark in _SENTENCE_ENDINGS)

  # Keep at least 60% of the budget; otherwise a hard cut reads better than a stub.
  if last_sentence_end > int(max_length * 0.6):
    truncated = truncated[: last_sentence_end + 1]

  return truncated.strip()


class ReferenceMaterialCache:
  """Build the shared reference material for one job run."""

  def __init__(self, repo: ReferenceRepository, client: GenerationClient, *, source_limit: int = 10, summary_min_chars: int = 200, fallback_chars: int = 600) -> None:
    self._repo = repo
    self._client = client
    self._source_limit = source_limit
    self._summary_min_chars = summary_min_chars
    self._fallback_chars = fallback_chars

  async def build(self, keyword: str, variant_key: str | None) -> ReferenceMaterial:
    """Return one entry per usable top source, summarizing cache misses."""
    effective_variant = variant_key or DEFAULT_VARIANT_KEY
    category = post_category(effective_variant)
    sources = await self._repo.list_top_sources(keyword, self._source_limit)

    contents: list[str] = []
    for source in sources:
      # Cache hit: no external call.
      cached = await self._repo.get_summary(source.source_id, effective_variant)
      if cached is not None:
        contents.append(cached)
        logger.debug("Using cached summary for source %s (%s)", source.source_id, effective_variant)
        continue

      if not source.content:
        continue

      if len(source.content) <= self._summary_min_chars:
        contents.append(truncate_at_sentence(source.content, self._fallback_chars))
        continue

      try:
        summary = await self._client.summarize(source.content, keyword, effective_variant)
      except Exception as exc:  # noqa: BLE001
        logger.warning("Failed to summarize source %s: %s", source.source_id, exc)
        contents.append(truncate_at_sentence(source.content, self._fallback_chars))
        continue

      try:
        await self._repo.save_summary(source.source_id, effective_variant, category=category, summary=summary)
      except Exception:  # noqa: BLE001
        logger.warning("Failed to cache summary for source %s (%s)", source.source_id, effective_variant, exc_info=True)
      contents.append(summary)

    logger.info("Prepared %s reference contents for keyword %r (%s)", len(contents), keyword, effective_variant)
    return ReferenceMaterial(keyword=keyword, variant_key=effective_variant, contents=tuple(contents))
