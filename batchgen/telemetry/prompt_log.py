"""Best-effort audit trail of prompts sent for each generated artifact."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from batchgen.config import Settings
from batchgen.core.database import get_session_factory
from batchgen.schema.audit import PromptLog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PromptLogEntry:
  """One prompt/response pair to persist."""

  user_id: str
  job_id: str
  artifact_index: int
  purpose: str
  model: str
  system_prompt: str
  user_prompt: str
  response: str | None
  prompt_tokens: int = 0
  completion_tokens: int = 0
  total_tokens: int = 0
  duration_ms: int = 0
  success: bool = True
  metadata: dict[str, Any] = field(default_factory=dict)


class PromptLogWriter(Protocol):
  async def write(self, entry: PromptLogEntry) -> None:
    """Persist one entry."""


class PostgresPromptLogWriter(PromptLogWriter):
  """Insert prompt log rows in their own short session."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def write(self, entry: PromptLogEntry) -> None:
    async with self._session_factory() as session:
      session.add(
        PromptLog(
          user_id=entry.user_id,
          job_id=entry.job_id,
          artifact_index=entry.artifact_index,
          purpose=entry.purpose,
          model=entry.model,
          system_prompt=entry.system_prompt,
          user_prompt=entry.user_prompt,
          response=entry.response,
          prompt_tokens=entry.prompt_tokens,
          completion_tokens=entry.completion_tokens,
          total_tokens=entry.total_tokens,
          duration_ms=entry.duration_ms,
          success=entry.success,
          metadata_json=entry.metadata or None,
        )
      )
      await session.commit()


def build_prompt_log_writer(settings: Settings) -> PromptLogWriter | None:
  """Return a writer when prompt logging is enabled and a database is configured."""
  if not settings.prompt_log_enabled or not settings.pg_dsn:
    return None
  return PostgresPromptLogWriter()


async def write_prompt_log(writer: PromptLogWriter | None, entry: PromptLogEntry) -> None:
  """Persist an entry without ever failing the caller."""
  if writer is None:
    return
  try:
    await writer.write(entry)
  except Exception:  # noqa: BLE001
    logger.warning("Failed to write prompt log for job %s index %s", entry.job_id, entry.artifact_index, exc_info=True)
