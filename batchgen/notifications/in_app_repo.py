"""Repository helpers for in-app notifications."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from batchgen.core.database import get_session_factory
from batchgen.schema.notifications import InAppNotification

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InAppNotificationEntry:
  """One rendered in-app notification, optionally tied to a generation job."""

  user_id: str
  template_id: str
  title: str
  body: str
  data: dict
  importance: str = "normal"
  job_id: str | None = None


class InAppNotificationRepository:
  """Persist in-app notifications to Postgres.

  A job gets at most one row per template, so a job finalized again after a
  crash or a lost race does not notify its owner twice.
  """

  async def insert(self, entry: InAppNotificationEntry) -> bool:
    """Insert a notification row; returns False when the job already has one for this template."""
    session_factory = get_session_factory()
    if session_factory is None:
      raise RuntimeError("Database not initialized")
    async with session_factory() as session:
      inserted = await self._insert_with_session(session=session, entry=entry)
    if not inserted:
      logger.info("In-app notification template_id=%s for job %s already recorded; skipping.", entry.template_id, entry.job_id)
    return inserted

  async def _insert_with_session(self, *, session: AsyncSession, entry: InAppNotificationEntry) -> bool:
    stmt = (
      insert(InAppNotification)
      .values(user_id=entry.user_id, job_id=entry.job_id, template_id=entry.template_id, importance=entry.importance, title=entry.title, body=entry.body, data_json=entry.data, read=False)
      .on_conflict_do_nothing(index_elements=["job_id", "template_id"], index_where=InAppNotification.job_id.isnot(None))
      .returning(InAppNotification.id)
    )
    result = await session.execute(stmt)
    await session.commit()
    return result.scalar_one_or_none() is not None


class NullInAppNotificationRepository(InAppNotificationRepository):
  """No-op repository when persistence is unavailable."""

  async def insert(self, entry: InAppNotificationEntry) -> bool:
    logger.debug("In-app notification persistence disabled; dropping template_id=%s", entry.template_id)
    return False
