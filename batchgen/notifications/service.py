"""Notification orchestration for job lifecycle events."""

from __future__ import annotations

import asyncio
import logging

from batchgen.jobs.models import JobRecord
from batchgen.notifications.contracts import JobNotifier
from batchgen.notifications.in_app_repo import InAppNotificationEntry, InAppNotificationRepository
from batchgen.notifications.in_app_templates import render_in_app_template, template_importance

logger = logging.getLogger(__name__)


class NotificationService(JobNotifier):
  """Dispatches job notifications as background tasks."""

  def __init__(self, *, in_app_repo: InAppNotificationRepository, enabled: bool = True) -> None:
    self._in_app_repo = in_app_repo
    self._enabled = enabled
    self._pending: set[asyncio.Task[None]] = set()

  def on_job_completed(self, job: JobRecord) -> None:
    self._schedule(user_id=job.user_id, template_id="generation_job_completed_v1", data={"job_id": job.job_id, "display_id": job.display_id, "keyword": job.keyword, "target_count": job.target_count})

  def on_job_failed(self, job: JobRecord, reason: str) -> None:
    data = {"job_id": job.job_id, "display_id": job.display_id, "keyword": job.keyword, "completed_count": job.completed_count, "target_count": job.target_count, "reason": reason}
    self._schedule(user_id=job.user_id, template_id="generation_job_failed_v1", data=data)

  async def notify_in_app(self, *, user_id: str, template_id: str, data: dict) -> None:
    """Persist an in-app notification for polling clients."""
    title, body = render_in_app_template(template_id=template_id, data=data)
    entry = InAppNotificationEntry(user_id=user_id, template_id=template_id, title=title, body=body, data=data, importance=template_importance(template_id), job_id=data.get("job_id"))
    await self._in_app_repo.insert(entry)

  async def flush(self) -> None:
    """Wait for scheduled deliveries; used on shutdown and in tests."""
    if self._pending:
      await asyncio.gather(*list(self._pending), return_exceptions=True)

  def _schedule(self, *, user_id: str, template_id: str, data: dict) -> None:
    # Avoid sending notifications when the feature is not configured.
    if not self._enabled:
      return
    delivery = self.notify_in_app(user_id=user_id, template_id=template_id, data=data)
    try:
      task = asyncio.create_task(delivery)
    except RuntimeError as exc:
      delivery.close()
      logger.error("Notification scheduling failed template_id=%s error=%s", template_id, exc)
      return
    self._pending.add(task)
    task.add_done_callback(self._pending.discard)
    task.add_done_callback(self._log_task_error)

  @staticmethod
  def _log_task_error(task: asyncio.Task[None]) -> None:
    """Log background task exceptions to avoid silent delivery failures."""
    if task.cancelled():
      return
    try:
      _ = task.result()
    except Exception as exc:  # noqa: BLE001
      logger.error("Background notification task failed: %s", exc, exc_info=True)
