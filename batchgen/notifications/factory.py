"""Factory helpers for notification services."""

from __future__ import annotations

from batchgen.config import Settings
from batchgen.notifications.in_app_repo import InAppNotificationRepository, NullInAppNotificationRepository
from batchgen.notifications.service import NotificationService


def build_notification_service(settings: Settings) -> NotificationService:
  """Construct a notification service based on environment configuration."""
  # Persist in-app notifications only when Postgres is configured.
  if settings.pg_dsn:
    in_app_repo: InAppNotificationRepository = InAppNotificationRepository()
  else:
    in_app_repo = NullInAppNotificationRepository()

  return NotificationService(in_app_repo=in_app_repo, enabled=settings.notifications_enabled)
