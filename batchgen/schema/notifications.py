"""SQLAlchemy model for in-app notifications."""

from __future__ import annotations

import datetime
import uuid

from sqlalchemy import Boolean, DateTime, Index, String, Text, func, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from batchgen.core.database import Base


class InAppNotification(Base):
  """Persist in-app notifications for user polling."""

  __tablename__ = "notifications"
  __table_args__ = (
    # One notification per job and template.
    Index("ux_notifications_job_template", "job_id", "template_id", unique=True, postgresql_where=text("job_id IS NOT NULL")),
  )

  id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
  user_id: Mapped[str] = mapped_column(String, index=True, nullable=False)
  job_id: Mapped[str | None] = mapped_column(String, nullable=True)
  template_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  importance: Mapped[str] = mapped_column(String, nullable=False, default="normal", server_default="normal")
  title: Mapped[str] = mapped_column(String, nullable=False)
  body: Mapped[str] = mapped_column(Text, nullable=False)
  data_json: Mapped[dict] = mapped_column(JSONB, nullable=False)
  read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
