from __future__ import annotations

import datetime

from sqlalchemy import Boolean, DateTime, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from batchgen.core.database import Base


class PromptLog(Base):
  __tablename__ = "prompt_logs"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  user_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
  job_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
  artifact_index: Mapped[int | None] = mapped_column(Integer, nullable=True)
  purpose: Mapped[str] = mapped_column(String, nullable=False)
  model: Mapped[str] = mapped_column(String, nullable=False)
  system_prompt: Mapped[str | None] = mapped_column(Text, nullable=True)
  user_prompt: Mapped[str | None] = mapped_column(Text, nullable=True)
  response: Mapped[str | None] = mapped_column(Text, nullable=True)
  prompt_tokens: Mapped[int | None] = mapped_column(Integer, nullable=True)
  completion_tokens: Mapped[int | None] = mapped_column(Integer, nullable=True)
  total_tokens: Mapped[int | None] = mapped_column(Integer, nullable=True)
  duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
  success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
  metadata_json: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
