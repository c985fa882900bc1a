"""Storage interfaces for generation jobs and their artifacts."""

from __future__ import annotations

import datetime
from typing import Protocol

from batchgen.jobs.models import ArtifactPayload, ArtifactRecord, JobRecord, JobStatus


class JobsRepository(Protocol):
  """Repository contract for job persistence."""

  async def create_job(self, record: JobRecord) -> None:
    """Persist an initial job record."""

  async def get_job(self, job_id: str) -> JobRecord | None:
    """Fetch a job by identifier."""

  async def find_by_idempotency_key(self, user_id: str, idempotency_key: str) -> JobRecord | None:
    """Return the job a user already created with this key, if any."""

  async def update_job(self, job_id: str, *, status: JobStatus | None = None, started_at: datetime.datetime | None = None, last_error: str | None = None) -> JobRecord | None:
    """Apply a partial update; ``None`` fields are left untouched."""

  async def record_progress(self, job_id: str, completed_count: int) -> None:
    """Write a recounted progress checkpoint without ever lowering ``completed_count``."""

  async def finalize_job(
    self,
    job_id: str,
    *,
    status: JobStatus,
    completed_count: int,
    completed_at: datetime.datetime | None = None,
    error_at: datetime.datetime | None = None,
    last_error: str | None = None,
  ) -> bool:
    """Write a terminal status once; return False when the job was already terminal."""

  async def delete_job(self, job_id: str) -> None:
    """Remove a job that never started (used when the up-front charge fails)."""

  async def find_resumable(self, *, stalled_before: datetime.datetime, limit: int = 20) -> list[JobRecord]:
    """Return jobs whose orchestration was dropped or whose refund is missing."""


class ArtifactsRepository(Protocol):
  """Repository contract for produced artifacts."""

  async def count_artifacts(self, job_id: str) -> int:
    """Return the number of persisted artifacts for a job."""

  async def list_artifact_indexes(self, job_id: str) -> list[int]:
    """Return the persisted artifact indexes for a job, ascending."""

  async def create_artifact(self, job_id: str, payload: ArtifactPayload) -> bool:
    """Insert one artifact; return False when the index already exists."""

  async def list_artifact_titles(self, job_id: str) -> list[str]:
    """Return the non-empty titles already produced for a job."""

  async def list_artifacts(self, job_id: str) -> list[ArtifactRecord]:
    """Return the artifacts for a job ordered by index."""
