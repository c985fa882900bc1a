"""Progress snapshots for polling clients."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime

from batchgen.jobs.models import JobRecord, JobStatus


@dataclass(frozen=True)
class JobErrorInfo:
  """Failure details surfaced only for FAILED jobs."""

  message: str | None
  occurred_at: datetime | None


@dataclass(frozen=True)
class JobProgressSnapshot:
  """Point-in-time progress view of one job."""

  job_id: str
  display_id: str | None
  status: JobStatus
  completed_count: int
  target_count: int
  progress_percent: int
  artifacts_created: int
  started_at: datetime | None
  completed_at: datetime | None
  elapsed_seconds: int
  error: JobErrorInfo | None = None


def progress_percent(completed: int, target: int) -> int:
  if target <= 0:
    return 0
  return round(completed / target * 100)


def elapsed_seconds(job: JobRecord, now: datetime) -> int:
  """Seconds from start to completion, failure or ``now`` for running jobs."""
  start = job.started_at or job.created_at
  if start is None:
    return 0
  end = job.completed_at or job.error_at or now
  return max(int((end - start).total_seconds()), 0)


def build_progress_snapshot(job: JobRecord, *, artifacts_created: int, now: datetime | None = None) -> JobProgressSnapshot:
  """Combine the job row and the live artifact count into one snapshot."""
  now = now or datetime.now(UTC)
  error = JobErrorInfo(message=job.last_error, occurred_at=job.error_at) if job.status == "FAILED" else None
  return JobProgressSnapshot(
    job_id=job.job_id,
    display_id=job.display_id,
    status=job.status,
    completed_count=job.completed_count,
    target_count=job.target_count,
    progress_percent=progress_percent(job.completed_count, job.target_count),
    artifacts_created=artifacts_created,
    started_at=job.started_at,
    completed_at=job.completed_at,
    elapsed_seconds=elapsed_seconds(job, now),
    error=error,
  )
