"""Postgres-backed repositories for generation jobs and artifacts using SQLAlchemy."""

from __future__ import annotations

import datetime
import logging

from sqlalchemy import and_, delete, exists, func, or_, select, update
from sqlalchemy.exc import IntegrityError

from batchgen.core.database import get_session_factory
from batchgen.jobs.models import ACTIVE_STATUSES, JOB_REFERENCE_TYPE, ArtifactPayload, ArtifactRecord, JobRecord, JobStatus
from batchgen.schema.credits import CreditTransaction, CreditTransactionKind
from batchgen.schema.jobs import GenerationArtifact, GenerationJob
from batchgen.storage.jobs_repo import ArtifactsRepository, JobsRepository

logger = logging.getLogger(__name__)


class PostgresJobsRepository(JobsRepository):
  """Persist generation jobs to Postgres using SQLAlchemy."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def create_job(self, record: JobRecord) -> None:
    async with self._session_factory() as session:
      job = GenerationJob(
        job_id=record.job_id,
        display_id=record.display_id or record.job_id,
        user_id=record.user_id,
        keyword=record.keyword,
        variant_key=record.variant_key,
        params_json=record.params,
        target_count=record.target_count,
        completed_count=record.completed_count,
        status=record.status,
        cost_per_item=record.cost_per_item,
        last_error=record.last_error,
        idempotency_key=record.idempotency_key,
        started_at=record.started_at,
      )
      session.add(job)
      await session.commit()

  async def get_job(self, job_id: str) -> JobRecord | None:
    async with self._session_factory() as session:
      row = await session.get(GenerationJob, job_id)
      if row is None:
        return None
      return self._model_to_record(row)

  async def find_by_idempotency_key(self, user_id: str, idempotency_key: str) -> JobRecord | None:
    async with self._session_factory() as session:
      stmt = select(GenerationJob).where(GenerationJob.user_id == user_id, GenerationJob.idempotency_key == idempotency_key)
      result = await session.execute(stmt)
      row = result.scalar_one_or_none()
      if row is None:
        return None
      return self._model_to_record(row)

  async def update_job(self, job_id: str, *, status: JobStatus | None = None, started_at: datetime.datetime | None = None, last_error: str | None = None) -> JobRecord | None:
    async with self._session_factory() as session:
      row = await session.get(GenerationJob, job_id)
      if row is None:
        return None
      # Terminal rows are only ever written by finalize_job.
      if status is not None and row.status in ACTIVE_STATUSES:
        row.status = status
      if started_at is not None:
        row.started_at = started_at
      if last_error is not None:
        row.last_error = last_error
      await session.commit()
      await session.refresh(row)
      return self._model_to_record(row)

  async def record_progress(self, job_id: str, completed_count: int) -> None:
    async with self._session_factory() as session:
      # GREATEST keeps progress monotonic when concurrent runs race on the same job.
      stmt = (
        update(GenerationJob)
        .where(GenerationJob.job_id == job_id, GenerationJob.status.in_(tuple(ACTIVE_STATUSES)))
        .values(completed_count=func.greatest(GenerationJob.completed_count, completed_count), status="IN_PROGRESS", updated_at=func.now())
      )
      await session.execute(stmt)
      await session.commit()

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
    async with self._session_factory() as session:
      # Only non-terminal rows transition so the terminal state is written exactly once.
      stmt = (
        update(GenerationJob)
        .where(GenerationJob.job_id == job_id, GenerationJob.status.in_(tuple(ACTIVE_STATUSES)))
        .values(status=status, completed_count=completed_count, completed_at=completed_at, error_at=error_at, last_error=last_error, updated_at=func.now())
      )
      result = await session.execute(stmt)
      await session.commit()
      return bool(result.rowcount)

  async def delete_job(self, job_id: str) -> None:
    async with self._session_factory() as session:
      await session.execute(delete(GenerationJob).where(GenerationJob.job_id == job_id))
      await session.commit()

  async def find_resumable(self, *, stalled_before: datetime.datetime, limit: int = 20) -> list[JobRecord]:
    async with self._session_factory() as session:
      # Failed jobs with a shortfall but no refund row still owe the user credits.
      refund_exists = exists().where(CreditTransaction.reference_type == JOB_REFERENCE_TYPE, CreditTransaction.reference_id == GenerationJob.job_id, CreditTransaction.kind == CreditTransactionKind.REFUND.value)
      stalled = and_(GenerationJob.status.in_(tuple(ACTIVE_STATUSES)), GenerationJob.updated_at < stalled_before)
      unrefunded = and_(GenerationJob.status == "FAILED", GenerationJob.cost_per_item > 0, ~refund_exists)
      stmt = select(GenerationJob).where(or_(stalled, unrefunded)).order_by(GenerationJob.updated_at.asc()).limit(limit)
      result = await session.execute(stmt)
      return [self._model_to_record(row) for row in result.scalars().all()]

  def _model_to_record(self, row: GenerationJob) -> JobRecord:
    return JobRecord(
      job_id=row.job_id,
      display_id=row.display_id,
      user_id=row.user_id,
      keyword=row.keyword,
      variant_key=row.variant_key,
      params=dict(row.params_json or {}),
      target_count=int(row.target_count),
      completed_count=int(row.completed_count or 0),
      status=row.status,  # type: ignore[arg-type]
      cost_per_item=int(row.cost_per_item),
      last_error=row.last_error,
      idempotency_key=row.idempotency_key,
      created_at=row.created_at,
      updated_at=row.updated_at,
      started_at=row.started_at,
      completed_at=row.completed_at,
      error_at=row.error_at,
    )


class PostgresArtifactsRepository(ArtifactsRepository):
  """Persist generated artifacts to Postgres using SQLAlchemy."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def count_artifacts(self, job_id: str) -> int:
    async with self._session_factory() as session:
      stmt = select(func.count()).select_from(GenerationArtifact).where(GenerationArtifact.job_id == job_id)
      result = await session.execute(stmt)
      return int(result.scalar_one() or 0)

  async def list_artifact_indexes(self, job_id: str) -> list[int]:
    async with self._session_factory() as session:
      stmt = select(GenerationArtifact.item_index).where(GenerationArtifact.job_id == job_id).order_by(GenerationArtifact.item_index.asc())
      result = await session.execute(stmt)
      return [int(value) for value in result.scalars().all()]

  async def create_artifact(self, job_id: str, payload: ArtifactPayload) -> bool:
    async with self._session_factory() as session:
      artifact = GenerationArtifact(
        job_id=job_id,
        item_index=payload.index,
        title=payload.title,
        content=payload.content,
        prompt_tokens=payload.prompt_tokens,
        completion_tokens=payload.completion_tokens,
        total_tokens=payload.total_tokens,
        retry_count_at_success=payload.retry_count_at_success,
      )
      session.add(artifact)
      try:
        await session.commit()
      except IntegrityError:
        # A concurrent run already produced this index; the unique key keeps it single.
        await session.rollback()
        logger.info("Artifact %s for job %s already exists; skipping insert.", payload.index, job_id)
        return False
      return True

  async def list_artifact_titles(self, job_id: str) -> list[str]:
    async with self._session_factory() as session:
      stmt = select(GenerationArtifact.title).where(GenerationArtifact.job_id == job_id, GenerationArtifact.title.is_not(None)).order_by(GenerationArtifact.item_index.asc())
      result = await session.execute(stmt)
      return [title for title in result.scalars().all() if title]

  async def list_artifacts(self, job_id: str) -> list[ArtifactRecord]:
    async with self._session_factory() as session:
      stmt = select(GenerationArtifact).where(GenerationArtifact.job_id == job_id).order_by(GenerationArtifact.item_index.asc())
      result = await session.execute(stmt)
      return [
        ArtifactRecord(
          id=row.id,
          job_id=row.job_id,
          index=row.item_index,
          content=row.content,
          title=row.title,
          prompt_tokens=row.prompt_tokens,
          completion_tokens=row.completion_tokens,
          total_tokens=row.total_tokens,
          retry_count_at_success=row.retry_count_at_success,
          created_at=row.created_at,
        )
        for row in result.scalars().all()
      ]
