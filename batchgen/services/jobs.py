import logging
from datetime import UTC, datetime, timedelta

from fastapi import BackgroundTasks, HTTPException, status

from batchgen.api.models import ArtifactResponse, CreateJobRequest, JobArtifactsResponse, JobCreateResponse, JobErrorResponse, JobProgressResponse
from batchgen.config import Settings
from batchgen.jobs.models import JOB_REFERENCE_TYPE, JobRecord, OrchestrationOutcome
from batchgen.jobs.progress import build_progress_snapshot
from batchgen.services.credits import CreditLedger, InsufficientCreditsError, PostgresCreditLedger
from batchgen.services.tasks.factory import get_task_enqueuer
from batchgen.storage.factory import _get_artifacts_repo, _get_jobs_repo
from batchgen.utils.ids import generate_display_id, generate_job_id

logger = logging.getLogger(__name__)

_JOB_NOT_FOUND_MSG = "Job not found."


def _get_credit_ledger(settings: Settings) -> CreditLedger:
  """Return the active credit ledger."""
  if not settings.pg_dsn:
    raise ValueError("BATCHGEN_PG_DSN must be set to enable the credit ledger.")
  return PostgresCreditLedger()


def _insufficient_credits(required: int, available: int) -> HTTPException:
  return HTTPException(status_code=status.HTTP_402_PAYMENT_REQUIRED, detail={"error": "INSUFFICIENT_CREDITS", "required": required, "available": available})


def _create_response(record: JobRecord) -> JobCreateResponse:
  return JobCreateResponse(job_id=record.job_id, display_id=record.display_id, status=record.status, target_count=record.target_count, total_cost=record.total_cost)


async def _load_owned_job(job_id: str, settings: Settings, user_id: str) -> JobRecord:
  repo = _get_jobs_repo(settings)
  record = await repo.get_job(job_id)
  # Foreign jobs are reported as missing so ids cannot be enumerated across tenants.
  if record is None or record.user_id != user_id:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_JOB_NOT_FOUND_MSG)
  return record


async def create_job(request: CreateJobRequest, settings: Settings, background_tasks: BackgroundTasks, *, user_id: str) -> JobCreateResponse:
  """Create a batch generation job, charge for it up front and enqueue it."""
  repo = _get_jobs_repo(settings)
  ledger = _get_credit_ledger(settings)

  # Idempotency Check: Return existing job if the key is already present.
  if request.idempotency_key:
    existing = await repo.find_by_idempotency_key(user_id, request.idempotency_key)
    if existing is not None:
      logger.info("Retrieved existing job %s for idempotency key %s", existing.job_id, request.idempotency_key)
      return _create_response(existing)

  cost_per_item = settings.credit_cost_per_item
  total_cost = request.count * cost_per_item
  logger.info("Credit cost: %s per item x %s items = %s", cost_per_item, request.count, total_cost)

  # Fail fast before persisting anything when the balance cannot cover the job.
  balance = await ledger.get_balance(user_id)
  if balance.balance < total_cost:
    raise _insufficient_credits(total_cost, balance.balance)

  record = JobRecord(
    job_id=generate_job_id(),
    display_id=generate_display_id(),
    user_id=user_id,
    keyword=request.keyword,
    variant_key=request.post_type,
    params=request.to_params(),
    target_count=request.count,
    cost_per_item=cost_per_item,
    status="PENDING",
    idempotency_key=request.idempotency_key,
    created_at=datetime.now(UTC),
  )
  await repo.create_job(record)
  logger.info("Created job %s (%s) for user %s", record.job_id, record.display_id, user_id)

  # A job row without its charge must never reach the worker.
  try:
    await ledger.charge(user_id=user_id, amount=total_cost, reference_type=JOB_REFERENCE_TYPE, reference_id=record.job_id, metadata={"keyword": record.keyword, "count": record.target_count, "cost_per_item": cost_per_item})
  except InsufficientCreditsError as exc:
    await repo.delete_job(record.job_id)
    raise _insufficient_credits(exc.required, exc.available) from exc
  except Exception:
    await repo.delete_job(record.job_id)
    raise

  logger.info("Charged %s credits to user %s for job %s", total_cost, user_id, record.job_id)
  trigger_job_processing(background_tasks, record.job_id, settings)
  return _create_response(record)


async def get_job_progress(job_id: str, settings: Settings, user_id: str) -> JobProgressResponse:
  """Return a progress snapshot for one of the caller's jobs."""
  record = await _load_owned_job(job_id, settings, user_id)
  artifacts_created = await _get_artifacts_repo(settings).count_artifacts(job_id)
  snapshot = build_progress_snapshot(record, artifacts_created=artifacts_created)
  error = JobErrorResponse(message=snapshot.error.message, occurred_at=snapshot.error.occurred_at) if snapshot.error is not None else None
  return JobProgressResponse(
    job_id=snapshot.job_id,
    display_id=snapshot.display_id,
    status=snapshot.status,
    completed_count=snapshot.completed_count,
    target_count=snapshot.target_count,
    progress=snapshot.progress_percent,
    artifacts_created=snapshot.artifacts_created,
    started_at=snapshot.started_at,
    completed_at=snapshot.completed_at,
    elapsed_seconds=snapshot.elapsed_seconds,
    error=error,
  )


async def list_job_artifacts(job_id: str, settings: Settings, user_id: str) -> JobArtifactsResponse:
  """Return the artifacts produced so far, ordered by index."""
  await _load_owned_job(job_id, settings, user_id)
  artifacts = await _get_artifacts_repo(settings).list_artifacts(job_id)
  items = [ArtifactResponse(index=item.index, title=item.title, content=item.content, total_tokens=item.total_tokens, created_at=item.created_at) for item in artifacts]
  return JobArtifactsResponse(job_id=job_id, artifacts=items)


async def process_job_sync(job_id: str, settings: Settings) -> OrchestrationOutcome | None:
  """Run a queued job immediately (synchronously)."""
  repo = _get_jobs_repo(settings)
  try:
    from batchgen.jobs.worker import JobProcessor

    record = await repo.get_job(job_id)

    if record is None:
      logger.warning("Task received for unknown job %s", job_id)
      return None

    processor = JobProcessor(jobs_repo=repo, settings=settings)
    return await processor.process_job(record)
  except Exception as exc:  # noqa: BLE001
    # The job stays non-terminal and is picked up by the stalled-job sweep.
    logger.error("Synchronous job processing failed for job %s: %s", job_id, exc, exc_info=True)
    return None


def trigger_job_processing(background_tasks: BackgroundTasks, job_id: str, settings: Settings) -> None:
  """Schedule background processing via the configured task enqueuer."""

  if not settings.jobs_auto_process:
    return

  enqueuer = get_task_enqueuer(settings)

  async def _dispatch() -> None:
    try:
      await enqueuer.enqueue(job_id)
    except Exception as exc:  # noqa: BLE001
      # The job stays PENDING; the resume sweep re-enqueues it later.
      logger.error("Failed to enqueue job %s: %s", job_id, exc, exc_info=True)

  background_tasks.add_task(_dispatch)


async def resume_stalled_jobs(settings: Settings, *, limit: int = 20) -> list[str]:
  """Re-enqueue jobs whose worker vanished or whose refund never landed."""
  repo = _get_jobs_repo(settings)
  stalled_before = datetime.now(UTC) - timedelta(seconds=settings.stalled_job_seconds)
  candidates = await repo.find_resumable(stalled_before=stalled_before, limit=limit)

  enqueuer = get_task_enqueuer(settings)
  enqueued: list[str] = []
  for record in candidates:
    try:
      await enqueuer.enqueue(record.job_id)
    except Exception as exc:  # noqa: BLE001
      logger.error("Failed to re-enqueue job %s: %s", record.job_id, exc, exc_info=True)
      continue
    enqueued.append(record.job_id)

  if enqueued:
    logger.info("Re-enqueued %s stalled jobs: %s", len(enqueued), ", ".join(enqueued))
  return enqueued
