"""Batch orchestrator: drive a job's pending indexes to completion or a reconciled failure."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, replace
from datetime import UTC, datetime

from batchgen.ai.generation import TerminalGenerationError
from batchgen.config import OrchestratorConfig
from batchgen.jobs.item_generator import ItemGenerator
from batchgen.jobs.models import JOB_REFERENCE_TYPE, JobRecord, OrchestrationOutcome, ReferenceMaterial
from batchgen.jobs.reference_material import ReferenceMaterialCache
from batchgen.notifications.contracts import JobNotifier
from batchgen.services.credits import CreditLedger
from batchgen.storage.jobs_repo import ArtifactsRepository, JobsRepository

logger = logging.getLogger(__name__)

_LAST_ERROR_DETAIL_CHARS = 400
_LAST_ERROR_MAX_CHARS = 500


class OrchestratorTimeoutError(TimeoutError):
  """The run exceeded its total time budget; remaining indexes are abandoned."""


@dataclass(frozen=True)
class BatchResult:
  """Indexes that failed within one batch and the last error observed."""

  failed: list[int]
  last_error: str | None = None


def _utcnow() -> datetime:
  return datetime.now(UTC)


def format_last_error(*, attempts: int, failed: int, last_error: str | None) -> str:
  """Render the stored failure summary for a job that ended short."""
  detail = (last_error or "unknown")[:_LAST_ERROR_DETAIL_CHARS]
  return f"{attempts} attempts, {failed} failed. last error: {detail}"[:_LAST_ERROR_MAX_CHARS]


def partition(indexes: Sequence[int], size: int) -> list[list[int]]:
  return [list(indexes[start : start + size]) for start in range(0, len(indexes), size)]


class BatchOrchestrator:
  """Run the attempt loop for one job and reconcile credits at the end.

  Every decision is re-derived from the stores, so a run that starts after a
  crash (or races another run) only generates indexes that are still missing.
  """

  def __init__(
    self,
    *,
    jobs_repo: JobsRepository,
    artifacts_repo: ArtifactsRepository,
    item_generator: ItemGenerator,
    reference_cache: ReferenceMaterialCache,
    ledger: CreditLedger,
    notifier: JobNotifier,
    config: OrchestratorConfig,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    now: Callable[[], datetime] = _utcnow,
  ) -> None:
    self._jobs_repo = jobs_repo
    self._artifacts_repo = artifacts_repo
    self._item_generator = item_generator
    self._reference_cache = reference_cache
    self._ledger = ledger
    self._notifier = notifier
    self._config = config
    self._clock = clock
    self._sleep = sleep
    self._now = now

  async def run(self, job: JobRecord) -> OrchestrationOutcome:
    """Generate every missing artifact for ``job`` and write its terminal state."""
    current = await self._jobs_repo.get_job(job.job_id)
    if current is None:
      raise LookupError(f"Job {job.job_id} not found")

    if current.is_terminal:
      return await self._reconcile_terminal(current)

    started = self._clock()
    if current.started_at is None:
      current = await self._jobs_repo.update_job(current.job_id, status="IN_PROGRESS", started_at=self._now()) or current
    else:
      current = await self._jobs_repo.update_job(current.job_id, status="IN_PROGRESS") or current

    reference = await self._reference_cache.build(current.keyword, current.variant_key)
    pending = await self._pending_indexes(current)
    total = current.target_count
    attempts_used = 0
    last_error: str | None = None
    timeout_error: OrchestratorTimeoutError | None = None

    logger.info("Job %s starting: %s/%s pending, %s reference entries", current.job_id, len(pending), total, len(reference.contents))

    try:
      for attempt in range(1, self._config.max_retry + 1):
        if not pending:
          break
        self._check_deadline(started)
        attempts_used = attempt
        logger.info("[attempt %s/%s] generating %s items for job %s", attempt, self._config.max_retry, len(pending), current.job_id)

        failed: list[int] = []
        batches = partition(pending, self._config.batch_size)
        for position, batch in enumerate(batches):
          self._check_deadline(started)
          result = await self._run_batch(current, reference, batch, total, attempt)
          failed.extend(result.failed)
          if result.last_error is not None:
            last_error = result.last_error

          # Progress always comes from a recount, never from local arithmetic.
          count = await self._artifacts_repo.count_artifacts(current.job_id)
          await self._jobs_repo.record_progress(current.job_id, count)

          if position < len(batches) - 1:
            await self._sleep(self._config.inter_batch_delay)

        pending = failed
        if not pending:
          logger.info("[attempt %s] all items generated for job %s", attempt, current.job_id)
          break

        if attempt < self._config.max_retry:
          delay = self._config.retry_delay * (2 ** (attempt - 1))
          logger.info("[attempt %s] %s failed for job %s; retrying in %ss", attempt, len(pending), current.job_id, delay)
          await self._sleep(delay)
    except OrchestratorTimeoutError as exc:
      logger.error("Job %s aborted: %s", current.job_id, exc)
      timeout_error = exc

    return await self.finish(current, attempts_used=attempts_used, last_error=last_error, timeout_error=timeout_error)

  async def finish(self, job: JobRecord, *, attempts_used: int, last_error: str | None, timeout_error: OrchestratorTimeoutError | None = None) -> OrchestrationOutcome:
    """Recount and write exactly one terminal status; refund the shortfall on failure."""
    final_count = await self._artifacts_repo.count_artifacts(job.job_id)
    target = job.target_count

    if final_count >= target:
      applied = await self._jobs_repo.finalize_job(job.job_id, status="COMPLETED", completed_count=final_count, completed_at=self._now())
      if not applied:
        return await self._reconcile_after_race(job)
      logger.info("Job %s completed: %s/%s generated in %s attempts", job.job_id, final_count, target, attempts_used)
      self._notify_completed(replace(job, status="COMPLETED", completed_count=final_count))
      return OrchestrationOutcome(job_id=job.job_id, status="COMPLETED", final_count=final_count, target_count=target, attempts_used=attempts_used)

    shortfall = target - final_count
    summary = f"{attempts_used} attempts, {shortfall} failed"
    if timeout_error is not None:
      last_error = f"{timeout_error}; {last_error}" if last_error else str(timeout_error)
    stored_error = format_last_error(attempts=attempts_used, failed=shortfall, last_error=last_error)

    applied = await self._jobs_repo.finalize_job(job.job_id, status="FAILED", completed_count=final_count, error_at=self._now(), last_error=stored_error)
    if not applied:
      return await self._reconcile_after_race(job)

    logger.warning("Job %s failed: %s/%s generated (%s)", job.job_id, final_count, target, stored_error)
    refunded = await self._refund_shortfall(job, final_count)
    self._notify_failed(replace(job, status="FAILED", completed_count=final_count, last_error=stored_error), summary)
    return OrchestrationOutcome(job_id=job.job_id, status="FAILED", final_count=final_count, target_count=target, attempts_used=attempts_used, refunded_amount=refunded, last_error=stored_error)

  async def _run_batch(self, job: JobRecord, reference: ReferenceMaterial, batch: list[int], total: int, attempt: int) -> BatchResult:
    """Run every index of a batch concurrently and wait for all of them."""
    logger.info("[attempt %s] batch %s for job %s", attempt, ", ".join(str(index) for index in batch), job.job_id)
    timeout = self._config.single_item_timeout

    async def _bounded(index: int) -> bool:
      return await asyncio.wait_for(self._item_generator.generate_item(job, reference, index, total, attempt=attempt), timeout=timeout)

    results = await asyncio.gather(*(_bounded(index) for index in batch), return_exceptions=True)

    failed: list[int] = []
    last_error: str | None = None
    for index, result in zip(batch, results, strict=True):
      if not isinstance(result, BaseException):
        continue
      if not isinstance(result, Exception):
        raise result
      failed.append(index)
      if isinstance(result, TimeoutError):
        last_error = f"item {index}/{total} timed out after {timeout:g}s"
      else:
        last_error = str(result) or type(result).__name__
      if isinstance(result, TerminalGenerationError):
        logger.error("[attempt %s] item %s for job %s failed permanently: %s", attempt, index, job.job_id, last_error)
      else:
        logger.warning("[attempt %s] item %s for job %s failed: %s", attempt, index, job.job_id, last_error)

    return BatchResult(failed=failed, last_error=last_error)

  async def _pending_indexes(self, job: JobRecord) -> list[int]:
    existing = set(await self._artifacts_repo.list_artifact_indexes(job.job_id))
    return [index for index in range(1, job.target_count + 1) if index not in existing]

  def _check_deadline(self, started: float) -> None:
    if self._clock() - started > self._config.total_timeout:
      raise OrchestratorTimeoutError(f"total timeout exceeded ({self._config.total_timeout:g}s)")

  async def _reconcile_after_race(self, job: JobRecord) -> OrchestrationOutcome:
    """Another writer finalized the job first; follow whatever it decided."""
    logger.info("Job %s was finalized concurrently; reconciling stored state.", job.job_id)
    current = await self._jobs_repo.get_job(job.job_id)
    if current is None:
      raise LookupError(f"Job {job.job_id} not found")
    return await self._reconcile_terminal(current)

  async def _reconcile_terminal(self, job: JobRecord) -> OrchestrationOutcome:
    """Re-entry on a terminal job: COMPLETED is left alone, FAILED gets its refund re-applied."""
    if job.status == "COMPLETED":
      logger.info("Job %s already completed; nothing to do.", job.job_id)
      return OrchestrationOutcome(job_id=job.job_id, status="COMPLETED", final_count=job.completed_count, target_count=job.target_count, attempts_used=0)

    final_count = await self._artifacts_repo.count_artifacts(job.job_id)
    refunded = await self._refund_shortfall(job, final_count)
    return OrchestrationOutcome(job_id=job.job_id, status="FAILED", final_count=final_count, target_count=job.target_count, attempts_used=0, refunded_amount=refunded, last_error=job.last_error)

  async def _refund_shortfall(self, job: JobRecord, final_count: int) -> int:
    """Refund unproduced items once; ledger errors are logged and never block the job."""
    shortfall = max(job.target_count - final_count, 0)
    amount = shortfall * job.cost_per_item
    if amount <= 0:
      return 0

    reason = f"generation shortfall ({shortfall}/{job.target_count} items) for job {job.job_id}"
    try:
      refunded = await self._ledger.refund(user_id=job.user_id, amount=amount, reference_type=JOB_REFERENCE_TYPE, reference_id=job.job_id, reason=reason)
    except Exception:  # noqa: BLE001
      logger.error("Failed to refund %s credits to user %s for job %s", amount, job.user_id, job.job_id, exc_info=True)
      return 0

    if not refunded:
      logger.info("Refund for job %s already recorded; skipping.", job.job_id)
      return 0
    logger.info("Refunded %s credits to user %s for %s missing items (job %s)", amount, job.user_id, shortfall, job.job_id)
    return amount

  def _notify_completed(self, job: JobRecord) -> None:
    try:
      self._notifier.on_job_completed(job)
    except Exception:  # noqa: BLE001
      logger.error("Completion notification failed for job %s", job.job_id, exc_info=True)

  def _notify_failed(self, job: JobRecord, reason: str) -> None:
    try:
      self._notifier.on_job_failed(job, reason)
    except Exception:  # noqa: BLE001
      logger.error("Failure notification failed for job %s", job.job_id, exc_info=True)
