"""Background processor for queued batch generation jobs."""

from __future__ import annotations

import logging

from batchgen.ai.generation import build_generation_client
from batchgen.config import Settings, get_orchestrator_config
from batchgen.jobs.item_generator import ItemGenerator
from batchgen.jobs.models import JobRecord, OrchestrationOutcome
from batchgen.jobs.orchestrator import BatchOrchestrator
from batchgen.jobs.reference_material import ReferenceMaterialCache
from batchgen.notifications.contracts import JobNotifier
from batchgen.notifications.factory import build_notification_service
from batchgen.services.credits import CreditLedger, PostgresCreditLedger
from batchgen.storage.factory import _get_artifacts_repo, _get_reference_repo
from batchgen.storage.jobs_repo import ArtifactsRepository, JobsRepository
from batchgen.telemetry.prompt_log import build_prompt_log_writer


def build_orchestrator(settings: Settings, *, jobs_repo: JobsRepository, artifacts_repo: ArtifactsRepository | None = None, ledger: CreditLedger | None = None, notifier: JobNotifier | None = None) -> BatchOrchestrator:
  """Wire the production orchestrator from settings."""
  artifacts_repo = artifacts_repo or _get_artifacts_repo(settings)
  client = build_generation_client(api_key=settings.openai_api_key, base_url=settings.openai_base_url, generation_model=settings.generation_model, summary_model=settings.summary_model)
  reference_cache = ReferenceMaterialCache(
    _get_reference_repo(settings),
    client,
    source_limit=settings.reference_source_limit,
    summary_min_chars=settings.reference_summary_min_chars,
    fallback_chars=settings.reference_fallback_chars,
  )
  item_generator = ItemGenerator(artifacts_repo=artifacts_repo, client=client, prompt_log=build_prompt_log_writer(settings))
  return BatchOrchestrator(
    jobs_repo=jobs_repo,
    artifacts_repo=artifacts_repo,
    item_generator=item_generator,
    reference_cache=reference_cache,
    ledger=ledger or PostgresCreditLedger(),
    notifier=notifier or build_notification_service(settings),
    config=get_orchestrator_config(settings),
  )


class JobProcessor:
  """Coordinates execution of queued jobs."""

  def __init__(self, *, jobs_repo: JobsRepository, settings: Settings, orchestrator: BatchOrchestrator | None = None) -> None:
    self._jobs_repo = jobs_repo
    self._settings = settings
    self._logger = logging.getLogger(__name__)
    self._orchestrator = orchestrator

  def _get_orchestrator(self) -> BatchOrchestrator:
    if self._orchestrator is None:
      self._orchestrator = build_orchestrator(self._settings, jobs_repo=self._jobs_repo)
    return self._orchestrator

  async def process_job(self, job: JobRecord) -> OrchestrationOutcome | None:
    """Run the orchestrator for one job; unexpected errors leave it non-terminal for the resume sweep."""
    if job.status == "COMPLETED":
      return None

    orchestrator = self._get_orchestrator()
    try:
      return await orchestrator.run(job)
    except Exception:  # noqa: BLE001
      # The row stays non-terminal and unrefunded; the stalled-job sweep retries it.
      self._logger.error("Orchestration failed for job %s; leaving it for the resume sweep.", job.job_id, exc_info=True)
      return None
