"""Produce exactly one artifact for one (job, index) pair."""

from __future__ import annotations

import logging
import random
from typing import TYPE_CHECKING

from batchgen.jobs.models import ArtifactPayload, JobRecord, ReferenceMaterial
from batchgen.jobs.personas import generate_random_persona, uses_random_persona
from batchgen.storage.jobs_repo import ArtifactsRepository
from batchgen.telemetry.prompt_log import PromptLogEntry, PromptLogWriter, write_prompt_log

if TYPE_CHECKING:
  from batchgen.ai.generation import GenerationClient

logger = logging.getLogger(__name__)


class ItemGenerator:
  """Idempotent single-artifact producer used by the batch orchestrator."""

  def __init__(self, *, artifacts_repo: ArtifactsRepository, client: GenerationClient, prompt_log: PromptLogWriter | None = None, rng: random.Random | None = None) -> None:
    self._artifacts_repo = artifacts_repo
    self._client = client
    self._prompt_log = prompt_log
    self._rng = rng

  async def generate_item(self, job: JobRecord, reference_material: ReferenceMaterial, index: int, total_count: int, *, attempt: int = 1) -> bool:
    """Generate and persist the artifact at ``index``.

    Returns True when this call persisted a new artifact and False when the
    index (or the whole job) was already satisfied. Generation errors
    propagate without persisting anything.
    """
    if index < 1 or index > job.target_count:
      raise ValueError(f"index {index} outside 1..{job.target_count}")

    # Guard against re-generation after a crash or a concurrent run.
    existing = await self._artifacts_repo.list_artifact_indexes(job.job_id)
    if index in existing or len(existing) >= job.target_count:
      logger.info("Artifact %s/%s for job %s already exists; skipping.", index, total_count, job.job_id)
      return False

    params = dict(job.params)
    if uses_random_persona(params):
      params["persona"] = generate_random_persona(self._rng)

    existing_titles = await self._artifacts_repo.list_artifact_titles(job.job_id)
    result = await self._client.generate(params, reference_material, index, total_count, existing_titles)

    payload = ArtifactPayload(
      index=index,
      content=result.content,
      title=result.title,
      prompt_tokens=int(result.usage.get("prompt_tokens", 0)),
      completion_tokens=int(result.usage.get("completion_tokens", 0)),
      total_tokens=int(result.usage.get("total_tokens", 0)),
      retry_count_at_success=max(attempt - 1, 0),
    )
    created = await self._artifacts_repo.create_artifact(job.job_id, payload)
    if not created:
      # A concurrent run persisted this index first; the index is satisfied either way.
      logger.info("Artifact %s for job %s was persisted concurrently; keeping the first.", index, job.job_id)
      return False

    logger.info("Artifact %s/%s generated for job %s (tokens=%s)", index, total_count, job.job_id, payload.total_tokens)

    entry = PromptLogEntry(
      user_id=job.user_id,
      job_id=job.job_id,
      artifact_index=index,
      purpose="artifact_generation",
      model=result.prompt.model,
      system_prompt=result.prompt.system_prompt,
      user_prompt=result.prompt.user_prompt,
      response=result.raw,
      prompt_tokens=payload.prompt_tokens,
      completion_tokens=payload.completion_tokens,
      total_tokens=payload.total_tokens,
      duration_ms=result.duration_ms,
      metadata={"keyword": job.keyword, "variant_key": job.variant_key, "attempt": attempt, "total_count": total_count},
    )
    await write_prompt_log(self._prompt_log, entry)
    return True
