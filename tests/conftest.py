"""Shared fixtures and in-memory test doubles for the batch generation service."""

from __future__ import annotations

import asyncio
import os
import sys
from collections.abc import Callable, Mapping, Sequence
from dataclasses import replace
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
  sys.path.insert(0, str(ROOT))

# Ensure required settings are available before importing the app.
os.environ.setdefault("BATCHGEN_ALLOWED_ORIGINS", "http://localhost")
os.environ.setdefault("BATCHGEN_JOBS_AUTO_PROCESS", "0")
os.environ.setdefault("BATCHGEN_TASK_SERVICE_PROVIDER", "local-http")

import pytest  # noqa: E402

from batchgen.ai.generation import GenerationPrompt, GenerationResult  # noqa: E402
from batchgen.config import OrchestratorConfig  # noqa: E402
from batchgen.jobs.item_generator import ItemGenerator  # noqa: E402
from batchgen.jobs.models import ACTIVE_STATUSES, ArtifactPayload, ArtifactRecord, JobRecord, ReferenceMaterial  # noqa: E402
from batchgen.jobs.orchestrator import BatchOrchestrator  # noqa: E402
from batchgen.jobs.reference_material import ReferenceMaterialCache  # noqa: E402
from batchgen.services.credits import CreditBalance, InsufficientCreditsError  # noqa: E402
from batchgen.storage.reference_repo import ReferenceSourceRecord  # noqa: E402


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


class InMemoryJobsRepo:
  """In-memory jobs repository that mirrors the conditional writes of the Postgres one."""

  def __init__(self) -> None:
    self.jobs: dict[str, JobRecord] = {}
    self.progress_history: list[tuple[str, int]] = []
    self.finalize_calls: list[tuple[str, str]] = []

  async def create_job(self, record: JobRecord) -> None:
    self.jobs[record.job_id] = record

  async def get_job(self, job_id: str) -> JobRecord | None:
    return self.jobs.get(job_id)

  async def find_by_idempotency_key(self, user_id: str, idempotency_key: str) -> JobRecord | None:
    for record in self.jobs.values():
      if record.user_id == user_id and record.idempotency_key == idempotency_key:
        return record
    return None

  async def update_job(self, job_id: str, *, status: str | None = None, started_at: datetime | None = None, last_error: str | None = None) -> JobRecord | None:
    record = self.jobs.get(job_id)

    # Bail out when the job id is unknown.
    if record is None:
      return None

    changes: dict[str, Any] = {}
    if status is not None and record.status in ACTIVE_STATUSES:
      changes["status"] = status
    if started_at is not None:
      changes["started_at"] = started_at
    if last_error is not None:
      changes["last_error"] = last_error
    updated = replace(record, **changes)
    self.jobs[job_id] = updated
    return updated

  async def record_progress(self, job_id: str, completed_count: int) -> None:
    self.progress_history.append((job_id, completed_count))
    record = self.jobs.get(job_id)
    if record is None or record.status not in ACTIVE_STATUSES:
      return
    self.jobs[job_id] = replace(record, status="IN_PROGRESS", completed_count=max(record.completed_count, completed_count))

  async def finalize_job(self, job_id: str, *, status: str, completed_count: int, completed_at: datetime | None = None, error_at: datetime | None = None, last_error: str | None = None) -> bool:
    self.finalize_calls.append((job_id, status))
    record = self.jobs.get(job_id)
    if record is None or record.status not in ACTIVE_STATUSES:
      return False
    self.jobs[job_id] = replace(record, status=status, completed_count=completed_count, completed_at=completed_at, error_at=error_at, last_error=last_error)
    return True

  async def delete_job(self, job_id: str) -> None:
    self.jobs.pop(job_id, None)

  async def find_resumable(self, *, stalled_before: datetime, limit: int = 20) -> list[JobRecord]:
    return [record for record in self.jobs.values() if record.status in ACTIVE_STATUSES][:limit]


class InMemoryArtifactsRepo:
  """In-memory artifact store keyed by (job_id, index)."""

  def __init__(self) -> None:
    self.artifacts: dict[str, dict[int, ArtifactRecord]] = {}
    self._next_id = 1

  async def count_artifacts(self, job_id: str) -> int:
    return len(self.artifacts.get(job_id, {}))

  async def list_artifact_indexes(self, job_id: str) -> list[int]:
    return sorted(self.artifacts.get(job_id, {}))

  async def create_artifact(self, job_id: str, payload: ArtifactPayload) -> bool:
    bucket = self.artifacts.setdefault(job_id, {})
    if payload.index in bucket:
      return False
    bucket[payload.index] = ArtifactRecord(
      id=self._next_id,
      job_id=job_id,
      index=payload.index,
      content=payload.content,
      title=payload.title,
      prompt_tokens=payload.prompt_tokens,
      completion_tokens=payload.completion_tokens,
      total_tokens=payload.total_tokens,
      retry_count_at_success=payload.retry_count_at_success,
      created_at=datetime.now(UTC),
    )
    self._next_id += 1
    return True

  async def list_artifact_titles(self, job_id: str) -> list[str]:
    return [record.title for _, record in sorted(self.artifacts.get(job_id, {}).items()) if record.title]

  async def list_artifacts(self, job_id: str) -> list[ArtifactRecord]:
    return [record for _, record in sorted(self.artifacts.get(job_id, {}).items())]

  def seed(self, job_id: str, *indexes: int) -> None:
    """Pretend earlier runs already persisted these indexes."""
    for index in indexes:
      bucket = self.artifacts.setdefault(job_id, {})
      bucket[index] = ArtifactRecord(id=self._next_id, job_id=job_id, index=index, content=f"seeded {index}", title=f"Seeded {index}", prompt_tokens=0, completion_tokens=0, total_tokens=0, retry_count_at_success=0)
      self._next_id += 1


class InMemoryReferenceRepo:
  """Ranked sources and summary cache held in dictionaries."""

  def __init__(self) -> None:
    self.sources: dict[str, list[ReferenceSourceRecord]] = {}
    self.summaries: dict[tuple[int, str], str] = {}
    self.saved: list[tuple[int, str, str]] = []
    self.fail_saves = False

  def add_source(self, keyword: str, source_id: int, content: str | None, *, rank: int | None = None) -> None:
    bucket = self.sources.setdefault(keyword, [])
    bucket.append(ReferenceSourceRecord(source_id=source_id, rank=rank if rank is not None else len(bucket) + 1, title=f"source {source_id}", content=content))

  async def list_top_sources(self, keyword: str, limit: int) -> list[ReferenceSourceRecord]:
    return sorted(self.sources.get(keyword, []), key=lambda source: source.rank)[:limit]

  async def get_summary(self, source_id: int, variant_key: str) -> str | None:
    return self.summaries.get((source_id, variant_key))

  async def save_summary(self, source_id: int, variant_key: str, *, category: str, summary: str) -> None:
    if self.fail_saves:
      raise RuntimeError("cache write failed")
    self.summaries.setdefault((source_id, variant_key), summary)
    self.saved.append((source_id, variant_key, category))


class InMemoryLedger:
  """Credit ledger double enforcing charge-once and refund-at-most-once per job."""

  def __init__(self, balances: dict[str, int] | None = None) -> None:
    self.balances: dict[str, int] = dict(balances or {})
    self.charges: dict[tuple[str, str], int] = {}
    self.refunds: dict[tuple[str, str], int] = {}
    self.refund_calls: list[tuple[str, int]] = []
    self.fail_refunds = False
    self.fail_charges: Exception | None = None

  async def get_balance(self, user_id: str) -> CreditBalance:
    return CreditBalance(user_id=user_id, balance=self.balances.get(user_id, 0))

  async def charge(self, *, user_id: str, amount: int, reference_type: str, reference_id: str, metadata: dict | None = None) -> CreditBalance:
    if self.fail_charges is not None:
      raise self.fail_charges
    key = (reference_type, reference_id)
    if key in self.charges:
      return await self.get_balance(user_id)
    available = self.balances.get(user_id, 0)
    if available < amount:
      raise InsufficientCreditsError(required=amount, available=available)
    self.balances[user_id] = available - amount
    self.charges[key] = amount
    return await self.get_balance(user_id)

  async def refund(self, *, user_id: str, amount: int, reference_type: str, reference_id: str, reason: str) -> bool:
    self.refund_calls.append((reference_id, amount))
    if self.fail_refunds:
      raise RuntimeError("ledger unavailable")
    key = (reference_type, reference_id)
    if key in self.refunds or amount <= 0:
      return False
    refundable = min(amount, self.charges.get(key, amount))
    self.refunds[key] = refundable
    self.balances[user_id] = self.balances.get(user_id, 0) + refundable
    return True


class RecordingNotifier:
  """Notifier double that records terminal events."""

  def __init__(self, *, raises: bool = False) -> None:
    self.completed: list[JobRecord] = []
    self.failed: list[tuple[JobRecord, str]] = []
    self._raises = raises

  def on_job_completed(self, job: JobRecord) -> None:
    if self._raises:
      raise RuntimeError("notifier down")
    self.completed.append(job)

  def on_job_failed(self, job: JobRecord, reason: str) -> None:
    if self._raises:
      raise RuntimeError("notifier down")
    self.failed.append((job, reason))


class ScriptedGenerationClient:
  """Generation client whose per-index outcomes are scripted.

  ``script`` maps an index to the outcomes of its successive calls: an
  exception instance is raised, a float sleeps that many seconds before
  succeeding, and ``"ok"`` succeeds. Unscripted calls succeed.
  """

  def __init__(self, script: Mapping[int, Sequence[Any]] | None = None) -> None:
    self._script = {index: list(outcomes) for index, outcomes in (script or {}).items()}
    self.calls: list[int] = []
    self.params_seen: list[dict[str, Any]] = []
    self.titles_seen: list[list[str]] = []
    self.summaries: list[tuple[str, str]] = []
    self.summary_error: Exception | None = None

  async def generate(self, params: Mapping[str, Any], reference_material: ReferenceMaterial, index: int, total_count: int, existing_titles: Sequence[str]) -> GenerationResult:
    self.calls.append(index)
    self.params_seen.append(dict(params))
    self.titles_seen.append(list(existing_titles))
    outcomes = self._script.get(index)
    outcome = outcomes.pop(0) if outcomes else "ok"
    if isinstance(outcome, BaseException):
      raise outcome
    if isinstance(outcome, int | float) and not isinstance(outcome, bool):
      await asyncio.sleep(outcome)
    prompt = GenerationPrompt(system_prompt="system", user_prompt=f"user {index}", model="test-model")
    return GenerationResult(content=f"<p>post {index}</p>", raw=f'{{"title": "Post {index}"}}', prompt=prompt, title=f"Post {index}", usage={"prompt_tokens": 10, "completion_tokens": 20, "total_tokens": 30}, duration_ms=5)

  async def summarize(self, content: str, keyword: str, variant_key: str) -> str:
    self.summaries.append((keyword, variant_key))
    if self.summary_error is not None:
      raise self.summary_error
    return f"summary of {len(content)} chars"


class FakeClock:
  """Monotonic clock advanced only by the injected sleep."""

  def __init__(self) -> None:
    self.now = 0.0
    self.sleeps: list[float] = []

  def __call__(self) -> float:
    return self.now

  async def sleep(self, delay: float) -> None:
    self.sleeps.append(delay)
    self.now += delay


@pytest.fixture
def jobs_repo() -> InMemoryJobsRepo:
  return InMemoryJobsRepo()


@pytest.fixture
def artifacts_repo() -> InMemoryArtifactsRepo:
  return InMemoryArtifactsRepo()


@pytest.fixture
def reference_repo() -> InMemoryReferenceRepo:
  return InMemoryReferenceRepo()


@pytest.fixture
def ledger() -> InMemoryLedger:
  return InMemoryLedger()


@pytest.fixture
def notifier() -> RecordingNotifier:
  return RecordingNotifier()


@pytest.fixture
def fake_clock() -> FakeClock:
  return FakeClock()


@pytest.fixture
def scripted_client() -> Callable[..., ScriptedGenerationClient]:
  return ScriptedGenerationClient


@pytest.fixture
def failing_notifier() -> RecordingNotifier:
  return RecordingNotifier(raises=True)


@pytest.fixture
def make_job(jobs_repo: InMemoryJobsRepo, ledger: InMemoryLedger) -> Callable[..., Any]:
  """Persist a job and charge its full cost, the way job creation does."""

  async def _make(job_id: str = "job-1", *, target_count: int = 3, cost_per_item: int = 5, status: str = "PENDING", starting_balance: int = 1000, **overrides: Any) -> JobRecord:
    record = JobRecord(
      job_id=job_id,
      display_id=f"20260101-{job_id}",
      user_id=overrides.pop("user_id", "user-1"),
      keyword=overrides.pop("keyword", "gangnam brunch"),
      target_count=target_count,
      cost_per_item=cost_per_item,
      status=status,  # type: ignore[arg-type]
      params=overrides.pop("params", {"post_type": "default", "persona": {"occupation": "chef", "is_random": False}, "length": 800}),
      created_at=datetime(2026, 1, 1, tzinfo=UTC),
      **overrides,
    )
    ledger.balances.setdefault(record.user_id, starting_balance)
    await ledger.charge(user_id=record.user_id, amount=record.total_cost, reference_type="generation_job", reference_id=record.job_id)
    await jobs_repo.create_job(record)
    return record

  return _make


@pytest.fixture
def make_orchestrator(jobs_repo: InMemoryJobsRepo, artifacts_repo: InMemoryArtifactsRepo, reference_repo: InMemoryReferenceRepo, ledger: InMemoryLedger, notifier: RecordingNotifier, fake_clock: FakeClock) -> Callable[..., BatchOrchestrator]:
  """Build an orchestrator over the in-memory doubles with instant sleeps."""

  def _make(client: ScriptedGenerationClient, *, notifier_override: RecordingNotifier | None = None, **config: Any) -> BatchOrchestrator:
    defaults = {"max_retry": 3, "batch_size": 1, "single_item_timeout": 5.0, "total_timeout": 1200.0, "retry_delay": 2.0, "inter_batch_delay": 0.5}
    defaults.update(config)
    return BatchOrchestrator(
      jobs_repo=jobs_repo,
      artifacts_repo=artifacts_repo,
      item_generator=ItemGenerator(artifacts_repo=artifacts_repo, client=client),
      reference_cache=ReferenceMaterialCache(reference_repo, client),
      ledger=ledger,
      notifier=notifier_override or notifier,
      config=OrchestratorConfig(**defaults),
      clock=fake_clock,
      sleep=fake_clock.sleep,
    )

  return _make
