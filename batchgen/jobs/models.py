"""Domain records shared by the job store, the worker and the API layer."""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import Any, Literal

JobStatus = Literal["PENDING", "IN_PROGRESS", "COMPLETED", "FAILED"]

ACTIVE_STATUSES: frozenset[str] = frozenset({"PENDING", "IN_PROGRESS"})
TERMINAL_STATUSES: frozenset[str] = frozenset({"COMPLETED", "FAILED"})

# Ledger reference type for charges and refunds keyed by job id.
JOB_REFERENCE_TYPE = "generation_job"


@dataclass
class JobRecord:
  """Persistence-agnostic view of one generation job."""

  job_id: str
  user_id: str
  keyword: str
  target_count: int
  cost_per_item: int
  status: JobStatus = "PENDING"
  display_id: str | None = None
  variant_key: str = "default"
  params: dict[str, Any] = field(default_factory=dict)
  completed_count: int = 0
  last_error: str | None = None
  idempotency_key: str | None = None
  created_at: datetime.datetime | None = None
  updated_at: datetime.datetime | None = None
  started_at: datetime.datetime | None = None
  completed_at: datetime.datetime | None = None
  error_at: datetime.datetime | None = None

  @property
  def is_terminal(self) -> bool:
    return self.status in TERMINAL_STATUSES

  @property
  def total_cost(self) -> int:
    return self.target_count * self.cost_per_item


@dataclass(frozen=True)
class ArtifactPayload:
  """Fields the item generator hands to the artifact store for one index."""

  index: int
  content: str
  title: str | None = None
  prompt_tokens: int = 0
  completion_tokens: int = 0
  total_tokens: int = 0
  retry_count_at_success: int = 0


@dataclass(frozen=True)
class ArtifactRecord:
  """Persisted artifact row."""

  id: int
  job_id: str
  index: int
  content: str
  title: str | None
  prompt_tokens: int
  completion_tokens: int
  total_tokens: int
  retry_count_at_success: int
  created_at: datetime.datetime | None = None


@dataclass(frozen=True)
class ReferenceMaterial:
  """Shared generation context computed once per job run."""

  keyword: str
  variant_key: str
  contents: tuple[str, ...] = ()

  def is_empty(self) -> bool:
    return not self.contents


@dataclass(frozen=True)
class OrchestrationOutcome:
  """Summary of one orchestrator run, returned to the worker."""

  job_id: str
  status: JobStatus
  final_count: int
  target_count: int
  attempts_used: int
  refunded_amount: int = 0
  last_error: str | None = None
