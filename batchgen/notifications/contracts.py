"""Contracts for job lifecycle notifications."""

from __future__ import annotations

from typing import Protocol

from batchgen.jobs.models import JobRecord


class JobNotifier(Protocol):
  """Fire-and-forget sink for terminal job events.

  Implementations schedule delivery and return immediately; delivery
  failures are logged by the implementation and never raised to the caller.
  """

  def on_job_completed(self, job: JobRecord) -> None:
    """Announce that every artifact of a job was produced."""

  def on_job_failed(self, job: JobRecord, reason: str) -> None:
    """Announce that a job ended short of its target."""
