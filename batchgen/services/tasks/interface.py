from __future__ import annotations

from typing import Protocol


class TaskEnqueuer(Protocol):
  """Interface for handing a job to a worker."""

  async def enqueue(self, job_id: str) -> None:
    """Enqueue a job for processing."""
    ...
