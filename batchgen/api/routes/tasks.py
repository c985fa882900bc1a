from __future__ import annotations

import logging
import secrets
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, status

from batchgen.api.models import ResumeStalledResponse, TaskPayload
from batchgen.config import Settings, get_settings
from batchgen.services.jobs import process_job_sync, resume_stalled_jobs

router = APIRouter(prefix="/tasks", tags=["tasks"])
logger = logging.getLogger(__name__)


def require_task_secret(settings: Annotated[Settings, Depends(get_settings)], authorization: str | None = Header(default=None), x_batchgen_task_secret: str | None = Header(default=None)) -> None:
  """Authenticate internal task calls with the shared task secret."""
  # Secure-by-default: internal task endpoints must be authenticated to avoid arbitrary job execution.
  if not settings.task_secret:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Task authentication is not configured.")
  expected_auth = f"Bearer {settings.task_secret}"
  # Cloud Tasks OIDC uses Authorization for Cloud Run invoker auth, so accept a dedicated secret header first.
  shared_secret_valid = secrets.compare_digest((x_batchgen_task_secret or ""), settings.task_secret)
  bearer_valid = secrets.compare_digest((authorization or ""), expected_auth)
  if not shared_secret_valid and not bearer_valid:
    logger.warning("Unauthorized access attempt to internal task endpoint")
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid task secret.")


@router.post("/process-job", status_code=status.HTTP_200_OK, dependencies=[Depends(require_task_secret)])
async def process_job_task(payload: TaskPayload, background_tasks: BackgroundTasks, settings: Annotated[Settings, Depends(get_settings)]) -> dict[str, str]:
  """
  Handler for Cloud Tasks (and local simulation).
  Accepts the task quickly and processes the job in the background to avoid client disconnects/timeouts.
  """
  logger.info("Received task for job %s", payload.job_id)
  background_tasks.add_task(process_job_sync, payload.job_id, settings)
  return {"status": "accepted"}


@router.post("/resume-stalled", response_model=ResumeStalledResponse, dependencies=[Depends(require_task_secret)])
async def resume_stalled_task(settings: Annotated[Settings, Depends(get_settings)]) -> ResumeStalledResponse:
  """Re-enqueue stalled jobs and failed jobs still owed a refund (called by a scheduler)."""
  enqueued = await resume_stalled_jobs(settings)
  return ResumeStalledResponse(enqueued=enqueued)
