import logging

from fastapi import APIRouter, BackgroundTasks, Depends, status

from batchgen.api.models import CreateJobRequest, JobArtifactsResponse, JobCreateResponse, JobProgressResponse
from batchgen.config import Settings, get_settings
from batchgen.core.security import get_current_user_id
from batchgen.services import jobs as job_service

router = APIRouter()
logger = logging.getLogger("batchgen.api.routes.jobs")


@router.post("", response_model=JobCreateResponse, status_code=status.HTTP_202_ACCEPTED)
async def create_job(  # noqa: B008
  request: CreateJobRequest,
  background_tasks: BackgroundTasks,
  settings: Settings = Depends(get_settings),  # noqa: B008
  user_id: str = Depends(get_current_user_id),  # noqa: B008
) -> JobCreateResponse:
  """Create a batch generation job and charge for it up front."""
  return await job_service.create_job(request, settings, background_tasks, user_id=user_id)


@router.get("/{job_id}", response_model=JobProgressResponse)
async def get_job_progress(  # noqa: B008
  job_id: str,
  settings: Settings = Depends(get_settings),  # noqa: B008
  user_id: str = Depends(get_current_user_id),  # noqa: B008
) -> JobProgressResponse:
  """Fetch the progress of a batch generation job."""
  return await job_service.get_job_progress(job_id, settings, user_id)


@router.get("/{job_id}/artifacts", response_model=JobArtifactsResponse)
async def list_job_artifacts(  # noqa: B008
  job_id: str,
  settings: Settings = Depends(get_settings),  # noqa: B008
  user_id: str = Depends(get_current_user_id),  # noqa: B008
) -> JobArtifactsResponse:
  """List the artifacts produced for a job, ordered by index."""
  return await job_service.list_job_artifacts(job_id, settings, user_id)
