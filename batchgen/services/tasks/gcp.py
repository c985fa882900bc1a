from __future__ import annotations

import json
import logging

from google.cloud import tasks_v2
from starlette.concurrency import run_in_threadpool

from batchgen.config import Settings
from batchgen.services.tasks.interface import TaskEnqueuer
from batchgen.services.tasks.local import PROCESS_JOB_PATH

logger = logging.getLogger(__name__)

# Cloud Tasks caps HTTP task dispatch deadlines at 30 minutes.
_DISPATCH_DEADLINE_SECONDS = 1800


class CloudTasksEnqueuer(TaskEnqueuer):
  """Enqueues tasks to Google Cloud Tasks."""

  def __init__(self, settings: Settings, client: tasks_v2.CloudTasksClient | None = None) -> None:
    self.settings = settings
    self.client = client or tasks_v2.CloudTasksClient()

  def build_task(self, job_id: str) -> dict:
    """Build the HTTP task body that targets the internal process-job route."""
    if not self.settings.base_url:
      raise RuntimeError("Base URL not configured.")
    if not self.settings.task_secret:
      raise RuntimeError("Task secret not configured.")

    url = f"{self.settings.base_url.rstrip('/')}{PROCESS_JOB_PATH}"
    http_request: dict = {
      "http_method": tasks_v2.HttpMethod.POST,
      "url": url,
      "headers": {"Content-Type": "application/json", "X-Batchgen-Task-Secret": self.settings.task_secret},
      "body": json.dumps({"job_id": job_id}).encode(),
    }
    # Cloud Run invoker auth rides on Authorization, so the shared secret uses its own header.
    if self.settings.cloud_run_invoker_service_account:
      http_request["oidc_token"] = {"service_account_email": self.settings.cloud_run_invoker_service_account}
    return {"http_request": http_request, "dispatch_deadline": {"seconds": _DISPATCH_DEADLINE_SECONDS}}

  async def enqueue(self, job_id: str) -> None:
    """Enqueue a job to Cloud Tasks."""
    if not self.settings.cloud_tasks_queue_path:
      raise RuntimeError("Cloud Tasks queue path not configured.")

    task = self.build_task(job_id)
    parent = self.settings.cloud_tasks_queue_path
    # The Cloud Tasks client is synchronous; keep it off the event loop.
    response = await run_in_threadpool(self.client.create_task, request={"parent": parent, "task": task})
    logger.info("Enqueued task %s for job %s", response.name, job_id)
