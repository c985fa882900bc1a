from __future__ import annotations

import json
from dataclasses import replace
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import BackgroundTasks

from batchgen.config import get_settings
from batchgen.services import jobs as job_service
from batchgen.services.tasks.factory import get_task_enqueuer
from batchgen.services.tasks.gcp import CloudTasksEnqueuer
from batchgen.services.tasks.local import PROCESS_JOB_PATH, LocalHttpEnqueuer


def _settings(**overrides):
  return replace(get_settings(), **overrides)


def test_factory_selects_local_enqueuer_by_default() -> None:
  assert isinstance(get_task_enqueuer(_settings(task_service_provider="local-http")), LocalHttpEnqueuer)


def test_cloud_task_targets_process_route_with_secret_and_oidc() -> None:
  settings = _settings(base_url="https://api.example.com/", task_secret="s3cret", cloud_run_invoker_service_account="invoker@example.iam.gserviceaccount.com", cloud_tasks_queue_path="projects/p/locations/l/queues/q")
  enqueuer = CloudTasksEnqueuer(settings, client=MagicMock())

  task = enqueuer.build_task("job-1")

  http_request = task["http_request"]
  assert http_request["url"] == f"https://api.example.com{PROCESS_JOB_PATH}"
  assert http_request["headers"]["X-Batchgen-Task-Secret"] == "s3cret"
  assert json.loads(http_request["body"]) == {"job_id": "job-1"}
  assert http_request["oidc_token"] == {"service_account_email": "invoker@example.iam.gserviceaccount.com"}
  assert task["dispatch_deadline"] == {"seconds": 1800}


def test_cloud_task_requires_secret() -> None:
  enqueuer = CloudTasksEnqueuer(_settings(base_url="https://api.example.com", task_secret=None), client=MagicMock())
  with pytest.raises(RuntimeError, match="Task secret"):
    enqueuer.build_task("job-1")


@pytest.mark.anyio
async def test_cloud_enqueue_creates_the_task_on_the_queue() -> None:
  client = MagicMock()
  client.create_task.return_value = MagicMock(name="task")
  settings = _settings(base_url="https://api.example.com", task_secret="s3cret", cloud_tasks_queue_path="projects/p/locations/l/queues/q")

  await CloudTasksEnqueuer(settings, client=client).enqueue("job-9")

  request = client.create_task.call_args.kwargs["request"]
  assert request["parent"] == "projects/p/locations/l/queues/q"
  assert request["task"]["http_request"]["url"].endswith(PROCESS_JOB_PATH)


@pytest.mark.anyio
async def test_local_enqueue_requires_base_url() -> None:
  with pytest.raises(RuntimeError, match="Base URL"):
    await LocalHttpEnqueuer(_settings(base_url=None, task_secret="s3cret")).enqueue("job-1")


def test_local_enqueuer_routes_localhost_in_process() -> None:
  enqueuer = LocalHttpEnqueuer(_settings(base_url="http://localhost:8080", task_secret="s3cret"))
  assert enqueuer._should_use_asgi_transport("http://localhost:8080")
  assert not enqueuer._should_use_asgi_transport("https://api.example.com")


@pytest.mark.anyio
async def test_trigger_is_a_no_op_when_auto_processing_is_disabled(monkeypatch: pytest.MonkeyPatch) -> None:
  factory = MagicMock()
  monkeypatch.setattr(job_service, "get_task_enqueuer", factory)
  background_tasks = BackgroundTasks()

  job_service.trigger_job_processing(background_tasks, "job-1", _settings(jobs_auto_process=False))

  factory.assert_not_called()
  assert background_tasks.tasks == []


@pytest.mark.anyio
async def test_enqueue_failures_leave_the_job_for_the_sweep(monkeypatch: pytest.MonkeyPatch, caplog) -> None:
  enqueuer = MagicMock()
  enqueuer.enqueue = AsyncMock(side_effect=RuntimeError("queue unavailable"))
  monkeypatch.setattr(job_service, "get_task_enqueuer", lambda _settings: enqueuer)
  background_tasks = BackgroundTasks()

  job_service.trigger_job_processing(background_tasks, "job-1", _settings(jobs_auto_process=True))
  await background_tasks()

  enqueuer.enqueue.assert_awaited_once_with("job-1")
  assert "Failed to enqueue job job-1" in caplog.text


@pytest.mark.anyio
async def test_resume_sweep_enqueues_stalled_jobs(monkeypatch: pytest.MonkeyPatch, make_job, jobs_repo) -> None:
  await make_job("job-a", status="IN_PROGRESS")
  await make_job("job-b", status="PENDING")
  await make_job("job-c", status="COMPLETED")
  enqueuer = MagicMock()
  enqueuer.enqueue = AsyncMock(side_effect=[RuntimeError("transient"), None])
  monkeypatch.setattr(job_service, "_get_jobs_repo", lambda _settings: jobs_repo)
  monkeypatch.setattr(job_service, "get_task_enqueuer", lambda _settings: enqueuer)

  enqueued = await job_service.resume_stalled_jobs(_settings())

  assert enqueued == ["job-b"]
  assert enqueuer.enqueue.await_count == 2
