from __future__ import annotations

from dataclasses import replace
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from batchgen.config import get_settings
from batchgen.main import app

TASK_SECRET = "task-secret-value"


@pytest.fixture
def task_settings():
  return replace(get_settings(), task_secret=TASK_SECRET)


@pytest.fixture
async def internal_client(task_settings):
  app.dependency_overrides[get_settings] = lambda: task_settings
  async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
    yield client
  app.dependency_overrides.clear()


@pytest.mark.anyio
async def test_process_job_accepts_the_shared_secret_header(internal_client, task_settings, monkeypatch: pytest.MonkeyPatch) -> None:
  process = AsyncMock(return_value=None)
  monkeypatch.setattr("batchgen.api.routes.tasks.process_job_sync", process)

  response = await internal_client.post("/internal/tasks/process-job", json={"job_id": "job-1"}, headers={"X-Batchgen-Task-Secret": TASK_SECRET})

  assert response.status_code == 200
  assert response.json() == {"status": "accepted"}
  process.assert_awaited_once_with("job-1", task_settings)


@pytest.mark.anyio
async def test_process_job_accepts_a_bearer_secret(internal_client, monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setattr("batchgen.api.routes.tasks.process_job_sync", AsyncMock(return_value=None))

  response = await internal_client.post("/internal/tasks/process-job", json={"job_id": "job-1"}, headers={"Authorization": f"Bearer {TASK_SECRET}"})

  assert response.status_code == 200


@pytest.mark.anyio
@pytest.mark.parametrize("headers", [{}, {"X-Batchgen-Task-Secret": "wrong"}, {"Authorization": "Bearer wrong"}])
async def test_process_job_rejects_bad_secrets(internal_client, monkeypatch: pytest.MonkeyPatch, headers) -> None:
  process = AsyncMock(return_value=None)
  monkeypatch.setattr("batchgen.api.routes.tasks.process_job_sync", process)

  response = await internal_client.post("/internal/tasks/process-job", json={"job_id": "job-1"}, headers=headers)

  assert response.status_code == 403
  process.assert_not_called()


@pytest.mark.anyio
async def test_internal_routes_are_closed_without_a_configured_secret(task_settings) -> None:
  app.dependency_overrides[get_settings] = lambda: replace(task_settings, task_secret=None)
  try:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
      response = await client.post("/internal/tasks/process-job", json={"job_id": "job-1"}, headers={"X-Batchgen-Task-Secret": ""})
  finally:
    app.dependency_overrides.clear()

  assert response.status_code == 403
  assert response.json()["detail"] == "Task authentication is not configured."


@pytest.mark.anyio
async def test_resume_stalled_returns_enqueued_jobs(internal_client, monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setattr("batchgen.api.routes.tasks.resume_stalled_jobs", AsyncMock(return_value=["job-1", "job-2"]))

  response = await internal_client.post("/internal/tasks/resume-stalled", headers={"X-Batchgen-Task-Secret": TASK_SECRET})

  assert response.status_code == 200
  assert response.json() == {"enqueued": ["job-1", "job-2"]}
