import logging

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from batchgen.core.middleware import RequestLoggingMiddleware


def _build_app() -> FastAPI:
  app = FastAPI()
  app.add_middleware(RequestLoggingMiddleware)

  @app.post("/internal/tasks/process-job")
  async def process_job(payload: dict) -> dict:
    return {"job_id": payload["job_id"]}

  @app.get("/health")
  async def health() -> dict:
    return {"status": "ok"}

  return app


@pytest.fixture
async def client():
  async with AsyncClient(transport=ASGITransport(app=_build_app()), base_url="http://test") as client:
    yield client


@pytest.mark.anyio
async def test_task_callbacks_log_the_job_and_delivery(client, caplog) -> None:
  caplog.set_level(logging.INFO, logger="batchgen.core.middleware")

  response = await client.post("/internal/tasks/process-job", json={"job_id": "job-42"}, headers={"X-CloudTasks-TaskName": "task-7", "X-CloudTasks-TaskRetryCount": "2"})

  # The body is still delivered to the route after the middleware reads it.
  assert response.json() == {"job_id": "job-42"}
  assert "job_id=job-42 task=task-7 retry=2" in caplog.text


@pytest.mark.anyio
async def test_public_routes_skip_task_logging(client, caplog) -> None:
  caplog.set_level(logging.INFO, logger="batchgen.core.middleware")

  await client.get("/health")

  assert "Task callback" not in caplog.text
  assert "GET /health status=200" in caplog.text


@pytest.mark.anyio
async def test_upstream_request_ids_are_reused(client) -> None:
  response = await client.get("/health", headers={"x-request-id": "trace-0123456789"})
  assert response.headers["x-request-id"] == "trace-0123456789"


@pytest.mark.anyio
async def test_malformed_request_ids_are_replaced(client) -> None:
  response = await client.get("/health", headers={"x-request-id": "bad id"})
  assert response.headers["x-request-id"] != "bad id"
  assert len(response.headers["x-request-id"]) == 36
