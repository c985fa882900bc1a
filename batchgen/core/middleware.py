import json
import logging
import re
import time
import uuid
from typing import Any

from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger("batchgen.core.middleware")

INTERNAL_TASKS_PREFIX = "/internal/tasks"
_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{8,128}$")


def _header_map(scope: Scope) -> dict[str, str]:
  return {key.decode("latin-1").lower(): value.decode("latin-1") for key, value in scope.get("headers", [])}


def _resolve_request_id(headers: dict[str, str]) -> str:
  """Reuse a well-formed upstream request id, otherwise mint one."""
  candidate = headers.get("x-request-id", "")
  if _REQUEST_ID_PATTERN.match(candidate):
    return candidate
  return str(uuid.uuid4())


def _extract_job_id(body: bytes) -> str | None:
  if not body:
    return None
  try:
    payload = json.loads(body)
  except ValueError:
    return None
  if isinstance(payload, dict) and isinstance(payload.get("job_id"), str):
    return payload["job_id"]
  return None


class RequestLoggingMiddleware:
  """Log request/response metadata and tag every request with an id.

  Task-queue callbacks under ``/internal/tasks`` additionally log the job id
  from the JSON body and the Cloud Tasks delivery headers, so a worker run can
  be traced back to the enqueue that produced it.
  """

  def __init__(self, app: ASGIApp) -> None:
    self.app = app

  async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
    if scope["type"] != "http":
      await self.app(scope, receive, send)
      return

    headers = _header_map(scope)
    request_id = _resolve_request_id(headers)
    scope.setdefault("state", {})["request_id"] = request_id

    start_time = time.perf_counter()
    method = scope.get("method", "UNKNOWN")
    path = scope.get("path", "")
    logger.info("Incoming request request_id=%s %s %s", request_id, method, path)

    is_task_call = path.startswith(INTERNAL_TASKS_PREFIX)
    body_chunks: list[bytes] = []
    task_logged = False

    async def receive_wrapper() -> Message:
      nonlocal task_logged
      message = await receive()
      if is_task_call and not task_logged and message.get("type") == "http.request":
        body_chunks.append(message.get("body", b""))
        if not message.get("more_body", False):
          task_logged = True
          logger.info(
            "Task callback request_id=%s job_id=%s task=%s retry=%s",
            request_id,
            _extract_job_id(b"".join(body_chunks)) or "-",
            headers.get("x-cloudtasks-taskname", "-"),
            headers.get("x-cloudtasks-taskretrycount", "0"),
          )
      return message

    status_code: int | None = None

    async def send_wrapper(message: dict[str, Any]) -> None:
      nonlocal status_code
      if message.get("type") == "http.response.start":
        status_code = message.get("status")
        response_headers = MutableHeaders(scope=message)
        if "x-request-id" not in response_headers:
          response_headers["x-request-id"] = request_id

      await send(message)

    await self.app(scope, receive_wrapper if is_task_call else receive, send_wrapper)

    process_time = (time.perf_counter() - start_time) * 1000
    logger.info("Response request_id=%s %s %s status=%s (took %.2fms)", request_id, method, path, status_code or 0, process_time)
