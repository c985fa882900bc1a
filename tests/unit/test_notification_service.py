from unittest.mock import AsyncMock, MagicMock

import pytest

from batchgen.jobs.models import JobRecord
from batchgen.notifications.in_app_templates import render_in_app_template, template_importance
from batchgen.notifications.service import NotificationService

JOB = JobRecord(job_id="job-1", display_id="20260101-abc123", user_id="user-1", keyword="gangnam brunch", target_count=5, cost_per_item=5, completed_count=3)


@pytest.fixture
def mock_in_app_repo():
  repo = MagicMock()
  repo.insert = AsyncMock()
  return repo


@pytest.mark.anyio
async def test_completion_persists_an_in_app_notification(mock_in_app_repo):
  service = NotificationService(in_app_repo=mock_in_app_repo)

  service.on_job_completed(JOB)
  await service.flush()

  mock_in_app_repo.insert.assert_awaited_once()
  entry = mock_in_app_repo.insert.call_args[0][0]
  assert entry.user_id == "user-1"
  assert entry.job_id == "job-1"
  assert entry.template_id == "generation_job_completed_v1"
  assert entry.body == "All 5 posts for 'gangnam brunch' are ready."
  assert entry.importance == "normal"


@pytest.mark.anyio
async def test_failure_notification_is_high_importance(mock_in_app_repo):
  service = NotificationService(in_app_repo=mock_in_app_repo)

  service.on_job_failed(JOB, "3 attempts, 2 failed")
  await service.flush()

  entry = mock_in_app_repo.insert.call_args[0][0]
  assert entry.template_id == "generation_job_failed_v1"
  assert entry.importance == "high"
  assert entry.data["reason"] == "3 attempts, 2 failed"
  assert "3 of 5 posts" in entry.body


@pytest.mark.anyio
async def test_delivery_errors_are_logged_not_raised(mock_in_app_repo, caplog):
  mock_in_app_repo.insert.side_effect = RuntimeError("database down")
  service = NotificationService(in_app_repo=mock_in_app_repo)

  # Returns immediately even though delivery will fail.
  service.on_job_failed(JOB, "boom")
  await service.flush()

  assert "Background notification task failed" in caplog.text


@pytest.mark.anyio
async def test_disabled_service_schedules_nothing(mock_in_app_repo):
  service = NotificationService(in_app_repo=mock_in_app_repo, enabled=False)

  service.on_job_completed(JOB)
  await service.flush()

  mock_in_app_repo.insert.assert_not_called()


def test_scheduling_without_a_running_loop_is_swallowed(mock_in_app_repo):
  service = NotificationService(in_app_repo=mock_in_app_repo)
  service.on_job_completed(JOB)
  mock_in_app_repo.insert.assert_not_called()


def test_template_rendering_requires_placeholders():
  with pytest.raises(ValueError, match="Missing placeholders"):
    render_in_app_template(template_id="generation_job_failed_v1", data={"keyword": "k"})
  with pytest.raises(ValueError, match="Unknown in-app template"):
    render_in_app_template(template_id="nope", data={})
  assert template_importance("nope") == "normal"
