from __future__ import annotations

from datetime import UTC, datetime, timedelta

from batchgen.jobs.models import JobRecord
from batchgen.jobs.progress import build_progress_snapshot, elapsed_seconds, progress_percent

CREATED = datetime(2026, 1, 1, 9, 0, tzinfo=UTC)


def _job(**overrides: object) -> JobRecord:
  fields = {"job_id": "job-1", "user_id": "user-1", "keyword": "brunch", "target_count": 3, "cost_per_item": 5, "created_at": CREATED}
  fields.update(overrides)
  return JobRecord(**fields)  # type: ignore[arg-type]


def test_progress_percent_rounds() -> None:
  assert progress_percent(1, 3) == 33
  assert progress_percent(2, 3) == 67
  assert progress_percent(3, 3) == 100
  assert progress_percent(0, 0) == 0


def test_elapsed_uses_start_and_terminal_timestamps() -> None:
  started = CREATED + timedelta(seconds=10)
  now = CREATED + timedelta(hours=1)
  assert elapsed_seconds(_job(), now) == 3600
  assert elapsed_seconds(_job(started_at=started), now) == 3590
  assert elapsed_seconds(_job(started_at=started, completed_at=started + timedelta(seconds=42)), now) == 42
  assert elapsed_seconds(_job(started_at=started, error_at=started + timedelta(seconds=7)), now) == 7


def test_running_snapshot_has_no_error_block() -> None:
  snapshot = build_progress_snapshot(_job(status="IN_PROGRESS", completed_count=1, last_error="transient"), artifacts_created=2, now=CREATED)
  assert snapshot.progress_percent == 33
  assert snapshot.artifacts_created == 2
  assert snapshot.error is None


def test_failed_snapshot_exposes_the_stored_error() -> None:
  error_at = CREATED + timedelta(minutes=5)
  snapshot = build_progress_snapshot(_job(status="FAILED", completed_count=2, last_error="3 attempts, 1 failed", error_at=error_at), artifacts_created=2)
  assert snapshot.error is not None
  assert snapshot.error.message == "3 attempts, 1 failed"
  assert snapshot.error.occurred_at == error_at
  assert snapshot.elapsed_seconds == 300
