import logging
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from batchgen.notifications.in_app_repo import InAppNotificationEntry, InAppNotificationRepository, NullInAppNotificationRepository

ENTRY = InAppNotificationEntry(user_id="user-1", template_id="generation_job_failed_v1", title="Generation stopped", body="2 of 3 posts", data={"job_id": "job-1"}, importance="high", job_id="job-1")


def _session_factory(session):
  factory = MagicMock()
  factory.return_value.__aenter__ = AsyncMock(return_value=session)
  factory.return_value.__aexit__ = AsyncMock(return_value=False)
  return factory


def _session(inserted_id):
  result = MagicMock()
  result.scalar_one_or_none.return_value = inserted_id
  session = MagicMock()
  session.execute = AsyncMock(return_value=result)
  session.commit = AsyncMock()
  return session


@pytest.mark.anyio
async def test_insert_skips_duplicates_for_the_same_job_and_template(monkeypatch: pytest.MonkeyPatch, caplog):
  caplog.set_level(logging.INFO, logger="batchgen.notifications.in_app_repo")
  session = _session(None)
  monkeypatch.setattr("batchgen.notifications.in_app_repo.get_session_factory", lambda: _session_factory(session))

  assert await InAppNotificationRepository().insert(ENTRY) is False

  statement = session.execute.call_args[0][0]
  sql = str(statement.compile(dialect=postgresql.dialect()))
  assert "ON CONFLICT" in sql
  assert "DO NOTHING" in sql
  session.commit.assert_awaited_once()
  assert "already recorded" in caplog.text


@pytest.mark.anyio
async def test_insert_reports_new_rows(monkeypatch: pytest.MonkeyPatch):
  session = _session("row-id")
  monkeypatch.setattr("batchgen.notifications.in_app_repo.get_session_factory", lambda: _session_factory(session))

  assert await InAppNotificationRepository().insert(ENTRY) is True


@pytest.mark.anyio
async def test_insert_requires_a_database(monkeypatch: pytest.MonkeyPatch):
  monkeypatch.setattr("batchgen.notifications.in_app_repo.get_session_factory", lambda: None)

  with pytest.raises(RuntimeError, match="Database not initialized"):
    await InAppNotificationRepository().insert(ENTRY)


@pytest.mark.anyio
async def test_null_repository_drops_entries():
  assert await NullInAppNotificationRepository().insert(ENTRY) is False
