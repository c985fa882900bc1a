from __future__ import annotations

from dataclasses import replace
from unittest.mock import AsyncMock, MagicMock

import pytest

from batchgen.config import get_settings
from batchgen.jobs.worker import JobProcessor, build_orchestrator
from batchgen.services import jobs as job_service


@pytest.mark.anyio
async def test_processor_runs_the_orchestrator(make_job, make_orchestrator, scripted_client, jobs_repo) -> None:
  job = await make_job(target_count=2)
  processor = JobProcessor(jobs_repo=jobs_repo, settings=get_settings(), orchestrator=make_orchestrator(scripted_client()))

  outcome = await processor.process_job(job)

  assert outcome is not None
  assert outcome.status == "COMPLETED"


@pytest.mark.anyio
async def test_processor_skips_completed_jobs(make_job, jobs_repo) -> None:
  job = await make_job(status="COMPLETED")
  orchestrator = MagicMock()
  orchestrator.run = AsyncMock()

  assert await JobProcessor(jobs_repo=jobs_repo, settings=get_settings(), orchestrator=orchestrator).process_job(job) is None
  orchestrator.run.assert_not_called()


@pytest.mark.anyio
async def test_processor_leaves_job_for_sweep_on_store_outage(make_job, jobs_repo, ledger) -> None:
  job = await make_job(target_count=2, starting_balance=10)
  orchestrator = MagicMock()
  orchestrator.run = AsyncMock(side_effect=RuntimeError("reference store offline"))
  orchestrator.finish = AsyncMock()

  outcome = await JobProcessor(jobs_repo=jobs_repo, settings=get_settings(), orchestrator=orchestrator).process_job(job)

  assert outcome is None
  orchestrator.finish.assert_not_called()
  assert jobs_repo.jobs[job.job_id].status == "PENDING"
  assert ledger.refund_calls == []
  assert ledger.balances["user-1"] == 0


@pytest.mark.anyio
async def test_process_job_sync_ignores_unknown_jobs(monkeypatch: pytest.MonkeyPatch, jobs_repo) -> None:
  monkeypatch.setattr(job_service, "_get_jobs_repo", lambda _settings: jobs_repo)
  assert await job_service.process_job_sync("missing", get_settings()) is None


def test_build_orchestrator_projects_settings(monkeypatch: pytest.MonkeyPatch, jobs_repo, artifacts_repo, reference_repo, ledger, notifier) -> None:
  monkeypatch.setattr("batchgen.jobs.worker._get_reference_repo", lambda _settings: reference_repo)
  settings = replace(get_settings(), openai_api_key="sk-test", generation_max_retry=4, generation_batch_size=3, retry_delay_seconds=9.0, prompt_log_enabled=False)

  orchestrator = build_orchestrator(settings, jobs_repo=jobs_repo, artifacts_repo=artifacts_repo, ledger=ledger, notifier=notifier)

  assert orchestrator._config.max_retry == 4
  assert orchestrator._config.batch_size == 3
  assert orchestrator._config.retry_delay == 9.0
