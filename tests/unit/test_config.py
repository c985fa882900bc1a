from __future__ import annotations

import pytest

from batchgen.config import OrchestratorConfig, get_orchestrator_config, get_settings


@pytest.fixture
def fresh_settings(monkeypatch: pytest.MonkeyPatch):
  """Reload settings from the patched environment and restore the cache afterwards."""
  get_settings.cache_clear()
  yield monkeypatch
  get_settings.cache_clear()


def test_orchestrator_defaults() -> None:
  config = OrchestratorConfig()
  assert (config.max_retry, config.batch_size) == (3, 1)
  assert config.single_item_timeout == 180.0
  assert config.total_timeout == 1200.0


@pytest.mark.parametrize(
  "overrides",
  [{"max_retry": 0}, {"batch_size": 0}, {"single_item_timeout": 0}, {"total_timeout": -1}, {"retry_delay": -0.1}, {"inter_batch_delay": -1}],
)
def test_orchestrator_config_rejects_invalid_values(overrides) -> None:
  with pytest.raises(ValueError):
    OrchestratorConfig(**overrides)


def test_settings_project_into_orchestrator_config(fresh_settings) -> None:
  fresh_settings.setenv("BATCHGEN_GENERATION_MAX_RETRY", "5")
  fresh_settings.setenv("BATCHGEN_GENERATION_BATCH_SIZE", "2")
  fresh_settings.setenv("BATCHGEN_SINGLE_ITEM_TIMEOUT_SECONDS", "0.5")
  fresh_settings.setenv("BATCHGEN_CREDIT_COST_PER_ITEM", "7")

  config = get_orchestrator_config(get_settings())

  assert config.max_retry == 5
  assert config.batch_size == 2
  assert config.single_item_timeout == 0.5
  assert get_settings().credit_cost_per_item == 7


def test_wildcard_origins_are_rejected(fresh_settings) -> None:
  fresh_settings.setenv("BATCHGEN_ALLOWED_ORIGINS", "*")
  with pytest.raises(ValueError, match="wildcard"):
    get_settings()


def test_gcp_provider_requires_a_queue_path(fresh_settings) -> None:
  fresh_settings.setenv("BATCHGEN_TASK_SERVICE_PROVIDER", "gcp")
  fresh_settings.delenv("BATCHGEN_CLOUD_TASKS_QUEUE_PATH", raising=False)
  with pytest.raises(ValueError, match="QUEUE_PATH"):
    get_settings()


def test_non_positive_batch_size_is_rejected(fresh_settings) -> None:
  fresh_settings.setenv("BATCHGEN_GENERATION_BATCH_SIZE", "0")
  with pytest.raises(ValueError, match="BATCHGEN_GENERATION_BATCH_SIZE"):
    get_settings()
