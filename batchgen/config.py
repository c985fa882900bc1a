"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from batchgen.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)


@dataclass(frozen=True)
class Settings:
  """Typed settings for the batch generation service."""

  environment: str
  allowed_origins: tuple[str, ...]
  debug: bool
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  pg_dsn: str | None
  pg_connect_timeout: int
  prompt_log_enabled: bool
  firebase_project_id: str | None
  firebase_service_account_json_path: str | None
  task_service_provider: str
  cloud_tasks_queue_path: str | None
  cloud_run_invoker_service_account: str | None
  base_url: str | None
  task_secret: str | None
  jobs_auto_process: bool
  stalled_job_seconds: int
  notifications_enabled: bool
  openai_api_key: str | None
  openai_base_url: str | None
  generation_model: str
  summary_model: str
  generation_max_retry: int
  generation_batch_size: int
  single_item_timeout_seconds: float
  total_timeout_seconds: float
  retry_delay_seconds: float
  inter_batch_delay_seconds: float
  credit_cost_per_item: int
  reference_source_limit: int
  reference_summary_min_chars: int
  reference_fallback_chars: int


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int
  pg_pool_size: int = 10


@dataclass(frozen=True)
class OrchestratorConfig:
  """Retry and timeout knobs handed to a batch orchestrator run."""

  max_retry: int = 3
  batch_size: int = 1
  single_item_timeout: float = 180.0
  total_timeout: float = 1200.0
  retry_delay: float = 2.0
  inter_batch_delay: float = 1.0

  def __post_init__(self) -> None:
    if self.max_retry < 1:
      raise ValueError("max_retry must be at least 1.")
    if self.batch_size < 1:
      raise ValueError("batch_size must be at least 1.")
    if self.single_item_timeout <= 0 or self.total_timeout <= 0:
      raise ValueError("timeouts must be positive.")
    if self.retry_delay < 0 or self.inter_batch_delay < 0:
      raise ValueError("delays must not be negative.")


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    raise ValueError("BATCHGEN_ALLOWED_ORIGINS must be set to one or more origins.")

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if not origins:
    raise ValueError("BATCHGEN_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("BATCHGEN_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_bool(raw: str | None, *, default: bool = False) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return default

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


def _non_negative_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value < 0:
    raise ValueError(f"{name} must be zero or a positive integer.")
  return value


def _positive_float(name: str, default: str) -> float:
  value = float(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive number.")
  return value


def _non_negative_float(name: str, default: str) -> float:
  value = float(os.getenv(name, default))
  if value < 0:
    raise ValueError(f"{name} must be zero or a positive number.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("BATCHGEN_ENV", "development").lower()

  # Toggle verbose error output and diagnostics in non-production environments.
  debug = _parse_bool(os.getenv("BATCHGEN_DEBUG"))

  log_max_bytes = _positive_int("BATCHGEN_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = _non_negative_int("BATCHGEN_LOG_BACKUP_COUNT", "10")

  # Allow opt-in logging of 4xx HTTPExceptions for diagnostics.
  log_http_4xx = _parse_bool(os.getenv("BATCHGEN_LOG_HTTP_4XX"))

  pg_connect_timeout = _positive_int("BATCHGEN_PG_CONNECT_TIMEOUT", "5")

  task_service_provider = os.getenv("BATCHGEN_TASK_SERVICE_PROVIDER", "local-http").strip().lower()
  if task_service_provider not in {"local-http", "gcp"}:
    raise ValueError("BATCHGEN_TASK_SERVICE_PROVIDER must be 'local-http' or 'gcp'.")

  cloud_tasks_queue_path = _optional_str(os.getenv("BATCHGEN_CLOUD_TASKS_QUEUE_PATH"))
  if task_service_provider == "gcp" and not cloud_tasks_queue_path:
    raise ValueError("BATCHGEN_CLOUD_TASKS_QUEUE_PATH must be set when using the gcp task provider.")

  # Orchestrator knobs; defaults match the production tuning.
  generation_max_retry = _positive_int("BATCHGEN_GENERATION_MAX_RETRY", "3")
  generation_batch_size = _positive_int("BATCHGEN_GENERATION_BATCH_SIZE", "1")
  single_item_timeout_seconds = _positive_float("BATCHGEN_SINGLE_ITEM_TIMEOUT_SECONDS", "180")
  total_timeout_seconds = _positive_float("BATCHGEN_TOTAL_TIMEOUT_SECONDS", "1200")
  retry_delay_seconds = _non_negative_float("BATCHGEN_RETRY_DELAY_SECONDS", "2")
  inter_batch_delay_seconds = _non_negative_float("BATCHGEN_INTER_BATCH_DELAY_SECONDS", "1")
  credit_cost_per_item = _non_negative_int("BATCHGEN_CREDIT_COST_PER_ITEM", "5")

  reference_source_limit = _non_negative_int("BATCHGEN_REFERENCE_SOURCE_LIMIT", "10")
  reference_summary_min_chars = _positive_int("BATCHGEN_REFERENCE_SUMMARY_MIN_CHARS", "200")
  reference_fallback_chars = _positive_int("BATCHGEN_REFERENCE_FALLBACK_CHARS", "600")

  return Settings(
    environment=environment,
    allowed_origins=_parse_origins(os.getenv("BATCHGEN_ALLOWED_ORIGINS")),
    debug=debug,
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=log_http_4xx,
    pg_dsn=os.getenv("BATCHGEN_PG_DSN") or os.getenv("DATABASE_URL"),
    pg_connect_timeout=pg_connect_timeout,
    prompt_log_enabled=_parse_bool(os.getenv("BATCHGEN_PROMPT_LOG_ENABLED")),
    firebase_project_id=_optional_str(os.getenv("FIREBASE_PROJECT_ID")),
    firebase_service_account_json_path=_optional_str(os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON_PATH")),
    task_service_provider=task_service_provider,
    cloud_tasks_queue_path=cloud_tasks_queue_path,
    cloud_run_invoker_service_account=_optional_str(os.getenv("BATCHGEN_CLOUD_RUN_INVOKER_SERVICE_ACCOUNT")),
    base_url=_optional_str(os.getenv("BATCHGEN_BASE_URL")),
    task_secret=_optional_str(os.getenv("BATCHGEN_TASK_SECRET")),
    jobs_auto_process=_parse_bool(os.getenv("BATCHGEN_JOBS_AUTO_PROCESS"), default=True),
    stalled_job_seconds=_positive_int("BATCHGEN_STALLED_JOB_SECONDS", "1800"),
    notifications_enabled=_parse_bool(os.getenv("BATCHGEN_NOTIFICATIONS_ENABLED"), default=True),
    openai_api_key=_optional_str(os.getenv("OPENAI_API_KEY")),
    openai_base_url=_optional_str(os.getenv("OPENAI_BASE_URL")),
    generation_model=(os.getenv("BATCHGEN_GENERATION_MODEL") or "gpt-4o").strip(),
    summary_model=(os.getenv("BATCHGEN_SUMMARY_MODEL") or "gpt-4o-mini").strip(),
    generation_max_retry=generation_max_retry,
    generation_batch_size=generation_batch_size,
    single_item_timeout_seconds=single_item_timeout_seconds,
    total_timeout_seconds=total_timeout_seconds,
    retry_delay_seconds=retry_delay_seconds,
    inter_batch_delay_seconds=inter_batch_delay_seconds,
    credit_cost_per_item=credit_cost_per_item,
    reference_source_limit=reference_source_limit,
    reference_summary_min_chars=reference_summary_min_chars,
    reference_fallback_chars=reference_fallback_chars,
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring web-runtime configuration like CORS."""
  # Keep database configuration isolated so migrations don't require unrelated env vars.
  debug = _parse_bool(os.getenv("BATCHGEN_DEBUG"))
  pg_connect_timeout = _positive_int("BATCHGEN_PG_CONNECT_TIMEOUT", "5")
  pg_pool_size = _positive_int("BATCHGEN_PG_POOL_SIZE", "10")
  pg_dsn = os.getenv("BATCHGEN_PG_DSN") or os.getenv("DATABASE_URL")

  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout, pg_pool_size=pg_pool_size)


def get_orchestrator_config(settings: Settings) -> OrchestratorConfig:
  """Project the orchestrator knobs out of the process settings."""
  return OrchestratorConfig(
    max_retry=settings.generation_max_retry,
    batch_size=settings.generation_batch_size,
    single_item_timeout=settings.single_item_timeout_seconds,
    total_timeout=settings.total_timeout_seconds,
    retry_delay=settings.retry_delay_seconds,
    inter_batch_delay=settings.inter_batch_delay_seconds,
  )
