from batchgen.config import Settings
from batchgen.storage.jobs_repo import ArtifactsRepository, JobsRepository
from batchgen.storage.postgres_jobs_repo import PostgresArtifactsRepository, PostgresJobsRepository
from batchgen.storage.reference_repo import PostgresReferenceRepository, ReferenceRepository


def _require_postgres(settings: Settings) -> None:
  # Enforce Postgres-backed storage.
  if not settings.pg_dsn:
    raise ValueError("BATCHGEN_PG_DSN must be set to enable Postgres persistence.")


def _get_jobs_repo(settings: Settings) -> JobsRepository:
  """Return the active jobs repository."""
  _require_postgres(settings)
  return PostgresJobsRepository()


def _get_artifacts_repo(settings: Settings) -> ArtifactsRepository:
  """Return the active artifacts repository."""
  _require_postgres(settings)
  return PostgresArtifactsRepository()


def _get_reference_repo(settings: Settings) -> ReferenceRepository:
  """Return the active reference-material repository."""
  _require_postgres(settings)
  return PostgresReferenceRepository()
