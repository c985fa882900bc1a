import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI

from batchgen.core.database import dispose_engine
from batchgen.core.firebase import initialize_firebase
from batchgen.core.logging import _initialize_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging and auth after uvicorn starts; dispose the engine on shutdown."""
  from batchgen.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("batchgen.core.lifespan")

  try:
    _initialize_logging(settings)
    logger.info("Startup complete - logging verified. environment=%s database=%s", settings.environment, _redact_dsn(settings.pg_dsn))
    initialize_firebase()
  except Exception:  # noqa: BLE001
    # Log initialization failures but allow the app to continue starting.
    logger.warning("Startup initialization failed; continuing.", exc_info=True)

  yield

  await dispose_engine()


def _redact_dsn(raw: str | None) -> str:
  """Redact credentials from a DSN while keeping host/db visible."""
  if not raw:
    return "<unset>"

  parsed = urlparse(raw)
  if not parsed.scheme:
    return "<invalid>"

  user = parsed.username or ""
  host = parsed.hostname or ""
  port = f":{parsed.port}" if parsed.port else ""
  netloc = f"{user}@{host}{port}" if user else f"{host}{port}"
  database = parsed.path.lstrip("/")
  path = f"/{database}" if database else ""
  return f"{parsed.scheme}://{netloc}{path}"
