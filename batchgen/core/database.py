from __future__ import annotations

from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from batchgen.config import get_database_settings

_ASYNC_SCHEME = "postgresql+asyncpg"
_SYNC_SCHEMES = {"postgres", "postgresql", "postgresql+psycopg", "postgresql+psycopg2"}


class Base(DeclarativeBase):
  pass


engine: AsyncEngine | None = None
SessionLocal: async_sessionmaker[AsyncSession] | None = None


def normalize_dsn(raw: str | None) -> str | None:
  """Rewrite a libpq-style DSN for asyncpg.

  ``postgres://`` and sync driver schemes map to ``postgresql+asyncpg://``;
  ``sslmode`` (unknown to asyncpg) becomes ``ssl``.
  """
  if not raw:
    return None

  parts = urlsplit(raw)
  scheme = _ASYNC_SCHEME if parts.scheme in _SYNC_SCHEMES else parts.scheme
  query = [("ssl", value) if key == "sslmode" else (key, value) for key, value in parse_qsl(parts.query, keep_blank_values=True)]
  return urlunsplit((scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


def _database_url() -> str | None:
  return normalize_dsn(get_database_settings().pg_dsn)


DATABASE_URL = _database_url()


def get_db_engine() -> AsyncEngine | None:
  global engine
  if engine is None:
    settings = get_database_settings()
    database_url = normalize_dsn(settings.pg_dsn)
    if database_url:
      # Each in-flight item of a batch writes its artifact on its own session.
      engine = create_async_engine(
        database_url,
        echo=settings.debug,
        pool_pre_ping=True,
        pool_size=settings.pg_pool_size,
        max_overflow=settings.pg_pool_size,
        connect_args={"timeout": settings.pg_connect_timeout},
      )
  return engine


def get_session_factory() -> async_sessionmaker[AsyncSession] | None:
  global SessionLocal
  if SessionLocal is None:
    db_engine = get_db_engine()
    if db_engine:
      SessionLocal = async_sessionmaker(bind=db_engine, expire_on_commit=False, class_=AsyncSession)
  return SessionLocal


async def dispose_engine() -> None:
  """Close pooled connections and forget the engine so a later call rebuilds it."""
  global engine, SessionLocal
  if engine is not None:
    await engine.dispose()
  engine = None
  SessionLocal = None
