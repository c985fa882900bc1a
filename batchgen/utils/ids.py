"""Identifier utilities."""

from __future__ import annotations

import secrets
import string
import time
import uuid


def generate_job_id() -> str:
  """Return a new job identifier."""
  return str(uuid.uuid4())


def generate_nanoid(size: int = 16) -> str:
  """Return a short non-sequential id suitable for public references."""
  alphabet = string.ascii_lowercase + string.digits
  return "".join(secrets.choice(alphabet) for _ in range(size))


def generate_display_id() -> str:
  """Return a human-readable job reference such as ``20260105-k3x9qa``."""
  # Prefix with the UTC date so support can eyeball when a job was requested.
  return f"{time.strftime('%Y%m%d', time.gmtime())}-{generate_nanoid(6)}"
