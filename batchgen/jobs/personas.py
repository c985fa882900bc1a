"""Random persona snapshots for jobs that opt out of a saved persona."""

from __future__ import annotations

import random
from typing import Any

GENDER_OPTIONS: tuple[str, ...] = ("male", "female")

OCCUPATION_OPTIONS: tuple[str, ...] = (
  "student",
  "office worker",
  "restaurant owner",
  "cafe owner",
  "online shop owner",
  "traveler",
  "chef",
  "fashion expert",
  "content creator",
  "librarian",
  "instructor",
  "marketer",
)


def generate_random_persona(rng: random.Random | None = None) -> dict[str, Any]:
  """Return a fresh persona; ages span 20-49 and only married personas have children."""
  rng = rng or random.Random()
  is_married = rng.random() >= 0.5
  return {
    "gender": rng.choice(GENDER_OPTIONS),
    "age": rng.randrange(20, 50),
    "is_married": is_married,
    "has_children": rng.random() >= 0.5 if is_married else False,
    "occupation": rng.choice(OCCUPATION_OPTIONS),
    "additional_info": "",
    "is_random": True,
  }


def uses_random_persona(params: dict[str, Any]) -> bool:
  persona = params.get("persona") or {}
  return bool(persona.get("is_random"))
