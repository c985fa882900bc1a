"""Prompt builders for item generation and reference summaries."""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from typing import Any

from batchgen.jobs.models import ReferenceMaterial

_BASE_SEED = 42
_SEED_MULTIPLIER = 1009
_MAX_OUTPUT_TOKENS = 16000

_TONES = (
  "friendly and conversational",
  "professional and trustworthy",
  "energetic and motivating",
  "calm and analytical",
  "playful storytelling",
  "warm and empathetic",
  "concise and to the point",
  "curious, built around questions",
)

_EXAMPLE_STYLES = (
  "concrete real-life cases",
  "statistics and data points",
  "analogies and metaphors",
  "step-by-step walkthroughs",
  "success versus failure contrasts",
  "an expert's in-depth perspective",
  "everyday situations",
  "current trends",
)

_TITLE_STYLES = (
  "a question",
  "a numbered list (e.g. 5 ways to ...)",
  "an emotional hook",
  "a how-to promise",
  "a timely angle (e.g. this year's guide)",
  "a comparison (A vs B)",
  "a curiosity gap (the truth about ...)",
  "a complete guide",
)


def calculate_seed(index: int, total_count: int) -> int | None:
  """Return a per-index seed so items in one job diverge; single items stay unseeded."""
  if total_count <= 1:
    return None
  return _BASE_SEED + index * _SEED_MULTIPLIER


def calculate_max_tokens(target_length: int) -> int:
  """Size the completion budget from the requested character length."""
  target_tokens = math.ceil(target_length * 1.4)
  markup_overhead = math.ceil(target_tokens * 0.6)
  json_overhead = 200
  if target_length <= 500:
    margin = 1.8
  elif target_length <= 1500:
    margin = 1.7
  else:
    margin = 1.6
  budget = math.ceil((target_tokens + markup_overhead + json_overhead) * margin)
  budget = max(budget, 6000, math.ceil(target_length * 5))
  return min(budget, _MAX_OUTPUT_TOKENS)


def _pick(options: Sequence[str], index: int) -> str:
  return options[(max(index, 1) - 1) % len(options)]


def build_system_prompt(params: Mapping[str, Any]) -> str:
  persona = params.get("persona") or {}
  lines = [
    "You write blog posts in the voice of the persona below.",
    "Respond with a JSON object: {\"title\": string, \"content\": string, \"tags\": [string]}.",
    "The content is HTML using <h2>, <h3>, <p>, <ul>, <li>, <strong> only.",
  ]
  if persona:
    lines.append("Persona:")
    for key in ("gender", "age", "occupation", "is_married", "has_children", "blog_topic", "description"):
      if key in persona and persona[key] not in (None, ""):
        lines.append(f"- {key}: {persona[key]}")
  return "\n".join(lines)


def build_reference_prompt(reference: ReferenceMaterial) -> str:
  """Reference material goes in its own system message so it stays cacheable across items."""
  if reference.is_empty():
    return ""
  parts = [f"Writing-technique notes from top-ranked posts for '{reference.keyword}'. These cover other businesses; never copy their facts."]
  for position, content in enumerate(reference.contents, start=1):
    parts.append(f"[{position}] {content}")
  return "\n\n".join(parts)


def build_user_prompt(params: Mapping[str, Any], *, keyword: str, index: int, total_count: int, existing_titles: Sequence[str]) -> str:
  length = int(params.get("length") or 1500)
  lines = [f"Keyword: {keyword}", f"Target length: about {length} characters."]
  if params.get("post_type"):
    lines.append(f"Post type: {params['post_type']}")
  if params.get("writing_tone"):
    lines.append(f"Preferred tone: {params['writing_tone']}")
  if params.get("recommended_keyword"):
    lines.append(f"Also work in: {params['recommended_keyword']}")
  if params.get("additional_fields"):
    lines.append(f"Extra details: {params['additional_fields']}")

  # Diversify items within one job.
  if total_count > 1:
    lines.append(f"This is post {index} of {total_count}. Use a {_pick(_TONES, index)} tone, illustrate with {_pick(_EXAMPLE_STYLES, index)}, and phrase the title as {_pick(_TITLE_STYLES, index)}.")
  if existing_titles:
    lines.append("Do not reuse or closely paraphrase these existing titles:")
    lines.extend(f"- {title}" for title in existing_titles)
  return "\n".join(lines)


def build_summary_prompt(content: str, keyword: str, category: str) -> tuple[str, str]:
  """Return (system, user) prompts for a 400-600 character technique summary."""
  focus = "how information is organized and explained" if category == "info" else "how the experience and impressions are conveyed"
  system = f"Summarize the writing technique of a blog post in 400-600 characters. Focus on {focus}: structure, tone, recurring patterns. Do not restate its facts."
  user = f"Search keyword: {keyword}\n\nPost:\n{content}"
  return system, user
