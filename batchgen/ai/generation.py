"""Generation client: one external call per artifact plus reference summaries."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

import openai

from batchgen.ai.backoff import retry_with_backoff
from batchgen.ai.json_parser import parse_json_with_fallback
from batchgen.ai.prompts import build_reference_prompt, build_summary_prompt, build_system_prompt, build_user_prompt, calculate_max_tokens, calculate_seed
from batchgen.ai.providers.base import AIModel, ChatMessage, ModelResponse
from batchgen.jobs.models import ReferenceMaterial
from batchgen.jobs.reference_material import post_category

logger = logging.getLogger(__name__)

_SUMMARY_MAX_TOKENS = 2000


class GenerationError(RuntimeError):
  """A generation call failed; the orchestrator may retry the index."""


class TerminalGenerationError(GenerationError):
  """A failure that retrying will not fix (bad credentials, refusal)."""


class GenerationConfigError(TerminalGenerationError):
  """The provider rejected the request because of configuration or auth."""


class GenerationRefusedError(TerminalGenerationError):
  """The model declined to produce content."""


@dataclass(frozen=True)
class GenerationPrompt:
  """Prompts sent for one call, kept for the audit log."""

  system_prompt: str
  user_prompt: str
  model: str


@dataclass(frozen=True)
class GenerationResult:
  """Outcome of one successful generation call."""

  content: str
  raw: str
  prompt: GenerationPrompt
  title: str | None = None
  usage: dict[str, int] = field(default_factory=dict)
  duration_ms: int = 0


class GenerationClient(Protocol):
  """Contract the item generator and reference cache depend on."""

  async def generate(self, params: Mapping[str, Any], reference_material: ReferenceMaterial, index: int, total_count: int, existing_titles: Sequence[str]) -> GenerationResult:
    """Produce one artifact."""

  async def summarize(self, content: str, keyword: str, variant_key: str) -> str:
    """Condense one reference source."""


def parse_artifact_payload(raw: str) -> tuple[str | None, str]:
  """Split a model payload into (title, content); unparseable payloads keep the raw text as content."""
  try:
    parsed = parse_json_with_fallback(raw)
  except json.JSONDecodeError as exc:
    logger.warning("Generation payload is not JSON (%s); storing raw content.", exc)
    return None, raw

  if not isinstance(parsed, dict):
    logger.warning("Generation payload is %s, not an object; storing raw content.", type(parsed).__name__)
    return None, raw

  title = parsed.get("title")
  content = parsed.get("content")
  if not isinstance(content, str) or not content.strip():
    logger.warning("Generation payload is missing content; storing raw content.")
    return None, raw

  if not isinstance(title, str) or not title.strip():
    title = None
  return title, content


def _translate_error(exc: Exception) -> GenerationError:
  if isinstance(exc, GenerationError):
    return exc
  if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError, openai.NotFoundError, openai.BadRequestError)):
    return GenerationConfigError(f"Provider rejected the request: {exc}")
  return GenerationError(str(exc) or type(exc).__name__)


class OpenAIGenerationClient(GenerationClient):
  """Generation client backed by OpenAI chat completions."""

  def __init__(self, generation_model: AIModel, summary_model: AIModel, *, backoff_delays: Sequence[float] | None = None) -> None:
    self._generation_model = generation_model
    self._summary_model = summary_model
    self._backoff_kwargs: dict[str, Any] = {} if backoff_delays is None else {"delays": tuple(backoff_delays)}

  async def generate(self, params: Mapping[str, Any], reference_material: ReferenceMaterial, index: int, total_count: int, existing_titles: Sequence[str]) -> GenerationResult:
    system_prompt = build_system_prompt(params)
    reference_prompt = build_reference_prompt(reference_material)
    user_prompt = build_user_prompt(params, keyword=reference_material.keyword, index=index, total_count=total_count, existing_titles=existing_titles)

    messages = [ChatMessage(role="system", content=system_prompt)]
    if reference_prompt:
      messages.append(ChatMessage(role="system", content=reference_prompt))
    messages.append(ChatMessage(role="user", content=user_prompt))

    max_tokens = calculate_max_tokens(int(params.get("length") or 1500))
    seed = calculate_seed(index, total_count)

    started = time.monotonic()
    try:
      response: ModelResponse = await retry_with_backoff(self._generation_model.complete, messages, max_tokens=max_tokens, json_mode=True, seed=seed, **self._backoff_kwargs)
    except Exception as exc:
      raise _translate_error(exc) from exc
    duration_ms = int((time.monotonic() - started) * 1000)

    if response.refusal:
      logger.error("Generation refused for index %s: %s", index, response.refusal)
      raise GenerationRefusedError(f"Content generation refused: {response.refusal}")

    if not response.content.strip():
      raise GenerationError(f"No content generated (finish_reason: {response.finish_reason})")

    title, content = parse_artifact_payload(response.content)
    prompt = GenerationPrompt(system_prompt="\n\n".join(part for part in (system_prompt, reference_prompt) if part), user_prompt=user_prompt, model=self._generation_model.name)
    logger.debug("Generated index %s/%s: title=%r tokens=%s", index, total_count, (title or "")[:30], response.total_tokens)
    return GenerationResult(content=content, raw=response.content, prompt=prompt, title=title, usage=dict(response.usage), duration_ms=duration_ms)

  async def summarize(self, content: str, keyword: str, variant_key: str) -> str:
    system_prompt, user_prompt = build_summary_prompt(content, keyword, post_category(variant_key))
    messages = [ChatMessage(role="system", content=system_prompt), ChatMessage(role="user", content=user_prompt)]
    try:
      response: ModelResponse = await retry_with_backoff(self._summary_model.complete, messages, max_tokens=_SUMMARY_MAX_TOKENS, **self._backoff_kwargs)
    except Exception as exc:
      raise _translate_error(exc) from exc

    if response.refusal:
      raise GenerationRefusedError(f"Summary refused: {response.refusal}")
    summary = response.content.strip()
    if not summary:
      raise GenerationError(f"No summary generated (finish_reason: {response.finish_reason})")

    logger.info("Summary generated: %s chars (prompt=%s, completion=%s)", len(summary), response.prompt_tokens, response.completion_tokens)
    return summary


def build_generation_client(*, api_key: str | None, base_url: str | None, generation_model: str, summary_model: str) -> OpenAIGenerationClient:
  """Wire an OpenAI-backed generation client from settings values."""
  from batchgen.ai.providers.openai import OpenAIProvider

  provider = OpenAIProvider(api_key=api_key, base_url=base_url)
  return OpenAIGenerationClient(provider.get_model(generation_model), provider.get_model(summary_model))
