"""OpenAI chat completions provider."""

from __future__ import annotations

import logging
from typing import Final

from openai import AsyncOpenAI

from batchgen.ai.providers.base import AIModel, ChatMessage, ModelResponse, Provider

logger = logging.getLogger(__name__)


class OpenAIChatModel(AIModel):
  """Chat completions client bound to one model name."""

  def __init__(self, name: str, client: AsyncOpenAI) -> None:
    self.name: str = name
    self._client = client

  async def complete(self, messages: list[ChatMessage], *, max_tokens: int | None = None, json_mode: bool = False, seed: int | None = None) -> ModelResponse:
    """Run one chat completion and normalize the first choice."""
    kwargs: dict = {"model": self.name, "messages": [{"role": message.role, "content": message.content} for message in messages]}
    if max_tokens is not None:
      kwargs["max_completion_tokens"] = max_tokens
    if json_mode:
      kwargs["response_format"] = {"type": "json_object"}
    if seed is not None:
      kwargs["seed"] = seed

    completion = await self._client.chat.completions.create(**kwargs)
    if not completion.choices:
      raise RuntimeError("No choices in OpenAI response")

    choice = completion.choices[0]
    logger.debug("OpenAI response: model=%s finish_reason=%s", self.name, choice.finish_reason)

    usage: dict[str, int] = {}
    if completion.usage:
      usage = {"prompt_tokens": completion.usage.prompt_tokens, "completion_tokens": completion.usage.completion_tokens, "total_tokens": completion.usage.total_tokens}
    else:
      logger.warning("No usage information in OpenAI response")

    refusal = getattr(choice.message, "refusal", None)
    return ModelResponse(content=choice.message.content or "", usage=usage, finish_reason=choice.finish_reason, refusal=refusal)


class OpenAIProvider(Provider):
  """OpenAI provider sharing one async client across models."""

  _DEFAULT_MODEL: Final[str] = "gpt-4o"

  def __init__(self, api_key: str | None = None, base_url: str | None = None) -> None:
    self.name: str = "openai"
    if not api_key:
      raise ValueError("OPENAI_API_KEY environment variable is required")
    self._client = AsyncOpenAI(api_key=api_key, base_url=base_url)

  def get_model(self, model: str | None = None) -> AIModel:
    """Return a chat model client."""
    return OpenAIChatModel(model or self._DEFAULT_MODEL, self._client)
