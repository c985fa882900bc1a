"""Base interfaces for AI providers and models."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass
class ChatMessage:
  """One chat turn sent to a model."""

  role: str
  content: str


@dataclass
class ModelResponse:
  """Model response with token usage."""

  content: str
  usage: dict[str, int] = field(default_factory=dict)
  finish_reason: str | None = None
  refusal: str | None = None

  @property
  def prompt_tokens(self) -> int:
    return int(self.usage.get("prompt_tokens", 0))

  @property
  def completion_tokens(self) -> int:
    return int(self.usage.get("completion_tokens", 0))

  @property
  def total_tokens(self) -> int:
    return int(self.usage.get("total_tokens", 0))


class AIModel(ABC):
  """Abstract base class for chat models."""

  name: str

  @abstractmethod
  async def complete(self, messages: list[ChatMessage], *, max_tokens: int | None = None, json_mode: bool = False, seed: int | None = None) -> ModelResponse:
    """Run one chat completion."""


class Provider(ABC):
  """Abstract base class for AI providers."""

  name: str

  @abstractmethod
  def get_model(self, model: str | None = None) -> AIModel:
    """Return the model client for the provider."""
