"""Base interfaces for AI providers and models."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Protocol


class ModelResponse(Protocol):
  """Response contract for model outputs."""

  content: str
  usage: dict[str, int] | None


@dataclass
class SimpleModelResponse:
  """Minimal model response structure."""

  content: str
  usage: dict[str, int] | None = None


class ProviderError(RuntimeError):
  """Raised when a provider call fails at the transport or API level."""

  def __init__(self, message: str, *, status_code: int | None = None) -> None:
    super().__init__(message)
    self.status_code = status_code

  @property
  def transient(self) -> bool:
    """Rate limits, server errors and connection failures are worth retrying."""
    if self.status_code is None:
      return True
    return self.status_code == 429 or self.status_code >= 500


class AIModel(ABC):
  """Abstract base class for AI models."""

  name: str

  @abstractmethod
  async def generate(self, prompt: str, *, system: str | None = None, max_tokens: int | None = None) -> ModelResponse:
    """Generate a response for the given prompt."""

  async def aclose(self) -> None:
    """Release pooled connections held by the SDK client."""
    return None


class Provider(ABC):
  """Abstract base class for AI providers."""

  name: str

  @abstractmethod
  def get_model(self, model: str | None = None) -> AIModel:
    """Return the model client for the provider."""
