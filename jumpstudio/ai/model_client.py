"""Bounded-time generative model calls used by the orchestrator."""

from __future__ import annotations

import asyncio
import logging
from typing import Literal, Protocol

from jumpstudio.ai.backoff import retry_with_backoff
from jumpstudio.ai.providers import AIModel, ProviderError, get_provider
from jumpstudio.config import Settings

FailureReason = Literal["timeout", "transport", "empty"]

logger = logging.getLogger(__name__)


class ModelCallError(RuntimeError):
  """Raised when a stage call produced no usable text."""

  def __init__(self, message: str, *, reason: FailureReason) -> None:
    super().__init__(message)
    self.reason = reason


class ModelClient(Protocol):
  """One deadline-bounded completion per stage."""

  async def complete(self, prompt: str, *, time_budget: float, system: str | None = None, max_tokens: int | None = None) -> str: ...


class ProviderModelClient:
  """Wrap a provider model with a per-call deadline and transient retries."""

  def __init__(self, model: AIModel, *, max_retries: int = 3, base_delay: float = 2.0) -> None:
    self._model = model
    self._max_retries = max_retries
    self._base_delay = base_delay

  @property
  def model_name(self) -> str:
    return self._model.name

  async def complete(self, prompt: str, *, time_budget: float, system: str | None = None, max_tokens: int | None = None) -> str:
    """Return raw model text or raise ModelCallError.

    The deadline covers every retry and backoff sleep. Exceeding it cancels the
    in-flight request, which closes its HTTP connection.
    """
    try:
      async with asyncio.timeout(time_budget):
        response = await retry_with_backoff(self._model.generate, prompt, system=system, max_tokens=max_tokens, max_retries=self._max_retries, base_delay=self._base_delay)
    except TimeoutError as exc:
      raise ModelCallError(f"{self._model.name} exceeded its {time_budget:.1f}s budget", reason="timeout") from exc
    except ProviderError as exc:
      raise ModelCallError(str(exc), reason="transport") from exc

    content = response.content or ""
    if not content.strip():
      raise ModelCallError(f"{self._model.name} returned an empty response", reason="empty")
    return content

  async def aclose(self) -> None:
    await self._model.aclose()


def build_model_client(settings: Settings) -> ProviderModelClient:
  """Build the configured provider-backed client."""
  provider = get_provider(settings.model_provider, api_key=settings.model_api_key, base_url=settings.model_base_url)
  model = provider.get_model(settings.model_name)
  logger.info("Model client ready provider=%s model=%s", settings.model_provider, model.name)
  return ProviderModelClient(model, max_retries=settings.model_max_retries)
