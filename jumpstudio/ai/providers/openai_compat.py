"""OpenAI-compatible chat completions provider (xAI by default) using the openai SDK."""

from __future__ import annotations

import logging
from typing import Final

import openai
from openai import AsyncOpenAI

from jumpstudio.ai.providers.base import AIModel, ModelResponse, Provider, ProviderError, SimpleModelResponse

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL: Final[str] = "https://api.x.ai/v1"


class OpenAICompatibleModel(AIModel):
  """Chat completions client for any OpenAI-compatible endpoint."""

  def __init__(self, name: str, *, api_key: str, base_url: str | None = None) -> None:
    self.name: str = name
    # Retries and deadlines are owned by the model client wrapper.
    self._client = AsyncOpenAI(api_key=api_key, base_url=base_url or DEFAULT_BASE_URL, max_retries=0)

  async def generate(self, prompt: str, *, system: str | None = None, max_tokens: int | None = None) -> ModelResponse:
    """Generate a text response for one stage prompt."""
    messages = []
    if system:
      messages.append({"role": "system", "content": system})
    messages.append({"role": "user", "content": prompt})

    try:
      response = await self._client.chat.completions.create(model=self.name, messages=messages, max_tokens=max_tokens, temperature=0.7)
    except openai.APIStatusError as exc:
      raise ProviderError(f"{self.name} returned HTTP {exc.status_code}", status_code=exc.status_code) from exc
    except openai.APIConnectionError as exc:
      raise ProviderError(f"{self.name} connection failed: {exc}") from exc
    except openai.OpenAIError as exc:
      raise ProviderError(f"{self.name} request failed: {exc}", status_code=400) from exc

    content = ""
    if response.choices:
      content = response.choices[0].message.content or ""
    logger.debug("%s response (%d chars)", self.name, len(content))
    usage = None

    if response.usage:
      usage = {"prompt_tokens": response.usage.prompt_tokens, "completion_tokens": response.usage.completion_tokens, "total_tokens": response.usage.total_tokens}

    return SimpleModelResponse(content=content, usage=usage)

  async def aclose(self) -> None:
    await self._client.close()


class OpenAICompatibleProvider(Provider):
  """Provider for OpenAI-compatible endpoints."""

  _DEFAULT_MODEL: Final[str] = "grok-4-fast-reasoning"

  def __init__(self, api_key: str | None = None, base_url: str | None = None) -> None:
    self.name: str = "openai"
    self._api_key = api_key
    self._base_url = base_url

  def get_model(self, model: str | None = None) -> AIModel:
    """Return a chat completions model client."""
    if not self._api_key:
      raise ValueError("JUMPSTUDIO_MODEL_API_KEY is required for the openai provider.")
    return OpenAICompatibleModel(model or self._DEFAULT_MODEL, api_key=self._api_key, base_url=self._base_url)
