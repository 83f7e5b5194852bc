"""Gemini provider implementation using the google-genai SDK."""

from __future__ import annotations

import logging
from typing import Final

import httpx
from google import genai
from google.genai import errors, types

from jumpstudio.ai.providers.base import AIModel, ModelResponse, Provider, ProviderError, SimpleModelResponse

logger = logging.getLogger(__name__)


class GeminiModel(AIModel):
  """Gemini model client using the async google-genai surface."""

  def __init__(self, name: str, *, api_key: str) -> None:
    self.name: str = name
    self._client = genai.Client(api_key=api_key)

  async def generate(self, prompt: str, *, system: str | None = None, max_tokens: int | None = None) -> ModelResponse:
    """Generate a JSON-mode text response from Gemini."""
    config = types.GenerateContentConfig(system_instruction=system, max_output_tokens=max_tokens, response_mime_type="application/json")

    try:
      # Use the async client to avoid blocking the asyncio event loop.
      response = await self._client.aio.models.generate_content(model=self.name, contents=prompt, config=config)
    except errors.APIError as exc:
      raise ProviderError(f"Gemini returned HTTP {exc.code}: {exc.message}", status_code=exc.code) from exc
    except httpx.HTTPError as exc:
      raise ProviderError(f"Gemini connection failed: {exc}") from exc

    content = response.text or ""
    logger.debug("Gemini response (%d chars)", len(content))
    usage = None

    if response.usage_metadata:
      usage = {"prompt_tokens": response.usage_metadata.prompt_token_count, "completion_tokens": response.usage_metadata.candidates_token_count, "total_tokens": response.usage_metadata.total_token_count}
    return SimpleModelResponse(content=content, usage=usage)


class GeminiProvider(Provider):
  """Gemini provider."""

  _DEFAULT_MODEL: Final[str] = "gemini-2.5-flash"
  _AVAILABLE_MODELS: Final[set[str]] = {"gemini-2.5-pro", "gemini-2.5-flash", "gemini-2.0-flash", "gemini-2.0-flash-lite"}

  def __init__(self, api_key: str | None = None) -> None:
    self.name: str = "gemini"
    self._api_key = api_key

  def get_model(self, model: str | None = None) -> AIModel:
    """Return a Gemini model client."""
    model_name = model or self._DEFAULT_MODEL
    if model_name not in self._AVAILABLE_MODELS:
      raise ValueError(f"Unsupported Gemini model '{model_name}'.")
    if not self._api_key:
      raise ValueError("JUMPSTUDIO_MODEL_API_KEY is required for the gemini provider.")
    return GeminiModel(model_name, api_key=self._api_key)
