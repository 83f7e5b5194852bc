"""Provider implementations."""

from jumpstudio.ai.providers.base import AIModel, ModelResponse, Provider, ProviderError, SimpleModelResponse
from jumpstudio.ai.providers.gemini import GeminiModel, GeminiProvider
from jumpstudio.ai.providers.openai_compat import OpenAICompatibleModel, OpenAICompatibleProvider


def get_provider(name: str, *, api_key: str | None = None, base_url: str | None = None) -> Provider:
  """Return the provider registered under `name`."""
  normalized = name.strip().lower()
  if normalized == "openai":
    return OpenAICompatibleProvider(api_key=api_key, base_url=base_url)
  if normalized == "gemini":
    return GeminiProvider(api_key=api_key)
  raise ValueError(f"Unsupported model provider '{name}'.")


__all__ = ["AIModel", "ModelResponse", "SimpleModelResponse", "Provider", "ProviderError", "GeminiModel", "GeminiProvider", "OpenAICompatibleModel", "OpenAICompatibleProvider", "get_provider"]
