"""Retry logic for transient provider failures."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from jumpstudio.ai.providers.base import ProviderError

T = TypeVar("T")
logger = logging.getLogger(__name__)


async def retry_with_backoff(func: Callable[..., Awaitable[T]], *args, max_retries: int = 3, base_delay: float = 2.0, **kwargs) -> T:
  """
  Execute a provider call, retrying rate limits, 5xx and connection errors.

  Delays double per attempt (2s, 4s, 8s by default). Client errors are raised
  immediately. Callers bound the total time with their own deadline.
  """
  for attempt in range(max_retries):
    try:
      return await func(*args, **kwargs)
    except ProviderError as exc:
      if not exc.transient:
        # Non-retryable error, raise immediately
        raise
      delay = base_delay * (2**attempt)
      logger.warning("Retry attempt %d/%d after transient provider error: %s. Retrying in %.1fs...", attempt + 1, max_retries, exc, delay)
      await asyncio.sleep(delay)

  # Final attempt
  return await func(*args, **kwargs)
