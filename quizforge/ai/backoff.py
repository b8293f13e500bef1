"""Retry logic with exponential backoff."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


def backoff_delay_ms(attempt: int, base_delay_ms: int) -> int:
  """
  Delay to wait before ``attempt`` (1-based).

  Attempt 1 never waits; attempt k waits ``base * 2^(k-1)``, so with a 1000ms
  base the delays are 2s then 4s.
  """
  if attempt <= 1:
    return 0
  return base_delay_ms * (2 ** (attempt - 1))


def jitter_ms(min_ms: int, max_ms: int, rng: random.Random | None = None) -> int:
  """Pick a random delay in [min_ms, max_ms]."""
  source = rng or random
  return source.randint(min_ms, max_ms)


async def retry_with_backoff(
  func: Callable[[int], Awaitable[T]],
  *,
  max_attempts: int,
  base_delay_ms: int,
  is_retryable: Callable[[Exception], bool],
  sleep: Sleep = asyncio.sleep,
  label: str = "call",
) -> T:
  """
  Call ``func(attempt)`` until it succeeds or the attempt budget runs out.

  Non-retryable errors are raised immediately. After the final attempt the
  last error is raised unchanged.
  """
  for attempt in range(1, max_attempts + 1):
    delay_ms = backoff_delay_ms(attempt, base_delay_ms)
    if delay_ms:
      await sleep(delay_ms / 1000)

    try:
      return await func(attempt)
    except Exception as exc:
      if not is_retryable(exc):
        raise
      if attempt >= max_attempts:
        logger.error("%s failed after %s attempts: %s", label, attempt, exc)
        raise
      next_delay = backoff_delay_ms(attempt + 1, base_delay_ms)
      logger.warning("Retry attempt %s/%s needed for %s. Error: %s. Retrying in %sms...", attempt + 1, max_attempts, label, exc, next_delay)

  raise RuntimeError("retry_with_backoff requires max_attempts >= 1")
