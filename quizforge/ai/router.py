"""Routing utilities for gateway selection."""

from __future__ import annotations

from enum import Enum

from quizforge.ai.providers.base import GenerativeGateway


class ProviderMode(str, Enum):
  """Supported provider modes."""

  GEMINI = "gemini"
  OPENAI = "openai"


def get_gateway_for_mode(mode: str | ProviderMode, model: str | None = None, *, api_key: str | None = None, timeout_seconds: float = 120.0) -> GenerativeGateway:
  """Return a gateway client for the given provider mode and model name."""
  key = mode.value if isinstance(mode, ProviderMode) else str(mode).strip().lower()

  # Import lazily so a missing SDK only matters for the provider actually used.
  if key == ProviderMode.GEMINI.value:
    from quizforge.ai.providers.gemini import GeminiGateway

    return GeminiGateway(model, api_key=api_key, timeout_seconds=timeout_seconds)

  if key == ProviderMode.OPENAI.value:
    from quizforge.ai.providers.openai import OpenAIGateway

    return OpenAIGateway(model, api_key=api_key, timeout_seconds=timeout_seconds)

  raise ValueError(f"Unsupported provider mode '{mode}'.")
