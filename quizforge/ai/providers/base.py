"""Base interfaces for generative model gateways."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from quizforge.telemetry.context import LlmCallContext


@dataclass(frozen=True)
class GenerationConfig:
  """Sampling settings forwarded to the model."""

  temperature: float = 0.4
  max_output_tokens: int = 4096
  top_k: int | None = None
  top_p: float | None = None


@dataclass(frozen=True)
class MediaWindow:
  """A video locator plus an optional clip window in seconds."""

  uri: str
  mime_type: str = "video/mp4"
  start_seconds: float | None = None
  end_seconds: float | None = None


@dataclass(frozen=True)
class GatewayRequest:
  """Prompt, optional media and target schema for one model call."""

  prompt: str
  response_schema: dict[str, Any] | None = None
  generation_config: GenerationConfig = field(default_factory=GenerationConfig)
  media: MediaWindow | None = None
  model: str | None = None


@dataclass(frozen=True)
class GatewayResponse:
  """
  Normalized model response.

  ``body`` follows the candidate layout shared by every gateway:
  ``{"candidates": [{"content": {"parts": [...]}, "finish_reason": ...}], "usage_metadata": {...}}``.
  A part is either ``{"json": <value>}`` (already parsed) or ``{"text": <str>}``.
  """

  ok: bool
  status: int
  body: dict[str, Any]
  context: LlmCallContext
  error: str | None = None

  @property
  def first_part(self) -> dict[str, Any] | None:
    candidates = self.body.get("candidates") or []
    if not candidates:
      return None
    content = candidates[0].get("content") or {}
    parts = content.get("parts") or []
    if not parts:
      return None
    return parts[0]

  @property
  def text(self) -> str | None:
    """Concatenated text parts of the first candidate, or None when empty."""
    candidates = self.body.get("candidates") or []
    if not candidates:
      return None
    parts = (candidates[0].get("content") or {}).get("parts") or []
    chunks = [part["text"] for part in parts if isinstance(part.get("text"), str)]
    text = "".join(chunks)
    return text if text.strip() else None

  @property
  def finish_reason(self) -> str | None:
    candidates = self.body.get("candidates") or []
    if not candidates:
      return None
    reason = candidates[0].get("finish_reason")
    return str(reason) if reason is not None else None

  @property
  def usage(self) -> dict[str, int] | None:
    meta = self.body.get("usage_metadata")
    if not meta:
      return None
    return {
      "prompt_tokens": int(meta.get("prompt_token_count") or 0),
      "completion_tokens": int(meta.get("candidates_token_count") or 0),
      "total_tokens": int(meta.get("total_token_count") or 0),
    }


def text_body(text: str, *, finish_reason: str = "STOP", usage: dict[str, int] | None = None) -> dict[str, Any]:
  """Build a normalized body holding a single text part."""
  body: dict[str, Any] = {"candidates": [{"content": {"parts": [{"text": text}]}, "finish_reason": finish_reason}]}
  if usage:
    body["usage_metadata"] = usage
  return body


def json_body(value: Any, *, finish_reason: str = "STOP") -> dict[str, Any]:
  """Build a normalized body holding a single already-parsed JSON part."""
  return {"candidates": [{"content": {"parts": [{"json": value}]}, "finish_reason": finish_reason}]}


class GenerativeGateway(ABC):
  """Transport to a generative model; one implementation per provider."""

  name: str
  supports_media: bool = False

  @abstractmethod
  async def generate(self, request: GatewayRequest, call_ctx: LlmCallContext) -> GatewayResponse:
    """
    Send the request and return the normalized response.

    Non-2xx results come back as ``ok=False`` with the HTTP status; only
    failures below the HTTP layer raise ``GatewayError``.
    """
