"""Gemini gateway implementation using the google-genai SDK."""

from __future__ import annotations

import asyncio
import logging
import os
import warnings
from typing import Any, Final

from pydantic.warnings import ArbitraryTypeWarning

with warnings.catch_warnings():
  warnings.filterwarnings("ignore", message=r"<built-in function any> is not a Python type.*", category=ArbitraryTypeWarning)
  from google import genai
  from google.genai import errors as genai_errors
  from google.genai import types

from quizforge.ai.errors import GatewayError, GatewayTimeoutError, is_rate_limit_error
from quizforge.ai.providers.base import GatewayRequest, GatewayResponse, GenerativeGateway, MediaWindow
from quizforge.telemetry.context import LlmCallContext
from quizforge.utils.timestamps import format_offset

logger = logging.getLogger("quizforge.ai.providers.gemini")


class GeminiGateway(GenerativeGateway):
  """Gemini client with JSON mode and video window support."""

  _DEFAULT_MODEL: Final[str] = "gemini-2.5-flash"

  def __init__(self, model: str | None = None, *, api_key: str | None = None, timeout_seconds: float = 120.0, client: Any | None = None) -> None:
    self.name = "gemini"
    self.supports_media = True
    self.model = model or self._DEFAULT_MODEL
    self._timeout_seconds = timeout_seconds

    if client is not None:
      self._client = client
      return

    api_key = api_key or os.getenv("GEMINI_API_KEY")
    if not api_key:
      raise ValueError("GEMINI_API_KEY environment variable is required")
    self._client = genai.Client(api_key=api_key)

  async def generate(self, request: GatewayRequest, call_ctx: LlmCallContext) -> GatewayResponse:
    model = request.model or self.model
    contents = _build_contents(request)
    config = _build_config(request)
    logger.info("Gemini request [%s] model=%s request_id=%s", call_ctx.describe(), model, call_ctx.request_id)

    try:
      response = await asyncio.wait_for(self._client.aio.models.generate_content(model=model, contents=contents, config=config), timeout=self._timeout_seconds)
    except asyncio.TimeoutError as exc:
      raise GatewayTimeoutError(f"Gemini call timed out after {self._timeout_seconds}s ({call_ctx.describe()})") from exc
    except genai_errors.APIError as exc:
      status = int(getattr(exc, "code", 0) or 500)
      logger.warning("Gemini returned HTTP %s [%s]: %s", status, call_ctx.describe(), exc)
      return GatewayResponse(ok=False, status=status, body={}, context=call_ctx, error=str(exc))
    except Exception as exc:
      # Some transports surface quota errors without an HTTP code.
      if is_rate_limit_error(exc):
        logger.warning("Gemini rate limited [%s]: %s", call_ctx.describe(), exc)
        return GatewayResponse(ok=False, status=429, body={}, context=call_ctx, error=str(exc))
      raise GatewayError(f"Gemini call failed ({call_ctx.describe()}): {exc}") from exc

    body = _normalize_body(response)
    logger.debug("Gemini response [%s]:\n%s", call_ctx.describe(), getattr(response, "text", None))
    return GatewayResponse(ok=True, status=200, body=body, context=call_ctx)


def _build_contents(request: GatewayRequest) -> list[Any]:
  parts: list[Any] = []
  if request.media is not None:
    parts.append(_media_part(request.media))
  parts.append(types.Part(text=request.prompt))
  return [types.Content(role="user", parts=parts)]


def _media_part(media: MediaWindow) -> Any:
  metadata = None
  if media.start_seconds is not None or media.end_seconds is not None:
    metadata = types.VideoMetadata(
      start_offset=format_offset(media.start_seconds) if media.start_seconds is not None else None,
      end_offset=format_offset(media.end_seconds) if media.end_seconds is not None else None,
    )
  return types.Part(file_data=types.FileData(file_uri=media.uri, mime_type=media.mime_type), video_metadata=metadata)


def _build_config(request: GatewayRequest) -> Any:
  settings = request.generation_config
  kwargs: dict[str, Any] = {"temperature": settings.temperature, "max_output_tokens": settings.max_output_tokens}
  if settings.top_k is not None:
    kwargs["top_k"] = settings.top_k
  if settings.top_p is not None:
    kwargs["top_p"] = settings.top_p
  if request.response_schema is not None:
    kwargs["response_mime_type"] = "application/json"
    kwargs["response_schema"] = request.response_schema
  return types.GenerateContentConfig(**kwargs)


def _normalize_body(response: Any) -> dict[str, Any]:
  """Reduce an SDK response to the shared candidate layout."""
  candidates: list[dict[str, Any]] = []
  for candidate in getattr(response, "candidates", None) or []:
    parts: list[dict[str, Any]] = []
    content = getattr(candidate, "content", None)
    for part in getattr(content, "parts", None) or []:
      text = getattr(part, "text", None)
      if text is not None:
        parts.append({"text": text})
    finish_reason = getattr(candidate, "finish_reason", None)
    candidates.append({"content": {"parts": parts}, "finish_reason": getattr(finish_reason, "value", finish_reason)})

  body: dict[str, Any] = {"candidates": candidates}
  usage = getattr(response, "usage_metadata", None)
  if usage is not None:
    body["usage_metadata"] = {
      "prompt_token_count": usage.prompt_token_count,
      "candidates_token_count": usage.candidates_token_count,
      "total_token_count": usage.total_token_count,
    }
  return body
