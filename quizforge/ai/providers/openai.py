"""OpenAI gateway implementation using the openai SDK (text-only)."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from typing import Any, Final

from openai import APIStatusError, AsyncOpenAI

from quizforge.ai.errors import GatewayError, GatewayTimeoutError
from quizforge.ai.providers.base import GatewayRequest, GatewayResponse, GenerativeGateway, text_body
from quizforge.telemetry.context import LlmCallContext

logger = logging.getLogger("quizforge.ai.providers.openai")


class OpenAIGateway(GenerativeGateway):
  """Chat-completions client with strict JSON schema output."""

  _DEFAULT_MODEL: Final[str] = "gpt-4o-mini"

  def __init__(self, model: str | None = None, *, api_key: str | None = None, base_url: str | None = None, timeout_seconds: float = 120.0, client: Any | None = None) -> None:
    self.name = "openai"
    self.supports_media = False
    self.model = model or self._DEFAULT_MODEL
    self._timeout_seconds = timeout_seconds

    if client is not None:
      self._client = client
      return

    api_key = api_key or os.getenv("OPENAI_API_KEY")
    if not api_key:
      raise ValueError("OPENAI_API_KEY environment variable is required")
    self._client = AsyncOpenAI(api_key=api_key, base_url=base_url)

  async def generate(self, request: GatewayRequest, call_ctx: LlmCallContext) -> GatewayResponse:
    if request.media is not None:
      raise GatewayError(f"OpenAI gateway does not accept video input ({call_ctx.describe()})")

    model = request.model or self.model
    kwargs: dict[str, Any] = {
      "model": model,
      "messages": _build_messages(request),
      "temperature": request.generation_config.temperature,
      "max_tokens": request.generation_config.max_output_tokens,
    }
    if request.generation_config.top_p is not None:
      kwargs["top_p"] = request.generation_config.top_p
    if request.response_schema is not None:
      kwargs["response_format"] = {"type": "json_schema", "json_schema": {"name": call_ctx.purpose or "question", "schema": _strict_schema(request.response_schema), "strict": True}}

    logger.info("OpenAI request [%s] model=%s request_id=%s", call_ctx.describe(), model, call_ctx.request_id)
    try:
      response = await asyncio.wait_for(self._client.chat.completions.create(**kwargs), timeout=self._timeout_seconds)
    except asyncio.TimeoutError as exc:
      raise GatewayTimeoutError(f"OpenAI call timed out after {self._timeout_seconds}s ({call_ctx.describe()})") from exc
    except APIStatusError as exc:
      logger.warning("OpenAI returned HTTP %s [%s]: %s", exc.status_code, call_ctx.describe(), exc)
      return GatewayResponse(ok=False, status=exc.status_code, body={}, context=call_ctx, error=str(exc))
    except Exception as exc:
      raise GatewayError(f"OpenAI call failed ({call_ctx.describe()}): {exc}") from exc

    choice = response.choices[0]
    content = choice.message.content or ""
    logger.debug("OpenAI response [%s]:\n%s", call_ctx.describe(), content)

    usage = None
    if response.usage:
      usage = {"prompt_token_count": response.usage.prompt_tokens, "candidates_token_count": response.usage.completion_tokens, "total_token_count": response.usage.total_tokens}
    return GatewayResponse(ok=True, status=200, body=text_body(content, finish_reason=_finish_reason(choice.finish_reason), usage=usage), context=call_ctx)


def _build_messages(request: GatewayRequest) -> list[dict[str, str]]:
  messages: list[dict[str, str]] = []
  if request.response_schema is not None:
    schema_str = json.dumps(request.response_schema, indent=2)
    messages.append({"role": "system", "content": f"You are an assessment designer that outputs valid JSON.\nYou MUST output JSON adhering to this schema:\n```json\n{schema_str}\n```\nOutput valid JSON only, no markdown formatting."})
  messages.append({"role": "user", "content": request.prompt})
  return messages


def _finish_reason(reason: str | None) -> str:
  # Map chat-completions reasons onto the candidate vocabulary.
  mapping = {"stop": "STOP", "length": "MAX_TOKENS", "content_filter": "SAFETY"}
  return mapping.get(reason or "stop", (reason or "STOP").upper())


def _strict_schema(schema: dict[str, Any]) -> dict[str, Any]:
  """Close every object in the schema; strict mode rejects open objects."""
  result = dict(schema)
  if result.get("type") == "object":
    properties = {key: _strict_schema(value) for key, value in (result.get("properties") or {}).items()}
    result["properties"] = properties
    result["required"] = list(properties)
    result["additionalProperties"] = False
  if isinstance(result.get("items"), dict):
    result["items"] = _strict_schema(result["items"])
  return result
