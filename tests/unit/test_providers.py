from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from quizforge.ai.errors import GatewayError, GatewayTimeoutError
from quizforge.ai.providers.base import GatewayRequest, GatewayResponse, MediaWindow, json_body, text_body
from quizforge.ai.providers.gemini import GeminiGateway
from quizforge.ai.providers.openai import OpenAIGateway, _finish_reason, _strict_schema
from quizforge.ai.router import ProviderMode, get_gateway_for_mode
from quizforge.telemetry.context import LlmCallContext

SCHEMA = {"type": "object", "properties": {"question": {"type": "string"}, "items": {"type": "array", "items": {"type": "object", "properties": {"label": {"type": "string"}}}}}}


def call_ctx() -> LlmCallContext:
  return LlmCallContext(agent="Test", run_id="run_test", purpose="generate_test", call_index="1/1", question_id="q1")


def gemini_client(result=None, *, side_effect=None) -> SimpleNamespace:
  generate_content = AsyncMock(return_value=result, side_effect=side_effect)
  return SimpleNamespace(aio=SimpleNamespace(models=SimpleNamespace(generate_content=generate_content)))


def gemini_result(text: str) -> SimpleNamespace:
  candidate = SimpleNamespace(content=SimpleNamespace(parts=[SimpleNamespace(text=text)]), finish_reason="STOP")
  usage = SimpleNamespace(prompt_token_count=10, candidates_token_count=5, total_token_count=15)
  return SimpleNamespace(candidates=[candidate], usage_metadata=usage, text=text)


@pytest.mark.anyio
async def test_gemini_sends_video_window_and_schema() -> None:
  client = gemini_client(gemini_result('{"question": "Why?"}'))
  gateway = GeminiGateway("gemini-test", client=client)
  request = GatewayRequest(prompt="Describe the frame", response_schema=SCHEMA, media=MediaWindow(uri="gs://videos/a.mp4", start_seconds=45.5, end_seconds=46.5))

  response = await gateway.generate(request, call_ctx())

  kwargs = client.aio.models.generate_content.await_args.kwargs
  assert kwargs["model"] == "gemini-test"
  media_part, text_part = kwargs["contents"][0].parts
  assert media_part.file_data.file_uri == "gs://videos/a.mp4"
  assert media_part.video_metadata.start_offset == "45.5s"
  assert media_part.video_metadata.end_offset == "46.5s"
  assert text_part.text == "Describe the frame"
  assert kwargs["config"].response_mime_type == "application/json"

  assert response.ok is True
  assert response.text == '{"question": "Why?"}'
  assert response.finish_reason == "STOP"
  assert response.usage == {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15}
  assert response.context.question_id == "q1"


@pytest.mark.anyio
async def test_gemini_maps_quota_errors_to_429() -> None:
  gateway = GeminiGateway(client=gemini_client(side_effect=RuntimeError("429 RESOURCE_EXHAUSTED: quota exceeded")))

  response = await gateway.generate(GatewayRequest(prompt="hi"), call_ctx())

  assert response.ok is False
  assert response.status == 429


@pytest.mark.anyio
async def test_gemini_transport_errors_and_timeouts_raise() -> None:
  gateway = GeminiGateway(client=gemini_client(side_effect=ConnectionError("reset by peer")))
  with pytest.raises(GatewayError, match="reset by peer"):
    await gateway.generate(GatewayRequest(prompt="hi"), call_ctx())

  async def slow(**kwargs):
    await asyncio.sleep(1)

  slow_client = SimpleNamespace(aio=SimpleNamespace(models=SimpleNamespace(generate_content=slow)))
  gateway = GeminiGateway(client=slow_client, timeout_seconds=0.01)
  with pytest.raises(GatewayTimeoutError):
    await gateway.generate(GatewayRequest(prompt="hi"), call_ctx())


def test_gemini_requires_api_key(monkeypatch) -> None:
  monkeypatch.delenv("GEMINI_API_KEY", raising=False)
  with pytest.raises(ValueError, match="GEMINI_API_KEY"):
    GeminiGateway()


@pytest.mark.anyio
async def test_openai_uses_strict_json_schema() -> None:
  completion = SimpleNamespace(
    choices=[SimpleNamespace(message=SimpleNamespace(content='{"question": "Why?"}'), finish_reason="stop")],
    usage=SimpleNamespace(prompt_tokens=7, completion_tokens=3, total_tokens=10),
  )
  create = AsyncMock(return_value=completion)
  gateway = OpenAIGateway("gpt-test", client=SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create))))

  response = await gateway.generate(GatewayRequest(prompt="Write a question", response_schema=SCHEMA), call_ctx())

  kwargs = create.await_args.kwargs
  assert kwargs["model"] == "gpt-test"
  assert kwargs["response_format"]["json_schema"]["strict"] is True
  assert kwargs["response_format"]["json_schema"]["name"] == "generate_test"
  assert kwargs["messages"][-1] == {"role": "user", "content": "Write a question"}
  assert response.text == '{"question": "Why?"}'
  assert response.finish_reason == "STOP"
  assert response.usage == {"prompt_tokens": 7, "completion_tokens": 3, "total_tokens": 10}


@pytest.mark.anyio
async def test_openai_rejects_media() -> None:
  create = AsyncMock()
  gateway = OpenAIGateway(client=SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create))))

  with pytest.raises(GatewayError, match="video"):
    await gateway.generate(GatewayRequest(prompt="hi", media=MediaWindow(uri="gs://videos/a.mp4")), call_ctx())
  create.assert_not_awaited()


def test_strict_schema_closes_nested_objects() -> None:
  strict = _strict_schema(SCHEMA)
  assert strict["additionalProperties"] is False
  assert strict["required"] == ["question", "items"]
  nested = strict["properties"]["items"]["items"]
  assert nested["additionalProperties"] is False
  assert nested["required"] == ["label"]
  assert "additionalProperties" not in SCHEMA


def test_finish_reason_mapping() -> None:
  assert _finish_reason("stop") == "STOP"
  assert _finish_reason("length") == "MAX_TOKENS"
  assert _finish_reason("content_filter") == "SAFETY"
  assert _finish_reason(None) == "STOP"
  assert _finish_reason("tool_calls") == "TOOL_CALLS"


def test_router_selects_provider() -> None:
  gateway = get_gateway_for_mode(ProviderMode.OPENAI, "gpt-test", api_key="sk-test")
  assert isinstance(gateway, OpenAIGateway)
  assert gateway.supports_media is False
  assert gateway.model == "gpt-test"

  with pytest.raises(ValueError, match="Unsupported provider mode"):
    get_gateway_for_mode("anthropic")


def test_response_helpers() -> None:
  ctx = call_ctx()
  parsed = GatewayResponse(ok=True, status=200, body=json_body({"a": 1}), context=ctx)
  assert parsed.first_part == {"json": {"a": 1}}
  assert parsed.text is None
  assert parsed.usage is None

  blank = GatewayResponse(ok=True, status=200, body=text_body("  ", finish_reason="MAX_TOKENS"), context=ctx)
  assert blank.text is None
  assert blank.finish_reason == "MAX_TOKENS"

  empty = GatewayResponse(ok=True, status=200, body={}, context=ctx)
  assert empty.first_part is None
  assert empty.finish_reason is None


def test_call_context_for_attempt() -> None:
  ctx = call_ctx()
  retry = ctx.for_attempt(2)
  assert retry.attempt == 2
  assert retry.call_index == "2"
  assert ctx.for_attempt(3, 3).call_index == "3/3"
  assert retry.request_id != ctx.request_id
  assert retry.describe() == "Test q1 generate_test attempt=2"
