"""Shared fixtures: a scripted gateway and plan/transcript builders."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import pytest

from quizforge.ai.pipeline.contracts import QuestionPlan, RunContext, TranscriptSegment, VideoTranscript
from quizforge.ai.providers.base import GatewayRequest, GatewayResponse, GenerativeGateway, json_body, text_body
from quizforge.telemetry.context import LlmCallContext


@pytest.fixture
def anyio_backend():
  return "asyncio"


class FakeGateway(GenerativeGateway):
  """Gateway that replays scripted responses and records every call."""

  def __init__(self, *responses: Any, supports_media: bool = True, name: str = "fake") -> None:
    self.name = name
    self.supports_media = supports_media
    self.model = "fake-model"
    self._responses = list(responses)
    self.calls: list[tuple[GatewayRequest, LlmCallContext]] = []

  def queue(self, *responses: Any) -> None:
    self._responses.extend(responses)

  async def generate(self, request: GatewayRequest, call_ctx: LlmCallContext) -> GatewayResponse:
    self.calls.append((request, call_ctx))
    if not self._responses:
      raise AssertionError("FakeGateway ran out of scripted responses")
    item = self._responses.pop(0)
    if isinstance(item, Exception):
      raise item
    if callable(item) and not isinstance(item, GatewayResponse):
      return item(request, call_ctx)
    if isinstance(item, GatewayResponse):
      return GatewayResponse(ok=item.ok, status=item.status, body=item.body, context=call_ctx, error=item.error)
    if isinstance(item, str):
      return GatewayResponse(ok=True, status=200, body=text_body(item), context=call_ctx)
    return GatewayResponse(ok=True, status=200, body=json_body(item), context=call_ctx)


def status_response(status: int, error: str = "") -> GatewayResponse:
  """A non-2xx response; the context is replaced by the fake on replay."""
  placeholder = LlmCallContext(agent="fake", run_id=None, purpose=None, call_index=None)
  return GatewayResponse(ok=False, status=status, body={}, context=placeholder, error=error or f"HTTP {status}")


def make_plan(**overrides: Any) -> QuestionPlan:
  data: dict[str, Any] = {
    "id": "q1",
    "timestamp": 12.0,
    "type": "true_false",
    "learning_objective": "Students will recognize that photosynthesis stores energy in glucose",
    "content_context": "The narrator explains the light reactions of photosynthesis",
    "educational_rationale": "Separates energy storage from energy release, a common confusion",
    "planning_notes": "Target the misconception that plants get food from soil",
    "key_concepts": ["photosynthesis", "glucose"],
    "bloom_level": "understand",
    "difficulty_level": "beginner",
    "estimated_time_seconds": 30,
  }
  data.update(overrides)
  return QuestionPlan.model_validate(data)


def make_hotspot_plan(**overrides: Any) -> QuestionPlan:
  data: dict[str, Any] = {
    "id": "h1",
    "timestamp": 45.0,
    "type": "hotspot",
    "frame_timestamp": 46.0,
    "target_objects": ["mitochondria"],
    "visual_learning_objective": "Locate the organelle responsible for cellular respiration",
    "question_context": "The diagram shows a labeled animal cell",
    "planning_notes": "distractor: nucleus, ribosome",
    "key_concepts": ["mitochondria", "cell membrane"],
  }
  data.update(overrides)
  return make_plan(**data)


def make_transcript() -> VideoTranscript:
  return VideoTranscript(
    full_transcript=[
      TranscriptSegment(timestamp=0, end_timestamp=20, text="Plants capture sunlight.", visual_description="A leaf in sunlight"),
      TranscriptSegment(timestamp=20, end_timestamp=60, text="Chlorophyll absorbs light energy.", visual_description="Chloroplast diagram", is_salient_event=True, event_type="diagram"),
      TranscriptSegment(timestamp=60, end_timestamp=180, text="Glucose stores the energy.", visual_description="Glucose molecule"),
    ],
    video_summary="An introduction to photosynthesis",
  )


@pytest.fixture
def run_ctx() -> Callable[..., RunContext]:
  def _build(video_ref: str = "gs://videos/lecture.mp4", target_count: int = 5, transcript: VideoTranscript | None = None) -> RunContext:
    return RunContext(run_id="run_test", created_at=datetime(2026, 1, 1, tzinfo=timezone.utc), video_ref=video_ref, target_count=target_count, transcript=transcript)

  return _build
