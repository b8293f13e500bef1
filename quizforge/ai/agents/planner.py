"""Planner agent implementation."""

from __future__ import annotations

import json
import logging
from collections import Counter
from typing import Any

from pydantic import ValidationError

from quizforge.ai.agents.base import BaseAgent, BlockedResponseError, EmptyResponseError, UsageSink
from quizforge.ai.agents.prompts import render_planner_prompt
from quizforge.ai.errors import GatewayError, PlanningError
from quizforge.ai.pipeline.contracts import BLOOM_LEVELS, PlanningMetadata, PlanningResult, QuestionPlan, RunContext, VideoTranscript
from quizforge.ai.providers.base import GatewayRequest, GenerationConfig, GenerativeGateway, MediaWindow
from quizforge.ai.transcript import normalize_transcript
from quizforge.utils.timestamps import format_seconds, to_seconds

logger = logging.getLogger(__name__)

# Keys the planning prompt uses that differ from QuestionPlan field names.
_PLAN_ALIASES = {"question_id": "id", "question_type": "type"}
_TIMESTAMP_KEYS = ("timestamp", "frame_timestamp")

_SEGMENT_SCHEMA: dict[str, Any] = {
  "type": "object",
  "properties": {
    "timestamp": {"type": "string", "description": "M:SS"},
    "end_timestamp": {"type": "string", "description": "M:SS"},
    "text": {"type": "string"},
    "visual_description": {"type": "string"},
    "is_salient_event": {"type": "boolean"},
    "event_type": {"type": "string"},
  },
  "required": ["timestamp", "text", "visual_description", "is_salient_event"],
}

_PLAN_SCHEMA: dict[str, Any] = {
  "type": "object",
  "properties": {
    "question_id": {"type": "string"},
    "timestamp": {"type": "string", "description": "M:SS"},
    "question_type": {"type": "string", "enum": ["multiple_choice", "true_false", "matching", "sequencing", "hotspot"]},
    "learning_objective": {"type": "string"},
    "content_context": {"type": "string"},
    "key_concepts": {"type": "array", "items": {"type": "string"}},
    "bloom_level": {"type": "string", "enum": list(BLOOM_LEVELS)},
    "educational_rationale": {"type": "string"},
    "planning_notes": {"type": "string"},
    "difficulty_level": {"type": "string", "enum": ["beginner", "intermediate", "advanced"]},
    "estimated_time_seconds": {"type": "number"},
    "target_objects": {"type": "array", "items": {"type": "string"}},
    "frame_timestamp": {"type": "string", "description": "M:SS"},
    "visual_learning_objective": {"type": "string"},
    "question_context": {"type": "string"},
  },
  "required": [
    "question_id",
    "timestamp",
    "question_type",
    "learning_objective",
    "content_context",
    "key_concepts",
    "bloom_level",
    "educational_rationale",
    "planning_notes",
    "difficulty_level",
    "estimated_time_seconds",
  ],
}

RESPONSE_SCHEMA: dict[str, Any] = {
  "type": "object",
  "properties": {
    "video_transcript": {
      "type": "object",
      "properties": {
        "full_transcript": {"type": "array", "items": _SEGMENT_SCHEMA},
        "key_concepts_timeline": {
          "type": "array",
          "items": {
            "type": "object",
            "properties": {
              "concept": {"type": "string"},
              "first_mentioned": {"type": "string", "description": "M:SS"},
              "explanation_timestamps": {"type": "array", "items": {"type": "string"}},
            },
            "required": ["concept", "first_mentioned"],
          },
        },
        "video_summary": {"type": "string"},
      },
      "required": ["full_transcript", "key_concepts_timeline", "video_summary"],
    },
    "question_plans": {"type": "array", "items": _PLAN_SCHEMA},
  },
  "required": ["video_transcript", "question_plans"],
}


def educational_score(plan: QuestionPlan) -> int:
  """
  Score a plan for truncation when the model over-generates.

  Higher Bloom's levels, detailed rationale and objective text, and non-MCQ
  types earn more points; the type bonus counters MCQ over-representation.
  """
  score = (BLOOM_LEVELS.index(plan.bloom_level) + 1) * 2
  score += 3 if len(plan.educational_rationale) > 50 else 1
  objective = plan.learning_objective
  score += 3 if "will" in objective.lower() and len(objective) > 30 else 1
  score += 1 if plan.type == "multiple_choice" else 2
  return score


def truncate_by_value(plans: list[QuestionPlan], limit: int) -> list[QuestionPlan]:
  """Keep the ``limit`` highest-scoring plans; ties keep model order."""
  if len(plans) <= limit:
    return list(plans)
  ranked = sorted(plans, key=educational_score, reverse=True)
  return ranked[:limit]


def enforce_spacing(plans: list[QuestionPlan], min_spacing_seconds: float) -> tuple[list[QuestionPlan], int]:
  """
  Sort by timestamp and push crowded plans forward.

  A plan closer than ``min_spacing_seconds`` to its predecessor moves to
  ``predecessor + min_spacing_seconds``. Plans never move backward and are
  never dropped. Returns the spaced plans and how many were shifted.
  """
  spaced: list[QuestionPlan] = []
  shifted = 0
  for plan in sorted(plans, key=lambda item: item.timestamp):
    if spaced and plan.timestamp < spaced[-1].timestamp + min_spacing_seconds:
      adjusted = spaced[-1].timestamp + min_spacing_seconds
      logger.info("Shifted plan %s from %s to %s to keep %ss spacing", plan.id or "<unassigned>", format_seconds(plan.timestamp), format_seconds(adjusted), min_spacing_seconds)
      plan = plan.model_copy(update={"timestamp": adjusted})
      shifted += 1
    spaced.append(plan)
  return spaced, shifted


def ensure_unique_ids(plans: list[QuestionPlan]) -> list[QuestionPlan]:
  """Replace missing or colliding ids with ``{index}_{type}_{timestamp}``."""
  seen: set[str] = set()
  result: list[QuestionPlan] = []
  for index, plan in enumerate(plans, start=1):
    plan_id = plan.id
    if not plan_id or plan_id in seen:
      base = f"{index}_{plan.type}_{plan.timestamp:g}"
      plan_id = base
      suffix = 2
      while plan_id in seen:
        plan_id = f"{base}_{suffix}"
        suffix += 1
      if plan.id:
        logger.warning("Plan id %s collides; renamed to %s", plan.id, plan_id)
      plan = plan.model_copy(update={"id": plan_id})
    seen.add(plan_id)
    result.append(plan)
  return result


def _distribution(plans: list[QuestionPlan], field: str) -> dict[str, int]:
  return dict(Counter(str(getattr(plan, field)) for plan in plans))


class PlannerAgent(BaseAgent[RunContext, PlanningResult]):
  """Analyze the whole video once and emit ordered question plans."""

  name = "Planner"
  generation_config = GenerationConfig(temperature=0.3, max_output_tokens=32768)

  def __init__(self, *, gateway: GenerativeGateway, model: str | None = None, use: UsageSink = None, min_spacing_seconds: float = 30.0) -> None:
    super().__init__(gateway=gateway, model=model, use=use)
    self._min_spacing_seconds = min_spacing_seconds

  async def run(self, input_data: RunContext, ctx: RunContext) -> PlanningResult:
    """Plan up to ``target_count`` questions for the run's video."""
    target_count = input_data.target_count
    payload = await self._request_plans(input_data, ctx)

    transcript = normalize_transcript(payload.get("video_transcript"))
    if transcript is not None:
      logger.info("Transcript: %s segments, %s key concepts", len(transcript.full_transcript), len(transcript.key_concepts_timeline))

    raw_plans = payload["question_plans"]
    accepted: list[QuestionPlan] = []
    for raw in raw_plans:
      plan = self._accept_plan(raw, transcript)
      if plan is not None:
        accepted.append(plan)
    rejected = len(raw_plans) - len(accepted)

    kept = truncate_by_value(accepted, target_count)
    if len(kept) < len(accepted):
      logger.info("Limiting plans from %s to %s by educational value", len(accepted), target_count)

    spaced, shifted = enforce_spacing(kept, self._min_spacing_seconds)
    plans = ensure_unique_ids(spaced)

    metadata = PlanningMetadata(
      total_plans=len(plans),
      rejected_plans=rejected,
      truncated_plans=len(accepted) - len(kept),
      shifted_plans=shifted,
      bloom_distribution=_distribution(plans, "bloom_level"),
      type_distribution=_distribution(plans, "type"),
      difficulty_distribution=_distribution(plans, "difficulty_level"),
    )
    logger.info("Planned %s questions (rejected=%s, truncated=%s, shifted=%s) types=%s bloom=%s", len(plans), rejected, metadata.truncated_plans, shifted, metadata.type_distribution, metadata.bloom_distribution)
    return PlanningResult(plans=plans, transcript=transcript, metadata=metadata)

  async def _request_plans(self, input_data: RunContext, ctx: RunContext) -> dict[str, Any]:
    prompt_text = render_planner_prompt(input_data.target_count, min_spacing_seconds=self._min_spacing_seconds)
    request = GatewayRequest(prompt=prompt_text, response_schema=RESPONSE_SCHEMA, generation_config=self.generation_config, media=MediaWindow(uri=input_data.video_ref), model=self._model)
    call_ctx = self._call_context(ctx, purpose="plan_questions")

    try:
      response = await self._gateway.generate(request, call_ctx)
    except GatewayError as exc:
      raise PlanningError(f"Planning call failed: {exc}") from exc

    if not response.ok:
      raise PlanningError(f"Planning call returned HTTP {response.status}: {response.error or 'no detail'}")
    self._record_usage(response)

    try:
      decoded = self._decode_response(response)
    except (json.JSONDecodeError, EmptyResponseError, BlockedResponseError) as exc:
      logger.error("Planner failed to parse JSON: %s", exc)
      raise PlanningError(f"Planner returned malformed JSON: {exc}") from exc

    payload = decoded.value
    if not isinstance(payload, dict) or not isinstance(payload.get("question_plans"), list):
      raise PlanningError("Planner response has no question_plans array")
    return payload

  def _accept_plan(self, raw: Any, transcript: VideoTranscript | None) -> QuestionPlan | None:
    """Validate one raw plan; structurally invalid plans are dropped, never repaired."""
    if not isinstance(raw, dict):
      logger.warning("Removing plan: expected an object, got %s", type(raw).__name__)
      return None

    data = {_PLAN_ALIASES.get(key, key): value for key, value in raw.items()}
    label = data.get("id") or "<no id>"
    try:
      for key in _TIMESTAMP_KEYS:
        if data.get(key) not in (None, ""):
          data[key] = to_seconds(data[key])
        else:
          data.pop(key, None)
      if data.get("id") is not None:
        data["id"] = str(data["id"])
      plan = QuestionPlan.model_validate(data)
    except (ValueError, ValidationError) as exc:
      logger.warning("Removing plan %s: %s", label, exc)
      return None

    missing = plan.missing_type_fields()
    if missing:
      logger.warning("Removing %s plan %s: missing %s", plan.type, label, ", ".join(missing))
      return None

    if transcript is not None and transcript.full_transcript and plan.timestamp > transcript.duration:
      logger.warning("Removing plan %s: timestamp %ss exceeds video duration %ss", label, plan.timestamp, transcript.duration)
      return None

    return plan
