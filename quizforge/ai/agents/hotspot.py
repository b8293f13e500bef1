"""Hotspot (visual bounding box) question processor."""

from __future__ import annotations

import asyncio
import json
import logging
import random
import re
from dataclasses import dataclass
from typing import Any

from quizforge.ai.agents.base import BlockedResponseError, EmptyResponseError, QuestionProcessor, UsageSink
from quizforge.ai.agents.prompts import render_hotspot_prompt
from quizforge.ai.backoff import Sleep, jitter_ms, retry_with_backoff
from quizforge.ai.errors import GatewayError, GatewayTimeoutError, QuestionGenerationError
from quizforge.ai.pipeline.contracts import BoundingBox, DistractorGuidance, HotspotQuestion, QuestionPlan, RunContext
from quizforge.ai.providers.base import GatewayRequest, GenerationConfig, GenerativeGateway, MediaWindow
from quizforge.telemetry.context import LlmCallContext

logger = logging.getLogger(__name__)

# Half-width of the clip sent to the vision model, centered on the frame.
WINDOW_HALF_SECONDS = 0.5
COORDINATE_SCALE = 1000.0
MIN_BOXES = 2
DEFAULT_CONFIDENCE = 0.8
DEFAULT_LABEL = "Unknown Object"
WHY_DISTRACTORS_MATTER = "These alternatives test understanding versus mere recognition"
_DISTRACTOR_NOTE_RE = re.compile(r"distractors?[:\-\s]+([^.]+)", re.IGNORECASE)

RESPONSE_SCHEMA: dict[str, Any] = {
  "type": "object",
  "properties": {
    "question": {"type": "string", "description": "Question asking the learner to identify the target object"},
    "explanation": {"type": "string", "description": "Why identifying this object matters"},
    "bounding_boxes": {
      "type": "array",
      "items": {
        "type": "object",
        "properties": {
          "box_2d": {"type": "array", "items": {"type": "integer"}, "description": "[y_min, x_min, y_max, x_max] normalized to 0-1000"},
          "label": {"type": "string"},
          "is_correct_answer": {"type": "boolean"},
          "confidence_score": {"type": "number", "description": "Between 0.0 and 1.0"},
        },
        "required": ["box_2d", "label", "is_correct_answer", "confidence_score"],
      },
    },
  },
  "required": ["question", "explanation", "bounding_boxes"],
}


@dataclass(frozen=True)
class _AttemptResult:
  question: str
  explanation: str
  boxes: list[BoundingBox]
  fallback: bool


def _clamp(value: float) -> float:
  return max(0.0, min(1.0, value))


def normalize_box(raw: Any) -> BoundingBox | None:
  """
  Convert a ``box_2d`` entry to a normalized ``BoundingBox``.

  ``box_2d`` is ``[y_min, x_min, y_max, x_max]`` on a 0-1000 scale. Entries
  without four numeric coordinates return None.
  """
  if not isinstance(raw, dict):
    return None
  coords = raw.get("box_2d")
  if not isinstance(coords, list) or len(coords) != 4:
    return None
  try:
    y_min, x_min, y_max, x_max = (float(value) / COORDINATE_SCALE for value in coords)
  except (TypeError, ValueError):
    return None

  confidence = raw.get("confidence_score")
  if isinstance(confidence, bool) or not isinstance(confidence, int | float) or confidence == 0:
    confidence = DEFAULT_CONFIDENCE

  return BoundingBox(
    label=str(raw.get("label") or DEFAULT_LABEL).strip() or DEFAULT_LABEL,
    x=_clamp(x_min),
    y=_clamp(y_min),
    width=_clamp(x_max - x_min),
    height=_clamp(y_max - y_min),
    confidence_score=_clamp(float(confidence)),
    is_correct_answer=raw.get("is_correct_answer") is True,
  )


def repair_correct_answer(boxes: list[BoundingBox], target_objects: list[str]) -> list[BoundingBox]:
  """
  Enforce a single correct box where possible.

  With no correct box, the first box whose label contains a target object
  (case-insensitive) is marked correct. With several, only the first stays
  correct. When labels share a target substring the first one wins; this is a
  heuristic and may pick the wrong box.
  """
  correct = [index for index, box in enumerate(boxes) if box.is_correct_answer]
  if len(correct) == 1:
    return boxes

  if not correct:
    targets = [target.lower() for target in target_objects if target.strip()]
    for index, box in enumerate(boxes):
      label = box.label.lower()
      if any(target in label for target in targets):
        logger.info("Marked '%s' as the correct answer by label match", box.label)
        return [item.model_copy(update={"is_correct_answer": position == index}) for position, item in enumerate(boxes)]
    return boxes

  logger.warning("Found %s correct boxes; keeping only '%s'", len(correct), boxes[correct[0]].label)
  return [item.model_copy(update={"is_correct_answer": position == correct[0]}) for position, item in enumerate(boxes)]


def plan_question_text(plan: QuestionPlan) -> str:
  """Question text for a response that carried only boxes."""
  targets = " and ".join(plan.target_objects or []) or "target element"
  return f"Click on the {targets} in this frame."


def plan_explanation(plan: QuestionPlan) -> str:
  targets = " and ".join(plan.target_objects or []) or "target element"
  return f"{plan.educational_rationale} Locating the {targets} connects what is on screen to {', '.join(plan.key_concepts)}."


def extract_expected_distractors(plan: QuestionPlan) -> list[str]:
  """Distractor hints from planning notes plus unrelated key concepts, capped at 3."""
  distractors: list[str] = []
  match = _DISTRACTOR_NOTE_RE.search(plan.planning_notes)
  if match:
    distractors.extend(item.strip() for item in re.split(r"[,;]", match.group(1)) if item.strip())

  targets = [target.lower() for target in plan.target_objects or []]
  for concept in plan.key_concepts:
    if not any(concept.lower() in target for target in targets):
      distractors.append(concept)
  return distractors[:3]


class HotspotProcessor(QuestionProcessor):
  """
  Generate a visual question from a one-second clip around ``frame_timestamp``.

  This is the only processor that retries: rate limits, empty responses,
  unparseable JSON, too few boxes, a missing correct box and timeouts are
  retried with exponential backoff. Every request is preceded by a random
  jitter so concurrent hotspot calls in one run do not fire together.

  A response that is only an array of boxes is accepted with question text
  derived from the plan and is flagged ``fallback_decoded``.
  """

  name = "Hotspot"
  question_type = "hotspot"
  generation_config = GenerationConfig(temperature=0.1, max_output_tokens=8192, top_k=1, top_p=0.8)

  def __init__(
    self,
    *,
    gateway: GenerativeGateway,
    model: str | None = None,
    use: UsageSink = None,
    transcript_window_seconds: float = 30.0,
    max_attempts: int = 3,
    base_delay_ms: int = 1000,
    jitter_min_ms: int = 500,
    jitter_max_ms: int = 1500,
    sleep: Sleep = asyncio.sleep,
    rng: random.Random | None = None,
  ) -> None:
    super().__init__(gateway=gateway, model=model, use=use, transcript_window_seconds=transcript_window_seconds)
    self._max_attempts = max_attempts
    self._base_delay_ms = base_delay_ms
    self._jitter_min_ms = jitter_min_ms
    self._jitter_max_ms = jitter_max_ms
    self._sleep = sleep
    self._rng = rng

  def _fail(self, plan: QuestionPlan, message: str, *, retryable: bool = False) -> QuestionGenerationError:
    return QuestionGenerationError(message, plan_id=plan.id, question_type=self.question_type, retryable=retryable)

  async def run(self, input_data: QuestionPlan, ctx: RunContext) -> HotspotQuestion:
    plan = input_data
    missing = plan.missing_type_fields()
    if missing:
      raise self._fail(plan, f"Hotspot plan missing {', '.join(missing)} from planning")
    if not ctx.video_ref:
      raise self._fail(plan, "Hotspot generation requires a video reference")
    if not self._gateway.supports_media:
      raise self._fail(plan, f"Gateway '{self._gateway.name}' cannot analyze video")

    frame = plan.effective_frame_timestamp
    media = MediaWindow(uri=ctx.video_ref, start_seconds=max(0.0, frame - WINDOW_HALF_SECONDS), end_seconds=frame + WINDOW_HALF_SECONDS)
    prompt_text = render_hotspot_prompt(plan, self._transcript_text(plan, ctx, timestamp=frame))
    request = GatewayRequest(prompt=prompt_text, response_schema=RESPONSE_SCHEMA, generation_config=self.generation_config, media=media, model=self._model)
    base_ctx = self._call_context(ctx, purpose="generate_hotspot", question_id=plan.id)
    reasons: list[str] = []

    async def attempt(number: int) -> _AttemptResult:
      try:
        return await self._attempt(plan, base_ctx, request, number)
      except QuestionGenerationError as exc:
        reasons.append(f"attempt {number}: {exc}")
        raise

    logger.info("Generating hotspot for plan %s (targets=%s, frame=%ss)", plan.id, ", ".join(plan.target_objects or []), frame)
    try:
      result = await retry_with_backoff(
        attempt,
        max_attempts=self._max_attempts,
        base_delay_ms=self._base_delay_ms,
        is_retryable=lambda exc: isinstance(exc, QuestionGenerationError) and exc.retryable,
        sleep=self._sleep,
        label=f"hotspot {plan.id}",
      )
    except QuestionGenerationError as exc:
      raise self._fail(plan, f"Hotspot generation failed after {len(reasons)} attempt(s): " + "; ".join(reasons)) from exc

    question = self._finalize(
      plan,
      lambda: HotspotQuestion(
        question_id=plan.id,
        timestamp=plan.timestamp,
        question=result.question,
        explanation=result.explanation,
        bloom_level=plan.bloom_level,
        educational_rationale=plan.educational_rationale,
        fallback_decoded=result.fallback,
        target_objects=list(plan.target_objects or []),
        frame_timestamp=frame,
        bounding_boxes=result.boxes,
        distractor_guidance=DistractorGuidance(expected_distractors=extract_expected_distractors(plan), why_distractors_matter=WHY_DISTRACTORS_MATTER),
        question_context=plan.question_context,
        visual_learning_objective=plan.visual_learning_objective,
      ),
    )
    logger.info("Hotspot generated for plan %s with %s boxes", plan.id, len(result.boxes))
    return question

  async def _attempt(self, plan: QuestionPlan, base_ctx: LlmCallContext, request: GatewayRequest, number: int) -> _AttemptResult:
    delay = jitter_ms(self._jitter_min_ms, self._jitter_max_ms, self._rng)
    if delay > 0:
      logger.debug("Hotspot %s waiting %sms jitter before attempt %s", plan.id, delay, number)
      await self._sleep(delay / 1000)

    call_ctx = base_ctx.for_attempt(number, self._max_attempts)
    try:
      response = await self._gateway.generate(request, call_ctx)
    except GatewayTimeoutError as exc:
      raise self._fail(plan, str(exc), retryable=True) from exc
    except GatewayError as exc:
      raise self._fail(plan, str(exc)) from exc

    if not response.ok:
      raise self._fail(plan, f"Gateway returned HTTP {response.status}", retryable=response.status == 429)
    self._record_usage(response)

    try:
      decoded = self._decode_response(response, opener="{[")
    except BlockedResponseError as exc:
      raise self._fail(plan, str(exc)) from exc
    except EmptyResponseError as exc:
      raise self._fail(plan, str(exc), retryable=True) from exc
    except json.JSONDecodeError as exc:
      raise self._fail(plan, f"Could not parse bounding boxes: {exc}", retryable=True) from exc

    payload = decoded.value
    fallback = decoded.fallback
    if isinstance(payload, list):
      logger.warning("Hotspot %s returned a bare box array; using plan-derived question text", plan.id)
      payload = {"question": plan_question_text(plan), "explanation": plan_explanation(plan), "bounding_boxes": payload}
      fallback = True
    if not isinstance(payload, dict) or not isinstance(payload.get("bounding_boxes"), list):
      raise self._fail(plan, "Response has no bounding_boxes array", retryable=True)

    question_text = str(payload.get("question") or "").strip()
    explanation = str(payload.get("explanation") or "").strip()
    if not question_text or not explanation:
      raise self._fail(plan, "Response is missing question or explanation", retryable=True)

    boxes = [box for box in (normalize_box(item) for item in payload["bounding_boxes"]) if box is not None]
    if len(boxes) < MIN_BOXES:
      raise self._fail(plan, f"Insufficient bounding boxes detected: {len(boxes)}", retryable=True)

    boxes = repair_correct_answer(boxes, plan.target_objects or [])
    if not any(box.is_correct_answer for box in boxes):
      labels = ", ".join(box.label for box in boxes)
      raise self._fail(plan, f"Target object(s) '{', '.join(plan.target_objects or [])}' not found among detected objects ({labels})", retryable=True)

    if decoded.fallback:
      logger.warning("Hotspot %s decoded through fallback extraction", plan.id)
    return _AttemptResult(question=question_text, explanation=explanation, boxes=boxes, fallback=fallback)
