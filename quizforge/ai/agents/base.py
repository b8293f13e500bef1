"""Base classes for pipeline agents and type processors."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, ClassVar, Generic, TypeVar

from pydantic import ValidationError

from quizforge.ai.agents.prompts import render_question_prompt
from quizforge.ai.errors import GatewayError, QuestionGenerationError, QuestionValidationError
from quizforge.ai.json_parser import DecodedPayload, decode_model_json
from quizforge.ai.pipeline.contracts import GeneratedQuestion, QuestionPlan, RunContext
from quizforge.ai.providers.base import GatewayRequest, GatewayResponse, GenerationConfig, GenerativeGateway
from quizforge.ai.transcript import extract_context, format_context
from quizforge.ai.validation import validate_question
from quizforge.telemetry.context import LlmCallContext, new_request_id

InputT = TypeVar("InputT")
OutputT = TypeVar("OutputT")
UsageSink = Callable[[dict[str, Any]], None] | None

# Finish reasons that mean the model refused or was cut off by a filter.
BLOCKED_FINISH_REASONS = frozenset({"SAFETY", "RECITATION", "BLOCKLIST", "PROHIBITED_CONTENT", "SPII"})


class EmptyResponseError(ValueError):
  """Raised when a successful response carries no usable content."""


class BlockedResponseError(RuntimeError):
  """Raised when the model stopped for safety or recitation reasons."""


def default_run_context(video_ref: str = "") -> RunContext:
  """Context for calling a processor outside an orchestrated run."""
  return RunContext(run_id=f"run_{new_request_id()[4:]}", created_at=datetime.now(timezone.utc), video_ref=video_ref, target_count=1)


class BaseAgent(ABC, Generic[InputT, OutputT]):
  """Base agent with shared dependencies."""

  name: str

  def __init__(self, *, gateway: GenerativeGateway, model: str | None = None, use: UsageSink = None) -> None:
    self._gateway = gateway
    self._model = model
    self._usage_sink = use

  @abstractmethod
  async def run(self, input_data: InputT, ctx: RunContext) -> OutputT:
    """Run the agent on input data."""

  def _call_context(self, ctx: RunContext, *, purpose: str, question_id: str | None = None, attempt: int = 1, call_index: str = "1/1") -> LlmCallContext:
    return LlmCallContext(agent=self.name, run_id=ctx.run_id, purpose=purpose, call_index=call_index, question_id=question_id, attempt=attempt)

  def _record_usage(self, response: GatewayResponse) -> None:
    usage = response.usage
    if not usage or not self._usage_sink:
      return
    call_ctx = response.context
    payload = {
      "model": self._model or getattr(self._gateway, "model", "unknown"),
      "agent": call_ctx.agent,
      "run_id": call_ctx.run_id,
      "purpose": call_ctx.purpose,
      "call_index": call_ctx.call_index,
      "request_id": call_ctx.request_id,
      **usage,
    }
    self._usage_sink(payload)

  def _decode_response(self, response: GatewayResponse, *, opener: str = "{") -> DecodedPayload:
    """
    Extract the JSON payload from a successful response.

    Already-parsed parts are used as-is; text parts go through strict
    decoding and then the named fallback path.
    """
    reason = (response.finish_reason or "").upper()
    if reason in BLOCKED_FINISH_REASONS:
      raise BlockedResponseError(f"Model stopped with finish reason {reason}")

    part = response.first_part
    if part is not None and "json" in part:
      return DecodedPayload(part["json"])

    text = response.text
    if text is None:
      raise EmptyResponseError("Model returned an empty response")
    return decode_model_json(text, opener=opener)


class QuestionProcessor(BaseAgent[QuestionPlan, GeneratedQuestion]):
  """Shared contract for Stage 2 type processors."""

  question_type: ClassVar[str]

  def __init__(self, *, gateway: GenerativeGateway, model: str | None = None, use: UsageSink = None, transcript_window_seconds: float = 30.0) -> None:
    super().__init__(gateway=gateway, model=model, use=use)
    self._transcript_window_seconds = transcript_window_seconds

  async def generate(self, plan: QuestionPlan, ctx: RunContext | None = None) -> GeneratedQuestion:
    """Generate one question; every failure surfaces as ``QuestionGenerationError``."""
    logger = logging.getLogger(__name__)
    try:
      return await self.run(plan, ctx or default_run_context())
    except QuestionGenerationError:
      raise
    except Exception as exc:
      logger.error("%s failed for plan %s: %s", self.name, plan.id, exc, exc_info=True)
      raise QuestionGenerationError(f"{self.question_type} generation failed: {exc}", plan_id=plan.id, question_type=self.question_type) from exc

  def _transcript_text(self, plan: QuestionPlan, ctx: RunContext, timestamp: float | None = None) -> str:
    context = extract_context(ctx.transcript, plan.timestamp if timestamp is None else timestamp, self._transcript_window_seconds)
    return format_context(context)

  def _base_fields(self, plan: QuestionPlan, payload: dict[str, Any], *, fallback: bool) -> dict[str, Any]:
    return {
      "question_id": plan.id,
      "timestamp": plan.timestamp,
      "question": str(payload.get("question") or "").strip(),
      "explanation": str(payload.get("explanation") or "").strip(),
      "bloom_level": plan.bloom_level,
      "educational_rationale": plan.educational_rationale,
      "fallback_decoded": fallback,
    }

  def _finalize(self, plan: QuestionPlan, build: Callable[[], GeneratedQuestion]) -> GeneratedQuestion:
    """Construct the typed question and run its structural validator."""
    try:
      question = build()
    except (ValidationError, TypeError, ValueError) as exc:
      raise QuestionValidationError(f"{self.question_type} payload does not match its schema: {exc}", plan_id=plan.id, question_type=self.question_type) from exc
    return validate_question(question)


class TextQuestionProcessor(QuestionProcessor):
  """One gateway call per question, no retry."""

  response_schema: ClassVar[dict[str, Any]]
  generation_config: ClassVar[GenerationConfig] = GenerationConfig(temperature=0.4, max_output_tokens=4096)

  async def run(self, input_data: QuestionPlan, ctx: RunContext) -> GeneratedQuestion:
    logger = logging.getLogger(__name__)
    plan = input_data
    prompt_text = render_question_prompt(plan, self._transcript_text(plan, ctx))
    request = GatewayRequest(prompt=prompt_text, response_schema=self.response_schema, generation_config=self.generation_config, model=self._model)
    call_ctx = self._call_context(ctx, purpose=f"generate_{self.question_type}", question_id=plan.id)

    logger.info("Generating %s question for plan %s (%s)", self.question_type, plan.id, plan.learning_objective)
    try:
      response = await self._gateway.generate(request, call_ctx)
    except GatewayError as exc:
      raise QuestionGenerationError(str(exc), plan_id=plan.id, question_type=self.question_type) from exc

    if not response.ok:
      raise QuestionGenerationError(f"Gateway returned HTTP {response.status}: {response.error or 'no detail'}", plan_id=plan.id, question_type=self.question_type)
    self._record_usage(response)

    try:
      decoded = self._decode_response(response)
    except (json.JSONDecodeError, EmptyResponseError, BlockedResponseError) as exc:
      raise QuestionGenerationError(f"Invalid {self.question_type} response: {exc}", plan_id=plan.id, question_type=self.question_type) from exc
    if decoded.fallback:
      logger.warning("Plan %s decoded through fallback extraction", plan.id)

    payload = decoded.value
    if not isinstance(payload, dict):
      raise QuestionValidationError(f"Expected a JSON object, got {type(payload).__name__}", plan_id=plan.id, question_type=self.question_type)

    question = self._finalize(plan, lambda: self._build_question(plan, payload, fallback=decoded.fallback))
    for warning in self._warnings(question):
      logger.warning("Quality warning for %s (%s): %s", plan.id, self.question_type, warning)

    logger.info("Generated %s question %s", self.question_type, plan.id)
    return question

  @abstractmethod
  def _build_question(self, plan: QuestionPlan, payload: dict[str, Any], *, fallback: bool) -> GeneratedQuestion:
    """Map the decoded payload onto the typed question model."""

  def _warnings(self, question: GeneratedQuestion) -> list[str]:
    return []
