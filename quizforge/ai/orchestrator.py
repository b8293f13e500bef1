"""Orchestration for the two-stage quiz generation pipeline."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections import Counter
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from quizforge.ai.agents.base import QuestionProcessor
from quizforge.ai.agents.hotspot import HotspotProcessor
from quizforge.ai.agents.matching import MatchingProcessor
from quizforge.ai.agents.multiple_choice import MultipleChoiceProcessor
from quizforge.ai.agents.planner import PlannerAgent
from quizforge.ai.agents.sequencing import SequencingProcessor
from quizforge.ai.agents.true_false import TrueFalseProcessor
from quizforge.ai.errors import PlanningError, QuestionGenerationError, QuestionValidationError, is_output_error
from quizforge.ai.pipeline.contracts import (
  GeneratedQuestion,
  GenerationFailure,
  GenerationMetadata,
  PipelineResult,
  PlanningResult,
  QuestionPlan,
  RunContext,
)
from quizforge.ai.quality import score_all
from quizforge.ai.router import ProviderMode, get_gateway_for_mode
from quizforge.config import Settings, get_settings
from quizforge.core.logging import setup_logging

logger = logging.getLogger(__name__)


class UsageLedger:
  """Collects token usage per run from the agents' usage sinks."""

  def __init__(self) -> None:
    self._runs: dict[str, list[dict[str, Any]]] = {}

  def open(self, run_id: str) -> None:
    self._runs[run_id] = []

  def record(self, payload: dict[str, Any]) -> None:
    run_id = payload.get("run_id")
    if run_id in self._runs:
      self._runs[run_id].append(payload)

  def entries(self, run_id: str) -> list[dict[str, Any]]:
    return list(self._runs.get(run_id, []))

  def close(self, run_id: str) -> list[dict[str, Any]]:
    return self._runs.pop(run_id, [])


class QuizOrchestrator:
  """
  Coordinates the planner and the per-type processors.

  Planning runs once and is fatal on failure. Every plan is then generated
  concurrently; a failed plan becomes a ``GenerationFailure`` and never affects
  its siblings.
  """

  def __init__(self, *, planner: PlannerAgent, processors: Mapping[str, QuestionProcessor], usage: UsageLedger | None = None) -> None:
    self._planner = planner
    self._processors = dict(processors)
    self._usage = usage or UsageLedger()

  @classmethod
  def from_settings(cls, settings: Settings | None = None) -> QuizOrchestrator:
    """Build gateways and agents from environment configuration."""
    settings = settings or get_settings()
    setup_logging(settings)
    timeout = settings.request_timeout_seconds
    planner_gateway = get_gateway_for_mode(ProviderMode.GEMINI, settings.planner_model, api_key=settings.gemini_api_key, timeout_seconds=timeout)
    hotspot_gateway = get_gateway_for_mode(ProviderMode.GEMINI, settings.hotspot_model, api_key=settings.gemini_api_key, timeout_seconds=timeout)
    text_key = settings.openai_api_key if settings.text_provider == ProviderMode.OPENAI.value else settings.gemini_api_key
    text_gateway = get_gateway_for_mode(settings.text_provider, settings.text_model, api_key=text_key, timeout_seconds=timeout)

    ledger = UsageLedger()
    use = ledger.record
    window = settings.transcript_window_seconds
    planner = PlannerAgent(gateway=planner_gateway, use=use, min_spacing_seconds=settings.min_question_spacing_seconds)
    processors: dict[str, QuestionProcessor] = {
      "multiple_choice": MultipleChoiceProcessor(gateway=text_gateway, use=use, transcript_window_seconds=window),
      "true_false": TrueFalseProcessor(gateway=text_gateway, use=use, transcript_window_seconds=window),
      "matching": MatchingProcessor(gateway=text_gateway, use=use, transcript_window_seconds=window),
      "sequencing": SequencingProcessor(gateway=text_gateway, use=use, transcript_window_seconds=window),
      "hotspot": HotspotProcessor(
        gateway=hotspot_gateway,
        use=use,
        transcript_window_seconds=window,
        max_attempts=settings.hotspot_max_attempts,
        base_delay_ms=settings.hotspot_base_delay_ms,
        jitter_min_ms=settings.hotspot_jitter_min_ms,
        jitter_max_ms=settings.hotspot_jitter_max_ms,
      ),
    }
    orchestrator = cls(planner=planner, processors=processors, usage=ledger)
    logger.info("Pipeline configured: planner=%s hotspot=%s text=%s/%s", settings.planner_model, settings.hotspot_model, settings.text_provider, settings.text_model or "default")
    return orchestrator

  async def generate(self, video_ref: str, target_count: int) -> PipelineResult:
    """Plan and generate up to ``target_count`` questions for one video."""
    started = time.monotonic()
    logs: list[str] = []

    def _log(message: str, level: int = logging.INFO) -> None:
      logs.append(message)
      logger.log(level, message)

    ctx = RunContext(run_id=f"run_{uuid.uuid4().hex[:12]}", created_at=datetime.now(timezone.utc), video_ref=video_ref, target_count=target_count)
    self._usage.open(ctx.run_id)
    try:
      _log(f"Starting run {ctx.run_id} for {video_ref} ({target_count} questions)")

      # Stage 1: planning
      try:
        planning = await self._planner.run(ctx, ctx)
      except PlanningError as exc:
        _log(f"Planning failed: {exc}", logging.ERROR)
        raise PlanningError(str(exc), logs=logs) from exc
      _log(f"Planning produced {len(planning.plans)} plans")

      # Stage 2: the transcript is shared read-only with every task.
      ctx = ctx.model_copy(update={"transcript": planning.transcript})
      results = await asyncio.gather(*(self._generate_one(plan, ctx) for plan in planning.plans), return_exceptions=True)

      questions: list[GeneratedQuestion] = []
      failures: list[GenerationFailure] = []
      for plan, outcome in zip(planning.plans, results):
        if isinstance(outcome, BaseException):
          if not isinstance(outcome, Exception):
            raise outcome
          failure = _failure_for(plan, outcome)
          failures.append(failure)
          _log(f"Question {plan.id} ({plan.type}) failed: {failure.error}", logging.WARNING)
        else:
          questions.append(outcome)

      _log(f"Generated {len(questions)}/{len(planning.plans)} questions ({len(failures)} failed)")
      return self._build_result(ctx, planning, questions, failures, logs, started)
    finally:
      usage = self._usage.close(ctx.run_id)
      if usage:
        total = sum(int(item.get("total_tokens") or 0) for item in usage)
        logger.info("Run %s used %s tokens over %s calls", ctx.run_id, total, len(usage))

  async def run(self, video_ref: str, target_count: int) -> PipelineResult:
    return await self.generate(video_ref, target_count)

  async def _generate_one(self, plan: QuestionPlan, ctx: RunContext) -> GeneratedQuestion:
    processor = self._processors.get(plan.type)
    if processor is None:
      raise QuestionGenerationError(f"No processor registered for type '{plan.type}'", plan_id=plan.id, question_type=plan.type)
    return await processor.generate(plan, ctx)

  def _build_result(
    self,
    ctx: RunContext,
    planning: PlanningResult,
    questions: list[GeneratedQuestion],
    failures: list[GenerationFailure],
    logs: list[str],
    started: float,
  ) -> PipelineResult:
    metadata = GenerationMetadata(
      requested_count=ctx.target_count,
      planned_count=len(planning.plans),
      successful_count=len(questions),
      failed_count=len(failures),
      generation_time_ms=int((time.monotonic() - started) * 1000),
      type_breakdown=dict(Counter(question.type for question in questions)),
      planning=planning.metadata,
    )
    transcript = planning.transcript
    return PipelineResult(
      questions=tuple(questions),
      failures=tuple(failures),
      metadata=metadata,
      quality=score_all(questions),
      video_summary=(transcript.video_summary or None) if transcript else None,
      logs=tuple(logs),
      usage=tuple(self._usage.entries(ctx.run_id)),
    )


def _failure_for(plan: QuestionPlan, exc: Exception) -> GenerationFailure:
  """Map a task exception to the failure record for its plan."""
  is_validation = isinstance(exc, QuestionValidationError) or is_output_error(exc)
  question_type = getattr(exc, "question_type", None) or plan.type
  return GenerationFailure(
    plan_id=plan.id,
    error=str(exc),
    question_type=question_type,
    error_type="validation_error" if is_validation else "generation_error",
  )
