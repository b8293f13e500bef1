"""Multiple choice question processor."""

from __future__ import annotations

import logging
from typing import Any

from quizforge.ai.agents.base import TextQuestionProcessor
from quizforge.ai.pipeline.contracts import MultipleChoiceQuestion, QuestionPlan

logger = logging.getLogger(__name__)

RESPONSE_SCHEMA: dict[str, Any] = {
  "type": "object",
  "properties": {
    "question": {"type": "string", "description": "Question stem"},
    "options": {"type": "array", "items": {"type": "string"}, "description": "Exactly four answer options"},
    "correct_answer": {"type": "integer", "description": "Zero-based index of the correct option"},
    "explanation": {"type": "string"},
    "misconception_analysis": {
      "type": "array",
      "items": {
        "type": "object",
        "properties": {"option_index": {"type": "integer"}, "misconception": {"type": "string"}},
        "required": ["option_index", "misconception"],
      },
    },
    "optimal_timestamp": {"type": "number", "description": "Seconds; -1 keeps the planned timestamp"},
  },
  "required": ["question", "options", "correct_answer", "explanation", "misconception_analysis", "optimal_timestamp"],
}

_LETTERS = "ABCD"


def _coerce_answer_index(value: Any) -> Any:
  """Accept "2" or "C" for models that ignore the integer type."""
  if isinstance(value, str):
    text = value.strip().upper()
    if text.isdigit():
      return int(text)
    if len(text) == 1 and text in _LETTERS:
      return _LETTERS.index(text)
  return value


def _misconceptions(raw: Any) -> dict[str, str] | None:
  if isinstance(raw, dict):
    return {str(key): str(value) for key, value in raw.items()}
  if isinstance(raw, list):
    result = {str(item.get("option_index")): str(item.get("misconception") or "") for item in raw if isinstance(item, dict) and item.get("option_index") is not None}
    return result or None
  return None


def _optimal_timestamp(raw: Any) -> float | None:
  if isinstance(raw, bool) or not isinstance(raw, int | float):
    return None
  return float(raw) if raw >= 0 else None


class MultipleChoiceProcessor(TextQuestionProcessor):
  """Generate a four-option question with misconception-based distractors."""

  name = "MultipleChoice"
  question_type = "multiple_choice"
  response_schema = RESPONSE_SCHEMA

  def _build_question(self, plan: QuestionPlan, payload: dict[str, Any], *, fallback: bool) -> MultipleChoiceQuestion:
    fields = self._base_fields(plan, payload, fallback=fallback)

    optimal = _optimal_timestamp(payload.get("optimal_timestamp"))
    if optimal is not None and optimal != plan.timestamp:
      logger.info("Plan %s moved from %ss to suggested %ss", plan.id, plan.timestamp, optimal)
      fields["timestamp"] = optimal

    options = payload.get("options")
    return MultipleChoiceQuestion(
      **fields,
      options=[str(option).strip() for option in options] if isinstance(options, list) else [],
      correct_answer=_coerce_answer_index(payload.get("correct_answer")),
      misconception_analysis=_misconceptions(payload.get("misconception_analysis")),
    )
