"""Sequencing question processor."""

from __future__ import annotations

from typing import Any

from quizforge.ai.agents.base import TextQuestionProcessor
from quizforge.ai.pipeline.contracts import GeneratedQuestion, QuestionPlan, SequencingQuestion
from quizforge.ai.validation import sequencing_warnings

RESPONSE_SCHEMA: dict[str, Any] = {
  "type": "object",
  "properties": {
    "question": {"type": "string"},
    "sequence_items": {"type": "array", "items": {"type": "string"}, "description": "Four to six steps in the correct order"},
    "explanation": {"type": "string"},
    "sequence_type": {"type": "string"},
    "sequence_analysis": {"type": "string"},
  },
  "required": ["question", "sequence_items", "explanation", "sequence_type", "sequence_analysis"],
}


def flatten_items(raw: Any) -> list[str]:
  """
  Normalize sequence items to plain strings.

  Some models return ``{"content": ...}`` or ``{"text": ...}`` objects instead
  of strings; anything else is stringified so validation can reject it.
  """
  if not isinstance(raw, list):
    return []
  items: list[str] = []
  for item in raw:
    if isinstance(item, dict):
      value = item.get("content") or item.get("text") or ""
      items.append(str(value).strip())
    else:
      items.append(str(item).strip())
  return items


class SequencingProcessor(TextQuestionProcessor):
  """Generate an ordered list of steps; stored order is the answer."""

  name = "Sequencing"
  question_type = "sequencing"
  response_schema = RESPONSE_SCHEMA

  def _build_question(self, plan: QuestionPlan, payload: dict[str, Any], *, fallback: bool) -> SequencingQuestion:
    return SequencingQuestion(
      **self._base_fields(plan, payload, fallback=fallback),
      sequence_items=flatten_items(payload.get("sequence_items")),
      sequence_type=payload.get("sequence_type") or None,
      sequence_analysis=payload.get("sequence_analysis") or None,
    )

  def _warnings(self, question: GeneratedQuestion) -> list[str]:
    if not isinstance(question, SequencingQuestion):
      return []
    return sequencing_warnings(question)
