"""Matching question processor."""

from __future__ import annotations

from typing import Any

from quizforge.ai.agents.base import TextQuestionProcessor
from quizforge.ai.pipeline.contracts import GeneratedQuestion, MatchingPair, MatchingQuestion, QuestionPlan
from quizforge.ai.validation import matching_warnings

RESPONSE_SCHEMA: dict[str, Any] = {
  "type": "object",
  "properties": {
    "question": {"type": "string"},
    "matching_pairs": {
      "type": "array",
      "items": {"type": "object", "properties": {"left": {"type": "string"}, "right": {"type": "string"}}, "required": ["left", "right"]},
      "description": "Three to five pairs",
    },
    "explanation": {"type": "string"},
    "relationship_type": {"type": "string"},
    "relationship_analysis": {"type": "string"},
  },
  "required": ["question", "matching_pairs", "explanation", "relationship_type", "relationship_analysis"],
}


def _pairs(raw: Any) -> list[MatchingPair]:
  if not isinstance(raw, list):
    return []
  pairs: list[MatchingPair] = []
  for item in raw:
    if isinstance(item, dict):
      pairs.append(MatchingPair(left=str(item.get("left") or "").strip(), right=str(item.get("right") or "").strip()))
  return pairs


class MatchingProcessor(TextQuestionProcessor):
  """Generate 3-5 concept pairs sharing one relationship."""

  name = "Matching"
  question_type = "matching"
  response_schema = RESPONSE_SCHEMA

  def _build_question(self, plan: QuestionPlan, payload: dict[str, Any], *, fallback: bool) -> MatchingQuestion:
    return MatchingQuestion(
      **self._base_fields(plan, payload, fallback=fallback),
      matching_pairs=_pairs(payload.get("matching_pairs")),
      relationship_type=payload.get("relationship_type") or None,
      relationship_analysis=payload.get("relationship_analysis") or None,
    )

  def _warnings(self, question: GeneratedQuestion) -> list[str]:
    if not isinstance(question, MatchingQuestion):
      return []
    return matching_warnings(question)
