"""True/false question processor."""

from __future__ import annotations

from typing import Any

from quizforge.ai.agents.base import TextQuestionProcessor
from quizforge.ai.pipeline.contracts import GeneratedQuestion, QuestionPlan, TrueFalseQuestion
from quizforge.ai.validation import true_false_warnings

RESPONSE_SCHEMA: dict[str, Any] = {
  "type": "object",
  "properties": {
    "question": {"type": "string", "description": "Declarative statement to judge"},
    "correct_answer": {"type": "boolean"},
    "explanation": {"type": "string"},
    "concept_analysis": {"type": "string"},
    "misconception_addressed": {"type": "string"},
  },
  "required": ["question", "correct_answer", "explanation", "concept_analysis", "misconception_addressed"],
}


class TrueFalseProcessor(TextQuestionProcessor):
  name = "TrueFalse"
  question_type = "true_false"
  response_schema = RESPONSE_SCHEMA

  def _build_question(self, plan: QuestionPlan, payload: dict[str, Any], *, fallback: bool) -> TrueFalseQuestion:
    # StrictBool on the model rejects "true"/1; the answer must be a JSON boolean.
    return TrueFalseQuestion(
      **self._base_fields(plan, payload, fallback=fallback),
      correct_answer=payload.get("correct_answer"),
      concept_analysis=payload.get("concept_analysis") or None,
      misconception_addressed=payload.get("misconception_addressed") or None,
    )

  def _warnings(self, question: GeneratedQuestion) -> list[str]:
    if not isinstance(question, TrueFalseQuestion):
      return []
    return true_false_warnings(question)
