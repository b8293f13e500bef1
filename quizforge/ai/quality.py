"""Advisory quality scoring for generated questions."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable

from quizforge.ai.pipeline.contracts import (
  GeneratedQuestion,
  HotspotQuestion,
  MatchingQuestion,
  MultipleChoiceQuestion,
  QualityReport,
  SequencingQuestion,
  TrueFalseQuestion,
)

logger = logging.getLogger(__name__)

FALLBACK_PENALTY = 10
_HIGHER_ORDER_WORDS = ("understand", "apply", "analyze", "evaluate", "create")
_ABSOLUTE_RE = re.compile(r"\b(always|never|all|none)\b", re.IGNORECASE)
_RELATIONSHIP_WORDS = ("connect", "relationship", "because", "important")


class _Rubric:
  """Accumulates deductions, strengths and improvements for one question."""

  def __init__(self) -> None:
    self.score = 100
    self.strengths: list[str] = []
    self.improvements: list[str] = []

  def check(self, passed: bool, strength: str, improvement: str, penalty: int) -> None:
    if passed:
      self.strengths.append(strength)
    else:
      self.improvements.append(improvement)
      self.score -= penalty

  def deduct(self, improvement: str, penalty: int) -> None:
    self.improvements.append(improvement)
    self.score -= penalty

  def length_band(self, length: int, low: int, high: int, *, good: str, short: str, long: str) -> None:
    if low <= length <= high:
      self.strengths.append(good)
    elif length < low:
      self.improvements.append(short)
      self.score -= 10
    else:
      self.improvements.append(long)
      self.score -= 5

  def report(self) -> QualityReport:
    return QualityReport(score=max(0, min(100, self.score)), strengths=self.strengths, improvements=self.improvements)


def _mentions(text: str, words: Iterable[str]) -> bool:
  lowered = text.lower()
  return any(word in lowered for word in words)


def _average_length(items: list[str]) -> float:
  if not items:
    return 0.0
  return sum(len(item) for item in items) / len(items)


def assess_multiple_choice(question: MultipleChoiceQuestion) -> _Rubric:
  rubric = _Rubric()
  rubric.length_band(
    len(question.question),
    20,
    200,
    good="Question length is appropriate",
    short="Question could be more detailed",
    long="Question may be too verbose",
  )
  average = _average_length(question.options)
  rubric.check(10 <= average <= 100, "Option lengths are well-balanced", "Option lengths could be more balanced", 5)
  rubric.check(len(question.explanation) >= 50, "Explanation provides good educational value", "Explanation could be more comprehensive", 15)
  rubric.check(len(question.misconception_analysis or {}) >= 2, "Includes misconception analysis for learning", "Could benefit from misconception analysis", 10)
  rubric.check(
    _mentions(question.question, _HIGHER_ORDER_WORDS) or _mentions(question.explanation, _HIGHER_ORDER_WORDS),
    "Targets higher-order thinking skills",
    "Could target higher-order thinking skills",
    5,
  )
  return rubric


def assess_true_false(question: TrueFalseQuestion) -> _Rubric:
  rubric = _Rubric()
  rubric.length_band(
    len(question.question),
    15,
    150,
    good="Statement length is appropriate",
    short="Statement could be more detailed",
    long="Statement may be too complex for true/false format",
  )
  rubric.check(len(question.explanation) >= 40, "Explanation provides good educational value", "Explanation could be more comprehensive", 15)
  rubric.check(bool(question.concept_analysis), "Includes clear concept analysis", "Could benefit from concept analysis", 10)
  if not question.correct_answer:
    rubric.check(bool(question.misconception_addressed), "Addresses important misconception", "False statement should address specific misconception", 10)

  has_absolute = _ABSOLUTE_RE.search(question.question) is not None
  rubric.check(not has_absolute, "Avoids obvious absolute terms", "Avoid absolute terms that might make question too obvious", 5)

  if question.bloom_level in ("understand", "apply"):
    rubric.strengths.append("Targets appropriate cognitive level for true/false format")
  elif question.bloom_level == "remember":
    rubric.deduct("Could target higher-order thinking", 5)
  return rubric


def assess_matching(question: MatchingQuestion) -> _Rubric:
  rubric = _Rubric()
  rubric.length_band(
    len(question.question),
    20,
    150,
    good="Question instruction is clear and appropriate length",
    short="Question instruction could be more detailed",
    long="Question instruction may be too verbose",
  )
  count = len(question.matching_pairs)
  if 3 <= count <= 5:
    rubric.strengths.append(f"Optimal number of pairs ({count}) for cognitive engagement")
  elif count < 3:
    rubric.deduct("Too few pairs - may not provide sufficient interaction", 15)
  else:
    rubric.deduct("Too many pairs - may cause cognitive overload", 10)

  rubric.check(len(question.explanation) >= 50, "Explanation provides good educational value", "Explanation could better address relationship patterns", 15)
  rubric.check(bool(question.relationship_type), "Clear relationship type specified", "Could benefit from relationship type analysis", 10)

  left = _average_length([pair.left for pair in question.matching_pairs])
  right = _average_length([pair.right for pair in question.matching_pairs])
  rubric.check(abs(left - right) < 20, "Balanced item lengths between columns", "Consider balancing item lengths between columns", 5)
  rubric.check(
    _mentions(question.explanation, _RELATIONSHIP_WORDS),
    "Explanation focuses on relationship understanding",
    "Could better explain why relationships matter",
    10,
  )

  if question.bloom_level in ("understand", "apply"):
    rubric.strengths.append("Appropriate cognitive level for matching format")
  elif question.bloom_level == "analyze":
    rubric.strengths.append("Targets higher-order relationship analysis")
  return rubric


def assess_sequencing(question: SequencingQuestion) -> _Rubric:
  rubric = _Rubric()
  rubric.length_band(
    len(question.question),
    20,
    150,
    good="Question instruction is clear and appropriate length",
    short="Question instruction could be more detailed",
    long="Question instruction may be too verbose",
  )
  count = len(question.sequence_items)
  if 4 <= count <= 6:
    rubric.strengths.append(f"Optimal number of items ({count}) for sequencing")
  elif count < 4:
    rubric.deduct("Too few items - may not provide sufficient sequencing challenge", 15)
  else:
    rubric.deduct("Too many items - may cause cognitive overload", 10)

  rubric.check(len(question.explanation) >= 50, "Explanation provides good educational value", "Explanation could better address sequence logic", 15)
  rubric.check(bool(question.sequence_type), "Clear sequence type specified", "Could benefit from sequence type analysis", 10)

  average = _average_length(question.sequence_items)
  if 15 <= average <= 80:
    rubric.strengths.append("Sequence items are appropriately detailed")
  elif average < 15:
    rubric.deduct("Sequence items could be more descriptive", 5)
  else:
    rubric.deduct("Sequence items may be too verbose", 5)

  rubric.check(
    _mentions(question.sequence_analysis or "", ("depend", "because", "before", "after")),
    "Includes dependency pattern analysis",
    "Could benefit from dependency analysis",
    5,
  )

  if question.bloom_level in ("understand", "apply"):
    rubric.strengths.append("Appropriate cognitive level for sequencing format")
  elif question.bloom_level == "analyze":
    rubric.strengths.append("Targets higher-order process analysis")
  return rubric


def assess_hotspot(question: HotspotQuestion) -> _Rubric:
  rubric = _Rubric()
  rubric.length_band(
    len(question.question),
    15,
    150,
    good="Question prompt is clear and appropriate length",
    short="Question prompt could be more specific",
    long="Question prompt may be too verbose",
  )
  count = len(question.bounding_boxes)
  if 3 <= count <= 5:
    rubric.strengths.append(f"Good number of selectable regions ({count})")
  elif count < 3:
    rubric.deduct("Few selectable regions - the answer may be too easy to guess", 10)
  else:
    rubric.deduct("Many selectable regions - the frame may be cluttered", 5)

  rubric.check(len(question.explanation) >= 50, "Explanation provides good educational value", "Explanation could connect the object to the concept", 15)
  confidence = sum(box.confidence_score for box in question.bounding_boxes) / max(count, 1)
  rubric.check(confidence >= 0.6, "Detections are high confidence", "Low detection confidence - boxes may be misplaced", 10)
  rubric.check(
    bool(question.distractor_guidance.expected_distractors),
    "Distractors are grounded in the lesson content",
    "Could name plausible distractors from the lesson",
    5,
  )
  rubric.check(bool(question.visual_learning_objective), "States a visual learning objective", "Could state what visual skill is being tested", 5)
  return rubric


_ASSESSORS: dict[str, Callable[..., _Rubric]] = {
  "multiple_choice": assess_multiple_choice,
  "true_false": assess_true_false,
  "matching": assess_matching,
  "sequencing": assess_sequencing,
  "hotspot": assess_hotspot,
}


def score(question: GeneratedQuestion) -> QualityReport:
  """
  Score a question from 0 to 100 with strengths and improvement notes.

  Scoring is advisory and never blocks a question. Payloads recovered through
  fallback decoding lose ``FALLBACK_PENALTY`` points.
  """
  rubric = _ASSESSORS[question.type](question)
  if question.fallback_decoded:
    rubric.deduct("Response needed fallback JSON recovery; review for truncation", FALLBACK_PENALTY)
  return rubric.report()


def score_all(questions: Iterable[GeneratedQuestion]) -> dict[str, QualityReport]:
  """Score each question keyed by question id."""
  reports: dict[str, QualityReport] = {}
  for question in questions:
    report = score(question)
    reports[question.question_id] = report
    logger.debug("Quality %s (%s): %s", question.question_id, question.type, report.score)
  return reports


def select_best(questions: Iterable[GeneratedQuestion], limit: int) -> list[GeneratedQuestion]:
  """Return up to ``limit`` questions, highest score first; ties keep input order."""
  if limit <= 0:
    return []
  ranked = sorted(questions, key=lambda question: score(question).score, reverse=True)
  return ranked[:limit]
