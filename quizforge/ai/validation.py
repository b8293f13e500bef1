"""Structural validation rules for generated questions."""

from __future__ import annotations

import re
from collections.abc import Callable

from quizforge.ai.errors import QuestionValidationError
from quizforge.ai.pipeline.contracts import (
  GeneratedQuestion,
  HotspotQuestion,
  MatchingQuestion,
  MultipleChoiceQuestion,
  SequencingQuestion,
  TrueFalseQuestion,
)

MCQ_OPTION_COUNT = 4
MATCHING_MIN_PAIRS = 3
MATCHING_MAX_PAIRS = 5
SEQUENCE_MIN_ITEMS = 4
SEQUENCE_MAX_ITEMS = 6
HOTSPOT_MIN_BOXES = 2

_ORDERING_WORDS = ("order", "sequence", "depend", "because", "first", "then")
_SCAFFOLD_RE = re.compile(r"^\s*(first|then|next)\b", re.IGNORECASE)
_ABSOLUTE_RE = re.compile(r"\b(always|never|all|none|every|only)\b", re.IGNORECASE)
_RELATIONSHIP_WORDS = ("because", "relates", "connect", "leads to", "results in", "causes", "example of", "defines")


def _normalize(text: str) -> str:
  return " ".join(text.split()).lower()


def _text_len(text: str | None) -> int:
  return len((text or "").strip())


def _raise_if_errors(question: GeneratedQuestion, errors: list[str]) -> None:
  if errors:
    raise QuestionValidationError(f"{question.type} validation failed: " + "; ".join(errors), plan_id=question.question_id, question_type=question.type)


def _duplicates(values: list[str]) -> list[str]:
  seen: set[str] = set()
  dupes: list[str] = []
  for value in values:
    key = _normalize(value)
    if key in seen:
      dupes.append(value)
    seen.add(key)
  return dupes


def validate_multiple_choice(question: MultipleChoiceQuestion) -> None:
  errors: list[str] = []
  if _text_len(question.question) < 10:
    errors.append("question must be at least 10 characters")
  if len(question.options) != MCQ_OPTION_COUNT:
    errors.append(f"expected exactly {MCQ_OPTION_COUNT} options, got {len(question.options)}")
  short = [index for index, option in enumerate(question.options) if _text_len(option) < 2]
  if short:
    errors.append(f"options {short} are shorter than 2 characters")
  if _duplicates(question.options):
    errors.append("options must be unique")
  if isinstance(question.correct_answer, bool) or not 0 <= question.correct_answer <= MCQ_OPTION_COUNT - 1:
    errors.append(f"correct_answer must be an index in [0, {MCQ_OPTION_COUNT - 1}]")
  if _text_len(question.explanation) < 20:
    errors.append("explanation must be at least 20 characters")
  _raise_if_errors(question, errors)


def validate_true_false(question: TrueFalseQuestion) -> None:
  errors: list[str] = []
  if not isinstance(question.correct_answer, bool):
    errors.append("correct_answer must be a boolean")
  if _text_len(question.question) < 10:
    errors.append("question must be at least 10 characters")
  if _text_len(question.explanation) < 20:
    errors.append("explanation must be at least 20 characters")
  _raise_if_errors(question, errors)


def validate_matching(question: MatchingQuestion) -> None:
  errors: list[str] = []
  count = len(question.matching_pairs)
  if not MATCHING_MIN_PAIRS <= count <= MATCHING_MAX_PAIRS:
    errors.append(f"expected {MATCHING_MIN_PAIRS}-{MATCHING_MAX_PAIRS} matching pairs, got {count}")
  lefts = [pair.left for pair in question.matching_pairs]
  rights = [pair.right for pair in question.matching_pairs]
  if any(_text_len(item) < 2 for item in lefts + rights):
    errors.append("matching items must be at least 2 characters")
  if _duplicates(lefts):
    errors.append("left items must be unique")
  if _duplicates(rights):
    errors.append("right items must be unique")
  if _text_len(question.explanation) < 30:
    errors.append("explanation must be at least 30 characters")
  _raise_if_errors(question, errors)


def validate_sequencing(question: SequencingQuestion) -> None:
  errors: list[str] = []
  count = len(question.sequence_items)
  if not SEQUENCE_MIN_ITEMS <= count <= SEQUENCE_MAX_ITEMS:
    errors.append(f"expected {SEQUENCE_MIN_ITEMS}-{SEQUENCE_MAX_ITEMS} sequence items, got {count}")
  if any(_text_len(item) < 3 for item in question.sequence_items):
    errors.append("sequence items must be at least 3 characters")
  dupes = _duplicates(question.sequence_items)
  if dupes:
    errors.append(f"sequence items must be unique (duplicates: {dupes})")
  if _text_len(question.explanation) < 30:
    errors.append("explanation must be at least 30 characters")
  _raise_if_errors(question, errors)


def validate_hotspot(question: HotspotQuestion) -> None:
  errors: list[str] = []
  if not question.target_objects:
    errors.append("target_objects must not be empty")
  if len(question.bounding_boxes) < HOTSPOT_MIN_BOXES:
    errors.append(f"expected at least {HOTSPOT_MIN_BOXES} bounding boxes, got {len(question.bounding_boxes)}")
  correct = sum(1 for box in question.bounding_boxes if box.is_correct_answer)
  if correct != 1:
    errors.append(f"exactly one bounding box must be correct, got {correct}")
  for box in question.bounding_boxes:
    if not all(0.0 <= value <= 1.0 for value in (box.x, box.y, box.width, box.height)):
      errors.append(f"box '{box.label}' has coordinates outside [0, 1]")
  _raise_if_errors(question, errors)


_VALIDATORS: dict[str, Callable[..., None]] = {
  "multiple_choice": validate_multiple_choice,
  "true_false": validate_true_false,
  "matching": validate_matching,
  "sequencing": validate_sequencing,
  "hotspot": validate_hotspot,
}


def validate_question(question: GeneratedQuestion) -> GeneratedQuestion:
  """Run the validator for the question's type and return it unchanged."""
  _VALIDATORS[question.type](question)
  return question


def sequencing_warnings(question: SequencingQuestion) -> list[str]:
  """Soft checks that flag weak sequencing questions without failing them."""
  warnings: list[str] = []
  explanation = question.explanation.lower()
  if not any(word in explanation for word in _ORDERING_WORDS):
    warnings.append("explanation does not describe why the order matters")
  leaked = [item for item in question.sequence_items if _SCAFFOLD_RE.match(item)]
  if leaked:
    warnings.append(f"items describe position instead of content: {leaked}")
  return warnings


def true_false_warnings(question: TrueFalseQuestion) -> list[str]:
  warnings: list[str] = []
  if "?" in question.question:
    warnings.append("statement is phrased as a question")
  if _ABSOLUTE_RE.search(question.question):
    warnings.append("statement uses absolute terms")
  return warnings


def matching_warnings(question: MatchingQuestion) -> list[str]:
  explanation = question.explanation.lower()
  if any(word in explanation for word in _RELATIONSHIP_WORDS):
    return []
  return ["explanation does not describe the relationships between pairs"]
