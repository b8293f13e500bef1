"""Prompt helpers shared by agents."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from quizforge.ai.pipeline.contracts import BLOOM_LEVELS, DIFFICULTY_LEVELS, QUESTION_TYPES, QuestionPlan
from quizforge.utils.timestamps import format_seconds

# Share of the quiz each type should take; guidance for the planner only.
TYPE_DISTRIBUTION: dict[str, float] = {
  "multiple_choice": 0.4,
  "true_false": 0.2,
  "hotspot": 0.2,
  "matching": 0.1,
  "sequencing": 0.1,
}


def _replace_placeholders(template: str, values: dict[str, str]) -> str:
  """Substitute {{PLACEHOLDER}} markers with concrete values."""
  rendered = template
  for key, value in values.items():
    rendered = rendered.replace(f"{{{{{key}}}}}", value)

  return rendered


def _format_distribution(target_count: int) -> str:
  lines = []
  for question_type, share in TYPE_DISTRIBUTION.items():
    approx = max(0, round(target_count * share))
    lines.append(f"- {question_type}: ~{int(share * 100)}% (about {approx})")
  return "\n".join(lines)


def render_planner_prompt(target_count: int, *, min_spacing_seconds: float) -> str:
  """Render the Stage 1 planning prompt."""
  prompt_template = _load_prompt("planner.md")
  replacements = {
    "TARGET_COUNT": str(target_count),
    "TYPE_DISTRIBUTION": _format_distribution(target_count),
    "BLOOM_LEVELS": ", ".join(BLOOM_LEVELS),
    "DIFFICULTY_LEVELS": ", ".join(DIFFICULTY_LEVELS),
    "QUESTION_TYPES": ", ".join(QUESTION_TYPES),
    "MIN_SPACING": f"{min_spacing_seconds:g}",
  }
  return _replace_placeholders(prompt_template, replacements)


def _plan_replacements(plan: QuestionPlan, transcript_context: str) -> dict[str, str]:
  return {
    "LEARNING_OBJECTIVE": plan.learning_objective,
    "CONTENT_CONTEXT": plan.content_context,
    "KEY_CONCEPTS": ", ".join(plan.key_concepts),
    "BLOOM_LEVEL": plan.bloom_level,
    "DIFFICULTY_LEVEL": plan.difficulty_level,
    "EDUCATIONAL_RATIONALE": plan.educational_rationale,
    "PLANNING_NOTES": plan.planning_notes,
    "TIMESTAMP": f"{format_seconds(plan.timestamp)} ({plan.timestamp:g}s)",
    "TRANSCRIPT_CONTEXT": transcript_context,
  }


def render_question_prompt(plan: QuestionPlan, transcript_context: str) -> str:
  """Render the Stage 2 prompt for a text question type."""
  prompt_template = _load_prompt(f"{plan.type}.md")
  return _replace_placeholders(prompt_template, _plan_replacements(plan, transcript_context))


def render_hotspot_prompt(plan: QuestionPlan, transcript_context: str) -> str:
  """Render the hotspot prompt; the plan must already carry its visual fields."""
  prompt_template = _load_prompt("hotspot.md")
  replacements = _plan_replacements(plan, transcript_context)
  replacements.update(
    {
      "VISUAL_LEARNING_OBJECTIVE": plan.visual_learning_objective or "",
      "QUESTION_CONTEXT": plan.question_context or "",
      "TARGET_OBJECTS": ", ".join(plan.target_objects or []),
    }
  )
  return _replace_placeholders(prompt_template, replacements)


@lru_cache(maxsize=32)
def _load_prompt(name: str) -> str:
  try:
    path = Path(__file__).parents[1] / "prompts" / name
    return path.read_text(encoding="utf-8").strip()
  except (FileNotFoundError, PermissionError, UnicodeDecodeError) as exc:
    raise RuntimeError(f"Failed to load prompt '{name}': {exc}") from exc
