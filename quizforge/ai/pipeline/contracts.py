"""Shared data contracts for the quiz generation pipeline."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, TypeAdapter, field_validator

BloomLevel = Literal["remember", "understand", "apply", "analyze", "evaluate", "create"]
QuestionType = Literal["multiple_choice", "true_false", "matching", "sequencing", "hotspot"]
DifficultyLevel = Literal["beginner", "intermediate", "advanced"]

# Ordered lowest to highest cognitive demand.
BLOOM_LEVELS: tuple[str, ...] = ("remember", "understand", "apply", "analyze", "evaluate", "create")
QUESTION_TYPES: tuple[str, ...] = ("multiple_choice", "true_false", "matching", "sequencing", "hotspot")
DIFFICULTY_LEVELS: tuple[str, ...] = ("beginner", "intermediate", "advanced")

# Extra fields a plan must carry before its type processor may run.
TYPE_REQUIRED_FIELDS: dict[str, tuple[str, ...]] = {"hotspot": ("target_objects", "visual_learning_objective", "question_context")}


class QuestionPlan(BaseModel):
  """A Stage 1 intent describing what one question should test."""

  model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

  id: str = ""
  timestamp: float = Field(ge=0)
  type: QuestionType
  learning_objective: str = Field(min_length=1)
  content_context: str = Field(min_length=1)
  educational_rationale: str = Field(min_length=1)
  planning_notes: str = Field(min_length=1)
  key_concepts: list[str] = Field(min_length=1)
  bloom_level: BloomLevel
  difficulty_level: DifficultyLevel
  estimated_time_seconds: float = Field(gt=0)
  target_objects: list[str] | None = None
  frame_timestamp: float | None = Field(default=None, ge=0)
  visual_learning_objective: str | None = None
  question_context: str | None = None

  @field_validator("key_concepts", "target_objects")
  @classmethod
  def reject_blank_entries(cls, value: list[str] | None) -> list[str] | None:
    if value and any(not item for item in value):
      raise ValueError("entries must not be blank")
    return value

  def missing_type_fields(self) -> list[str]:
    """Return the type-specific fields this plan still lacks."""
    missing: list[str] = []
    for name in TYPE_REQUIRED_FIELDS.get(self.type, ()):
      value = getattr(self, name)
      if value is None or (isinstance(value, str | list) and len(value) == 0):
        missing.append(name)
    if self.type == "hotspot" and self.target_objects and len(self.target_objects) > 2:
      missing.append("target_objects (at most 2)")
    return missing

  @property
  def effective_frame_timestamp(self) -> float:
    return self.frame_timestamp if self.frame_timestamp is not None else self.timestamp


class TranscriptSegment(BaseModel):
  """A timestamped slice of narration and on-screen activity."""

  timestamp: float = Field(ge=0)
  end_timestamp: float | None = Field(default=None, ge=0)
  text: str = ""
  visual_description: str = ""
  is_salient_event: bool = False
  event_type: str | None = None


class KeyConceptMention(BaseModel):
  """Where a key concept first appears and is later explained."""

  concept: str
  first_mentioned: float = Field(ge=0)
  explanation_timestamps: list[float] = Field(default_factory=list)


class VideoTranscript(BaseModel):
  """Transcript returned alongside the plans by the planning call."""

  full_transcript: list[TranscriptSegment] = Field(default_factory=list)
  key_concepts_timeline: list[KeyConceptMention] = Field(default_factory=list)
  video_summary: str = ""

  @property
  def duration(self) -> float:
    """Last covered second, or 0 when there are no segments."""
    ends = [segment.end_timestamp if segment.end_timestamp is not None else segment.timestamp for segment in self.full_transcript]
    return max(ends, default=0.0)


class PlanningMetadata(BaseModel):
  """Counters and distributions describing one planning pass."""

  total_plans: int = 0
  rejected_plans: int = 0
  truncated_plans: int = 0
  shifted_plans: int = 0
  bloom_distribution: dict[str, int] = Field(default_factory=dict)
  type_distribution: dict[str, int] = Field(default_factory=dict)
  difficulty_distribution: dict[str, int] = Field(default_factory=dict)


class PlanningResult(BaseModel):
  """Planner output: ordered, spaced plans plus the transcript they cite."""

  plans: list[QuestionPlan]
  transcript: VideoTranscript | None = None
  metadata: PlanningMetadata = Field(default_factory=PlanningMetadata)


class RunContext(BaseModel):
  """Context metadata for one pipeline run."""

  run_id: str
  created_at: datetime
  video_ref: str
  target_count: int = Field(ge=1)
  # Set once planning finishes; read-only for Stage 2.
  transcript: VideoTranscript | None = None


class MatchingPair(BaseModel):
  model_config = ConfigDict(frozen=True)

  left: str
  right: str


class BoundingBox(BaseModel):
  """A labeled region on a frame, normalized to [0, 1]."""

  model_config = ConfigDict(frozen=True)

  label: str
  x: float = Field(ge=0, le=1)
  y: float = Field(ge=0, le=1)
  width: float = Field(ge=0, le=1)
  height: float = Field(ge=0, le=1)
  confidence_score: float = Field(default=0.8, ge=0, le=1)
  is_correct_answer: bool = False


class DistractorGuidance(BaseModel):
  model_config = ConfigDict(frozen=True)

  expected_distractors: list[str] = Field(default_factory=list)
  why_distractors_matter: str = ""


class _QuestionBase(BaseModel):
  model_config = ConfigDict(frozen=True)

  question_id: str
  timestamp: float = Field(ge=0)
  question: str
  explanation: str
  bloom_level: BloomLevel
  educational_rationale: str
  # True when the payload came through the fallback decoding path.
  fallback_decoded: bool = False


class MultipleChoiceQuestion(_QuestionBase):
  type: Literal["multiple_choice"] = "multiple_choice"
  options: list[str]
  correct_answer: StrictInt
  misconception_analysis: dict[str, str] | None = None


class TrueFalseQuestion(_QuestionBase):
  type: Literal["true_false"] = "true_false"
  correct_answer: StrictBool
  concept_analysis: str | None = None
  misconception_addressed: str | None = None


class MatchingQuestion(_QuestionBase):
  type: Literal["matching"] = "matching"
  matching_pairs: list[MatchingPair]
  relationship_type: str | None = None
  relationship_analysis: str | None = None


class SequencingQuestion(_QuestionBase):
  type: Literal["sequencing"] = "sequencing"
  # Stored order is the canonical answer.
  sequence_items: list[str]
  sequence_type: str | None = None
  sequence_analysis: str | None = None


class HotspotQuestion(_QuestionBase):
  type: Literal["hotspot"] = "hotspot"
  target_objects: list[str]
  frame_timestamp: float = Field(ge=0)
  bounding_boxes: list[BoundingBox]
  distractor_guidance: DistractorGuidance
  question_context: str | None = None
  visual_learning_objective: str | None = None


GeneratedQuestion = Annotated[
  Union[MultipleChoiceQuestion, TrueFalseQuestion, MatchingQuestion, SequencingQuestion, HotspotQuestion],
  Field(discriminator="type"),
]
GENERATED_QUESTION_ADAPTER: TypeAdapter[GeneratedQuestion] = TypeAdapter(GeneratedQuestion)


class GenerationFailure(BaseModel):
  """A plan that did not yield a question."""

  model_config = ConfigDict(frozen=True)

  plan_id: str
  error: str
  question_type: str | None = None
  error_type: Literal["validation_error", "generation_error"] = "generation_error"


class QualityReport(BaseModel):
  """Advisory score for one generated question."""

  model_config = ConfigDict(frozen=True)

  score: int = Field(ge=0, le=100)
  strengths: list[str] = Field(default_factory=list)
  improvements: list[str] = Field(default_factory=list)


class GenerationMetadata(BaseModel):
  model_config = ConfigDict(frozen=True)

  requested_count: int
  planned_count: int
  successful_count: int
  failed_count: int
  generation_time_ms: int
  type_breakdown: dict[str, int] = Field(default_factory=dict)
  planning: PlanningMetadata | None = None


class PipelineResult(BaseModel):
  """Aggregate output of one pipeline run; immutable once returned."""

  model_config = ConfigDict(frozen=True)

  questions: tuple[GeneratedQuestion, ...] = ()
  failures: tuple[GenerationFailure, ...] = ()
  metadata: GenerationMetadata | None = None
  quality: dict[str, QualityReport] = Field(default_factory=dict)
  video_summary: str | None = None
  logs: tuple[str, ...] = ()
  usage: tuple[dict[str, Any], ...] = ()

  def questions_by_timestamp(self) -> list[GeneratedQuestion]:
    """Questions in presentation order (ascending timestamp)."""
    return sorted(self.questions, key=lambda question: question.timestamp)
