"""Transcript normalization and context windows for Stage 2 prompts."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from quizforge.ai.pipeline.contracts import KeyConceptMention, TranscriptSegment, VideoTranscript
from quizforge.utils.timestamps import format_seconds, to_seconds

logger = logging.getLogger(__name__)

# Assumed length of a trailing segment that reports no end.
_DEFAULT_SEGMENT_SECONDS = 5.0
NO_CONTEXT_TEXT = "No transcript context available for this timestamp."


@dataclass(frozen=True)
class TranscriptContext:
  """Slice of the transcript around one question timestamp."""

  segments: list[TranscriptSegment] = field(default_factory=list)
  nearby_concepts: list[str] = field(default_factory=list)
  visual_context: str | None = None
  is_salient_moment: bool = False
  event_type: str | None = None


def normalize_transcript(raw: dict[str, Any] | None) -> VideoTranscript | None:
  """
  Build a ``VideoTranscript`` from the planner's raw payload.

  Timestamps are normalized to seconds, segments are sorted, and a segment
  without ``end_timestamp`` inherits the next segment's start. Malformed
  segments and concepts are skipped with a warning rather than failing the run.
  """
  if not isinstance(raw, dict):
    return None

  segments: list[TranscriptSegment] = []
  for item in raw.get("full_transcript") or []:
    if not isinstance(item, dict):
      continue
    try:
      data = dict(item)
      data["timestamp"] = to_seconds(item["timestamp"])
      if item.get("end_timestamp") not in (None, ""):
        data["end_timestamp"] = to_seconds(item["end_timestamp"])
      else:
        data["end_timestamp"] = None
      segments.append(TranscriptSegment.model_validate(data))
    except (KeyError, ValueError, ValidationError) as exc:
      logger.warning("Skipping malformed transcript segment %r: %s", item, exc)

  segments.sort(key=lambda segment: segment.timestamp)
  filled: list[TranscriptSegment] = []
  for index, segment in enumerate(segments):
    if segment.end_timestamp is None and index + 1 < len(segments):
      segment = segment.model_copy(update={"end_timestamp": segments[index + 1].timestamp})
    filled.append(segment)

  concepts: list[KeyConceptMention] = []
  for item in raw.get("key_concepts_timeline") or []:
    if not isinstance(item, dict):
      continue
    try:
      concepts.append(
        KeyConceptMention(
          concept=str(item["concept"]),
          first_mentioned=to_seconds(item["first_mentioned"]),
          explanation_timestamps=[to_seconds(value) for value in item.get("explanation_timestamps") or []],
        )
      )
    except (KeyError, TypeError, ValueError, ValidationError) as exc:
      logger.warning("Skipping malformed key concept %r: %s", item, exc)

  return VideoTranscript(full_transcript=filled, key_concepts_timeline=concepts, video_summary=str(raw.get("video_summary") or ""))


def _segment_end(segment: TranscriptSegment) -> float:
  if segment.end_timestamp is not None:
    return segment.end_timestamp
  return segment.timestamp + _DEFAULT_SEGMENT_SECONDS


def _overlaps(segment: TranscriptSegment, start: float, end: float) -> bool:
  return segment.timestamp <= end and _segment_end(segment) >= start


def _segment_at(transcript: VideoTranscript, timestamp: float) -> TranscriptSegment | None:
  for segment in transcript.full_transcript:
    if segment.timestamp <= timestamp < _segment_end(segment):
      return segment
  return None


def extract_context(transcript: VideoTranscript | None, timestamp: float, window_seconds: float = 30.0) -> TranscriptContext:
  """Collect segments and concepts within ``window_seconds`` of ``timestamp``."""
  if transcript is None:
    return TranscriptContext()

  start = max(0.0, timestamp - window_seconds)
  end = timestamp + window_seconds
  segments = [segment for segment in transcript.full_transcript if _overlaps(segment, start, end)]

  nearby: list[str] = []
  for concept in transcript.key_concepts_timeline:
    moments = [concept.first_mentioned, *concept.explanation_timestamps]
    if any(start <= moment <= end for moment in moments) and concept.concept not in nearby:
      nearby.append(concept.concept)

  current = _segment_at(transcript, timestamp)
  return TranscriptContext(
    segments=segments,
    nearby_concepts=nearby,
    visual_context=(current.visual_description or None) if current else None,
    is_salient_moment=bool(current and current.is_salient_event),
    event_type=current.event_type if current else None,
  )


def format_context(context: TranscriptContext) -> str:
  """Render a context window as prompt text."""
  if not context.segments:
    return NO_CONTEXT_TEXT

  blocks: list[str] = []
  for segment in context.segments:
    label = f"[{format_seconds(segment.timestamp)}"
    if segment.end_timestamp is not None:
      label += f" - {format_seconds(segment.end_timestamp)}"
    label += "]"
    lines = [label, f"Text: {segment.text}"]
    if segment.visual_description:
      lines.append(f"Visual: {segment.visual_description}")
    if segment.is_salient_event:
      lines.append(f"[SALIENT EVENT: {segment.event_type or 'Key moment'}]")
    blocks.append("\n".join(lines))

  if context.nearby_concepts:
    blocks.append("Concepts discussed nearby: " + ", ".join(context.nearby_concepts))
  return "\n\n".join(blocks)
