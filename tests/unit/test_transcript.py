from __future__ import annotations

from conftest import make_transcript

from quizforge.ai.pipeline.contracts import KeyConceptMention
from quizforge.ai.transcript import NO_CONTEXT_TEXT, extract_context, format_context, normalize_transcript


def test_normalize_sorts_and_inherits_end_timestamps() -> None:
  transcript = normalize_transcript(
    {
      "full_transcript": [
        {"timestamp": "1:00", "text": "Second", "visual_description": "", "is_salient_event": False},
        {"timestamp": "0:10", "text": "First", "visual_description": "Title card", "is_salient_event": True},
        {"timestamp": "2:00", "end_timestamp": "2:30", "text": "Third"},
      ],
      "key_concepts_timeline": [{"concept": "glucose", "first_mentioned": "1:05", "explanation_timestamps": ["1:10"]}],
      "video_summary": "Plants",
    }
  )

  assert transcript is not None
  assert [segment.text for segment in transcript.full_transcript] == ["First", "Second", "Third"]
  assert [segment.end_timestamp for segment in transcript.full_transcript] == [60.0, 120.0, 150.0]
  assert transcript.key_concepts_timeline[0].explanation_timestamps == [70.0]
  assert transcript.duration == 150.0


def test_normalize_skips_malformed_entries(caplog) -> None:
  with caplog.at_level("WARNING"):
    transcript = normalize_transcript(
      {
        "full_transcript": [
          {"text": "no timestamp"},
          "not a dict",
          {"timestamp": "later", "text": "bad"},
          {"timestamp": None, "text": "null"},
          {"timestamp": [0, 5], "text": "list"},
          {"timestamp": 5, "text": "ok"},
        ],
        "key_concepts_timeline": [
          {"first_mentioned": "0:05"},
          {"concept": "null", "first_mentioned": None},
          {"concept": "scalar", "first_mentioned": "0:05", "explanation_timestamps": 7},
        ],
      }
    )

  assert transcript is not None
  assert [segment.text for segment in transcript.full_transcript] == ["ok"]
  assert transcript.key_concepts_timeline == []
  assert "Skipping malformed transcript segment" in caplog.text
  assert "Skipping malformed key concept" in caplog.text


def test_normalize_without_payload() -> None:
  assert normalize_transcript(None) is None
  assert normalize_transcript({}).full_transcript == []


def test_extract_context_window() -> None:
  transcript = make_transcript().model_copy(update={"key_concepts_timeline": [KeyConceptMention(concept="chlorophyll", first_mentioned=25), KeyConceptMention(concept="starch", first_mentioned=170)]})

  context = extract_context(transcript, 30, window_seconds=30)

  assert [segment.text for segment in context.segments] == ["Plants capture sunlight.", "Chlorophyll absorbs light energy.", "Glucose stores the energy."]
  assert context.nearby_concepts == ["chlorophyll"]
  assert context.visual_context == "Chloroplast diagram"
  assert context.is_salient_moment is True
  assert context.event_type == "diagram"


def test_format_context() -> None:
  text = format_context(extract_context(make_transcript(), 30, window_seconds=5))
  assert text.startswith("[0:20 - 1:00]")
  assert "Text: Chlorophyll absorbs light energy." in text
  assert "[SALIENT EVENT: diagram]" in text

  assert format_context(extract_context(None, 30)) == NO_CONTEXT_TEXT
