from __future__ import annotations

from typing import Any

import pytest
from conftest import FakeGateway, make_plan, status_response

from quizforge.ai.agents.planner import RESPONSE_SCHEMA, PlannerAgent, educational_score, enforce_spacing, ensure_unique_ids, truncate_by_value
from quizforge.ai.errors import GatewayError, PlanningError

TRANSCRIPT = {
  "full_transcript": [
    {"timestamp": "0:00", "end_timestamp": "1:00", "text": "Plants capture sunlight.", "visual_description": "A leaf", "is_salient_event": False},
    {"timestamp": "1:00", "end_timestamp": "3:00", "text": "Glucose stores energy.", "visual_description": "A molecule", "is_salient_event": True, "event_type": "diagram"},
  ],
  "key_concepts_timeline": [{"concept": "glucose", "first_mentioned": "1:05"}],
  "video_summary": "Photosynthesis basics",
}


def raw_plan(**overrides: Any) -> dict[str, Any]:
  data: dict[str, Any] = {
    "question_id": "p1",
    "timestamp": "0:12",
    "question_type": "true_false",
    "learning_objective": "Students will recognize where plants store energy",
    "content_context": "Narrator explains photosynthesis",
    "key_concepts": ["photosynthesis"],
    "bloom_level": "understand",
    "educational_rationale": "Addresses a common misconception",
    "planning_notes": "Keep the statement concrete",
    "difficulty_level": "beginner",
    "estimated_time_seconds": 30,
  }
  data.update(overrides)
  return data


def planner_payload(*plans: dict[str, Any], transcript: dict[str, Any] | None = TRANSCRIPT) -> dict[str, Any]:
  payload: dict[str, Any] = {"question_plans": list(plans)}
  if transcript is not None:
    payload["video_transcript"] = transcript
  return payload


@pytest.mark.anyio
async def test_planner_sends_video_and_schema(run_ctx) -> None:
  gateway = FakeGateway(planner_payload(raw_plan()))
  ctx = run_ctx(target_count=3)
  result = await PlannerAgent(gateway=gateway).run(ctx, ctx)

  request, call_ctx = gateway.calls[0]
  assert request.media is not None
  assert request.media.uri == "gs://videos/lecture.mp4"
  assert request.media.start_seconds is None
  assert request.response_schema is RESPONSE_SCHEMA
  assert "3" in request.prompt
  assert call_ctx.run_id == "run_test"
  assert call_ctx.agent == "Planner"

  assert len(result.plans) == 1
  plan = result.plans[0]
  assert plan.id == "p1"
  assert plan.type == "true_false"
  assert plan.timestamp == 12.0
  assert result.transcript is not None
  assert result.transcript.video_summary == "Photosynthesis basics"
  assert result.transcript.key_concepts_timeline[0].first_mentioned == 65.0


@pytest.mark.anyio
async def test_planner_spaces_plans_forward_without_dropping(run_ctx) -> None:
  gateway = FakeGateway(
    planner_payload(
      raw_plan(question_id="c", timestamp="1:30"),
      raw_plan(question_id="a", timestamp="0:10"),
      raw_plan(question_id="b", timestamp="0:20"),
    )
  )
  ctx = run_ctx(target_count=5)
  result = await PlannerAgent(gateway=gateway).run(ctx, ctx)

  assert [plan.id for plan in result.plans] == ["a", "b", "c"]
  assert [plan.timestamp for plan in result.plans] == [10.0, 40.0, 90.0]
  assert result.metadata.shifted_plans == 1
  for previous, current in zip(result.plans, result.plans[1:]):
    assert current.timestamp - previous.timestamp >= 30


@pytest.mark.anyio
async def test_planner_cascades_spacing_for_clustered_plans(run_ctx) -> None:
  gateway = FakeGateway(planner_payload(*(raw_plan(question_id=f"p{index}", timestamp="0:05") for index in range(3))))
  ctx = run_ctx(target_count=5)
  result = await PlannerAgent(gateway=gateway).run(ctx, ctx)

  assert [plan.timestamp for plan in result.plans] == [5.0, 35.0, 65.0]
  assert result.metadata.shifted_plans == 2


@pytest.mark.anyio
async def test_planner_keeps_top_scoring_plans_when_over_generating(run_ctx) -> None:
  weak = raw_plan(
    question_id="weak",
    timestamp="0:10",
    question_type="multiple_choice",
    bloom_level="remember",
    educational_rationale="Short",
    learning_objective="Recall facts",
  )
  strong = raw_plan(
    question_id="strong",
    timestamp="1:00",
    bloom_level="analyze",
    educational_rationale="Learners often confuse where energy is stored versus where it is released in cells",
    learning_objective="Students will analyze how light intensity changes the rate of photosynthesis",
  )
  middle = raw_plan(
    question_id="middle",
    timestamp="2:00",
    question_type="multiple_choice",
    bloom_level="apply",
    educational_rationale="Learners often confuse where energy is stored versus where it is released in cells",
    learning_objective="Students will apply the light equation to a new greenhouse example",
  )
  gateway = FakeGateway(planner_payload(weak, strong, middle))
  ctx = run_ctx(target_count=2)
  result = await PlannerAgent(gateway=gateway).run(ctx, ctx)

  assert [plan.id for plan in result.plans] == ["strong", "middle"]
  assert result.metadata.truncated_plans == 1
  assert result.metadata.total_plans == 2


@pytest.mark.anyio
async def test_planner_rejects_structurally_invalid_plans(run_ctx) -> None:
  plans = [
    raw_plan(question_id="ok", timestamp="0:10"),
    raw_plan(question_id="bad_bloom", timestamp="0:50", bloom_level="memorize"),
    raw_plan(question_id="bad_type", timestamp="1:30", question_type="essay"),
    raw_plan(question_id="no_objective", timestamp="2:00", learning_objective=""),
    raw_plan(question_id="hotspot_no_targets", timestamp="2:30", question_type="hotspot", visual_learning_objective="Find it", question_context="A frame"),
    raw_plan(question_id="too_late", timestamp="9:00"),
    "not a plan",
  ]
  gateway = FakeGateway(planner_payload(*plans))
  ctx = run_ctx(target_count=10)
  result = await PlannerAgent(gateway=gateway).run(ctx, ctx)

  assert [plan.id for plan in result.plans] == ["ok"]
  assert result.metadata.rejected_plans == 6


@pytest.mark.anyio
async def test_planner_drops_plans_with_non_scalar_timestamps(run_ctx) -> None:
  plans = [
    raw_plan(question_id="good", timestamp="0:40"),
    raw_plan(question_id="list_ts", timestamp=[1, 2]),
    raw_plan(question_id="dict_ts", timestamp={"minutes": 1}),
    raw_plan(question_id="bad_frame", timestamp="1:10", frame_timestamp=[72]),
  ]
  gateway = FakeGateway(planner_payload(*plans))
  ctx = run_ctx(target_count=10)
  result = await PlannerAgent(gateway=gateway).run(ctx, ctx)

  assert [plan.id for plan in result.plans] == ["good"]
  assert result.metadata.rejected_plans == 3


@pytest.mark.anyio
async def test_planner_rejects_blank_targets_and_concepts(run_ctx) -> None:
  hotspot = {
    "question_type": "hotspot",
    "visual_learning_objective": "Locate the chloroplast",
    "question_context": "A labeled plant cell is on screen",
  }
  plans = [
    raw_plan(question_id="h_ok", timestamp="0:20", target_objects=["chloroplast"], **hotspot),
    raw_plan(question_id="h_blank", timestamp="1:00", target_objects=["  "], **hotspot),
    raw_plan(question_id="blank_concept", timestamp="1:40", key_concepts=["photosynthesis", ""]),
  ]
  gateway = FakeGateway(planner_payload(*plans))
  ctx = run_ctx(target_count=10)
  result = await PlannerAgent(gateway=gateway).run(ctx, ctx)

  assert [plan.id for plan in result.plans] == ["h_ok"]
  assert result.metadata.rejected_plans == 2


@pytest.mark.anyio
async def test_planner_accepts_complete_hotspot_plan(run_ctx) -> None:
  plan = raw_plan(
    question_id="h1",
    timestamp="1:10",
    frame_timestamp="1:12",
    question_type="hotspot",
    target_objects=["chloroplast"],
    visual_learning_objective="Locate the chloroplast",
    question_context="A labeled plant cell is on screen",
  )
  gateway = FakeGateway(planner_payload(plan))
  ctx = run_ctx()
  result = await PlannerAgent(gateway=gateway).run(ctx, ctx)

  assert result.plans[0].frame_timestamp == 72.0
  assert result.metadata.type_distribution == {"hotspot": 1}


@pytest.mark.anyio
async def test_planner_assigns_ids_for_missing_and_colliding(run_ctx) -> None:
  gateway = FakeGateway(
    planner_payload(
      raw_plan(question_id="dup", timestamp="0:10"),
      raw_plan(question_id="dup", timestamp="0:50"),
      raw_plan(question_id="", timestamp="1:30", question_type="multiple_choice"),
    )
  )
  ctx = run_ctx()
  result = await PlannerAgent(gateway=gateway).run(ctx, ctx)

  ids = [plan.id for plan in result.plans]
  assert ids == ["dup", "2_true_false_50", "3_multiple_choice_90"]
  assert len(set(ids)) == len(ids)


@pytest.mark.anyio
async def test_planner_without_transcript_skips_duration_check(run_ctx) -> None:
  gateway = FakeGateway(planner_payload(raw_plan(timestamp="25:00"), transcript=None))
  ctx = run_ctx()
  result = await PlannerAgent(gateway=gateway).run(ctx, ctx)

  assert result.transcript is None
  assert result.plans[0].timestamp == 1500.0


@pytest.mark.anyio
async def test_planner_http_error_is_fatal(run_ctx) -> None:
  gateway = FakeGateway(status_response(503))
  ctx = run_ctx()
  with pytest.raises(PlanningError, match="503"):
    await PlannerAgent(gateway=gateway).run(ctx, ctx)
  assert len(gateway.calls) == 1


@pytest.mark.anyio
async def test_planner_transport_error_is_fatal(run_ctx) -> None:
  gateway = FakeGateway(GatewayError("connection reset"))
  ctx = run_ctx()
  with pytest.raises(PlanningError, match="connection reset"):
    await PlannerAgent(gateway=gateway).run(ctx, ctx)


@pytest.mark.anyio
async def test_planner_malformed_json_is_fatal(run_ctx) -> None:
  gateway = FakeGateway("I could not analyze this video")
  ctx = run_ctx()
  with pytest.raises(PlanningError, match="malformed JSON"):
    await PlannerAgent(gateway=gateway).run(ctx, ctx)


@pytest.mark.anyio
async def test_planner_requires_plan_array(run_ctx) -> None:
  gateway = FakeGateway({"video_transcript": TRANSCRIPT})
  ctx = run_ctx()
  with pytest.raises(PlanningError, match="question_plans"):
    await PlannerAgent(gateway=gateway).run(ctx, ctx)


def test_educational_score_components() -> None:
  plan = make_plan(
    type="multiple_choice",
    bloom_level="remember",
    educational_rationale="Short",
    learning_objective="Recall facts",
  )
  assert educational_score(plan) == 2 + 1 + 1 + 1

  richer = make_plan(
    type="matching",
    bloom_level="create",
    educational_rationale="x" * 51,
    learning_objective="Students will design a new experiment from scratch",
  )
  assert educational_score(richer) == 12 + 3 + 3 + 2


def test_truncate_by_value_is_stable_on_ties() -> None:
  plans = [make_plan(id=f"p{index}", timestamp=index * 40) for index in range(4)]
  assert [plan.id for plan in truncate_by_value(plans, 2)] == ["p0", "p1"]
  assert truncate_by_value(plans, 10) == plans


def test_spacing_and_ids_helpers() -> None:
  plans = [make_plan(id="", timestamp=0), make_plan(id="", timestamp=0)]
  spaced, shifted = enforce_spacing(plans, 30)
  assert shifted == 1
  assert [plan.id for plan in ensure_unique_ids(spaced)] == ["1_true_false_0", "2_true_false_30"]
