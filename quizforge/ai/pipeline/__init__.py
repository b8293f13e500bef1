"""Pipeline contracts shared by the planner, processors and orchestrator."""

from quizforge.ai.pipeline.contracts import GeneratedQuestion, GenerationFailure, PipelineResult, PlanningResult, QualityReport, QuestionPlan, RunContext, VideoTranscript

__all__ = ["GeneratedQuestion", "GenerationFailure", "PipelineResult", "PlanningResult", "QualityReport", "QuestionPlan", "RunContext", "VideoTranscript"]
