"""Agent implementations."""

from quizforge.ai.agents.base import BaseAgent, QuestionProcessor, TextQuestionProcessor
from quizforge.ai.agents.hotspot import HotspotProcessor
from quizforge.ai.agents.matching import MatchingProcessor
from quizforge.ai.agents.multiple_choice import MultipleChoiceProcessor
from quizforge.ai.agents.planner import PlannerAgent
from quizforge.ai.agents.sequencing import SequencingProcessor
from quizforge.ai.agents.true_false import TrueFalseProcessor

__all__ = [
  "BaseAgent",
  "HotspotProcessor",
  "MatchingProcessor",
  "MultipleChoiceProcessor",
  "PlannerAgent",
  "QuestionProcessor",
  "SequencingProcessor",
  "TextQuestionProcessor",
  "TrueFalseProcessor",
]
