"""Error types and classification helpers for the generation pipeline."""

from __future__ import annotations

from collections.abc import Iterable

_RATE_LIMIT_HINTS: tuple[str, ...] = (
  "429",
  "too many requests",
  "resource exhausted",
  "resource_exhausted",
  "quota exceeded",
  "rate limit",
)

_OUTPUT_HINTS: tuple[str, ...] = (
  "invalid json",
  "failed to parse",
  "parse json",
  "schema",
  "validation",
)


class QuizForgeError(RuntimeError):
  """Base class for pipeline errors."""


class GatewayError(QuizForgeError):
  """Raised when a model call fails below the HTTP status level."""


class GatewayTimeoutError(GatewayError):
  """Raised when a model call exceeds its configured timeout."""


class PlanningError(QuizForgeError):
  """Raised when Stage 1 planning fails; aborts the whole run."""

  def __init__(self, message: str, *, logs: list[str] | None = None) -> None:
    """Store the failure message and a log snapshot for upstream handlers."""
    super().__init__(message)
    self.logs = list(logs or [])


class QuestionGenerationError(QuizForgeError):
  """Raised when a single question cannot be generated from its plan."""

  def __init__(self, message: str, *, plan_id: str, question_type: str | None = None, retryable: bool = False) -> None:
    super().__init__(message)
    self.plan_id = plan_id
    self.question_type = question_type
    self.retryable = retryable


class QuestionValidationError(QuestionGenerationError):
  """Raised when a generated payload violates its type's structural rules."""


def _match_hint(message: str, hints: Iterable[str]) -> bool:
  """Return True when any hint appears in the message."""
  for hint in hints:
    if hint in message:
      return True
  return False


def is_rate_limit_error(exc: Exception) -> bool:
  """Return True when an exception message indicates rate limiting or quota exhaustion."""
  message = str(exc).lower()
  return _match_hint(message, _RATE_LIMIT_HINTS)


def is_output_error(exc: Exception) -> bool:
  """Return True when an exception indicates invalid output formatting."""
  message = str(exc).lower()
  return _match_hint(message, _OUTPUT_HINTS)
