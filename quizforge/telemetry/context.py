"""Call context objects for correlating model calls with a pipeline run."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace


def new_request_id() -> str:
  """Return a short unique id for one gateway request."""
  return f"req_{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class LlmCallContext:
  """
  Metadata for a single gateway call.

  The context travels with the request into the gateway and comes back on the
  response, so concurrent tasks never share tracing state.
  """

  agent: str
  run_id: str | None
  purpose: str | None
  call_index: str | None
  question_id: str | None = None
  attempt: int = 1
  request_id: str = field(default_factory=new_request_id)

  def for_attempt(self, attempt: int, max_attempts: int | None = None) -> LlmCallContext:
    """Return a copy stamped for a retry attempt with a fresh request id."""
    call_index = f"{attempt}/{max_attempts}" if max_attempts else f"{attempt}"
    return replace(self, attempt=attempt, call_index=call_index, request_id=new_request_id())

  def describe(self) -> str:
    """Render a compact label for log lines."""
    parts = [self.agent]
    if self.question_id:
      parts.append(self.question_id)
    if self.purpose:
      parts.append(self.purpose)
    parts.append(f"attempt={self.attempt}")
    return " ".join(parts)
