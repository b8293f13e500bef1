"""Strict and fallback JSON decoding for model outputs."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_CLOSERS = {"{": "}", "[": "]"}


@dataclass(frozen=True)
class DecodedPayload:
  """A decoded model payload and whether the fallback path produced it."""

  value: Any
  fallback: bool = False


def strip_json_fences(raw: str) -> str:
  """Remove markdown code fences that models wrap around JSON."""
  return _FENCE_RE.sub("", raw.strip()).strip()


def decode_model_json(raw: str, *, opener: str = "{") -> DecodedPayload:
  """
  Decode a model response strictly, then through the named fallback path.

  The fallback extracts the first balanced span opened by a character in
  ``opener`` (``"{"`` for objects, ``"{["`` to also accept bare arrays) and
  drops trailing commas. Results recovered that way are flagged so callers can
  treat them as lower confidence. When no span parses, the strict error is
  raised.
  """
  cleaned = strip_json_fences(raw)
  try:
    return DecodedPayload(json.loads(cleaned))
  except json.JSONDecodeError as exc:
    strict_error = exc

  span = extract_json_span(raw, opener=opener)
  if span is None:
    raise strict_error
  return DecodedPayload(parse_json_with_fallback(span), fallback=True)


def parse_json_with_fallback(raw: str) -> Any:
  """Parse near-JSON: surrounding prose and trailing commas are tolerated."""
  try:
    return json.loads(raw)
  except json.JSONDecodeError as exc:
    first_error = exc

  span = extract_json_span(raw, opener="{[")
  if span is None:
    raise first_error
  try:
    return json.loads(span)
  except json.JSONDecodeError:
    return json.loads(_TRAILING_COMMA_RE.sub(r"\1", span))


def extract_json_span(raw: str, *, opener: str = "{") -> str | None:
  """
  Return the first balanced span starting with any character in ``opener``.

  Brackets inside string literals are ignored. Returns None when no opener is
  present or the span never closes.
  """
  positions = [raw.find(char) for char in opener if char in _CLOSERS]
  positions = [position for position in positions if position >= 0]
  if not positions:
    return None

  start = min(positions)
  expected: list[str] = []
  in_string = False
  escaped = False
  for index in range(start, len(raw)):
    char = raw[index]
    if in_string:
      if escaped:
        escaped = False
      elif char == "\\":
        escaped = True
      elif char == '"':
        in_string = False
    elif char == '"':
      in_string = True
    elif char in _CLOSERS:
      expected.append(_CLOSERS[char])
    elif expected and char == expected[-1]:
      expected.pop()
      if not expected:
        return raw[start : index + 1]
  return None
