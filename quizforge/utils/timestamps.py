"""Timestamp normalization for model-reported video positions."""

from __future__ import annotations

import logging
import math
from typing import Any

logger = logging.getLogger(__name__)


def to_seconds(value: Any) -> float:
  """
  Normalize a model-reported timestamp to seconds.

  Video models report positions in several shapes:
  - "MM:SS" or "H:MM:SS" strings.
  - Base-60 integers where the last two digits are seconds (130 -> 1:30 -> 90s).
  - Decimal minutes for small values (3.37 -> 3m 37s -> 217s).
  - Plain seconds for everything else (59, 75.5, 190).

  Anything else (None, lists, objects, NaN) raises ValueError.
  """
  if isinstance(value, bool) or not isinstance(value, str | int | float):
    raise ValueError(f"Invalid timestamp: {value!r}")

  if isinstance(value, str):
    text = value.strip()
    parts = text.split(":")
    try:
      if len(parts) == 2:
        return int(parts[0]) * 60 + float(parts[1])
      if len(parts) == 3:
        return int(parts[0]) * 3600 + int(parts[1]) * 60 + float(parts[2])
      value = float(text.rstrip("s"))
    except ValueError as exc:
      raise ValueError(f"Invalid timestamp: {value!r}") from exc

  number = float(value)
  if math.isnan(number) or math.isinf(number):
    raise ValueError(f"Invalid timestamp: {value!r}")

  if number >= 100:
    integer_part = math.floor(number)
    fractional_part = number - integer_part
    minutes, seconds = divmod(integer_part, 100)
    if seconds < 60:
      logger.debug("Converting base-60 timestamp %s -> %sm %ss", number, minutes, seconds)
      return minutes * 60 + seconds + fractional_part
    return number

  if 0 <= number < 10:
    integer_part = math.floor(number)
    fractional_part = number - integer_part
    if fractional_part > 0:
      possible_seconds = round(fractional_part * 100)
      if possible_seconds < 60:
        logger.debug("Converting decimal-minute timestamp %s -> %sm %ss", number, integer_part, possible_seconds)
        return float(integer_part * 60 + possible_seconds)

  return number


def format_seconds(seconds: float) -> str:
  """Format seconds as H:MM:SS or M:SS for prompts and logs."""
  total = int(max(0.0, seconds))
  hours, remainder = divmod(total, 3600)
  minutes, secs = divmod(remainder, 60)
  if hours > 0:
    return f"{hours}:{minutes:02d}:{secs:02d}"
  return f"{minutes}:{secs:02d}"


def format_offset(seconds: float) -> str:
  """Format a video offset as a duration string accepted by the model API."""
  return f"{max(0.0, seconds):.3f}".rstrip("0").rstrip(".") + "s"
