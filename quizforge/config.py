"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from quizforge.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)

_TEXT_PROVIDERS = {"gemini", "openai"}


@dataclass(frozen=True)
class Settings:
  """Typed settings for the quiz generation pipeline."""

  environment: str
  debug: bool
  log_dir: str | None
  log_max_bytes: int
  log_backup_count: int
  planner_model: str
  hotspot_model: str
  text_provider: str
  text_model: str | None
  request_timeout_seconds: float
  min_question_spacing_seconds: float
  hotspot_max_attempts: int
  hotspot_base_delay_ms: int
  hotspot_jitter_min_ms: int
  hotspot_jitter_max_ms: int
  transcript_window_seconds: float
  gemini_api_key: str | None
  openai_api_key: str | None


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


def _non_negative_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value < 0:
    raise ValueError(f"{name} must be zero or a positive integer.")
  return value


def _positive_float(name: str, default: str) -> float:
  value = float(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive number.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("QUIZFORGE_ENV", "development").lower()
  debug = _parse_bool(os.getenv("QUIZFORGE_DEBUG"))

  log_max_bytes = _positive_int("QUIZFORGE_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = _non_negative_int("QUIZFORGE_LOG_BACKUP_COUNT", "10")

  text_provider = (os.getenv("QUIZFORGE_TEXT_PROVIDER") or "gemini").strip().lower()
  if text_provider not in _TEXT_PROVIDERS:
    raise ValueError("QUIZFORGE_TEXT_PROVIDER must be 'gemini' or 'openai'.")

  hotspot_max_attempts = _positive_int("QUIZFORGE_HOTSPOT_MAX_ATTEMPTS", "3")
  hotspot_base_delay_ms = _non_negative_int("QUIZFORGE_HOTSPOT_BASE_DELAY_MS", "1000")

  # Jitter spreads concurrent hotspot calls so they do not hit the rate limiter together.
  hotspot_jitter_min_ms = _non_negative_int("QUIZFORGE_HOTSPOT_JITTER_MIN_MS", "500")
  hotspot_jitter_max_ms = _non_negative_int("QUIZFORGE_HOTSPOT_JITTER_MAX_MS", "1500")
  if hotspot_jitter_max_ms < hotspot_jitter_min_ms:
    raise ValueError("QUIZFORGE_HOTSPOT_JITTER_MAX_MS must be >= QUIZFORGE_HOTSPOT_JITTER_MIN_MS.")

  return Settings(
    environment=environment,
    debug=debug,
    log_dir=_optional_str(os.getenv("QUIZFORGE_LOG_DIR")),
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    planner_model=(os.getenv("QUIZFORGE_PLANNER_MODEL") or "gemini-2.5-flash").strip(),
    hotspot_model=(os.getenv("QUIZFORGE_HOTSPOT_MODEL") or "gemini-2.5-pro").strip(),
    text_provider=text_provider,
    text_model=_optional_str(os.getenv("QUIZFORGE_TEXT_MODEL")),
    request_timeout_seconds=_positive_float("QUIZFORGE_REQUEST_TIMEOUT_SECONDS", "120"),
    min_question_spacing_seconds=_positive_float("QUIZFORGE_MIN_QUESTION_SPACING_SECONDS", "30"),
    hotspot_max_attempts=hotspot_max_attempts,
    hotspot_base_delay_ms=hotspot_base_delay_ms,
    hotspot_jitter_min_ms=hotspot_jitter_min_ms,
    hotspot_jitter_max_ms=hotspot_jitter_max_ms,
    transcript_window_seconds=_positive_float("QUIZFORGE_TRANSCRIPT_WINDOW_SECONDS", "30"),
    gemini_api_key=_optional_str(os.getenv("GEMINI_API_KEY")),
    openai_api_key=_optional_str(os.getenv("OPENAI_API_KEY")),
  )
