from __future__ import annotations

import os

import pytest

from quizforge.config import get_settings
from quizforge.utils.env import load_env_file, parse_env_line


@pytest.fixture(autouse=True)
def fresh_settings():
  get_settings.cache_clear()
  yield
  get_settings.cache_clear()


def test_defaults(monkeypatch) -> None:
  for name in ("QUIZFORGE_TEXT_PROVIDER", "QUIZFORGE_HOTSPOT_MAX_ATTEMPTS", "QUIZFORGE_LOG_DIR", "QUIZFORGE_TEXT_MODEL", "QUIZFORGE_DEBUG"):
    monkeypatch.delenv(name, raising=False)

  settings = get_settings()

  assert settings.text_provider == "gemini"
  assert settings.hotspot_max_attempts == 3
  assert settings.hotspot_base_delay_ms == 1000
  assert settings.min_question_spacing_seconds == 30.0
  assert settings.log_dir is None
  assert settings.text_model is None
  assert settings.debug is False


def test_environment_overrides(monkeypatch) -> None:
  monkeypatch.setenv("QUIZFORGE_TEXT_PROVIDER", " OpenAI ")
  monkeypatch.setenv("QUIZFORGE_TEXT_MODEL", "gpt-4o")
  monkeypatch.setenv("QUIZFORGE_DEBUG", "yes")
  monkeypatch.setenv("QUIZFORGE_HOTSPOT_JITTER_MIN_MS", "0")
  monkeypatch.setenv("QUIZFORGE_HOTSPOT_JITTER_MAX_MS", "0")

  settings = get_settings()

  assert settings.text_provider == "openai"
  assert settings.text_model == "gpt-4o"
  assert settings.debug is True
  assert settings.hotspot_jitter_max_ms == 0
  assert get_settings() is settings


@pytest.mark.parametrize(
  ("name", "value", "message"),
  [
    ("QUIZFORGE_TEXT_PROVIDER", "anthropic", "QUIZFORGE_TEXT_PROVIDER"),
    ("QUIZFORGE_HOTSPOT_MAX_ATTEMPTS", "0", "QUIZFORGE_HOTSPOT_MAX_ATTEMPTS"),
    ("QUIZFORGE_REQUEST_TIMEOUT_SECONDS", "-1", "QUIZFORGE_REQUEST_TIMEOUT_SECONDS"),
    ("QUIZFORGE_HOTSPOT_JITTER_MIN_MS", "2000", "QUIZFORGE_HOTSPOT_JITTER_MAX_MS"),
  ],
)
def test_invalid_values(monkeypatch, name, value, message) -> None:
  monkeypatch.delenv("QUIZFORGE_HOTSPOT_JITTER_MAX_MS", raising=False)
  monkeypatch.setenv(name, value)
  with pytest.raises(ValueError, match=message):
    get_settings()


def test_load_env_file(tmp_path, monkeypatch) -> None:
  env_file = tmp_path / ".env"
  env_file.write_text('# comment\nexport QUIZFORGE_A="quoted"\nQUIZFORGE_B=plain\nbroken line\nQUIZFORGE_C=kept\n', encoding="utf-8")
  monkeypatch.delenv("QUIZFORGE_A", raising=False)
  monkeypatch.delenv("QUIZFORGE_B", raising=False)
  monkeypatch.setenv("QUIZFORGE_C", "existing")

  applied = load_env_file(env_file)

  assert os.environ["QUIZFORGE_A"] == "quoted"
  assert os.environ["QUIZFORGE_B"] == "plain"
  assert os.environ["QUIZFORGE_C"] == "existing"
  assert applied == ["QUIZFORGE_A", "QUIZFORGE_B"]
  monkeypatch.delenv("QUIZFORGE_A")
  monkeypatch.delenv("QUIZFORGE_B")


def test_parse_env_line() -> None:
  assert parse_env_line("KEY = 'value' ") == ("KEY", "value")
  assert parse_env_line('export KEY="a=b"') == ("KEY", "a=b")
  assert parse_env_line("=value") is None
  assert parse_env_line("   # note") is None
