"""Local .env support for development runs."""

from __future__ import annotations

import os
from pathlib import Path

_QUOTES = ("'", '"')


def default_env_path() -> Path:
  """The .env file at the project root, next to pyproject.toml."""
  return Path(__file__).resolve().parents[2] / ".env"


def parse_env_line(line: str) -> tuple[str, str] | None:
  """Parse one ``KEY=value`` line; comments, blanks and junk return None."""
  text = line.strip()
  if not text or text.startswith("#"):
    return None
  text = text.removeprefix("export ").lstrip()
  key, sep, value = text.partition("=")
  key = key.strip()
  if not sep or not key:
    return None
  value = value.strip()
  if len(value) >= 2 and value[0] in _QUOTES and value[-1] == value[0]:
    value = value[1:-1]
  return key, value


def load_env_file(path: Path, *, override: bool = False) -> list[str]:
  """Export the file's variables and return the keys that were applied."""
  if not path.is_file():
    return []

  applied: list[str] = []
  for line in path.read_text(encoding="utf-8").splitlines():
    parsed = parse_env_line(line)
    if parsed is None:
      continue
    key, value = parsed
    if key in os.environ and not override:
      continue
    os.environ[key] = value
    applied.append(key)
  return applied
