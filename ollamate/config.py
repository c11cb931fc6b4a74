"""
Runtime configuration for Ollamate.

Values are resolved in this order (first hit wins):

1. environment variables (a ``.env`` file in the project root is loaded first)
2. ``config.yaml`` in the project root
3. built-in defaults

config.yaml layout
------------------
    database:
      path: data/chat_history_persistent.db
    ollama:
      host: http://localhost:11434
      model: llama3.2
      timeout: 120
      temperature: 0.7
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv

load_dotenv()

_PROJECT_ROOT = Path(__file__).resolve().parents[1]
_CONFIG_PATH = _PROJECT_ROOT / "config.yaml"

DEFAULT_DB_PATH = _PROJECT_ROOT / "data" / "chat_history_persistent.db"
DEFAULT_OLLAMA_HOST = "http://localhost:11434"
DEFAULT_TIMEOUT = 120.0
DEFAULT_TEMPERATURE = 0.7


def _load_config(path: Path = _CONFIG_PATH) -> dict:
    """Load the project-level config.yaml and return it as a dict (empty dict if missing)."""
    if path.exists():
        with open(path, "r") as f:
            return yaml.safe_load(f) or {}
    return {}


@dataclass(frozen=True)
class Settings:
    """Resolved runtime settings."""

    db_path: Path
    ollama_host: str
    model: Optional[str]
    timeout: float
    temperature: float


def load_settings(config_path: Path = _CONFIG_PATH) -> Settings:
    """Build a :class:`Settings` from env vars, config.yaml and defaults."""
    cfg = _load_config(config_path)
    db_cfg = cfg.get("database", {}) or {}
    ollama_cfg = cfg.get("ollama", {}) or {}

    db_path = os.getenv("OLLAMATE_DB_PATH") or db_cfg.get("path") or DEFAULT_DB_PATH
    db_path = Path(db_path)
    if not db_path.is_absolute():
        db_path = _PROJECT_ROOT / db_path

    return Settings(
        db_path=db_path,
        ollama_host=(
            os.getenv("OLLAMA_HOST") or ollama_cfg.get("host") or DEFAULT_OLLAMA_HOST
        ).rstrip("/"),
        model=os.getenv("OLLAMATE_MODEL") or ollama_cfg.get("model") or None,
        timeout=float(os.getenv("OLLAMATE_TIMEOUT") or ollama_cfg.get("timeout", DEFAULT_TIMEOUT)),
        temperature=float(ollama_cfg.get("temperature", DEFAULT_TEMPERATURE)),
    )


@lru_cache(maxsize=1)
def get_config() -> Settings:
    """Return the process-wide settings (resolved once)."""
    return load_settings()
