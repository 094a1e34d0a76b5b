"""Environment-driven settings for collaborators and limits."""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

DEFAULT_MODEL = "gpt-4.1-mini"


@dataclass(frozen=True)
class Settings:
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    model_name: str = DEFAULT_MODEL
    temperature: float = 0.0
    workspace_root: str = ""
    heuristic_step_limit: int = 5
    max_prompt_files: int = 300
    log_level: str = "INFO"

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key)

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        return cls(
            api_key=os.getenv("OPENAI_API_KEY") or None,
            base_url=os.getenv("OPENAI_BASE_URL") or None,
            model_name=os.getenv("OPENAI_MODEL", DEFAULT_MODEL),
            temperature=_env_float("ARCH_GRAPH_TEMPERATURE", 0.0),
            workspace_root=os.getenv("ARCH_GRAPH_WORKSPACE_ROOT", os.getcwd()),
            heuristic_step_limit=_env_int("ARCH_GRAPH_HEURISTIC_STEPS", 5),
            max_prompt_files=_env_int("ARCH_GRAPH_MAX_PROMPT_FILES", 300),
            log_level=os.getenv("ARCH_GRAPH_LOG_LEVEL", "INFO"),
        )


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default
