"""
Configuration loader for TASKMILL.
Merges defaults with per-repo .taskmill/config.yaml overrides.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

class RoutingConfig(BaseModel):
    worker: str = "gemini/gemini-2.0-flash"
    tool_choice: Literal["required", "auto"] = "required"


class LimitsConfig(BaseModel):
    max_calls: int = Field(default=15, ge=1)
    max_parallel_calls: int = Field(default=4, ge=1)
    max_tokens_per_cycle: int = 500_000
    max_dollars_per_cycle: float = 5.0


class BacklogConfig(BaseModel):
    ai_tasks: str = ".ai-tasks.md"
    user_tasks: str = "tasks.md"


class WorkspaceConfig(BaseModel):
    log_dir: str = ".taskmill/logs"


class TaskmillConfig(BaseModel):
    routing: RoutingConfig = Field(default_factory=RoutingConfig)
    limits: LimitsConfig = Field(default_factory=LimitsConfig)
    backlog: BacklogConfig = Field(default_factory=BacklogConfig)
    workspace: WorkspaceConfig = Field(default_factory=WorkspaceConfig)


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "config.yaml"

MODEL_ENV_VAR = "TASKMILL_MODEL"


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base."""
    merged = base.copy()
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(repo_path: Path | None = None) -> TaskmillConfig:
    """
    Load config by merging:
      1. Built-in defaults (taskmill/config.yaml)
      2. Repo-level overrides (<repo>/.taskmill/config.yaml)
      3. Environment variable overrides (TASKMILL_MODEL)
    """
    # 1. Built-in defaults
    with open(_DEFAULT_CONFIG_PATH, "r") as f:
        base: dict[str, Any] = yaml.safe_load(f) or {}

    # 2. Repo overrides
    if repo_path:
        repo_config = repo_path / ".taskmill" / "config.yaml"
        if repo_config.exists():
            with open(repo_config, "r") as f:
                overrides: dict[str, Any] = yaml.safe_load(f) or {}
            base = _deep_merge(base, overrides)

    # 3. Env overrides. API keys are read by LiteLLM directly.
    model = os.environ.get(MODEL_ENV_VAR, "").strip()
    if model:
        base = _deep_merge(base, {"routing": {"worker": model}})

    return TaskmillConfig(**base)


def validate_api_keys() -> dict[str, bool]:
    """Check which API keys are available."""
    return {
        "GEMINI_API_KEY":    bool(os.environ.get("GEMINI_API_KEY")),
        "GOOGLE_API_KEY":    bool(os.environ.get("GOOGLE_API_KEY")),
        "OPENAI_API_KEY":    bool(os.environ.get("OPENAI_API_KEY")),
        "ANTHROPIC_API_KEY": bool(os.environ.get("ANTHROPIC_API_KEY")),
    }
