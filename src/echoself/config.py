"""Typed configuration models for echoself.

Provides Pydantic validation for echoself.toml, catching typos, wrong types,
and invalid values at engine construction rather than mid-task.
"""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

log = logging.getLogger(__name__)

_DEFAULT_IGNORE_DIRS = [
    ".git",
    ".hg",
    ".svn",
    "__pycache__",
    "node_modules",
    ".venv",
    "venv",
    ".mypy_cache",
    ".pytest_cache",
    ".tox",
]


LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]


class RuntimeConfig(BaseModel):
    log_level: LogLevel = "INFO"
    log_json: bool = False
    log_dir: str | None = None
    log_max_bytes: int = Field(default=10 * 1024 * 1024, gt=0)
    log_backup_count: int = Field(default=5, ge=0)
    module_levels: dict[str, LogLevel] | None = None

    @field_validator("log_level", mode="before")
    @classmethod
    def upper_level(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator("module_levels", mode="before")
    @classmethod
    def upper_module_levels(cls, v: Any) -> Any:
        if isinstance(v, dict):
            return {
                name: level.strip().upper() if isinstance(level, str) else level
                for name, level in v.items()
            }
        return v


class AgentsConfig(BaseModel):
    context_capacity: int = Field(default=32, gt=0)
    memory_capacity: int | None = Field(default=None, gt=0)
    summary_chars: int = Field(default=120, gt=0)


class TasksConfig(BaseModel):
    default_timeout_seconds: float = Field(default=30.0, gt=0)
    cognitive_types: list[str] = Field(default_factory=lambda: ["reflect"])


class IntrospectionConfig(BaseModel):
    attention_percentile: float = Field(default=0.75, ge=0.0, lt=1.0)
    max_salient: int | None = Field(default=200, gt=0)
    novelty_half_life_hours: float = Field(default=168.0, gt=0)
    ignore_dirs: list[str] = Field(default_factory=lambda: list(_DEFAULT_IGNORE_DIRS))
    follow_symlinks: bool = False
    link_siblings: bool = True
    link_topics: bool = True
    coherence_history: int = Field(default=10, gt=0)


class CognitionConfig(BaseModel):
    health_window: int = Field(default=50, gt=0)
    healthy_ratio: float = Field(default=0.9, ge=0.0, le=1.0)
    degraded_ratio: float = Field(default=0.6, ge=0.0, le=1.0)
    baseline_coherence: float = Field(default=0.5, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def degraded_below_healthy(self) -> CognitionConfig:
        if self.degraded_ratio > self.healthy_ratio:
            raise ValueError(
                f"degraded_ratio ({self.degraded_ratio}) must not exceed "
                f"healthy_ratio ({self.healthy_ratio})"
            )
        return self


class BackendConfig(BaseModel):
    kind: Literal["heuristic", "litellm"] = "heuristic"
    model: str = "gpt-4o-mini"
    temperature: float = Field(default=0.2, ge=0.0, le=2.0)

    @field_validator("model", mode="before")
    @classmethod
    def strip_model_name(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip()
        return v


class EchoConfig(BaseModel):
    """Root configuration model for echoself.toml."""

    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)
    agents: AgentsConfig = Field(default_factory=AgentsConfig)
    tasks: TasksConfig = Field(default_factory=TasksConfig)
    introspection: IntrospectionConfig = Field(default_factory=IntrospectionConfig)
    cognition: CognitionConfig = Field(default_factory=CognitionConfig)
    backend: BackendConfig = Field(default_factory=BackendConfig)

    model_config = {"extra": "allow"}


def load_config(path: Path | None = None) -> EchoConfig:
    """Load and validate echoself.toml, returning typed EchoConfig.

    Missing file or sections are filled with defaults.
    Raises pydantic.ValidationError on invalid values.
    """
    config_path = path or Path("echoself.toml")
    raw: dict[str, Any] = {}

    if config_path.exists():
        with config_path.open("rb") as f:
            raw = tomllib.load(f)

    config = EchoConfig.model_validate(raw)
    log.debug(
        "config.loaded path=%s log_level=%s context_capacity=%d backend=%s/%s",
        config_path,
        config.runtime.log_level,
        config.agents.context_capacity,
        config.backend.kind,
        config.backend.model,
    )
    return config
