"""Pipeline configuration.

Defaults mirror the production settings of the tagging app. Every field can
be overridden through a ``LEGALTAG_<FIELD>`` environment variable, and the
CLI applies its flags on top with :func:`dataclasses.replace`.
"""
from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, fields
from typing import Any


ENV_PREFIX = "LEGALTAG_"
STAGE_NAMES: tuple[str, ...] = ("headlines", "content", "audit")


@dataclass(frozen=True, slots=True)
class PipelineConfig:
    """Settings shared by the pipeline stages and the LLM backend."""

    language: str = "English"
    model_fast: str = "claude-3-5-haiku-latest"
    model_strict: str = "claude-sonnet-4-5"
    max_output_tokens: int = 8192
    headline_chunk_count: int = 10
    content_chunk_count: int = 20
    default_timeout_sec: float = 90.0
    strict_timeout_sec: float = 480.0
    max_attempts: int = 5
    base_delay_sec: float = 2.0
    rate_limit_delay_sec: float = 5.0
    jitter_sec: float = 0.5
    allow_content_level_changes: bool = True

    def __post_init__(self) -> None:
        if not self.language.strip():
            raise ValueError("language cannot be empty")
        if self.headline_chunk_count < 1 or self.content_chunk_count < 1:
            raise ValueError("chunk counts must be >= 1")
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.max_output_tokens < 1:
            raise ValueError("max_output_tokens must be >= 1")
        for name in ("default_timeout_sec", "strict_timeout_sec"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0")
        for name in ("base_delay_sec", "rate_limit_delay_sec", "jitter_sec"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> PipelineConfig:
        """Build a config from ``LEGALTAG_*`` variables, falling back to defaults."""
        env = os.environ if environ is None else environ
        defaults = cls()
        values: dict[str, Any] = {}
        for f in fields(cls):
            raw = env.get(ENV_PREFIX + f.name.upper())
            if raw is None or raw.strip() == "":
                continue
            values[f.name] = _coerce(f.name, raw, type(getattr(defaults, f.name)))
        return cls(**values)


def _coerce(name: str, raw: str, target: type) -> Any:
    value = raw.strip()
    if target is bool:
        lowered = value.lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
        raise ValueError(f"{ENV_PREFIX}{name.upper()} must be a boolean, got {raw!r}")
    try:
        return target(value)
    except ValueError as exc:
        raise ValueError(
            f"{ENV_PREFIX}{name.upper()} must be {target.__name__}, got {raw!r}"
        ) from exc


def parse_stages(raw: str) -> tuple[str, ...]:
    """Parse a comma-separated stage list, keeping pipeline order."""
    requested = {part.strip().lower() for part in raw.split(",") if part.strip()}
    unknown = requested - set(STAGE_NAMES)
    if unknown:
        raise ValueError(f"Unknown stage(s): {', '.join(sorted(unknown))}")
    if not requested:
        raise ValueError("At least one stage is required")
    return tuple(stage for stage in STAGE_NAMES if stage in requested)
