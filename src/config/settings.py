# src/config/settings.py - v1
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for provider routing, context budget thresholds,
dispatch retry policy, workflow switches, artifact paths and logging.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Every tunable of a run; environment variables override .env values."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === LLM PROVIDERS ===
    llm_default_provider: str = "anthropic"
    llm_default_model: str = "claude-sonnet-4-20250514"
    llm_temperature: float = 0.2
    llm_max_tokens: int = 8192

    anthropic_api_key: str = ""
    openai_api_key: str = ""

    # Per-role LLM assignment ("provider:model", highest priority)
    llm_surveyor: str = ""
    llm_interviewer: str = ""
    llm_drafter: str = ""
    llm_reconciler: str = ""
    llm_compactor: str = ""
    llm_fixer: str = ""

    # === Context budget ===
    context_ceiling_tokens: int = 24_000
    budget_low_watermark: float = 0.60
    budget_high_watermark: float = 0.85
    budget_max_full_decisions: int = 8
    brief_token_budget: int = 500
    summary_max_tokens: int = 150

    # === Dispatch ===
    dispatch_max_attempts: int = 3
    dispatch_retry_base_delay_s: float = 2.0
    dispatch_retry_backoff: float = 2.0
    dispatch_retry_jitter: bool = True
    dispatch_max_parallel: int = 4

    # === Workflow ===
    draft_auto_approve: bool = False
    interview_pause_per_topic: bool = True
    reconcile_worker_review: bool = True
    survey_tree_max_entries: int = 400

    # === Paths ===
    project_root: Path = Path(".")
    state_dir: str = ".grand-library"
    docs_dir: str = ".docs"

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "text"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 5

    # --- Validators ---

    @field_validator("dispatch_max_attempts", "dispatch_max_parallel")
    @classmethod
    def validate_positive(cls, v: int) -> int:  # noqa: N805
        if v < 1:
            raise ValueError("must be >= 1")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if not 0 < self.budget_low_watermark <= 1:
            errors.append("BUDGET_LOW_WATERMARK must be in (0, 1]")
        if not 0 < self.budget_high_watermark <= 1:
            errors.append("BUDGET_HIGH_WATERMARK must be in (0, 1]")
        if self.budget_low_watermark >= self.budget_high_watermark:
            errors.append("BUDGET_LOW_WATERMARK must be < BUDGET_HIGH_WATERMARK")
        if self.brief_token_budget >= self.context_ceiling_tokens:
            errors.append("BRIEF_TOKEN_BUDGET must be < CONTEXT_CEILING_TOKENS")
        if self.budget_max_full_decisions < 0:
            errors.append("BUDGET_MAX_FULL_DECISIONS must be >= 0")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Derived paths ---

    @property
    def root(self) -> Path:
        """Project root with user home expanded."""
        return Path(self.project_root).expanduser()


def load_settings(**overrides: object) -> Settings:
    """Build Settings, turning pydantic validation failures into ConfigurationError.

    Args:
        **overrides: Field-level overrides (CLI flags or tests).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If a value is invalid or configuration is internally
            inconsistent.
    """
    try:
        return Settings(**overrides)  # type: ignore[arg-type]
    except ValidationError as exc:
        raise ConfigurationError(str(exc)) from exc
