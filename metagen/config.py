"""Application configuration using pydantic-settings."""

import json
from ast import literal_eval
from functools import lru_cache
from typing import Annotated, ClassVar, Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "MetaGen"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: Literal["development", "staging", "production"] = "development"

    # Site
    site_url: str = ""
    domain: str = ""

    # LLM Configuration
    default_llm_model: str = "openai:gpt-4o-mini"
    llm_max_retries: int = 1
    llm_timeout_fast: int = 60
    llm_timeout_standard: int = 120
    llm_timeout_reasoning: int = 300

    def get_llm_timeout(self, tier: str = "standard") -> int:
        """Return the LLM timeout in seconds for a given model tier."""
        return getattr(self, f"llm_timeout_{tier}", self.llm_timeout_standard)

    # Per-tier model overrides (optional, override the built-in defaults below)
    dev_model_reasoning: str | None = None
    dev_model_standard: str | None = None
    dev_model_fast: str | None = None
    prod_model_reasoning: str | None = None
    prod_model_standard: str | None = None
    prod_model_fast: str | None = None

    _MODEL_DEFAULTS: ClassVar[dict[str, dict[str, str]]] = {
        "development": {
            "reasoning": "openai:gpt-4o",
            "standard": "openai:gpt-4o-mini",
            "fast": "openai:gpt-4o-mini",
        },
        "staging": {
            "reasoning": "openai:gpt-4o",
            "standard": "openai:gpt-4o-mini",
            "fast": "openai:gpt-4o-mini",
        },
        "production": {
            "reasoning": "openai:gpt-4o",
            "standard": "openai:gpt-4o-mini",
            "fast": "openai:gpt-4o-mini",
        },
    }

    def get_model(self, tier: str = "standard") -> str:
        """Resolve the model string for a given tier based on environment.

        Priority: env var override > built-in defaults > default_llm_model fallback.
        """
        env_prefix = "dev" if self.environment in ("development", "staging") else "prod"
        override = getattr(self, f"{env_prefix}_model_{tier}", None)
        if isinstance(override, str) and override:
            return override

        env_defaults = self._MODEL_DEFAULTS.get(self.environment, {})
        resolved = env_defaults.get(tier, self.default_llm_model)
        if isinstance(resolved, str):
            return resolved
        return self.default_llm_model

    # Outcome store (WarpMetrics)
    warpmetrics_api_key: str | None = None
    warpmetrics_api_base_url: str = "https://api.warpmetrics.com/v1"
    warpmetrics_timeout: float = 30.0

    # Persisted state
    prompts_dir: str = "prompts"
    meta_output_path: str = "meta.json"

    # Generation
    description_min_length: int = 140
    description_max_length: int = 160
    quality_threshold: int = 7
    generation_max_retries: int = 3

    # Feedback tracking
    tracking_min_days: int = 7
    tracking_window_days: int = 30
    tracking_min_impressions: int = 10
    tracking_max_concurrent: int = 5

    # Pattern learning
    learning_window_days: int = 30
    learning_min_high_performers: int = 5
    learning_max_examples: int = 10
    learning_page_size: int = 100

    # Candidate selection
    candidate_ctr_threshold: float = 0.03
    candidate_min_impressions: int = 100
    candidate_max_pages: int = 20
    candidate_exclude: Annotated[list[str], NoDecode] = []

    @field_validator("candidate_exclude", mode="before")
    @classmethod
    def _parse_candidate_exclude(cls, value: object) -> object:
        """Accept JSON list/string or comma-separated globs for CANDIDATE_EXCLUDE."""
        if isinstance(value, list):
            return [str(item).strip() for item in value if str(item).strip()]
        if not isinstance(value, str):
            return value

        raw = value.strip()
        if not raw:
            return []

        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            try:
                parsed = literal_eval(raw)
            except (ValueError, SyntaxError):
                return [item.strip() for item in raw.split(",") if item.strip()]

        if isinstance(parsed, str):
            parsed = [parsed]
        if isinstance(parsed, tuple | set):
            parsed = list(parsed)
        if not isinstance(parsed, list):
            raise ValueError(
                "CANDIDATE_EXCLUDE must be a JSON array, JSON string, or comma-separated string.",
            )
        return [str(item).strip() for item in parsed if str(item).strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    settings = Settings()

    return settings


settings = get_settings()
