"""
Application configuration via environment variables.

Uses Pydantic BaseSettings to load and validate all config from env vars
or a .env.local file. Every setting has a sensible default for local
development so the classifier can start with nothing more than an
OpenAI key.
"""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Deployment environment selector."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class OverridePolicy(str, Enum):
    """How the rule engine treats a second triggered override."""

    LAST_WINS = "last_wins"
    FIRST_WINS = "first_wins"


class Backend(str, Enum):
    MEMORY = "memory"
    SUPABASE = "supabase"
    REDIS = "redis"


class LogFormat(str, Enum):
    AUTO = "auto"
    JSON = "json"
    CONSOLE = "console"


class Settings(BaseSettings):
    """
    Central configuration for the CatalAI classification service.

    Values are loaded from environment variables first, falling back
    to a `.env.local` file in the project root. Secrets should NEVER
    be committed.
    """

    model_config = SettingsConfigDict(
        env_file=".env.local",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Environment ──────────────────────────────────────────────
    environment: Environment = Environment.DEVELOPMENT

    # ── Language model ───────────────────────────────────────────
    openai_api_key: str = Field(default="", description="OpenAI API key for classification calls")
    openai_base_url: str = Field(default="https://api.openai.com/v1", description="Chat completions base URL")
    llm_model: str = Field(default="gpt-4o-mini", description="Model used for every text-generation call")
    llm_temperature: float = Field(default=0.1, ge=0.0, le=2.0)
    llm_timeout_seconds: float = Field(default=30.0, gt=0, le=300)
    degenerate_response_patterns: list[str] = Field(
        default_factory=lambda: [
            r"^\s*$",
            r"^\s*clarification\s+\d+\s*$",
            r"^\s*question\s+\d+\s*$",
        ],
        description="Regexes for known-degenerate model output, checked before parsing",
    )

    # ── Confidence routing ───────────────────────────────────────
    manual_review_threshold: float = Field(default=0.50, ge=0.0, le=1.0)
    clarify_upper_threshold: float = Field(default=0.90, ge=0.0, le=1.0)
    marginal_auto_threshold: float = Field(default=0.92, ge=0.0, le=1.0)

    # ── Interview limits ─────────────────────────────────────────
    interview_hard_limit: int = Field(default=15, ge=1, le=100, description="Absolute stop")
    interview_soft_limit: int = Field(default=8, ge=1, le=100, description="Advisory warning")
    interview_min_questions: int = Field(default=1, ge=1, le=10)
    interview_max_questions: int = Field(default=3, ge=1, le=10)
    interview_taper_questions: int = Field(default=2, ge=1, le=10, description="Batch size after the first round")
    interview_taper_after_turns: int = Field(default=5, ge=1, description="Turns before batches drop to the minimum")
    interview_loop_window: int = Field(default=5, ge=2, description="Recent questions checked for loops and duplicates")
    interview_exhaustion_window: int = Field(default=3, ge=1, description="Recent answers checked for refusals")
    compression_threshold: int = Field(default=5, ge=1, description="Turns before context is compressed")
    compression_recent_turns: int = Field(default=3, ge=1, le=10)
    completeness_min_categories: int = Field(default=4, ge=1, le=6)
    completeness_min_confidence: float = Field(default=0.90, ge=0.0, le=1.0)

    # ── Rules ────────────────────────────────────────────────────
    override_policy: OverridePolicy = OverridePolicy.LAST_WINS
    rule_store_backend: Backend = Field(default=Backend.MEMORY, description="memory or supabase")

    # ── Supabase ─────────────────────────────────────────────────
    supabase_url: str = Field(default="", description="Supabase project URL")
    supabase_service_key: str = Field(default="", description="Supabase service-role key")
    feature_audit_log: bool = Field(default=False, description="Write turn outcomes to the audit_log table")

    # ── Redis ────────────────────────────────────────────────────
    redis_url: str = Field(default="redis://localhost:6379/0", description="Redis connection URL")
    conversation_guard_backend: Backend = Field(default=Backend.MEMORY, description="memory or redis")
    conversation_lock_ttl_seconds: int = Field(default=120, ge=5, le=3600)

    # ── API ──────────────────────────────────────────────────────
    rate_limit_window_seconds: int = Field(default=60, ge=1)
    rate_limit_max_requests: int = Field(default=100, ge=1)
    cors_allow_origins: list[str] = Field(default_factory=lambda: ["*"], description="Restrict in production")
    trusted_proxies: list[str] = Field(
        default_factory=list,
        description="Peer addresses whose X-Forwarded-For is honoured for rate limiting",
    )

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO", description="Root log level")
    log_format: LogFormat = Field(default=LogFormat.AUTO, description="auto picks json in production, console otherwise")

    # ── Derived helpers ──────────────────────────────────────────

    @property
    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION

    @property
    def is_development(self) -> bool:
        return self.environment == Environment.DEVELOPMENT


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Return cached Settings instance.

    Using lru_cache ensures we read env vars exactly once, and every
    module that calls ``get_settings()`` gets the same object.
    """
    return Settings()
