"""
LexFill - Configuration
=======================
Environment-based settings using pydantic-settings.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Persistence
    # ==========================================================================
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/lexfill.db",
        description="SQLAlchemy async database URL"
    )
    upload_dir: str = Field(
        default="data/uploads",
        description="Directory for original and generated documents"
    )
    max_upload_bytes: int = Field(
        default=50 * 1024 * 1024,
        description="Largest accepted upload (50MB)"
    )

    # ==========================================================================
    # LLM Configuration
    # ==========================================================================
    llm_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="Base URL of an OpenAI-compatible API"
    )
    llm_api_key: Optional[str] = Field(default=None, description="API key for the LLM provider")
    llm_model: str = Field(default="gpt-4o")
    llm_timeout_seconds: float = Field(default=120.0)

    # ==========================================================================
    # Document Agent
    # ==========================================================================
    agent_max_steps: int = Field(default=10, ge=1, le=50)
    agent_history_limit: int = Field(
        default=100,
        description="Most recent thread messages sent to the model"
    )
    extraction_max_chars: int = Field(
        default=60000,
        description="Raw text characters sent to the placeholder extraction prompt"
    )

    # ==========================================================================
    # Reconciliation
    # ==========================================================================
    placeholder_padding: int = Field(
        default=40,
        description="Characters of context kept around a located placeholder"
    )
    fuzzy_match_threshold: float = Field(default=0.75)
    company_search_threshold: float = Field(default=0.3)
    company_search_limit: int = Field(default=10, ge=1)

    # ==========================================================================
    # Runtime Configuration
    # ==========================================================================
    environment: str = Field(default="production")
    log_level: str = Field(default="INFO")
    debug: bool = Field(default=False)
    cors_origins: List[str] = Field(default=["http://localhost:3000"])

    @field_validator("max_upload_bytes")
    @classmethod
    def validate_max_upload_bytes(cls, v: int) -> int:
        """Uploads must be allowed to carry at least one byte."""
        if v < 1:
            raise ValueError("max_upload_bytes must be positive")
        return v

    @field_validator("placeholder_padding")
    @classmethod
    def validate_placeholder_padding(cls, v: int) -> int:
        if v < 0 or v > 1000:
            raise ValueError("placeholder_padding must be between 0 and 1000")
        return v

    @field_validator("fuzzy_match_threshold", "company_search_threshold")
    @classmethod
    def validate_ratio(cls, v: float) -> float:
        """Similarity thresholds are ratios."""
        if v < 0.0 or v > 1.0:
            raise ValueError("similarity thresholds must be between 0.0 and 1.0")
        return v

    @field_validator("extraction_max_chars")
    @classmethod
    def validate_extraction_max_chars(cls, v: int) -> int:
        if v < 1000:
            raise ValueError("extraction_max_chars must be at least 1000")
        return v

    @model_validator(mode="after")
    def validate_history_covers_steps(self) -> "Settings":
        """The agent must at least see the messages produced by one run."""
        if self.agent_history_limit < self.agent_max_steps:
            raise ValueError(
                f"agent_history_limit ({self.agent_history_limit}) must not be smaller than "
                f"agent_max_steps ({self.agent_max_steps})"
            )
        return self


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses LRU cache to avoid re-parsing environment on every call.
    """
    return Settings()
