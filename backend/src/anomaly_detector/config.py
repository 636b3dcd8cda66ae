"""
Configuration management using Pydantic settings.
Loads environment variables from .env file and provides type-safe access.

The settings object is only used to build default clients; the persistence
and analysis clients receive their credentials explicitly.
"""
from functools import lru_cache
from typing import List, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import PersistenceFailurePolicy


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application Configuration
    app_name: str = "Anomaly Detector AI"
    environment: str = "development"
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    # Supabase (persistence is disabled when the URL is missing)
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    supabase_table: str = "transactions"
    persist_batch_size: int = Field(default=1000, ge=1)

    # Gemini API
    gemini_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("GEMINI_API_KEY", "GOOGLE_API_KEY"),
    )
    gemini_model: str = "gemini-2.5-flash"
    gemini_temperature: float = 0.1

    # Row caps
    analysis_max_rows: int = Field(default=1500, ge=1)
    display_max_rows: int = Field(default=2000, ge=1)

    # Pipeline behaviour
    on_persistence_failure: PersistenceFailurePolicy = PersistenceFailurePolicy.CONTINUE

    # CORS Configuration
    cors_origins: List[str] = ["http://localhost:8501", "http://localhost:8000"]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    @field_validator("supabase_url", "supabase_key", "gemini_api_key", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        """Treat empty environment values as not configured."""
        if isinstance(v, str) and not v.strip():
            return None
        return v.strip() if isinstance(v, str) else v

    @property
    def persistence_enabled(self) -> bool:
        return self.supabase_url is not None

    def to_dict(self) -> dict:
        """Convert configuration to a dictionary without secrets."""
        return {
            "app_name": self.app_name,
            "environment": self.environment,
            "log_level": self.log_level,
            "log_format": self.log_format,
            "supabase_url": self.supabase_url,
            "supabase_table": self.supabase_table,
            "persist_batch_size": self.persist_batch_size,
            "gemini_model": self.gemini_model,
            "gemini_api_key_configured": self.gemini_api_key is not None,
            "analysis_max_rows": self.analysis_max_rows,
            "display_max_rows": self.display_max_rows,
            "on_persistence_failure": self.on_persistence_failure.value,
        }


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
