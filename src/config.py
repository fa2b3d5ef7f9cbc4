"""
Centralized configuration management for VinciUI.

This module provides a Pydantic Settings-based configuration system that:
- Validates environment variables at startup
- Groups related settings (Gemini, database, auth, moderation, logging)
- Exposes properties to check whether optional integrations are enabled
- Supports .env file loading

Usage:
    from src.config import get_settings

    settings = get_settings()
    if settings.is_database_configured:
        ...
"""

from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


# =============================================================================
# Gemini Settings
# =============================================================================


class GeminiSettings(BaseSettings):
    """Configuration for the Gemini generateContent API."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    gemini_api_key: Optional[SecretStr] = Field(
        default=None,
        description="Google Gemini API key",
    )
    gemini_api_base: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Base URL of the Gemini REST API",
    )
    gemini_text_model: str = Field(
        default="gemini-2.5-flash",
        description="Text model used for enhancement, refinement and AI moderation",
    )
    gemini_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        le=600,
        description="Timeout in seconds for a single Gemini request",
    )

    @property
    def is_configured(self) -> bool:
        """Check if a Gemini API key is available."""
        return bool(self.gemini_api_key and self.gemini_api_key.get_secret_value())


# =============================================================================
# Database Settings
# =============================================================================


class DatabaseSettings(BaseSettings):
    """Configuration for the PostgreSQL database."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_url: Optional[str] = Field(
        default=None,
        description="PostgreSQL connection string",
    )
    database_pool_min_size: int = Field(
        default=1,
        ge=0,
        description="Minimum number of pooled connections",
    )
    database_pool_max_size: int = Field(
        default=10,
        ge=1,
        description="Maximum number of pooled connections",
    )
    database_init_schema: bool = Field(
        default=True,
        description="Create tables on startup if they do not exist",
    )

    @property
    def is_configured(self) -> bool:
        """Check if a database URL is configured."""
        return bool(self.database_url)


# =============================================================================
# Auth Settings (Supabase)
# =============================================================================


class AuthSettings(BaseSettings):
    """Configuration for Supabase JWT verification."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    supabase_jwt_secret: Optional[SecretStr] = Field(
        default=None,
        description="Supabase project JWT secret (HS256)",
    )
    supabase_jwt_audience: str = Field(
        default="authenticated",
        description="Expected 'aud' claim of Supabase access tokens",
    )
    auth_cookie_name: str = Field(
        default="auth_token",
        description="Cookie checked when no Authorization header is sent",
    )

    @property
    def is_configured(self) -> bool:
        """Check if JWT verification is possible."""
        return bool(self.supabase_jwt_secret)


# =============================================================================
# Moderation Settings
# =============================================================================


class ModerationSettings(BaseSettings):
    """Configuration for content moderation."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    moderation_ai_enabled: bool = Field(
        default=True,
        description="Run the Gemini secondary check on image prompts",
    )


# =============================================================================
# Security Settings
# =============================================================================


class SecuritySettings(BaseSettings):
    """Configuration for security features."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: Literal["development", "staging", "production", "test"] = Field(
        default="development",
        description="Deployment environment",
    )
    frontend_origin: str = Field(
        default="http://localhost:5173,http://127.0.0.1:5173",
        description="Comma-separated list of allowed CORS origins",
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def origins_list(self) -> List[str]:
        """Get parsed list of allowed origins."""
        return [
            origin.strip()
            for origin in self.frontend_origin.split(",")
            if origin.strip()
        ]


# =============================================================================
# Logging Settings
# =============================================================================


class LoggingSettings(BaseSettings):
    """Configuration for logging."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_format_json: bool = Field(
        default=False,
        description="Force JSON log format in development",
    )
    request_logging_enabled: bool = Field(
        default=True,
        description="Enable request logging middleware",
    )


# =============================================================================
# Monitoring Settings (Sentry)
# =============================================================================


class SentrySettings(BaseSettings):
    """Configuration for Sentry error tracking."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    sentry_dsn: Optional[str] = Field(
        default=None,
        description="Sentry DSN for error tracking",
    )
    sentry_environment: str = Field(
        default="development",
        description="Sentry environment name",
    )
    sentry_traces_sample_rate: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Sentry transaction sample rate (0.0 to 1.0)",
    )
    sentry_release: Optional[str] = Field(
        default="vinci-ui-api@1.0.0",
        description="Sentry release version",
    )

    @property
    def is_configured(self) -> bool:
        """Check if Sentry is configured."""
        return bool(self.sentry_dsn)


# =============================================================================
# Main Settings Class
# =============================================================================


class Settings(BaseSettings):
    """
    Main settings class that aggregates all configuration groups.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    gemini: GeminiSettings = Field(default_factory=GeminiSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)
    moderation: ModerationSettings = Field(default_factory=ModerationSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    sentry: SentrySettings = Field(default_factory=SentrySettings)

    @property
    def is_database_configured(self) -> bool:
        """Check if PostgreSQL persistence is available."""
        return self.database.is_configured

    @property
    def is_gemini_configured(self) -> bool:
        """Check if the Gemini API can be called."""
        return self.gemini.is_configured

    @property
    def is_sentry_configured(self) -> bool:
        """Check if Sentry error tracking is available."""
        return self.sentry.is_configured

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.security.is_production

    def get_config_summary(self) -> dict:
        """
        Get a summary of configuration status for logging.

        Secrets are never included.
        """
        return {
            "environment": self.security.environment,
            "gemini_configured": self.is_gemini_configured,
            "gemini_text_model": self.gemini.gemini_text_model,
            "database_configured": self.is_database_configured,
            "auth_configured": self.auth.is_configured,
            "ai_moderation_enabled": self.moderation.moderation_ai_enabled,
            "sentry_configured": self.is_sentry_configured,
            "allowed_origins": self.security.origins_list,
            "log_level": self.logging.log_level,
        }


# =============================================================================
# Settings Singleton
# =============================================================================


@lru_cache()
def get_settings() -> Settings:
    """
    Get the application settings singleton.

    Uses lru_cache to ensure settings are only loaded once.
    Call reload_settings() after changing the environment.

    Returns:
        Validated Settings instance
    """
    return Settings()


def reload_settings() -> Settings:
    """Clear the cached settings and load them again from the environment."""
    get_settings.cache_clear()
    return get_settings()
