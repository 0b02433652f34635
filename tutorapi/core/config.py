"""
Configuration management via environment variables.

This module loads configuration from .env file using python-dotenv.
All configuration values are accessed through the Settings class.
"""
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


# Load .env file from project root
# This must happen before accessing os.environ
env_path = Path(__file__).parent.parent.parent / ".env"
load_dotenv(env_path)


@dataclass(frozen=True)
class Settings:
    """
    Application settings loaded from environment variables.

    frozen=True makes the dataclass immutable, preventing accidental
    modification of settings at runtime.

    Attributes:
        app_name: Application identifier for logging
        app_env: Environment name (development, staging, production)
        log_level: Logging verbosity (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        database_url: PostgreSQL connection string
        jwt_secret: HS256 secret used to verify access tokens
        jwt_audience: Expected "aud" claim (empty string disables the check)
        groq_api_key: API key for Groq LLM service
        google_api_key: API key for Google Gemini service
        llm_temperature: LLM creativity (0.0 = deterministic, 1.0 = creative)
        llm_max_tokens: Maximum response length
        retry_max_attempts: Attempts made by ErrorHandler.handle_with_retry
        retry_delay_seconds: Base delay of the linear retry backoff
        default_language: Language of user-facing strings when none is requested
    """
    # Application settings
    app_name: str
    app_env: str
    log_level: str

    # Database settings
    database_url: str

    # Auth settings
    jwt_secret: str
    jwt_audience: str

    # LLM settings
    groq_api_key: str
    google_api_key: str
    llm_model_smart: str
    llm_model_fast: str
    llm_model_fallback: str
    llm_temperature: float
    llm_max_tokens: int

    # Safety settings
    rate_limit_per_minute: int
    enable_audit_logging: bool

    # Error handling
    retry_max_attempts: int
    retry_delay_seconds: float

    # Localization
    default_language: str

    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.app_env.lower() == "development"

    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env.lower() == "production"


def _get_env(key: str, default: Optional[str] = None) -> str:
    """
    Get environment variable with optional default.

    Args:
        key: Environment variable name
        default: Default value if not set

    Returns:
        Environment variable value

    Raises:
        ValueError: If required variable is not set and no default provided
    """
    value = os.environ.get(key, default)
    if value is None:
        raise ValueError(
            f"Required environment variable '{key}' is not set. "
            f"Please check your .env file."
        )
    return value


def _build_database_url() -> str:
    """
    Resolve the database URL.

    Priority:
    1. DATABASE_URL (hosted Postgres)
    2. Local components (DB_HOST, DB_USER, ...)
    """
    database_url = os.environ.get("DATABASE_URL")

    if not database_url:
        host = _get_env("DB_HOST", "localhost")
        port = _get_env("DB_PORT", "5432")
        user = _get_env("DB_USER", "postgres")
        password = _get_env("DB_PASSWORD", "")
        name = _get_env("DB_NAME", "postgres")
        database_url = f"postgresql://{user}:{password}@{host}:{port}/{name}"

    # SQLAlchemy no longer accepts the legacy scheme hosted providers hand out
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)

    return database_url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance with all configuration values

    Raises:
        ValueError: If required environment variables are missing
    """
    return Settings(
        # Application
        app_name=_get_env("APP_NAME", "MathTutorAPI"),
        app_env=_get_env("APP_ENV", "development"),
        log_level=_get_env("LOG_LEVEL", "INFO"),

        # Database
        database_url=_build_database_url(),

        # Auth
        jwt_secret=_get_env("JWT_SECRET"),
        jwt_audience=_get_env("JWT_AUDIENCE", "authenticated"),

        # LLM
        groq_api_key=_get_env("GROQ_API_KEY", ""),
        google_api_key=_get_env("GOOGLE_API_KEY", ""),
        llm_model_smart=_get_env("LLM_MODEL_SMART", "llama-3.3-70b-versatile"),
        llm_model_fast=_get_env("LLM_MODEL_FAST", "llama-3.1-8b-instant"),
        llm_model_fallback=_get_env("LLM_MODEL_FALLBACK", "gemini-2.0-flash"),
        llm_temperature=float(_get_env("LLM_TEMPERATURE", "0.7")),
        llm_max_tokens=int(_get_env("LLM_MAX_TOKENS", "500")),

        # Safety
        rate_limit_per_minute=int(_get_env("RATE_LIMIT_PER_MINUTE", "30")),
        enable_audit_logging=_get_env("ENABLE_AUDIT_LOGGING", "true").lower() == "true",

        # Error handling
        retry_max_attempts=int(_get_env("RETRY_MAX_ATTEMPTS", "3")),
        retry_delay_seconds=float(_get_env("RETRY_DELAY_SECONDS", "1.0")),

        # Localization
        default_language=_get_env("DEFAULT_LANGUAGE", "pl"),
    )
