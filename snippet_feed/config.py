from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import (
    BaseSettings,
    DotEnvSettingsSource,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)


class FeedConfig(BaseSettings):
    """
    Main configuration of the feed engine, based on Pydantic Settings.

    - Reads environment variables and `.env` files automatically.
    - Performs type conversion and explicit validation.
    """

    # Store backend
    STORE_BACKEND: Literal["memory", "mongo"] = Field(
        default="memory", description="Remote store implementation to wire in"
    )
    MONGODB_URL: Optional[str] = Field(
        default=None, description="MongoDB connection string (mongo backend only)"
    )
    DATABASE_NAME: str = Field(
        default="snippet_feed", description="MongoDB database name"
    )
    MONGODB_SERVER_SELECTION_TIMEOUT_MS: int = Field(
        default=3_000,
        ge=100,
        le=600_000,
        description="MongoDB server selection timeout in ms (serverSelectionTimeoutMS)",
    )
    MONGODB_APPNAME: Optional[str] = Field(
        default=None, description="MongoDB appName client metadata"
    )

    # Timeouts
    FEED_FETCH_TIMEOUT_SECS: float = Field(
        default=10.0,
        gt=0,
        le=300,
        description="Feed budget: bounds the snippet fetch; auxiliary reads use what is left",
    )
    STORE_CALL_TIMEOUT_SECS: float = Field(
        default=5.0,
        gt=0,
        le=300,
        description="Upper bound for a single auxiliary or mutating store call",
    )

    # Feed assembly
    COMMENT_COUNT_STRATEGY: Literal["bulk", "per_snippet"] = Field(
        default="bulk",
        description="bulk: one aggregate query (falls back to per_snippet on failure)",
    )
    COMMENT_COUNT_CONCURRENCY: int = Field(
        default=8,
        ge=1,
        le=256,
        description="Max concurrent per-snippet comment count queries",
    )
    TRENDING_LANGUAGES_LIMIT: int = Field(
        default=8, ge=0, le=100, description="Languages shown as trending tags"
    )

    # Interaction behaviour
    LIKE_ROLLBACK_ON_FAILURE: bool = Field(
        default=True,
        description="Revert the optimistic like state when the store rejects the mutation",
    )
    RECONCILE_AFTER_LIKE: bool = Field(
        default=True,
        description="Refresh the feed after a successful like toggle",
    )
    REFRESH_ON_IDENTITY_CHANGE: bool = Field(
        default=True,
        description="Schedule a feed refresh when the user signs in or out",
    )

    # Snippet limits
    DESCRIPTION_MAX_LENGTH: int = Field(
        default=120, ge=1, le=10_000, description="Maximum snippet description length"
    )
    TITLE_MAX_LENGTH: int = Field(
        default=200, ge=1, le=10_000, description="Maximum snippet title length"
    )
    MAX_CODE_SIZE: int = Field(
        default=100_000,
        ge=1_000,
        le=10_000_000,
        description="Maximum code size in characters",
    )
    SUPPORTED_LANGUAGES: List[str] = Field(
        default_factory=lambda: [
            "JavaScript",
            "TypeScript",
            "Python",
            "Java",
            "C++",
            "C#",
            "Go",
            "Rust",
            "Ruby",
            "PHP",
            "Swift",
            "Kotlin",
            "HTML",
            "CSS",
            "SQL",
            "Bash",
        ],
        description="Languages offered when creating a snippet (suggestions, not a constraint)",
    )

    # Observability
    LOG_LEVEL: str = Field(default="INFO", description="Minimum log level")
    SENTRY_DSN: Optional[str] = Field(
        default=None, description="Sentry DSN for error reporting"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @field_validator("LOG_LEVEL")
    @classmethod
    def _validate_log_level(cls, v: str) -> str:
        level = (v or "").strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"LOG_LEVEL must be a standard logging level, got {v!r}")
        return level

    @field_validator("MONGODB_URL")
    @classmethod
    def _validate_mongodb_url(cls, v: Optional[str]) -> Optional[str]:
        if v is None or v == "":
            return None
        if not v.startswith(("mongodb://", "mongodb+srv://")):
            raise ValueError(
                "MONGODB_URL must start with mongodb:// or mongodb+srv://"
            )
        return v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Chain .env files: .env.local first, then .env, after real env vars."""
        return (
            init_settings,
            env_settings,
            DotEnvSettingsSource(settings_cls, env_file=".env.local", case_sensitive=True),
            DotEnvSettingsSource(settings_cls, env_file=".env", case_sensitive=True),
            file_secret_settings,
        )


def load_config() -> FeedConfig:
    """Load configuration and return a FeedConfig instance."""
    return FeedConfig()


try:
    config = load_config()
except ValidationError as exc:
    raise ValueError(str(exc)) from exc
