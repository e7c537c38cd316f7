"""Application configuration utilities."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables."""

    database_path: Path = Field(
        default=Path("data") / "waivers.db",
        alias="WAIVERDESK_DATABASE_PATH",
        description="SQLite file holding waivers and admin users, relative to the working directory.",
    )
    jwt_secret: str = Field(
        default="change-this-secret-key-in-production",
        alias="WAIVERDESK_JWT_SECRET",
        description="Secret used to sign admin session tokens.",
    )
    token_ttl_days: int = Field(
        default=7,
        alias="WAIVERDESK_TOKEN_TTL_DAYS",
        ge=1,
        description="Lifetime of an admin session token in days.",
    )
    cookie_name: str = Field(
        default="admin_token",
        alias="WAIVERDESK_COOKIE_NAME",
        description="Cookie carrying the admin session token.",
    )
    min_query_length: int = Field(
        default=2,
        alias="WAIVERDESK_MIN_QUERY_LENGTH",
        ge=1,
        description="Minimum trimmed query length accepted by search endpoints.",
    )
    search_limit: int = Field(
        default=50,
        alias="WAIVERDESK_SEARCH_LIMIT",
        ge=1,
        description="Hard cap on search and suggestion results.",
    )
    list_limit: int = Field(
        default=200,
        alias="WAIVERDESK_LIST_LIMIT",
        ge=1,
        description="Hard cap on the unfiltered records listing.",
    )
    match_mode: str = Field(
        default="fuzzy",
        alias="WAIVERDESK_MATCH_MODE",
        description="Ranking strategy: 'fuzzy' (similarity scoring) or 'substring'.",
    )
    similarity_threshold: float = Field(
        default=0.3,
        alias="WAIVERDESK_SIMILARITY_THRESHOLD",
        ge=0,
        le=1,
        description="Minimum field similarity for a fuzzy match.",
    )
    suggestion_cache_ttl_seconds: float = Field(
        default=120.0,
        alias="WAIVERDESK_SUGGESTION_CACHE_TTL",
        ge=0,
        description="Time-to-live of cached suggestion results.",
    )
    debounce_ms: int = Field(
        default=200,
        alias="WAIVERDESK_DEBOUNCE_MS",
        ge=0,
        description="Typeahead settling delay before a suggestion fetch.",
    )
    blur_grace_ms: int = Field(
        default=100,
        alias="WAIVERDESK_BLUR_GRACE_MS",
        ge=0,
        description="Delay before closing suggestions on blur.",
    )
    fetch_timeout_seconds: float = Field(
        default=5.0,
        alias="WAIVERDESK_FETCH_TIMEOUT",
        gt=0,
        description="Upper bound for client suggestion and search fetches.",
    )
    environment: str = Field(
        default="development",
        alias="WAIVERDESK_ENVIRONMENT",
        description="'development' fails loudly on integrity errors, 'production' degrades.",
    )
    min_password_length: int = Field(
        default=8,
        alias="WAIVERDESK_MIN_PASSWORD_LENGTH",
        ge=1,
        description="Minimum length accepted for new admin passwords.",
    )

    model_config = SettingsConfigDict(
        env_prefix="WAIVERDESK_",
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )

    @field_validator("match_mode", mode="before")
    @classmethod
    def _normalise_match_mode(cls, value: str | None) -> str:
        if value is None or value == "":
            return "fuzzy"
        mode = str(value).strip().lower()
        if mode not in {"fuzzy", "substring"}:
            raise ValueError(f"Unknown match mode '{value}'")
        return mode

    @field_validator("environment", mode="before")
    @classmethod
    def _normalise_environment(cls, value: str | None) -> str:
        if value is None or value == "":
            return "development"
        environment = str(value).strip().lower()
        if environment in {"prod", "production"}:
            return "production"
        return "development"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached instance of application settings."""

    settings = Settings()
    settings.database_path.parent.mkdir(parents=True, exist_ok=True)
    return settings
