"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Iterable, Literal

from pydantic import AliasChoices, Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .sections import DEFAULT_HOME_SECTION_KEYS, HOME_SECTION_MAP, HomeSectionDefinition

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/125.0 Safari/537.36"
)


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="PanStream", alias="APP_NAME")
    site_tagline: str = Field(
        default="Luxury streaming experience", alias="SITE_TAGLINE"
    )
    site_url: HttpUrl | None = Field(default=None, alias="SITE_URL")
    static_dir: Path = Field(default=Path("public"), alias="STATIC_DIR")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")

    upstream_api_url: HttpUrl = Field(
        default="https://api.sansekai.my.id/api/dramabox", alias="API_BASE"
    )
    upstream_token: str | None = Field(
        default=None,
        alias="UPSTREAM_TOKEN",
        validation_alias=AliasChoices("UPSTREAM_TOKEN", "SHORTMAX_TOKEN"),
    )
    upstream_requires_token: bool = Field(
        default=False, alias="REQUIRE_UPSTREAM_TOKEN"
    )
    upstream_accept_language: str = Field(
        default="id-ID,id;q=0.9,en-US;q=0.8,en;q=0.7",
        alias="UPSTREAM_ACCEPT_LANGUAGE",
    )
    upstream_user_agent: str = Field(
        default=DEFAULT_USER_AGENT, alias="UPSTREAM_USER_AGENT"
    )
    upstream_language: str | None = Field(default=None, alias="UPSTREAM_LANGUAGE")
    upstream_timeout_seconds: float = Field(
        default=12.0, alias="UPSTREAM_TIMEOUT", ge=1.0, le=120.0
    )
    upstream_retries: int = Field(default=1, alias="UPSTREAM_RETRIES", ge=0, le=5)
    retry_backoff_seconds: float = Field(
        default=0.4, alias="RETRY_BACKOFF_SECONDS", ge=0.0, le=10.0
    )
    retry_backoff_curve: Literal["linear", "exponential"] = Field(
        default="linear", alias="RETRY_BACKOFF_CURVE"
    )

    cache_ttl_seconds: int = Field(default=180, alias="CACHE_TTL_SECONDS", ge=1)
    search_cache_ttl_seconds: int = Field(
        default=120, alias="SEARCH_CACHE_TTL_SECONDS", ge=1
    )
    detail_cache_ttl_seconds: int = Field(
        default=600, alias="DETAIL_CACHE_TTL_SECONDS", ge=1
    )
    playback_cache_ttl_seconds: int = Field(
        default=120, alias="PLAYBACK_CACHE_TTL_SECONDS", ge=1
    )
    cover_cache_ttl_seconds: int = Field(
        default=3_600, alias="COVER_CACHE_TTL_SECONDS", ge=1
    )
    languages_cache_ttl_seconds: int = Field(
        default=3_600, alias="LANGUAGES_CACHE_TTL_SECONDS", ge=1
    )
    cache_max_entries: int | None = Field(
        default=None, alias="CACHE_MAX_ENTRIES", ge=1
    )
    cover_repair_limit: int = Field(
        default=6, alias="COVER_REPAIR_LIMIT", ge=0, le=50
    )

    home_sections: tuple[str, ...] = Field(
        default=DEFAULT_HOME_SECTION_KEYS, alias="HOME_SECTIONS"
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", alias="LOG_LEVEL"
    )
    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("home_sections", mode="before")
    @classmethod
    def _parse_home_sections(cls, value: object) -> tuple[str, ...]:
        """Normalise home section selections from environment values."""

        if value is None:
            return DEFAULT_HOME_SECTION_KEYS
        if isinstance(value, str):
            raw_values = [part.strip() for part in value.split(",")]
        elif isinstance(value, Iterable):
            raw_values = [str(part).strip() for part in value]
        else:
            raise TypeError("HOME_SECTIONS must be a string or iterable of strings")

        cleaned: list[str] = []
        for entry in raw_values:
            if not entry:
                continue
            slug = entry.replace("_", "-").replace(" ", "-").lower()
            slug = "-".join(filter(None, slug.split("-")))
            if not slug:
                continue
            if slug not in HOME_SECTION_MAP:
                raise ValueError("Unknown home sections configured")
            if slug not in cleaned:
                cleaned.append(slug)
        if not cleaned:
            return DEFAULT_HOME_SECTION_KEYS
        return tuple(cleaned)

    @field_validator("upstream_token", "upstream_language", mode="before")
    @classmethod
    def _blank_as_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @property
    def home_section_definitions(self) -> tuple[HomeSectionDefinition, ...]:
        """Return ordered home section definitions for the selected keys."""

        return tuple(HOME_SECTION_MAP[key] for key in self.home_sections)

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
