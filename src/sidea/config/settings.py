"""Application settings loaded from environment variables.

Hey future me - every sub-settings class reads its OWN env prefix (DISCOGS_, MUSICBRAINZ_,
VISION_, ...) so the settings object mirrors the provider set. Nested classes are built via
default_factory, which means each one reads the environment when Settings() is created - tests
can just pass explicit sub-settings instead of monkeypatching env vars.
"""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from sidea import __version__

logger = logging.getLogger(__name__)

DEFAULT_MIN_CONFIDENCE = 90


class DiscogsSettings(BaseSettings):
    """Discogs (catalogue provider) settings."""

    model_config = SettingsConfigDict(env_prefix="DISCOGS_", extra="ignore")

    token: str = ""
    base_url: str = "https://api.discogs.com"
    # 60 req/min is the published limit for authenticated requests
    requests_per_minute: int = 60

    @property
    def is_configured(self) -> bool:
        return bool(self.token)


class MusicBrainzSettings(BaseSettings):
    """MusicBrainz (open metadata provider) settings."""

    model_config = SettingsConfigDict(env_prefix="MUSICBRAINZ_", extra="ignore")

    enabled: bool = True
    app_name: str = "SideA"
    app_version: str = __version__
    contact: str = "https://github.com/sidea-vinyl/sidea"
    base_url: str = "https://musicbrainz.org/ws/2"
    # MusicBrainz is STRICT: 1 req/sec
    requests_per_minute: int = 60


class CoverArtArchiveSettings(BaseSettings):
    """Cover Art Archive (open metadata image archive) settings."""

    model_config = SettingsConfigDict(env_prefix="COVERARTARCHIVE_", extra="ignore")

    base_url: str = "https://coverartarchive.org"
    requests_per_minute: int = 300


class VisionSettings(BaseSettings):
    """Vision provider selection and image pre-processing limits."""

    model_config = SettingsConfigDict(
        env_prefix="VISION_", extra="ignore", populate_by_name=True
    )

    provider: Literal["openai", "anthropic"] | None = None
    min_confidence: int = DEFAULT_MIN_CONFIDENCE
    openai_api_key: str = Field(default="", validation_alias="OPENAI_API_KEY")
    anthropic_api_key: str = Field(default="", validation_alias="ANTHROPIC_API_KEY")
    openai_model: str = "gpt-4o"
    anthropic_model: str = "claude-sonnet-4-20250514"
    anthropic_base_url: str = "https://api.anthropic.com"
    max_tokens: int = 1024
    max_image_bytes: int = 4 * 1024 * 1024
    max_dimension: int = 2048
    initial_quality: int = 85
    min_quality: int = 40
    requests_per_minute: int = 60

    # Yo, an out-of-range threshold is a config typo, not a reason to refuse to start.
    # Fall back to the default and say so in the logs.
    @field_validator("min_confidence")
    @classmethod
    def _clamp_min_confidence(cls, value: int) -> int:
        if value < 0 or value > 100:
            logger.warning(
                "Invalid VISION_MIN_CONFIDENCE %s, using default %d",
                value,
                DEFAULT_MIN_CONFIDENCE,
            )
            return DEFAULT_MIN_CONFIDENCE
        return value


class SearchSettings(BaseSettings):
    """Tunables of the candidate merge engine."""

    model_config = SettingsConfigDict(env_prefix="SEARCH_", extra="ignore")

    result_cap: int = 30
    artist_release_limit: int = 20
    text_search_limit: int = 20
    owned_limit: int = 20
    # Empirically chosen: below this many MusicBrainz artist-level hits we also ask Discogs
    fallback_threshold: int = 5


class StorageSettings(BaseSettings):
    """Local cover art storage."""

    model_config = SettingsConfigDict(env_prefix="STORAGE_", extra="ignore")

    cover_art_path: Path = Path("data/cover-art")


class DatabaseSettings(BaseSettings):
    """Relational store connection."""

    model_config = SettingsConfigDict(env_prefix="DATABASE_", extra="ignore")

    url: str = "sqlite+aiosqlite:///./data/sidea.db"
    echo: bool = False


class HttpSettings(BaseSettings):
    """Outbound HTTP behaviour shared by all provider clients."""

    model_config = SettingsConfigDict(env_prefix="HTTP_", extra="ignore")

    # Every provider call times out after this many seconds and counts as a provider failure
    timeout: float = 8.0
    download_timeout: float = 9.0


class ObservabilitySettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="LOG_", extra="ignore")

    level: str = "INFO"
    json_format: bool = False


class Settings(BaseSettings):
    """Top-level settings object."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    discogs: DiscogsSettings = Field(default_factory=DiscogsSettings)
    musicbrainz: MusicBrainzSettings = Field(default_factory=MusicBrainzSettings)
    coverartarchive: CoverArtArchiveSettings = Field(
        default_factory=CoverArtArchiveSettings
    )
    vision: VisionSettings = Field(default_factory=VisionSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    http: HttpSettings = Field(default_factory=HttpSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    @property
    def user_agent(self) -> str:
        """User-Agent in the "App/Version ( contact )" form MusicBrainz requires."""
        mb = self.musicbrainz
        return f"{mb.app_name}/{mb.app_version} ( {mb.contact} )"


@lru_cache
def get_settings() -> Settings:
    """Get the process-wide settings (cached)."""
    return Settings()
