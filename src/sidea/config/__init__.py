"""Configuration module for Side A."""

from .settings import (
    CoverArtArchiveSettings,
    DatabaseSettings,
    DiscogsSettings,
    HttpSettings,
    MusicBrainzSettings,
    ObservabilitySettings,
    SearchSettings,
    Settings,
    StorageSettings,
    VisionSettings,
    get_settings,
)

__all__ = [
    "CoverArtArchiveSettings",
    "DatabaseSettings",
    "DiscogsSettings",
    "HttpSettings",
    "MusicBrainzSettings",
    "ObservabilitySettings",
    "SearchSettings",
    "Settings",
    "StorageSettings",
    "VisionSettings",
    "get_settings",
]
