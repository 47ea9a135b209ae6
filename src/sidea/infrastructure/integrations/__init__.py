"""External provider HTTP clients."""

from sidea.infrastructure.integrations.coverartarchive_client import CoverArtArchiveClient
from sidea.infrastructure.integrations.discogs_client import DiscogsClient
from sidea.infrastructure.integrations.musicbrainz_client import MusicBrainzClient

__all__ = [
    "CoverArtArchiveClient",
    "DiscogsClient",
    "MusicBrainzClient",
]
