"""Domain entities."""

from dataclasses import dataclass, field
from enum import Enum


# Hey future me, MembershipStatus is stored as a plain string in the DB (not a DB enum - SQLite
# compatibility). "collection" = owned record on the shelf, "wishlist" = wanted. The merge engine
# builds one lookup set per status, so adding a third status means touching that code too!
class MembershipStatus(str, Enum):
    """Whether a catalogued item is owned or wanted."""

    COLLECTION = "collection"
    WISHLIST = "wishlist"


class ProviderName(str, Enum):
    """External providers the engine talks to."""

    DISCOGS = "discogs"
    MUSICBRAINZ = "musicbrainz"
    COVERARTARCHIVE = "coverartarchive"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    LOCAL = "local"


# Yo, Candidate is EPHEMERAL - built per request from a provider response, never persisted as-is!
# external_id is a string even for Discogs (integer ids) so MBIDs and Discogs ids share one field.
# in_collection / in_wishlist are set by the merge engine, providers always leave them False.
@dataclass
class Candidate:
    """A provisional, not-yet-owned item description from a provider."""

    display_artist: str
    display_title: str
    external_id: str
    provider_name: str
    year: int | None = None
    cover_url: str | None = None
    match_confidence: int | None = None
    is_artist_exact_match: bool = False
    in_collection: bool = False
    in_wishlist: bool = False
    # Vision provider whose guess led to this candidate (image analysis only)
    matched_by: str | None = None

    @property
    def discogs_id(self) -> str | None:
        """External id when this candidate came from the catalogue provider."""
        if self.provider_name == ProviderName.DISCOGS.value:
            return self.external_id
        return None


# Listen up, OwnedItem is the persisted record. local_cover_file is a FILENAME relative to the
# cover storage root (not a full path) so moving the storage directory doesn't break rows.
# cover_resolution_attempted flips to True after the first artwork pass - later refreshes are
# intentional (user clicked "refresh"), never automatic.
@dataclass
class OwnedItem:
    """A catalogued record in the collection or on the wishlist."""

    id: int
    artist_name: str
    title: str
    year: int | None = None
    cover_image_url: str | None = None
    external_id: str | None = None
    musicbrainz_id: str | None = None
    local_cover_file: str | None = None
    cover_resolution_attempted: bool = False
    membership_status: MembershipStatus = MembershipStatus.COLLECTION
    barcode: str | None = None
    notes: str | None = None


@dataclass
class VisionResult:
    """Structured guess produced by a vision provider for one image.

    Transient - produced once per analysis, never stored. alternate_result
    carries the losing provider's guess when both providers ran.
    """

    provider_name: str
    confidence: int = 0
    artist: str | None = None
    album: str | None = None
    year: int | None = None
    used_fallback: bool = False
    alternate_result: "VisionResult | None" = None

    @property
    def search_query(self) -> str:
        """Artist and album joined for a catalogue text search."""
        return " ".join(part for part in (self.artist, self.album) if part)

    @property
    def is_empty(self) -> bool:
        """True when the provider could not name either artist or album."""
        return not self.artist and not self.album


@dataclass(frozen=True)
class ArtistMatch:
    """Artist-level search hit from a metadata provider."""

    artist_id: str
    artist_name: str


@dataclass(frozen=True)
class CoverArtCandidate:
    """A selectable cover image for manual artwork re-selection."""

    source: str
    url: str
    title: str
    external_id: str
    year: int | None = None


@dataclass(frozen=True)
class CoverArtResponse:
    """Answer of the cover art read path: either bytes or a redirect.

    Hey future me - exactly ONE of content/redirect_url is set. The request layer
    turns content into a 200 with media_type and redirect_url into a 302.
    """

    content: bytes | None = None
    media_type: str | None = None
    redirect_url: str | None = None

    @property
    def is_redirect(self) -> bool:
        return self.redirect_url is not None


class RefreshStatus(str, Enum):
    """Outcome of a manual cover art refresh."""

    ALREADY_CACHED = "already_cached"
    UPDATED = "updated"
    FALLBACK_CACHED = "fallback_cached"
    NOT_FOUND = "not_found"


@dataclass
class SearchResults:
    """Combined answer of a catalogue search."""

    owned: list[OwnedItem] = field(default_factory=list)
    external: list[Candidate] = field(default_factory=list)


@dataclass(frozen=True)
class BarcodeMatch:
    """Barcode resolution result; source is "local" or the provider name."""

    candidate: Candidate
    source: str


@dataclass
class ImageMatches:
    """Vision analysis plus the catalogue candidates it led to."""

    extracted: VisionResult
    matches: list[Candidate] = field(default_factory=list)


@dataclass
class NewItemRequest:
    """Input for adding an item to the catalogue."""

    artist: str
    title: str
    year: int | None = None
    cover_image_url: str | None = None
    external_id: str | None = None
    barcode: str | None = None
    status: MembershipStatus = MembershipStatus.COLLECTION


__all__ = [
    "ArtistMatch",
    "BarcodeMatch",
    "Candidate",
    "CoverArtCandidate",
    "CoverArtResponse",
    "ImageMatches",
    "MembershipStatus",
    "NewItemRequest",
    "OwnedItem",
    "ProviderName",
    "RefreshStatus",
    "SearchResults",
    "VisionResult",
]
