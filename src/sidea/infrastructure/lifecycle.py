"""Engine composition root and application lifespan.

Hey future me - everything with state is built ONCE here: the provider cache, one throttle per
provider, the HTTP clients, the vision providers, the database, the background runner. Request
code receives the Engine and calls its operations, it never builds clients itself. Two Engines
mean two independent rate limiters, which is exactly how we'd get banned by MusicBrainz.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from sidea.application.cache import ProviderCache
from sidea.application.services import (
    CatalogueSearchService,
    CollectionService,
    CoverArtService,
    VisionService,
    build_vision_providers,
)
from sidea.application.workers import BackgroundTaskRunner
from sidea.config.settings import Settings, get_settings
from sidea.domain.entities import (
    BarcodeMatch,
    Candidate,
    CoverArtCandidate,
    CoverArtResponse,
    ImageMatches,
    MembershipStatus,
    NewItemRequest,
    OwnedItem,
    RefreshStatus,
    SearchResults,
    VisionResult,
)
from sidea.domain.exceptions import ConfigurationError
from sidea.domain.ports import ICatalogueStore, ICoverStorage
from sidea.infrastructure.integrations import (
    CoverArtArchiveClient,
    DiscogsClient,
    MusicBrainzClient,
)
from sidea.infrastructure.observability import (
    configure_logging,
    get_correlation_id,
    set_correlation_id,
)
from sidea.infrastructure.persistence import Database, SqlCatalogueStore
from sidea.infrastructure.rate_limiter import RequestThrottle
from sidea.infrastructure.storage import LocalCoverStorage

logger = logging.getLogger(__name__)


# SQLite creates the .db file on first connect, but not its parent directory
def _ensure_sqlite_directory(url: str) -> None:
    try:
        parsed = make_url(url)
    except ArgumentError as e:
        raise ConfigurationError(f"Invalid DATABASE_URL '{url}': {e}") from e
    if not parsed.drivername.startswith("sqlite"):
        return
    database = parsed.database
    if not database or database == ":memory:":
        return
    parent = Path(database).parent
    try:
        parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ConfigurationError(
            f"Unable to create SQLite database directory '{parent}': {e}"
        ) from e


# Yo, one correlation id per incoming request. A host that already set one (request middleware)
# keeps it, otherwise we mint it here. FastAPI serves every request in its own context, so ids
# never leak from one request into the next.
def _begin_operation() -> str:
    return get_correlation_id() or set_correlation_id()


class Engine:
    """Holds the shared clients and services and exposes the engine operations."""

    def __init__(
        self,
        settings: Settings | None = None,
        store: ICatalogueStore | None = None,
        storage: ICoverStorage | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        s = self.settings

        self.cache = ProviderCache()
        user_agent = s.user_agent

        self.discogs = DiscogsClient(
            s.discogs,
            RequestThrottle.for_discogs(s.discogs.requests_per_minute),
            self.cache,
            user_agent,
            timeout=s.http.timeout,
        )
        self.musicbrainz = MusicBrainzClient(
            s.musicbrainz,
            RequestThrottle.for_musicbrainz(s.musicbrainz.requests_per_minute),
            self.cache,
            user_agent,
            timeout=s.http.timeout,
        )
        self.coverartarchive = CoverArtArchiveClient(
            s.coverartarchive,
            RequestThrottle.for_coverartarchive(s.coverartarchive.requests_per_minute),
            self.cache,
            user_agent,
            timeout=s.http.timeout,
            download_timeout=s.http.download_timeout,
        )
        primary, fallback = build_vision_providers(s.vision, s.http)
        self._vision_providers = [p for p in (primary, fallback) if p is not None]

        self.database: Database | None = None
        if store is None:
            _ensure_sqlite_directory(s.database.url)
            self.database = Database(s.database)
            store = SqlCatalogueStore(self.database)
        self.store = store
        self.storage = storage or LocalCoverStorage(s.storage.cover_art_path)
        self.runner = BackgroundTaskRunner()

        self.search = CatalogueSearchService(self.store, self.musicbrainz, self.discogs, s.search)
        self.vision = VisionService(primary, fallback, s.vision, catalogue=self.discogs)
        self.cover_art = CoverArtService(
            self.store,
            self.storage,
            self.musicbrainz,
            self.coverartarchive,
            self.discogs,
            self.runner,
        )
        self.collection = CollectionService(self.store, self.cover_art)

    async def start(self) -> None:
        """Create tables (there are no migrations) and log the provider setup."""
        if self.database is not None:
            await self.database.create_tables()
        logger.info(
            "Engine started",
            extra={
                "discogs": self.discogs.is_available,
                "musicbrainz": self.musicbrainz.is_available,
                "vision": self.vision.is_available,
            },
        )

    async def close(self) -> None:
        """Cancel background work, then release every client and the database."""
        await self.runner.close()
        for closable in (
            self.discogs,
            self.musicbrainz,
            self.coverartarchive,
            *self._vision_providers,
        ):
            await closable.close()
        for client in (self.discogs, self.musicbrainz, self.coverartarchive):
            await client.throttle.close()
        if self.database is not None:
            await self.database.close()
        logger.info("Engine stopped")

    async def __aenter__(self) -> "Engine":
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    def get_status(self) -> dict[str, Any]:
        return {
            "providers": {
                "discogs": self.discogs.is_available,
                "musicbrainz": self.musicbrainz.is_available,
                "vision": self.vision.is_available,
            },
            "cache": self.cache.get_stats(),
            "background": self.runner.get_status(),
        }

    # --- search -------------------------------------------------------------

    async def search_catalogue(self, query: str) -> SearchResults:
        _begin_operation()
        return await self.search.search_catalogue(query)

    async def resolve_barcode(self, code: str) -> BarcodeMatch:
        _begin_operation()
        return await self.search.resolve_barcode(code)

    async def get_release(self, release_id: str) -> Candidate:
        _begin_operation()
        return await self.search.get_release(release_id)

    # --- vision -------------------------------------------------------------

    async def analyze_image(self, payload: bytes | str) -> VisionResult:
        _begin_operation()
        return await self.vision.analyze_image(payload)

    async def analyze_image_with_matches(self, payload: bytes | str) -> ImageMatches:
        _begin_operation()
        return await self.vision.analyze_image_with_matches(payload)

    # --- collection ---------------------------------------------------------

    async def add_item(self, request: NewItemRequest) -> OwnedItem:
        _begin_operation()
        return await self.collection.add_item(request)

    async def get_item(self, item_id: int) -> OwnedItem:
        return await self.collection.get_item(item_id)

    async def list_items(self, status: MembershipStatus | None = None) -> list[OwnedItem]:
        return await self.collection.list_items(status)

    async def remove_item(self, item_id: int) -> None:
        await self.collection.remove_item(item_id)

    async def set_status(self, item_id: int, status: MembershipStatus) -> OwnedItem:
        return await self.collection.set_status(item_id, status)

    async def update_notes(self, item_id: int, notes: str | None) -> OwnedItem:
        return await self.collection.update_notes(item_id, notes)

    # --- cover art ----------------------------------------------------------

    async def get_cover_art(self, item_id: int) -> CoverArtResponse:
        return await self.cover_art.get_cover_art(item_id)

    async def refresh_cover_art(self, item_id: int) -> RefreshStatus:
        _begin_operation()
        return await self.cover_art.refresh_cover_art(item_id)

    async def find_cover_art_candidates(self, item_id: int) -> list[CoverArtCandidate]:
        _begin_operation()
        return await self.cover_art.find_cover_art_candidates(item_id)

    async def select_cover_art(self, item_id: int, url: str) -> OwnedItem:
        _begin_operation()
        return await self.cover_art.select_cover_art(item_id, url)


# Hey future me, this is the FastAPI lifespan hook: logging first (so engine startup is logged),
# then the Engine on app.state. Shutdown always closes the engine, even if startup half-failed.
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings = get_settings()
    configure_logging(settings.observability.level, settings.observability.json_format)

    engine = Engine(settings)
    app.state.engine = engine
    try:
        await engine.start()
        yield
    finally:
        try:
            await engine.close()
        except Exception:
            logger.exception("Engine shutdown failed")
        app.state.engine = None
