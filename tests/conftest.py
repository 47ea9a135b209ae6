"""Shared fixtures for the Side A test suite.

Hey future me - service tests run against the REAL SQLite store (in-memory, StaticPool) and a
real LocalCoverStorage in tmp_path. Only the network-facing provider clients are mocked, so
the merge/dedup and artwork rules are tested against the same SQL the app runs.
"""

import asyncio
import io
from collections.abc import AsyncIterator, Awaitable, Callable
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from PIL import Image

from sidea.application.services import CatalogueSearchService, CollectionService, CoverArtService
from sidea.application.workers import BackgroundTaskRunner
from sidea.config.settings import DatabaseSettings, SearchSettings
from sidea.domain.entities import Candidate, MembershipStatus, OwnedItem, VisionResult
from sidea.domain.ports import IVisionProvider, PreparedImage
from sidea.infrastructure.integrations import (
    CoverArtArchiveClient,
    DiscogsClient,
    MusicBrainzClient,
)
from sidea.infrastructure.persistence import Database, SqlCatalogueStore
from sidea.infrastructure.storage import LocalCoverStorage


class FakeClock:
    """Monotonic fake clock whose sleep() just advances time."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


class FakeVisionProvider(IVisionProvider):
    """Vision provider returning a canned result (or raising a canned error)."""

    def __init__(
        self,
        name: str,
        result: VisionResult | None = None,
        error: Exception | None = None,
    ) -> None:
        self._name = name
        self._result = result
        self._error = error
        self.calls = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_available(self) -> bool:
        return True

    async def extract(self, image: PreparedImage) -> VisionResult:
        self.calls += 1
        if self._error is not None:
            raise self._error
        assert self._result is not None
        return self._result


def make_png(size: tuple[int, int] = (64, 64), color: str = "red") -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def mb_group(title: str, group_id: str, artist: str = "Pink Floyd", year: int = 1979) -> Candidate:
    return Candidate(
        display_artist=artist,
        display_title=title,
        external_id=group_id,
        provider_name="musicbrainz",
        year=year,
        cover_url=f"https://coverartarchive.org/release-group/{group_id}/front-250",
    )


def discogs_release(
    title: str, release_id: int, artist: str = "Pink Floyd", cover: str | None = None
) -> Candidate:
    return Candidate(
        display_artist=artist,
        display_title=title,
        external_id=str(release_id),
        provider_name="discogs",
        cover_url=cover or f"https://i.discogs.com/{release_id}.jpg",
    )


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
async def database() -> AsyncIterator[Database]:
    """Fresh in-memory SQLite database per test."""
    db = Database(DatabaseSettings(url="sqlite+aiosqlite:///:memory:"))
    await db.create_tables()
    yield db
    await db.close()


@pytest.fixture
def store(database: Database) -> SqlCatalogueStore:
    return SqlCatalogueStore(database)


@pytest.fixture
async def file_store(tmp_path: Path) -> AsyncIterator[SqlCatalogueStore]:
    """File-backed store, every session gets its own connection (in-memory shares one)."""
    db = Database(DatabaseSettings(url=f"sqlite+aiosqlite:///{tmp_path / 'sidea.db'}"))
    await db.create_tables()
    yield SqlCatalogueStore(db)
    await db.close()


@pytest.fixture
def storage(tmp_path: Path) -> LocalCoverStorage:
    return LocalCoverStorage(tmp_path / "covers")


@pytest.fixture
def add_album(
    store: SqlCatalogueStore,
) -> Callable[..., Awaitable[OwnedItem]]:
    """Insert an album + membership straight through the store (no artwork pass)."""

    async def _add(
        artist: str,
        title: str,
        status: MembershipStatus = MembershipStatus.COLLECTION,
        cover_image_url: str | None = None,
        external_id: str | None = None,
        barcode: str | None = None,
        year: int | None = None,
    ) -> OwnedItem:
        async with store.transaction() as uow:
            artist_id = await uow.find_artist_by_name(artist)
            if artist_id is None:
                artist_id = await uow.create_artist(artist)
            item_id = await uow.create_item(
                artist_id,
                title,
                year=year,
                cover_image_url=cover_image_url,
                external_id=external_id,
            )
            await uow.insert_membership(item_id, status)
            if barcode:
                await uow.add_barcode(barcode, item_id)
        item = await store.get_item(item_id)
        assert item is not None
        return item

    return _add


@pytest.fixture
def musicbrainz() -> AsyncMock:
    client = AsyncMock(spec=MusicBrainzClient)
    client.is_available = True
    client.search_artist.return_value = None
    client.list_release_groups.return_value = []
    client.search_releases.return_value = []
    client.search_release.return_value = None
    return client


@pytest.fixture
def discogs() -> AsyncMock:
    client = AsyncMock(spec=DiscogsClient)
    client.is_available = True
    client.search_artist.return_value = None
    client.list_artist_releases.return_value = []
    client.search_by_text.return_value = []
    client.search_by_barcode.return_value = None
    client.get_release.return_value = None
    return client


@pytest.fixture
def coverartarchive(png_bytes: bytes) -> AsyncMock:
    client = AsyncMock(spec=CoverArtArchiveClient)
    client.is_available = True
    client.get_front_cover_url.return_value = None
    client.download_image.return_value = png_bytes
    return client


@pytest.fixture
async def runner() -> AsyncIterator[BackgroundTaskRunner]:
    task_runner = BackgroundTaskRunner()
    yield task_runner
    await task_runner.close()


@pytest.fixture
def cover_art_service(
    store: SqlCatalogueStore,
    storage: LocalCoverStorage,
    musicbrainz: AsyncMock,
    coverartarchive: AsyncMock,
    discogs: AsyncMock,
    runner: BackgroundTaskRunner,
) -> CoverArtService:
    return CoverArtService(store, storage, musicbrainz, coverartarchive, discogs, runner)


@pytest.fixture
def collection_service(
    store: SqlCatalogueStore, cover_art_service: CoverArtService
) -> CollectionService:
    return CollectionService(store, cover_art_service)


@pytest.fixture
def search_service(
    store: SqlCatalogueStore, musicbrainz: AsyncMock, discogs: AsyncMock
) -> CatalogueSearchService:
    return CatalogueSearchService(store, musicbrainz, discogs, SearchSettings())
