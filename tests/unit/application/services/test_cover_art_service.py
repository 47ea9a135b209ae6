"""Tests for cover art reading, resolution and manual re-selection."""

from unittest.mock import AsyncMock

import pytest

from conftest import discogs_release, make_png, mb_group
from sidea.application.services.cover_art_service import CoverArtService
from sidea.domain.entities import RefreshStatus
from sidea.domain.exceptions import (
    EntityNotFoundError,
    ExternalServiceError,
    ProviderTimeoutError,
    ValidationError,
)
from sidea.infrastructure.persistence import SqlCatalogueStore
from sidea.infrastructure.storage import LocalCoverStorage

CAA_URL = "https://coverartarchive.org/release/mbid-wall/front"
DISCOGS_URL = "https://i.discogs.com/wall.jpg"


class TestGetCoverArt:
    """Test the read path priority."""

    async def test_local_file_first(
        self,
        cover_art_service: CoverArtService,
        store: SqlCatalogueStore,
        storage: LocalCoverStorage,
        png_bytes: bytes,
        add_album,  # type: ignore[no-untyped-def]
    ) -> None:
        """Test a stored file beats any URL."""
        item = await add_album("Pink Floyd", "The Wall", cover_image_url=CAA_URL)
        filename = await storage.save(png_bytes, item.id)
        await store.set_local_cover(item.id, filename)

        response = await cover_art_service.get_cover_art(item.id)

        assert response.is_redirect is False
        assert response.content == png_bytes
        assert response.media_type == "image/png"

    async def test_missing_local_file_falls_through(
        self,
        cover_art_service: CoverArtService,
        store: SqlCatalogueStore,
        add_album,  # type: ignore[no-untyped-def]
    ) -> None:
        """Test a row pointing at a deleted file redirects instead."""
        item = await add_album("Pink Floyd", "The Wall", cover_image_url=DISCOGS_URL)
        await store.set_local_cover(item.id, "999_deadbeef.jpg")

        response = await cover_art_service.get_cover_art(item.id)

        assert response.redirect_url == DISCOGS_URL

    @pytest.mark.parametrize("url", [CAA_URL, DISCOGS_URL])
    async def test_redirect_to_stored_url(
        self, cover_art_service: CoverArtService, url: str, add_album  # type: ignore[no-untyped-def]
    ) -> None:
        """Test CAA and catalogue URLs both come back as redirects."""
        item = await add_album("Pink Floyd", "The Wall", cover_image_url=url)

        response = await cover_art_service.get_cover_art(item.id)

        assert response.is_redirect is True
        assert response.redirect_url == url

    async def test_no_art_at_all(
        self, cover_art_service: CoverArtService, add_album  # type: ignore[no-untyped-def]
    ) -> None:
        """Test an item without any cover is a 404-style error."""
        item = await add_album("Pink Floyd", "The Wall")
        with pytest.raises(EntityNotFoundError):
            await cover_art_service.get_cover_art(item.id)

    async def test_unknown_item(self, cover_art_service: CoverArtService) -> None:
        """Test an unknown id."""
        with pytest.raises(EntityNotFoundError):
            await cover_art_service.get_cover_art(404)

    async def test_read_path_never_calls_providers(
        self,
        cover_art_service: CoverArtService,
        musicbrainz: AsyncMock,
        coverartarchive: AsyncMock,
        add_album,  # type: ignore[no-untyped-def]
    ) -> None:
        """Test serving a cover is purely local."""
        item = await add_album("Pink Floyd", "The Wall", cover_image_url=DISCOGS_URL)

        await cover_art_service.get_cover_art(item.id)

        musicbrainz.search_release.assert_not_called()
        coverartarchive.get_front_cover_url.assert_not_called()
        coverartarchive.download_image.assert_not_called()


class TestRefreshCoverArt:
    """Test the artwork resolution write path."""

    async def test_caa_art_found(
        self,
        cover_art_service: CoverArtService,
        store: SqlCatalogueStore,
        musicbrainz: AsyncMock,
        coverartarchive: AsyncMock,
        add_album,  # type: ignore[no-untyped-def]
    ) -> None:
        """Test MusicBrainz match + CAA image updates the item."""
        item = await add_album("Pink Floyd", "The Wall", cover_image_url=DISCOGS_URL)
        musicbrainz.search_release.return_value = mb_group("The Wall", "mbid-wall")
        coverartarchive.get_front_cover_url.return_value = CAA_URL

        status = await cover_art_service.refresh_cover_art(item.id)

        assert status == RefreshStatus.UPDATED
        updated = await store.get_item(item.id)
        assert updated is not None
        assert updated.musicbrainz_id == "mbid-wall"
        assert updated.cover_image_url == CAA_URL
        assert updated.cover_resolution_attempted is True
        musicbrainz.search_release.assert_awaited_once_with("Pink Floyd", "The Wall")

    async def test_already_cached_is_noop(
        self,
        cover_art_service: CoverArtService,
        store: SqlCatalogueStore,
        musicbrainz: AsyncMock,
        add_album,  # type: ignore[no-untyped-def]
    ) -> None:
        """Test an attempted item with a URL is left alone."""
        item = await add_album("Pink Floyd", "The Wall")
        await store.update_item_artwork(item.id, "mbid-wall", CAA_URL)

        status = await cover_art_service.refresh_cover_art(item.id)

        assert status == RefreshStatus.ALREADY_CACHED
        musicbrainz.search_release.assert_not_called()

    async def test_no_caa_art_caches_catalogue_cover(
        self,
        cover_art_service: CoverArtService,
        store: SqlCatalogueStore,
        storage: LocalCoverStorage,
        musicbrainz: AsyncMock,
        coverartarchive: AsyncMock,
        png_bytes: bytes,
        add_album,  # type: ignore[no-untyped-def]
    ) -> None:
        """Test the catalogue URL is downloaded as durable copy when CAA has nothing."""
        item = await add_album("Pink Floyd", "The Wall", cover_image_url=DISCOGS_URL)
        musicbrainz.search_release.return_value = mb_group("The Wall", "mbid-wall")

        status = await cover_art_service.refresh_cover_art(item.id)

        assert status == RefreshStatus.FALLBACK_CACHED
        updated = await store.get_item(item.id)
        assert updated is not None
        assert updated.musicbrainz_id == "mbid-wall"
        assert updated.cover_image_url == DISCOGS_URL
        assert updated.local_cover_file is not None
        assert await storage.read(updated.local_cover_file) == png_bytes
        coverartarchive.download_image.assert_awaited_once_with(DISCOGS_URL)

    async def test_nothing_found(
        self,
        cover_art_service: CoverArtService,
        store: SqlCatalogueStore,
        add_album,  # type: ignore[no-untyped-def]
    ) -> None:
        """Test no match and no catalogue URL still marks the item attempted."""
        item = await add_album("Pink Floyd", "The Wall")

        status = await cover_art_service.refresh_cover_art(item.id)

        assert status == RefreshStatus.NOT_FOUND
        updated = await store.get_item(item.id)
        assert updated is not None
        assert updated.cover_resolution_attempted is True

    async def test_download_failure_is_absorbed(
        self,
        cover_art_service: CoverArtService,
        store: SqlCatalogueStore,
        coverartarchive: AsyncMock,
        add_album,  # type: ignore[no-untyped-def]
    ) -> None:
        """Test a failed fallback download just leaves the redirect."""
        item = await add_album("Pink Floyd", "The Wall", cover_image_url=DISCOGS_URL)
        coverartarchive.download_image.side_effect = ExternalServiceError("404")

        status = await cover_art_service.refresh_cover_art(item.id)

        assert status == RefreshStatus.NOT_FOUND
        updated = await store.get_item(item.id)
        assert updated is not None
        assert updated.local_cover_file is None
        assert updated.cover_image_url == DISCOGS_URL

    async def test_musicbrainz_disabled(
        self,
        cover_art_service: CoverArtService,
        store: SqlCatalogueStore,
        musicbrainz: AsyncMock,
        add_album,  # type: ignore[no-untyped-def]
    ) -> None:
        """Test only the catalogue cover is cached when MusicBrainz is off."""
        musicbrainz.is_available = False
        item = await add_album("Pink Floyd", "The Wall", cover_image_url=DISCOGS_URL)

        status = await cover_art_service.refresh_cover_art(item.id)

        assert status == RefreshStatus.FALLBACK_CACHED
        musicbrainz.search_release.assert_not_called()
        updated = await store.get_item(item.id)
        assert updated is not None
        assert updated.local_cover_file is not None

    async def test_musicbrainz_error_falls_back_to_catalogue_cover(
        self,
        cover_art_service: CoverArtService,
        store: SqlCatalogueStore,
        musicbrainz: AsyncMock,
        coverartarchive: AsyncMock,
        add_album,  # type: ignore[no-untyped-def]
    ) -> None:
        """Test a MusicBrainz outage is treated like "not found"."""
        item = await add_album("Pink Floyd", "The Wall", cover_image_url=DISCOGS_URL)
        musicbrainz.search_release.side_effect = ProviderTimeoutError(
            "MusicBrainz request timed out", provider="musicbrainz"
        )

        status = await cover_art_service.refresh_cover_art(item.id)

        assert status == RefreshStatus.FALLBACK_CACHED
        coverartarchive.get_front_cover_url.assert_not_called()
        updated = await store.get_item(item.id)
        assert updated is not None
        assert updated.cover_resolution_attempted is True
        assert updated.musicbrainz_id is None
        assert updated.local_cover_file is not None

    async def test_cover_art_archive_error_keeps_mbid(
        self,
        cover_art_service: CoverArtService,
        store: SqlCatalogueStore,
        musicbrainz: AsyncMock,
        coverartarchive: AsyncMock,
        add_album,  # type: ignore[no-untyped-def]
    ) -> None:
        """Test a CAA failure after a MusicBrainz hit still records the mbid."""
        item = await add_album("Pink Floyd", "The Wall", cover_image_url=DISCOGS_URL)
        musicbrainz.search_release.return_value = mb_group("The Wall", "mbid-wall")
        coverartarchive.get_front_cover_url.side_effect = ExternalServiceError(
            "Cover Art Archive returned HTTP 503", provider="coverartarchive"
        )

        status = await cover_art_service.refresh_cover_art(item.id)

        assert status == RefreshStatus.FALLBACK_CACHED
        updated = await store.get_item(item.id)
        assert updated is not None
        assert updated.cover_resolution_attempted is True
        assert updated.musicbrainz_id == "mbid-wall"
        assert updated.cover_image_url == DISCOGS_URL
        assert updated.local_cover_file is not None

    async def test_populate_skips_removed_items(
        self, cover_art_service: CoverArtService, musicbrainz: AsyncMock
    ) -> None:
        """Test the background pass tolerates an item that is gone."""
        assert await cover_art_service.populate_artwork(12345) == RefreshStatus.NOT_FOUND
        musicbrainz.search_release.assert_not_called()


class TestCoverArtSelection:
    """Test candidate lookup and manual selection."""

    async def test_candidates_musicbrainz_then_discogs(
        self,
        cover_art_service: CoverArtService,
        musicbrainz: AsyncMock,
        coverartarchive: AsyncMock,
        discogs: AsyncMock,
        add_album,  # type: ignore[no-untyped-def]
    ) -> None:
        """Test CAA-backed releases come first and releases without art are dropped."""
        item = await add_album("Pink Floyd", "The Wall")
        musicbrainz.search_releases.return_value = [
            mb_group("The Wall", "mbid-1"),
            mb_group("The Wall (Deluxe)", "mbid-2"),
        ]
        coverartarchive.get_front_cover_url.side_effect = lambda mbid: (
            CAA_URL if mbid == "mbid-1" else None
        )
        discogs.search_by_text.return_value = [discogs_release("The Wall", 1, cover=DISCOGS_URL)]

        candidates = await cover_art_service.find_cover_art_candidates(item.id)

        assert [(c.source, c.url) for c in candidates] == [
            ("musicbrainz", CAA_URL),
            ("discogs", DISCOGS_URL),
        ]

    async def test_candidates_survive_musicbrainz_failure(
        self,
        cover_art_service: CoverArtService,
        musicbrainz: AsyncMock,
        discogs: AsyncMock,
        add_album,  # type: ignore[no-untyped-def]
    ) -> None:
        """Test Discogs candidates still come back when MusicBrainz fails."""
        item = await add_album("Pink Floyd", "The Wall")
        musicbrainz.search_releases.side_effect = ExternalServiceError("mb down")
        discogs.search_by_text.return_value = [discogs_release("The Wall", 1, cover=DISCOGS_URL)]

        candidates = await cover_art_service.find_cover_art_candidates(item.id)

        assert [c.source for c in candidates] == ["discogs"]

    async def test_select_replaces_local_file(
        self,
        cover_art_service: CoverArtService,
        storage: LocalCoverStorage,
        coverartarchive: AsyncMock,
        add_album,  # type: ignore[no-untyped-def]
    ) -> None:
        """Test selecting twice keeps only the newest file."""
        item = await add_album("Pink Floyd", "The Wall")
        first_image = make_png(color="red")
        second_image = make_png(color="blue")

        coverartarchive.download_image.return_value = first_image
        first = await cover_art_service.select_cover_art(item.id, CAA_URL)
        coverartarchive.download_image.return_value = second_image
        second = await cover_art_service.select_cover_art(item.id, f" {DISCOGS_URL} ")

        assert second.cover_image_url == DISCOGS_URL
        assert second.cover_resolution_attempted is True
        assert first.local_cover_file != second.local_cover_file
        assert second.local_cover_file is not None
        assert await storage.read(second.local_cover_file) == second_image
        assert first.local_cover_file is not None
        assert await storage.exists(first.local_cover_file) is False

    async def test_select_blank_url(
        self, cover_art_service: CoverArtService, add_album  # type: ignore[no-untyped-def]
    ) -> None:
        """Test a missing URL is rejected before anything is downloaded."""
        item = await add_album("Pink Floyd", "The Wall")
        with pytest.raises(ValidationError):
            await cover_art_service.select_cover_art(item.id, "  ")

    async def test_select_download_failure_changes_nothing(
        self,
        cover_art_service: CoverArtService,
        store: SqlCatalogueStore,
        coverartarchive: AsyncMock,
        add_album,  # type: ignore[no-untyped-def]
    ) -> None:
        """Test a failed download keeps the previous cover."""
        item = await add_album("Pink Floyd", "The Wall", cover_image_url=DISCOGS_URL)
        coverartarchive.download_image.side_effect = ExternalServiceError("timeout")

        with pytest.raises(ExternalServiceError):
            await cover_art_service.select_cover_art(item.id, CAA_URL)

        unchanged = await store.get_item(item.id)
        assert unchanged is not None
        assert unchanged.cover_image_url == DISCOGS_URL
        assert unchanged.local_cover_file is None
