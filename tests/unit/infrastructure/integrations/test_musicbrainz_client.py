"""Tests for MusicBrainz client implementation."""

import httpx

from sidea.application.cache import ProviderCache
from sidea.config.settings import MusicBrainzSettings
from sidea.infrastructure.integrations.musicbrainz_client import (
    MusicBrainzClient,
    parse_release_group,
    release_group_cover_url,
)
from sidea.infrastructure.rate_limiter import RequestThrottle

USER_AGENT = "TestApp/1.0.0 ( test@example.com )"


def make_client(handler, enabled: bool = True) -> MusicBrainzClient:  # type: ignore[no-untyped-def]
    return MusicBrainzClient(
        MusicBrainzSettings(enabled=enabled),
        RequestThrottle.for_rate("musicbrainz", 60_000),
        ProviderCache(),
        USER_AGENT,
        transport=httpx.MockTransport(handler),
    )


class TestParsing:
    """Test MusicBrainz document parsing."""

    def test_release_group_cover_url(self) -> None:
        """Test the CAA release-group redirect URL."""
        assert (
            release_group_cover_url("abc")
            == "https://coverartarchive.org/release-group/abc/front-250"
        )

    def test_parse_release_group_uses_artist_credit(self) -> None:
        """Test the credited artist is used when no name is passed."""
        candidate = parse_release_group(
            {
                "id": "rg-1",
                "title": "OK Computer",
                "first-release-date": "1997-05-21",
                "artist-credit": [{"artist": {"name": "Radiohead"}}],
            }
        )
        assert candidate.display_artist == "Radiohead"
        assert candidate.year == 1997
        assert candidate.provider_name == "musicbrainz"
        assert candidate.cover_url is not None


class TestMusicBrainzClient:
    """Test MusicBrainz requests via a mock transport."""

    async def test_search_artist_sends_user_agent_and_phrase_query(self) -> None:
        """Test artist search query and the required User-Agent."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200, json={"artists": [{"id": "83d91898", "name": "Pink Floyd"}]}
            )

        client = make_client(handler)
        artist = await client.search_artist("Pink Floyd")
        await client.close()

        assert artist is not None
        assert artist.artist_id == "83d91898"
        assert seen[0].url.params["query"] == 'artist:"Pink Floyd"'
        assert seen[0].headers["User-Agent"] == USER_AGENT

    async def test_release_groups_albums_only_newest_first(self) -> None:
        """Test browse filtering and sort order."""

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["artist"] == "83d91898"
            return httpx.Response(
                200,
                json={
                    "release-groups": [
                        {"id": "a", "title": "The Wall", "primary-type": "Album",
                         "first-release-date": "1979-11-30"},
                        {"id": "b", "title": "Live at Pompeii", "primary-type": "Album",
                         "first-release-date": "1972"},
                        {"id": "c", "title": "Money", "primary-type": "Single",
                         "first-release-date": "1973"},
                        {"id": "d", "title": "The Endless River", "primary-type": "Album",
                         "first-release-date": "2014-11-07"},
                    ]
                },
            )

        client = make_client(handler)
        groups = await client.list_release_groups("83d91898", "Pink Floyd", limit=2)
        await client.close()

        assert [g.display_title for g in groups] == ["The Endless River", "The Wall"]
        assert all(g.display_artist == "Pink Floyd" for g in groups)

    async def test_search_release_returns_first(self) -> None:
        """Test release search for artwork lookup."""

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["query"] == 'artist:"Pink Floyd" AND release:"The Wall"'
            return httpx.Response(
                200,
                json={
                    "releases": [
                        {"id": "rel-1", "title": "The Wall", "date": "1979",
                         "artist-credit": [{"name": "Pink Floyd"}]}
                    ]
                },
            )

        client = make_client(handler)
        release = await client.search_release("Pink Floyd", "The Wall")
        await client.close()

        assert release is not None
        assert release.external_id == "rel-1"
        assert release.display_artist == "Pink Floyd"

    async def test_search_release_no_hits(self) -> None:
        """Test an empty answer means None."""
        client = make_client(lambda request: httpx.Response(200, json={"releases": []}))
        assert await client.search_release("Nobody", "Nothing") is None
        await client.close()

    async def test_disabled_client_never_calls_out(self) -> None:
        """Test MUSICBRAINZ_ENABLED=false short-circuits every lookup."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        client = make_client(handler, enabled=False)
        assert client.is_available is False
        assert await client.search_artist("Pink Floyd") is None
        assert await client.search_by_text("Pink Floyd") == []
        assert await client.search_release("Pink Floyd", "The Wall") is None
