"""SQLAlchemy implementation of the catalogue store."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import Select, delete, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from sidea.domain.entities import MembershipStatus, OwnedItem
from sidea.domain.exceptions import DuplicateEntityError
from sidea.domain.ports import ICatalogueStore, ICatalogueUnitOfWork
from sidea.domain.value_objects import dedup_key, normalize_key
from sidea.infrastructure.persistence.database import Database
from sidea.infrastructure.persistence.models import (
    AlbumModel,
    ArtistModel,
    BarcodeModel,
    CollectionModel,
)

logger = logging.getLogger(__name__)


def _to_item(
    album: AlbumModel,
    artist: ArtistModel,
    membership: CollectionModel,
    barcode: str | None = None,
) -> OwnedItem:
    return OwnedItem(
        id=album.id,
        artist_name=artist.name,
        title=album.title,
        year=album.year,
        cover_image_url=album.cover_image_url,
        external_id=album.discogs_id,
        musicbrainz_id=album.musicbrainz_id,
        local_cover_file=album.local_cover_path,
        cover_resolution_attempted=album.cover_art_fetched,
        membership_status=MembershipStatus(membership.status),
        barcode=barcode,
        notes=membership.notes,
    )


def _catalogued() -> Select[tuple[AlbumModel, ArtistModel, CollectionModel]]:
    return (
        select(AlbumModel, ArtistModel, CollectionModel)
        .join(ArtistModel, AlbumModel.artist_id == ArtistModel.id)
        .join(CollectionModel, CollectionModel.album_id == AlbumModel.id)
    )


class SqlCatalogueUnitOfWork(ICatalogueUnitOfWork):
    """Add-flow operations bound to one session (= one transaction)."""

    # Hey future me, the session is NOT committed here - the store's transaction() owns it.
    # We only flush() where we need a generated id or want the unique constraint to fire NOW.
    def __init__(self, session: AsyncSession) -> None:
        """Initialize unit of work with session."""
        self.session = session

    async def find_artist_by_name(self, name: str) -> int | None:
        stmt = select(ArtistModel.id).where(ArtistModel.normalized_name == dedup_key(name))
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    # Yo, find-then-create is not atomic across connections. Two adds of a new artist both see
    # no row, the slower INSERT trips the unique index. Same for albums in create_item.
    async def create_artist(self, name: str) -> int:
        model = ArtistModel(name=name.strip(), normalized_name=dedup_key(name))
        self.session.add(model)
        try:
            await self.session.flush()
        except IntegrityError as e:
            raise DuplicateEntityError(
                "Artist", name, f"Artist {name.strip()} was added concurrently"
            ) from e
        return model.id

    async def find_item_by_artist_and_title(self, artist_id: int, title: str) -> int | None:
        stmt = select(AlbumModel.id).where(
            AlbumModel.artist_id == artist_id,
            AlbumModel.normalized_title == dedup_key(title),
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_item(
        self,
        artist_id: int,
        title: str,
        year: int | None = None,
        cover_image_url: str | None = None,
        external_id: str | None = None,
    ) -> int:
        model = AlbumModel(
            artist_id=artist_id,
            title=title.strip(),
            normalized_title=dedup_key(title),
            year=year,
            cover_image_url=cover_image_url,
            discogs_id=external_id,
        )
        self.session.add(model)
        try:
            await self.session.flush()
        except IntegrityError as e:
            raise DuplicateEntityError("Album", title, "Album already in collection") from e
        return model.id

    # Yo, we check first for a friendly error, and still catch IntegrityError for the race where
    # two adds of the same album interleave. The unique constraint is the real guard.
    async def insert_membership(
        self, item_id: int, status: MembershipStatus = MembershipStatus.COLLECTION
    ) -> None:
        existing = await self.session.execute(
            select(CollectionModel.id).where(CollectionModel.album_id == item_id)
        )
        if existing.scalar_one_or_none() is not None:
            raise DuplicateEntityError("Album", item_id, "Album already in collection")

        self.session.add(CollectionModel(album_id=item_id, status=status.value))
        try:
            await self.session.flush()
        except IntegrityError as e:
            raise DuplicateEntityError("Album", item_id, "Album already in collection") from e

    async def add_barcode(self, barcode: str, item_id: int) -> None:
        existing = await self.session.get(BarcodeModel, barcode)
        if existing is not None:
            logger.debug(f"Barcode {barcode} already mapped to album {existing.album_id}")
            return
        self.session.add(BarcodeModel(barcode=barcode, album_id=item_id))
        await self.session.flush()


class SqlCatalogueStore(ICatalogueStore):
    """Catalogue store backed by SQLAlchemy (SQLite/aiosqlite by default)."""

    def __init__(self, database: Database) -> None:
        self._db = database

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[ICatalogueUnitOfWork]:
        async with self._db.session_scope() as session:
            yield SqlCatalogueUnitOfWork(session)

    async def _first_barcode(self, session: AsyncSession, album_id: int) -> str | None:
        stmt = (
            select(BarcodeModel.barcode)
            .where(BarcodeModel.album_id == album_id)
            .order_by(BarcodeModel.created_at)
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_item(self, item_id: int) -> OwnedItem | None:
        async with self._db.session_scope() as session:
            result = await session.execute(_catalogued().where(AlbumModel.id == item_id))
            row = result.one_or_none()
            if row is None:
                return None
            album, artist, membership = row
            barcode = await self._first_barcode(session, album.id)
            return _to_item(album, artist, membership, barcode)

    # Hey future me, this replaces Postgres trigram similarity with three cheap checks:
    # case-insensitive substring on artist or title, plus the normalized "artisttitle" string
    # containing the normalized query ("pink floyd the wall" → "pinkfloydthewall").
    async def search_owned(self, query: str, limit: int = 20) -> list[OwnedItem]:
        text = query.strip().lower()
        if not text:
            return []
        conditions: list[Any] = [
            ArtistModel.name.ilike(f"%{text}%"),
            AlbumModel.title.ilike(f"%{text}%"),
        ]
        normalized = normalize_key(text)
        if normalized:
            conditions.append(
                (ArtistModel.normalized_name + AlbumModel.normalized_title).contains(
                    normalized
                )
            )

        stmt = (
            _catalogued()
            .where(or_(*conditions))
            .order_by(CollectionModel.added_at.desc(), CollectionModel.id.desc())
            .limit(limit)
        )
        async with self._db.session_scope() as session:
            result = await session.execute(stmt)
            return [_to_item(a, ar, m) for a, ar, m in result.all()]

    async def find_by_barcode(self, barcode: str) -> OwnedItem | None:
        stmt = (
            select(AlbumModel, ArtistModel, CollectionModel)
            .join(BarcodeModel, BarcodeModel.album_id == AlbumModel.id)
            .join(ArtistModel, AlbumModel.artist_id == ArtistModel.id)
            .join(CollectionModel, CollectionModel.album_id == AlbumModel.id)
            .where(BarcodeModel.barcode == barcode)
        )
        async with self._db.session_scope() as session:
            result = await session.execute(stmt)
            row = result.first()
            if row is None:
                return None
            album, artist, membership = row
            return _to_item(album, artist, membership, barcode)

    async def list_items(self, status: MembershipStatus | None = None) -> list[OwnedItem]:
        stmt = _catalogued().order_by(CollectionModel.added_at.desc(), CollectionModel.id.desc())
        if status is not None:
            stmt = stmt.where(CollectionModel.status == status.value)
        async with self._db.session_scope() as session:
            result = await session.execute(stmt)
            return [_to_item(a, ar, m) for a, ar, m in result.all()]

    async def update_item_artwork(
        self, item_id: int, provider_image_id: str, image_url: str
    ) -> None:
        await self._update_album(
            item_id,
            musicbrainz_id=provider_image_id,
            cover_image_url=image_url,
            cover_art_fetched=True,
        )

    async def mark_artwork_attempted(
        self, item_id: int, provider_image_id: str | None = None
    ) -> None:
        values: dict[str, Any] = {"cover_art_fetched": True}
        if provider_image_id:
            values["musicbrainz_id"] = provider_image_id
        await self._update_album(item_id, **values)

    # Listen, a stored local cover always counts as "artwork attempted" - otherwise a later
    # refresh would happily overwrite a cover the user picked by hand.
    async def set_local_cover(
        self, item_id: int, filename: str, image_url: str | None = None
    ) -> None:
        values: dict[str, Any] = {"local_cover_path": filename, "cover_art_fetched": True}
        if image_url:
            values["cover_image_url"] = image_url
        await self._update_album(item_id, **values)

    async def _update_album(self, item_id: int, **values: Any) -> int:
        async with self._db.session_scope() as session:
            result = await session.execute(
                update(AlbumModel).where(AlbumModel.id == item_id).values(**values)
            )
            return int(result.rowcount)  # type: ignore[attr-defined]

    async def _update_membership(self, item_id: int, **values: Any) -> bool:
        async with self._db.session_scope() as session:
            result = await session.execute(
                update(CollectionModel)
                .where(CollectionModel.album_id == item_id)
                .values(**values)
            )
            return bool(result.rowcount)  # type: ignore[attr-defined]

    async def set_status(self, item_id: int, status: MembershipStatus) -> bool:
        return await self._update_membership(item_id, status=status.value)

    async def update_notes(self, item_id: int, notes: str | None) -> bool:
        return await self._update_membership(item_id, notes=notes)

    async def delete_membership(self, item_id: int) -> bool:
        async with self._db.session_scope() as session:
            result = await session.execute(
                delete(CollectionModel).where(CollectionModel.album_id == item_id)
            )
            return bool(result.rowcount)  # type: ignore[attr-defined]
