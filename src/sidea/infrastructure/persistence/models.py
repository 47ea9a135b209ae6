"""SQLAlchemy ORM models for Side A."""

from datetime import UTC, datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# Hey future me, utc_now() ensures ALL timestamps are UTC! Never use datetime.now() without
# timezone - that's "naive" datetime and causes bugs when servers are in different timezones.
def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# Listen up, normalized_name is the DEDUP key (lowercase, alphanumerics only - see
# domain.value_objects.normalization). "Pink Floyd" and "pink floyd!" are the same artist.
# The unique constraint is what makes concurrent adds of a new artist safe.
class ArtistModel(Base):
    """Artist of a catalogued record."""

    __tablename__ = "artists"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    normalized_name: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )


# Yo, an album row can exist WITHOUT a collections row (removed from collection but the
# resolved artwork is kept). That's why "is it catalogued?" is always answered by the
# collections table, never by this one.
# cover_image_url: catalogue URL at first, replaced by the CAA URL once resolved
# local_cover_path: FILENAME inside the cover storage root (not a full path!)
# cover_art_fetched: artwork pass attempted - the refresh idempotency flag
class AlbumModel(Base):
    """A release (artist + title), one per normalized pair."""

    __tablename__ = "albums"
    __table_args__ = (
        UniqueConstraint("artist_id", "normalized_title", name="uq_albums_artist_title"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    artist_id: Mapped[int] = mapped_column(
        ForeignKey("artists.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    normalized_title: Mapped[str] = mapped_column(String(255), nullable=False)
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cover_image_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    discogs_id: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    musicbrainz_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    local_cover_path: Mapped[str | None] = mapped_column(String(255), nullable=True)
    cover_art_fetched: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )


# Hey future me, album_id is UNIQUE - that's the "already in collection" 409. One membership
# per album, status says whether it's owned or wanted.
class CollectionModel(Base):
    """Membership of an album in the collection or wishlist."""

    __tablename__ = "collections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    album_id: Mapped[int] = mapped_column(
        ForeignKey("albums.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="collection")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    added_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )


class BarcodeModel(Base):
    """Barcode (UPC/EAN) → album mapping learned from adds."""

    __tablename__ = "barcodes"

    barcode: Mapped[str] = mapped_column(String(64), primary_key=True)
    album_id: Mapped[int] = mapped_column(
        ForeignKey("albums.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
