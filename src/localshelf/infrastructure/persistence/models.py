"""SQLAlchemy ORM models for the local library catalog."""

from datetime import UTC, datetime

import sqlalchemy as sa
from sqlalchemy import Boolean, Float, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# Hey future me, utc_now() ensures ALL timestamps are UTC! Never use datetime.now() without
# timezone - that's "naive" datetime and causes bugs when comparing values.
def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


# Hey future me - SQLite doesn't preserve timezone info! When we store UTC datetimes, they come
# back as "naive" (no tzinfo). This helper attaches UTC if missing so comparisons with
# datetime.now(UTC) don't blow up with "can't compare offset-naive and offset-aware".
def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware, assuming naive datetimes are UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# Listen up, LocalTrackModel is one row per FILE PATH (unique). There are no artist/album tables:
# the local catalog is flat on purpose, matching happens on the *_normalized shadow columns.
# modified_at is st_mtime as a float - SQLite REAL is a 64-bit double so the value round-trips
# exactly, which the scanner relies on for its "unchanged, skip it" equality check.
class LocalTrackModel(Base):
    """SQLAlchemy model for an indexed local audio file."""

    __tablename__ = "local_tracks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    file_path: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    file_hash: Mapped[str | None] = mapped_column(String(32), nullable=True)
    modified_at: Mapped[float | None] = mapped_column(Float, nullable=True)

    title: Mapped[str] = mapped_column(Text, nullable=False)
    artist: Mapped[str | None] = mapped_column(Text, nullable=True)
    album: Mapped[str | None] = mapped_column(Text, nullable=True)
    album_artist: Mapped[str | None] = mapped_column(Text, nullable=True)
    track_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    disc_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    genre: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    format: Mapped[str | None] = mapped_column(String(10), nullable=True)
    bitrate: Mapped[int | None] = mapped_column(Integer, nullable=True)
    sample_rate: Mapped[int | None] = mapped_column(Integer, nullable=True)

    has_embedded_art: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    folder_art_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Hey future me - despite the name this holds whatever remote-art reference we cached,
    # usually the file:// URI of the downloaded CoverArtArchive image.
    musicbrainz_art_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    musicbrainz_track_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    musicbrainz_artist_id: Mapped[str | None] = mapped_column(
        String(36), nullable=True
    )
    musicbrainz_release_id: Mapped[str | None] = mapped_column(
        String(36), nullable=True
    )
    enriched_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )

    indexed_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utc_now
    )

    title_normalized: Mapped[str] = mapped_column(Text, nullable=False, default="")
    artist_normalized: Mapped[str] = mapped_column(Text, nullable=False, default="")
    album_normalized: Mapped[str] = mapped_column(Text, nullable=False, default="")

    __table_args__ = (
        Index("idx_local_tracks_artist", "artist_normalized"),
        Index("idx_local_tracks_title", "title_normalized"),
        Index("idx_local_tracks_album", "album_normalized"),
        Index("idx_local_tracks_enriched", "enriched_at"),
    )


class WatchFolderModel(Base):
    """SQLAlchemy model for a monitored directory."""

    __tablename__ = "watch_folders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    path: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_scan_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    track_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
