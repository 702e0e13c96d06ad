"""Data models for the collection store."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Render a datetime as a fixed-width UTC string.

    Naive datetimes are taken to be UTC. The fixed format keeps lexical and
    chronological ordering identical inside SQLite.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> datetime:
    """Parse a stored timestamp (or any ISO-8601 string) into aware UTC."""
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text.replace(" ", "T", 1))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass
class Item:
    """A tracked catalog release."""

    id: int
    title: str
    artist: str
    year: int | None = None
    format: str = ""
    thumb_url: str = ""
    added_date: str = ""  # first-seen, kept on re-sync
    updated_at: str | None = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Item:
        return cls(
            id=row["id"],
            title=row["title"],
            artist=row["artist"],
            year=row["year"],
            format=row["format"] or "",
            thumb_url=row["thumb_url"] or "",
            added_date=row["added_date"],
            updated_at=row["updated_at"],
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "artist": self.artist,
            "year": self.year,
            "format": self.format,
            "thumb_url": self.thumb_url,
            "added_date": self.added_date,
        }


@dataclass
class Observation:
    """A single timestamped price/demand snapshot. Never mutated."""

    release_id: int
    price: float
    currency: str
    condition: str
    timestamp: str
    listing_count: int = 0
    wants_count: int = 0
    id: int | None = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Observation:
        return cls(
            id=row["id"],
            release_id=row["release_id"],
            price=row["price"],
            currency=row["currency"],
            condition=row["condition"],
            timestamp=row["timestamp"],
            listing_count=row["listing_count"] or 0,
            wants_count=row["wants_count"] or 0,
        )

    @property
    def observed_at(self) -> datetime:
        return parse_timestamp(self.timestamp)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "release_id": self.release_id,
            "price": self.price,
            "currency": self.currency,
            "condition": self.condition,
            "timestamp": self.timestamp,
            "listing_count": self.listing_count,
            "wants_count": self.wants_count,
        }


@dataclass
class CollectionMembership:
    """One physical copy of a release filed in a collection folder."""

    release_id: int
    folder_id: int
    folder_name: str
    instance_id: int
    added_date: str
    notes: str | None = None


@dataclass
class WantEntry:
    """A release on the wantlist (at most one per release)."""

    release_id: int
    added_date: str
    notes: str | None = None


@dataclass
class SchemaVersion:
    """An applied migration recorded in the ledger."""

    version: int
    name: str
    applied_at: str


@dataclass
class FolderSummary:
    """Item count per collection folder."""

    folder_id: int
    folder_name: str
    count: int
