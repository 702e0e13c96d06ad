"""Data models for Discogs API payloads."""

from __future__ import annotations

from dataclasses import dataclass, field

from ..database.models import CollectionMembership, Item, WantEntry


@dataclass
class Folder:
    """A collection folder. Folder 0 is the canonical "All" folder."""

    id: int
    name: str
    count: int = 0

    @classmethod
    def from_api(cls, data: dict) -> Folder:
        return cls(
            id=int(data["id"]),
            name=data.get("name", ""),
            count=int(data.get("count", 0) or 0),
        )


@dataclass
class BasicInformation:
    """Release details embedded in collection and wantlist entries."""

    id: int
    title: str
    artists: list[str] = field(default_factory=list)
    year: int | None = None
    formats: list[str] = field(default_factory=list)
    thumb: str = ""

    @classmethod
    def from_api(cls, data: dict) -> BasicInformation:
        return cls(
            id=int(data["id"]),
            title=data.get("title", ""),
            artists=[a.get("name", "") for a in data.get("artists") or []],
            year=data.get("year") or None,
            formats=[f.get("name", "") for f in data.get("formats") or []],
            thumb=data.get("thumb", "") or "",
        )

    def to_item(self, added_date: str) -> Item:
        return Item(
            id=self.id,
            title=self.title,
            artist=self.artists[0] if self.artists else "Unknown Artist",
            year=self.year,
            format=self.formats[0] if self.formats else "",
            thumb_url=self.thumb,
            added_date=added_date,
        )


@dataclass
class CollectionEntry:
    """A release instance inside a collection folder."""

    id: int
    instance_id: int
    folder_id: int
    date_added: str
    basic_information: BasicInformation
    notes: str | None = None

    @classmethod
    def from_api(cls, data: dict) -> CollectionEntry:
        return cls(
            id=int(data["id"]),
            instance_id=int(data["instance_id"]),
            folder_id=int(data.get("folder_id", 0) or 0),
            date_added=data.get("date_added", ""),
            basic_information=BasicInformation.from_api(data["basic_information"]),
        )

    def to_item(self) -> Item:
        return self.basic_information.to_item(self.date_added)

    def to_membership(self, folder: Folder) -> CollectionMembership:
        return CollectionMembership(
            release_id=self.id,
            folder_id=folder.id,
            folder_name=folder.name,
            instance_id=self.instance_id,
            added_date=self.date_added,
            notes=self.notes,
        )


@dataclass
class WantlistEntry:
    """A release on the user's wantlist."""

    id: int
    date_added: str
    basic_information: BasicInformation
    notes: str | None = None

    @classmethod
    def from_api(cls, data: dict) -> WantlistEntry:
        return cls(
            id=int(data["id"]),
            date_added=data.get("date_added", ""),
            basic_information=BasicInformation.from_api(data["basic_information"]),
            notes=data.get("notes") or None,
        )

    def to_item(self) -> Item:
        return self.basic_information.to_item(self.date_added)

    def to_want(self) -> WantEntry:
        return WantEntry(
            release_id=self.id,
            added_date=self.date_added,
            notes=self.notes,
        )


@dataclass
class MarketplaceStats:
    """Lowest marketplace price and listing count for a release."""

    release_id: int
    price: float
    currency: str
    listing_count: int
    condition: str = "Various"
    blocked_from_sale: bool = False
    wants_count: int = 0

    @classmethod
    def from_api(cls, release_id: int, data: dict) -> MarketplaceStats | None:
        """Parse /marketplace/stats; None when nothing is for sale."""
        lowest = data.get("lowest_price")
        num_for_sale = data.get("num_for_sale") or 0
        if not lowest or num_for_sale == 0:
            return None
        return cls(
            release_id=release_id,
            price=float(lowest["value"]),
            currency=lowest.get("currency", "USD"),
            listing_count=int(num_for_sale),
            blocked_from_sale=bool(data.get("blocked_from_sale", False)),
        )
