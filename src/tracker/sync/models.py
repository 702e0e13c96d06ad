"""Data models for the sync pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from ..database.models import Observation
from ..discogs.models import MarketplaceStats


class FetchStatus(str, Enum):
    """Outcome of a successful price fetch."""
    OK = "ok"
    NO_DATA = "no_data"  # nothing for sale, no observation recorded


@dataclass
class PriceFetchResult:
    """Worker output for one release."""

    release_id: int
    status: FetchStatus
    stats: MarketplaceStats | None = None
    timestamp: str = ""

    def to_observation(self) -> Observation | None:
        if self.status != FetchStatus.OK or self.stats is None:
            return None
        return Observation(
            release_id=self.release_id,
            price=self.stats.price,
            currency=self.stats.currency,
            condition=self.stats.condition,
            timestamp=self.timestamp,
            listing_count=self.stats.listing_count,
            wants_count=self.stats.wants_count,
        )


@dataclass
class SyncSummary:
    """Aggregate counts for one sync run."""

    collection_items: int = 0
    wants: int = 0
    processed: int = 0
    skipped: int = 0
    no_data: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def refreshed(self) -> int:
        """Items sent to the worker pool."""
        return self.processed + self.no_data + self.failed

    def to_dict(self) -> dict:
        return {
            "collection_items": self.collection_items,
            "wants": self.wants,
            "processed": self.processed,
            "skipped": self.skipped,
            "no_data": self.no_data,
            "failed": self.failed,
            "errors": list(self.errors),
            "duration_seconds": round(self.duration_seconds, 2),
        }
