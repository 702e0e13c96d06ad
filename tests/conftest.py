"""Shared test fixtures for the collection tracker."""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Ensure src is importable
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.common.config import Settings
from src.tracker.database.models import (
    CollectionMembership,
    Item,
    Observation,
    format_timestamp,
)
from src.tracker.database.store import PriceStore

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings pointing at a temporary database, with no pacing delays."""
    s = Settings()
    s.discogs.token = "test-token"
    s.discogs.username = "tester"
    s.discogs.page_delay_seconds = 0
    s.discogs.rate_limit_rpm = 60_000
    s.sync.batch_delay_seconds = 0
    s.sync.backoff_base_seconds = 0
    s.sync.backoff_jitter_seconds = 0
    s.database.db_path = str(tmp_path / "test_prices.db")
    return s


@pytest.fixture
def store(tmp_path):
    """Provide a migrated store on a temporary SQLite file."""
    s = PriceStore.open(tmp_path / "store.db")
    yield s
    s.close()


def make_item(release_id: int, **overrides) -> Item:
    data = {
        "id": release_id,
        "title": f"Album {release_id}",
        "artist": f"Artist {release_id}",
        "year": 1970 + release_id % 50,
        "format": "Vinyl",
        "thumb_url": f"https://img.example/{release_id}.jpg",
        "added_date": "2025-01-01T00:00:00Z",
    }
    data.update(overrides)
    return Item(**data)


def make_observation(
    release_id: int,
    price: float,
    hours_ago: float = 0,
    wants: int = 0,
    now: datetime = NOW,
) -> Observation:
    return Observation(
        release_id=release_id,
        price=price,
        currency="USD",
        condition="Various",
        timestamp=format_timestamp(now - timedelta(hours=hours_ago)),
        listing_count=3,
        wants_count=wants,
    )


def add_to_folder(
    store: PriceStore,
    item: Item,
    folder_name: str = "All",
    folder_id: int = 0,
    instance_id: int | None = None,
) -> None:
    store.upsert_item(item)
    store.upsert_membership(CollectionMembership(
        release_id=item.id,
        folder_id=folder_id,
        folder_name=folder_name,
        instance_id=instance_id if instance_id is not None else item.id * 10 + folder_id,
        added_date=item.added_date,
    ))
