"""Tests for the sync orchestrator, with fake remote access."""

from __future__ import annotations

import sqlite3
import threading
from datetime import timedelta

import pytest
import requests

from conftest import NOW, add_to_folder, make_item, make_observation
from src.tracker.database.models import format_timestamp
from src.tracker.discogs.models import (
    BasicInformation,
    CollectionEntry,
    Folder,
    MarketplaceStats,
    WantlistEntry,
)
from src.tracker.sync.models import FetchStatus, PriceFetchResult, SyncSummary
from src.tracker.sync.orchestrator import SyncOrchestrator, chunked, is_stale
from src.tracker.sync.worker_pool import WorkerPool


def _entry(release_id: int, folder_id: int = 0, instance_id: int | None = None) -> CollectionEntry:
    return CollectionEntry(
        id=release_id,
        instance_id=instance_id or release_id * 100 + folder_id,
        folder_id=folder_id,
        date_added="2025-01-01T00:00:00Z",
        basic_information=BasicInformation(
            id=release_id,
            title=f"Album {release_id}",
            artists=[f"Artist {release_id}"],
            formats=["Vinyl"],
        ),
    )


class FakeClient:
    """Listing side of the Discogs client."""

    def __init__(self, folders: dict[tuple[int, str], list[CollectionEntry]] | None = None, wants=()):
        self.folders = [(Folder(fid, name), entries) for (fid, name), entries in (folders or {}).items()]
        self.wants = list(wants)
        self.fail_on: str | None = None

    def get_folders(self):
        if self.fail_on == "folders":
            raise requests.HTTPError("401 Client Error: Unauthorized")
        return [folder for folder, _ in self.folders]

    def get_folder_items(self, folder_id):
        if self.fail_on == "items":
            raise requests.ConnectionError("connection reset")
        for folder, entries in self.folders:
            if folder.id == folder_id:
                return list(entries)
        return []

    def get_wantlist(self):
        return list(self.wants)


class FakeFetcher:
    """Worker handler returning canned prices; thread-safe call log."""

    def __init__(self, prices: dict[int, float | None] | None = None, fail=()):
        self.prices = prices or {}
        self.fail = set(fail)
        self.calls: list[int] = []
        self._lock = threading.Lock()

    def __call__(self, release_id: int) -> PriceFetchResult:
        with self._lock:
            self.calls.append(release_id)
        if release_id in self.fail:
            raise RuntimeError(f"Failed to fetch price for release {release_id}: 500")
        price = self.prices.get(release_id, 10.0)
        if price is None:
            return PriceFetchResult(release_id=release_id, status=FetchStatus.NO_DATA)
        return PriceFetchResult(
            release_id=release_id,
            status=FetchStatus.OK,
            stats=MarketplaceStats(
                release_id=release_id, price=price, currency="USD",
                listing_count=2, wants_count=release_id,
            ),
            timestamp=format_timestamp(NOW),
        )


@pytest.fixture
def sleeps():
    return []


def _orchestrator(store, settings, client, fetcher, sleeps, pools=None):
    def pool_factory(handler, size):
        pool = WorkerPool(handler, max_workers=size, max_pool_size=settings.sync.max_workers)
        if pools is not None:
            pools.append(pool)
        return pool

    return SyncOrchestrator(
        store,
        client,
        settings,
        fetcher=fetcher,
        pool_factory=pool_factory,
        sleep=sleeps.append,
        clock=lambda: NOW,
    )


class TestHelpers:
    def test_never_observed_is_stale(self):
        assert is_stale(None, NOW, 24)

    @pytest.mark.parametrize("hours,expected", [(23, False), (24, True), (25, True)])
    def test_interval_boundary(self, hours, expected):
        assert is_stale(NOW - timedelta(hours=hours), NOW, 24) is expected

    def test_force(self):
        assert is_stale(NOW, NOW, 24, force=True)

    def test_chunked(self):
        assert chunked(list(range(7)), 3) == [[0, 1, 2], [3, 4, 5], [6]]
        assert chunked([], 3) == []


class TestStaleness:
    def test_select_stale(self, store, settings, sleeps):
        for release_id, hours in ((1, 23), (2, 25)):
            add_to_folder(store, make_item(release_id))
            store.append_observation(make_observation(release_id, 10.0, hours_ago=hours))
        add_to_folder(store, make_item(3))

        orch = _orchestrator(store, settings, FakeClient(), FakeFetcher(), sleeps)
        refresh, fresh = orch.select_stale([1, 2, 3], now=NOW)
        assert refresh == [2, 3]
        assert fresh == [1]

        refresh, fresh = orch.select_stale([1, 2, 3], force=True, now=NOW)
        assert refresh == [1, 2, 3]
        assert fresh == []

    def test_fresh_items_skip_the_pool(self, store, settings, sleeps):
        client = FakeClient({(0, "All"): [_entry(1), _entry(2)]})
        store.upsert_item(make_item(1))
        store.append_observation(make_observation(1, 10.0, hours_ago=1))
        fetcher = FakeFetcher()

        summary = _orchestrator(store, settings, client, fetcher, sleeps).sync()

        assert fetcher.calls == [2]
        assert summary.skipped == 1
        assert summary.processed == 1


class TestSync:
    def test_full_run_writes_items_memberships_and_prices(self, store, settings, sleeps):
        client = FakeClient(
            {
                (0, "All"): [_entry(1), _entry(2)],
                (7, "Jazz"): [_entry(1, folder_id=7)],
            },
            wants=[WantlistEntry(
                id=50,
                date_added="2025-02-01T00:00:00Z",
                basic_information=BasicInformation(id=50, title="Wanted"),
            )],
        )
        fetcher = FakeFetcher({1: 25.0, 2: 40.0})

        summary = _orchestrator(store, settings, client, fetcher, sleeps).sync()

        assert summary.collection_items == 2
        assert summary.wants == 1
        assert summary.processed == 2
        assert summary.failed == 0
        assert sorted(fetcher.calls) == [1, 2]
        assert store.latest_observation(1).price == 25.0
        assert store.latest_observation(2).wants_count == 2
        assert {f.folder_name: f.count for f in store.collection_folders()} == {"All": 2, "Jazz": 1}
        # Wantlist-only items are stored but not priced.
        assert store.get_item(50) is not None
        assert store.latest_observation(50) is None

    def test_item_in_two_folders_fetched_once(self, store, settings, sleeps):
        client = FakeClient({
            (0, "All"): [_entry(1)],
            (7, "Jazz"): [_entry(1, folder_id=7)],
        })
        fetcher = FakeFetcher()
        summary = _orchestrator(store, settings, client, fetcher, sleeps).sync()
        assert fetcher.calls == [1]
        assert summary.collection_items == 1

    def test_soft_failures_do_not_abort(self, store, settings, sleeps):
        client = FakeClient({(0, "All"): [_entry(i) for i in range(1, 6)]})
        fetcher = FakeFetcher({3: None}, fail={2, 4})

        summary = _orchestrator(store, settings, client, fetcher, sleeps).sync()

        assert summary.processed == 2
        assert summary.no_data == 1
        assert summary.failed == 2
        assert summary.refreshed == 5
        assert len(summary.errors) == 2
        assert all("Failed to fetch price" in e for e in summary.errors)
        assert store.latest_observation(3) is None
        assert store.latest_observation(5).price == 10.0

    def test_listing_failure_is_hard(self, store, settings, sleeps):
        client = FakeClient({(0, "All"): [_entry(1)]})
        client.fail_on = "items"
        fetcher = FakeFetcher()
        with pytest.raises(requests.ConnectionError):
            _orchestrator(store, settings, client, fetcher, sleeps).sync()
        assert fetcher.calls == []

    def test_nothing_stale(self, store, settings, sleeps):
        pools = []
        client = FakeClient({(0, "All"): [_entry(1)]})
        store.upsert_item(make_item(1))
        store.append_observation(make_observation(1, 10.0, hours_ago=2))
        summary = _orchestrator(store, settings, client, FakeFetcher(), sleeps, pools).sync()
        assert summary.refreshed == 0
        assert pools == []


class TestBatching:
    def test_pause_only_between_batches(self, store, settings, sleeps):
        settings.sync.batch_delay_seconds = 2.5
        client = FakeClient({(0, "All"): [_entry(i) for i in range(1, 8)]})
        progress = []
        orch = _orchestrator(store, settings, client, FakeFetcher(), sleeps)

        summary = orch.sync(batch_size=3, workers=2, on_progress=lambda d, t: progress.append((d, t)))

        assert summary.processed == 7
        assert sleeps == [2.5, 2.5]
        assert progress == [(3, 7), (6, 7), (7, 7)]

    def test_single_batch_has_no_pause(self, store, settings, sleeps):
        settings.sync.batch_delay_seconds = 2.5
        client = FakeClient({(0, "All"): [_entry(1), _entry(2)]})
        _orchestrator(store, settings, client, FakeFetcher(), sleeps).sync(batch_size=10)
        assert sleeps == []

    def test_pool_bounded_and_terminated(self, store, settings, sleeps):
        pools = []
        client = FakeClient({(0, "All"): [_entry(i) for i in range(1, 11)]})
        _orchestrator(store, settings, client, FakeFetcher(), sleeps, pools).sync(workers=3)
        [pool] = pools
        assert pool.size == 3
        assert pool.peak_active <= 3
        assert pool.closed

    def test_pool_terminated_when_commit_fails(self, store, settings, sleeps):
        pools = []
        orch = _orchestrator(store, settings, FakeClient(), FakeFetcher(), sleeps, pools)
        # Release 99 is not in the store, so committing its observation fails.
        with pytest.raises(sqlite3.IntegrityError):
            orch.refresh_prices([99], SyncSummary())
        assert pools[0].closed

