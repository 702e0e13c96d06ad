"""Sync orchestrator: collection listing, staleness, batched price refresh.

Phases run in order so items and memberships are committed before any
price for them is fetched:

1. Folders and their items  -> upsert item + membership   (hard failures)
2. Wantlist                 -> upsert item + want entry   (hard failures)
3. Refresh set              -> items whose latest observation is stale
4. Batches through the pool -> pause between batches      (soft failures)
5. Commit observations on the coordinating thread only
"""

from __future__ import annotations

import logging
import math
import time
from datetime import datetime
from typing import Callable

from src.common.config import Settings

from ..database.models import utc_now
from ..database.store import PriceStore
from ..discogs.client import DiscogsClient
from .models import FetchStatus, PriceFetchResult, SyncSummary
from .price_fetcher import PriceFetcher
from .worker_pool import TaskResult, WorkerPool, WorkerTask

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


def hours_since(timestamp: datetime | None, now: datetime) -> float:
    """Hours between an observation and now; infinite when never observed."""
    if timestamp is None:
        return math.inf
    return (now - timestamp).total_seconds() / 3600


def is_stale(
    last_observed: datetime | None,
    now: datetime,
    check_interval_hours: float,
    force: bool = False,
) -> bool:
    """True when an item needs a price refresh."""
    if force:
        return True
    return hours_since(last_observed, now) >= check_interval_hours


def chunked(items: list, size: int) -> list[list]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class SyncOrchestrator:
    """Drives one sync run against a store.

    Args:
        store: Target store; written only from the calling thread.
        client: Client for folder/wantlist listing.
        settings: Explicit settings (no ambient lookup).
        fetcher: Worker handler. Defaults to a PriceFetcher.
        pool_factory: Builds the worker pool, given (handler, size).
        sleep: Inter-batch pause function.
        clock: Returns the current aware UTC datetime.
    """

    def __init__(
        self,
        store: PriceStore,
        client: DiscogsClient,
        settings: Settings,
        fetcher: Callable[[int], PriceFetchResult] | None = None,
        pool_factory: Callable[..., WorkerPool] | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.client = client
        self.settings = settings
        self.fetcher = fetcher or PriceFetcher(settings.discogs, settings.sync)
        self._pool_factory = pool_factory or self._default_pool
        self._sleep = sleep
        self._clock = clock

    def _default_pool(self, handler: Callable, size: int) -> WorkerPool:
        return WorkerPool(
            handler,
            max_workers=size,
            max_pool_size=self.settings.sync.max_workers,
            name="price-fetcher",
        )

    # --- Phase 1 & 2 ---

    def sync_collection(self) -> list[int]:
        """Upsert every folder's items and memberships.

        Returns:
            Distinct collected release ids, in first-seen order.
        """
        folders = self.client.get_folders()
        logger.info("Found %d folders", len(folders))

        release_ids: list[int] = []
        seen: set[int] = set()
        for folder in folders:
            entries = self.client.get_folder_items(folder.id)
            logger.info("Folder '%s': %d items", folder.name, len(entries))
            for entry in entries:
                self.store.upsert_item(entry.to_item())
                self.store.upsert_membership(entry.to_membership(folder))
                if entry.id not in seen:
                    seen.add(entry.id)
                    release_ids.append(entry.id)

        return release_ids

    def sync_wantlist(self) -> int:
        """Upsert every wantlist item and its want entry."""
        wants = self.client.get_wantlist()
        for want in wants:
            self.store.upsert_item(want.to_item())
            self.store.upsert_want(want.to_want())
        logger.info("Wantlist: %d items", len(wants))
        return len(wants)

    # --- Phase 3 ---

    def select_stale(
        self,
        release_ids: list[int],
        force: bool = False,
        now: datetime | None = None,
    ) -> tuple[list[int], list[int]]:
        """Split release ids into (needs refresh, already fresh)."""
        now = now or self._clock()
        interval = self.settings.tracking.check_interval_hours
        refresh: list[int] = []
        fresh: list[int] = []
        for release_id in release_ids:
            latest = self.store.latest_observation(release_id)
            observed = latest.observed_at if latest else None
            if is_stale(observed, now, interval, force):
                refresh.append(release_id)
            else:
                fresh.append(release_id)
        return refresh, fresh

    # --- Phase 4 & 5 ---

    def refresh_prices(
        self,
        release_ids: list[int],
        summary: SyncSummary,
        workers: int | None = None,
        batch_size: int | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> SyncSummary:
        """Fetch prices in paced batches and commit the observations."""
        if not release_ids:
            return summary

        workers = workers or self.settings.sync.workers
        batch_size = batch_size or self.settings.sync.batch_size
        tasks = [
            WorkerTask(id=f"price-{release_id}-{index}", data=release_id)
            for index, release_id in enumerate(release_ids)
        ]
        batches = chunked(tasks, batch_size)

        logger.info(
            "Fetching prices for %d items (%d workers, %d batches)",
            len(tasks), workers, len(batches),
        )

        pool = self._pool_factory(self.fetcher, workers)
        completed = 0
        try:
            for index, batch in enumerate(batches):
                results = pool.submit_batch(batch)
                for result in results:
                    self._commit_result(result, summary)
                completed += len(batch)
                if on_progress:
                    on_progress(completed, len(tasks))

                if index < len(batches) - 1:
                    self._sleep(self.settings.sync.batch_delay_seconds)
        finally:
            pool.terminate()

        return summary

    def _commit_result(self, result: TaskResult, summary: SyncSummary) -> None:
        if not result.success:
            summary.failed += 1
            summary.errors.append(f"{result.task_id}: {result.error}")
            return

        fetched: PriceFetchResult = result.result
        if fetched.status == FetchStatus.NO_DATA:
            summary.no_data += 1
            return

        observation = fetched.to_observation()
        if observation is None:
            summary.no_data += 1
            return
        self.store.append_observation(observation)
        summary.processed += 1

    # --- Full run ---

    def sync(
        self,
        force: bool = False,
        workers: int | None = None,
        batch_size: int | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> SyncSummary:
        """Run all phases.

        Raises:
            requests.RequestException: Folder, folder item or wantlist listing
                failed; nothing after that point runs.
        """
        started = time.monotonic()
        summary = SyncSummary()

        release_ids = self.sync_collection()
        summary.collection_items = len(release_ids)
        summary.wants = self.sync_wantlist()
        logger.info(
            "Collection synced: %d items, %d wants",
            summary.collection_items, summary.wants,
        )

        refresh, fresh = self.select_stale(release_ids, force=force)
        summary.skipped = len(fresh)
        if not refresh:
            logger.info("All prices are up to date (use --force to update anyway)")
        else:
            self.refresh_prices(
                refresh,
                summary,
                workers=workers,
                batch_size=batch_size,
                on_progress=on_progress,
            )

        summary.duration_seconds = time.monotonic() - started
        logger.info(
            "Price sync complete. Processed: %d, Skipped: %d, No data: %d, Errors: %d",
            summary.processed, summary.skipped, summary.no_data, summary.failed,
        )
        if summary.errors:
            logger.warning("%d items failed:\n  %s", summary.failed, "\n  ".join(summary.errors))
        return summary
