"""Rate-limited marketplace price fetch task.

Runs on worker threads. Each thread lazily builds its own DiscogsClient;
all clients share one RateLimiter so the pool as a whole respects the
remote request budget.
"""

from __future__ import annotations

import logging
import random
import threading
import time
from typing import Callable, TypeVar

import requests

from src.common.config import DiscogsSettings, SyncSettings

from ..database.models import format_timestamp, utc_now
from ..discogs.client import DiscogsClient, is_transient_error
from ..discogs.rate_limiter import RateLimiter
from .models import FetchStatus, PriceFetchResult

logger = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delay(
    attempt: int,
    base_delay: float,
    jitter: float,
    rng: random.Random | None = None,
) -> float:
    """Delay before retry number ``attempt`` (0-based): base * 2^attempt + jitter."""
    spread = (rng or random).uniform(0, jitter) if jitter > 0 else 0.0
    return base_delay * (2 ** attempt) + spread


def retry_with_backoff(
    fn: Callable[[], T],
    *,
    max_retries: int = 3,
    base_delay: float = 1.0,
    jitter: float = 1.0,
    is_transient: Callable[[BaseException], bool] = is_transient_error,
    sleep: Callable[[float], None] = time.sleep,
    rng: random.Random | None = None,
) -> T:
    """Call fn, retrying transient failures with exponential backoff.

    At most ``max_retries + 1`` attempts are made. Permanent errors and the
    last transient error are re-raised.
    """
    for attempt in range(max_retries + 1):
        try:
            return fn()
        except Exception as exc:
            if attempt >= max_retries or not is_transient(exc):
                raise
            wait_time = backoff_delay(attempt, base_delay, jitter, rng)
            logger.warning(
                "Request failed (attempt %d/%d): %s, retrying in %.1fs",
                attempt + 1,
                max_retries + 1,
                exc,
                wait_time,
            )
            sleep(wait_time)
    raise AssertionError("unreachable")


class PriceFetcher:
    """Worker-pool handler: release id -> PriceFetchResult.

    A release with no active listings yields a NO_DATA result, not an
    error. Failures after retries propagate so the pool records them
    against the task.
    """

    def __init__(
        self,
        discogs: DiscogsSettings,
        sync: SyncSettings,
        rate_limiter: RateLimiter | None = None,
        client_factory: Callable[[], DiscogsClient] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.discogs = discogs
        self.sync = sync
        self.rate_limiter = rate_limiter or RateLimiter(discogs.rate_limit_rpm)
        self._client_factory = client_factory or (
            lambda: DiscogsClient(self.discogs, rate_limiter=self.rate_limiter)
        )
        self._sleep = sleep
        self._local = threading.local()

    def _client(self) -> DiscogsClient:
        client = getattr(self._local, "client", None)
        if client is None:
            client = self._client_factory()
            self._local.client = client
        return client

    def _retry(self, fn: Callable[[], T]) -> T:
        return retry_with_backoff(
            fn,
            max_retries=self.sync.max_retries,
            base_delay=self.sync.backoff_base_seconds,
            jitter=self.sync.backoff_jitter_seconds,
            sleep=self._sleep,
        )

    def fetch_want_count(self, release_id: int) -> int:
        """Community want count; 0 when the lookup fails."""
        try:
            return self._client().get_community_want_count(release_id)
        except requests.RequestException as exc:
            logger.debug("Want count lookup failed for %d: %s", release_id, exc)
            return 0

    def __call__(self, release_id: int) -> PriceFetchResult:
        client = self._client()
        try:
            stats = self._retry(lambda: client.get_marketplace_stats(release_id))
        except requests.RequestException as exc:
            raise RuntimeError(
                f"Failed to fetch price for release {release_id}: {exc}"
            ) from exc

        if stats is None:
            logger.debug("No marketplace listings for release %d", release_id)
            return PriceFetchResult(release_id=release_id, status=FetchStatus.NO_DATA)

        stats.wants_count = self.fetch_want_count(release_id)
        return PriceFetchResult(
            release_id=release_id,
            status=FetchStatus.OK,
            stats=stats,
            timestamp=format_timestamp(utc_now()),
        )
