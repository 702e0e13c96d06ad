"""Discogs API client with shared rate limiting and pagination."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

import requests

from src.common.config import DiscogsSettings

from .models import CollectionEntry, Folder, MarketplaceStats, WantlistEntry
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

ALL_FOLDER_ID = 0


def is_transient_error(exc: BaseException) -> bool:
    """True when a failed request is worth retrying.

    4xx client errors are permanent, except 429 rate limiting.
    """
    if isinstance(exc, requests.HTTPError):
        response = exc.response
        if response is None:
            return True
        status = response.status_code
        return status == 429 or status >= 500
    return isinstance(exc, requests.RequestException)


class DiscogsClient:
    """Authenticated Discogs client.

    Features:
    - Token authentication plus a fixed User-Agent
    - Rate limiting (shared RateLimiter across worker clients)
    - Paginated collection/wantlist listing with a pause between pages

    A single instance is used by one thread at a time; workers each build
    their own client around a shared RateLimiter.
    """

    def __init__(
        self,
        settings: DiscogsSettings,
        rate_limiter: RateLimiter | None = None,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self._rate_limiter = rate_limiter or RateLimiter(settings.rate_limit_rpm)
        self._session = session or requests.Session()
        self._session.headers.update({
            "Authorization": f"Discogs token={settings.token}",
            "User-Agent": settings.user_agent,
        })
        self._sleep = sleep

    def _get(self, path: str, params: dict[str, Any] | None = None) -> dict:
        """Send one rate-limited GET and decode the JSON body.

        Raises:
            requests.HTTPError: Non-2xx response (carries the status text).
            requests.RequestException: Transport failure.
        """
        url = f"{self.settings.base_url}{path}"
        self._rate_limiter.wait()
        logger.debug("GET %s params=%s", url, params)
        resp = self._session.get(
            url,
            params=params,
            timeout=self.settings.request_timeout,
        )
        resp.raise_for_status()
        return resp.json()

    def _paginate(self, path: str, key: str) -> list[dict]:
        """Collect every page of a paginated listing."""
        items: list[dict] = []
        page = 1
        while True:
            data = self._get(
                path, params={"page": page, "per_page": self.settings.page_size}
            )
            items.extend(data.get(key) or [])
            pages = (data.get("pagination") or {}).get("pages", 1)
            if page >= pages:
                break
            page += 1
            self._sleep(self.settings.page_delay_seconds)
        return items

    # --- Collection ---

    def get_folders(self) -> list[Folder]:
        data = self._get(f"/users/{self.settings.username}/collection/folders")
        return [Folder.from_api(f) for f in data.get("folders") or []]

    def get_folder_items(self, folder_id: int) -> list[CollectionEntry]:
        """List every release instance in a collection folder."""
        raw = self._paginate(
            f"/users/{self.settings.username}/collection/folders/{folder_id}/releases",
            "releases",
        )
        return [CollectionEntry.from_api(r) for r in raw]

    def get_collection(self) -> list[CollectionEntry]:
        """List the whole collection through the "All" folder."""
        return self.get_folder_items(ALL_FOLDER_ID)

    def get_wantlist(self) -> list[WantlistEntry]:
        raw = self._paginate(f"/users/{self.settings.username}/wants", "wants")
        return [WantlistEntry.from_api(w) for w in raw]

    # --- Marketplace ---

    def get_marketplace_stats(self, release_id: int) -> MarketplaceStats | None:
        """Fetch lowest price and listing count.

        Returns:
            MarketplaceStats, or None when the release has no active listings.
        """
        data = self._get(f"/marketplace/stats/{release_id}")
        return MarketplaceStats.from_api(release_id, data)

    def get_community_want_count(self, release_id: int) -> int:
        data = self._get(f"/releases/{release_id}")
        community = data.get("community") or {}
        return int(community.get("want", 0) or 0)

    def close(self) -> None:
        """Close the underlying session."""
        self._session.close()

    def __enter__(self) -> DiscogsClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
