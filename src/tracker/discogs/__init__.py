"""Discogs API access for collection sync and marketplace stats."""

from .client import ALL_FOLDER_ID, DiscogsClient, is_transient_error
from .models import (
    BasicInformation,
    CollectionEntry,
    Folder,
    MarketplaceStats,
    WantlistEntry,
)
from .rate_limiter import RateLimiter

__all__ = [
    "ALL_FOLDER_ID",
    "BasicInformation",
    "CollectionEntry",
    "DiscogsClient",
    "Folder",
    "MarketplaceStats",
    "RateLimiter",
    "WantlistEntry",
    "is_transient_error",
]
