"""Sync pipeline - worker pool, price fetch task and orchestrator."""

from .models import FetchStatus, PriceFetchResult, SyncSummary
from .orchestrator import SyncOrchestrator, is_stale
from .price_fetcher import PriceFetcher, backoff_delay, retry_with_backoff
from .worker_pool import MAX_POOL_SIZE, TaskResult, WorkerPool, WorkerTask

__all__ = [
    "FetchStatus",
    "MAX_POOL_SIZE",
    "PriceFetchResult",
    "PriceFetcher",
    "SyncOrchestrator",
    "SyncSummary",
    "TaskResult",
    "WorkerPool",
    "WorkerTask",
    "backoff_delay",
    "is_stale",
    "retry_with_backoff",
]
