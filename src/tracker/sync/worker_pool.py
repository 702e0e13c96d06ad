"""Bounded worker pool for network-bound fetch tasks.

A FIFO queue feeds N worker threads. Each submitted task gets its own
Future keyed by task id, so results pair with their task no matter which
worker finishes first. Handler exceptions become failed results; a worker
never dies because of a task.

Usage:
    with WorkerPool(fetch_price, max_workers=4) as pool:
        results = pool.submit_batch(tasks)
"""

from __future__ import annotations

import logging
import queue
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

# The bottleneck is the remote rate limit, not local cores.
MAX_POOL_SIZE = 8

_STOP = object()


@dataclass
class WorkerTask(Generic[T]):
    """A unit of work addressed by id."""

    id: str
    data: T


@dataclass
class TaskResult(Generic[R]):
    """Outcome of one task, tagged with the originating task id."""

    task_id: str
    success: bool
    result: R | None = None
    error: str | None = None


class WorkerPool(Generic[T, R]):
    """Fixed-size pool running one task per worker at a time.

    Args:
        handler: Called as handler(task.data) on a worker thread.
        max_workers: Pool size, clamped to [1, max_pool_size].
        max_pool_size: Hard cap on concurrent workers.
        name: Thread name prefix.
    """

    def __init__(
        self,
        handler: Callable[[T], R],
        max_workers: int | None = None,
        max_pool_size: int = MAX_POOL_SIZE,
        name: str = "worker",
    ) -> None:
        requested = max_workers or max_pool_size
        self.size = max(1, min(requested, max_pool_size))
        if requested > self.size:
            logger.warning(
                "Requested %d workers; capped at %d", requested, self.size
            )

        self._handler = handler
        self._queue: queue.Queue[Any] = queue.Queue()
        self._lock = threading.Lock()
        self._closed = False
        self._active = 0
        self._peak_active = 0
        self._workers: list[threading.Thread] = []

        logger.debug("Initializing worker pool with %d workers", self.size)
        for i in range(self.size):
            thread = threading.Thread(
                target=self._run, args=(i,), name=f"{name}-{i}", daemon=True
            )
            thread.start()
            self._workers.append(thread)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def peak_active(self) -> int:
        """Most tasks ever observed running at once."""
        return self._peak_active

    def _run(self, index: int) -> None:
        while True:
            entry = self._queue.get()
            if entry is _STOP:
                logger.debug("Worker %d stopping", index)
                return

            task, future = entry
            if not future.set_running_or_notify_cancel():
                continue

            with self._lock:
                self._active += 1
                self._peak_active = max(self._peak_active, self._active)

            logger.debug("Worker %d running task %s", index, task.id)
            try:
                value = self._handler(task.data)
            except Exception as exc:
                logger.debug("Worker %d task %s failed: %s", index, task.id, exc)
                outcome = TaskResult(task_id=task.id, success=False, error=str(exc))
            else:
                outcome = TaskResult(task_id=task.id, success=True, result=value)
            finally:
                with self._lock:
                    self._active -= 1

            future.set_result(outcome)

    def submit(self, task: WorkerTask[T]) -> Future[TaskResult[R]]:
        """Queue a task; the future resolves when a worker completes it.

        Raises:
            RuntimeError: The pool has been terminated.
        """
        future: Future[TaskResult[R]] = Future()
        with self._lock:
            if self._closed:
                raise RuntimeError("Worker pool has been terminated")
            self._queue.put((task, future))
        return future

    def submit_batch(self, tasks: list[WorkerTask[T]]) -> list[TaskResult[R]]:
        """Run tasks concurrently and return results in submission order."""
        futures = [self.submit(task) for task in tasks]
        return [f.result() for f in futures]

    def terminate(self) -> None:
        """Stop accepting work and release the workers.

        Tasks still queued resolve as failed results. In-flight tasks run to
        completion on their own thread. Calling again is a no-op.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True

            drained = 0
            while True:
                try:
                    entry = self._queue.get_nowait()
                except queue.Empty:
                    break
                task, future = entry
                if future.set_running_or_notify_cancel():
                    future.set_result(TaskResult(
                        task_id=task.id,
                        success=False,
                        error="Worker pool terminated",
                    ))
                drained += 1

            for _ in self._workers:
                self._queue.put(_STOP)

        logger.debug("Worker pool terminated (%d queued tasks dropped)", drained)

    def join(self, timeout: float | None = None) -> None:
        """Wait for worker threads to exit after terminate()."""
        for thread in self._workers:
            thread.join(timeout)

    def __enter__(self) -> WorkerPool[T, R]:
        return self

    def __exit__(self, *args: object) -> None:
        self.terminate()
