"""Tests for the bounded worker pool."""

from __future__ import annotations

import threading
import time

import pytest

from src.tracker.sync.worker_pool import MAX_POOL_SIZE, TaskResult, WorkerPool, WorkerTask


class ConcurrencyProbe:
    """Handler that records how many calls overlap."""

    def __init__(self, delay: float = 0.01) -> None:
        self.delay = delay
        self.lock = threading.Lock()
        self.active = 0
        self.peak = 0
        self.calls: list[int] = []

    def __call__(self, value: int) -> int:
        with self.lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
            self.calls.append(value)
        time.sleep(self.delay)
        with self.lock:
            self.active -= 1
        return value * 2


class TestExecution:
    def test_every_task_runs_once_within_bound(self):
        probe = ConcurrencyProbe()
        tasks = [WorkerTask(id=f"t{i}", data=i) for i in range(30)]
        with WorkerPool(probe, max_workers=4) as pool:
            results = pool.submit_batch(tasks)

        assert sorted(probe.calls) == list(range(30))
        assert probe.peak <= 4
        assert pool.peak_active <= 4
        assert [r.task_id for r in results] == [t.id for t in tasks]
        assert all(r.success for r in results)
        assert [r.result for r in results] == [i * 2 for i in range(30)]

    def test_results_pair_with_task_ids_out_of_order(self):
        def handler(delay: float) -> float:
            time.sleep(delay)
            return delay

        tasks = [
            WorkerTask(id="slow", data=0.05),
            WorkerTask(id="fast", data=0.0),
        ]
        with WorkerPool(handler, max_workers=2) as pool:
            results = pool.submit_batch(tasks)

        assert {r.task_id: r.result for r in results} == {"slow": 0.05, "fast": 0.0}

    def test_handler_error_becomes_failed_result(self):
        def handler(value: int) -> int:
            if value == 2:
                raise ValueError("boom")
            return value

        tasks = [WorkerTask(id=str(i), data=i) for i in range(4)]
        with WorkerPool(handler, max_workers=2) as pool:
            results = pool.submit_batch(tasks)
            # Workers survive a failing task.
            follow_up = pool.submit(WorkerTask(id="after", data=9)).result(timeout=5)

        failed = [r for r in results if not r.success]
        assert failed == [TaskResult(task_id="2", success=False, error="boom")]
        assert follow_up.success and follow_up.result == 9

    def test_single_worker_runs_in_fifo_order(self):
        probe = ConcurrencyProbe(delay=0)
        tasks = [WorkerTask(id=str(i), data=i) for i in range(10)]
        with WorkerPool(probe, max_workers=1) as pool:
            pool.submit_batch(tasks)
        assert probe.calls == list(range(10))
        assert probe.peak == 1


class TestSizing:
    def test_capped_at_max_pool_size(self):
        pool = WorkerPool(lambda x: x, max_workers=50)
        try:
            assert pool.size == MAX_POOL_SIZE
        finally:
            pool.terminate()

    def test_default_size(self):
        pool = WorkerPool(lambda x: x, max_pool_size=3)
        try:
            assert pool.size == 3
        finally:
            pool.terminate()

    def test_minimum_one_worker(self):
        pool = WorkerPool(lambda x: x, max_workers=-2)
        try:
            assert pool.size == 1
        finally:
            pool.terminate()


class TestTerminate:
    def test_terminate_is_idempotent(self):
        pool = WorkerPool(lambda x: x, max_workers=2)
        pool.terminate()
        pool.terminate()
        pool.join(timeout=5)
        assert pool.closed
        assert not any(t.is_alive() for t in pool._workers)

    def test_submit_after_terminate_raises(self):
        pool = WorkerPool(lambda x: x, max_workers=1)
        pool.terminate()
        with pytest.raises(RuntimeError):
            pool.submit(WorkerTask(id="late", data=1))

    def test_queued_tasks_resolve_as_failed(self):
        release = threading.Event()
        started = threading.Event()

        def handler(value: int) -> int:
            started.set()
            release.wait(timeout=5)
            return value

        pool = WorkerPool(handler, max_workers=1)
        running = pool.submit(WorkerTask(id="running", data=1))
        assert started.wait(timeout=5)
        queued = [pool.submit(WorkerTask(id=f"q{i}", data=i)) for i in range(3)]

        pool.terminate()
        release.set()

        for future in queued:
            result = future.result(timeout=5)
            assert not result.success
            assert result.error == "Worker pool terminated"
        assert running.result(timeout=5).success
        pool.join(timeout=5)
