"""Worker pool for concurrent transfer operations.

This module provides:
- TransferPool: Daemon worker threads consuming a task queue
- PoolState: Lifecycle of the pool
"""

from __future__ import annotations

import logging
import queue
import threading
from enum import Enum, auto
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


class PoolState(Enum):
    """State of the worker pool."""

    STOPPED = auto()
    RUNNING = auto()
    STOPPING = auto()


class TransferPool:
    """Pool of worker threads for uploads or downloads.

    Tasks are plain callables. Cancellation is cooperative and belongs to
    the submitting queue, which hands its cancel check to the worker.

    Usage:
        pool = TransferPool(max_workers=4, name="uploads")
        pool.start()
        pool.submit(task)
        pool.stop()
    """

    def __init__(self, max_workers: int = 4, name: str = "TransferPool") -> None:
        """Initialize the worker pool.

        Args:
            max_workers: Number of worker threads.
            name: Thread name prefix.
        """
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self._max_workers = max_workers
        self._name = name

        self._pool_state = PoolState.STOPPED
        self._lock = threading.Lock()
        self._task_queue: queue.Queue[Callable[[], None] | None] = queue.Queue()
        self._workers: list[threading.Thread] = []

        self._active_count = 0
        self._completed_count = 0
        self._error_count = 0

    @property
    def state(self) -> PoolState:
        """Get current pool state."""
        return self._pool_state

    @property
    def max_workers(self) -> int:
        """Get the number of worker threads."""
        return self._max_workers

    @property
    def active_count(self) -> int:
        """Get number of tasks being executed."""
        with self._lock:
            return self._active_count

    @property
    def queue_size(self) -> int:
        """Get number of queued tasks."""
        return self._task_queue.qsize()

    @property
    def completed_count(self) -> int:
        """Get number of tasks that returned normally."""
        return self._completed_count

    @property
    def error_count(self) -> int:
        """Get number of tasks that raised."""
        return self._error_count

    def start(self) -> None:
        """Start the worker pool."""
        with self._lock:
            if self._pool_state != PoolState.STOPPED:
                logger.warning(f"{self._name} already running")
                return

            self._pool_state = PoolState.RUNNING
            for i in range(self._max_workers):
                thread = threading.Thread(
                    target=self._worker_loop,
                    name=f"{self._name}-{i}",
                    daemon=True,
                )
                thread.start()
                self._workers.append(thread)

            logger.info(f"{self._name} started with {self._max_workers} workers")

    def stop(self, timeout: float = 10.0) -> None:
        """Stop the worker pool.

        Queued tasks that have not started are dropped.

        Args:
            timeout: Maximum time to wait for workers to finish.
        """
        with self._lock:
            if self._pool_state == PoolState.STOPPED:
                return
            self._pool_state = PoolState.STOPPING
            logger.info(f"{self._name} stopping...")

        # Drop pending tasks, then send poison pills
        while True:
            try:
                self._task_queue.get_nowait()
            except queue.Empty:
                break
        for _ in self._workers:
            self._task_queue.put(None)

        for worker in self._workers:
            worker.join(timeout=timeout / len(self._workers))

        with self._lock:
            self._pool_state = PoolState.STOPPED
            self._workers.clear()
            logger.info(f"{self._name} stopped")

    def submit(self, fn: Callable[[], None]) -> bool:
        """Submit a task to the pool.

        Returns:
            True if the task was queued, False if the pool is not running.
        """
        if self._pool_state != PoolState.RUNNING:
            logger.warning(f"Cannot submit task: {self._name} not running")
            return False
        self._task_queue.put(fn)
        return True

    def _worker_loop(self) -> None:
        """Main loop for worker threads."""
        while True:
            try:
                task = self._task_queue.get(timeout=1.0)
            except queue.Empty:
                if self._pool_state != PoolState.RUNNING:
                    break
                continue

            if task is None:
                # Poison pill - stop worker
                break

            with self._lock:
                self._active_count += 1
            try:
                task()
                self._completed_count += 1
            except Exception:
                self._error_count += 1
                logger.exception(f"Unexpected error in {self._name} task")
            finally:
                with self._lock:
                    self._active_count -= 1
