"""Base worker class with cancellation support.

This module provides:
- WorkerState: Enum for worker lifecycle states
- WorkerResult: Result of a worker execution
- BaseWorker: Abstract base class for interruptible workers
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


class WorkerState(Enum):
    """State of a worker."""

    IDLE = auto()
    RUNNING = auto()
    COMPLETED = auto()
    CANCELLED = auto()
    FAILED = auto()


@dataclass
class WorkerResult:
    """Result of a worker execution.

    Attributes:
        success: Whether the operation succeeded.
        result: The result value if successful (type depends on worker).
        error: Error message if failed.
        exception: The exception that failed the operation, if any.
        cancelled: Whether the operation was cancelled.
        elapsed_time: Time taken in seconds.
    """

    success: bool
    result: Any = None
    error: str | None = None
    exception: BaseException | None = None
    cancelled: bool = False
    elapsed_time: float = 0.0


@dataclass
class WorkerContext:
    """Context passed to worker execution.

    Attributes:
        job: The upload or download being processed.
        cancel_check: Function to check if cancellation was requested.
        on_progress: Optional progress callback (percentage 0-100).
    """

    job: Any
    cancel_check: Callable[[], bool] = field(default=lambda: False)
    on_progress: Callable[[float], None] | None = None

    def report(self, percent: float) -> None:
        """Report progress, clamped to 0-100."""
        if self.on_progress:
            self.on_progress(max(0.0, min(100.0, percent)))

    def check_cancelled(self) -> None:
        """Raise CancelledException if cancellation was requested."""
        if self.cancel_check():
            raise CancelledException()


class BaseWorker(ABC):
    """Abstract base class for interruptible workers.

    Workers process one transfer (upload or download) and support:
    - Cancellation at any point via cancel() or an external cancel check
    - Progress reporting via callbacks

    Subclasses must implement:
    - _do_work(): The actual work logic
    - worker_type: Property returning the worker type name

    Usage:
        class MyWorker(BaseWorker):
            @property
            def worker_type(self) -> str:
                return "my_worker"

            def _do_work(self, ctx: WorkerContext) -> MyResult:
                ctx.check_cancelled()
                return MyResult(...)

        worker = MyWorker()
        result = worker.execute(job, on_progress=callback)
    """

    def __init__(self) -> None:
        """Initialize the worker."""
        self._worker_state = WorkerState.IDLE
        self._cancel_requested = False
        self._lock = threading.Lock()

    @property
    @abstractmethod
    def worker_type(self) -> str:
        """Return the worker type name (e.g., 'upload', 'download')."""
        ...

    @property
    def state(self) -> WorkerState:
        """Get current worker state."""
        return self._worker_state

    @property
    def is_running(self) -> bool:
        """Check if worker is currently running."""
        return self._worker_state == WorkerState.RUNNING

    def cancel(self) -> bool:
        """Request cancellation of the current operation.

        Returns:
            True if cancellation was requested, False if not running.
        """
        with self._lock:
            if self._worker_state != WorkerState.RUNNING:
                return False
            self._cancel_requested = True
            logger.info(f"{self.worker_type} worker: cancellation requested")
            return True

    def execute(
        self,
        job: Any,
        on_progress: Callable[[float], None] | None = None,
        cancel_check: Callable[[], bool] | None = None,
    ) -> WorkerResult:
        """Execute the worker operation.

        Never raises: failures and cancellation are reported in the result.

        Args:
            job: The upload or download to process.
            on_progress: Optional callback receiving a percentage.
            cancel_check: Optional external cancellation check function.

        Returns:
            The outcome of the operation.
        """
        with self._lock:
            if self._worker_state == WorkerState.RUNNING:
                logger.warning(f"{self.worker_type} worker: already running")
                return WorkerResult(success=False, error="Worker already running")
            self._worker_state = WorkerState.RUNNING
            self._cancel_requested = False

        start_time = time.time()

        # Combine internal and external cancel checks
        def combined_cancel_check() -> bool:
            if self._cancel_requested:
                return True
            if cancel_check and cancel_check():
                self._cancel_requested = True
                return True
            return False

        ctx = WorkerContext(
            job=job,
            cancel_check=combined_cancel_check,
            on_progress=on_progress,
        )

        try:
            result_value = self._do_work(ctx)
            elapsed = time.time() - start_time

            if combined_cancel_check():
                # Work completed but cancellation was requested
                self._worker_state = WorkerState.CANCELLED
                return WorkerResult(success=False, cancelled=True, elapsed_time=elapsed)

            self._worker_state = WorkerState.COMPLETED
            return WorkerResult(success=True, result=result_value, elapsed_time=elapsed)

        except CancelledException:
            elapsed = time.time() - start_time
            self._worker_state = WorkerState.CANCELLED
            logger.info(f"{self.worker_type} worker: cancelled after {elapsed:.2f}s")
            return WorkerResult(success=False, cancelled=True, elapsed_time=elapsed)

        except Exception as e:
            elapsed = time.time() - start_time
            self._worker_state = WorkerState.FAILED
            error_msg = str(e) or type(e).__name__
            logger.error(f"{self.worker_type} worker failed: {error_msg}")
            return WorkerResult(
                success=False, error=error_msg, exception=e, elapsed_time=elapsed
            )

    @abstractmethod
    def _do_work(self, ctx: WorkerContext) -> Any:
        """Perform the actual work.

        The implementation should:
        1. Periodically call ctx.check_cancelled()
        2. Report progress via ctx.report(percent)
        3. Return the result on success

        Args:
            ctx: Worker context with job, cancel check, and progress callback.

        Returns:
            The result of the operation.

        Raises:
            CancelledException: If cancellation was requested.
            Exception: Any other error during execution.
        """
        ...


class CancelledException(Exception):
    """Raised when a worker operation is cancelled."""
