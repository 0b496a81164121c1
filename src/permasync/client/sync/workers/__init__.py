"""Workers for background transfer operations.

This package provides interruptible workers for the sync queues:
- BaseWorker: Abstract base class with cancellation support
- UploadWorker: Submits a local file to the ledger
- DownloadWorker: Materializes a remote file locally
- TransferPool: Manages concurrent worker threads

Usage:
    from permasync.client.sync.workers import TransferPool

    pool = TransferPool(max_workers=4, name="uploads")
    pool.start()
    pool.submit(task)
    pool.stop()
"""

from permasync.client.sync.workers.base import (
    BaseWorker,
    CancelledException,
    WorkerContext,
    WorkerResult,
    WorkerState,
)
from permasync.client.sync.workers.download import (
    DownloadJob,
    DownloadWorker,
    describe_download_error,
)
from permasync.client.sync.workers.pool import PoolState, TransferPool
from permasync.client.sync.workers.upload import UploadJob, UploadOutcome, UploadWorker

__all__ = [
    # Base
    "BaseWorker",
    "CancelledException",
    "WorkerContext",
    "WorkerResult",
    "WorkerState",
    # Workers
    "DownloadJob",
    "DownloadWorker",
    "UploadJob",
    "UploadOutcome",
    "UploadWorker",
    "describe_download_error",
    # Pool
    "PoolState",
    "TransferPool",
]
