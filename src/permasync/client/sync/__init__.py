"""Sync engine for permanent ledger drives.

Architecture:
    FileWatcher -> SyncCoordinator -> UploadQueue -> ledger / credits services
    SyncCoordinator (reconciliation) -> DownloadQueue -> local folder

Components:
- **SyncCoordinator**: Per-drive phase machine, watch and reconcile tick
  (``permasync.client.sync.coordinator``)
- **UploadQueue**: Approval gating, conflicts, settlement, submission
- **DownloadQueue**: Bounded-concurrency FIFO of remote files to materialize
- **ConflictResolver** / **CostEstimator**: Classification and pricing
- **SyncEngine**: Session wiring and teardown (``permasync.client.sync.engine``)

The coordinator and the engine are imported from their modules; this package
only re-exports the shared types.
"""

from permasync.client.sync.ignore import IgnorePatterns
from permasync.client.sync.progress import ProgressBroadcaster, ProgressEvent, ProgressKind
from permasync.client.sync.retry import NETWORK_EXCEPTIONS, retry_with_backoff
from permasync.client.sync.types import (
    DownloadError,
    DownloadStatus,
    DriveMapping,
    EnumerationError,
    InsufficientBalanceError,
    KeyDerivationError,
    Privacy,
    SettlementMethod,
    SyncError,
    SyncPhase,
    SyncResult,
    SyncSnapshotState,
    UploadError,
    UploadStatus,
)

__all__ = [
    # Errors
    "DownloadError",
    "EnumerationError",
    "InsufficientBalanceError",
    "KeyDerivationError",
    "SyncError",
    "UploadError",
    # Types
    "DownloadStatus",
    "DriveMapping",
    "Privacy",
    "SettlementMethod",
    "SyncPhase",
    "SyncResult",
    "SyncSnapshotState",
    "UploadStatus",
    # Progress
    "ProgressBroadcaster",
    "ProgressEvent",
    "ProgressKind",
    # Utilities
    "IgnorePatterns",
    "NETWORK_EXCEPTIONS",
    "retry_with_backoff",
]
