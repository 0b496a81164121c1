"""Shared types and dataclasses for sync operations.

This module provides:
- SyncError, UploadError, DownloadError, EnumerationError: Exception classes
- SyncPhase, SyncSnapshotState: Coordinator state broadcast to observers
- DriveMapping, RemoteEntry: Drive and remote ledger metadata
- PendingUpload, UploadProgressRecord: Upload queue entries
- FileDownload: Download queue entries
- SettlementMethod, Balances, CostEstimate, CostBreakdown: Cost accounting
- ConflictType, ResolutionVerb, ConflictResolution: Conflict protocol
- WatchEvent: Filesystem watch events
- Type aliases for callbacks
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class SyncError(Exception):
    """Base exception for sync errors."""


class UploadError(SyncError):
    """Failed to upload a file."""


class InsufficientBalanceError(UploadError):
    """The selected settlement method cannot cover the upload cost."""


class DownloadError(SyncError):
    """Failed to download a file."""


class EnumerationError(SyncError):
    """The remote drive contents could not be listed.

    Attributes:
        fatal: True for failures that retrying will not fix (authentication).
    """

    def __init__(self, message: str, fatal: bool = False) -> None:
        super().__init__(message)
        self.fatal = fatal


class KeyDerivationError(SyncError):
    """A drive key could not be derived."""


# =============================================================================
# Drive and remote metadata
# =============================================================================


class Privacy(str, Enum):
    """Privacy mode of a drive."""

    PUBLIC = "public"
    PRIVATE = "private"


@dataclass
class DriveMapping:
    """A remote drive attached to a local folder.

    Attributes:
        drive_id: Remote drive identifier.
        root_folder_id: Remote id of the drive's root folder.
        name: Human-readable drive name.
        folder_path: Local sync folder.
        privacy: Public or private (private drives need an unlocked key).
        mapping_id: Local identifier of the mapping.
    """

    drive_id: str
    root_folder_id: str
    name: str
    folder_path: str
    privacy: Privacy = Privacy.PUBLIC
    mapping_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def is_private(self) -> bool:
        """Check if the drive is private."""
        return self.privacy == Privacy.PRIVATE


class EntryType(str, Enum):
    """Type of a remote drive entry."""

    FILE = "file"
    FOLDER = "folder"


@dataclass
class RemoteEntry:
    """An entry listed by the ledger storage service.

    ``path`` is the slash-separated path relative to the drive root; it is
    computed from the parent chain during reconciliation.
    """

    id: str
    name: str
    type: EntryType
    size: int = 0
    parent_id: str | None = None
    content_signature: str | None = None
    tx_refs: list[str] = field(default_factory=list)
    path: str = ""

    @property
    def is_folder(self) -> bool:
        """Check if the entry is a folder."""
        return self.type == EntryType.FOLDER

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RemoteEntry:
        """Create from a ledger listing dictionary."""
        return cls(
            id=str(data["id"]),
            name=data["name"],
            type=EntryType(data.get("type", "file")),
            size=int(data.get("size") or 0),
            parent_id=data.get("parentId"),
            content_signature=data.get("contentSignature"),
            tx_refs=list(data.get("txRefs") or []),
            path=data.get("path", ""),
        )


@dataclass
class SubmitResult:
    """Result of a ledger upload submission."""

    id: str
    tx_refs: list[str] = field(default_factory=list)


# =============================================================================
# Cost accounting
# =============================================================================


class SettlementMethod(str, Enum):
    """How an upload is paid for.

    A closed set: every branch on a method must handle all three members.
    """

    FREE = "free"
    CREDITS = "credits"
    NATIVE_TOKEN = "native_token"


@dataclass(frozen=True)
class Balances:
    """Account balances at a point in time."""

    native: float = 0.0
    credits: float = 0.0


@dataclass(frozen=True)
class CostEstimate:
    """Settlement method selected for an upload and its price.

    Attributes:
        method: Selected settlement method.
        price: Price under the selected method (0 for FREE).
        native_cost: Estimated cost in native tokens.
        credits_cost: Estimated cost in credits.
        sufficient_credits: Whether the credits balance covers credits_cost.
    """

    method: SettlementMethod
    price: float
    native_cost: float
    credits_cost: float
    sufficient_credits: bool


@dataclass(frozen=True)
class CostBucket:
    """Count and total price of uploads routed to one settlement method."""

    count: int = 0
    total: float = 0.0


@dataclass(frozen=True)
class CostBreakdown:
    """Aggregate cost of the upload queue, by settlement method."""

    free: CostBucket = CostBucket()
    credits: CostBucket = CostBucket()
    native_token: CostBucket = CostBucket()

    @property
    def total_count(self) -> int:
        """Number of uploads across all buckets."""
        return self.free.count + self.credits.count + self.native_token.count


# =============================================================================
# Conflicts
# =============================================================================


class ConflictType(str, Enum):
    """Conflict classification of a pending upload."""

    NONE = "none"
    DUPLICATE = "duplicate"
    FILENAME_CONFLICT = "filename_conflict"
    CONTENT_CONFLICT = "content_conflict"


class ResolutionVerb(str, Enum):
    """User choice for a conflicted upload."""

    KEEP_LOCAL = "keep_local"
    USE_REMOTE = "use_remote"
    KEEP_BOTH = "keep_both"
    SKIP = "skip"


@dataclass(frozen=True)
class ConflictResolution:
    """One-shot command resolving the conflict of an upload."""

    upload_id: str
    verb: ResolutionVerb


# =============================================================================
# Uploads
# =============================================================================


class UploadStatus(str, Enum):
    """Lifecycle status of a pending upload."""

    AWAITING_APPROVAL = "awaiting_approval"
    APPROVED = "approved"
    REJECTED = "rejected"


class ProgressStatus(str, Enum):
    """Status of an upload in flight."""

    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class PendingUpload:
    """A local file awaiting (or going through) upload.

    Attributes:
        local_path: Absolute local path.
        relative_path: Slash-separated path relative to the sync folder.
        file_name: Base name of the file.
        size: Size in bytes.
        mime_type: Guessed MIME type.
        content_signature: SHA-256 of the content at admission.
        status: Approval status.
        conflict: Conflict classification.
        conflict_detail: Human-readable explanation of the conflict.
        native_cost: Estimated native-token cost.
        credits_cost: Estimated credits cost.
        sufficient_credits: Whether the credits balance covers credits_cost.
        estimate: Settlement selected at admission/approval.
        method: Settlement method chosen at approval.
        metadata: Optional custom metadata tags.
        remote_id: Id of the conflicting remote entry, if any.
        upload_name: Name used remotely (differs from file_name after keep_both).
        id: Unique upload id.
        created_at: Admission timestamp.
    """

    local_path: str
    relative_path: str
    file_name: str
    size: int
    mime_type: str
    content_signature: str
    status: UploadStatus = UploadStatus.AWAITING_APPROVAL
    conflict: ConflictType = ConflictType.NONE
    conflict_detail: str = ""
    native_cost: float = 0.0
    credits_cost: float = 0.0
    sufficient_credits: bool = False
    estimate: CostEstimate | None = None
    method: SettlementMethod | None = None
    metadata: dict[str, str] | None = None
    remote_id: str | None = None
    upload_name: str | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: float = field(default_factory=time.time)

    @property
    def has_conflict(self) -> bool:
        """Check if the upload is blocked by a conflict."""
        return self.conflict != ConflictType.NONE

    @property
    def remote_name(self) -> str:
        """Name the file will carry on the ledger."""
        return self.upload_name or self.file_name


@dataclass
class UploadProgressRecord:
    """Ephemeral progress of an upload in flight."""

    upload_id: str
    progress: float = 0.0
    status: ProgressStatus = ProgressStatus.UPLOADING
    error: str | None = None


@dataclass(frozen=True)
class BatchResult:
    """Outcome of a batch operation such as approve_all."""

    approved_count: int
    total_count: int
    errors: list[str] = field(default_factory=list)


@dataclass
class UploadRecord:
    """A completed upload kept in the local upload history."""

    upload_id: str
    drive_id: str
    relative_path: str
    file_name: str
    size: int
    method: SettlementMethod
    remote_id: str
    content_signature: str
    tx_refs: list[str] = field(default_factory=list)
    completed_at: float = field(default_factory=time.time)


# =============================================================================
# Downloads
# =============================================================================


class DownloadStatus(str, Enum):
    """Lifecycle status of a download."""

    QUEUED = "queued"
    DOWNLOADING = "downloading"
    PAUSED = "paused"
    FAILED = "failed"
    COMPLETED = "completed"


@dataclass
class FileDownload:
    """A remote file being materialized locally."""

    file_id: str
    file_name: str
    local_path: str
    size: int
    tx_refs: list[str] = field(default_factory=list)
    content_signature: str | None = None
    relative_path: str = ""
    status: DownloadStatus = DownloadStatus.QUEUED
    progress: float = 0.0
    error: str | None = None
    position: int | None = None
    queued_at: float = field(default_factory=time.time)
    started_at: float | None = None
    completed_at: float | None = None
    last_progress_at: float | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)


@dataclass(frozen=True)
class QueueStatus:
    """Download queue counts for UI polling."""

    queued: int
    active: int
    total: int


# =============================================================================
# Coordinator
# =============================================================================


class SyncPhase(str, Enum):
    """Phase of the sync coordinator."""

    IDLE = "idle"
    SYNCING = "syncing"
    MONITORING = "monitoring"
    ERROR = "error"


@dataclass(frozen=True)
class SyncSnapshotState:
    """Overall coordinator state, replaced wholesale on every change."""

    phase: SyncPhase = SyncPhase.IDLE
    active: bool = False
    progress: float = 0.0
    current_file: str | None = None
    total_files: int = 0
    synced_files: int = 0
    failed_files: int = 0
    error: str | None = None


@dataclass(frozen=True)
class SyncResult:
    """Result of a manual sync."""

    success: bool
    error: str | None = None


class WatchEventType(str, Enum):
    """Type of filesystem watch event."""

    ADD = "add"
    CHANGE = "change"
    DELETE = "delete"


@dataclass(frozen=True)
class WatchEvent:
    """A discrete filesystem change emitted by the watch service."""

    type: WatchEventType
    path: str
    timestamp: float = field(default_factory=time.time)


# Type aliases for callbacks
ProgressCallback = Callable[[float], None]
CancelCheck = Callable[[], bool]
WatchCallback = Callable[[WatchEvent], None]
