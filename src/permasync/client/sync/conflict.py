"""Conflict classification and resolution for pending uploads.

This module provides:
- classify(): Decision table comparing a local file with the remote snapshot
- generate_conflict_filename(): Name used by keep_both
- ConflictResolver: Applies resolution verbs to pending uploads

Everything here is pure: no network calls and no filesystem writes.
"""

from __future__ import annotations

import re
import socket
from dataclasses import dataclass
from datetime import datetime
from enum import Enum, auto
from pathlib import PurePosixPath

from permasync.client.sync.types import (
    ConflictType,
    PendingUpload,
    RemoteEntry,
    ResolutionVerb,
)


class ResolutionAction(Enum):
    """What the upload queue must do after a resolution."""

    KEEP = auto()  # Entry stays, now approvable
    RENAME = auto()  # Entry stays, approvable, uploaded under new_name
    DISCARD = auto()  # Entry removed, nothing else happens
    DOWNLOAD_REMOTE = auto()  # Entry removed, remote version downloaded


@dataclass(frozen=True)
class ResolutionOutcome:
    """Result of applying a resolution verb."""

    action: ResolutionAction
    new_name: str | None = None
    remote_id: str | None = None


@dataclass(frozen=True)
class Classification:
    """Conflict classification with a human-readable detail."""

    conflict: ConflictType
    detail: str = ""
    remote_id: str | None = None


def classify(
    file_name: str,
    signature: str,
    remote: RemoteEntry | None,
    base_signature: str | None = None,
) -> Classification:
    """Classify a local file against the last known remote entry at its path.

    Args:
        file_name: Local file name.
        signature: Content signature of the local file.
        remote: Remote entry at the same path (matched case-insensitively), if any.
        base_signature: Signature recorded at the last successful sync of the path.

    Returns:
        The classification. ``none`` when no remote entry exists or when only
        the local side changed since the last sync.
    """
    if remote is None or remote.is_folder:
        return Classification(ConflictType.NONE)

    if remote.name != file_name:
        return Classification(
            ConflictType.FILENAME_CONFLICT,
            f"Remote file is named '{remote.name}'",
            remote.id,
        )

    if remote.content_signature == signature:
        return Classification(
            ConflictType.DUPLICATE,
            "Identical file already exists remotely",
            remote.id,
        )

    if base_signature is not None and remote.content_signature == base_signature:
        # Remote still holds what we last synced, so only the local side changed
        return Classification(ConflictType.NONE, remote_id=remote.id)

    return Classification(
        ConflictType.CONTENT_CONFLICT,
        "Remote file has different content",
        remote.id,
    )


def get_machine_name() -> str:
    """Get a short, filename-safe machine identifier."""
    try:
        hostname = socket.gethostname()
    except OSError:
        hostname = ""
    sanitized = re.sub(r"[^A-Za-z0-9_-]", "-", hostname.split(".")[0])[:15]
    return sanitized or "unknown"


def generate_conflict_filename(
    file_name: str,
    machine_name: str | None = None,
    now: datetime | None = None,
) -> str:
    """Generate a conflict filename: name.conflict-YYYYMMDD-HHMMSS-mmm-machine.ext

    Args:
        file_name: Original file name.
        machine_name: Machine identifier (auto-detected if None).
        now: Timestamp to embed (current time if None).

    Returns:
        File name with the conflict suffix inserted before the extension.
    """
    machine = machine_name or get_machine_name()
    now = now or datetime.now()
    timestamp = now.strftime("%Y%m%d-%H%M%S") + f"-{now.microsecond // 1000:03d}"
    path = PurePosixPath(file_name)
    return f"{path.stem}.conflict-{timestamp}-{machine}{path.suffix}"


class ConflictResolver:
    """Classifies pending uploads and applies resolution verbs."""

    def __init__(self, machine_name: str | None = None) -> None:
        self._machine_name = machine_name

    def classify(
        self,
        upload: PendingUpload,
        remote: RemoteEntry | None,
        base_signature: str | None = None,
    ) -> Classification:
        """Classify a pending upload against the remote snapshot."""
        return classify(upload.file_name, upload.content_signature, remote, base_signature)

    def resolve(
        self, upload: PendingUpload, verb: ResolutionVerb, now: datetime | None = None
    ) -> ResolutionOutcome:
        """Decide the effect of a resolution verb on a pending upload.

        Args:
            upload: The conflicted upload.
            verb: The user's choice.
            now: Timestamp for keep_both names.

        Returns:
            The action the upload queue must carry out.
        """
        match verb:
            case ResolutionVerb.KEEP_LOCAL:
                return ResolutionOutcome(ResolutionAction.KEEP)
            case ResolutionVerb.KEEP_BOTH:
                new_name = generate_conflict_filename(upload.file_name, self._machine_name, now)
                return ResolutionOutcome(ResolutionAction.RENAME, new_name=new_name)
            case ResolutionVerb.USE_REMOTE:
                if upload.remote_id is None:
                    return ResolutionOutcome(ResolutionAction.DISCARD)
                return ResolutionOutcome(
                    ResolutionAction.DOWNLOAD_REMOTE, remote_id=upload.remote_id
                )
            case ResolutionVerb.SKIP:
                return ResolutionOutcome(ResolutionAction.DISCARD)
