"""Remote index building and local/remote comparison.

This module provides:
- relative_key(), join_remote_path(): Path helpers shared by the queues
- assign_paths(): Compute drive-relative paths from the parent chain
- scan_local_files(): Walk a sync folder honouring ignore patterns
- cleanup_orphans(): Remove leftover ``.downloading`` files
- plan_reconciliation(): Decide folders to create, files to download and
  local files to offer for upload
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

from permasync.core.crypto import compute_file_hash
from permasync.client.sync.ignore import DOWNLOAD_SUFFIX, IGNORE_FILE, IgnorePatterns

if TYPE_CHECKING:
    from permasync.client.sync.types import RemoteEntry

logger = logging.getLogger(__name__)


def relative_key(path: Path, root: Path) -> str:
    """Slash-separated path of a file relative to the sync folder.

    Raises:
        ValueError: If path is not inside root.
    """
    return Path(path).relative_to(root).as_posix()


def join_remote_path(relative_path: str, name: str) -> str:
    """Replace the last component of a relative path with name."""
    parent = PurePosixPath(relative_path).parent
    return name if str(parent) == "." else f"{parent}/{name}"


def assign_paths(entries: list[RemoteEntry], root_folder_id: str) -> list[RemoteEntry]:
    """Fill in ``path`` for every entry reachable from the root folder.

    Entries whose parent chain does not lead to the root (orphans, cycles)
    are dropped. The root folder itself is not returned.

    Args:
        entries: Flat listing of a drive.
        root_folder_id: Id of the drive's root folder.

    Returns:
        Entries with paths, in listing order.
    """
    by_id = {e.id: e for e in entries}
    resolved: dict[str, str] = {root_folder_id: ""}

    def resolve(entry_id: str, seen: set[str]) -> str | None:
        if entry_id in resolved:
            return resolved[entry_id]
        entry = by_id.get(entry_id)
        if entry is None or entry.parent_id is None or entry_id in seen:
            return None
        seen.add(entry_id)
        parent_path = resolve(entry.parent_id, seen)
        if parent_path is None:
            return None
        path = f"{parent_path}/{entry.name}" if parent_path else entry.name
        resolved[entry_id] = path
        return path

    result = []
    for entry in entries:
        if entry.id == root_folder_id:
            continue
        path = resolve(entry.id, set())
        if path is None:
            logger.debug(f"Dropping unreachable remote entry {entry.id}")
            continue
        entry.path = path
        result.append(entry)
    return result


def load_ignore_patterns(folder: Path) -> IgnorePatterns:
    """Default ignore patterns plus the folder's ignore file."""
    patterns = IgnorePatterns()
    patterns.load_from_file(folder / IGNORE_FILE)
    return patterns


def scan_local_files(folder: Path, ignore: IgnorePatterns | None = None) -> list[Path]:
    """List the files of a sync folder that are not ignored."""
    ignore = ignore or load_ignore_patterns(folder)
    files: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(folder):
        current = Path(dirpath)
        dirnames[:] = sorted(
            d for d in dirnames if not ignore.should_ignore(current / d, folder)
        )
        for name in sorted(filenames):
            path = current / name
            if not ignore.should_ignore(path, folder):
                files.append(path)
    return files


def cleanup_orphans(folder: Path) -> int:
    """Remove ``.downloading`` files left behind by an interrupted download.

    Returns:
        Number of files removed.
    """
    removed = 0
    for path in folder.rglob(f"*{DOWNLOAD_SUFFIX}"):
        try:
            path.unlink()
            removed += 1
        except OSError as e:
            logger.warning(f"Could not remove orphaned {path.name}: {e}")
    if removed:
        logger.info(f"Removed {removed} orphaned download file(s)")
    return removed


@dataclass
class ReconcilePlan:
    """What a reconciliation pass has to do.

    Attributes:
        folders: Relative paths of remote folders to create locally.
        downloads: Remote files missing locally and not cloud-only.
        uploads: Local files to offer to the upload queue.
        adopted: Relative path -> signature of local files found identical
            to their remote counterpart without a sync record.
    """

    folders: list[str] = field(default_factory=list)
    downloads: list[RemoteEntry] = field(default_factory=list)
    uploads: list[Path] = field(default_factory=list)
    adopted: dict[str, str] = field(default_factory=dict)


def plan_reconciliation(
    folder: Path,
    entries: list[RemoteEntry],
    local_files: list[Path],
    cloud_only: set[str],
    synced: dict[str, str],
) -> ReconcilePlan:
    """Compare the remote snapshot with the local folder.

    Args:
        folder: Sync folder.
        entries: Remote entries with paths assigned.
        local_files: Non-ignored local files.
        cloud_only: Remote file ids intentionally not materialized.
        synced: Relative path -> signature recorded at the last sync.

    Returns:
        The plan for this pass.
    """
    plan = ReconcilePlan()
    remote_files: dict[str, RemoteEntry] = {}

    for entry in entries:
        if entry.is_folder:
            plan.folders.append(entry.path)
        else:
            remote_files[entry.path] = entry

    local_keys = {relative_key(p, folder): p for p in local_files}

    for path, entry in remote_files.items():
        if path in local_keys or entry.id in cloud_only:
            continue
        plan.downloads.append(entry)

    for key, local in local_keys.items():
        remote = remote_files.get(key)
        if remote is not None and key not in synced and remote.content_signature:
            try:
                signature = compute_file_hash(local)
            except OSError:
                continue
            if signature == remote.content_signature:
                plan.adopted[key] = signature
                continue
        plan.uploads.append(local)

    plan.folders.sort(key=lambda p: p.count("/"))
    return plan
