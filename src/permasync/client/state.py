"""Local metadata store for the sync engine.

This module provides:
- LocalMetadataStore: SQLite-backed MetadataStore

Tables:
    drive_mappings   drive id -> local folder, name, privacy
    remote_entries   last enumerated snapshot of each drive
    synced_files     content signature of each path at its last sync
    upload_history   completed uploads
    cloud_only       remote files intentionally not materialized
    key_checks       blobs used to verify a derived drive key

Paths are slash-separated and relative to the drive's sync folder. Remote
path lookups are case-insensitive.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from pathlib import Path

from permasync.client.sync.types import (
    DriveMapping,
    EntryType,
    Privacy,
    RemoteEntry,
    SettlementMethod,
    UploadRecord,
)

logger = logging.getLogger(__name__)

MEMORY = ":memory:"


def _entry_from_row(row: sqlite3.Row) -> RemoteEntry:
    return RemoteEntry(
        id=row["id"],
        name=row["name"],
        type=EntryType(row["type"]),
        size=row["size"],
        parent_id=row["parent_id"],
        content_signature=row["content_signature"],
        tx_refs=json.loads(row["tx_refs"]) if row["tx_refs"] else [],
        path=row["path"],
    )


def _mapping_from_row(row: sqlite3.Row) -> DriveMapping:
    return DriveMapping(
        drive_id=row["drive_id"],
        root_folder_id=row["root_folder_id"],
        name=row["name"],
        folder_path=row["folder_path"],
        privacy=Privacy(row["privacy"]),
        mapping_id=row["mapping_id"],
    )


def _record_from_row(row: sqlite3.Row) -> UploadRecord:
    return UploadRecord(
        upload_id=row["upload_id"],
        drive_id=row["drive_id"],
        relative_path=row["relative_path"],
        file_name=row["file_name"],
        size=row["size"],
        method=SettlementMethod(row["method"]),
        remote_id=row["remote_id"],
        content_signature=row["content_signature"],
        tx_refs=json.loads(row["tx_refs"]) if row["tx_refs"] else [],
        completed_at=row["completed_at"],
    )


class LocalMetadataStore:
    """SQLite-based metadata store, safe to share between threads."""

    def __init__(self, db_path: Path | str) -> None:
        """Initialize the metadata database.

        Args:
            db_path: Path to SQLite database file, or ":memory:".
        """
        self._db_path = str(db_path)
        if self._db_path != MEMORY:
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)

        # Lock for thread-safe database access
        self._lock = threading.RLock()

        self._conn = sqlite3.connect(
            self._db_path,
            check_same_thread=False,
            isolation_level=None,  # Autocommit mode
        )
        self._conn.row_factory = sqlite3.Row

        if self._db_path != MEMORY:
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")

        self._create_tables()

    def _create_tables(self) -> None:
        """Create database tables if they don't exist."""
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS drive_mappings (
                drive_id TEXT PRIMARY KEY,
                root_folder_id TEXT NOT NULL,
                name TEXT NOT NULL,
                folder_path TEXT NOT NULL,
                privacy TEXT NOT NULL,
                mapping_id TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS remote_entries (
                drive_id TEXT NOT NULL,
                id TEXT NOT NULL,
                name TEXT NOT NULL,
                type TEXT NOT NULL,
                size INTEGER NOT NULL,
                parent_id TEXT,
                content_signature TEXT,
                tx_refs TEXT,
                path TEXT NOT NULL COLLATE NOCASE,
                PRIMARY KEY (drive_id, id)
            );
            CREATE INDEX IF NOT EXISTS idx_remote_path ON remote_entries (drive_id, path);

            CREATE TABLE IF NOT EXISTS synced_files (
                drive_id TEXT NOT NULL,
                path TEXT NOT NULL,
                content_signature TEXT NOT NULL,
                PRIMARY KEY (drive_id, path)
            );

            CREATE TABLE IF NOT EXISTS upload_history (
                upload_id TEXT PRIMARY KEY,
                drive_id TEXT NOT NULL,
                relative_path TEXT NOT NULL,
                file_name TEXT NOT NULL,
                size INTEGER NOT NULL,
                method TEXT NOT NULL,
                remote_id TEXT NOT NULL,
                content_signature TEXT NOT NULL,
                tx_refs TEXT,
                completed_at REAL NOT NULL
            );

            CREATE TABLE IF NOT EXISTS cloud_only (
                drive_id TEXT NOT NULL,
                file_id TEXT NOT NULL,
                PRIMARY KEY (drive_id, file_id)
            );

            CREATE TABLE IF NOT EXISTS key_checks (
                drive_id TEXT PRIMARY KEY,
                blob BLOB NOT NULL
            );
        """)

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    # === Drive mappings ===

    def add_mapping(self, mapping: DriveMapping) -> None:
        """Add or replace the mapping of a drive."""
        with self._lock:
            self._conn.execute(
                """
                INSERT OR REPLACE INTO drive_mappings
                    (drive_id, root_folder_id, name, folder_path, privacy, mapping_id)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    mapping.drive_id,
                    mapping.root_folder_id,
                    mapping.name,
                    mapping.folder_path,
                    mapping.privacy.value,
                    mapping.mapping_id,
                ),
            )
        logger.debug(f"Saved mapping of drive {mapping.drive_id[:8]} to {mapping.folder_path}")

    def get_mapping(self, drive_id: str) -> DriveMapping | None:
        """Get the mapping of a drive."""
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM drive_mappings WHERE drive_id = ?", (drive_id,)
            ).fetchone()
        return _mapping_from_row(row) if row else None

    def list_mappings(self) -> list[DriveMapping]:
        """List all mappings, by name."""
        with self._lock:
            rows = self._conn.execute("SELECT * FROM drive_mappings ORDER BY name").fetchall()
        return [_mapping_from_row(row) for row in rows]

    def update_mapping(
        self, drive_id: str, name: str | None = None, folder_path: str | None = None
    ) -> bool:
        """Rename a mapping or move its folder.

        Returns:
            True if the mapping exists.
        """
        mapping = self.get_mapping(drive_id)
        if mapping is None:
            return False
        with self._lock:
            self._conn.execute(
                "UPDATE drive_mappings SET name = ?, folder_path = ? WHERE drive_id = ?",
                (name or mapping.name, folder_path or mapping.folder_path, drive_id),
            )
        return True

    def remove_mapping(self, drive_id: str) -> bool:
        """Remove a mapping and everything recorded for its drive.

        Upload history and key checks are kept.

        Returns:
            True if the mapping existed.
        """
        with self._lock:
            cursor = self._conn.execute(
                "DELETE FROM drive_mappings WHERE drive_id = ?", (drive_id,)
            )
            for table in ("remote_entries", "synced_files", "cloud_only"):
                self._conn.execute(f"DELETE FROM {table} WHERE drive_id = ?", (drive_id,))
        return cursor.rowcount > 0

    # === Remote snapshot ===

    def replace_remote_entries(self, drive_id: str, entries: list[RemoteEntry]) -> None:
        """Replace the stored snapshot of a drive."""
        with self._lock:
            self._conn.execute("BEGIN")
            try:
                self._conn.execute("DELETE FROM remote_entries WHERE drive_id = ?", (drive_id,))
                self._conn.executemany(
                    """
                    INSERT OR REPLACE INTO remote_entries
                        (drive_id, id, name, type, size, parent_id,
                         content_signature, tx_refs, path)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [self._entry_params(drive_id, e) for e in entries],
                )
                self._conn.execute("COMMIT")
            except sqlite3.Error:
                self._conn.execute("ROLLBACK")
                raise

    def upsert_remote_entry(self, drive_id: str, entry: RemoteEntry) -> None:
        """Insert or update one remote entry."""
        with self._lock:
            self._conn.execute(
                """
                INSERT OR REPLACE INTO remote_entries
                    (drive_id, id, name, type, size, parent_id,
                     content_signature, tx_refs, path)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                self._entry_params(drive_id, entry),
            )

    def get_remote_entry(self, drive_id: str, path: str) -> RemoteEntry | None:
        """Get the remote entry at a path, ignoring case.

        An exact-case match wins over a case-insensitive one.
        """
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM remote_entries WHERE drive_id = ? AND path = ?",
                (drive_id, path),
            ).fetchall()
        if not rows:
            return None
        exact = [row for row in rows if row["path"] == path]
        return _entry_from_row((exact or rows)[0])

    def get_remote_entry_by_id(self, drive_id: str, file_id: str) -> RemoteEntry | None:
        """Get a remote entry by id."""
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM remote_entries WHERE drive_id = ? AND id = ?",
                (drive_id, file_id),
            ).fetchone()
        return _entry_from_row(row) if row else None

    def list_remote_entries(self, drive_id: str) -> list[RemoteEntry]:
        """List the stored snapshot of a drive, by path."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM remote_entries WHERE drive_id = ? ORDER BY path",
                (drive_id,),
            ).fetchall()
        return [_entry_from_row(row) for row in rows]

    @staticmethod
    def _entry_params(drive_id: str, entry: RemoteEntry) -> tuple[object, ...]:
        return (
            drive_id,
            entry.id,
            entry.name,
            entry.type.value,
            entry.size,
            entry.parent_id,
            entry.content_signature,
            json.dumps(entry.tx_refs),
            entry.path,
        )

    # === Synced signatures ===

    def get_synced_signature(self, drive_id: str, path: str) -> str | None:
        """Get the signature of a path at its last sync."""
        with self._lock:
            row = self._conn.execute(
                "SELECT content_signature FROM synced_files WHERE drive_id = ? AND path = ?",
                (drive_id, path),
            ).fetchone()
        return row["content_signature"] if row else None

    def set_synced_signature(self, drive_id: str, path: str, signature: str) -> None:
        """Record the signature of a path after a sync."""
        with self._lock:
            self._conn.execute(
                """
                INSERT OR REPLACE INTO synced_files (drive_id, path, content_signature)
                VALUES (?, ?, ?)
                """,
                (drive_id, path, signature),
            )

    def remove_synced_signature(self, drive_id: str, path: str) -> None:
        """Forget the sync record of a path."""
        with self._lock:
            self._conn.execute(
                "DELETE FROM synced_files WHERE drive_id = ? AND path = ?", (drive_id, path)
            )

    def list_synced_signatures(self, drive_id: str) -> dict[str, str]:
        """Get path -> signature for every synced path of a drive."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT path, content_signature FROM synced_files WHERE drive_id = ?",
                (drive_id,),
            ).fetchall()
        return {row["path"]: row["content_signature"] for row in rows}

    # === Upload history ===

    def add_upload_record(self, record: UploadRecord) -> None:
        """Append a completed upload to the history."""
        with self._lock:
            self._conn.execute(
                """
                INSERT OR REPLACE INTO upload_history
                    (upload_id, drive_id, relative_path, file_name, size, method,
                     remote_id, content_signature, tx_refs, completed_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.upload_id,
                    record.drive_id,
                    record.relative_path,
                    record.file_name,
                    record.size,
                    record.method.value,
                    record.remote_id,
                    record.content_signature,
                    json.dumps(record.tx_refs),
                    record.completed_at,
                ),
            )

    def list_upload_history(self, drive_id: str, limit: int = 100) -> list[UploadRecord]:
        """List the most recent uploads of a drive, newest first."""
        with self._lock:
            rows = self._conn.execute(
                """
                SELECT * FROM upload_history WHERE drive_id = ?
                ORDER BY completed_at DESC LIMIT ?
                """,
                (drive_id, limit),
            ).fetchall()
        return [_record_from_row(row) for row in rows]

    # === Cloud-only markers ===

    def mark_cloud_only(self, drive_id: str, file_id: str) -> None:
        """Mark a remote file as intentionally not downloaded."""
        with self._lock:
            self._conn.execute(
                "INSERT OR IGNORE INTO cloud_only (drive_id, file_id) VALUES (?, ?)",
                (drive_id, file_id),
            )

    def clear_cloud_only(self, drive_id: str, file_id: str) -> None:
        """Remove the cloud-only marker of a file."""
        with self._lock:
            self._conn.execute(
                "DELETE FROM cloud_only WHERE drive_id = ? AND file_id = ?", (drive_id, file_id)
            )

    def is_cloud_only(self, drive_id: str, file_id: str) -> bool:
        """Check if a file is marked cloud-only."""
        with self._lock:
            row = self._conn.execute(
                "SELECT 1 FROM cloud_only WHERE drive_id = ? AND file_id = ?",
                (drive_id, file_id),
            ).fetchone()
        return row is not None

    def list_cloud_only(self, drive_id: str) -> set[str]:
        """Ids of the cloud-only files of a drive."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT file_id FROM cloud_only WHERE drive_id = ?", (drive_id,)
            ).fetchall()
        return {row["file_id"] for row in rows}

    # === Key checks ===

    def get_key_check(self, drive_id: str) -> bytes | None:
        """Get the key-check blob of a private drive."""
        with self._lock:
            row = self._conn.execute(
                "SELECT blob FROM key_checks WHERE drive_id = ?", (drive_id,)
            ).fetchone()
        return bytes(row["blob"]) if row else None

    def set_key_check(self, drive_id: str, blob: bytes) -> None:
        """Store the key-check blob of a private drive."""
        with self._lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO key_checks (drive_id, blob) VALUES (?, ?)",
                (drive_id, blob),
            )
