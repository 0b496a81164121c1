"""Tests for the local metadata store."""

from pathlib import Path

import pytest

from permasync.client.state import LocalMetadataStore
from permasync.client.sync.types import (
    DriveMapping,
    Privacy,
    RemoteEntry,
    SettlementMethod,
    UploadRecord,
)
from tests.fakes import DRIVE_ID, remote_file, remote_folder


def with_path(entry: RemoteEntry, path: str) -> RemoteEntry:
    entry.path = path
    return entry


def make_record(upload_id: str, completed_at: float, drive_id: str = DRIVE_ID) -> UploadRecord:
    return UploadRecord(
        upload_id=upload_id,
        drive_id=drive_id,
        relative_path=f"{upload_id}.txt",
        file_name=f"{upload_id}.txt",
        size=10,
        method=SettlementMethod.CREDITS,
        remote_id=f"remote-{upload_id}",
        content_signature="sig",
        tx_refs=["tx-1", "tx-2"],
        completed_at=completed_at,
    )


class TestStoreCreation:
    """Tests for LocalMetadataStore initialization."""

    def test_creates_parent_dirs(self, tmp_path: Path) -> None:
        """Should create parent directories of the database."""
        db_path = tmp_path / "nested" / "state.db"
        store = LocalMetadataStore(db_path)

        assert db_path.exists()
        store.close()

    def test_reopens_existing_db(self, tmp_path: Path, mapping: DriveMapping) -> None:
        """Should reopen an existing database with data preserved."""
        db_path = tmp_path / "state.db"
        first = LocalMetadataStore(db_path)
        first.add_mapping(mapping)
        first.set_synced_signature(DRIVE_ID, "a.txt", "sig")
        first.close()

        second = LocalMetadataStore(db_path)
        try:
            assert second.get_mapping(DRIVE_ID) == mapping
            assert second.get_synced_signature(DRIVE_ID, "a.txt") == "sig"
        finally:
            second.close()


class TestMappings:
    """Tests for drive mappings."""

    def test_get_mapping(self, store: LocalMetadataStore, mapping: DriveMapping) -> None:
        """Should return the stored mapping."""
        assert store.get_mapping(DRIVE_ID) == mapping
        assert store.get_mapping("missing") is None

    def test_list_by_name(self, store: LocalMetadataStore, tmp_path: Path) -> None:
        """Mappings are listed by name."""
        store.add_mapping(
            DriveMapping(
                drive_id="drive-2",
                root_folder_id="r2",
                name="Archive",
                folder_path=str(tmp_path / "Archive"),
                privacy=Privacy.PRIVATE,
            )
        )

        mappings = store.list_mappings()

        assert [m.name for m in mappings] == ["Archive", "Documents"]
        assert mappings[0].is_private

    def test_update_mapping(self, store: LocalMetadataStore) -> None:
        """Only the given fields change."""
        assert store.update_mapping(DRIVE_ID, name="Renamed") is True

        mapping = store.get_mapping(DRIVE_ID)
        assert mapping.name == "Renamed"
        assert store.update_mapping("missing", name="x") is False

    def test_remove_mapping_clears_drive_state(self, store: LocalMetadataStore) -> None:
        """Removing a mapping forgets its snapshot but keeps history."""
        store.replace_remote_entries(DRIVE_ID, [with_path(remote_file("f1", "a", b"a"), "a")])
        store.set_synced_signature(DRIVE_ID, "a", "sig")
        store.mark_cloud_only(DRIVE_ID, "f1")
        store.add_upload_record(make_record("u1", 1.0))

        assert store.remove_mapping(DRIVE_ID) is True

        assert store.get_mapping(DRIVE_ID) is None
        assert store.list_remote_entries(DRIVE_ID) == []
        assert store.list_synced_signatures(DRIVE_ID) == {}
        assert store.list_cloud_only(DRIVE_ID) == set()
        assert len(store.list_upload_history(DRIVE_ID)) == 1
        assert store.remove_mapping(DRIVE_ID) is False


class TestRemoteSnapshot:
    """Tests for remote entries."""

    def test_replace_snapshot(self, store: LocalMetadataStore) -> None:
        """A new snapshot replaces the previous one."""
        store.replace_remote_entries(DRIVE_ID, [with_path(remote_file("f1", "a", b"a"), "a")])
        store.replace_remote_entries(
            DRIVE_ID,
            [
                with_path(remote_folder("d1", "docs"), "docs"),
                with_path(remote_file("f2", "b.txt", b"b", parent_id="d1"), "docs/b.txt"),
            ],
        )

        assert [e.id for e in store.list_remote_entries(DRIVE_ID)] == ["d1", "f2"]
        assert store.get_remote_entry_by_id(DRIVE_ID, "f1") is None

    def test_entries_round_trip(self, store: LocalMetadataStore) -> None:
        """Stored entries keep every field."""
        entry = with_path(remote_file("f1", "a.txt", b"data"), "a.txt")
        entry.tx_refs = ["tx-1"]
        store.upsert_remote_entry(DRIVE_ID, entry)

        assert store.get_remote_entry_by_id(DRIVE_ID, "f1") == entry

    def test_path_lookup_ignores_case(self, store: LocalMetadataStore) -> None:
        """Remote paths match regardless of case."""
        store.upsert_remote_entry(DRIVE_ID, with_path(remote_file("f1", "A.txt", b"a"), "A.txt"))

        assert store.get_remote_entry(DRIVE_ID, "a.TXT").id == "f1"

    def test_exact_case_wins(self, store: LocalMetadataStore) -> None:
        """An exact-case match is preferred."""
        store.upsert_remote_entry(DRIVE_ID, with_path(remote_file("f1", "A.txt", b"a"), "A.txt"))
        store.upsert_remote_entry(DRIVE_ID, with_path(remote_file("f2", "a.txt", b"b"), "a.txt"))

        assert store.get_remote_entry(DRIVE_ID, "a.txt").id == "f2"
        assert store.get_remote_entry(DRIVE_ID, "A.txt").id == "f1"

    def test_drives_are_isolated(self, store: LocalMetadataStore) -> None:
        """Entries of one drive are invisible to another."""
        store.upsert_remote_entry(DRIVE_ID, with_path(remote_file("f1", "a", b"a"), "a"))

        assert store.get_remote_entry("other-drive", "a") is None


class TestSyncedSignatures:
    """Tests for sync records."""

    def test_set_and_remove(self, store: LocalMetadataStore) -> None:
        """Signatures can be recorded, replaced and forgotten."""
        store.set_synced_signature(DRIVE_ID, "a.txt", "one")
        store.set_synced_signature(DRIVE_ID, "a.txt", "two")
        store.set_synced_signature(DRIVE_ID, "b.txt", "three")

        assert store.list_synced_signatures(DRIVE_ID) == {"a.txt": "two", "b.txt": "three"}

        store.remove_synced_signature(DRIVE_ID, "a.txt")
        assert store.get_synced_signature(DRIVE_ID, "a.txt") is None


class TestUploadHistory:
    """Tests for the upload history."""

    def test_newest_first_with_limit(self, store: LocalMetadataStore) -> None:
        """History is listed newest first."""
        for i, when in enumerate([10.0, 30.0, 20.0]):
            store.add_upload_record(make_record(f"u{i}", when))
        store.add_upload_record(make_record("other", 40.0, drive_id="drive-2"))

        history = store.list_upload_history(DRIVE_ID, limit=2)

        assert [r.upload_id for r in history] == ["u1", "u2"]
        assert history[0].method == SettlementMethod.CREDITS
        assert history[0].tx_refs == ["tx-1", "tx-2"]


class TestCloudOnlyAndKeyChecks:
    """Tests for cloud-only markers and key checks."""

    def test_cloud_only(self, store: LocalMetadataStore) -> None:
        """Markers can be set twice and cleared."""
        store.mark_cloud_only(DRIVE_ID, "f1")
        store.mark_cloud_only(DRIVE_ID, "f1")

        assert store.is_cloud_only(DRIVE_ID, "f1")
        assert store.list_cloud_only(DRIVE_ID) == {"f1"}

        store.clear_cloud_only(DRIVE_ID, "f1")
        assert not store.is_cloud_only(DRIVE_ID, "f1")

    @pytest.mark.parametrize("blob", [b"\x00\x01binary", b"x" * 60])
    def test_key_check(self, store: LocalMetadataStore, blob: bytes) -> None:
        """Key-check blobs are stored as bytes."""
        assert store.get_key_check(DRIVE_ID) is None

        store.set_key_check(DRIVE_ID, blob)

        assert store.get_key_check(DRIVE_ID) == blob
