"""
Unit tests for backup creation, listing and deletion.

Tests cover:
- Backup is a consistent, openable copy of the live store
- Generated and explicit names
- Collision and validation errors
- Listing order and filtering
- Deletion errors
- In-flight backups stay hidden until complete
"""

import os
import threading
import time
import sqlite3

import pytest

from tracker.datastore.errors import ConflictError, NotFoundError, ValidationError
from tracker.datastore.snapshot import BackupInfo, BackupManager


class TestBackupManager:
    """Tests for BackupManager."""

    @pytest.fixture
    def backup_dir(self, data_dir):
        return data_dir / "backups"

    @pytest.fixture
    def manager(self, initialized_store, backup_dir):
        initialized_store.execute(
            "INSERT INTO day_offs (date, description) VALUES ('2024-12-25', 'Christmas')"
        )
        return BackupManager(initialized_store, backup_dir)

    def test_create_backup_with_name(self, manager, backup_dir):
        info = manager.create_backup("nightly.db")

        assert info.file_name == "nightly.db"
        assert info.size_bytes == (backup_dir / "nightly.db").stat().st_size
        assert info.size_bytes > 0
        assert info.created_at.tzinfo is not None

    def test_backup_contains_live_data(self, manager, backup_dir):
        manager.create_backup("copy.db")

        conn = sqlite3.connect(str(backup_dir / "copy.db"))
        try:
            rows = conn.execute("SELECT date, description FROM day_offs").fetchall()
            journal = conn.execute("PRAGMA journal_mode").fetchone()[0]
        finally:
            conn.close()

        assert rows == [("2024-12-25", "Christmas")]
        assert journal.lower() == "delete"

    def test_generated_name(self, manager):
        info = manager.create_backup()

        assert info.file_name.startswith("time_tracker_backup_")
        assert info.file_name.endswith(".db")

    def test_creates_backup_dir_lazily(self, manager, backup_dir):
        assert not backup_dir.exists()

        manager.create_backup("first.db")

        assert backup_dir.is_dir()

    def test_collision_rejected(self, manager, backup_dir):
        """An existing backup is never overwritten."""
        manager.create_backup("same.db")
        first_copy = (backup_dir / "same.db").read_bytes()

        with pytest.raises(ConflictError):
            manager.create_backup("same.db")

        assert (backup_dir / "same.db").read_bytes() == first_copy

    @pytest.mark.parametrize("name", ["../escape.db", "x.txt", "a/b.db", ""])
    def test_invalid_name_rejected(self, manager, backup_dir, name):
        with pytest.raises(ValidationError):
            manager.create_backup(name)

        assert not backup_dir.exists()

    def test_failed_copy_leaves_no_file(self, manager, backup_dir, monkeypatch):
        def fail(target):
            raise sqlite3.OperationalError("disk I/O error")

        monkeypatch.setattr(manager, "_copy_live_store", fail)

        with pytest.raises(sqlite3.OperationalError):
            manager.create_backup("partial.db")

        assert not (backup_dir / "partial.db").exists()
        assert not (backup_dir / "partial.db.partial").exists()

    def test_list_backups_newest_first(self, manager, backup_dir):
        manager.create_backup("older.db")
        manager.create_backup("newer.db")
        os.utime(backup_dir / "older.db", (1_700_000_000, 1_700_000_000))
        os.utime(backup_dir / "newer.db", (1_700_000_100, 1_700_000_100))

        names = [b.file_name for b in manager.list_backups()]

        assert names == ["newer.db", "older.db"]

    def test_list_ignores_other_files(self, manager, backup_dir):
        manager.create_backup("real.db")
        (backup_dir / "notes.txt").write_text("not a backup")
        (backup_dir / "subdir.db").mkdir()

        assert [b.file_name for b in manager.list_backups()] == ["real.db"]

    def test_list_without_directory(self, manager):
        assert manager.list_backups() == []

    def test_delete_backup(self, manager, backup_dir):
        manager.create_backup("gone.db")

        manager.delete_backup("gone.db")

        assert not (backup_dir / "gone.db").exists()

    def test_delete_missing(self, manager):
        with pytest.raises(NotFoundError):
            manager.delete_backup("missing.db")

    def test_delete_invalid_name(self, manager):
        with pytest.raises(ValidationError):
            manager.delete_backup("../time_tracker.db")

    def test_to_dict(self, manager):
        info = manager.create_backup("dict.db")

        data = info.to_dict()

        assert data["fileName"] == "dict.db"
        assert data["sizeBytes"] == info.size_bytes
        assert data["createdAt"] == info.created_at.isoformat()

    def test_in_flight_backup_not_listed_or_deletable(self, manager, initialized_store, backup_dir):
        """A reserved name is neither listed nor deletable until the copy lands."""
        target = backup_dir / "inflight.db"

        with initialized_store.locked():
            worker = threading.Thread(target=manager.create_backup, args=("inflight.db",))
            worker.start()
            deadline = time.monotonic() + 5
            while not target.exists() and time.monotonic() < deadline:
                time.sleep(0.01)

            assert target.exists()
            assert manager.list_backups() == []
            with pytest.raises(ConflictError):
                manager.delete_backup("inflight.db")

        worker.join(timeout=5)

        listed = manager.list_backups()
        assert [b.file_name for b in listed] == ["inflight.db"]
        assert listed[0].size_bytes > 0
        assert not (backup_dir / "inflight.db.partial").exists()

    def test_list_skips_vanished_files(self, manager, backup_dir, monkeypatch):
        manager.create_backup("kept.db")
        manager.create_backup("gone.db")
        from_path = BackupInfo.from_path

        def vanishing(path):
            if path.name == "gone.db":
                path.unlink()
            return from_path(path)

        monkeypatch.setattr(BackupInfo, "from_path", vanishing)

        assert [b.file_name for b in manager.list_backups()] == ["kept.db"]
