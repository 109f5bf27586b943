"""
Unit Tests — Backup Service
===========================
Atomic creation, verified restore, listing order and pruning.
"""
import os
import json
from datetime import datetime, timedelta, timezone

import pytest

from remediator.core.exceptions import BackupError, BackupIntegrityError, BackupNotFoundError
from remediator.services.backup_service import BackupManager, MANIFEST_FILE, FILES_DIR


@pytest.fixture
def project(tmp_path):
    root = tmp_path / "project"
    (root / "src" / "lib").mkdir(parents=True)
    (root / "src" / "a.ts").write_bytes(b"import x from './x';\nexport const a = 1;\n")
    (root / "src" / "lib" / "b.ts").write_bytes(b"export const b = 2;\r\n")
    return root


@pytest.fixture
def manager(project):
    return BackupManager(str(project / ".remediation-backups"), workspace_path=str(project))


# ===========================================================================
# 1. Create
# ===========================================================================
class TestCreate:

    def test_store_layout(self, manager, project):
        backup = manager.create_backup(["src/a.ts", "src/lib/b.ts"], "phase import-issues")
        backup_dir = os.path.join(manager.root, backup.id)
        assert backup.backup_path == backup_dir
        assert os.path.isfile(os.path.join(backup_dir, MANIFEST_FILE))
        assert os.path.isfile(os.path.join(backup_dir, FILES_DIR, "src", "lib", "b.ts"))

        with open(os.path.join(backup_dir, MANIFEST_FILE), encoding="utf-8") as f:
            manifest = json.load(f)
        assert manifest["id"] == backup.id
        assert manifest["files"] == ["src/a.ts", "src/lib/b.ts"]
        assert manifest["description"] == "phase import-issues"
        assert set(manifest["hashes"]) == {"src/a.ts", "src/lib/b.ts"}

    def test_id_format_and_uniqueness(self, manager):
        ids = {manager.create_backup(["src/a.ts"]).id for _ in range(5)}
        assert len(ids) == 5
        assert all(i.startswith("backup-") for i in ids)

    def test_absolute_paths_are_stored_relative(self, manager, project):
        backup = manager.create_backup([str(project / "src" / "a.ts")])
        assert backup.files == ["src/a.ts"]

    def test_duplicates_archived_once(self, manager):
        backup = manager.create_backup(["src/a.ts", "src/a.ts"])
        assert backup.files == ["src/a.ts"]

    def test_failure_leaves_nothing_behind(self, manager):
        with pytest.raises(BackupError):
            manager.create_backup(["src/a.ts", "src/does-not-exist.ts"])
        assert manager.list_backups() == []
        assert os.listdir(manager.root) == []

    def test_path_escaping_workspace_rejected(self, manager):
        with pytest.raises(BackupError):
            manager.create_backup(["../outside.ts"])
        assert os.listdir(manager.root) == []

    def test_unusable_root(self, tmp_path, project):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("x")
        manager = BackupManager(str(blocker), workspace_path=str(project))
        with pytest.raises(BackupError):
            manager.create_backup(["src/a.ts"])


# ===========================================================================
# 2. Restore
# ===========================================================================
class TestRestore:

    def test_round_trip_is_byte_exact(self, manager, project):
        originals = {
            "src/a.ts": (project / "src" / "a.ts").read_bytes(),
            "src/lib/b.ts": (project / "src" / "lib" / "b.ts").read_bytes(),
        }
        backup = manager.create_backup(list(originals), "before edit")

        (project / "src" / "a.ts").write_bytes(b"garbage")
        (project / "src" / "lib" / "b.ts").unlink()

        restored = manager.restore_backup(backup.id)
        assert restored.id == backup.id
        for rel, content in originals.items():
            assert (project / rel).read_bytes() == content

    def test_unknown_id(self, manager):
        with pytest.raises(BackupNotFoundError):
            manager.restore_backup("backup-nope")

    def test_path_like_id_rejected(self, manager):
        with pytest.raises(BackupNotFoundError):
            manager.restore_backup("../etc")

    def test_missing_archive_file_writes_nothing(self, manager, project):
        backup = manager.create_backup(["src/a.ts", "src/lib/b.ts"])
        os.remove(os.path.join(backup.backup_path, FILES_DIR, "src", "lib", "b.ts"))
        (project / "src" / "a.ts").write_bytes(b"edited")

        with pytest.raises(BackupIntegrityError):
            manager.restore_backup(backup.id)
        assert (project / "src" / "a.ts").read_bytes() == b"edited"

    def test_corrupt_archive_file_detected(self, manager, project):
        backup = manager.create_backup(["src/a.ts"])
        with open(os.path.join(backup.backup_path, FILES_DIR, "src", "a.ts"), "wb") as f:
            f.write(b"tampered")

        assert manager.verify_backup(backup.id) == ["hash mismatch: src/a.ts"]
        with pytest.raises(BackupIntegrityError):
            manager.restore_backup(backup.id)

    def test_verify_intact_backup(self, manager):
        backup = manager.create_backup(["src/a.ts"])
        assert manager.verify_backup(backup.id) == []


# ===========================================================================
# 3. Listing & pruning
# ===========================================================================
class TestListAndPrune:

    def test_listed_in_creation_order(self, manager):
        created = [manager.create_backup(["src/a.ts"], f"phase {i}") for i in range(3)]
        listed = manager.list_backups()
        assert [b.id for b in listed] == [b.id for b in created]
        assert [b.sequence for b in listed] == [1, 2, 3]

    def test_list_without_root(self, tmp_path):
        assert BackupManager(str(tmp_path / "missing")).list_backups() == []

    def test_get_backup(self, manager):
        backup = manager.create_backup(["src/a.ts"], "desc")
        loaded = manager.get_backup(backup.id)
        assert loaded.description == "desc"
        assert loaded.files == ["src/a.ts"]
        assert loaded.timestamp.tzinfo is not None

    def test_prune_older_than(self, manager):
        manager.create_backup(["src/a.ts"])
        manager.create_backup(["src/a.ts"])
        assert manager.prune_older_than(timedelta(days=1)) == 0

        later = datetime.now(timezone.utc) + timedelta(hours=2)
        assert manager.prune_older_than(timedelta(hours=1), now=later) == 2
        assert manager.list_backups() == []

    def test_prune_keep_latest(self, manager):
        created = [manager.create_backup(["src/a.ts"]) for _ in range(4)]
        assert manager.prune_keep_latest(1) == 3
        assert [b.id for b in manager.list_backups()] == [created[-1].id]

    def test_prune_keep_zero_removes_all(self, manager):
        manager.create_backup(["src/a.ts"])
        assert manager.prune_keep_latest(0) == 1
        assert manager.list_backups() == []

    def test_sequence_continues_after_prune(self, manager):
        for _ in range(3):
            manager.create_backup(["src/a.ts"])
        manager.prune_keep_latest(1)
        assert manager.create_backup(["src/a.ts"]).sequence == 4
