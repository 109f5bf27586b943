"""
Backup Service
==============
Durable, restorable copies of the files a phase is about to modify.

Store layout:
    <root>/<id>/manifest.json
    <root>/<id>/files/<relative path>

Guarantees:
    - ATOMIC CREATE — files are copied into a staging directory and the
      staging directory is renamed into place only after every copy and the
      manifest succeeded. A failed create leaves nothing referenced.
    - VERIFIED RESTORE — every archived file must exist and match its
      recorded sha256 before a single byte is written back.
    - Backups are immutable and retained until explicitly pruned.

Identifiers are opaque (``backup-<utc timestamp>-<random hex>``); callers
address a backup by id, never by path.
"""
import os
import json
import shutil
import hashlib
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from remediator.core.exceptions import BackupError, BackupIntegrityError, BackupNotFoundError
from remediator.models.backup import Backup
from remediator.utils.path_utils import normalize_path, resolve_within

logger = logging.getLogger(__name__)

MANIFEST_FILE = "manifest.json"
FILES_DIR = "files"
_STAGING_PREFIX = ".staging-"


def sha256_file(path: str) -> str:
    """Return the hex sha256 digest of a file's bytes."""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            digest.update(chunk)
    return digest.hexdigest()


def _new_backup_id(now: datetime) -> str:
    return f"backup-{now.strftime('%Y%m%dT%H%M%S%fZ')}-{secrets.token_hex(4)}"


class BackupManager:
    """
    Backup store rooted at a directory (usually ``<project>/.remediation-backups``).

    Usage:
        manager = BackupManager(settings.backup_root, workspace_path=project)
        backup = manager.create_backup(["src/a.ts"], "phase import-issues")
        ...
        manager.restore_backup(backup.id)
    """

    def __init__(self, root: str, workspace_path: Optional[str] = None) -> None:
        self.root = os.path.abspath(root)
        # Relative file paths are resolved against the workspace
        self.workspace_path = os.path.abspath(workspace_path or os.getcwd())

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------
    def ensure_root(self) -> None:
        """Create the store directory; raises BackupError if that is impossible."""
        try:
            os.makedirs(self.root, exist_ok=True)
        except OSError as e:
            raise BackupError(f"Cannot create backup root {self.root}: {e}") from e
        if not os.access(self.root, os.W_OK):
            raise BackupError(f"Backup root is not writable: {self.root}")

    def _backup_dir(self, backup_id: str) -> str:
        if not backup_id or "/" in backup_id or "\\" in backup_id or backup_id.startswith("."):
            raise BackupNotFoundError(f"Invalid backup id: {backup_id!r}")
        return os.path.join(self.root, backup_id)

    def _next_sequence(self) -> int:
        existing = self.list_backups()
        return (existing[-1].sequence + 1) if existing else 1

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------
    def create_backup(self, files: Iterable[str], description: str = "") -> Backup:
        """
        Archive the current bytes of ``files``.

        Parameters
        ----------
        files : Iterable[str]
            Workspace-relative (or absolute, inside the workspace) paths.
            Duplicates are archived once.
        description : str
            Free text stored in the manifest.

        Raises
        ------
        BackupError
            If any file cannot be read or copied. The staging directory is
            removed before raising.
        """
        self.ensure_root()

        rel_files: list[str] = []
        for raw in files:
            rel = normalize_path(raw, self.workspace_path)
            if rel and rel not in rel_files:
                rel_files.append(rel)

        now = datetime.now(timezone.utc)
        backup_id = _new_backup_id(now)
        staging = os.path.join(self.root, f"{_STAGING_PREFIX}{backup_id}")
        final_dir = os.path.join(self.root, backup_id)

        try:
            os.makedirs(os.path.join(staging, FILES_DIR))
            hashes: dict[str, str] = {}
            for rel in rel_files:
                src = resolve_within(self.workspace_path, rel)
                dest = resolve_within(os.path.join(staging, FILES_DIR), rel)
                os.makedirs(os.path.dirname(dest), exist_ok=True)
                shutil.copy2(src, dest)
                hashes[rel] = sha256_file(dest)

            backup = Backup(
                id=backup_id,
                timestamp=now,
                description=description,
                files=rel_files,
                backup_path=final_dir,
                sequence=self._next_sequence(),
                hashes=hashes,
            )
            with open(os.path.join(staging, MANIFEST_FILE), "w", encoding="utf-8") as f:
                json.dump(backup.manifest(), f, indent=2)

            os.rename(staging, final_dir)
        except (OSError, ValueError) as e:
            shutil.rmtree(staging, ignore_errors=True)
            logger.error("Backup failed (%s): %s", description or backup_id, e)
            raise BackupError(f"Backup failed: {e}") from e

        logger.info("Created backup %s (%d files) — %s", backup_id, len(rel_files), description)
        return backup

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------
    def _load_manifest(self, backup_dir: str) -> Backup:
        with open(os.path.join(backup_dir, MANIFEST_FILE), "r", encoding="utf-8") as f:
            data = json.load(f)
        data["backup_path"] = backup_dir
        return Backup(**data)

    def get_backup(self, backup_id: str) -> Backup:
        """Return the backup metadata for ``backup_id``."""
        backup_dir = self._backup_dir(backup_id)
        if not os.path.isfile(os.path.join(backup_dir, MANIFEST_FILE)):
            raise BackupNotFoundError(f"No backup with id {backup_id}")
        try:
            return self._load_manifest(backup_dir)
        except (OSError, ValueError) as e:
            raise BackupIntegrityError(f"Unreadable manifest for {backup_id}: {e}") from e

    def list_backups(self) -> list[Backup]:
        """All complete backups in creation order. Unreadable entries are skipped."""
        if not os.path.isdir(self.root):
            return []

        backups: list[Backup] = []
        for name in os.listdir(self.root):
            if name.startswith("."):
                continue
            backup_dir = os.path.join(self.root, name)
            if not os.path.isfile(os.path.join(backup_dir, MANIFEST_FILE)):
                continue
            try:
                backups.append(self._load_manifest(backup_dir))
            except (OSError, ValueError) as e:
                logger.warning("Ignoring unreadable backup %s: %s", name, e)

        return sorted(backups, key=lambda b: (b.sequence, b.timestamp))

    def verify_backup(self, backup_id: str) -> list[str]:
        """
        Check an archive against its manifest.

        Returns
        -------
        list[str]
            Human-readable problems; empty when the backup is intact.
        """
        backup = self.get_backup(backup_id)
        files_root = os.path.join(backup.backup_path, FILES_DIR)
        problems: list[str] = []
        for rel in backup.files:
            archived = os.path.join(files_root, rel)
            if not os.path.isfile(archived):
                problems.append(f"missing: {rel}")
                continue
            expected = backup.hashes.get(rel)
            if expected and sha256_file(archived) != expected:
                problems.append(f"hash mismatch: {rel}")
        return problems

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------
    def restore_backup(self, backup_id: str) -> Backup:
        """
        Write every archived file back to its original location.

        Raises
        ------
        BackupNotFoundError
            Unknown id.
        BackupIntegrityError
            Any archived file is missing or corrupt; nothing is written.
        BackupError
            Writing a restored file failed.
        """
        backup = self.get_backup(backup_id)
        problems = self.verify_backup(backup_id)
        if problems:
            logger.error("Backup %s failed verification: %s", backup_id, "; ".join(problems))
            raise BackupIntegrityError(f"Backup {backup_id} is incomplete: {'; '.join(problems)}")

        files_root = os.path.join(backup.backup_path, FILES_DIR)
        try:
            for rel in backup.files:
                dest = resolve_within(self.workspace_path, rel)
                os.makedirs(os.path.dirname(dest), exist_ok=True)
                shutil.copy2(os.path.join(files_root, rel), dest)
        except (OSError, ValueError) as e:
            raise BackupError(f"Restore of {backup_id} failed: {e}") from e

        logger.info("Restored backup %s (%d files)", backup_id, len(backup.files))
        return backup

    # ------------------------------------------------------------------
    # Prune
    # ------------------------------------------------------------------
    def _delete(self, backup: Backup) -> None:
        shutil.rmtree(backup.backup_path)
        logger.info("Pruned backup %s", backup.id)

    def prune_older_than(self, duration: timedelta, now: Optional[datetime] = None) -> int:
        """Delete backups older than ``duration``; returns how many were removed."""
        cutoff = (now or datetime.now(timezone.utc)) - duration
        removed = 0
        for backup in self.list_backups():
            if backup.timestamp < cutoff:
                self._delete(backup)
                removed += 1
        return removed

    def prune_keep_latest(self, keep: int) -> int:
        """Keep only the newest ``keep`` backups; returns how many were removed."""
        if keep < 0:
            raise ValueError("keep must be >= 0")
        backups = self.list_backups()
        stale = backups[:-keep] if keep else backups
        for backup in stale:
            self._delete(backup)
        return len(stale)
