"""
Checkpoint & Rollback Controller
================================
Guards every mutating phase with the non-regression invariant:

    after_count - before_count <= max_allowed_increase

Lifecycle per attempt:
    begin(label, files)               → provider.checkpoint(label, files)
    settle(label, before, after)      → commit, or revert on regression
    discard()                         → drop edits of a failed attempt

Fallback chain when the provider cannot revert:
    provider.revert() → restore the phase backup → RollbackError (run aborts)
"""
import logging
from typing import Iterable, Optional

from remediator.agents.snapshot_providers import SnapshotProvider
from remediator.core.exceptions import BackupError, RollbackError, SnapshotError
from remediator.models.backup import Backup
from remediator.services.backup_service import BackupManager

logger = logging.getLogger(__name__)


class CheckpointController:

    def __init__(
        self,
        provider: SnapshotProvider,
        max_allowed_increase: int,
        backup_manager: Optional[BackupManager] = None,
    ) -> None:
        self.provider = provider
        self.max_allowed_increase = max_allowed_increase
        self.backup_manager = backup_manager

    def begin(self, label: str, files: Iterable[str] = ()) -> None:
        """Take a checkpoint before a phase edits the tree (raises SnapshotError)."""
        self.provider.checkpoint(label, files=list(files))

    def is_regression(self, before: int, after: int) -> bool:
        return after - before > self.max_allowed_increase

    def settle(self, label: str, before: int, after: int, backup: Optional[Backup] = None) -> bool:
        """
        Commit or revert the attempt based on the measured counts.

        Returns
        -------
        bool
            True if the tree was reverted. A non-improving attempt within
            the threshold is still committed.
        """
        increase = after - before
        if self.is_regression(before, after):
            logger.warning(
                "Phase %s increased diagnostics by %d (> %d allowed) — reverting",
                label, increase, self.max_allowed_increase,
            )
            self._rollback(backup)
            return True

        self.provider.commit(label)
        if increase > 0:
            logger.info("Phase %s kept with +%d diagnostics (within threshold)", label, increase)
        return False

    def discard(self, backup: Optional[Backup] = None) -> None:
        """Drop uncommitted edits left behind by a failed attempt."""
        self._rollback(backup)

    def _rollback(self, backup: Optional[Backup]) -> None:
        try:
            self.provider.revert()
            return
        except SnapshotError as e:
            logger.error("Snapshot revert failed: %s", e)
            if backup is None or self.backup_manager is None:
                raise RollbackError(f"Revert failed and no backup is available: {e}") from e

        try:
            self.backup_manager.restore_backup(backup.id)
            logger.warning("Restored tree from backup %s after failed revert", backup.id)
        except BackupError as e:
            raise RollbackError(f"Revert failed and backup {backup.id} could not be restored: {e}") from e
