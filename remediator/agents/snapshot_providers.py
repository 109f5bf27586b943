"""
Snapshot Providers
==================
Checkpoint / commit / revert primitives for the rollback controller.

Every provider implements:
    checkpoint(label, files) — remember the current tree state
    commit(label)     — accept the edits made since the checkpoint
    revert()          — return the tree bit-for-bit to the checkpoint

Providers:
    GitSnapshotProvider  — git commits; revert = reset --hard + clean
    FileSnapshotProvider — in-memory copy of every file's bytes
    NullSnapshotProvider — no-op (dry runs)

Paths listed in ``excludes`` (backup store, report files, logs) are never
committed, snapshotted, or cleaned.
"""
import os
import logging
import subprocess
from typing import Iterable, Optional, Protocol

from remediator.core.config import RemediationSettings
from remediator.core.constants import CHECKPOINT_PREFIX, COMMIT_PREFIX
from remediator.core.exceptions import SnapshotError
from remediator.utils.path_utils import normalize_path, resolve_within, walk_files

logger = logging.getLogger(__name__)


class SnapshotProvider(Protocol):
    name: str

    def checkpoint(self, label: str, files: Iterable[str] = ()) -> None: ...

    def commit(self, label: str) -> None: ...

    def revert(self) -> None: ...


def _clean_excludes(workspace_path: str, excludes: Iterable[str]) -> list[str]:
    cleaned = []
    for path in excludes:
        rel = normalize_path(path, workspace_path).rstrip("/")
        if rel and not rel.startswith("..") and not os.path.isabs(rel):
            cleaned.append(rel)
    return cleaned


def _in_tree(workspace_path: str, files: Iterable[str], excludes: list[str]) -> set[str]:
    """Workspace-relative form of ``files``, dropping escaping and excluded paths."""
    tracked = set()
    for path in files:
        rel = normalize_path(path, workspace_path)
        try:
            resolve_within(workspace_path, rel)
        except ValueError:
            continue
        if rel and not any(rel == p or rel.startswith(p + "/") for p in excludes):
            tracked.add(rel)
    return tracked


# ---------------------------------------------------------------------------
# Git
# ---------------------------------------------------------------------------
class GitSnapshotProvider:
    """
    Uses the project's git repository as the snapshot store.

    checkpoint commits any pending work as ``checkpoint: <label>`` and
    records HEAD; commit records the phase as ``fix: <label>``; revert
    hard-resets to the recorded HEAD and removes untracked files.
    Files named in the checkpoint call that git ignores are kept in memory
    and written back on revert, since reset and clean never touch them.
    """

    name = "git"

    def __init__(self, workspace_path: str, excludes: Iterable[str] = ()) -> None:
        self.workspace_path = os.path.abspath(workspace_path)
        self.excludes = _clean_excludes(self.workspace_path, excludes)
        self.checkpoint_sha: Optional[str] = None
        self._identity: Optional[list[str]] = None
        self._ignored: dict[str, bytes] = {}

    # --- helpers ---
    def _git(self, *args: str, check: bool = True) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(
                ["git", *self._identity_args(), *args],
                cwd=self.workspace_path,
                check=check,
                capture_output=True,
                text=True,
            )
        except subprocess.CalledProcessError as e:
            raise SnapshotError(f"git {' '.join(args)} failed: {(e.stderr or '').strip()}") from e
        except OSError as e:
            raise SnapshotError(f"git is not available: {e}") from e

    def _identity_args(self) -> list[str]:
        """Supply a committer identity only when the repository has none."""
        if self._identity is None:
            try:
                res = subprocess.run(
                    ["git", "config", "user.email"],
                    cwd=self.workspace_path,
                    capture_output=True,
                    text=True,
                )
                configured = res.returncode == 0 and res.stdout.strip()
            except OSError:
                configured = False
            self._identity = [] if configured else [
                "-c", "user.name=remediator",
                "-c", "user.email=remediator@localhost",
            ]
        return self._identity

    def _pathspec(self) -> list[str]:
        return ["--", "."] + [f":(exclude){p}" for p in self.excludes]

    def _stage_and_commit(self, message: str) -> bool:
        self._git("add", "-A", *self._pathspec())
        diff = self._git("diff", "--cached", "--quiet", check=False)
        if diff.returncode == 0:
            return False
        self._git("commit", "--no-verify", "-m", message)
        return True

    def head(self) -> Optional[str]:
        res = self._git("rev-parse", "--verify", "HEAD", check=False)
        return res.stdout.strip() if res.returncode == 0 else None

    def _read_ignored(self, files: Iterable[str]) -> dict[str, bytes]:
        rels = sorted(
            rel for rel in _in_tree(self.workspace_path, files, self.excludes)
            if os.path.isfile(os.path.join(self.workspace_path, rel))
        )
        if not rels:
            return {}
        res = self._git("check-ignore", "--", *rels, check=False)
        contents = {}
        try:
            for rel in res.stdout.splitlines():
                with open(os.path.join(self.workspace_path, rel), "rb") as f:
                    contents[rel] = f.read()
        except OSError as e:
            raise SnapshotError(f"Cannot snapshot ignored file: {e}") from e
        return contents

    # --- provider interface ---
    def checkpoint(self, label: str, files: Iterable[str] = ()) -> None:
        message = f"{CHECKPOINT_PREFIX} {label}"
        committed = self._stage_and_commit(message)
        if self.head() is None:
            # Empty repository: create a root commit to reset to
            self._git("commit", "--no-verify", "--allow-empty", "-m", message)
            committed = True
        self.checkpoint_sha = self.head()
        self._ignored = self._read_ignored(files)
        logger.info("Git checkpoint %s%s", self.checkpoint_sha[:8] if self.checkpoint_sha else "?",
                    " (pending work committed)" if committed else "")

    def commit(self, label: str) -> None:
        if self._stage_and_commit(f"{COMMIT_PREFIX} {label}"):
            logger.info("Committed phase: %s", label)
        else:
            logger.info("Phase %s left no changes to commit", label)
        self.checkpoint_sha = None
        self._ignored = {}

    def revert(self) -> None:
        if not self.checkpoint_sha:
            raise SnapshotError("No git checkpoint to revert to")
        self._git("reset", "--hard", self.checkpoint_sha)
        clean_args = ["clean", "-fd"]
        for path in self.excludes:
            clean_args += ["-e", path]
        self._git(*clean_args)
        try:
            for rel, content in self._ignored.items():
                with open(os.path.join(self.workspace_path, rel), "wb") as f:
                    f.write(content)
        except OSError as e:
            raise SnapshotError(f"Restoring ignored file failed: {e}") from e
        logger.warning("Reverted working tree to %s", self.checkpoint_sha[:8])
        self.checkpoint_sha = None
        self._ignored = {}


# ---------------------------------------------------------------------------
# Plain files
# ---------------------------------------------------------------------------
class FileSnapshotProvider:
    """
    Keeps the bytes of every file in memory between checkpoint and settle.

    Suitable for trees without version control. Vendor directories and
    top-level build output are not walked, but any file named in the
    checkpoint call is snapshotted and reverted wherever it lives.
    """

    name = "files"

    def __init__(self, workspace_path: str, excludes: Iterable[str] = ()) -> None:
        self.workspace_path = os.path.abspath(workspace_path)
        self.excludes = _clean_excludes(self.workspace_path, excludes)
        self._snapshot: Optional[dict[str, bytes]] = None
        self._extra: set[str] = set()

    def _excluded(self, rel: str) -> bool:
        return any(rel == p or rel.startswith(p + "/") for p in self.excludes)

    def _files(self) -> list[str]:
        walked = [rel for rel in walk_files(self.workspace_path) if not self._excluded(rel)]
        return sorted(set(walked) | self._extra)

    def checkpoint(self, label: str, files: Iterable[str] = ()) -> None:
        self._extra = _in_tree(self.workspace_path, files, self.excludes)
        snapshot: dict[str, bytes] = {}
        try:
            for rel in self._files():
                if not os.path.isfile(os.path.join(self.workspace_path, rel)):
                    continue
                with open(os.path.join(self.workspace_path, rel), "rb") as f:
                    snapshot[rel] = f.read()
        except OSError as e:
            raise SnapshotError(f"Cannot snapshot tree: {e}") from e
        self._snapshot = snapshot
        logger.info("File checkpoint '%s' (%d files)", label, len(snapshot))

    def commit(self, label: str) -> None:
        self._snapshot = None
        self._extra = set()

    def revert(self) -> None:
        if self._snapshot is None:
            raise SnapshotError("No file checkpoint to revert to")

        restored = removed = 0
        try:
            for rel in self._files():
                if rel not in self._snapshot and os.path.isfile(os.path.join(self.workspace_path, rel)):
                    os.remove(os.path.join(self.workspace_path, rel))
                    removed += 1

            for rel, content in self._snapshot.items():
                abs_path = os.path.join(self.workspace_path, rel)
                if os.path.isfile(abs_path):
                    with open(abs_path, "rb") as f:
                        if f.read() == content:
                            continue
                os.makedirs(os.path.dirname(abs_path), exist_ok=True)
                with open(abs_path, "wb") as f:
                    f.write(content)
                restored += 1
        except OSError as e:
            raise SnapshotError(f"File revert failed: {e}") from e

        logger.warning("Reverted %d files, removed %d new files", restored, removed)
        self._snapshot = None
        self._extra = set()


class NullSnapshotProvider:
    """Does nothing. Used for dry runs where the tree is never written."""

    name = "none"

    def checkpoint(self, label: str, files: Iterable[str] = ()) -> None:
        pass

    def commit(self, label: str) -> None:
        pass

    def revert(self) -> None:
        pass


def build_snapshot_provider(settings: RemediationSettings) -> SnapshotProvider:
    """Pick the provider for a run ("auto" → git when the project has a .git directory)."""
    if settings.dry_run or settings.snapshot_provider == "none":
        return NullSnapshotProvider()

    excludes = [settings.backup_root, settings.report_file, settings.analysis_file]
    choice = settings.snapshot_provider
    if choice == "auto":
        choice = "git" if os.path.isdir(os.path.join(settings.project_path, ".git")) else "files"

    if choice == "git":
        return GitSnapshotProvider(settings.project_path, excludes=excludes)
    return FileSnapshotProvider(settings.project_path, excludes=excludes)
