"""
Unit Tests — Snapshot Providers
===============================
Bit-for-bit revert for the file and git providers, and provider selection.
"""
import os
import shutil
import subprocess
from unittest.mock import patch

import pytest

from remediator.agents.snapshot_providers import (
    FileSnapshotProvider,
    GitSnapshotProvider,
    NullSnapshotProvider,
    build_snapshot_provider,
)
from remediator.core.config import RemediationSettings
from remediator.core.exceptions import SnapshotError


def _tree(root) -> dict:
    """relative path -> bytes for every file outside excluded/ignored dirs."""
    out = {}
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = [d for d in dirnames if d not in (".git", ".remediation-backups")]
        for name in filenames:
            path = os.path.join(dirpath, name)
            out[os.path.relpath(path, root)] = open(path, "rb").read()
    return out


@pytest.fixture
def project(tmp_path):
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "a.ts").write_bytes(b"export const a = 1;\n")
    (tmp_path / "src" / "b.ts").write_bytes(b"export const b = 2;\r\n")
    (tmp_path / ".remediation-backups").mkdir()
    return tmp_path


def _mutate(project):
    (project / "src" / "a.ts").write_bytes(b"broken(")
    (project / "src" / "b.ts").unlink()
    (project / "src" / "new.ts").write_bytes(b"new file")


# ===========================================================================
# 1. File provider
# ===========================================================================
class TestFileSnapshotProvider:

    def test_revert_is_bit_for_bit(self, project):
        provider = FileSnapshotProvider(str(project), excludes=[str(project / ".remediation-backups")])
        before = _tree(project)

        provider.checkpoint("phase")
        _mutate(project)
        provider.revert()

        assert _tree(project) == before

    def test_excluded_paths_survive_revert(self, project):
        provider = FileSnapshotProvider(str(project), excludes=[".remediation-backups"])
        provider.checkpoint("phase")
        (project / ".remediation-backups" / "manifest.json").write_text("{}")
        provider.revert()
        assert (project / ".remediation-backups" / "manifest.json").exists()

    def test_vendor_dirs_untouched(self, project):
        (project / "node_modules").mkdir()
        provider = FileSnapshotProvider(str(project))
        provider.checkpoint("phase")
        (project / "node_modules" / "pkg.js").write_text("x")
        provider.revert()
        assert (project / "node_modules" / "pkg.js").exists()

    def test_nested_build_dir_is_reverted(self, project):
        (project / "src" / "build").mkdir()
        (project / "src" / "build" / "a.ts").write_bytes(b"original\n")
        provider = FileSnapshotProvider(str(project))

        provider.checkpoint("phase")
        (project / "src" / "build" / "a.ts").write_bytes(b"worse\n")
        provider.revert()

        assert (project / "src" / "build" / "a.ts").read_bytes() == b"original\n"

    def test_named_files_reverted_even_in_skipped_dirs(self, project):
        (project / "build").mkdir()
        (project / "build" / "gen.ts").write_bytes(b"generated\n")
        provider = FileSnapshotProvider(str(project))

        provider.checkpoint("phase", files=["build/gen.ts", "build/new.ts", "../outside.ts"])
        (project / "build" / "gen.ts").write_bytes(b"edited\n")
        (project / "build" / "new.ts").write_bytes(b"created\n")
        provider.revert()

        assert (project / "build" / "gen.ts").read_bytes() == b"generated\n"
        assert not (project / "build" / "new.ts").exists()

    def test_commit_keeps_edits(self, project):
        provider = FileSnapshotProvider(str(project))
        provider.checkpoint("phase")
        (project / "src" / "a.ts").write_bytes(b"fixed")
        provider.commit("phase")
        assert (project / "src" / "a.ts").read_bytes() == b"fixed"

    def test_revert_without_checkpoint(self, project):
        with pytest.raises(SnapshotError):
            FileSnapshotProvider(str(project)).revert()

    def test_revert_after_commit(self, project):
        provider = FileSnapshotProvider(str(project))
        provider.checkpoint("phase")
        provider.commit("phase")
        with pytest.raises(SnapshotError):
            provider.revert()


# ===========================================================================
# 2. Git provider
# ===========================================================================
requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


def _git(cwd, *args) -> str:
    return subprocess.run(["git", "-c", "user.name=t", "-c", "user.email=t@t", *args],
                          cwd=cwd, check=True, capture_output=True, text=True).stdout


@requires_git
class TestGitSnapshotProvider:

    @pytest.fixture
    def repo(self, project):
        _git(project, "init", "-q")
        return project

    def test_checkpoint_commits_pending_work(self, repo):
        provider = GitSnapshotProvider(str(repo), excludes=[".remediation-backups"])
        provider.checkpoint("import-issues (iteration 1)")
        assert provider.checkpoint_sha
        assert "checkpoint: import-issues (iteration 1)" in _git(repo, "log", "--format=%s")

    def test_revert_is_bit_for_bit(self, repo):
        provider = GitSnapshotProvider(str(repo), excludes=[".remediation-backups"])
        provider.checkpoint("phase")
        before = _tree(repo)

        _mutate(repo)
        (repo / ".remediation-backups" / "keep.json").write_text("{}")
        provider.revert()

        assert _tree(repo) == before
        assert (repo / ".remediation-backups" / "keep.json").exists()

    def test_commit_message(self, repo):
        provider = GitSnapshotProvider(str(repo), excludes=[".remediation-backups"])
        provider.checkpoint("phase")
        (repo / "src" / "a.ts").write_bytes(b"fixed\n")
        provider.commit("syntax-errors (iteration 1)")
        assert _git(repo, "log", "-1", "--format=%s").strip() == "fix: syntax-errors (iteration 1)"

    def test_excluded_paths_never_committed(self, repo):
        (repo / ".remediation-backups" / "m.json").write_text("{}")
        provider = GitSnapshotProvider(str(repo), excludes=[".remediation-backups"])
        provider.checkpoint("phase")
        tracked = _git(repo, "ls-files")
        assert ".remediation-backups" not in tracked
        assert "src/a.ts" in tracked

    def test_ignored_phase_file_is_reverted(self, repo):
        (repo / ".gitignore").write_text("build/\n")
        (repo / "src" / "build").mkdir()
        (repo / "src" / "build" / "a.ts").write_bytes(b"original\n")
        provider = GitSnapshotProvider(str(repo), excludes=[".remediation-backups"])

        provider.checkpoint("phase", files=["src/build/a.ts"])
        (repo / "src" / "build" / "a.ts").write_bytes(b"worse\n")
        provider.revert()

        assert (repo / "src" / "build" / "a.ts").read_bytes() == b"original\n"

    def test_revert_without_checkpoint(self, repo):
        with pytest.raises(SnapshotError):
            GitSnapshotProvider(str(repo)).revert()


def test_git_failure_becomes_snapshot_error(tmp_path):
    provider = GitSnapshotProvider(str(tmp_path))
    with patch("remediator.agents.snapshot_providers.subprocess.run", side_effect=FileNotFoundError("git")):
        with pytest.raises(SnapshotError):
            provider.checkpoint("phase")


# ===========================================================================
# 3. Selection
# ===========================================================================
class TestBuildSnapshotProvider:

    def test_auto_without_git_uses_files(self, tmp_path):
        provider = build_snapshot_provider(RemediationSettings(project_path=str(tmp_path)))
        assert isinstance(provider, FileSnapshotProvider)

    def test_auto_with_git_dir_uses_git(self, tmp_path):
        (tmp_path / ".git").mkdir()
        provider = build_snapshot_provider(RemediationSettings(project_path=str(tmp_path)))
        assert isinstance(provider, GitSnapshotProvider)

    def test_dry_run_uses_null(self, tmp_path):
        provider = build_snapshot_provider(RemediationSettings(project_path=str(tmp_path), dry_run=True))
        assert isinstance(provider, NullSnapshotProvider)

    def test_explicit_files(self, tmp_path):
        (tmp_path / ".git").mkdir()
        settings = RemediationSettings(project_path=str(tmp_path), snapshot_provider="files")
        assert isinstance(build_snapshot_provider(settings), FileSnapshotProvider)

    def test_backup_and_report_paths_excluded(self, tmp_path):
        settings = RemediationSettings(project_path=str(tmp_path), snapshot_provider="files")
        provider = build_snapshot_provider(settings)
        assert ".remediation-backups" in provider.excludes
        assert "remediation-report.json" in provider.excludes
