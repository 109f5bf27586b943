"""
CLI Tests
=========
Exit codes and output of the click commands, with the orchestrator and
toolchain mocked.
"""
import json
import logging
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from remediator.cli import EXIT_REMAINING, EXIT_SETUP_FAILURE, cli
from remediator.executor.toolchain_invoker import ToolchainResult
from remediator.models.phase_result import PhaseResult
from remediator.models.run_report import RunReport
from remediator.services.backup_service import BackupManager

TSC_OUTPUT = (
    "src/a.ts(1,1): error TS1005: ';' expected.\n"
    "src/a.ts(2,1): error TS2307: Cannot find module './x'.\n"
    "src/b.ts(3,1): error TS2307: Cannot find module './y'.\n"
    "Found 3 errors.\n"
)


@pytest.fixture(autouse=True)
def restore_root_handlers():
    # The group callback installs handlers bound to the runner's streams
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def project(tmp_path):
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "a.ts").write_text("export const a = 1;\n")
    return tmp_path


def _report(status="improved", final=1) -> RunReport:
    return RunReport(
        timestamp=datetime.now(timezone.utc), status=status, initial_errors=3, final_errors=final,
        total_improvement=3 - final, success_rate=round((3 - final) / 3, 4),
        phases=[PhaseResult(category="syntax-errors", iteration=1, before_count=3, after_count=final)],
        error="boom" if status == "error" else None,
    )


class TestRun:

    def test_summary_output(self, runner, project):
        with patch("remediator.cli.Orchestrator") as mock_cls:
            mock_cls.return_value.run.return_value = _report()
            result = runner.invoke(cli, ["run", str(project), "--max-increase", "4"])

        assert result.exit_code == 0
        assert "Status: improved" in result.output
        assert "syntax-errors #1: 3 → 1" in result.output
        settings = mock_cls.call_args.args[0]
        assert settings.max_allowed_increase == 4
        assert settings.dry_run is False

    def test_json_output(self, runner, project):
        with patch("remediator.cli.Orchestrator") as mock_cls:
            mock_cls.return_value.run.return_value = _report()
            result = runner.invoke(cli, ["run", str(project), "--json", "--dry-run", "--no-backup"])

        assert json.loads(result.output)["final_errors"] == 1
        settings = mock_cls.call_args.args[0]
        assert settings.dry_run is True
        assert settings.backup_enabled is False

    def test_strict_with_remaining(self, runner, project):
        with patch("remediator.cli.Orchestrator") as mock_cls:
            mock_cls.return_value.run.return_value = _report()
            result = runner.invoke(cli, ["run", str(project), "--strict"])
        assert result.exit_code == EXIT_REMAINING

    def test_strict_when_clean(self, runner, project):
        with patch("remediator.cli.Orchestrator") as mock_cls:
            mock_cls.return_value.run.return_value = _report(status="success", final=0)
            result = runner.invoke(cli, ["run", str(project), "--strict"])
        assert result.exit_code == 0

    def test_setup_failure(self, runner, project):
        with patch("remediator.cli.Orchestrator") as mock_cls:
            mock_cls.return_value.run.return_value = _report(status="error", final=3)
            result = runner.invoke(cli, ["run", str(project)])
        assert result.exit_code == EXIT_SETUP_FAILURE

    def test_bad_config(self, runner, project):
        (project / "remediator.yaml").write_text("max_iterations: 0\n")
        result = runner.invoke(cli, ["run", str(project)])
        assert result.exit_code == EXIT_SETUP_FAILURE


class TestAnalyze:

    def test_markdown(self, runner, project):
        invoker = MagicMock()
        invoker.invoke.return_value = ToolchainResult(exit_code=2, output=TSC_OUTPUT)
        with patch("remediator.cli.build_invoker", return_value=invoker):
            result = runner.invoke(cli, ["analyze", str(project), "--command", "npx tsc"])

        assert result.exit_code == 0
        assert "# Diagnostic Analysis" in result.output
        assert "| TS2307 | 2 |" in result.output

    def test_json(self, runner, project):
        invoker = MagicMock()
        invoker.invoke.return_value = ToolchainResult(exit_code=2, output=TSC_OUTPUT)
        with patch("remediator.cli.build_invoker", return_value=invoker):
            result = runner.invoke(cli, ["analyze", str(project), "--json"])

        data = json.loads(result.output)
        assert data["total"] == 3
        assert [c["name"] for c in data["categories"]] == ["syntax-errors", "import-issues"]
        assert data["codes"] == {"TS1005": 1, "TS2307": 2}

    def test_unresolvable_toolchain(self, runner, project):
        result = runner.invoke(cli, ["analyze", str(project), "--command", ""])
        assert result.exit_code == EXIT_SETUP_FAILURE


class TestBackups:

    @pytest.fixture
    def manager(self, project):
        return BackupManager(str(project / ".remediation-backups"), workspace_path=str(project))

    def test_list_empty(self, runner, project):
        result = runner.invoke(cli, ["backups", "list", str(project)])
        assert "No backups." in result.output

    def test_list_and_restore(self, runner, project, manager):
        backup = manager.create_backup(["src/a.ts"], "syntax-errors (iteration 1)")
        (project / "src" / "a.ts").write_text("broken")

        listed = runner.invoke(cli, ["backups", "list", str(project)])
        assert backup.id in listed.output

        restored = runner.invoke(cli, ["backups", "restore", str(project), backup.id])
        assert restored.exit_code == 0
        assert (project / "src" / "a.ts").read_text() == "export const a = 1;\n"

    def test_restore_unknown(self, runner, project):
        result = runner.invoke(cli, ["backups", "restore", str(project), "backup-nope"])
        assert result.exit_code == 1

    def test_prune(self, runner, project, manager):
        for _ in range(3):
            manager.create_backup(["src/a.ts"])
        result = runner.invoke(cli, ["backups", "prune", str(project), "--keep", "2"])
        assert "Pruned 1 backups" in result.output

    def test_prune_needs_a_rule(self, runner, project):
        result = runner.invoke(cli, ["backups", "prune", str(project)])
        assert result.exit_code == 2
