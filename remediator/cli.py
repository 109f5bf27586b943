"""remediator — iterative, regression-guarded diagnostic remediation.

Commands:
    run      - Remediate a project (phases, checkpoints, report)
    analyze  - Run the toolchain once and print the categorized analysis
    backups  - List, restore and prune phase backups
    serve    - Start the HTTP API

Exit codes:
    0  run finished
    1  --strict and diagnostics remain
    2  setup failure (bad config, toolchain unusable, backup root unusable)
"""
import json
import logging
from datetime import timedelta
from typing import Optional

import click

from remediator.agents.orchestrator import Orchestrator
from remediator.core.config import load_settings
from remediator.core.exceptions import BackupError, ConfigError, ToolchainError
from remediator.executor.toolchain_invoker import build_invoker
from remediator.parser.categorizer import categorize, schedule
from remediator.parser.diagnostic_parser import parse
from remediator.services.backup_service import BackupManager
from remediator.services.report_writer import render_analysis
from remediator.utils.logging_config import setup_logging

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_REMAINING = 1
EXIT_SETUP_FAILURE = 2


def _settings_or_exit(project_path: str, config_path: Optional[str] = None, **overrides):
    try:
        return load_settings(project_path, config_path, **overrides)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(EXIT_SETUP_FAILURE)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Debug logging")
@click.option("--log-dir", type=click.Path(file_okay=False), default=None,
              help="Also write a dated log file into this directory")
@click.option("--no-color", is_flag=True, help="Plain console log output")
def cli(verbose: bool, log_dir: Optional[str], no_color: bool) -> None:
    """Iteratively reduce compiler diagnostics without ever making the tree worse."""
    setup_logging(logging.DEBUG if verbose else logging.INFO, log_dir=log_dir, color=not no_color)


# ── run ──────────────────────────────────────────────────────────────────────

@cli.command("run")
@click.argument("project_path", type=click.Path(exists=True, file_okay=False))
@click.option("--dry-run", is_flag=True, help="Plan only: no backups, checkpoints or edits")
@click.option("--no-backup", is_flag=True, help="Skip per-phase file backups")
@click.option("--max-iterations", type=int, default=None, help="Iterations per phase")
@click.option("--timeout", "timeout_seconds", type=int, default=None, help="Toolchain timeout (seconds)")
@click.option("--max-increase", "max_allowed_increase", type=int, default=None,
              help="Largest tolerated diagnostic increase per phase")
@click.option("--strict", is_flag=True, help="Exit 1 when diagnostics remain")
@click.option("--command", "toolchain_command", default=None, help="Check command to run")
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False), default=None,
              help="Config file (default: <project>/remediator.yaml)")
@click.option("--json", "output_json", is_flag=True, help="Print the report as JSON")
def run_command(
    project_path: str,
    dry_run: bool,
    no_backup: bool,
    max_iterations: Optional[int],
    timeout_seconds: Optional[int],
    max_allowed_increase: Optional[int],
    strict: bool,
    toolchain_command: Optional[str],
    config_path: Optional[str],
    output_json: bool,
) -> None:
    """Remediate PROJECT_PATH phase by phase.

    \b
    Examples:
        remediator run .                      # full run
        remediator run . --dry-run --json     # plan only
        remediator run . --max-increase 10    # tolerate small regressions
    """
    settings = _settings_or_exit(
        project_path,
        config_path,
        dry_run=dry_run or None,
        backup_enabled=False if no_backup else None,
        strict=strict or None,
        max_iterations=max_iterations,
        timeout_seconds=timeout_seconds,
        max_allowed_increase=max_allowed_increase,
        toolchain_command=toolchain_command,
    )

    report = Orchestrator(settings).run()

    if output_json:
        click.echo(json.dumps(report.model_dump(mode="json"), indent=2))
    else:
        click.echo(f"Status: {report.status}{' (dry run)' if report.dry_run else ''}")
        click.echo(f"Diagnostics: {report.initial_errors} → {report.final_errors} "
                   f"({report.total_improvement:+d} improvement, {report.success_rate:.1%})")
        for p in report.phases:
            note = " reverted" if p.reverted else (f" error: {p.error}" if p.error else "")
            click.echo(f"  {p.category} #{p.iteration}: {p.before_count} → {p.after_count}{note}")
        for r in report.recommendations:
            click.echo(f"  - {r}")

    if report.status == "error":
        if not output_json:
            click.echo(f"Error: {report.error}", err=True)
        raise SystemExit(EXIT_SETUP_FAILURE)
    if settings.strict and report.final_errors > 0:
        raise SystemExit(EXIT_REMAINING)


# ── analyze ──────────────────────────────────────────────────────────────────

@cli.command("analyze")
@click.argument("project_path", type=click.Path(exists=True, file_okay=False))
@click.option("--command", "toolchain_command", default=None, help="Check command to run")
@click.option("--timeout", "timeout_seconds", type=int, default=None, help="Toolchain timeout (seconds)")
@click.option("--json", "output_json", is_flag=True, help="Print categories as JSON")
@click.option("--output", type=click.Path(dir_okay=False), default=None, help="Also write markdown here")
def analyze_command(
    project_path: str,
    toolchain_command: Optional[str],
    timeout_seconds: Optional[int],
    output_json: bool,
    output: Optional[str],
) -> None:
    """Run the toolchain once and show the categorized diagnostics."""
    settings = _settings_or_exit(project_path, toolchain_command=toolchain_command,
                                 timeout_seconds=timeout_seconds)
    try:
        result = build_invoker(settings).invoke()
    except (ConfigError, ToolchainError) as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(EXIT_SETUP_FAILURE)

    categorization = categorize(parse(result.output, settings.project_path))
    if output_json:
        click.echo(json.dumps({
            "total": categorization.total,
            "categories": [c.model_dump() for c in schedule(categorization)],
            "codes": {code: len(records) for code, records in categorization.by_code.items()},
        }, indent=2))
    else:
        click.echo(render_analysis(categorization))

    if output:
        with open(output, "w", encoding="utf-8") as f:
            f.write(render_analysis(categorization))


# ── backups ──────────────────────────────────────────────────────────────────

def _backup_manager(project_path: str) -> BackupManager:
    settings = _settings_or_exit(project_path)
    return BackupManager(settings.backup_root, workspace_path=settings.project_path)


@cli.group("backups")
def backups_group() -> None:
    """Manage phase backups."""


@backups_group.command("list")
@click.argument("project_path", type=click.Path(exists=True, file_okay=False))
@click.option("--json", "output_json", is_flag=True)
def backups_list_command(project_path: str, output_json: bool) -> None:
    """List backups in creation order."""
    backups = _backup_manager(project_path).list_backups()
    if output_json:
        click.echo(json.dumps([b.model_dump(mode="json") for b in backups], indent=2))
        return
    if not backups:
        click.echo("No backups.")
        return
    for b in backups:
        click.echo(f"{b.id}  {b.timestamp.isoformat()}  {len(b.files)} files  {b.description}")


@backups_group.command("restore")
@click.argument("project_path", type=click.Path(exists=True, file_okay=False))
@click.argument("backup_id")
def backups_restore_command(project_path: str, backup_id: str) -> None:
    """Restore BACKUP_ID's files into the project."""
    try:
        backup = _backup_manager(project_path).restore_backup(backup_id)
    except BackupError as e:
        raise click.ClickException(str(e))
    click.echo(f"Restored {len(backup.files)} files from {backup.id}")


@backups_group.command("prune")
@click.argument("project_path", type=click.Path(exists=True, file_okay=False))
@click.option("--older-than-days", type=float, default=None, help="Delete backups older than N days")
@click.option("--keep", type=int, default=None, help="Keep only the newest N backups")
def backups_prune_command(project_path: str, older_than_days: Optional[float], keep: Optional[int]) -> None:
    """Delete old backups."""
    if older_than_days is None and keep is None:
        raise click.UsageError("Pass --older-than-days and/or --keep")
    manager = _backup_manager(project_path)
    removed = 0
    if older_than_days is not None:
        removed += manager.prune_older_than(timedelta(days=older_than_days))
    if keep is not None:
        removed += manager.prune_keep_latest(keep)
    click.echo(f"Pruned {removed} backups")


# ── serve ────────────────────────────────────────────────────────────────────

@cli.command("serve")
@click.option("--host", default="127.0.0.1")
@click.option("--port", type=int, default=8000)
def serve_command(host: str, port: int) -> None:
    """Start the HTTP API (uvicorn)."""
    import uvicorn

    uvicorn.run("main:app", host=host, port=port)


if __name__ == "__main__":
    cli()
