"""
Orchestrator
============
Drives the Analyze → Schedule → [Checkpoint → Transform → Measure →
Commit | Revert]* loop over a source tree.

Phase semantics:
    - One phase per scheduled category, priority descending.
    - Each phase runs up to ``max_iterations`` attempts; it stops early when
      the tree count reaches zero (which ends the run), when an iteration
      after the first does not improve, or when the regression guard trips.
    - Every attempt is measured with a fresh toolchain invocation; counts
      are never estimated.
    - ``before_count`` is always the last committed count.

Failure containment:
    - Backup / checkpoint / re-measure failures and timeouts fail the attempt,
      discard its uncommitted edits and move on to the next category.
    - A transform that raises is logged; whatever it left in the tree is
      measured and settled by the regression guard, then the phase ends.
    - Setup failures (toolchain unusable, backup root unusable) and
      unrecoverable rollbacks end the run with status "error".

Side effects:
    - Zero initial diagnostics → nothing is touched.
    - Dry run → strategies only plan; no backups, checkpoints, or writes.
"""
import os
import time
import logging
from typing import Callable, Optional

from remediator.agents.checkpoint import CheckpointController
from remediator.agents.snapshot_providers import SnapshotProvider, build_snapshot_provider
from remediator.agents.validator import build_report
from remediator.core.config import RemediationSettings
from remediator.core.exceptions import (
    BackupError,
    ConfigError,
    RollbackError,
    SnapshotError,
    ToolchainError,
    ToolchainTimeoutError,
    TransformError,
    TransformTimeoutError,
)
from remediator.executor.toolchain_invoker import ToolchainInvoker, build_invoker
from remediator.models.backup import Backup
from remediator.models.category import Category
from remediator.models.diagnostic import DiagnosticRecord
from remediator.models.phase_result import PhaseResult
from remediator.models.run_report import RunReport
from remediator.parser.categorizer import CategorizationResult, categorize, schedule
from remediator.parser.diagnostic_parser import parse
from remediator.services.backup_service import BackupManager
from remediator.services.report_writer import ReportWriter, publish_report
from remediator.state.run_context import RunContext, RunState
from remediator.transforms.registry import TransformRegistry, build_registry
from remediator.utils.path_utils import resolve_within

logger = logging.getLogger(__name__)


class Orchestrator:
    """
    Runs one remediation pass over ``settings.project_path``.

    Collaborators default to the ones configured by ``settings`` and can be
    injected for tests or embedding.
    """

    def __init__(
        self,
        settings: RemediationSettings,
        invoker: Optional[ToolchainInvoker] = None,
        registry: Optional[TransformRegistry] = None,
        provider: Optional[SnapshotProvider] = None,
        backup_manager: Optional[BackupManager] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self.invoker = invoker
        self.registry = registry
        self.provider = provider
        self.backup_manager = backup_manager
        self.sleep = sleep
        self.controller: Optional[CheckpointController] = None
        self.context: Optional[RunContext] = None
        self.initial_categorization: Optional[CategorizationResult] = None
        self._attempts = 0

    # ------------------------------------------------------------------
    # Public entry point
    # ------------------------------------------------------------------
    def run(self) -> RunReport:
        """Execute the full run and return its frozen report."""
        ctx = RunContext(settings=self.settings)
        self.context = ctx
        self._attempts = 0

        logger.info("=" * 60)
        logger.info("Remediation run: %s%s", self.settings.project_path,
                    " (dry run)" if self.settings.dry_run else "")
        logger.info("=" * 60)

        try:
            # ===========================================================
            # 1. Analyze
            # ===========================================================
            if not self._setup(ctx):
                ctx.transition(RunState.DONE)
                logger.info("No diagnostics found — tree is clean, nothing to do")
                return self._finish(ctx)

            # ===========================================================
            # 2. Schedule
            # ===========================================================
            ctx.transition(RunState.SCHEDULING)
            ctx.schedule = schedule(self.initial_categorization, self.settings.disabled_categories)
            logger.info(
                "Schedule: %s",
                ", ".join(f"{c.name} ({c.diagnostic_count}, p={c.priority:.2f})" for c in ctx.schedule),
            )

            # ===========================================================
            # 3. Phases
            # ===========================================================
            for category in ctx.schedule:
                if ctx.current_count == 0:
                    break
                self._run_phase(ctx, category)

            ctx.current_category = None
            ctx.transition(RunState.DONE)

        except (ConfigError, BackupError, ToolchainError) as e:
            # Only raised from setup; phase-level errors are contained
            logger.error("Setup failed: %s", e)
            ctx.error = str(e)
            ctx.transition(RunState.FAILED)
        except RollbackError as e:
            logger.critical("Rollback failed, aborting run: %s", e)
            ctx.error = str(e)
            ctx.transition(RunState.FAILED)

        return self._finish(ctx)

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------
    def _setup(self, ctx: RunContext) -> bool:
        """Measure the initial state. Returns False when there is nothing to fix."""
        ctx.transition(RunState.ANALYZING)
        if self.invoker is None:
            self.invoker = build_invoker(self.settings)

        diagnostics = self._measure()
        ctx.diagnostics = diagnostics
        ctx.initial_count = ctx.current_count = len(diagnostics)
        self.initial_categorization = categorize(diagnostics)
        logger.info("Initial diagnostics: %d %s", ctx.initial_count, self.initial_categorization.counts())

        if ctx.initial_count == 0:
            return False

        if self.registry is None:
            self.registry = build_registry(self.settings)
        if self.provider is None:
            self.provider = build_snapshot_provider(self.settings)
        if self.backup_manager is None and self.settings.backup_enabled and not self.settings.dry_run:
            self.backup_manager = BackupManager(self.settings.backup_root, workspace_path=self.settings.project_path)
        if self.backup_manager is not None and not self.settings.dry_run:
            self.backup_manager.ensure_root()

        self.controller = CheckpointController(
            self.provider,
            self.settings.max_allowed_increase,
            backup_manager=self.backup_manager,
        )
        return True

    def _measure(self) -> list[DiagnosticRecord]:
        """
        Invoke the toolchain and parse its output.

        A non-zero exit without any diagnostic means the output is not
        usable (crashed compiler, bad config) and raises ToolchainError.
        """
        result = self.invoker.invoke()
        diagnostics = parse(result.output, self.settings.project_path)
        if result.exit_code != 0 and not diagnostics:
            tail = "\n".join(result.output.strip().splitlines()[-5:])
            raise ToolchainError(
                f"Toolchain exited with {result.exit_code} but reported no diagnostics: {tail}"
            )
        return diagnostics

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------
    def _pause(self) -> None:
        if self._attempts and self.settings.phase_delay_seconds:
            self.sleep(self.settings.phase_delay_seconds)
        self._attempts += 1

    def _category_records(self, ctx: RunContext, name: str) -> list[DiagnosticRecord]:
        return categorize(ctx.diagnostics).get(name)

    def _phase_files(self, records: list[DiagnosticRecord]) -> list[str]:
        """Files of ``records`` that exist inside the project; the rest are logged and skipped."""
        files = []
        for rel in dict.fromkeys(r.file for r in records):
            try:
                abs_path = resolve_within(self.settings.project_path, rel)
            except ValueError:
                logger.warning("Not backing up %s: outside the project", rel)
                continue
            if not os.path.isfile(abs_path):
                logger.warning("Not backing up %s: file does not exist", rel)
                continue
            files.append(rel)
        return files

    def _run_phase(self, ctx: RunContext, category: Category) -> None:
        name = category.name
        ctx.current_category = name
        records = self._category_records(ctx, name)
        if not records:
            logger.info("Skipping %s — no diagnostics left", name)
            ctx.skipped_categories.append(name)
            return

        for iteration in range(1, self.settings.max_iterations + 1):
            self._pause()
            logger.info("--- Phase %s, iteration %d (%d diagnostics) ---", name, iteration, len(records))
            result = self._attempt(ctx, name, iteration, records)
            ctx.record_phase(result)

            if ctx.current_count == 0:
                logger.info("All diagnostics resolved")
                break
            if result.failed or result.reverted or result.dry_run or result.transform_error:
                break
            if iteration > 1 and result.improvement <= 0:
                logger.info("Phase %s stopped: no improvement in iteration %d", name, iteration)
                break
            records = self._category_records(ctx, name)
            if not records:
                break

    def _attempt(
        self,
        ctx: RunContext,
        name: str,
        iteration: int,
        records: list[DiagnosticRecord],
    ) -> PhaseResult:
        start = time.monotonic()
        before = ctx.current_count
        label = f"{name} (iteration {iteration})"
        result = PhaseResult(category=name, iteration=iteration, before_count=before, after_count=before)

        def finish() -> PhaseResult:
            result.duration_ms = int((time.monotonic() - start) * 1000)
            return result

        # --- Dry run: plan only ---
        if self.settings.dry_run:
            ctx.transition(RunState.TRANSFORMING)
            result.dry_run = True
            try:
                planned = self.registry.apply(name, records, self.settings.project_path, dry_run=True)
                result.applied = planned.applied
                result.files_changed = list(planned.files_changed)
            except TransformError as e:
                logger.error("Planning %s failed: %s", label, e)
                result.transform_error = str(e)
            return finish()

        # --- Checkpoint ---
        ctx.transition(RunState.CHECKPOINTING)
        backup: Optional[Backup] = None
        try:
            files = self._phase_files(records)
            if self.backup_manager is not None:
                backup = self.backup_manager.create_backup(files, label)
                ctx.backups.append(backup.id)
                result.backup_id = backup.id
            self.controller.begin(label, [r.file for r in records])
        except (BackupError, SnapshotError) as e:
            logger.error("Checkpoint for %s failed: %s", label, e)
            result.error = f"checkpoint failed: {e}"
            return finish()

        # --- Transform + measure ---
        try:
            ctx.transition(RunState.TRANSFORMING)
            try:
                applied = self.registry.apply(name, records, self.settings.project_path)
                result.applied = applied.applied
                result.files_changed = list(applied.files_changed)
            except TransformTimeoutError:
                raise
            except TransformError as e:
                # Partial edits are measured and guarded like any other
                logger.error("%s transform failed, measuring what it left: %s", label, e)
                result.transform_error = str(e)

            ctx.transition(RunState.MEASURING)
            diagnostics = self._measure()
        except (TransformTimeoutError, ToolchainTimeoutError) as e:
            logger.error("%s timed out: %s", label, e)
            result.error = str(e)
            result.timeout = True
        except ToolchainError as e:
            logger.error("%s failed: %s", label, e)
            result.error = str(e)
        else:
            after = len(diagnostics)
            result.after_count = after
            result.improvement = before - after
            result.increase = after - before

            regression = self.controller.is_regression(before, after)
            ctx.transition(RunState.REVERTING if regression else RunState.COMMITTING)
            try:
                result.reverted = self.controller.settle(label, before, after, backup)
            except SnapshotError as e:
                logger.error("Committing %s failed: %s", label, e)
                result.error = f"commit failed: {e}"
            else:
                if not result.reverted:
                    ctx.current_count = after
                    ctx.diagnostics = diagnostics
                logger.info(
                    "%s: %d → %d (%+d)%s", label, before, after, result.increase,
                    " REVERTED" if result.reverted else "",
                )
                return finish()

        # --- Failed attempt: drop its edits ---
        ctx.transition(RunState.REVERTING)
        self.controller.discard(backup)
        result.rolled_back = True
        return finish()

    # ------------------------------------------------------------------
    # Report
    # ------------------------------------------------------------------
    def _finish(self, ctx: RunContext) -> RunReport:
        report = build_report(ctx)
        logger.info(
            "Run %s: %d → %d diagnostics (%d phases, %.1fs)",
            report.status, report.initial_errors, report.final_errors,
            len(report.phases), report.duration_seconds,
        )

        if report.status != "clean" and not report.dry_run:
            ReportWriter.write_report(report, self.settings.report_file)
            if self.initial_categorization is not None:
                ReportWriter.write_analysis(self.initial_categorization, self.settings.analysis_file, report)

        if self.settings.report_webhook_url:
            publish_report(report, self.settings.report_webhook_url)

        return report
