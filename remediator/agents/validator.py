"""
Validator
=========
Final-state checks and report assembly.

Metrics:
    total_improvement = initial - final
    success_rate      = total_improvement / initial   (0.0 when initial is 0)

Invariant check:
    Every committed phase satisfies after - before <= max_allowed_increase.
    ``check_non_regression`` returns the violators; a correct run returns [].
"""
import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Optional

from remediator.core.constants import CATEGORY_NAMES
from remediator.models.diagnostic import DiagnosticRecord
from remediator.models.phase_result import PhaseResult
from remediator.models.run_report import RunReport
from remediator.parser.categorizer import categorize
from remediator.state.run_context import RunContext, RunState

logger = logging.getLogger(__name__)

# Recommendation thresholds
DOMINANT_CATEGORY_SHARE = 0.5
HOTSPOT_FILE_THRESHOLD = 10
LONG_RUN_SECONDS = 300


def total_improvement(initial: int, final: int) -> int:
    return initial - final


def success_rate(initial: int, final: int) -> float:
    if initial <= 0:
        return 0.0
    return round((initial - final) / initial, 4)


def check_non_regression(phases: list[PhaseResult], threshold: int) -> list[PhaseResult]:
    """Committed phases whose increase exceeds the threshold (must be empty)."""
    return [p for p in phases if p.committed and p.after_count - p.before_count > threshold]


def remaining_by_category(diagnostics: list[DiagnosticRecord]) -> dict[str, int]:
    return categorize(diagnostics).counts()


def determine_status(initial: int, final: int, failed: bool = False) -> str:
    if failed:
        return "error"
    if initial == 0:
        return "clean"
    if final == 0:
        return "success"
    if final < initial:
        return "improved"
    if final == initial:
        return "unchanged"
    return "regressed"


def build_recommendations(
    remaining: dict[str, int],
    phases: list[PhaseResult],
    diagnostics: Optional[list[DiagnosticRecord]] = None,
    duration_seconds: float = 0.0,
) -> list[str]:
    """
    Human-readable follow-ups for the report.

    One line per category that still has diagnostics, then notes for
    reverted, timed-out and failed phases, a dominant category, hotspot
    files and a long run.
    """
    recommendations: list[str] = []

    for name in CATEGORY_NAMES:
        count = remaining.get(name, 0)
        if count:
            recommendations.append(f"{count} {name} diagnostics remain — manual review required")

    for p in phases:
        if p.reverted:
            recommendations.append(
                f"{p.category} (iteration {p.iteration}) was reverted after +{p.increase} diagnostics; "
                "review its transform before re-enabling it"
            )
        elif p.timeout:
            recommendations.append(
                f"{p.category} (iteration {p.iteration}) timed out; raise the timeout or split the work"
            )
        elif p.failed:
            recommendations.append(f"{p.category} (iteration {p.iteration}) failed: {p.error}")
        elif p.transform_error:
            recommendations.append(
                f"{p.category} (iteration {p.iteration}) transform raised: {p.transform_error}"
            )

    total = sum(remaining.values())
    if total:
        name, count = max(remaining.items(), key=lambda item: item[1])
        if count / total > DOMINANT_CATEGORY_SHARE:
            recommendations.append(
                f"{name} accounts for {round(100 * count / total)}% of remaining diagnostics; "
                "focus remediation there"
            )

    if diagnostics:
        per_file = Counter(d.file for d in diagnostics)
        for file_path, count in per_file.most_common():
            if count <= HOTSPOT_FILE_THRESHOLD:
                break
            recommendations.append(f"{file_path} has {count} diagnostics; consider refactoring it")

    if duration_seconds > LONG_RUN_SECONDS:
        recommendations.append(
            f"Run took {duration_seconds:.0f}s; consider a faster check command or fewer iterations"
        )

    return recommendations


def build_report(ctx: RunContext) -> RunReport:
    """Assemble the immutable RunReport from a finished run context."""
    failed = ctx.state == RunState.FAILED
    final = ctx.current_count
    duration = ctx.elapsed_seconds()
    remaining = remaining_by_category(ctx.diagnostics)

    violations = check_non_regression(ctx.phases, ctx.settings.max_allowed_increase)
    if violations:
        # Only reachable through a controller bug; surface it loudly
        logger.error("Non-regression invariant violated by: %s",
                     ", ".join(f"{p.category}#{p.iteration}" for p in violations))

    return RunReport(
        timestamp=datetime.now(timezone.utc),
        duration_seconds=duration,
        project_path=ctx.settings.project_path,
        status=determine_status(ctx.initial_count, final, failed),
        dry_run=ctx.settings.dry_run,
        initial_errors=ctx.initial_count,
        final_errors=final,
        total_improvement=total_improvement(ctx.initial_count, final),
        success_rate=success_rate(ctx.initial_count, final),
        max_allowed_increase=ctx.settings.max_allowed_increase,
        phases=list(ctx.phases),
        schedule=list(ctx.schedule),
        recommendations=build_recommendations(remaining, ctx.phases, ctx.diagnostics, duration),
        remaining_by_category=remaining,
        backups=list(ctx.backups),
        skipped_categories=list(ctx.skipped_categories),
        error=ctx.error,
    )
