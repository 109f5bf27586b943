"""
Report Writer
=============
Persists the final RunReport as JSON, renders the markdown analysis, and
optionally publishes the report to a webhook.

Artifacts:
    remediation-report.json  — machine-readable RunReport
    remediation-analysis.md  — category priorities and most common codes
"""
import os
import json
import logging
from typing import Optional

import httpx

from remediator.models.run_report import RunReport
from remediator.parser.categorizer import CategorizationResult, most_common_codes, schedule

logger = logging.getLogger(__name__)


def render_analysis(categorization: CategorizationResult, report: Optional[RunReport] = None) -> str:
    """
    Markdown summary of a categorized diagnostic snapshot.

    Used both for the post-run analysis file and the ``analyze`` command.
    """
    lines = ["# Diagnostic Analysis", ""]
    if report is not None:
        lines += [
            f"- Project: `{report.project_path}`",
            f"- Status: **{report.status}**" + (" (dry run)" if report.dry_run else ""),
            f"- Initial diagnostics: {report.initial_errors}",
            f"- Final diagnostics: {report.final_errors}",
            f"- Improvement: {report.total_improvement} ({report.success_rate:.1%})",
            "",
        ]
    else:
        lines += [f"- Total diagnostics: {categorization.total}", ""]

    lines += ["## Categories", "", "| Category | Priority | Diagnostics | Files | Root cause |",
              "|---|---|---|---|---|"]
    for c in schedule(categorization):
        lines.append(f"| {c.name} | {c.priority:.2f} | {c.diagnostic_count} | {c.file_count} | {c.root_cause} |")

    lines += ["", "## Most Common Codes", "", "| Code | Count |", "|---|---|"]
    for code, count in most_common_codes(categorization):
        lines.append(f"| {code} | {count} |")

    if report is not None and report.phases:
        lines += ["", "## Phases", "", "| # | Category | Iter | Before | After | Outcome |",
                  "|---|---|---|---|---|---|"]
        for i, p in enumerate(report.phases, 1):
            if p.error:
                outcome = "timeout" if p.timeout else "failed"
            elif p.reverted:
                outcome = "reverted"
            elif p.dry_run:
                outcome = f"planned {p.applied}"
            elif p.transform_error:
                outcome = "committed (transform raised)"
            else:
                outcome = "committed"
            lines.append(f"| {i} | {p.category} | {p.iteration} | {p.before_count} | {p.after_count} | {outcome} |")

    if report is not None and report.recommendations:
        lines += ["", "## Recommendations", ""]
        lines += [f"- {r}" for r in report.recommendations]

    return "\n".join(lines) + "\n"


class ReportWriter:
    """
    Writes run artifacts to disk.

    Write failures are logged and reported as False; a finished run is
    never turned into a failure by the reporter.
    """

    @staticmethod
    def write_report(report: RunReport, output_path: str) -> bool:
        try:
            abs_output = os.path.abspath(output_path)
            os.makedirs(os.path.dirname(abs_output), exist_ok=True)
            logger.info("Writing run report to %s", abs_output)
            with open(abs_output, "w", encoding="utf-8") as f:
                json.dump(report.model_dump(mode="json"), f, indent=2)
            return True
        except OSError as e:
            logger.error("Failed to write report: %s", e, exc_info=True)
            return False

    @staticmethod
    def write_analysis(
        categorization: CategorizationResult,
        output_path: str,
        report: Optional[RunReport] = None,
    ) -> bool:
        try:
            abs_output = os.path.abspath(output_path)
            os.makedirs(os.path.dirname(abs_output), exist_ok=True)
            with open(abs_output, "w", encoding="utf-8") as f:
                f.write(render_analysis(categorization, report))
            logger.info("Wrote analysis to %s", abs_output)
            return True
        except OSError as e:
            logger.error("Failed to write analysis: %s", e, exc_info=True)
            return False

    @staticmethod
    def load_report(path: str) -> Optional[RunReport]:
        """Read a previously written report; None if absent or unreadable."""
        if not os.path.isfile(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return RunReport(**json.load(f))
        except (OSError, ValueError) as e:
            logger.warning("Could not read report %s: %s", path, e)
            return None


def publish_report(
    report: RunReport,
    url: str,
    transport: Optional[httpx.BaseTransport] = None,
    timeout: float = 20.0,
) -> bool:
    """
    POST the JSON report to a webhook.

    Returns True on a 2xx response. Network and HTTP errors are logged.
    """
    try:
        with httpx.Client(timeout=timeout, transport=transport) as client:
            response = client.post(url, json=report.model_dump(mode="json"))
            response.raise_for_status()
    except httpx.HTTPStatusError as e:
        logger.error("Report webhook rejected the report — HTTP %d", e.response.status_code)
        return False
    except httpx.HTTPError as e:
        logger.error("Report webhook unreachable: %s", e)
        return False

    logger.info("Published report to %s", url)
    return True
