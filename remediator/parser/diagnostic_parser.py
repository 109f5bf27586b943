"""
Diagnostic Parser
=================
Converts raw toolchain output into structured DiagnosticRecord objects.

Recognised line format (TypeScript ``--pretty false`` and MSBuild style):

    <file>(<line>,<column>): <severity> <code>: <message>

    src/app.ts(12,5): error TS2307: Cannot find module './missing'.
    Program.cs(3,1): warning CS0168: The variable 'e' is declared but never used

Pipeline:
    1. Split output into lines
    2. Match each line against the positional pattern
    3. Skip non-conforming lines (banners, summaries, continuations, line/col 0)
    4. Normalize file paths (workspace-relative, forward slashes)
    5. Derive severity from keyword + category

Contract:
    - DETERMINISTIC: same output → same records, in source order.
    - Tolerant: anomalies are skipped, never raised.
    - No deduplication: every matching line is one record.
"""
import re
import logging
from collections import Counter
from typing import Optional

from pydantic import ValidationError

from remediator.models.diagnostic import DiagnosticRecord
from remediator.parser.categorizer import severity_for
from remediator.utils.path_utils import normalize_path

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pattern
# ---------------------------------------------------------------------------
_DIAGNOSTIC_RE = re.compile(
    r"^\s*(?P<file>.+?)\((?P<line>\d+),(?P<column>\d+)\):\s+"
    r"(?P<severity>error|warning|info|message|suggestion)\s+"
    r"(?P<code>[A-Za-z]+\d+):\s*(?P<message>.*)$",
    re.IGNORECASE,
)

# MSBuild appends " [/abs/path/Project.csproj]" to every diagnostic line
_PROJECT_SUFFIX_RE = re.compile(r"\s+\[[^\]]+\.(csproj|vbproj|fsproj|sln)\]$", re.IGNORECASE)


def parse_line(line: str, workspace_path: str = "") -> Optional[DiagnosticRecord]:
    """
    Parse one line of toolchain output.

    Returns None for any line that is not a conforming diagnostic.
    """
    match = _DIAGNOSTIC_RE.match(line.rstrip("\r\n"))
    if not match:
        return None

    line_no = int(match.group("line"))
    column = int(match.group("column"))
    if line_no < 1 or column < 1:
        logger.debug("Skipping diagnostic with zero position: %s", line.strip())
        return None

    code = match.group("code").upper()
    message = _PROJECT_SUFFIX_RE.sub("", match.group("message").strip())
    file_path = normalize_path(match.group("file"), workspace_path)
    if not file_path:
        return None

    try:
        return DiagnosticRecord(
            file=file_path,
            line=line_no,
            column=column,
            code=code,
            message=message,
            severity=severity_for(match.group("severity"), code, message),
        )
    except ValidationError as e:
        logger.debug("Skipping malformed diagnostic %r: %s", line.strip(), e)
        return None


def parse(raw_text: str, workspace_path: str = "") -> list[DiagnosticRecord]:
    """
    Parse the full output of one toolchain invocation.

    Parameters
    ----------
    raw_text : str
        Combined stdout/stderr of the toolchain.
    workspace_path : str
        Absolute project root; stripped from absolute file paths.

    Returns
    -------
    list[DiagnosticRecord]
        One record per conforming line, in source order. Empty input or
        no matches yields an empty list.
    """
    if not raw_text:
        return []

    records: list[DiagnosticRecord] = []
    skipped = 0
    for line in raw_text.splitlines():
        if not line.strip():
            continue
        record = parse_line(line, workspace_path)
        if record is None:
            skipped += 1
            continue
        records.append(record)

    logger.debug("Parsed %d diagnostics (%d other lines skipped)", len(records), skipped)
    return records


def count_diagnostics(raw_text: str) -> int:
    """Count conforming diagnostics without keeping the records."""
    return len(parse(raw_text))


def summarize_by_file(records: list[DiagnosticRecord]) -> dict[str, int]:
    """Return file → diagnostic count, most affected first (first-seen order on ties)."""
    counts = Counter(r.file for r in records)
    return dict(sorted(counts.items(), key=lambda item: -item[1]))
