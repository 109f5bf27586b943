"""
Built-in Transform Strategies
=============================
remove_unused_imports
    Handles "declared but never read" diagnostics that point at an import
    binding (TS6133) and "All imports in import declaration are unused"
    (TS6192). Removes the binding; drops the whole import line when no
    binding is left.

Only single-line ``import ... from '...'`` statements are edited. Any
other line a diagnostic points at is left alone, so running the strategy
twice is a no-op the second time.
"""
import os
import re
import logging
from typing import Optional

from remediator.models.diagnostic import DiagnosticRecord
from remediator.transforms.registry import TransformResult
from remediator.utils.path_utils import resolve_within

logger = logging.getLogger(__name__)

UNUSED_BINDING_CODES = {"TS6133", "TS6196"}
UNUSED_DECLARATION_CODES = {"TS6192"}

_IMPORT_RE = re.compile(
    r"^(?P<indent>\s*)import\s+(?P<type>type\s+)?(?P<clause>.+?)\s+from\s+"
    r"(?P<source>['\"][^'\"]+['\"])\s*(?P<semi>;?)\s*$"
)
_NAME_RE = re.compile(r"'([^']+)'")


def _local_name(entry: str) -> str:
    entry = entry.strip()
    if entry.startswith("type "):
        entry = entry[5:].strip()
    if " as " in entry:
        entry = entry.split(" as ")[-1]
    return entry.strip()


def _split_clause(clause: str) -> tuple[Optional[str], Optional[str], list[str]]:
    """Split an import clause into (default, namespace alias, named entries)."""
    named: list[str] = []
    if "{" in clause:
        head, _, rest = clause.partition("{")
        named = [e.strip() for e in rest.partition("}")[0].split(",") if e.strip()]
        clause = head
    default = namespace = None
    for part in (p.strip() for p in clause.split(",")):
        if not part:
            continue
        if part.startswith("*"):
            namespace = part
        else:
            default = part
    return default, namespace, named


def rewrite_import(line: str, unused: set[str], drop_all: bool = False) -> tuple[Optional[str], int]:
    """
    Remove unused bindings from one import line.

    Returns
    -------
    (new_line, removed)
        new_line is None when the whole statement should be deleted;
        removed counts the bindings taken out (0 means the line is untouched).
    """
    match = _IMPORT_RE.match(line)
    if not match:
        return line, 0

    default, namespace, named = _split_clause(match.group("clause"))
    bindings = [b for b in [default, namespace] if b] + named
    if drop_all:
        return None, len(bindings)

    removed = 0
    if default and default in unused:
        default, removed = None, removed + 1
    if namespace and _local_name(namespace) in unused:
        namespace, removed = None, removed + 1
    kept_named = []
    for entry in named:
        if _local_name(entry) in unused:
            removed += 1
        else:
            kept_named.append(entry)

    if removed == 0:
        return line, 0

    parts = [p for p in [default, namespace] if p]
    if kept_named:
        parts.append("{ " + ", ".join(kept_named) + " }")
    if not parts:
        return None, removed

    new_line = (
        f"{match.group('indent')}import {match.group('type') or ''}{', '.join(parts)} "
        f"from {match.group('source')}{match.group('semi')}"
    )
    return new_line, removed


def remove_unused_imports(
    diagnostics: list[DiagnosticRecord],
    source_tree: str,
    dry_run: bool = False,
) -> TransformResult:
    # file -> line -> (unused names, drop whole statement)
    targets: dict[str, dict[int, tuple[set[str], bool]]] = {}
    for d in diagnostics:
        code = d.code.upper()
        if code in UNUSED_DECLARATION_CODES:
            names, _ = targets.setdefault(d.file, {}).get(d.line, (set(), False))
            targets[d.file][d.line] = (names, True)
        elif code in UNUSED_BINDING_CODES:
            name = _NAME_RE.search(d.message)
            if name:
                names, drop = targets.setdefault(d.file, {}).get(d.line, (set(), False))
                targets[d.file][d.line] = (names | {name.group(1)}, drop)

    result = TransformResult()
    for rel, by_line in targets.items():
        try:
            path = resolve_within(source_tree, rel)
        except ValueError:
            logger.warning("Skipping diagnostic outside the tree: %s", rel)
            continue
        if not os.path.isfile(path):
            continue

        with open(path, "r", encoding="utf-8", newline="") as f:
            lines = f.read().splitlines(keepends=True)

        applied = 0
        # Descending so deletions keep earlier line numbers valid
        for line_no in sorted(by_line, reverse=True):
            if line_no > len(lines):
                continue
            names, drop_all = by_line[line_no]
            original = lines[line_no - 1]
            ending = original[len(original.rstrip("\r\n")):]
            new_line, removed = rewrite_import(original.rstrip("\r\n"), names, drop_all)
            if removed == 0:
                continue
            applied += removed
            if new_line is None:
                del lines[line_no - 1]
            else:
                lines[line_no - 1] = new_line + ending

        if applied == 0:
            continue
        result.applied += applied
        result.files_changed.append(rel)
        if not dry_run:
            with open(path, "w", encoding="utf-8", newline="") as f:
                f.write("".join(lines))
            logger.debug("Removed %d unused imports from %s", applied, rel)

    return result
