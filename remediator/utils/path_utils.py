"""
Path Utils
==========
Path normalisation and workspace-relative conversion helpers.

Responsibilities:
    - Convert absolute paths to workspace-relative paths
    - Normalise path separators to forward slashes
    - Skip dependency directories anywhere and generated output at the root
    - Reject paths that escape the workspace
"""
import os
from typing import Iterable, Iterator


# Skipped at any depth
VENDOR_DIRS: set[str] = {"node_modules", ".git"}

# Skipped only directly under the workspace root; a nested src/build is source
IGNORED_DIRS: set[str] = {
    "__pycache__",
    ".venv",
    "venv",
    "dist",
    "build",
    "bin",
    "obj",
    ".tox",
    ".mypy_cache",
    ".pytest_cache",
    "site-packages",
    "logs",
}


def normalize_path(raw_path: str, workspace_path: str = "") -> str:
    """
    Convert an absolute or messy path to a clean workspace-relative path.

    Steps:
        1. Strip quotes and whitespace
        2. Replace backslashes with forward slashes
        3. Remove workspace prefix if present
        4. Remove a leading ``./``
    """
    path = raw_path.strip().strip("'\"")
    path = path.replace("\\", "/")

    if workspace_path:
        ws = os.path.abspath(workspace_path).replace("\\", "/").rstrip("/") + "/"
        if path.startswith(ws):
            path = path[len(ws):]

    while path.startswith("./"):
        path = path[2:]
    return path


def resolve_within(workspace_path: str, relative_path: str) -> str:
    """
    Join a relative path onto the workspace and make sure it stays inside.

    Raises
    ------
    ValueError
        If the resolved path escapes the workspace root.
    """
    root = os.path.abspath(workspace_path)
    abs_path = os.path.normpath(os.path.join(root, relative_path))
    if abs_path != root and not abs_path.startswith(root + os.sep):
        raise ValueError(f"Path escapes workspace: {relative_path}")
    return abs_path


def walk_files(workspace_path: str, extra_ignored: Iterable[str] = ()) -> Iterator[str]:
    """
    Yield workspace-relative paths (forward slashes) of every file in the tree,
    in sorted order.

    Vendor directories are skipped at any depth; ``IGNORED_DIRS`` and
    ``extra_ignored`` only at the top level.
    """
    top_ignored = IGNORED_DIRS.union(extra_ignored)
    root = os.path.abspath(workspace_path)
    for dirpath, dirnames, filenames in os.walk(root):
        ignored = VENDOR_DIRS | top_ignored if dirpath == root else VENDOR_DIRS
        dirnames[:] = sorted(d for d in dirnames if d not in ignored)
        for name in sorted(filenames):
            rel = os.path.relpath(os.path.join(dirpath, name), root)
            yield rel.replace(os.sep, "/")
