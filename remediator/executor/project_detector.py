"""
Project Detector
================
Detects the toolchain a source tree is checked with from marker files.

Detection is deterministic — same tree always yields the same project type.
No recursive search beyond the project root.
"""
import os
import glob
from typing import Optional


# ---------------------------------------------------------------------------
# Signal → Project Type mapping (ordered by priority)
# ---------------------------------------------------------------------------
# Order matters: first match wins. Glob patterns are allowed.
SIGNAL_MAP: list[tuple[str, str]] = [
    ("tsconfig.json", "typescript"),
    ("*.sln",         "dotnet"),
    ("*.csproj",      "dotnet"),
    ("*.fsproj",      "dotnet"),
    ("package.json",  "typescript"),
]


def _matches(workspace_path: str, signal: str) -> bool:
    if any(ch in signal for ch in "*?["):
        return bool(glob.glob(os.path.join(workspace_path, signal)))
    return os.path.isfile(os.path.join(workspace_path, signal))


def detect_project_type(workspace_path: str) -> Optional[str]:
    """
    Scan the project root for signal files and return the project type.

    Parameters
    ----------
    workspace_path : str
        Absolute path to the project root.

    Returns
    -------
    str | None
        "typescript" or "dotnet", or None if no signal file is found.
    """
    if not os.path.isdir(workspace_path):
        return None

    for signal, project_type in SIGNAL_MAP:
        if _matches(workspace_path, signal):
            return project_type

    return None
