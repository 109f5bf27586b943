"""
Command Resolver
================
Maps a detected project type to the check command that emits positional
diagnostics (``file(line,col): severity CODE: message``).

Resolver never executes commands — it only returns argument vectors.
Deterministic: same project_type → same command, always.
"""
import shlex
from typing import Optional, Union

from remediator.core.exceptions import ConfigError


# ---------------------------------------------------------------------------
# Command mapping: project_type → argv
# ---------------------------------------------------------------------------
_COMMAND_MAP: dict[str, list[str]] = {
    "typescript": ["npx", "tsc", "--noEmit", "--pretty", "false"],
    "dotnet": ["dotnet", "build", "-nologo", "-clp:NoSummary"],
}


def split_command(command: Union[str, list[str]]) -> list[str]:
    """Turn a configured command (string or list) into an argv list."""
    if isinstance(command, list):
        return [str(part) for part in command]
    return shlex.split(command)


def resolve_command(
    project_type: Optional[str],
    override: Union[str, list[str], None] = None,
) -> list[str]:
    """
    Return the check command for a project.

    Parameters
    ----------
    project_type : str | None
        Result of ``detect_project_type``.
    override : str | list[str] | None
        Explicitly configured command; wins over detection.

    Raises
    ------
    ConfigError
        If there is no override and the project type has no mapping.
    """
    if override:
        argv = split_command(override)
        if argv:
            return argv

    if project_type is None or project_type not in _COMMAND_MAP:
        raise ConfigError(
            f"No check command for project type {project_type!r}; "
            "set toolchain_command or REMEDIATOR_TOOLCHAIN_COMMAND"
        )
    return list(_COMMAND_MAP[project_type])
