"""
Exceptions
==========
Error taxonomy for the remediation engine.

Containment:
    - ToolchainError / BackupError / SnapshotError / TransformError abort the
      current phase only; the orchestrator records them on the PhaseResult.
    - ConfigError and setup-time ToolchainError abort the whole run.
    - RollbackError means the tree could not be returned to its checkpoint
      and always aborts the run.
"""


class RemediationError(Exception):
    """Base class for all engine errors."""


class ConfigError(RemediationError):
    """Invalid or unreadable configuration."""


class ToolchainError(RemediationError):
    """The toolchain could not produce a usable diagnostic stream."""


class ToolchainUnavailableError(ToolchainError):
    """The toolchain executable could not be started at all."""


class ToolchainTimeoutError(ToolchainError):
    """The toolchain invocation exceeded its hard timeout."""

    def __init__(self, message: str, timeout_seconds: float = 0.0) -> None:
        super().__init__(message)
        self.timeout_seconds = timeout_seconds


class BackupError(RemediationError):
    """A backup could not be created or restored."""


class BackupNotFoundError(BackupError):
    """No backup exists for the requested identifier."""


class BackupIntegrityError(BackupError):
    """An archived file is missing or does not match its recorded hash."""


class SnapshotError(RemediationError):
    """The snapshot provider failed to checkpoint, commit or revert."""


class RollbackError(RemediationError):
    """The tree could not be returned to its pre-phase state."""


class TransformError(RemediationError):
    """A transform strategy failed."""


class TransformTimeoutError(TransformError):
    """An external fixer command exceeded its timeout."""
