"""
Transform Registry
==================
Table of category name → strategy. The orchestrator hands each phase's
diagnostics to ``apply`` and never edits files itself.

Strategy contract (TransformStrategy):
    strategy(diagnostics, source_tree, dry_run=False) -> TransformResult

    - IDEMPOTENT: running again on an already-fixed tree returns applied=0.
    - With dry_run=True the strategy only counts what it would do.
    - Files changed outside the diagnostics' file set must be listed in
      files_changed.

A category without a strategy yields applied=0; that is not an error.

Strategies come from three places, later wins:
    1. built-ins (strategies.py)
    2. ``transforms:`` in remediator.yaml as "package.module:callable"
    3. ``transforms:`` entries of the form {command: "...", timeout: N}
       which run an external fixer in the project root
"""
import os
import logging
import importlib
import subprocess
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, Union

from remediator.core.config import TRANSFORM_TIMEOUT_SECONDS, RemediationSettings
from remediator.core.constants import IMPORT_ISSUES, UNUSED_CODE
from remediator.core.exceptions import (
    ConfigError,
    RemediationError,
    TransformError,
    TransformTimeoutError,
)
from remediator.executor.command_resolver import split_command
from remediator.models.diagnostic import DiagnosticRecord
from remediator.services.backup_service import sha256_file
from remediator.utils.path_utils import resolve_within

logger = logging.getLogger(__name__)


@dataclass
class TransformResult:
    files_changed: list[str] = field(default_factory=list)
    applied: int = 0


class TransformStrategy(Protocol):
    def __call__(
        self,
        diagnostics: list[DiagnosticRecord],
        source_tree: str,
        dry_run: bool = False,
    ) -> TransformResult: ...


def _hash_files(source_tree: str, files: list[str]) -> dict[str, Optional[str]]:
    hashes: dict[str, Optional[str]] = {}
    for rel in files:
        try:
            path = resolve_within(source_tree, rel)
        except ValueError:
            continue
        hashes[rel] = sha256_file(path) if os.path.isfile(path) else None
    return hashes


def _diagnostic_files(diagnostics: list[DiagnosticRecord]) -> list[str]:
    return list(dict.fromkeys(d.file for d in diagnostics))


# ---------------------------------------------------------------------------
# External fixer commands
# ---------------------------------------------------------------------------
class CommandStrategy:
    """
    Runs an external fixer command in the project root.

    The command sees the category in ``REMEDIATOR_CATEGORY`` and the
    affected files, newline-separated, in ``REMEDIATOR_FILES``. Changed
    files are detected by hashing the diagnostics' files before and after.
    """

    def __init__(self, command: Union[str, list[str]], category: str = "",
                 timeout_seconds: float = TRANSFORM_TIMEOUT_SECONDS) -> None:
        self.command = split_command(command)
        if not self.command:
            raise ConfigError("Transform command must not be empty")
        self.category = category
        self.timeout_seconds = timeout_seconds

    def __call__(self, diagnostics: list[DiagnosticRecord], source_tree: str,
                 dry_run: bool = False) -> TransformResult:
        files = _diagnostic_files(diagnostics)
        if dry_run:
            logger.info("[dry-run] Would run %s on %d files", " ".join(self.command), len(files))
            return TransformResult()

        before = _hash_files(source_tree, files)
        env = dict(os.environ, REMEDIATOR_CATEGORY=self.category, REMEDIATOR_FILES="\n".join(files))
        try:
            proc = subprocess.run(
                self.command,
                cwd=source_tree,
                env=env,
                capture_output=True,
                text=True,
                errors="replace",
                timeout=self.timeout_seconds,
            )
        except subprocess.TimeoutExpired as e:
            raise TransformTimeoutError(
                f"Fixer {' '.join(self.command)} exceeded {self.timeout_seconds}s"
            ) from e
        except OSError as e:
            raise TransformError(f"Cannot run fixer {self.command[0]}: {e}") from e

        if proc.returncode != 0:
            raise TransformError(
                f"Fixer exited with {proc.returncode}: {(proc.stderr or proc.stdout).strip()[-500:]}"
            )

        after = _hash_files(source_tree, files)
        changed = [rel for rel in files if before.get(rel) != after.get(rel)]
        return TransformResult(files_changed=changed, applied=len(changed))


def load_strategy(category: str, spec: Union[str, dict[str, Any]]) -> TransformStrategy:
    """
    Resolve a configured strategy.

    Parameters
    ----------
    category : str
        Category the strategy is registered for.
    spec : str | dict
        "package.module:callable" or {"command": ..., "timeout": ...}.
    """
    if isinstance(spec, dict):
        if "command" not in spec:
            raise ConfigError(f"Transform for {category} needs a 'command' key")
        return CommandStrategy(
            spec["command"],
            category=category,
            timeout_seconds=spec.get("timeout", TRANSFORM_TIMEOUT_SECONDS),
        )

    module_name, _, attr = spec.partition(":")
    if not module_name or not attr:
        raise ConfigError(f"Transform for {category} must look like 'module:callable', got {spec!r}")
    try:
        strategy = getattr(importlib.import_module(module_name), attr)
    except (ImportError, AttributeError) as e:
        raise ConfigError(f"Cannot load transform {spec!r}: {e}") from e
    if not callable(strategy):
        raise ConfigError(f"Transform {spec!r} is not callable")
    return strategy


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------
class TransformRegistry:

    def __init__(self, strategies: Optional[dict[str, TransformStrategy]] = None) -> None:
        self._strategies: dict[str, TransformStrategy] = dict(strategies or {})

    def register(self, category: str, strategy: TransformStrategy) -> None:
        self._strategies[category] = strategy

    def get(self, category: str) -> Optional[TransformStrategy]:
        return self._strategies.get(category)

    def categories(self) -> list[str]:
        return list(self._strategies)

    def apply(
        self,
        category: str,
        diagnostics: list[DiagnosticRecord],
        source_tree: str,
        dry_run: bool = False,
    ) -> TransformResult:
        """
        Run the category's strategy over its diagnostics.

        Raises
        ------
        TransformError
            The strategy failed; other exception types are wrapped.
        """
        strategy = self.get(category)
        if strategy is None:
            logger.info("No transform registered for %s — nothing applied", category)
            return TransformResult()

        files = _diagnostic_files(diagnostics)
        before = {} if dry_run else _hash_files(source_tree, files)

        try:
            result = strategy(diagnostics, source_tree, dry_run=dry_run)
        except RemediationError:
            raise
        except Exception as e:
            raise TransformError(f"{category} transform failed: {type(e).__name__}: {e}") from e

        if not isinstance(result, TransformResult):
            raise TransformError(f"{category} transform returned {type(result).__name__}, expected TransformResult")

        if not dry_run:
            after = _hash_files(source_tree, files)
            undeclared = [
                rel for rel in files
                if before.get(rel) != after.get(rel) and rel not in result.files_changed
            ]
            if undeclared:
                logger.warning("%s transform changed undeclared files: %s", category, ", ".join(undeclared))
                result.files_changed.extend(undeclared)
            out_of_scope = [rel for rel in result.files_changed if rel not in files]
            if out_of_scope:
                logger.info("%s transform also changed: %s", category, ", ".join(out_of_scope))

        logger.info(
            "%s%s: %d edits in %d files",
            "[dry-run] " if dry_run else "", category, result.applied, len(result.files_changed),
        )
        return result


def build_registry(settings: Optional[RemediationSettings] = None) -> TransformRegistry:
    """Built-in strategies overlaid with the ones configured for the project."""
    from remediator.transforms.strategies import remove_unused_imports

    registry = TransformRegistry({
        IMPORT_ISSUES: remove_unused_imports,
        UNUSED_CODE: remove_unused_imports,
    })
    if settings is not None:
        for category, spec in settings.transforms.items():
            registry.register(category, load_strategy(category, spec))
            logger.info("Registered configured transform for %s", category)
    return registry
