"""
Configuration
=============
Loads environment variables from .env file using python-dotenv, then layers
an optional per-project ``remediator.yaml`` and explicit run arguments on top.

Environment Variables:
    REMEDIATOR_TOOLCHAIN_COMMAND     — Check command to run (default: resolved by project type)
    REMEDIATOR_TIMEOUT_SECONDS       — Hard timeout for one toolchain invocation (default: 120)
    REMEDIATOR_TRANSFORM_TIMEOUT     — Hard timeout for one external fixer command (default: 300)
    REMEDIATOR_MAX_ITERATIONS        — Max iterations per phase (default: 1)
    REMEDIATOR_MAX_ALLOWED_INCREASE  — Regression threshold per phase (default: 0)
    REMEDIATOR_PHASE_DELAY           — Seconds to wait between phases/iterations (default: 2.0)
    REMEDIATOR_BACKUP_DIR            — Backup store, relative to the project (default: .remediation-backups)
    REMEDIATOR_REPORT_PATH           — JSON report, relative to the project (default: remediation-report.json)
    REMEDIATOR_ANALYSIS_PATH         — Markdown analysis, relative to the project (default: remediation-analysis.md)
    REMEDIATOR_SNAPSHOT_PROVIDER     — auto / git / files (default: auto)
    REMEDIATOR_SANDBOX_IMAGE         — Run the toolchain inside this docker image (default: unset = local)
    REMEDIATOR_REPORT_WEBHOOK        — POST the final report to this URL (default: unset)
    REMEDIATOR_LOG_DIR               — Log file directory (default: logs)

Regression Threshold:
    MAX_ALLOWED_INCREASE is the largest tolerated growth in diagnostic count
    for a single phase. Some fixes legitimately surface diagnostics that were
    masked before, so the value is configurable. The default of 0 means a phase
    may never leave the tree with more diagnostics than it found.

Precedence:
    explicit arguments > remediator.yaml > environment / .env > defaults
"""
import os
import logging
from typing import Any, Optional, Union

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from remediator.core.exceptions import ConfigError

load_dotenv()

logger = logging.getLogger(__name__)

TOOLCHAIN_COMMAND = os.getenv("REMEDIATOR_TOOLCHAIN_COMMAND", "")
DEFAULT_TIMEOUT_SECONDS = int(os.getenv("REMEDIATOR_TIMEOUT_SECONDS", 120))
TRANSFORM_TIMEOUT_SECONDS = int(os.getenv("REMEDIATOR_TRANSFORM_TIMEOUT", 300))
MAX_ITERATIONS_PER_PHASE = int(os.getenv("REMEDIATOR_MAX_ITERATIONS", 1))
MAX_ALLOWED_INCREASE = int(os.getenv("REMEDIATOR_MAX_ALLOWED_INCREASE", 0))
PHASE_DELAY_SECONDS = float(os.getenv("REMEDIATOR_PHASE_DELAY", 2.0))
BACKUP_DIR = os.getenv("REMEDIATOR_BACKUP_DIR", ".remediation-backups")
REPORT_PATH = os.getenv("REMEDIATOR_REPORT_PATH", "remediation-report.json")
ANALYSIS_PATH = os.getenv("REMEDIATOR_ANALYSIS_PATH", "remediation-analysis.md")
SNAPSHOT_PROVIDER = os.getenv("REMEDIATOR_SNAPSHOT_PROVIDER", "auto")
SANDBOX_IMAGE = os.getenv("REMEDIATOR_SANDBOX_IMAGE", "")
REPORT_WEBHOOK_URL = os.getenv("REMEDIATOR_REPORT_WEBHOOK", "")
LOG_DIR = os.getenv("REMEDIATOR_LOG_DIR", "logs")

# Per-project configuration file name
PROJECT_CONFIG_FILE = "remediator.yaml"

_SNAPSHOT_PROVIDERS = ("auto", "git", "files", "none")


class RemediationSettings(BaseModel):
    """Validated settings for a single remediation run."""

    project_path: str
    dry_run: bool = False
    backup_enabled: bool = True
    strict: bool = False
    max_iterations: int = Field(default=MAX_ITERATIONS_PER_PHASE, ge=1)
    timeout_seconds: int = Field(default=DEFAULT_TIMEOUT_SECONDS, ge=1)
    transform_timeout_seconds: int = Field(default=TRANSFORM_TIMEOUT_SECONDS, ge=1)
    max_allowed_increase: int = Field(default=MAX_ALLOWED_INCREASE, ge=0)
    phase_delay_seconds: float = Field(default=PHASE_DELAY_SECONDS, ge=0)
    toolchain_command: Union[str, list[str]] = TOOLCHAIN_COMMAND
    snapshot_provider: str = SNAPSHOT_PROVIDER
    sandbox_image: str = SANDBOX_IMAGE
    backup_dir: str = BACKUP_DIR
    report_path: str = REPORT_PATH
    analysis_path: str = ANALYSIS_PATH
    report_webhook_url: str = REPORT_WEBHOOK_URL
    disabled_categories: list[str] = []
    # category name -> "module:attr" or {"command": "..."}
    transforms: dict[str, Union[str, dict[str, Any]]] = {}

    @field_validator("snapshot_provider")
    @classmethod
    def validate_snapshot_provider(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in _SNAPSHOT_PROVIDERS:
            raise ValueError(f"snapshot_provider must be one of {', '.join(_SNAPSHOT_PROVIDERS)}")
        return v

    def resolve_path(self, relative: str) -> str:
        """Resolve a configured path against the project root."""
        if os.path.isabs(relative):
            return relative
        return os.path.join(os.path.abspath(self.project_path), relative)

    @property
    def backup_root(self) -> str:
        return self.resolve_path(self.backup_dir)

    @property
    def report_file(self) -> str:
        return self.resolve_path(self.report_path)

    @property
    def analysis_file(self) -> str:
        return self.resolve_path(self.analysis_path)


def read_project_config(project_path: str, config_path: Optional[str] = None) -> dict:
    """
    Read ``remediator.yaml`` from the project root (or an explicit path).

    Returns an empty dict when the file does not exist. A malformed file
    raises ConfigError rather than silently falling back to defaults.
    """
    path = config_path or os.path.join(project_path, PROJECT_CONFIG_FILE)
    if not os.path.isfile(path):
        return {}

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Could not read {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level")

    logger.info("Loaded project configuration from %s", path)
    return data


def load_settings(
    project_path: str,
    config_path: Optional[str] = None,
    **overrides: Any,
) -> RemediationSettings:
    """
    Build RemediationSettings for a project.

    Parameters
    ----------
    project_path : str
        Root of the source tree to remediate.
    config_path : str | None
        Explicit YAML config file; defaults to ``<project>/remediator.yaml``.
    **overrides
        Explicit run arguments. ``None`` values are ignored so callers can
        forward optional CLI/API fields unchanged.
    """
    if not os.path.isdir(project_path):
        raise ConfigError(f"Project path does not exist or is not a directory: {project_path}")

    data: dict[str, Any] = {}
    data.update(read_project_config(project_path, config_path))
    data.update({k: v for k, v in overrides.items() if v is not None})
    data["project_path"] = os.path.abspath(project_path)

    try:
        return RemediationSettings(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
