"""
Toolchain Invoker
=================
Runs the project's check command and returns its combined output.

BOUNDARY RULES:
    - Invoker ONLY observes. It never edits, parses, or classifies.
    - Exactly one toolchain process is outstanding at a time.
    - Every invocation has a hard timeout.

Exit codes:
    A non-zero exit WITH diagnostics is the normal case for a broken tree.
    Deciding whether the output is usable is the orchestrator's job.

Errors:
    ToolchainUnavailableError — the executable could not be started
    ToolchainTimeoutError     — the process exceeded its timeout (killed)

Sandbox mode runs the same command inside an ephemeral docker container
with the project mounted at /workspace.
"""
import os
import time
import logging
import subprocess
from dataclasses import dataclass, field
from typing import Optional, Union

import docker
from docker.errors import APIError, DockerException, ImageNotFound

from remediator.core.config import DEFAULT_TIMEOUT_SECONDS, RemediationSettings
from remediator.core.exceptions import (
    ToolchainError,
    ToolchainTimeoutError,
    ToolchainUnavailableError,
)
from remediator.executor.command_resolver import resolve_command, split_command
from remediator.executor.project_detector import detect_project_type

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------
@dataclass
class ToolchainResult:
    """
    Output of a single toolchain invocation.

    Fields
    ------
    exit_code : int
        Process exit code.
    output : str
        Combined stdout + stderr.
    duration_seconds : float
        Wall clock duration.
    command : list[str]
        The argv that was executed.
    """
    exit_code: int
    output: str = ""
    duration_seconds: float = 0.0
    command: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Local Invoker
# ---------------------------------------------------------------------------
class ToolchainInvoker:
    """Runs the check command as a local subprocess in the project root."""

    def __init__(
        self,
        command: Union[str, list[str]],
        workspace_path: str,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.command = split_command(command)
        self.workspace_path = os.path.abspath(workspace_path)
        self.timeout_seconds = timeout_seconds

    def invoke(self) -> ToolchainResult:
        start = time.monotonic()
        logger.info("Running toolchain: %s (timeout=%ss)", " ".join(self.command), self.timeout_seconds)
        try:
            proc = subprocess.run(
                self.command,
                cwd=self.workspace_path,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
                timeout=self.timeout_seconds,
            )
        except subprocess.TimeoutExpired as e:
            logger.error("Toolchain timed out after %ss", self.timeout_seconds)
            raise ToolchainTimeoutError(
                f"Toolchain exceeded {self.timeout_seconds}s: {' '.join(self.command)}",
                timeout_seconds=self.timeout_seconds,
            ) from e
        except OSError as e:
            # FileNotFoundError / PermissionError on the executable
            logger.error("Toolchain could not be started: %s", e)
            raise ToolchainUnavailableError(f"Cannot run {self.command[0]}: {e}") from e

        result = ToolchainResult(
            exit_code=proc.returncode,
            output=proc.stdout or "",
            duration_seconds=round(time.monotonic() - start, 3),
            command=list(self.command),
        )
        logger.info("Toolchain finished | exit=%d | time=%.2fs", result.exit_code, result.duration_seconds)
        return result


# ---------------------------------------------------------------------------
# Docker Sandbox Invoker
# ---------------------------------------------------------------------------
_MEMORY_LIMIT = "2g"
_CPU_COUNT = 2


class SandboxToolchainInvoker(ToolchainInvoker):
    """
    Runs the check command inside an ephemeral docker container.

    One container per invocation, project mounted read-write at /workspace,
    container always destroyed afterwards.
    """

    def __init__(
        self,
        command: Union[str, list[str]],
        workspace_path: str,
        image: str,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        client: Optional["docker.DockerClient"] = None,
    ) -> None:
        super().__init__(command, workspace_path, timeout_seconds)
        self.image = image
        self._client = client

    def _get_client(self):
        if self._client is None:
            try:
                self._client = docker.from_env()
            except DockerException as e:
                raise ToolchainUnavailableError(f"Docker is not available: {e}") from e
        return self._client

    def invoke(self) -> ToolchainResult:
        start = time.monotonic()
        client = self._get_client()
        container = None

        logger.info(
            "Starting sandbox | image=%s | command=%s | timeout=%ss",
            self.image, " ".join(self.command), self.timeout_seconds,
        )
        try:
            container = client.containers.run(
                image=self.image,
                command=self.command,
                volumes={self.workspace_path: {"bind": "/workspace", "mode": "rw"}},
                working_dir="/workspace",
                environment={"CI": "true"},
                mem_limit=_MEMORY_LIMIT,
                nano_cpus=_CPU_COUNT * 1_000_000_000,
                labels={"project": "remediator", "role": "toolchain"},
                detach=True,
            )
            try:
                wait_result = container.wait(timeout=self.timeout_seconds)
            except Exception as e:
                # docker-py surfaces wait timeouts as transport errors
                if time.monotonic() - start >= self.timeout_seconds:
                    raise ToolchainTimeoutError(
                        f"Sandbox toolchain exceeded {self.timeout_seconds}s",
                        timeout_seconds=self.timeout_seconds,
                    ) from e
                raise ToolchainError(f"Sandbox wait failed: {e}") from e

            log_bytes = container.logs(stdout=True, stderr=True)
            exit_code = wait_result.get("StatusCode", -1)

        except ImageNotFound as e:
            raise ToolchainUnavailableError(f"Docker image '{self.image}' not found") from e
        except APIError as e:
            raise ToolchainUnavailableError(f"Docker API error: {e}") from e
        except DockerException as e:
            raise ToolchainUnavailableError(f"Docker is not available: {e}") from e

        finally:
            if container is not None:
                try:
                    container.remove(force=True)
                    logger.info("Container %s destroyed", container.short_id)
                except DockerException:
                    logger.warning("Failed to remove container", exc_info=True)

        result = ToolchainResult(
            exit_code=exit_code,
            output=log_bytes.decode("utf-8", errors="replace"),
            duration_seconds=round(time.monotonic() - start, 3),
            command=list(self.command),
        )
        logger.info("Sandbox finished | exit=%d | time=%.2fs", result.exit_code, result.duration_seconds)
        return result


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------
def build_invoker(settings: RemediationSettings) -> ToolchainInvoker:
    """
    Resolve the check command for a project and return the matching invoker.

    Raises ConfigError when no command is configured and the project type
    cannot be detected.
    """
    project_type = detect_project_type(settings.project_path)
    command = resolve_command(project_type, settings.toolchain_command or None)

    if settings.sandbox_image:
        return SandboxToolchainInvoker(
            command,
            settings.project_path,
            image=settings.sandbox_image,
            timeout_seconds=settings.timeout_seconds,
        )
    return ToolchainInvoker(command, settings.project_path, timeout_seconds=settings.timeout_seconds)
