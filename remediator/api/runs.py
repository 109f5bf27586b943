"""
Run Endpoints
=============
POST /api/runs     — run the orchestrator on a project (blocking, in a worker thread)
GET  /api/status   — progress of the active run, or the last run's outcome
GET  /api/report   — the last RunReport (or the one on disk for a project)

Only one run may be active per server; a second POST gets 409.
"""
import asyncio
import logging
import threading
from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from remediator.agents.orchestrator import Orchestrator
from remediator.api.errors import to_http_exception
from remediator.core.config import load_settings
from remediator.core.exceptions import ConfigError
from remediator.models.run_report import RunReport
from remediator.services.report_writer import ReportWriter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Runs"])


# ---------------------------------------------------------------------------
# Request schema
# ---------------------------------------------------------------------------
class RunRequest(BaseModel):
    project_path: str
    dry_run: bool = False
    backup_enabled: bool = True
    max_iterations: Optional[int] = Field(default=None, ge=1)
    timeout_seconds: Optional[int] = Field(default=None, ge=1)
    max_allowed_increase: Optional[int] = Field(default=None, ge=0)
    toolchain_command: Optional[str] = None


# ---------------------------------------------------------------------------
# Active run tracking (one per server)
# ---------------------------------------------------------------------------
class RunTracker:
    """Holds the server's active orchestrator and the last finished report."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.active: Optional[Orchestrator] = None
        self.last_report: Optional[RunReport] = None

    def acquire(self, orchestrator: Orchestrator) -> bool:
        with self._lock:
            if self.active is not None:
                return False
            self.active = orchestrator
            return True

    def release(self, report: Optional[RunReport]) -> None:
        with self._lock:
            self.active = None
            if report is not None:
                self.last_report = report

    def status(self) -> dict:
        with self._lock:
            active = self.active
            last = self.last_report
        if active is not None and active.context is not None:
            return {"running": True, **active.context.snapshot()}
        if active is not None:
            return {"running": True, "state": "idle"}
        return {
            "running": False,
            "state": "idle",
            "last_status": last.status if last else None,
            "last_project_path": last.project_path if last else None,
        }


def get_tracker(request: Request) -> RunTracker:
    tracker = getattr(request.app.state, "runs", None)
    if tracker is None:
        tracker = request.app.state.runs = RunTracker()
    return tracker


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------
@router.post("/runs", response_model=RunReport)
async def start_run(body: RunRequest, request: Request):
    """Run a full remediation pass and return its report."""
    try:
        settings = load_settings(
            body.project_path,
            dry_run=body.dry_run,
            backup_enabled=body.backup_enabled,
            max_iterations=body.max_iterations,
            timeout_seconds=body.timeout_seconds,
            max_allowed_increase=body.max_allowed_increase,
            toolchain_command=body.toolchain_command,
        )
    except ConfigError as e:
        raise to_http_exception(e)

    tracker = get_tracker(request)
    orchestrator = Orchestrator(settings)
    if not tracker.acquire(orchestrator):
        raise HTTPException(status_code=409, detail="A remediation run is already in progress")

    logger.info("API run started for %s", settings.project_path)
    report: Optional[RunReport] = None
    try:
        report = await asyncio.to_thread(orchestrator.run)
    except Exception as exc:
        logger.error("Orchestrator error: %s", exc, exc_info=True)
        raise HTTPException(status_code=500, detail=f"Orchestrator error: {exc}")
    finally:
        tracker.release(report)

    return report


@router.get("/status")
async def get_status(request: Request):
    return get_tracker(request).status()


@router.get("/report", response_model=RunReport)
async def get_report(request: Request, project_path: Optional[str] = None):
    """
    Last report produced by this server, or the report file of
    ``project_path`` when given.
    """
    if project_path:
        try:
            settings = load_settings(project_path)
        except ConfigError as e:
            raise to_http_exception(e)
        report = ReportWriter.load_report(settings.report_file)
    else:
        report = get_tracker(request).last_report

    if report is None:
        raise HTTPException(status_code=404, detail="No report available")
    return report
