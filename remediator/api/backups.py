"""
Backup Endpoints
================
GET  /api/backups?project_path=...           — list in creation order
POST /api/backups/{backup_id}/restore        — restore one backup
POST /api/backups/prune                      — delete old backups
"""
import logging
from datetime import timedelta
from typing import List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from remediator.api.errors import to_http_exception
from remediator.core.config import load_settings
from remediator.core.exceptions import RemediationError
from remediator.models.backup import Backup
from remediator.services.backup_service import BackupManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/backups", tags=["Backups"])


class ProjectRequest(BaseModel):
    project_path: str


class PruneRequest(ProjectRequest):
    older_than_days: Optional[float] = Field(default=None, ge=0)
    keep: Optional[int] = Field(default=None, ge=0)


def _manager(project_path: str) -> BackupManager:
    try:
        settings = load_settings(project_path)
    except RemediationError as e:
        raise to_http_exception(e)
    return BackupManager(settings.backup_root, workspace_path=settings.project_path)


@router.get("", response_model=List[Backup])
async def list_backups(project_path: str):
    return _manager(project_path).list_backups()


@router.post("/prune")
async def prune_backups(body: PruneRequest):
    if body.older_than_days is None and body.keep is None:
        raise HTTPException(status_code=400, detail="older_than_days or keep is required")

    manager = _manager(body.project_path)
    removed = 0
    if body.older_than_days is not None:
        removed += manager.prune_older_than(timedelta(days=body.older_than_days))
    if body.keep is not None:
        removed += manager.prune_keep_latest(body.keep)
    logger.info("Pruned %d backups for %s", removed, body.project_path)
    return {"removed": removed}


@router.post("/{backup_id}/restore", response_model=Backup)
async def restore_backup(backup_id: str, body: ProjectRequest):
    manager = _manager(body.project_path)
    try:
        return manager.restore_backup(backup_id)
    except RemediationError as e:
        raise to_http_exception(e)
