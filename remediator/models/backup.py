"""
Backup Model
============
A durable, restorable copy of specific files' contents at a point in time.

Fields:
    id          — opaque unique identifier (restore is addressed by id, not path)
    timestamp   — UTC creation time
    description — free text (usually the phase label)
    files       — workspace-relative paths that were archived
    backup_path — absolute path of the archive directory
    sequence    — monotonically increasing creation counter within the store
    hashes      — file -> sha256 of the archived bytes

Immutable after creation; retained until explicitly pruned.
"""
from datetime import datetime
from typing import Dict, List

from pydantic import BaseModel, ConfigDict


class Backup(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    timestamp: datetime
    description: str = ""
    files: List[str] = []
    backup_path: str = ""
    sequence: int = 0
    hashes: Dict[str, str] = {}

    def manifest(self) -> dict:
        """Serialisable manifest written next to the archived files."""
        data = self.model_dump(mode="json")
        data.pop("backup_path", None)
        return data
