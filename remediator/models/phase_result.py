"""
Phase Result Model
==================
Outcome of one phase attempt (one iteration of one category).

Fields:
    category        — category name the phase remediated
    iteration       — 1-based iteration within the phase
    before_count    — tree-wide diagnostic count before the transform
    after_count     — tree-wide diagnostic count after re-measuring
    improvement     — before_count - after_count
    increase        — after_count - before_count
    reverted        — True only when the regression guard reverted the tree
    duration_ms     — wall clock time of the attempt
    error           — failure description (toolchain, backup, checkpoint, timeout)
    transform_error — the transform raised; its partial edits were still measured
    timeout         — True if the attempt was aborted by a timeout
    rolled_back     — True if a failed attempt's uncommitted edits were discarded
    applied         — number of edits the transform registry reported
    files_changed   — files the transform registry reported as changed
    backup_id       — backup taken before the attempt, if any
    dry_run         — True if the attempt was only planned

Produced once per attempt and appended to the run log; insertion order is
execution order.
"""
from typing import List, Optional

from pydantic import BaseModel


class PhaseResult(BaseModel):
    category: str
    iteration: int
    before_count: int
    after_count: int
    improvement: int = 0
    increase: int = 0
    reverted: bool = False
    duration_ms: int = 0
    error: Optional[str] = None
    transform_error: Optional[str] = None
    timeout: bool = False
    rolled_back: bool = False
    applied: int = 0
    files_changed: List[str] = []
    backup_id: Optional[str] = None
    dry_run: bool = False

    @property
    def failed(self) -> bool:
        return self.error is not None

    @property
    def committed(self) -> bool:
        """True if the attempt's changes were kept in the tree."""
        return not self.failed and not self.reverted and not self.dry_run
