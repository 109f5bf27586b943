"""
Run Report Model
================
The machine-readable artifact produced at the end of a full run.

Aggregates initial/final diagnostic counts, the ordered PhaseResult list,
and recommendations. Frozen once built; never mutated afterwards.

Status values:
    clean       — no diagnostics at the start, nothing was done
    success     — final count is zero
    improved    — final count is lower than the initial count
    unchanged   — final count equals the initial count
    regressed   — final count is higher (only possible within the threshold)
    error       — setup failure aborted the run
"""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from .category import Category
from .phase_result import PhaseResult


class RunReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    duration_seconds: float = 0.0
    project_path: str = ""
    status: str = "clean"
    dry_run: bool = False
    initial_errors: int = 0
    final_errors: int = 0
    total_improvement: int = 0
    success_rate: float = 0.0
    max_allowed_increase: int = 0
    phases: List[PhaseResult] = []
    schedule: List[Category] = []
    recommendations: List[str] = []
    remaining_by_category: Dict[str, int] = {}
    backups: List[str] = []
    skipped_categories: List[str] = []
    error: Optional[str] = None
