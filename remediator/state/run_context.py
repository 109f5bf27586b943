"""
Run Context
===========
All mutable state of one remediation run, passed explicitly through the
orchestrator. Nothing about a run lives at module level.

State machine:
    IDLE → ANALYZING → SCHEDULING
         → [CHECKPOINTING → TRANSFORMING → MEASURING → COMMITTING | REVERTING]*
         → DONE            (or FAILED on a setup failure)
"""
import time
from datetime import datetime, timezone
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional

from remediator.core.config import RemediationSettings
from remediator.models.category import Category
from remediator.models.diagnostic import DiagnosticRecord
from remediator.models.phase_result import PhaseResult


class RunState(str, Enum):
    IDLE = "idle"
    ANALYZING = "analyzing"
    SCHEDULING = "scheduling"
    CHECKPOINTING = "checkpointing"
    TRANSFORMING = "transforming"
    MEASURING = "measuring"
    COMMITTING = "committing"
    REVERTING = "reverting"
    DONE = "done"
    FAILED = "failed"


@dataclass
class RunContext:
    settings: RemediationSettings
    state: RunState = RunState.IDLE
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    start_monotonic: float = field(default_factory=time.monotonic)

    initial_count: int = 0
    # Last committed tree-wide count; the before_count of the next attempt
    current_count: int = 0
    diagnostics: list[DiagnosticRecord] = field(default_factory=list)
    schedule: list[Category] = field(default_factory=list)
    phases: list[PhaseResult] = field(default_factory=list)
    backups: list[str] = field(default_factory=list)
    skipped_categories: list[str] = field(default_factory=list)

    current_category: Optional[str] = None
    error: Optional[str] = None

    def transition(self, state: RunState) -> None:
        self.state = state

    def record_phase(self, result: PhaseResult) -> None:
        self.phases.append(result)

    def elapsed_seconds(self) -> float:
        return round(time.monotonic() - self.start_monotonic, 3)

    def snapshot(self) -> dict:
        """Progress view for the status endpoint."""
        return {
            "state": self.state.value,
            "project_path": self.settings.project_path,
            "dry_run": self.settings.dry_run,
            "current_category": self.current_category,
            "initial_errors": self.initial_count,
            "current_errors": self.current_count,
            "phases_completed": len(self.phases),
            "scheduled": [c.name for c in self.schedule],
            "elapsed_seconds": self.elapsed_seconds(),
            "error": self.error,
        }
