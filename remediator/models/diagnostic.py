"""
Diagnostic Record Model
=======================
Pydantic model for one positional finding emitted by the toolchain.

This is the contract between the parser and every downstream consumer
(categorizer, transform registry, validator).

Fields:
    file        — workspace-relative path, forward slashes
    line        — integer >= 1
    column      — integer >= 1
    code        — toolchain diagnostic code (e.g. "TS2307", "CS1002")
    message     — raw message text, captured to end of line
    severity    — low / medium / high / critical

Records are frozen once parsed. They are NOT deduplicated: each toolchain
invocation produces a fresh snapshot and records are never merged across runs.
"""
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Severity = Literal["low", "medium", "high", "critical"]


class DiagnosticRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    file: str
    line: int = Field(ge=1)
    column: int = Field(ge=1)
    code: str
    message: str = ""
    severity: Severity = "high"

    @property
    def location(self) -> str:
        return f"{self.file}({self.line},{self.column})"
