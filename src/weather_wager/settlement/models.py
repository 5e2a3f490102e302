"""Typed result of one settlement run."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class SettlementRunSummary(BaseModel):
    """Ids touched by each sweep plus per-wager error messages."""

    started_at: datetime
    finished_at: datetime | None = None
    locked: list[str] = Field(default_factory=list)
    graded: list[str] = Field(default_factory=list)
    voided: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    def counts(self) -> dict[str, int]:
        return {
            "locked": len(self.locked),
            "graded": len(self.graded),
            "voided": len(self.voided),
            "errors": len(self.errors),
        }
