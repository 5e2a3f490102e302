"""Scheduled wager settlement."""

from .models import SettlementRunSummary
from .orchestrator import SettlementOrchestrator

__all__ = ["SettlementOrchestrator", "SettlementRunSummary"]
