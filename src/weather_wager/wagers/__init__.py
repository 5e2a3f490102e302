"""Wager records, lifecycle, grading and storage."""

from .grading import grade_odds, grade_over_under, grade_pointspread
from .models import (
    OddsWager,
    OverUnderWager,
    PointspreadWager,
    SettlementFields,
    Wager,
    WagerLocation,
    WagerPage,
)
from .repository import WagerRepository
from .service import WagerAdminService

__all__ = [
    "OddsWager",
    "OverUnderWager",
    "PointspreadWager",
    "SettlementFields",
    "Wager",
    "WagerAdminService",
    "WagerLocation",
    "WagerPage",
    "WagerRepository",
    "grade_odds",
    "grade_over_under",
    "grade_pointspread",
]
