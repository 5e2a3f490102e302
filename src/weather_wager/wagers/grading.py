"""Pure grading functions: wager terms + observed values -> winning outcome."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Literal

from ..weather.models import DailyObservation
from .models import (
    OddsOutcome,
    OddsWager,
    OverUnderWager,
    PointspreadWager,
    Wager,
    WagerMetric,
)

NO_MATCH = "none"

OverUnderResult = Literal["over", "under", "push"]
PointspreadResult = Literal["locationA", "locationB", "push"]


def grade_odds(outcomes: Sequence[OddsOutcome], observed: float) -> str:
    """Return the first bucket containing `observed`, or "none"."""
    for outcome in outcomes:
        if outcome.min_value <= observed <= outcome.max_value:
            return outcome.label
    return NO_MATCH


def grade_over_under(line: float, observed: float) -> OverUnderResult:
    if observed > line:
        return "over"
    if observed < line:
        return "under"
    return "push"


def grade_pointspread(spread: float, observed_a: float, observed_b: float) -> PointspreadResult:
    """Compare the A-minus-B differential against the spread."""
    diff = observed_a - observed_b
    if diff > spread:
        return "locationA"
    if diff < spread:
        return "locationB"
    return "push"


def observed_value_for_metric(
    observation: DailyObservation, metric: WagerMetric
) -> float | None:
    """Pick the aggregate a metric is graded against."""
    # actual_temp is graded against the day's high.
    values: dict[str, float | None] = {
        "actual_temp": observation.high_temp,
        "high_temp": observation.high_temp,
        "low_temp": observation.low_temp,
        "precip": observation.precip,
        "wind_speed": observation.wind_speed,
        "wind_gust": observation.wind_gust,
    }
    return values[metric]


def valid_outcomes(wager: Wager) -> set[str]:
    """Every winning outcome a wager of this shape can settle to."""
    if isinstance(wager, OddsWager):
        return {outcome.label for outcome in wager.outcomes} | {NO_MATCH}
    if isinstance(wager, OverUnderWager):
        return {"over", "under", "push"}
    if isinstance(wager, PointspreadWager):
        return {"locationA", "locationB", "push"}
    raise TypeError(f"Unsupported wager type: {type(wager).__name__}")
