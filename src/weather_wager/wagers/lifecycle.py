"""Wager status state machine."""

from __future__ import annotations

from ..exceptions import InvalidStateError
from .models import WagerStatus

TERMINAL_STATUSES: frozenset[WagerStatus] = frozenset({"graded", "void"})

_ALLOWED_TRANSITIONS: dict[WagerStatus, frozenset[WagerStatus]] = {
    "open": frozenset({"locked", "void"}),
    "locked": frozenset({"graded", "void"}),
    "graded": frozenset(),
    "void": frozenset(),
}


def is_terminal(status: WagerStatus) -> bool:
    """Return True when no transition leaves `status`."""
    return status in TERMINAL_STATUSES


def can_transition(from_status: WagerStatus, to_status: WagerStatus) -> bool:
    return to_status in _ALLOWED_TRANSITIONS.get(from_status, frozenset())


def ensure_transition_allowed(from_status: WagerStatus, to_status: WagerStatus) -> None:
    """Raise InvalidStateError for a pair missing from the transition table."""
    if not can_transition(from_status, to_status):
        raise InvalidStateError(f"Invalid wager transition: {from_status} -> {to_status}")
