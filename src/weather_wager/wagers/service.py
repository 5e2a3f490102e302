"""Admin CRUD surface over the wager repository.

Callers are assumed to be authenticated already. Raw payloads are validated
here before anything reaches the repository.
"""

from __future__ import annotations

import logging
from typing import Any

from ..exceptions import InvalidStateError, WagerNotFoundError, WagerValidationError
from .grading import valid_outcomes
from .lifecycle import is_terminal
from .models import (
    WAGER_STATUSES,
    IndexReconcileReport,
    PointspreadWager,
    SettlementFields,
    Wager,
    WagerPage,
)
from .repository import WagerRepository
from .validation import validate_create_payload, validate_patch_payload


class WagerAdminService:
    """Create, edit, void and manually grade wagers."""

    def __init__(self, repository: WagerRepository, logger: logging.Logger) -> None:
        self.repository = repository
        self.logger = logger

    def create(self, payload: Any) -> Wager:
        return self.repository.create(validate_create_payload(payload))

    def get(self, wager_id: str) -> Wager:
        wager = self.repository.get(wager_id)
        if wager is None:
            raise WagerNotFoundError(wager_id)
        return wager

    def list(
        self,
        status: str | None = None,
        limit: int | None = None,
        cursor: int = 0,
    ) -> WagerPage:
        if status is not None and status not in WAGER_STATUSES:
            raise WagerValidationError(
                [f"Invalid status. Must be: {', '.join(WAGER_STATUSES)}"]
            )
        return self.repository.list_wagers(
            status=status, limit=limit, cursor=cursor  # type: ignore[arg-type]
        )

    def update(self, wager_id: str, payload: Any) -> Wager:
        return self.repository.update(wager_id, validate_patch_payload(payload))

    def delete(self, wager_id: str) -> None:
        self.repository.delete(wager_id)

    def void(self, wager_id: str, reason: str) -> Wager:
        """Void an open or locked wager with a human-readable reason."""
        reason = (reason or "").strip()
        if not reason:
            raise WagerValidationError(["Void reason is required"])

        wager = self.get(wager_id)
        if is_terminal(wager.status):
            raise InvalidStateError(f"Wager {wager_id} is already {wager.status}.")

        voided = self.repository.transition(
            wager_id, wager.status, "void", SettlementFields(void_reason=reason)
        )
        if voided is None:
            raise InvalidStateError(f"Wager {wager_id} changed status concurrently; retry.")
        self.logger.warning("Wager %s voided by admin: %s", wager_id, reason)
        return voided

    def grade(
        self,
        wager_id: str,
        winning_outcome: str,
        observed_value: float,
        observed_value_b: float | None = None,
    ) -> Wager:
        """Manually settle a wager; an open wager is locked first."""
        wager = self.get(wager_id)
        if is_terminal(wager.status):
            raise InvalidStateError(f"Wager {wager_id} is already {wager.status}.")

        allowed = valid_outcomes(wager)
        if winning_outcome not in allowed:
            raise WagerValidationError(
                [f"winning_outcome must be one of: {', '.join(sorted(allowed))}"]
            )

        if isinstance(wager, PointspreadWager):
            if observed_value_b is None:
                raise WagerValidationError(
                    ["observed_value_b is required for pointspread wagers"]
                )
            fields = SettlementFields(
                observed_value=observed_value,
                observed_value_a=observed_value,
                observed_value_b=observed_value_b,
                winning_outcome=winning_outcome,
            )
        else:
            if observed_value_b is not None:
                raise WagerValidationError(
                    ["observed_value_b is only valid for pointspread wagers"]
                )
            fields = SettlementFields(
                observed_value=observed_value, winning_outcome=winning_outcome
            )

        if wager.status == "open":
            self.repository.transition(wager_id, "open", "locked")
        graded = self.repository.transition(wager_id, "locked", "graded", fields)
        if graded is None:
            raise InvalidStateError(f"Wager {wager_id} changed status concurrently; retry.")
        self.logger.info("Wager %s graded by admin: %s", wager_id, winning_outcome)
        return graded

    def reconcile(self) -> IndexReconcileReport:
        return self.repository.reconcile_indices()
