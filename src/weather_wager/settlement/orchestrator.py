"""Scheduled settlement loop: lock, grade, and time out wagers.

Each run is idempotent. Every mutation is a compare-and-set on the wager's
current status, so overlapping runs see no-ops rather than double-applying.
Per-wager failures are recorded in the run summary; only an unreachable
store (`RepositoryUnavailableError`) aborts the run.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, date, datetime, timedelta

from ..config import Settings
from ..exceptions import (
    ObservationUnavailableError,
    RepositoryError,
    RepositoryUnavailableError,
)
from ..wagers.grading import (
    grade_odds,
    grade_over_under,
    grade_pointspread,
    observed_value_for_metric,
)
from ..wagers.models import (
    OddsWager,
    OverUnderWager,
    PointspreadWager,
    SettlementFields,
    Wager,
    WagerLocation,
)
from ..wagers.repository import WagerRepository
from ..weather.observations import ObservationFetcher, local_day_bounds
from .models import SettlementRunSummary


class SettlementOrchestrator:
    """Composes repository, observation fetcher and grading into one run."""

    def __init__(
        self,
        repository: WagerRepository,
        fetcher: ObservationFetcher,
        settings: Settings,
        logger: logging.Logger,
        now_provider: Callable[[], datetime] | None = None,
    ) -> None:
        self.repository = repository
        self.fetcher = fetcher
        self.settings = settings
        self.logger = logger
        self._now_provider = now_provider or (lambda: datetime.now(UTC))

    def run(self, now: datetime | None = None) -> SettlementRunSummary:
        """Run the lock sweep, grading sweep and timeout voiding once."""
        now = self._ensure_utc(now or self._now_provider())
        summary = SettlementRunSummary(started_at=now)

        if self.settings.settlement_reconcile_indices:
            self.repository.reconcile_indices()

        with ThreadPoolExecutor(max_workers=self.settings.settlement_max_workers) as pool:
            self._lock_sweep(now, summary)
            failed = self._grading_sweep(now, summary, pool)
        self._void_timed_out(now, failed, summary)

        summary.finished_at = self._ensure_utc(self._now_provider())
        self.logger.info(
            "Settlement run complete locked=%d graded=%d voided=%d errors=%d",
            len(summary.locked), len(summary.graded), len(summary.voided), len(summary.errors),
        )
        return summary

    def grading_dates(self, now: datetime) -> list[date]:
        """Trailing target dates eligible for grading, most recent first."""
        today = now.astimezone(UTC).date()
        return [
            today - timedelta(days=days_back)
            for days_back in range(1, self.settings.grading_window_days + 1)
        ]

    def _lock_sweep(self, now: datetime, summary: SettlementRunSummary) -> None:
        try:
            candidates = self.repository.list_lockable(now)
        except RepositoryUnavailableError:
            raise
        except RepositoryError as exc:
            summary.errors.append(f"Lock sweep failed: {exc}")
            return

        for wager in candidates:
            try:
                locked = self.repository.transition(wager.id, "open", "locked")
            except RepositoryUnavailableError:
                raise
            except Exception as exc:  # noqa: BLE001 - one wager must not block the sweep
                self.logger.error(
                    "Locking %s failed: %s", wager.id, exc, extra={"wager_id": wager.id}
                )
                summary.errors.append(f"Locking {wager.id} failed: {exc}")
                continue
            if locked is not None:
                summary.locked.append(wager.id)

    def _grading_sweep(
        self,
        now: datetime,
        summary: SettlementRunSummary,
        pool: ThreadPoolExecutor,
    ) -> list[Wager]:
        failed: list[Wager] = []
        for target_date in self.grading_dates(now):
            try:
                wagers = self.repository.list_by_date(target_date, status="locked")
            except RepositoryUnavailableError:
                raise
            except RepositoryError as exc:
                summary.errors.append(f"Listing wagers for {target_date} failed: {exc}")
                continue

            for wager in wagers:
                try:
                    if not self._day_complete(wager, now):
                        self.logger.info(
                            "Grading %s deferred: local day still in progress",
                            wager.id,
                            extra={"wager_id": wager.id},
                        )
                        continue
                    graded = self._grade(wager, pool)
                except RepositoryUnavailableError:
                    raise
                except ObservationUnavailableError as exc:
                    self.logger.warning(
                        "Grading %s deferred: %s", wager.id, exc, extra={"wager_id": wager.id}
                    )
                    summary.errors.append(f"Grading {wager.id} failed: {exc}")
                    failed.append(wager)
                    continue
                except Exception as exc:  # noqa: BLE001 - recorded, retried next run
                    self.logger.error(
                        "Grading %s failed: %s", wager.id, exc, extra={"wager_id": wager.id}
                    )
                    summary.errors.append(f"Grading {wager.id} failed: {exc}")
                    failed.append(wager)
                    continue
                if graded is not None:
                    summary.graded.append(wager.id)
        return failed

    @staticmethod
    def _day_complete(wager: Wager, now: datetime) -> bool:
        """True once target_date has ended at every station the wager reads."""
        return all(
            local_day_bounds(wager.target_date, location.time_zone)[1] <= now
            for location in wager.locations()
        )

    def _grade(self, wager: Wager, pool: ThreadPoolExecutor) -> Wager | None:
        if isinstance(wager, PointspreadWager):
            future_a = pool.submit(self._observed, wager, wager.location_a)
            future_b = pool.submit(self._observed, wager, wager.location_b)
            observed_a, observed_b = future_a.result(), future_b.result()
            outcome: str = grade_pointspread(wager.spread, observed_a, observed_b)
            fields = SettlementFields(
                observed_value=observed_a,
                observed_value_a=observed_a,
                observed_value_b=observed_b,
                winning_outcome=outcome,
            )
        else:
            observed = self._observed(wager, wager.location)
            if isinstance(wager, OddsWager):
                outcome = grade_odds(wager.outcomes, observed)
            elif isinstance(wager, OverUnderWager):
                outcome = grade_over_under(wager.line, observed)
            else:
                raise TypeError(f"Unsupported wager type: {type(wager).__name__}")
            fields = SettlementFields(observed_value=observed, winning_outcome=outcome)

        return self.repository.transition(wager.id, "locked", "graded", fields)

    def _observed(self, wager: Wager, location: WagerLocation) -> float:
        observation = self.fetcher.fetch(location.station_id, wager.target_date, location.time_zone)
        if observation is None:
            raise ObservationUnavailableError(
                f"No observations for {location.station_id} on {wager.target_date}"
            )
        value = observed_value_for_metric(observation, wager.metric)
        if value is None:
            raise ObservationUnavailableError(
                f"No {wager.metric} data for {location.station_id} on {wager.target_date}"
            )
        return value

    def _void_timed_out(
        self,
        now: datetime,
        failed: list[Wager],
        summary: SettlementRunSummary,
    ) -> None:
        timeout = timedelta(hours=self.settings.void_after_hours)
        for wager in failed:
            if now - wager.lock_time <= timeout:
                continue
            try:
                voided = self.repository.transition(
                    wager.id,
                    "locked",
                    "void",
                    SettlementFields(void_reason=self.settings.void_reason),
                )
            except RepositoryUnavailableError:
                raise
            except Exception as exc:  # noqa: BLE001 - one wager must not block the sweep
                self.logger.error(
                    "Voiding %s failed: %s", wager.id, exc, extra={"wager_id": wager.id}
                )
                summary.errors.append(f"Voiding {wager.id} failed: {exc}")
                continue
            if voided is not None:
                self.logger.warning(
                    "Wager %s voided: %s",
                    wager.id,
                    self.settings.void_reason,
                    extra={"wager_id": wager.id},
                )
                summary.voided.append(wager.id)

    @staticmethod
    def _ensure_utc(value: datetime) -> datetime:
        return value.astimezone(UTC) if value.tzinfo else value.replace(tzinfo=UTC)
