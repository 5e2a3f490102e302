"""Application exception classes."""

from __future__ import annotations


class ConfigError(Exception):
    """Raised when configuration is invalid or incomplete."""


class JournalError(Exception):
    """Raised when writing to journal files fails."""


class WeatherProviderError(Exception):
    """Raised when NWS requests or payload normalization fail."""


class WagerError(Exception):
    """Base class for wager engine failures surfaced to callers."""


class WagerValidationError(WagerError):
    """Raised when wager input is malformed; never retried."""

    def __init__(self, errors: list[str]) -> None:
        super().__init__("; ".join(errors) if errors else "invalid wager input")
        self.errors = list(errors)


class WagerNotFoundError(WagerError):
    """Raised for operations on an unknown wager id."""

    def __init__(self, wager_id: str) -> None:
        super().__init__(f"Wager not found: {wager_id}")
        self.wager_id = wager_id


class InvalidStateError(WagerError):
    """Raised when an operation is illegal for the wager's current status."""


class StationResolutionError(WagerError):
    """Raised when no observation station can be resolved for a location."""


class ObservationUnavailableError(WagerError):
    """Raised when ground-truth observations are missing for a wager."""


class RepositoryError(Exception):
    """Raised when a single-record storage operation fails."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the storage layer itself cannot be reached."""
