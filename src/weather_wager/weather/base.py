"""Provider-agnostic contracts for station resolution and observations."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from .models import StationInfo


class StationResolver(ABC):
    """Maps coordinates to an observation station and civil timezone."""

    @abstractmethod
    def resolve(self, lat: float, lon: float) -> StationInfo:
        """Resolve a station, raising StationResolutionError when none exists."""


class ObservationSource(ABC):
    """Returns raw station readings for a UTC time range."""

    @abstractmethod
    def fetch_observations(
        self,
        station_id: str,
        *,
        start: datetime,
        end: datetime,
    ) -> list[dict[str, Any]]:
        """Fetch raw reading property objects, oldest or newest first."""
