"""Station resolution and ground-truth observation integrations."""

from .base import ObservationSource, StationResolver
from .models import DailyObservation, StationInfo
from .nws import NWSClient
from .observations import ObservationFetcher, aggregate_readings

__all__ = [
    "DailyObservation",
    "NWSClient",
    "ObservationFetcher",
    "ObservationSource",
    "StationInfo",
    "StationResolver",
    "aggregate_readings",
]
