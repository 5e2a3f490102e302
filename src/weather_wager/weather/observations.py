"""Daily observation fetcher with a TTL disk cache.

Raw NWS station readings are aggregated into one `DailyObservation` per
(station, local civil day). Aggregates are cached with `diskcache` so repeated
settlement runs do not hit the upstream API; only successful aggregates are
cached, and only once the local day has ended, so an unavailable or partial
day is re-fetched on the next run.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, date, datetime, time
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from diskcache import Cache

from ..config import Settings
from ..exceptions import WeatherProviderError
from .base import ObservationSource
from .models import DailyObservation

MM_PER_INCH = 25.4
KM_PER_MILE = 1.609344


def cache_key(station_id: str, day: date) -> str:
    return f"nws-obs:{station_id}:{day.isoformat()}"


def local_day_bounds(day: date, time_zone: str) -> tuple[datetime, datetime]:
    """Return the first and last second of `day` in `time_zone`."""
    tz = ZoneInfo(time_zone)
    start = datetime.combine(day, time(0, 0, 0), tzinfo=tz)
    end = datetime.combine(day, time(23, 59, 59), tzinfo=tz)
    return start, end


def _measurement(props: dict[str, Any], key: str) -> tuple[float, str] | None:
    raw = props.get(key)
    if not isinstance(raw, dict):
        return None
    value = raw.get("value")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    unit = raw.get("unitCode")
    return float(value), unit if isinstance(unit, str) else ""


def _to_fahrenheit(value: float, unit: str) -> float:
    if unit.endswith("degF"):
        return value
    return value * 9 / 5 + 32


def _to_inches(value: float, unit: str) -> float:
    if unit.endswith(":m"):
        return value * 1000 / MM_PER_INCH
    return value / MM_PER_INCH


def _to_mph(value: float, unit: str) -> float:
    if unit.endswith("m_s-1"):
        return value * 3.6 / KM_PER_MILE
    return value / KM_PER_MILE


def aggregate_readings(
    station_id: str,
    day: date,
    readings: list[dict[str, Any]],
    fetched_at: datetime,
) -> DailyObservation:
    """Aggregate raw readings.

    NWS reports null precipitation and gusts on dry or calm hours, so those
    totals start at zero. Only temperature stays None when no reading has it.
    """
    temps: list[float] = []
    precip_total = 0.0
    winds: list[float] = []
    gusts: list[float] = []

    for props in readings:
        temperature = _measurement(props, "temperature")
        if temperature is not None:
            temps.append(_to_fahrenheit(*temperature))

        precip = _measurement(props, "precipitationLastHour")
        if precip is not None and precip[0] > 0:
            precip_total += _to_inches(*precip)

        wind = _measurement(props, "windSpeed")
        if wind is not None:
            winds.append(_to_mph(*wind))

        gust = _measurement(props, "windGust")
        if gust is not None:
            gusts.append(_to_mph(*gust))

    return DailyObservation(
        station_id=station_id,
        date=day,
        high_temp=round(max(temps), 1) if temps else None,
        low_temp=round(min(temps), 1) if temps else None,
        precip=round(precip_total, 2),
        wind_speed=round(max(winds, default=0.0), 1),
        wind_gust=round(max(gusts, default=0.0), 1),
        observation_count=len(readings),
        fetched_at=fetched_at,
    )


class ObservationFetcher:
    """Fetch-through cache for daily station observations."""

    def __init__(
        self,
        source: ObservationSource,
        cache: Cache,
        settings: Settings,
        logger: logging.Logger,
        now_provider: Callable[[], datetime] | None = None,
    ) -> None:
        self.source = source
        self.cache = cache
        self.logger = logger
        self._ttl_seconds = settings.observation_cache_ttl_seconds
        self._min_readings = settings.observation_min_readings
        self._now_provider = now_provider or (lambda: datetime.now(UTC))

    def fetch(self, station_id: str, day: date, time_zone: str) -> DailyObservation | None:
        """Return the day's aggregate, or None when data is unavailable."""
        key = cache_key(station_id, day)
        context = {"station_id": station_id, "target_date": day}
        cached = self.cache.get(key)
        if cached is not None:
            return DailyObservation.model_validate(cached)

        try:
            start, end = local_day_bounds(day, time_zone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            self.logger.error(
                "Unknown time zone %r for station %s: %s", time_zone, station_id, exc,
                extra=context,
            )
            return None

        try:
            readings = self.source.fetch_observations(station_id, start=start, end=end)
        except WeatherProviderError as exc:
            self.logger.error(
                "Observation fetch failed for %s on %s: %s", station_id, day, exc,
                extra=context,
            )
            return None

        if len(readings) < self._min_readings:
            self.logger.warning(
                "Only %d observations for %s on %s (need %d)",
                len(readings), station_id, day, self._min_readings,
                extra=context,
            )
            return None

        now = self._now()
        observation = aggregate_readings(station_id, day, readings, fetched_at=now)
        # Only completed local days are cached.
        if end <= now:
            self.cache.set(key, observation.model_dump(mode="json"), expire=self._ttl_seconds)
        return observation

    def _now(self) -> datetime:
        value = self._now_provider()
        return value.astimezone(UTC) if value.tzinfo else value.replace(tzinfo=UTC)
