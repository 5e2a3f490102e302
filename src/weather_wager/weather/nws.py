"""NWS (api.weather.gov) station resolver and observation source."""

from __future__ import annotations

import logging
import time
from datetime import UTC, datetime
from typing import Any

import httpx

from ..config import Settings
from ..exceptions import StationResolutionError, WeatherProviderError
from ..redaction import sanitize_text
from .base import ObservationSource, StationResolver
from .models import StationInfo

DEFAULT_TIME_ZONE = "America/New_York"


class NWSClient(StationResolver, ObservationSource):
    """Resolves stations and fetches raw observations from api.weather.gov."""

    def __init__(
        self,
        settings: Settings,
        logger: logging.Logger,
        retry_delay_seconds: float = 1.0,
    ) -> None:
        self.settings = settings
        self.logger = logger
        self._base_url = str(settings.nws_api_base_url).rstrip("/")
        self._max_retries = settings.weather_max_retries
        self._retry_delay = retry_delay_seconds
        self._client = httpx.Client(
            timeout=settings.weather_timeout_seconds,
            headers={
                "Accept": "application/geo+json",
                "User-Agent": settings.nws_user_agent,
            },
        )

    def __enter__(self) -> NWSClient:
        return self

    def __exit__(self, exc_type: Any, exc: Any, exc_tb: Any) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def resolve(self, lat: float, lon: float) -> StationInfo:
        """Resolve the nearest observation station via the points endpoint."""
        if not (-90 <= lat <= 90):
            raise StationResolutionError(f"Invalid latitude {lat}; expected between -90 and 90.")
        if not (-180 <= lon <= 180):
            raise StationResolutionError(
                f"Invalid longitude {lon}; expected between -180 and 180."
            )

        points_url = f"{self._base_url}/points/{lat:.4f},{lon:.4f}"
        try:
            points_payload = self._request_json(points_url, context="points lookup")
            properties = points_payload.get("properties")
            if not isinstance(properties, dict):
                raise WeatherProviderError("NWS points payload missing 'properties' object.")

            time_zone = properties.get("timeZone")
            if not isinstance(time_zone, str) or not time_zone.strip():
                time_zone = DEFAULT_TIME_ZONE
            stations_url = properties.get("observationStations")
            if not isinstance(stations_url, str) or not stations_url.strip():
                raise StationResolutionError(
                    f"No observation stations URL returned for ({lat:.4f}, {lon:.4f})."
                )

            stations_payload = self._request_json(stations_url.strip(), context="stations lookup")
        except WeatherProviderError as exc:
            raise StationResolutionError(f"Station resolution failed: {exc}") from exc

        features = stations_payload.get("features")
        if not isinstance(features, list) or not features:
            raise StationResolutionError(
                f"No observation stations found for ({lat:.4f}, {lon:.4f})."
            )
        first = features[0]
        station_props = first.get("properties") if isinstance(first, dict) else None
        station_id = (
            station_props.get("stationIdentifier") if isinstance(station_props, dict) else None
        )
        if not isinstance(station_id, str) or not station_id.strip():
            raise StationResolutionError("First observation station has no stationIdentifier.")

        self.logger.info(
            "Resolved station %s (%s) for (%.4f, %.4f)",
            station_id.strip(), time_zone.strip(), lat, lon,
        )
        return StationInfo(station_id=station_id.strip(), time_zone=time_zone.strip())

    def fetch_observations(
        self,
        station_id: str,
        *,
        start: datetime,
        end: datetime,
    ) -> list[dict[str, Any]]:
        """Return the `properties` object of every reading in [start, end]."""
        url = f"{self._base_url}/stations/{station_id}/observations"
        payload = self._request_json(
            url,
            context="observations fetch",
            params={"start": _iso_utc(start), "end": _iso_utc(end)},
        )
        features = payload.get("features")
        if not isinstance(features, list):
            raise WeatherProviderError("NWS observations payload missing 'features' list.")

        readings: list[dict[str, Any]] = []
        for feature in features:
            if not isinstance(feature, dict):
                continue
            props = feature.get("properties")
            if isinstance(props, dict):
                readings.append(props)
        return readings

    def _request_json(
        self,
        url: str,
        context: str,
        params: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        last_error: Exception | None = None
        for attempt in range(self._max_retries + 1):
            try:
                response = self._client.get(url, params=params)
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                # Don't retry 4xx client errors except 429 rate-limit.
                if 400 <= status < 500 and status != 429:
                    raise WeatherProviderError(
                        f"NWS {context} failed with status {status} "
                        f"at {url}: {sanitize_text(exc.response.text[:300])}"
                    ) from exc
                last_error = exc
                if attempt < self._max_retries:
                    self.logger.warning("NWS %s failed (HTTP %d); retrying", context, status)
                    time.sleep(self._retry_delay)
                    continue
                raise WeatherProviderError(
                    f"NWS {context} failed with status {status} "
                    f"at {url}: {sanitize_text(exc.response.text[:300])}"
                ) from exc
            except httpx.HTTPError as exc:
                last_error = exc
                if attempt < self._max_retries:
                    self.logger.warning(
                        "NWS %s request failed (%s); retrying",
                        context, type(exc).__name__,
                    )
                    time.sleep(self._retry_delay)
                    continue
                raise WeatherProviderError(
                    f"NWS {context} request failed at {url}: {sanitize_text(str(exc))}"
                ) from exc

            try:
                payload = response.json()
            except ValueError as exc:
                raise WeatherProviderError(
                    f"NWS {context} returned non-JSON response at {url}."
                ) from exc

            if not isinstance(payload, dict):
                raise WeatherProviderError(
                    f"NWS {context} returned unexpected payload type "
                    f"{type(payload).__name__} at {url}."
                )
            return payload

        raise WeatherProviderError(f"NWS {context} failed after retries: {last_error}")


def _iso_utc(value: datetime) -> str:
    aware = value.astimezone(UTC) if value.tzinfo else value.replace(tzinfo=UTC)
    return aware.isoformat().replace("+00:00", "Z")
