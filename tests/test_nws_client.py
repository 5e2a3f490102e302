"""NWS station resolution and observation fetch against canned payloads."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from types import SimpleNamespace
from typing import Any

import httpx
import pytest

from weather_wager.exceptions import StationResolutionError, WeatherProviderError
from weather_wager.weather.nws import NWSClient

POINTS_URL = "https://api.weather.gov/points/40.7812,-73.9665"
STATIONS_URL = "https://api.weather.gov/gridpoints/OKX/33,37/stations"


def _make_settings(**overrides: Any) -> Any:
    defaults = {
        "nws_api_base_url": "https://api.weather.gov",
        "nws_user_agent": "weather-wager-tests/0.1 (contact: test@example.com)",
        "weather_timeout_seconds": 5.0,
        "weather_max_retries": 1,
    }
    defaults.update(overrides)
    return SimpleNamespace(**defaults)


def _make_client(**settings_overrides: Any) -> NWSClient:
    return NWSClient(
        settings=_make_settings(**settings_overrides),
        logger=logging.getLogger("test_nws_client"),
        retry_delay_seconds=0.0,
    )


def _stations_payload(*station_ids: str) -> dict[str, Any]:
    return {
        "features": [
            {"properties": {"stationIdentifier": station_id}} for station_id in station_ids
        ]
    }


def test_resolve_uses_first_station_and_timezone() -> None:
    client = _make_client()
    responses = {
        POINTS_URL: {
            "properties": {"observationStations": STATIONS_URL, "timeZone": "America/New_York"}
        },
        STATIONS_URL: _stations_payload("KNYC", "KLGA"),
    }
    client._request_json = lambda url, context, params=None: responses[url]  # type: ignore[assignment]

    station = client.resolve(40.7812, -73.9665)

    assert station.station_id == "KNYC"
    assert station.time_zone == "America/New_York"


def test_resolve_defaults_timezone_when_missing() -> None:
    client = _make_client()
    responses = {
        POINTS_URL: {"properties": {"observationStations": STATIONS_URL}},
        STATIONS_URL: _stations_payload("KNYC"),
    }
    client._request_json = lambda url, context, params=None: responses[url]  # type: ignore[assignment]

    assert client.resolve(40.7812, -73.9665).time_zone == "America/New_York"


def test_resolve_without_stations_raises() -> None:
    client = _make_client()
    responses = {
        POINTS_URL: {"properties": {"observationStations": STATIONS_URL}},
        STATIONS_URL: {"features": []},
    }
    client._request_json = lambda url, context, params=None: responses[url]  # type: ignore[assignment]

    with pytest.raises(StationResolutionError, match="No observation stations"):
        client.resolve(40.7812, -73.9665)


def test_resolve_wraps_upstream_failure() -> None:
    client = _make_client()

    def _fail(url: str, context: str, params: dict[str, str] | None = None) -> dict[str, Any]:
        raise WeatherProviderError(f"NWS {context} failed with status 500")

    client._request_json = _fail  # type: ignore[assignment]

    with pytest.raises(StationResolutionError, match="points lookup"):
        client.resolve(40.7812, -73.9665)


@pytest.mark.parametrize(("lat", "lon"), [(91.0, 0.0), (0.0, -181.0)])
def test_resolve_rejects_out_of_range_coordinates(lat: float, lon: float) -> None:
    client = _make_client()
    with pytest.raises(StationResolutionError):
        client.resolve(lat, lon)


def test_fetch_observations_sends_utc_window() -> None:
    client = _make_client()
    seen: dict[str, Any] = {}

    def _fake_request(
        url: str, context: str, params: dict[str, str] | None = None
    ) -> dict[str, Any]:
        seen.update(url=url, context=context, params=params)
        return {
            "features": [
                {"properties": {"temperature": {"unitCode": "wmoUnit:degC", "value": 4.0}}},
                "garbage",
                {"properties": {"temperature": {"unitCode": "wmoUnit:degC", "value": 6.0}}},
            ]
        }

    client._request_json = _fake_request  # type: ignore[assignment]

    readings = client.fetch_observations(
        "KNYC",
        start=datetime(2026, 3, 1, 5, 0, tzinfo=UTC),
        end=datetime(2026, 3, 2, 4, 59, 59, tzinfo=UTC),
    )

    assert len(readings) == 2
    assert seen["url"] == "https://api.weather.gov/stations/KNYC/observations"
    assert seen["context"] == "observations fetch"
    assert seen["params"] == {"start": "2026-03-01T05:00:00Z", "end": "2026-03-02T04:59:59Z"}


def test_fetch_observations_rejects_payload_without_features() -> None:
    client = _make_client()
    payload = {"type": "FeatureCollection"}
    client._request_json = lambda url, context, params=None: payload  # type: ignore[assignment]
    with pytest.raises(WeatherProviderError, match="features"):
        client.fetch_observations(
            "KNYC",
            start=datetime(2026, 3, 1, tzinfo=UTC),
            end=datetime(2026, 3, 2, tzinfo=UTC),
        )


def test_request_json_retries_server_errors_then_succeeds() -> None:
    attempts = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        attempts["count"] += 1
        assert request.headers["User-Agent"].startswith("weather-wager-tests")
        if attempts["count"] == 1:
            return httpx.Response(503, text="busy")
        return httpx.Response(200, json={"properties": {}})

    client = _make_client()
    client._client = httpx.Client(
        transport=httpx.MockTransport(handler),
        headers={"User-Agent": "weather-wager-tests/0.1"},
    )

    assert client._request_json(POINTS_URL, context="points lookup") == {"properties": {}}
    assert attempts["count"] == 2


def test_request_json_does_not_retry_client_errors() -> None:
    attempts = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        attempts["count"] += 1
        return httpx.Response(404, text="not found")

    client = _make_client()
    client._client = httpx.Client(transport=httpx.MockTransport(handler))

    with pytest.raises(WeatherProviderError, match="status 404"):
        client._request_json(POINTS_URL, context="points lookup")
    assert attempts["count"] == 1
