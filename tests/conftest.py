"""Shared fixtures: sqlite-backed repository and offline weather fakes."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from datetime import UTC, date, datetime
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest

from weather_wager.exceptions import StationResolutionError
from weather_wager.wagers.db import create_db_engine, create_session_factory, init_schema
from weather_wager.wagers.repository import WagerRepository
from weather_wager.weather.base import StationResolver
from weather_wager.weather.models import DailyObservation, StationInfo


class FakeResolver(StationResolver):
    """Maps rounded coordinates to canned stations."""

    def __init__(self, stations: dict[tuple[float, float], StationInfo] | None = None) -> None:
        self.stations = stations or {}
        self.calls: list[tuple[float, float]] = []

    def resolve(self, lat: float, lon: float) -> StationInfo:
        self.calls.append((lat, lon))
        key = (round(lat, 2), round(lon, 2))
        if key in self.stations:
            return self.stations[key]
        if lat == 0 and lon == 0:
            raise StationResolutionError("No observation stations found for (0.0000, 0.0000).")
        return StationInfo(
            station_id=f"K{abs(int(lat)):02d}{abs(int(lon)):03d}",
            time_zone="America/New_York",
        )


class FakeFetcher:
    """Stands in for ObservationFetcher with per-station canned aggregates."""

    def __init__(
        self, observations: dict[tuple[str, date], DailyObservation] | None = None
    ) -> None:
        self.observations = observations or {}
        self.calls: list[tuple[str, date, str]] = []

    def fetch(self, station_id: str, day: date, time_zone: str) -> DailyObservation | None:
        self.calls.append((station_id, day, time_zone))
        return self.observations.get((station_id, day))


def make_observation(station_id: str, day: date, **values: Any) -> DailyObservation:
    return DailyObservation(
        station_id=station_id,
        date=day,
        observation_count=values.pop("observation_count", 24),
        fetched_at=datetime(2026, 3, 2, 6, 0, tzinfo=UTC),
        **values,
    )


def odds_payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "kind": "odds",
        "title": "Central Park high on March 1",
        "metric": "high_temp",
        "target_date": "2026-03-01",
        "lock_time": "2026-03-01T12:00:00Z",
        "location": {"name": "Central Park", "lat": 40.78, "lon": -73.97},
        "outcomes": [
            {"label": "cold", "min_value": -60, "max_value": 39.9, "odds": 150},
            {"label": "mild", "min_value": 40, "max_value": 59.9, "odds": -120},
            {"label": "warm", "min_value": 60, "max_value": 130, "odds": 250},
        ],
    }
    payload.update(overrides)
    return payload


def over_under_payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "kind": "over-under",
        "title": "Central Park rainfall",
        "metric": "precip",
        "target_date": "2026-03-01",
        "lock_time": "2026-03-01T12:00:00Z",
        "location": {"name": "Central Park", "lat": 40.78, "lon": -73.97},
        "line": 0.5,
        "over": {"odds": -110},
        "under": {"odds": -110},
    }
    payload.update(overrides)
    return payload


def pointspread_payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "kind": "pointspread",
        "title": "Miami vs Chicago high",
        "metric": "high_temp",
        "target_date": "2026-03-01",
        "lock_time": "2026-03-01T12:00:00Z",
        "location_a": {"name": "Miami", "lat": 25.79, "lon": -80.32},
        "location_b": {"name": "Chicago", "lat": 41.98, "lon": -87.9},
        "spread": 5,
        "location_a_odds": -110,
        "location_b_odds": -110,
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def logger() -> logging.Logger:
    return logging.getLogger("weather_wager_tests")


@pytest.fixture
def resolver() -> FakeResolver:
    return FakeResolver()


@pytest.fixture
def engine(tmp_path: Path) -> Iterator[Any]:
    settings = SimpleNamespace(
        database_url=f"sqlite:///{tmp_path / 'wagers.db'}",
        database_echo=False,
    )
    db_engine = create_db_engine(settings)
    init_schema(db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def clock() -> SimpleNamespace:
    """Mutable clock shared with the repository under test."""
    return SimpleNamespace(now=datetime(2026, 2, 28, 9, 0, tzinfo=UTC))


@pytest.fixture
def repository(
    engine: Any,
    resolver: FakeResolver,
    logger: logging.Logger,
    clock: SimpleNamespace,
) -> WagerRepository:
    return WagerRepository(
        create_session_factory(engine),
        resolver=resolver,
        logger=logger,
        now_provider=lambda: clock.now,
    )
