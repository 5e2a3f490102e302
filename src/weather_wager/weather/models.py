"""Typed models for resolved stations and daily observation summaries."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field


class StationInfo(BaseModel):
    """Result of resolving coordinates against the station network."""

    station_id: str
    time_zone: str


class DailyObservation(BaseModel):
    """Canonical daily summary aggregated from a station's raw readings."""

    station_id: str
    date: date
    high_temp: float | None = Field(default=None, description="Daily max temperature, °F")
    low_temp: float | None = Field(default=None, description="Daily min temperature, °F")
    precip: float | None = Field(default=None, description="Summed precipitation, inches")
    wind_speed: float | None = Field(default=None, description="Max sustained wind, mph")
    wind_gust: float | None = Field(default=None, description="Max gust, mph")
    observation_count: int = Field(ge=0)
    fetched_at: datetime
