"""Typed wager records, creation inputs, and per-kind patches.

A wager is a tagged variant keyed by ``kind``. Stored records, creation
inputs and patches are each a pydantic discriminated union, so a record can
never carry fields belonging to another kind.
"""

from __future__ import annotations

import re
from datetime import UTC, date, datetime
from typing import Annotated, Any, Literal, get_args

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    field_validator,
    model_validator,
)

WagerStatus = Literal["open", "locked", "graded", "void"]
WagerKind = Literal["odds", "over-under", "pointspread"]
WagerMetric = Literal[
    "actual_temp",
    "high_temp",
    "low_temp",
    "precip",
    "wind_speed",
    "wind_gust",
]

WAGER_STATUSES: tuple[str, ...] = get_args(WagerStatus)
WAGER_KINDS: tuple[str, ...] = get_args(WagerKind)
WAGER_METRICS: tuple[str, ...] = get_args(WagerMetric)

TITLE_MAX_LENGTH = 200
_LOCATION_FIELDS = frozenset({"location", "location_a", "location_b"})
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def is_valid_american_odds(value: float) -> bool:
    """American odds are never strictly between -100 and +100."""
    return value >= 100 or value <= -100


def _check_american_odds(value: float) -> float:
    if not is_valid_american_odds(value):
        raise ValueError("must be valid American odds (>= +100 or <= -100)")
    return value


AmericanOdds = Annotated[float, AfterValidator(_check_american_odds)]


def _ensure_utc(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.astimezone(UTC) if value.tzinfo else value.replace(tzinfo=UTC)
    return value


class LocationInput(BaseModel):
    """Caller-supplied location before station resolution."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1)
    lat: float = Field(ge=-90, le=90)
    lon: float = Field(ge=-180, le=180)

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value


class WagerLocation(LocationInput):
    """Location with its observation station resolved once at creation."""

    station_id: str
    time_zone: str


class OddsOutcome(BaseModel):
    """One value bucket of an odds wager."""

    model_config = ConfigDict(extra="forbid")

    label: str = Field(min_length=1)
    min_value: float
    max_value: float
    odds: AmericanOdds

    @model_validator(mode="after")
    def check_bounds(self) -> OddsOutcome:
        if self.min_value > self.max_value:
            raise ValueError("min_value must be <= max_value")
        return self


class OverUnderSide(BaseModel):
    model_config = ConfigDict(extra="forbid")

    odds: AmericanOdds


class SettlementFields(BaseModel):
    """Fields a status transition may write onto a wager."""

    model_config = ConfigDict(extra="forbid")

    void_reason: str | None = None
    observed_value: float | None = None
    observed_value_a: float | None = None
    observed_value_b: float | None = None
    winning_outcome: str | None = None


# -- stored records ---------------------------------------------------------


class WagerBase(BaseModel):
    """Fields shared by every wager kind."""

    model_config = ConfigDict(extra="forbid")

    id: str
    title: str
    description: str | None = None
    status: WagerStatus
    metric: WagerMetric
    target_date: date
    lock_time: datetime
    created_at: datetime
    updated_at: datetime
    void_reason: str | None = None
    observed_value: float | None = None
    winning_outcome: str | None = None

    @field_validator("lock_time", "created_at", "updated_at", mode="before")
    @classmethod
    def ensure_timezone_aware(cls, value: Any) -> Any:
        return _ensure_utc(value)


class OddsWager(WagerBase):
    kind: Literal["odds"] = "odds"
    location: WagerLocation
    outcomes: list[OddsOutcome] = Field(min_length=2)

    def locations(self) -> list[WagerLocation]:
        return [self.location]


class OverUnderWager(WagerBase):
    kind: Literal["over-under"] = "over-under"
    location: WagerLocation
    line: float
    over: OverUnderSide
    under: OverUnderSide

    def locations(self) -> list[WagerLocation]:
        return [self.location]


class PointspreadWager(WagerBase):
    """Differential wager: location A's value minus location B's against a spread."""

    kind: Literal["pointspread"] = "pointspread"
    location_a: WagerLocation
    location_b: WagerLocation
    spread: float
    location_a_odds: AmericanOdds
    location_b_odds: AmericanOdds
    observed_value_a: float | None = None
    observed_value_b: float | None = None

    def locations(self) -> list[WagerLocation]:
        return [self.location_a, self.location_b]


Wager = Annotated[
    OddsWager | OverUnderWager | PointspreadWager,
    Field(discriminator="kind"),
]
WAGER_ADAPTER: TypeAdapter[Wager] = TypeAdapter(Wager)


class WagerPage(BaseModel):
    """One newest-first page of wagers."""

    wagers: list[Wager] = Field(default_factory=list)
    total: int
    cursor: int
    next_cursor: int | None = None


class IndexReconcileReport(BaseModel):
    """Outcome of rebuilding secondary indices from primary records."""

    scanned: int
    added: int = 0
    removed: int = 0
    fixed: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed or self.fixed)


# -- creation inputs --------------------------------------------------------


class _CreateWagerBase(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str = Field(min_length=1, max_length=TITLE_MAX_LENGTH)
    description: str | None = None
    metric: WagerMetric
    target_date: date
    lock_time: datetime

    @field_validator("title", "description", mode="before")
    @classmethod
    def strip_text(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("target_date", mode="before")
    @classmethod
    def require_calendar_date(cls, value: Any) -> Any:
        if isinstance(value, str) and not _DATE_RE.match(value.strip()):
            raise ValueError("must be a YYYY-MM-DD date")
        return value

    @field_validator("lock_time", mode="before")
    @classmethod
    def ensure_timezone_aware(cls, value: Any) -> Any:
        return _ensure_utc(value)


class CreateOddsWagerInput(_CreateWagerBase):
    kind: Literal["odds"]
    location: LocationInput
    outcomes: list[OddsOutcome] = Field(min_length=2)


class CreateOverUnderWagerInput(_CreateWagerBase):
    kind: Literal["over-under"]
    location: LocationInput
    line: float
    over: OverUnderSide
    under: OverUnderSide


class CreatePointspreadWagerInput(_CreateWagerBase):
    kind: Literal["pointspread"]
    location_a: LocationInput
    location_b: LocationInput
    spread: float
    location_a_odds: AmericanOdds
    location_b_odds: AmericanOdds


CreateWagerInput = Annotated[
    CreateOddsWagerInput | CreateOverUnderWagerInput | CreatePointspreadWagerInput,
    Field(discriminator="kind"),
]


# -- patches (open wagers only; target_date and kind are immutable) ---------


class _WagerPatchBase(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str | None = Field(default=None, min_length=1, max_length=TITLE_MAX_LENGTH)
    description: str | None = None
    metric: WagerMetric | None = None
    lock_time: datetime | None = None

    @field_validator("title", "description", mode="before")
    @classmethod
    def strip_text(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("lock_time", mode="before")
    @classmethod
    def ensure_timezone_aware(cls, value: Any) -> Any:
        return _ensure_utc(value)

    def changes(self) -> dict[str, Any]:
        """Explicitly supplied fields, excluding the kind tag and locations."""
        names = self.model_fields_set - _LOCATION_FIELDS - {"kind"}
        return self.model_dump(include=names)

    def location_changes(self) -> dict[str, LocationInput]:
        """Explicitly supplied, non-null location fields."""
        return {
            name: getattr(self, name)
            for name in self.model_fields_set & _LOCATION_FIELDS
            if getattr(self, name) is not None
        }


class OddsWagerPatch(_WagerPatchBase):
    kind: Literal["odds"]
    location: LocationInput | None = None
    outcomes: list[OddsOutcome] | None = Field(default=None, min_length=2)


class OverUnderWagerPatch(_WagerPatchBase):
    kind: Literal["over-under"]
    location: LocationInput | None = None
    line: float | None = None
    over: OverUnderSide | None = None
    under: OverUnderSide | None = None


class PointspreadWagerPatch(_WagerPatchBase):
    kind: Literal["pointspread"]
    location_a: LocationInput | None = None
    location_b: LocationInput | None = None
    spread: float | None = None
    location_a_odds: AmericanOdds | None = None
    location_b_odds: AmericanOdds | None = None


WagerPatch = Annotated[
    OddsWagerPatch | OverUnderWagerPatch | PointspreadWagerPatch,
    Field(discriminator="kind"),
]
