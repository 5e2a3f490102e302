"""Admin payload validation and the status transition table."""

from __future__ import annotations

from typing import Any

import pytest

from weather_wager.exceptions import InvalidStateError, WagerValidationError
from weather_wager.wagers.lifecycle import (
    can_transition,
    ensure_transition_allowed,
    is_terminal,
)
from weather_wager.wagers.models import (
    CreateOddsWagerInput,
    CreatePointspreadWagerInput,
    OverUnderWagerPatch,
    is_valid_american_odds,
)
from weather_wager.wagers.validation import validate_create_payload, validate_patch_payload

from conftest import odds_payload, over_under_payload, pointspread_payload


def _errors(payload: Any) -> list[str]:
    with pytest.raises(WagerValidationError) as exc_info:
        validate_create_payload(payload)
    return exc_info.value.errors


@pytest.mark.parametrize(
    ("value", "expected"),
    [(100, True), (-100, True), (250, True), (-110, True), (99, False), (-99, False), (0, False)],
)
def test_american_odds_validity(value: int, expected: bool) -> None:
    assert is_valid_american_odds(value) is expected


def test_valid_payloads_parse_into_kind_specific_inputs() -> None:
    assert isinstance(validate_create_payload(odds_payload()), CreateOddsWagerInput)
    created = validate_create_payload(pointspread_payload())
    assert isinstance(created, CreatePointspreadWagerInput)
    assert created.location_a.name == "Miami"
    assert created.lock_time.tzinfo is not None


def test_title_is_trimmed() -> None:
    created = validate_create_payload(odds_payload(title="   Padded title  "))
    assert created.title == "Padded title"


def test_blank_and_oversized_titles_rejected() -> None:
    assert any(error.startswith("title:") for error in _errors(odds_payload(title="   ")))
    assert any(error.startswith("title:") for error in _errors(odds_payload(title="x" * 201)))


def test_title_at_limit_is_accepted() -> None:
    assert validate_create_payload(odds_payload(title="x" * 200)).title == "x" * 200


@pytest.mark.parametrize("kind", [None, "parlay"])
def test_unknown_or_missing_kind_reports_allowed_kinds(kind: str | None) -> None:
    payload = odds_payload()
    if kind is None:
        payload.pop("kind")
    else:
        payload["kind"] = kind
    assert _errors(payload) == ["kind must be one of: odds, over-under, pointspread"]


def test_non_object_payload_rejected() -> None:
    assert _errors(["not", "an", "object"]) == ["Request body must be a JSON object"]


def test_odds_inside_plus_minus_100_rejected() -> None:
    errors = _errors(over_under_payload(over={"odds": 50}))
    assert any("over.odds" in error and "American odds" in error for error in errors)


def test_fractional_american_odds_accepted() -> None:
    created = validate_create_payload(over_under_payload(over={"odds": 150.5}))
    assert created.over.odds == 150.5
    errors = _errors(over_under_payload(under={"odds": -99.5}))
    assert any("under.odds" in error and "American odds" in error for error in errors)


def test_bucket_with_min_above_max_rejected() -> None:
    outcomes = [
        {"label": "backwards", "min_value": 50, "max_value": 40, "odds": 150},
        {"label": "fine", "min_value": 60, "max_value": 70, "odds": 150},
    ]
    errors = _errors(odds_payload(outcomes=outcomes))
    assert any(error.startswith("outcomes.0") for error in errors)


def test_odds_wager_needs_two_buckets() -> None:
    outcomes = [{"label": "only", "min_value": 0, "max_value": 100, "odds": 100}]
    assert any(error.startswith("outcomes") for error in _errors(odds_payload(outcomes=outcomes)))


def test_out_of_range_coordinates_rejected() -> None:
    errors = _errors(odds_payload(location={"name": "Nowhere", "lat": 91, "lon": -181}))
    assert any(error.startswith("location.lat") for error in errors)
    assert any(error.startswith("location.lon") for error in errors)


def test_bad_metric_and_date_collected_together() -> None:
    errors = _errors(odds_payload(metric="humidity", target_date="03/01/2026"))
    assert any(error.startswith("metric:") for error in errors)
    assert any(error.startswith("target_date:") for error in errors)


def test_unknown_fields_rejected() -> None:
    errors = _errors(odds_payload(status="graded"))
    assert any(error.startswith("status:") for error in errors)


def test_fields_from_another_kind_rejected() -> None:
    errors = _errors(odds_payload(line=3.5))
    assert any(error.startswith("line:") for error in errors)


def test_patch_tracks_only_supplied_fields() -> None:
    patch = validate_patch_payload({"kind": "over-under", "line": 0.75, "description": None})
    assert isinstance(patch, OverUnderWagerPatch)
    assert patch.changes() == {"line": 0.75, "description": None}
    assert patch.location_changes() == {}


def test_patch_cannot_change_target_date() -> None:
    with pytest.raises(WagerValidationError) as exc_info:
        validate_patch_payload({"kind": "odds", "target_date": "2026-04-01"})
    assert any(error.startswith("target_date:") for error in exc_info.value.errors)


def test_patch_requires_kind() -> None:
    with pytest.raises(WagerValidationError) as exc_info:
        validate_patch_payload({"title": "Renamed"})
    assert exc_info.value.errors == ["kind must be one of: odds, over-under, pointspread"]


@pytest.mark.parametrize(
    ("from_status", "to_status", "allowed"),
    [
        ("open", "locked", True),
        ("open", "void", True),
        ("locked", "graded", True),
        ("locked", "void", True),
        ("open", "graded", False),
        ("locked", "open", False),
        ("graded", "void", False),
        ("void", "open", False),
    ],
)
def test_transition_table(from_status: Any, to_status: Any, allowed: bool) -> None:
    assert can_transition(from_status, to_status) is allowed


def test_terminal_statuses() -> None:
    assert is_terminal("graded")
    assert is_terminal("void")
    assert not is_terminal("open")
    assert not is_terminal("locked")


def test_disallowed_transition_raises() -> None:
    with pytest.raises(InvalidStateError, match="open -> graded"):
        ensure_transition_allowed("open", "graded")
