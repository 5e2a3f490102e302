"""Admin and settlement CLI smoke tests with an offline NWS client."""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from weather_wager import admin_cli, settle_cli
from weather_wager.weather.models import StationInfo


class _OfflineNWSClient:
    """Context-managed stand-in for NWSClient returning canned readings."""

    def __init__(self, settings: Any, logger: Any, retry_delay_seconds: float = 1.0) -> None:
        self.settings = settings
        self.logger = logger

    def __enter__(self) -> _OfflineNWSClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        return None

    def resolve(self, lat: float, lon: float) -> StationInfo:
        return StationInfo(station_id="KNYC", time_zone="America/New_York")

    def fetch_observations(
        self, station_id: str, *, start: datetime, end: datetime
    ) -> list[dict[str, Any]]:
        return [
            {"temperature": {"unitCode": "wmoUnit:degC", "value": float(hour % 12)}}
            for hour in range(24)
        ]


@pytest.fixture(autouse=True)
def _offline(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("APP_ENV", "dev")
    monkeypatch.setenv("NWS_USER_AGENT", "weather-wager-tests/0.1")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'db' / 'wagers.db'}")
    monkeypatch.setenv("JOURNAL_DIR", str(tmp_path / "journal"))
    monkeypatch.setenv("OBSERVATION_CACHE_DIR", str(tmp_path / "cache"))
    monkeypatch.setattr(admin_cli, "NWSClient", _OfflineNWSClient)
    monkeypatch.setattr(settle_cli, "NWSClient", _OfflineNWSClient)


def _journal_events(tmp_path: Path) -> list[dict[str, Any]]:
    events: list[dict[str, Any]] = []
    for path in sorted((tmp_path / "journal").glob("*.jsonl")):
        events.extend(
            json.loads(line) for line in path.read_text(encoding="utf-8").strip().splitlines()
        )
    return events


def _write_payload(tmp_path: Path, payload: dict[str, Any]) -> Path:
    path = tmp_path / "payload.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def _recent_payload() -> dict[str, Any]:
    now = datetime.now(UTC)
    # Two days back so the station's local day has ended at any hour of the run.
    target = (now - timedelta(days=2)).date()
    return {
        "kind": "over-under",
        "title": "Central Park high",
        "metric": "high_temp",
        "target_date": target.isoformat(),
        "lock_time": (now - timedelta(hours=30)).isoformat(),
        "location": {"name": "Central Park", "lat": 40.78, "lon": -73.97},
        "line": 50.0,
        "over": {"odds": -110},
        "under": {"odds": -110},
    }


def _create(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> str:
    path = _write_payload(tmp_path, _recent_payload())
    assert admin_cli.main(["--json", "create", "--input-json", str(path)]) == 0
    return json.loads(capsys.readouterr().out)["id"]


def test_admin_create_and_get(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    wager_id = _create(tmp_path, capsys)

    assert admin_cli.main(["--json", "get", wager_id]) == 0
    shown = json.loads(capsys.readouterr().out)
    assert shown["status"] == "open"
    assert shown["location"]["station_id"] == "KNYC"

    event_types = [event["event_type"] for event in _journal_events(tmp_path)]
    assert event_types == ["admin_create", "admin_get"]


def test_admin_invalid_payload_exits_4(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    path = _write_payload(tmp_path, {**_recent_payload(), "kind": "parlay"})
    assert admin_cli.main(["create", "--input-json", str(path)]) == 4

    event = _journal_events(tmp_path)[-1]
    assert event["event_type"] == "admin_create"
    assert event["payload"]["exit_code"] == 4
    assert event["payload"]["errors"] == ["kind must be one of: odds, over-under, pointspread"]


def test_admin_get_unknown_exits_4() -> None:
    assert admin_cli.main(["get", "w_missing"]) == 4


def test_admin_void_and_list(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    wager_id = _create(tmp_path, capsys)

    assert admin_cli.main(["void", wager_id, "--reason", "duplicate"]) == 0
    capsys.readouterr()
    assert admin_cli.main(["--json", "list", "--status", "void"]) == 0
    page = json.loads(capsys.readouterr().out)
    assert page["total"] == 1
    assert page["wagers"][0]["void_reason"] == "duplicate"


def test_settle_cli_locks_and_grades(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    wager_id = _create(tmp_path, capsys)

    assert settle_cli.main(["--json"]) == 0
    summary = json.loads(capsys.readouterr().out)
    assert summary["locked"] == [wager_id]
    assert summary["graded"] == [wager_id]

    assert admin_cli.main(["--json", "get", wager_id]) == 0
    graded = json.loads(capsys.readouterr().out)
    # Readings peak at 11 degC, which is 51.8 degF.
    assert graded["observed_value"] == 51.8
    assert graded["winning_outcome"] == "over"

    event_types = [event["event_type"] for event in _journal_events(tmp_path)]
    assert "settlement_startup" in event_types
    assert "settlement_run_summary" in event_types
    assert event_types.count("settlement_shutdown") == 1


def test_settle_cli_table_output(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    _create(tmp_path, capsys)
    assert settle_cli.main(["--max-print", "5"]) == 0
    output = capsys.readouterr().out
    assert "locked=1" in output
    assert "graded=1" in output


def test_settle_cli_config_failure_exits_2(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("VOID_AFTER_HOURS", "0")
    assert settle_cli.main([]) == 2


def test_settle_cli_rejects_bad_max_print() -> None:
    assert settle_cli.main(["--max-print", "0"]) == 2
