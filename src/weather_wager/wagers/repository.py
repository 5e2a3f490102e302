"""Transactional wager store with compare-and-set status transitions."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterator
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from datetime import UTC, date, datetime
from typing import Any

from pydantic import ValidationError
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..exceptions import (
    InvalidStateError,
    RepositoryError,
    RepositoryUnavailableError,
    WagerNotFoundError,
    WagerValidationError,
)
from ..weather.base import StationResolver
from .db import WagerDateIndexRow, WagerIndexRow, WagerRow, WagerStatusIndexRow
from .lifecycle import ensure_transition_allowed
from .models import (
    WAGER_ADAPTER,
    CreateOddsWagerInput,
    CreatePointspreadWagerInput,
    CreateWagerInput,
    IndexReconcileReport,
    LocationInput,
    SettlementFields,
    Wager,
    WagerLocation,
    WagerPage,
    WagerPatch,
    WagerStatus,
)
from .validation import format_validation_errors

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _base36(value: int) -> str:
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits)) or "0"


def generate_wager_id(now: datetime) -> str:
    """`w_<base36 epoch ms>_<6 hex>`; sorts roughly by creation time."""
    return f"w_{_base36(int(now.timestamp() * 1000))}_{uuid.uuid4().hex[:6]}"


def _naive_utc(value: datetime) -> datetime:
    aware = value.astimezone(UTC) if value.tzinfo else value.replace(tzinfo=UTC)
    return aware.replace(tzinfo=None)


class WagerRepository:
    """Persists wagers and keeps the status/date/global indices in step.

    Each public method runs in its own session and transaction. Status
    changes go through `transition`, which only applies when the stored
    status still equals the expected one, so overlapping settlement runs
    observe a no-op instead of double-applying.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        resolver: StationResolver,
        logger: logging.Logger,
        *,
        default_limit: int = 20,
        max_limit: int = 50,
        now_provider: Callable[[], datetime] | None = None,
        id_factory: Callable[[datetime], str] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._resolver = resolver
        self.logger = logger
        self._default_limit = default_limit
        self._max_limit = max_limit
        self._now_provider = now_provider or (lambda: datetime.now(UTC))
        self._id_factory = id_factory or generate_wager_id

    # -- CRUD ---------------------------------------------------------------

    def create(self, data: CreateWagerInput) -> Wager:
        """Resolve stations, then write the record and all index rows at once."""
        now = self._now()
        record: dict[str, Any] = {
            "id": self._id_factory(now),
            "title": data.title,
            "description": data.description,
            "status": "open",
            "metric": data.metric,
            "target_date": data.target_date,
            "lock_time": data.lock_time,
            "created_at": now,
            "updated_at": now,
        }
        if isinstance(data, CreatePointspreadWagerInput):
            location_a, location_b = self._resolve_pair(data.location_a, data.location_b)
            record.update(
                kind="pointspread",
                location_a=location_a.model_dump(),
                location_b=location_b.model_dump(),
                spread=data.spread,
                location_a_odds=data.location_a_odds,
                location_b_odds=data.location_b_odds,
            )
        elif isinstance(data, CreateOddsWagerInput):
            record.update(
                kind="odds",
                location=self._resolve_location(data.location).model_dump(),
                outcomes=[outcome.model_dump() for outcome in data.outcomes],
            )
        else:
            record.update(
                kind="over-under",
                location=self._resolve_location(data.location).model_dump(),
                line=data.line,
                over=data.over.model_dump(),
                under=data.under.model_dump(),
            )
        wager = self._validate_record(record)

        with self._session() as session:
            session.add(self._to_row(wager))
            session.add(
                WagerStatusIndexRow(
                    wager_id=wager.id, status=wager.status, score=_naive_utc(wager.created_at)
                )
            )
            session.add(WagerDateIndexRow(wager_id=wager.id, target_date=wager.target_date))
            session.add(WagerIndexRow(wager_id=wager.id, score=_naive_utc(wager.created_at)))

        self.logger.info(
            "Created %s wager %s for %s", wager.kind, wager.id, wager.target_date,
            extra={"wager_id": wager.id, "target_date": wager.target_date},
        )
        return wager

    def get(self, wager_id: str) -> Wager | None:
        with self._session() as session:
            row = session.get(WagerRow, wager_id)
            return self._to_wager(row) if row is not None else None

    def list_wagers(
        self,
        status: WagerStatus | None = None,
        limit: int | None = None,
        cursor: int = 0,
    ) -> WagerPage:
        """Newest-first page from the global or a status index."""
        limit = max(1, min(limit or self._default_limit, self._max_limit))
        cursor = max(cursor, 0)
        with self._session() as session:
            if status is None:
                total = session.scalar(select(func.count()).select_from(WagerIndexRow)) or 0
                ids = session.scalars(
                    select(WagerIndexRow.wager_id)
                    .order_by(WagerIndexRow.score.desc(), WagerIndexRow.wager_id.desc())
                    .offset(cursor)
                    .limit(limit)
                ).all()
            else:
                total = session.scalar(
                    select(func.count())
                    .select_from(WagerStatusIndexRow)
                    .where(WagerStatusIndexRow.status == status)
                ) or 0
                ids = session.scalars(
                    select(WagerStatusIndexRow.wager_id)
                    .where(WagerStatusIndexRow.status == status)
                    .order_by(WagerStatusIndexRow.score.desc(), WagerStatusIndexRow.wager_id.desc())
                    .offset(cursor)
                    .limit(limit)
                ).all()
            wagers = self._load_ordered(session, list(ids))

        consumed = cursor + len(ids)
        return WagerPage(
            wagers=wagers,
            total=total,
            cursor=cursor,
            next_cursor=consumed if consumed < total else None,
        )

    def list_by_date(self, target_date: date, status: WagerStatus | None = None) -> list[Wager]:
        """Wagers in the date index for `target_date`, optionally by current status."""
        with self._session() as session:
            ids = session.scalars(
                select(WagerDateIndexRow.wager_id).where(
                    WagerDateIndexRow.target_date == target_date
                )
            ).all()
            if not ids:
                return []
            query = select(WagerRow).where(WagerRow.id.in_(ids))
            if status is not None:
                query = query.where(WagerRow.status == status)
            rows = session.scalars(query.order_by(WagerRow.created_at, WagerRow.id)).all()
            return [self._to_wager(row) for row in rows]

    def list_lockable(self, now: datetime) -> list[Wager]:
        """Open wagers whose lock time has passed."""
        with self._session() as session:
            rows = session.scalars(
                select(WagerRow)
                .join(WagerStatusIndexRow, WagerStatusIndexRow.wager_id == WagerRow.id)
                .where(
                    WagerStatusIndexRow.status == "open",
                    WagerRow.status == "open",
                    WagerRow.lock_time <= _naive_utc(now),
                )
                .order_by(WagerRow.lock_time, WagerRow.id)
            ).all()
            return [self._to_wager(row) for row in rows]

    def update(self, wager_id: str, patch: WagerPatch) -> Wager:
        """Apply a patch to an open wager, re-resolving moved locations."""
        existing = self.get(wager_id)
        if existing is None:
            raise WagerNotFoundError(wager_id)
        if existing.status != "open":
            raise InvalidStateError(
                f"Can only edit open wagers; {wager_id} is {existing.status}."
            )
        if patch.kind != existing.kind:
            raise WagerValidationError(
                [f"kind: patch kind {patch.kind!r} does not match wager kind {existing.kind!r}"]
            )

        data = existing.model_dump()
        data.update(patch.changes())
        for field, location in patch.location_changes().items():
            current: WagerLocation = getattr(existing, field)
            if (location.lat, location.lon) != (current.lat, current.lon):
                data[field] = self._resolve_location(location).model_dump()
            else:
                data[field] = current.model_copy(update={"name": location.name}).model_dump()
        data["updated_at"] = self._now()
        updated = self._validate_record(data)

        with self._session() as session:
            result = session.execute(
                update(WagerRow)
                .where(WagerRow.id == wager_id, WagerRow.status == "open")
                .values(
                    payload=updated.model_dump_json(),
                    lock_time=_naive_utc(updated.lock_time),
                    updated_at=_naive_utc(updated.updated_at),
                )
            )
            if result.rowcount == 0:
                raise InvalidStateError(f"Wager {wager_id} is no longer open.")

        self.logger.info("Updated wager %s fields=%s", wager_id, sorted(patch.model_fields_set))
        return updated

    def delete(self, wager_id: str) -> None:
        """Remove an open wager and every index row pointing at it."""
        with self._session() as session:
            row = session.get(WagerRow, wager_id)
            if row is None:
                raise WagerNotFoundError(wager_id)
            if row.status != "open":
                raise InvalidStateError(
                    f"Can only delete open wagers; {wager_id} is {row.status}."
                )
            result = session.execute(
                delete(WagerRow).where(WagerRow.id == wager_id, WagerRow.status == "open")
            )
            if result.rowcount == 0:
                raise InvalidStateError(f"Wager {wager_id} is no longer open.")
            for model in (WagerStatusIndexRow, WagerDateIndexRow, WagerIndexRow):
                session.execute(delete(model).where(model.wager_id == wager_id))
        self.logger.info("Deleted wager %s", wager_id)

    # -- state transitions --------------------------------------------------

    def transition(
        self,
        wager_id: str,
        from_status: WagerStatus,
        to_status: WagerStatus,
        fields: SettlementFields | None = None,
    ) -> Wager | None:
        """Compare-and-set the status; returns None when `from_status` no longer holds."""
        ensure_transition_allowed(from_status, to_status)

        with self._session() as session:
            row = session.get(WagerRow, wager_id)
            if row is None:
                raise WagerNotFoundError(wager_id)
            if row.status != from_status:
                self.logger.info(
                    "Transition %s -> %s skipped for %s (status is %s)",
                    from_status, to_status, wager_id, row.status,
                )
                return None

            data = self._to_wager(row).model_dump()
            if fields is not None:
                data.update(fields.model_dump(exclude_none=True))
            data["status"] = to_status
            data["updated_at"] = self._now()
            updated = self._validate_record(data)

            result = session.execute(
                update(WagerRow)
                .where(WagerRow.id == wager_id, WagerRow.status == from_status)
                .values(
                    status=to_status,
                    payload=updated.model_dump_json(),
                    updated_at=_naive_utc(updated.updated_at),
                )
            )
            if result.rowcount == 0:
                self.logger.info(
                    "Transition %s -> %s lost race for %s", from_status, to_status, wager_id
                )
                return None

            moved = session.execute(
                update(WagerStatusIndexRow)
                .where(WagerStatusIndexRow.wager_id == wager_id)
                .values(status=to_status)
            )
            if moved.rowcount == 0:
                session.add(
                    WagerStatusIndexRow(
                        wager_id=wager_id, status=to_status, score=_naive_utc(updated.created_at)
                    )
                )

        self.logger.info(
            "Wager %s %s -> %s", wager_id, from_status, to_status, extra={"wager_id": wager_id}
        )
        return updated

    # -- maintenance --------------------------------------------------------

    def reconcile_indices(self) -> IndexReconcileReport:
        """Rebuild the three index tables from primary records."""
        with self._session() as session:
            primary = {
                row.id: row
                for row in session.execute(
                    select(
                        WagerRow.id, WagerRow.status, WagerRow.target_date, WagerRow.created_at
                    )
                ).all()
            }
            totals = [0, 0, 0]
            specs: list[tuple[type[Any], Callable[[Any], dict[str, Any]]]] = [
                (
                    WagerStatusIndexRow,
                    lambda row: {"status": row.status, "score": row.created_at},
                ),
                (WagerDateIndexRow, lambda row: {"target_date": row.target_date}),
                (WagerIndexRow, lambda row: {"score": row.created_at}),
            ]
            for model, expected in specs:
                counts = self._reconcile_table(session, model, primary, expected)
                totals = [a + b for a, b in zip(totals, counts)]

        report = IndexReconcileReport(
            scanned=len(primary), added=totals[0], removed=totals[1], fixed=totals[2]
        )
        if report.changed:
            self.logger.warning(
                "Index reconciliation repaired added=%d removed=%d fixed=%d",
                report.added, report.removed, report.fixed,
            )
        return report

    @staticmethod
    def _reconcile_table(
        session: Session,
        model: type[Any],
        primary: dict[str, Any],
        expected: Callable[[Any], dict[str, Any]],
    ) -> tuple[int, int, int]:
        added = removed = fixed = 0
        existing = {row.wager_id: row for row in session.scalars(select(model)).all()}
        for wager_id, source in primary.items():
            values = expected(source)
            index_row = existing.get(wager_id)
            if index_row is None:
                session.add(model(wager_id=wager_id, **values))
                added += 1
            elif any(getattr(index_row, key) != value for key, value in values.items()):
                for key, value in values.items():
                    setattr(index_row, key, value)
                fixed += 1
        for wager_id, index_row in existing.items():
            if wager_id not in primary:
                session.delete(index_row)
                removed += 1
        return added, removed, fixed

    # -- helpers ------------------------------------------------------------

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except (OperationalError, InterfaceError) as exc:
            session.rollback()
            raise RepositoryUnavailableError(f"Wager store unreachable: {exc}") from exc
        except SQLAlchemyError as exc:
            session.rollback()
            raise RepositoryError(f"Wager store operation failed: {exc}") from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _resolve_location(self, location: LocationInput) -> WagerLocation:
        station = self._resolver.resolve(location.lat, location.lon)
        return WagerLocation(
            name=location.name,
            lat=location.lat,
            lon=location.lon,
            station_id=station.station_id,
            time_zone=station.time_zone,
        )

    def _resolve_pair(
        self, first: LocationInput, second: LocationInput
    ) -> tuple[WagerLocation, WagerLocation]:
        with ThreadPoolExecutor(max_workers=2) as pool:
            future_a = pool.submit(self._resolve_location, first)
            future_b = pool.submit(self._resolve_location, second)
            return future_a.result(), future_b.result()

    def _load_ordered(self, session: Session, ids: list[str]) -> list[Wager]:
        if not ids:
            return []
        rows = session.scalars(select(WagerRow).where(WagerRow.id.in_(ids))).all()
        by_id = {row.id: row for row in rows}
        return [self._to_wager(by_id[wager_id]) for wager_id in ids if wager_id in by_id]

    @staticmethod
    def _validate_record(data: dict[str, Any]) -> Wager:
        try:
            return WAGER_ADAPTER.validate_python(data)
        except ValidationError as exc:
            raise WagerValidationError(format_validation_errors(exc)) from exc

    @staticmethod
    def _to_row(wager: Wager) -> WagerRow:
        return WagerRow(
            id=wager.id,
            kind=wager.kind,
            status=wager.status,
            target_date=wager.target_date,
            lock_time=_naive_utc(wager.lock_time),
            created_at=_naive_utc(wager.created_at),
            updated_at=_naive_utc(wager.updated_at),
            payload=wager.model_dump_json(),
        )

    @staticmethod
    def _to_wager(row: WagerRow) -> Wager:
        try:
            return WAGER_ADAPTER.validate_json(row.payload)
        except ValidationError as exc:
            raise RepositoryError(f"Corrupt wager record {row.id}: {exc}") from exc

    def _now(self) -> datetime:
        value = self._now_provider()
        return value.astimezone(UTC) if value.tzinfo else value.replace(tzinfo=UTC)
