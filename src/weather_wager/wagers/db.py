"""SQLAlchemy tables for wager records and their secondary indices.

The primary ``wagers`` table holds the full record as JSON plus the columns the
engine filters on. Three index tables mirror the lookups the settlement loop
and admin listing need:

    wager_status_index  one row per wager: current status + created_at score
    wager_date_index    one row per wager: immutable target date
    wager_index         one row per wager: created_at score (global listing)

Every write touching a record and its index rows happens in one transaction.
A crash mid-transaction leaves nothing partially applied, but indices edited
out-of-band can drift; ``WagerRepository.reconcile_indices`` rebuilds them
from the primary rows.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from sqlalchemy import Date, DateTime, Engine, Index, String, Text, create_engine
from sqlalchemy.exc import (
    ArgumentError,
    InterfaceError,
    NoSuchModuleError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from ..config import Settings
from ..exceptions import ConfigError, RepositoryError, RepositoryUnavailableError


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class WagerRow(Base):
    """Primary wager record. Datetime columns are naive UTC."""

    __tablename__ = "wagers"

    id: Mapped[str] = mapped_column(String(40), primary_key=True)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(10), nullable=False)
    target_date: Mapped[date] = mapped_column(Date, nullable=False)
    lock_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    payload: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (Index("ix_wagers_status_lock_time", "status", "lock_time"),)


class WagerStatusIndexRow(Base):
    __tablename__ = "wager_status_index"

    wager_id: Mapped[str] = mapped_column(String(40), primary_key=True)
    status: Mapped[str] = mapped_column(String(10), nullable=False)
    score: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (Index("ix_wager_status_index_status_score", "status", "score"),)


class WagerDateIndexRow(Base):
    __tablename__ = "wager_date_index"

    wager_id: Mapped[str] = mapped_column(String(40), primary_key=True)
    target_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)


class WagerIndexRow(Base):
    __tablename__ = "wager_index"

    wager_id: Mapped[str] = mapped_column(String(40), primary_key=True)
    score: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)


def create_db_engine(settings: Settings) -> Engine:
    """Create a sync engine for DATABASE_URL."""
    engine_kwargs: dict[str, Any] = {
        "pool_pre_ping": True,
        "hide_parameters": True,
        "echo": settings.database_echo,
    }
    if settings.database_url.startswith("sqlite"):
        # Lets pooled connections be reused by whichever thread checks them out.
        engine_kwargs["connect_args"] = {"check_same_thread": False}
    try:
        return create_engine(settings.database_url, **engine_kwargs)
    except (ArgumentError, NoSuchModuleError) as exc:
        raise ConfigError(f"Invalid DATABASE_URL: {exc}") from exc


def init_schema(engine: Engine) -> None:
    """Create missing tables; existing ones are left untouched."""
    try:
        Base.metadata.create_all(engine)
    except (OperationalError, InterfaceError) as exc:
        raise RepositoryUnavailableError(f"Wager store unreachable: {exc}") from exc
    except SQLAlchemyError as exc:
        raise RepositoryError(f"Schema initialization failed: {exc}") from exc


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(engine, expire_on_commit=False)
