# src/ratecache/adapters/persistence/sql_store.py
"""Relational snapshot store powered by the SQLAlchemy ORM.

Each snapshot is one row in ``rate_snapshots``; its rate table lives in the
collection table ``rate_snapshot_rates`` (one row per target currency).
Timestamps are stored as naive UTC so every backend compares them alike.

Files that USE this module:
- ratecache.adapters.persistence (make_rate_store picks this for database URLs)
- tests.test_stores (unit tests)

Files that this module USES:
- ratecache.adapters.persistence.base (RateStore interface)
- ratecache.domain.models (RateSnapshot rebuilt from rows)
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, create_engine, select
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

from ratecache.adapters.persistence.base import RateStore
from ratecache.domain.errors import StoreUnavailableError
from ratecache.domain.models import RateSnapshot
from ratecache.shared.validators import normalize_currency

LOGGER = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class _SnapshotRow(Base):
    __tablename__ = "rate_snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_currency: Mapped[str] = mapped_column(String(3), index=True)
    as_of: Mapped[datetime] = mapped_column(DateTime, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: _to_naive_utc(datetime.now(timezone.utc)))

    rates: Mapped[List["_RateRow"]] = relationship(
        back_populates="snapshot",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class _RateRow(Base):
    __tablename__ = "rate_snapshot_rates"

    snapshot_id: Mapped[int] = mapped_column(ForeignKey("rate_snapshots.id"), primary_key=True)
    target_currency: Mapped[str] = mapped_column(String(3), primary_key=True)
    rate: Mapped[float] = mapped_column(Float, nullable=False)

    snapshot: Mapped[_SnapshotRow] = relationship(back_populates="rates")


def _to_naive_utc(ts: datetime) -> datetime:
    return ts.astimezone(timezone.utc).replace(tzinfo=None)


def _from_db(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _to_snapshot(row: _SnapshotRow) -> RateSnapshot:
    return RateSnapshot(
        source_currency=row.source_currency,
        as_of=_from_db(row.as_of),
        rates={r.target_currency: r.rate for r in row.rates},
    )


class SqlRateStore(RateStore):
    """RateStore backed by any SQLAlchemy-supported database."""

    def __init__(self, url: str, *, echo: bool = False) -> None:
        self.url = url
        try:
            self.engine: Engine = self._create_engine(url, echo)
            Base.metadata.create_all(self.engine)
        except (SQLAlchemyError, OSError) as e:
            raise StoreUnavailableError(f"Cannot open snapshot store {url}: {e}") from e
        self._SessionFactory: sessionmaker[Session] = sessionmaker(
            bind=self.engine, expire_on_commit=False, future=True
        )

    @staticmethod
    def _create_engine(url: str, echo: bool) -> Engine:
        parsed = make_url(url)
        if parsed.get_backend_name() != "sqlite":
            return create_engine(url, echo=echo, future=True, pool_pre_ping=True)

        database = parsed.database
        if not database or database == ":memory:":
            # one shared connection, or every thread would see its own empty database
            return create_engine(
                url,
                echo=echo,
                future=True,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        Path(database).expanduser().parent.mkdir(parents=True, exist_ok=True)
        return create_engine(
            url,
            echo=echo,
            future=True,
            connect_args={"check_same_thread": False},
        )

    def save(self, snapshot: RateSnapshot) -> None:
        row = _SnapshotRow(
            source_currency=snapshot.source_currency,
            as_of=_to_naive_utc(snapshot.as_of),
            rates=[_RateRow(target_currency=code, rate=rate) for code, rate in snapshot.rates.items()],
        )
        try:
            with self._SessionFactory() as session:
                session.add(row)
                session.commit()
        except SQLAlchemyError as e:
            LOGGER.error("Failed to save %s snapshot: %s", snapshot.source_currency, e)
            raise StoreUnavailableError(f"Failed to save snapshot: {e}") from e
        LOGGER.debug("Saved %s snapshot as of %s (id=%s)", snapshot.source_currency, snapshot.as_of, row.id)

    def find_latest(self, source_currency: str) -> Optional[RateSnapshot]:
        code = normalize_currency(source_currency)
        stmt = (
            select(_SnapshotRow)
            .where(_SnapshotRow.source_currency == code)
            .order_by(_SnapshotRow.as_of.desc(), _SnapshotRow.id.desc())
            .limit(1)
        )
        try:
            with self._SessionFactory() as session:
                row = session.scalars(stmt).first()
                return _to_snapshot(row) if row is not None else None
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Failed to read latest {code} snapshot: {e}") from e

    def find_range(self, source_currency: str, start: datetime, end: datetime) -> List[RateSnapshot]:
        code = normalize_currency(source_currency)
        stmt = (
            select(_SnapshotRow)
            .where(
                _SnapshotRow.source_currency == code,
                _SnapshotRow.as_of >= _to_naive_utc(start),
                _SnapshotRow.as_of <= _to_naive_utc(end),
            )
            .order_by(_SnapshotRow.as_of.desc(), _SnapshotRow.id.desc())
        )
        try:
            with self._SessionFactory() as session:
                return [_to_snapshot(row) for row in session.scalars(stmt).all()]
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Failed to read {code} history: {e}") from e

    def close(self) -> None:
        self.engine.dispose()


__all__ = ["SqlRateStore"]
