"""Relational reading store backed by a SQLAlchemy connection pool."""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Column,
    DateTime,
    Double,
    Integer,
    MetaData,
    Table,
    Text,
    create_engine,
    insert,
    select,
)
from sqlalchemy.engine import Engine, Row
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.pool import StaticPool
from sqlalchemy.sql.expression import FunctionElement

from datastore.base import StoreUnavailable
from models.records import Reading
from settings import get_settings

logger = logging.getLogger(__name__)

metadata = MetaData()


class insert_time(FunctionElement):
    """Wall-clock time at the moment a row is written.

    PostgreSQL's ``now()`` is frozen at transaction start, so it becomes
    ``clock_timestamp()`` there. Elsewhere it is ``CURRENT_TIMESTAMP``.
    """

    type = DateTime()
    inherit_cache = True


@compiles(insert_time)
def _compile_insert_time(element: insert_time, compiler: Any, **kw: Any) -> str:
    return "CURRENT_TIMESTAMP"


@compiles(insert_time, "postgresql")
def _compile_insert_time_postgresql(element: insert_time, compiler: Any, **kw: Any) -> str:
    return "clock_timestamp()"


sensor_data = Table(
    "sensor_data",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("device_id", Text, nullable=False),
    Column("temperature", Double, nullable=False),
    Column("humidity", Double, nullable=True),
    Column("created_at", DateTime, nullable=False, server_default=insert_time()),
)

_READ_COLUMNS = (
    sensor_data.c.id,
    sensor_data.c.device_id,
    sensor_data.c.temperature,
    sensor_data.c.humidity,
    sensor_data.c.created_at,
)
_NEWEST_FIRST = (sensor_data.c.created_at.desc(), sensor_data.c.id.desc())


def create_store_engine(url: str) -> Engine:
    """Build the pooled engine, with the SQLite adjustments threads need."""
    parsed = make_url(url)
    kwargs: Dict[str, Any] = {"pool_pre_ping": True}
    if parsed.get_backend_name() == "sqlite":
        kwargs["connect_args"] = {"check_same_thread": False}
        database = parsed.database
        if database in (None, "", ":memory:"):
            # A private in-memory database only exists on one connection.
            kwargs["poolclass"] = StaticPool
        else:
            Path(database).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(parsed, **kwargs)


def _to_reading(row: Row) -> Reading:
    return Reading(
        id=row.id,
        device_id=row.device_id,
        temperature=row.temperature,
        humidity=row.humidity if row.humidity is not None else 0.0,
        recorded_at=row.created_at,
    )


class SqlReadingStore:
    """Reading store over the ``sensor_data`` table.

    Every operation borrows one pooled connection for its own duration;
    the context managers return it to the pool on every exit path.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    @classmethod
    def from_url(cls, url: str) -> "SqlReadingStore":
        return cls(create_store_engine(url))

    def create_schema(self) -> None:
        """Create ``sensor_data`` when it does not exist yet."""
        try:
            metadata.create_all(self.engine)
        except SQLAlchemyError as exc:
            raise StoreUnavailable("could not create the sensor_data table") from exc

    def insert(self, reading: Reading) -> Reading:
        stmt = (
            insert(sensor_data)
            .values(
                device_id=reading.device_id,
                temperature=reading.temperature,
                humidity=reading.humidity,
            )
            .returning(sensor_data.c.id, sensor_data.c.created_at)
        )
        try:
            with self.engine.begin() as conn:
                row = conn.execute(stmt).one()
        except SQLAlchemyError as exc:
            raise StoreUnavailable("insert into sensor_data failed") from exc
        return reading.with_identity(row.id, row.created_at)

    def latest(self) -> Optional[Reading]:
        stmt = select(*_READ_COLUMNS).order_by(*_NEWEST_FIRST).limit(1)
        try:
            with self.engine.connect() as conn:
                row = conn.execute(stmt).first()
        except SQLAlchemyError as exc:
            raise StoreUnavailable("could not read the latest reading") from exc
        return _to_reading(row) if row is not None else None

    def all(self) -> List[Reading]:
        # No pagination: sized for low-rate telemetry.
        stmt = select(*_READ_COLUMNS).order_by(*_NEWEST_FIRST)
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(stmt).all()
        except SQLAlchemyError as exc:
            raise StoreUnavailable("could not read sensor_data") from exc
        return [_to_reading(row) for row in rows]

    def close(self) -> None:
        self.engine.dispose()


@lru_cache
def build_default_store(url: Optional[str] = None) -> SqlReadingStore:
    settings = get_settings()
    database_url = settings.database_url if url is None else url
    store = SqlReadingStore.from_url(database_url)
    logger.info(
        "Reading store configured for %s",
        make_url(database_url).render_as_string(hide_password=True),
    )
    if settings.database_auto_create:
        store.create_schema()
    return store
