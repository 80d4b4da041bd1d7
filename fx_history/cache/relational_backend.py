"""SQLAlchemy powered cache backend for SQLite, MySQL and Postgres."""

from __future__ import annotations

import asyncio
import time
from datetime import timedelta
from functools import lru_cache
from types import SimpleNamespace
from typing import TYPE_CHECKING, Any, Callable, Mapping, Sequence

from fx_history.cache.base_backend import CacheBackend, ttl_seconds
from fx_history.errors import CacheUnavailableError
from fx_history.utils.logger import get_logger

try:  # pragma: no cover - optional dependency
    from sqlalchemy import (
        Column,
        Float,
        MetaData,
        String,
        Table,
        Text,
        bindparam,
        create_engine,
        text,
    )
    from sqlalchemy.dialects.mysql import insert as mysql_insert
    from sqlalchemy.dialects.postgresql import insert as pg_insert
    from sqlalchemy.dialects.sqlite import insert as sqlite_insert
    from sqlalchemy.exc import SQLAlchemyError
except ModuleNotFoundError:  # pragma: no cover - handled at runtime
    bindparam = None  # type: ignore[assignment]
    create_engine = None  # type: ignore[assignment]
    text = None  # type: ignore[assignment]
    SQLAlchemyError = Exception  # type: ignore[assignment,misc]

if TYPE_CHECKING:  # pragma: no cover - type checker helper
    from sqlalchemy.engine import Connection, Engine
else:  # pragma: no cover - fallback type used at runtime
    Connection = Any
    Engine = Any

LOGGER = get_logger(__name__)

SCHEMA_SQL_ENTRIES = """
CREATE TABLE IF NOT EXISTS fx_cache_entries (
    cache_key VARCHAR(255) NOT NULL PRIMARY KEY,
    cache_value TEXT NOT NULL,
    expires_at DOUBLE PRECISION NULL
)
"""

SCHEMA_SQL_GROUPS = """
CREATE TABLE IF NOT EXISTS fx_cache_groups (
    group_key VARCHAR(255) NOT NULL PRIMARY KEY,
    expires_at DOUBLE PRECISION NULL
)
"""

SCHEMA_SQL_FIELDS = """
CREATE TABLE IF NOT EXISTS fx_cache_group_fields (
    group_key VARCHAR(255) NOT NULL,
    field VARCHAR(64) NOT NULL,
    field_value TEXT NOT NULL,
    PRIMARY KEY(group_key, field)
)
"""

SELECT_ENTRY_SQL = """
SELECT cache_key, cache_value FROM fx_cache_entries
WHERE cache_key IN :keys AND (expires_at IS NULL OR expires_at > :now)
"""
DELETE_ENTRY_SQL = "DELETE FROM fx_cache_entries WHERE cache_key = :cache_key"

SELECT_GROUP_SQL = """
SELECT group_key FROM fx_cache_groups
WHERE group_key = :group_key AND (expires_at IS NULL OR expires_at > :now)
"""
DELETE_GROUP_SQL = "DELETE FROM fx_cache_groups WHERE group_key = :group_key"
UPDATE_GROUP_EXPIRY_SQL = """
UPDATE fx_cache_groups SET expires_at = :expires_at WHERE group_key = :group_key
"""

SELECT_FIELD_SQL = """
SELECT field_value FROM fx_cache_group_fields WHERE group_key = :group_key AND field = :field
"""
COUNT_FIELDS_SQL = "SELECT COUNT(*) FROM fx_cache_group_fields WHERE group_key = :group_key"
DELETE_ALL_FIELDS_SQL = "DELETE FROM fx_cache_group_fields WHERE group_key = :group_key"


@lru_cache(maxsize=None)
def cache_tables() -> SimpleNamespace:
    """Table metadata matching the DDL above, used to build upsert statements."""

    metadata = MetaData()
    return SimpleNamespace(
        entries=Table(
            "fx_cache_entries",
            metadata,
            Column("cache_key", String(255), primary_key=True),
            Column("cache_value", Text, nullable=False),
            Column("expires_at", Float, nullable=True),
        ),
        groups=Table(
            "fx_cache_groups",
            metadata,
            Column("group_key", String(255), primary_key=True),
            Column("expires_at", Float, nullable=True),
        ),
        fields=Table(
            "fx_cache_group_fields",
            metadata,
            Column("group_key", String(255), primary_key=True),
            Column("field", String(64), primary_key=True),
            Column("field_value", Text, nullable=False),
        ),
    )


def upsert_statement(
    dialect_name: str,
    table: Table,
    values: Mapping[str, Any],
    key_columns: Sequence[str],
) -> Any:
    """Return a single-statement insert-or-update of ``values`` for ``dialect_name``.

    Concurrent writers of the same key then race on one atomic statement
    instead of a delete followed by an insert.
    """

    updates = [name for name in values if name not in key_columns]
    if dialect_name in ("mysql", "mariadb"):
        statement = mysql_insert(table).values(**values)
        return statement.on_duplicate_key_update(
            {name: statement.inserted[name] for name in updates}
        )
    if dialect_name in ("postgresql", "sqlite"):
        insert = pg_insert if dialect_name == "postgresql" else sqlite_insert
        statement = insert(table).values(**values)
        return statement.on_conflict_do_update(
            index_elements=list(key_columns),
            set_={name: statement.excluded[name] for name in updates},
        )
    raise CacheUnavailableError(f"Unsupported SQL dialect for the fx cache: {dialect_name}")


class RelationalBackend(CacheBackend):
    """Cache backend storing entries and page groups in three SQL tables.

    Expiry is kept as an epoch timestamp and enforced when reading; expired
    rows are purged lazily whenever a group is recreated. Rows are written with
    the dialect native upsert (``ON CONFLICT`` or ``ON DUPLICATE KEY``).
    SQLAlchemy calls are blocking, so each public coroutine runs its statements
    on a worker thread.
    """

    def __init__(self, url: str, *, clock: Callable[[], float] = time.time) -> None:
        if create_engine is None or text is None:  # pragma: no cover - driver not installed
            raise ModuleNotFoundError("SQLAlchemy is required for relational cache backends")
        self.url = url
        self._clock = clock
        self._engine_instance: Engine | None = None

    def _get_engine(self) -> Engine:
        if self._engine_instance is None:
            connect_args: dict[str, Any] = {}
            if self.url.startswith("sqlite"):
                connect_args["check_same_thread"] = False
            self._engine_instance = create_engine(self.url, future=True, connect_args=connect_args)
        return self._engine_instance

    async def _run(self, operation: Callable[..., Any], *args: Any) -> Any:
        try:
            return await asyncio.to_thread(operation, *args)
        except SQLAlchemyError as exc:
            raise CacheUnavailableError(f"Relational cache operation failed: {exc}") from exc

    def _deadline(self, ttl: timedelta | None) -> float | None:
        seconds = ttl_seconds(ttl)
        return None if seconds is None else self._clock() + seconds

    async def ensure_schema(self) -> None:
        def _create() -> None:
            with self._get_engine().begin() as connection:
                LOGGER.info("Ensuring fx cache schema exists")
                connection.execute(text("SELECT 1"))
                connection.execute(text(SCHEMA_SQL_ENTRIES))
                connection.execute(text(SCHEMA_SQL_GROUPS))
                connection.execute(text(SCHEMA_SQL_FIELDS))

        await self._run(_create)

    async def get(self, key: str) -> str | None:
        return (await self.get_many([key]))[0]

    async def get_many(self, keys: Sequence[str]) -> list[str | None]:
        if not keys:
            return []

        def _select() -> dict[str, str]:
            statement = text(SELECT_ENTRY_SQL).bindparams(bindparam("keys", expanding=True))
            with self._get_engine().connect() as connection:
                rows = connection.execute(statement, {"keys": list(keys), "now": self._clock()})
                return {row.cache_key: row.cache_value for row in rows}

        found = await self._run(_select)
        return [found.get(key) for key in keys]

    async def set(self, key: str, value: str, ttl: timedelta | None = None) -> None:
        params = {"cache_key": key, "cache_value": value, "expires_at": self._deadline(ttl)}

        def _upsert() -> None:
            with self._get_engine().begin() as connection:
                self._write_row(connection, cache_tables().entries, params, ("cache_key",))

        await self._run(_upsert)

    @staticmethod
    def _write_row(
        connection: Connection,
        table: Table,
        values: Mapping[str, Any],
        key_columns: Sequence[str],
    ) -> None:
        connection.execute(upsert_statement(connection.dialect.name, table, values, key_columns))

    def _group_is_live(self, connection: Connection, group_key: str) -> bool:
        row = connection.execute(
            text(SELECT_GROUP_SQL), {"group_key": group_key, "now": self._clock()}
        ).first()
        return row is not None

    async def hash_get_field(self, group_key: str, field: str) -> str | None:
        def _select() -> str | None:
            with self._get_engine().connect() as connection:
                if not self._group_is_live(connection, group_key):
                    return None
                row = connection.execute(
                    text(SELECT_FIELD_SQL), {"group_key": group_key, "field": field}
                ).first()
                return None if row is None else row[0]

        return await self._run(_select)

    async def hash_set_fields(self, group_key: str, fields: Mapping[str, str]) -> None:
        def _upsert() -> None:
            tables = cache_tables()
            with self._get_engine().begin() as connection:
                if not self._group_is_live(connection, group_key):
                    # Drop leftovers of an expired group before recreating it.
                    connection.execute(text(DELETE_ALL_FIELDS_SQL), {"group_key": group_key})
                    self._write_row(
                        connection,
                        tables.groups,
                        {"group_key": group_key, "expires_at": None},
                        ("group_key",),
                    )
                for field, value in fields.items():
                    params = {"group_key": group_key, "field": field, "field_value": value}
                    self._write_row(connection, tables.fields, params, ("group_key", "field"))

        await self._run(_upsert)

    async def hash_field_count(self, group_key: str) -> int:
        def _count() -> int:
            with self._get_engine().connect() as connection:
                if not self._group_is_live(connection, group_key):
                    return 0
                return int(
                    connection.execute(
                        text(COUNT_FIELDS_SQL), {"group_key": group_key}
                    ).scalar_one()
                )

        return await self._run(_count)

    async def set_group_expiry(self, group_key: str, ttl: timedelta | None) -> None:
        params = {"group_key": group_key, "expires_at": self._deadline(ttl)}

        def _update() -> None:
            with self._get_engine().begin() as connection:
                if self._group_is_live(connection, group_key):
                    connection.execute(text(UPDATE_GROUP_EXPIRY_SQL), params)

        await self._run(_update)

    async def delete(self, key: str) -> None:
        def _delete() -> None:
            with self._get_engine().begin() as connection:
                connection.execute(text(DELETE_ENTRY_SQL), {"cache_key": key})
                connection.execute(text(DELETE_ALL_FIELDS_SQL), {"group_key": key})
                connection.execute(text(DELETE_GROUP_SQL), {"group_key": key})

        await self._run(_delete)

    async def close(self) -> None:  # pragma: no cover - trivial resource cleanup
        if self._engine_instance is not None:
            self._engine_instance.dispose()


__all__ = ["RelationalBackend", "cache_tables", "upsert_statement"]
