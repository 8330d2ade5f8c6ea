import sys
import asyncio
import datetime
import logging
import sqlite3
from typing import Optional, Tuple

import aiosqlite

from config import DEFAULT_DB_PATH
from errors import MigrationError, StorageError
from schema_registry import (
    MIGRATIONS,
    AddIndex,
    CreateCollection,
    DropCollection,
    DropIndex,
    Index,
    Migration,
    Step,
    pending,
)

logger = logging.getLogger(__name__)

VERSION_TABLE = "schema_migrations"


def json_field(field: str) -> str:
    return f"json_extract(data, '$.{field}')"


def sql_index_name(collection: str, index_name: str) -> str:
    cleaned = index_name.strip("[]").replace("+", "__")
    return f"idx_{collection}_{cleaned}"


def create_index_sql(collection: str, index: Index) -> str:
    unique = "UNIQUE " if index.unique else ""
    exprs = ", ".join(json_field(f) for f in index.fields)
    return (
        f"CREATE {unique}INDEX {sql_index_name(collection, index.name)} "
        f"ON {collection} ({exprs});"
    )


async def current_version(conn: aiosqlite.Connection) -> int:
    """Return the highest applied schema version, 0 for a fresh database."""
    cursor = await conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?;",
        (VERSION_TABLE,),
    )
    if await cursor.fetchone() is None:
        return 0
    cursor = await conn.execute(f"SELECT COALESCE(MAX(version), 0) FROM {VERSION_TABLE};")
    row = await cursor.fetchone()
    return int(row[0])


class MigrationEngine:
    """Apply schema migrations in ascending order, one transaction each.

    The connection must be in autocommit mode (``isolation_level=None``) so
    that each migration's DDL and its version row commit or roll back
    together.
    """

    def __init__(self, migrations: Tuple[Migration, ...] = MIGRATIONS) -> None:
        versions = [m.version for m in migrations]
        if versions != list(range(1, len(versions) + 1)):
            raise ValueError("migration versions must be contiguous starting at 1")
        self.migrations = tuple(migrations)

    @property
    def latest(self) -> int:
        return self.migrations[-1].version if self.migrations else 0

    async def ensure_current(
        self, conn: aiosqlite.Connection, target: Optional[int] = None
    ) -> int:
        target = self.latest if target is None else target
        if target > self.latest:
            raise MigrationError(target, "unknown target version")
        try:
            await conn.execute(
                f"CREATE TABLE IF NOT EXISTS {VERSION_TABLE} ("
                "version INTEGER PRIMARY KEY, "
                "description TEXT NOT NULL, "
                "applied_at TEXT NOT NULL);"
            )
            version = await current_version(conn)
        except sqlite3.Error as exc:
            logger.error("cannot read schema version: %s", exc)
            raise StorageError(f"cannot read schema version: {exc}") from exc
        if version > self.latest:
            raise MigrationError(
                version, f"database is newer than this release (latest {self.latest})"
            )
        for migration in pending(version, target, self.migrations):
            await self._apply(conn, migration)
            version = migration.version
        return version

    async def _apply(self, conn: aiosqlite.Connection, migration: Migration) -> None:
        logger.info("applying schema version %s: %s", migration.version, migration.description)
        try:
            await conn.execute("BEGIN IMMEDIATE;")
            for step in migration.steps:
                await self._apply_step(conn, step)
            await conn.execute(
                f"INSERT INTO {VERSION_TABLE} (version, description, applied_at) VALUES (?, ?, ?);",
                (
                    migration.version,
                    migration.description,
                    datetime.datetime.now().isoformat(),
                ),
            )
            await conn.execute("COMMIT;")
        except (sqlite3.Error, ValueError) as exc:
            if conn.in_transaction:
                await conn.execute("ROLLBACK;")
            logger.error("schema version %s failed: %s", migration.version, exc)
            raise MigrationError(migration.version, str(exc)) from exc

    async def _apply_step(self, conn: aiosqlite.Connection, step: Step) -> None:
        if isinstance(step, CreateCollection):
            await conn.execute(
                f"CREATE TABLE {step.name} ("
                "id INTEGER PRIMARY KEY AUTOINCREMENT, "
                "data TEXT NOT NULL);"
            )
            for index in step.indexes:
                await conn.execute(create_index_sql(step.name, index))
        elif isinstance(step, AddIndex):
            await conn.execute(create_index_sql(step.collection, step.index))
        elif isinstance(step, DropIndex):
            await conn.execute(f"DROP INDEX {sql_index_name(step.collection, step.index_name)};")
            logger.warning("dropped index %s.%s", step.collection, step.index_name)
        elif isinstance(step, DropCollection):
            cursor = await conn.execute(f"SELECT COUNT(*) FROM {step.name};")
            (count,) = await cursor.fetchone()
            await conn.execute(f"DROP TABLE {step.name};")
            logger.warning("dropped collection %s with %s records", step.name, count)
        else:
            raise ValueError(f"unknown migration step: {step!r}")


async def _migrate(db_path: str) -> int:
    async with aiosqlite.connect(db_path, isolation_level=None) as conn:
        return await MigrationEngine().ensure_current(conn)


def migrate(db_path: str = DEFAULT_DB_PATH) -> int:
    """Bring the database at ``db_path`` to the current schema version."""
    return asyncio.run(_migrate(db_path))


if __name__ == '__main__':
    path = sys.argv[1] if len(sys.argv) > 1 else DEFAULT_DB_PATH
    print(f"schema version {migrate(path)}")
