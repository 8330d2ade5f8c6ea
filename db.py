import re
import json
import asyncio
import logging
import sqlite3
import datetime
from contextlib import asynccontextmanager
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import aiosqlite

from config import DEFAULT_DB_PATH, YamlConfig
from errors import NotFoundError, StorageError, ValidationError
from migrate import MigrationEngine, json_field
from schema_registry import CollectionSpec, definition_at
from settings_schema import DEFAULT_SETTINGS, validate_settings

logger = logging.getLogger(__name__)

MAX_WEIGHT = 9999
MAX_REPS = 999
_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def now_iso() -> str:
    return datetime.datetime.now().isoformat(timespec="microseconds")


def validate_set(entry: Dict[str, Any]) -> Dict[str, Any]:
    """Return a normalized ``{weight, reps, rpe}`` dict or raise ValidationError."""
    if not isinstance(entry, dict):
        raise ValidationError("set must be a mapping")
    weight = entry.get("weight")
    reps = entry.get("reps")
    rpe = entry.get("rpe")
    if isinstance(weight, bool) or not isinstance(weight, (int, float)):
        raise ValidationError("weight must be a number")
    if isinstance(reps, bool) or not isinstance(reps, int):
        raise ValidationError("reps must be an integer")
    if not 0 <= weight <= MAX_WEIGHT:
        raise ValidationError(f"weight must be between 0 and {MAX_WEIGHT}")
    if not 0 <= reps <= MAX_REPS:
        raise ValidationError(f"reps must be between 0 and {MAX_REPS}")
    if rpe is not None:
        if isinstance(rpe, bool) or not isinstance(rpe, int) or not 1 <= rpe <= 10:
            raise ValidationError("rpe must be an integer between 1 and 10")
    return {"weight": weight, "reps": reps, "rpe": rpe}


class Database:
    """Owns the SQLite connection and gates access behind schema migration."""

    def __init__(
        self,
        db_path: str = DEFAULT_DB_PATH,
        engine: Optional[MigrationEngine] = None,
    ) -> None:
        self._db_path = db_path
        self._engine = engine or MigrationEngine()
        self._conn: Optional[aiosqlite.Connection] = None
        self._schema: Dict[str, CollectionSpec] = {}
        self._tx_lock = asyncio.Lock()
        self._tx_owner: Optional[asyncio.Task] = None
        self.schema_version = 0

    async def open(self) -> "Database":
        if self._conn is not None:
            return self
        try:
            conn = await aiosqlite.connect(self._db_path, isolation_level=None)
        except sqlite3.Error as exc:
            raise StorageError(f"cannot open {self._db_path}: {exc}") from exc
        try:
            self.schema_version = await self._engine.ensure_current(conn)
        except BaseException:
            await conn.close()
            raise
        self._schema = definition_at(self.schema_version, self._engine.migrations)
        self._conn = conn
        logger.debug("opened %s at schema version %s", self._db_path, self.schema_version)
        return self

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    async def __aenter__(self) -> "Database":
        return await self.open()

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def collection_names(self) -> List[str]:
        return list(self._schema)

    def collection(self, name: str) -> "Collection":
        if self._conn is None:
            raise StorageError("database is not open")
        spec = self._schema.get(name)
        if spec is None:
            raise NotFoundError(f"collection {name} not found")
        return Collection(self, spec)

    def _connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise StorageError("database is not open")
        return self._conn

    @asynccontextmanager
    async def transaction(self):
        """Group writes into one SQLite transaction.

        Nested use from the task that opened the transaction joins it. Other
        tasks wait until it commits or rolls back. The connection is shared,
        so writes issued outside ``transaction()`` while one is open land in
        the open transaction.
        """
        conn = self._connection()
        task = asyncio.current_task()
        if task is not None and self._tx_owner is task:
            yield conn
            return
        async with self._tx_lock:
            await self._run(conn.execute("BEGIN;"))
            self._tx_owner = task
            try:
                yield conn
                await self._run(conn.execute("COMMIT;"))
            except BaseException:
                if conn.in_transaction:
                    await conn.execute("ROLLBACK;")
                raise
            finally:
                self._tx_owner = None

    @staticmethod
    async def _run(awaitable):
        try:
            return await awaitable
        except sqlite3.IntegrityError as exc:
            raise ValidationError(f"constraint violated: {exc}") from exc
        except sqlite3.Error as exc:
            raise StorageError(str(exc)) from exc

    async def execute(self, query: str, params: Tuple = ()) -> int:
        cursor = await self._run(self._connection().execute(query, params))
        return cursor.lastrowid

    async def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        cursor = await self._run(self._connection().execute(query, params))
        return list(await self._run(cursor.fetchall()))


class Collection:
    """Keyed JSON records in one table with declared expression indexes."""

    def __init__(self, db: Database, spec: CollectionSpec) -> None:
        self.db = db
        self.spec = spec
        self.name = spec.name

    @staticmethod
    def _decode(row: Tuple[int, str]) -> Dict[str, Any]:
        record = json.loads(row[1])
        record["id"] = row[0]
        return record

    @staticmethod
    def _encode(record: Dict[str, Any]) -> str:
        data = {k: v for k, v in record.items() if k != "id"}
        return json.dumps(data, sort_keys=True)

    def _index_fields(self, index: str) -> Tuple[str, ...]:
        spec = self.spec.indexes.get(index)
        if spec is None:
            raise ValidationError(f"{self.name} has no index {index}")
        return spec.fields

    @staticmethod
    def _key(fields: Sequence[str], value: Any) -> Tuple:
        key = tuple(value) if isinstance(value, (tuple, list)) else (value,)
        if len(key) != len(fields):
            raise ValidationError(f"expected {len(fields)} key values, got {len(key)}")
        return key

    @staticmethod
    def _order_clause(fields: Sequence[str], descending: bool) -> str:
        direction = " DESC" if descending else ""
        for f in fields:
            if not _FIELD_RE.match(f):
                raise ValidationError(f"invalid field name {f}")
        parts = [json_field(f) + direction for f in fields]
        parts.append("id" + direction)
        return " ORDER BY " + ", ".join(parts)

    async def add(self, record: Dict[str, Any]) -> int:
        data = dict(record)
        data.pop("id", None)
        stamp = now_iso()
        data.setdefault("created_at", stamp)
        data.setdefault("updated_at", stamp)
        return await self.db.execute(
            f"INSERT INTO {self.name} (data) VALUES (?);", (self._encode(data),)
        )

    async def bulk_add(self, records: Iterable[Dict[str, Any]]) -> List[int]:
        ids: List[int] = []
        async with self.db.transaction():
            for record in records:
                ids.append(await self.add(record))
        return ids

    async def restore(self, records: Iterable[Dict[str, Any]]) -> None:
        """Insert records keeping their ids. Used only when restoring backups."""
        async with self.db.transaction():
            for record in records:
                await self.db.execute(
                    f"INSERT INTO {self.name} (id, data) VALUES (?, ?);",
                    (int(record["id"]), self._encode(record)),
                )

    async def get(self, record_id: int) -> Optional[Dict[str, Any]]:
        rows = await self.db.fetch_all(
            f"SELECT id, data FROM {self.name} WHERE id = ?;", (record_id,)
        )
        return self._decode(rows[0]) if rows else None

    async def update(self, record_id: int, changes: Dict[str, Any]) -> Dict[str, Any]:
        async with self.db.transaction():
            current = await self.get(record_id)
            if current is None:
                raise NotFoundError(f"{self.name} record {record_id} not found")
            current.update({k: v for k, v in changes.items() if k != "id"})
            current["updated_at"] = now_iso()
            await self.db.execute(
                f"UPDATE {self.name} SET data = ? WHERE id = ?;",
                (self._encode(current), record_id),
            )
        return current

    async def delete(self, record_id: int) -> None:
        rows = await self.db.fetch_all(
            f"SELECT id FROM {self.name} WHERE id = ?;", (record_id,)
        )
        if not rows:
            raise NotFoundError(f"{self.name} record {record_id} not found")
        await self.db.execute(f"DELETE FROM {self.name} WHERE id = ?;", (record_id,))

    async def count(self) -> int:
        rows = await self.db.fetch_all(f"SELECT COUNT(*) FROM {self.name};")
        return int(rows[0][0])

    async def all(self) -> List[Dict[str, Any]]:
        rows = await self.db.fetch_all(f"SELECT id, data FROM {self.name} ORDER BY id;")
        return [self._decode(r) for r in rows]

    async def clear(self) -> None:
        await self.db.execute(f"DELETE FROM {self.name};")

    async def where(
        self,
        index: str,
        value: Any,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Equality lookup on a declared index. Compound indexes take a tuple."""
        fields = self._index_fields(index)
        key = self._key(fields, value)
        clause = " AND ".join(f"{json_field(f)} = ?" for f in fields)
        query = f"SELECT id, data FROM {self.name} WHERE {clause}"
        query += self._order_clause([order_by] if order_by else [], descending)
        params: List[Any] = list(key)
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        rows = await self.db.fetch_all(query + ";", tuple(params))
        return [self._decode(r) for r in rows]

    async def first(self, index: str, value: Any) -> Optional[Dict[str, Any]]:
        rows = await self.where(index, value, limit=1)
        return rows[0] if rows else None

    async def between(
        self,
        index: str,
        lower: Any,
        upper: Any,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Inclusive range lookup ordered by the index, ties by id."""
        fields = self._index_fields(index)
        lo = self._key(fields, lower)
        hi = self._key(fields, upper)
        exprs = "(" + ", ".join(json_field(f) for f in fields) + ")"
        marks = "(" + ", ".join("?" for _ in fields) + ")"
        query = (
            f"SELECT id, data FROM {self.name} "
            f"WHERE {exprs} >= {marks} AND {exprs} <= {marks}"
        )
        query += self._order_clause(fields, descending)
        params: List[Any] = list(lo) + list(hi)
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        rows = await self.db.fetch_all(query + ";", tuple(params))
        return [self._decode(r) for r in rows]


class BaseRepository:
    """Base repository bound to one collection."""

    collection_name = ""

    def __init__(self, db: Database) -> None:
        self.db = db

    @property
    def table(self) -> Collection:
        return self.db.collection(self.collection_name)

    async def fetch(self, record_id: int) -> Dict[str, Any]:
        record = await self.table.get(record_id)
        if record is None:
            raise NotFoundError(f"{self.collection_name} record {record_id} not found")
        return record

    async def fetch_all_records(self) -> List[Dict[str, Any]]:
        return await self.table.all()

    async def count(self) -> int:
        return await self.table.count()


class ExerciseRepository(BaseRepository):
    """Repository for the exercise catalogue."""

    collection_name = "exercises"
    _MUTABLE = {"name", "muscle_group", "aliases", "unit_preference", "video_url"}

    @staticmethod
    def _check(fields: Dict[str, Any]) -> None:
        if "name" in fields and not str(fields["name"] or "").strip():
            raise ValidationError("exercise name must not be empty")
        if "muscle_group" in fields and not str(fields["muscle_group"] or "").strip():
            raise ValidationError("muscle group must not be empty")
        unit = fields.get("unit_preference")
        if unit is not None and unit not in ("lbs", "kg"):
            raise ValidationError("unit must be 'lbs' or 'kg'")
        aliases = fields.get("aliases")
        if aliases is not None and not all(isinstance(a, str) for a in aliases):
            raise ValidationError("aliases must be strings")

    async def create(
        self,
        name: str,
        muscle_group: str,
        aliases: Optional[List[str]] = None,
        unit_preference: Optional[str] = None,
        video_url: Optional[str] = None,
    ) -> int:
        fields = {
            "name": name.strip() if isinstance(name, str) else name,
            "muscle_group": muscle_group,
            "aliases": [a.strip() for a in aliases or [] if a and a.strip()],
            "unit_preference": unit_preference,
            "video_url": video_url,
        }
        self._check(fields)
        return await self.table.add(fields)

    async def update(self, exercise_id: int, **changes: Any) -> Dict[str, Any]:
        unknown = set(changes) - self._MUTABLE
        if unknown:
            raise ValidationError(f"cannot update fields: {', '.join(sorted(unknown))}")
        self._check(changes)
        return await self.table.update(exercise_id, changes)

    async def delete(self, exercise_id: int) -> None:
        # Completions and ledger entries keep their exercise_id.
        await self.table.delete(exercise_id)

    async def by_muscle_group(self, muscle_group: str) -> List[Dict[str, Any]]:
        return await self.table.where("muscle_group", muscle_group, order_by="name")

    async def update_video_url(self, exercise_id: int, video_url: str) -> None:
        if not video_url.strip():
            raise ValidationError("video url must not be empty")
        await self.table.update(exercise_id, {"video_url": video_url.strip()})

    async def remove_video_url(self, exercise_id: int) -> None:
        await self.table.update(exercise_id, {"video_url": None})


class MuscleGroupRepository(BaseRepository):
    """Repository for muscle groups keyed by their stable identifier."""

    collection_name = "muscle_groups"
    _MUTABLE = {"name", "color", "icon", "is_active", "sort_order"}

    async def create(
        self,
        identifier: str,
        name: Optional[str] = None,
        color: str = "",
        icon: str = "",
        is_active: bool = True,
        sort_order: Optional[int] = None,
    ) -> int:
        identifier = (identifier or "").strip()
        if not identifier:
            raise ValidationError("identifier must not be empty")
        if await self.by_identifier(identifier) is not None:
            raise ValidationError(f"muscle group {identifier} already exists")
        if sort_order is None:
            sort_order = await self.count()
        return await self.table.add(
            {
                "identifier": identifier,
                "name": name or identifier,
                "color": color,
                "icon": icon,
                "is_active": bool(is_active),
                "sort_order": int(sort_order),
            }
        )

    async def update(self, group_id: int, **changes: Any) -> Dict[str, Any]:
        unknown = set(changes) - self._MUTABLE
        if unknown:
            raise ValidationError(f"cannot update fields: {', '.join(sorted(unknown))}")
        if "is_active" in changes:
            changes["is_active"] = bool(changes["is_active"])
        return await self.table.update(group_id, changes)

    async def delete(self, group_id: int) -> None:
        await self.table.delete(group_id)

    async def by_identifier(self, identifier: str) -> Optional[Dict[str, Any]]:
        return await self.table.first("identifier", identifier)

    async def active(self) -> List[Dict[str, Any]]:
        return await self.table.where("is_active", True, order_by="sort_order")


class SetLedgerRepository(BaseRepository):
    """Flat per-exercise set history used for trends and records."""

    collection_name = "sets"

    async def append(
        self,
        exercise_id: int,
        sets: Iterable[Dict[str, Any]],
        timestamp: Optional[str] = None,
    ) -> List[int]:
        stamp = timestamp or now_iso()
        records = []
        for entry in sets:
            clean = validate_set(entry)
            records.append({"exercise_id": exercise_id, "timestamp": stamp, **clean})
        return await self.table.bulk_add(records)

    async def history(self, exercise_id: int, limit: Optional[int] = 50) -> List[Dict[str, Any]]:
        return await self.table.where(
            "exercise_id", exercise_id, order_by="timestamp", descending=True, limit=limit
        )

    async def for_exercise(self, exercise_id: int) -> List[Dict[str, Any]]:
        return await self.table.where("exercise_id", exercise_id, order_by="timestamp")


class WorkoutSessionRepository(BaseRepository):
    """Repository for per-day workout sessions."""

    collection_name = "workout_sessions"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"

    async def create(self, date: str, muscle_group: str) -> int:
        return await self.table.add(
            {"date": date, "muscle_group": muscle_group, "status": self.IN_PROGRESS}
        )

    async def for_date(self, date: str) -> Optional[Dict[str, Any]]:
        return await self.table.first("date", date)

    async def between(self, start: str, end: str) -> List[Dict[str, Any]]:
        return await self.table.between("date", start, end, descending=True)

    async def set_muscle_group(self, session_id: int, muscle_group: str) -> Dict[str, Any]:
        return await self.table.update(session_id, {"muscle_group": muscle_group})

    async def set_status(self, session_id: int, status: str) -> Dict[str, Any]:
        if status not in (self.IN_PROGRESS, self.COMPLETED):
            raise ValidationError(f"invalid session status {status}")
        return await self.table.update(session_id, {"status": status})

    async def delete(self, session_id: int) -> None:
        """Delete a session together with its completions."""
        async with self.db.transaction():
            completions = self.db.collection("exercise_completions")
            for completion in await completions.where("workout_session_id", session_id):
                await completions.delete(completion["id"])
            await self.table.delete(session_id)


class CompletionRepository(BaseRepository):
    """Repository for exercise completions within a session."""

    collection_name = "exercise_completions"

    async def create(
        self, session_id: int, exercise_id: int, sets: List[Dict[str, Any]]
    ) -> int:
        stamp = now_iso()
        return await self.table.add(
            {
                "workout_session_id": session_id,
                "exercise_id": exercise_id,
                "sets": [validate_set(s) for s in sets],
                "completed_at": stamp,
            }
        )

    async def for_session(self, session_id: int) -> List[Dict[str, Any]]:
        return await self.table.where("workout_session_id", session_id)

    async def for_session_exercise(
        self, session_id: int, exercise_id: int
    ) -> Optional[Dict[str, Any]]:
        return await self.table.first(
            "[workout_session_id+exercise_id]", (session_id, exercise_id)
        )

    async def for_exercise(self, exercise_id: int) -> List[Dict[str, Any]]:
        return await self.table.where("exercise_id", exercise_id, order_by="completed_at")


class SettingsRepository(BaseRepository):
    """Singleton settings record, optionally mirrored to a YAML file."""

    collection_name = "settings"

    def __init__(self, db: Database, yaml_path: Optional[str] = None) -> None:
        super().__init__(db)
        self._yaml = YamlConfig(yaml_path) if yaml_path else None

    async def get(self) -> Dict[str, Any]:
        rows = await self.table.all()
        if rows:
            return rows[0]
        record_id = await self.table.add(dict(DEFAULT_SETTINGS))
        return await self.fetch(record_id)

    async def current(self) -> Dict[str, Any]:
        """Stored values merged over the defaults, without creating the record."""
        values = dict(DEFAULT_SETTINGS)
        rows = await self.table.all()
        if rows:
            values.update({k: rows[0][k] for k in DEFAULT_SETTINGS if k in rows[0]})
        return values

    async def update_field(self, field: str, value: Any) -> Dict[str, Any]:
        current = await self.get()
        if field not in DEFAULT_SETTINGS:
            raise ValidationError(f"unknown setting {field}")
        values = {k: current.get(k) for k in DEFAULT_SETTINGS}
        values[field] = value
        clean = validate_settings(values)
        updated = await self.table.update(current["id"], {field: clean[field]})
        self._sync_to_yaml(updated)
        return updated

    async def reset_defaults(self) -> Dict[str, Any]:
        current = await self.get()
        updated = await self.table.update(current["id"], dict(DEFAULT_SETTINGS))
        self._sync_to_yaml(updated)
        return updated

    async def record_backup(self, timestamp: Optional[str] = None) -> Dict[str, Any]:
        return await self.update_field("last_backup", timestamp or now_iso())

    def _sync_to_yaml(self, record: Dict[str, Any]) -> None:
        if self._yaml is None:
            return
        self._yaml.save({k: record.get(k) for k in DEFAULT_SETTINGS})
