"""Full-store export and destructive import.

Import replaces every managed collection with the document contents. The
document is parsed and checked completely before anything is cleared, and
the clear-and-restore runs inside one SQLite transaction.
"""
from __future__ import annotations

import json
import logging
from collections import Counter
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, ValidationError as SchemaError

from db import Database, SettingsRepository, now_iso, validate_set
from errors import ValidationError
from schema_registry import MANAGED_COLLECTIONS
from settings_schema import DEFAULT_SETTINGS, validate_settings

logger = logging.getLogger(__name__)

BACKUP_FORMAT = "workout-log-backup"
BACKUP_VERSION = 1


class _Record(BaseModel):
    model_config = ConfigDict(extra="allow", strict=True)

    id: int


class ExerciseRecord(_Record):
    name: str
    muscle_group: str


class MuscleGroupRecord(_Record):
    identifier: str


class LedgerRecord(_Record):
    exercise_id: int
    weight: float
    reps: int
    timestamp: str


class SessionRecord(_Record):
    date: str
    muscle_group: str
    status: Literal["in-progress", "completed"]


class CompletionRecord(_Record):
    workout_session_id: int
    exercise_id: int
    sets: List[Dict[str, Any]]
    completed_at: str


class SettingsRecord(_Record):
    pass


class BackupDocument(BaseModel):
    model_config = ConfigDict(extra="forbid")

    format: Literal["workout-log-backup"]
    version: int
    schema_version: int
    exported_at: str
    exercises: List[ExerciseRecord] = []
    muscle_groups: List[MuscleGroupRecord] = []
    sets: List[LedgerRecord] = []
    workout_sessions: List[SessionRecord] = []
    exercise_completions: List[CompletionRecord] = []
    settings: List[SettingsRecord] = []


def _unique(values: List[Any], what: str) -> None:
    dupes = [v for v, n in Counter(values).items() if n > 1]
    if dupes:
        raise ValidationError(f"duplicate {what}: {dupes[:5]}")


class BackupService:
    """Serialize the store to JSON and restore it."""

    def __init__(self, db: Database, settings_repo: Optional[SettingsRepository] = None) -> None:
        self.db = db
        self.settings = settings_repo or SettingsRepository(db)

    async def export(self, record_backup: bool = True) -> str:
        if record_backup:
            await self.settings.record_backup()
        data: Dict[str, Any] = {
            "format": BACKUP_FORMAT,
            "version": BACKUP_VERSION,
            "schema_version": self.db.schema_version,
            "exported_at": now_iso(),
        }
        for name in MANAGED_COLLECTIONS:
            data[name] = await self.db.collection(name).all()
        logger.info(
            "exported backup: %s",
            ", ".join(f"{name}={len(data[name])}" for name in MANAGED_COLLECTIONS),
        )
        return json.dumps(data, indent=2, sort_keys=True)

    def parse(self, text: str) -> Dict[str, List[Dict[str, Any]]]:
        """Validate a backup document and return its raw records per collection."""
        try:
            raw = json.loads(text)
        except (TypeError, json.JSONDecodeError) as exc:
            raise ValidationError(f"backup is not valid JSON: {exc}") from exc
        if not isinstance(raw, dict):
            raise ValidationError("backup must be a JSON object")
        try:
            doc = BackupDocument.model_validate(raw)
        except SchemaError as exc:
            raise ValidationError(f"malformed backup: {exc}") from exc
        if doc.version > BACKUP_VERSION:
            raise ValidationError(f"unsupported backup version {doc.version}")
        if doc.schema_version > self.db.schema_version:
            raise ValidationError(
                f"backup schema {doc.schema_version} is newer than store schema {self.db.schema_version}"
            )
        records = {name: list(raw.get(name, [])) for name in MANAGED_COLLECTIONS}
        self._check(doc, records)
        return records

    @staticmethod
    def _check(doc: BackupDocument, records: Dict[str, List[Dict[str, Any]]]) -> None:
        for name, rows in records.items():
            _unique([r["id"] for r in rows], f"{name} ids")
        _unique([g.identifier for g in doc.muscle_groups], "muscle group identifiers")
        _unique([s.date for s in doc.workout_sessions], "session dates")
        _unique(
            [(c.workout_session_id, c.exercise_id) for c in doc.exercise_completions],
            "completions per session and exercise",
        )
        if len(doc.settings) > 1:
            raise ValidationError("backup holds more than one settings record")
        for row in records["settings"]:
            validate_settings({k: row.get(k, v) for k, v in DEFAULT_SETTINGS.items()})
        for row in records["sets"]:
            validate_set({k: row.get(k) for k in ("weight", "reps", "rpe")})
        session_ids = {s.id for s in doc.workout_sessions}
        exercise_ids = {e.id for e in doc.exercises}
        orphans = 0
        for completion in doc.exercise_completions:
            if completion.workout_session_id not in session_ids:
                raise ValidationError(
                    f"completion {completion.id} references missing session "
                    f"{completion.workout_session_id}"
                )
            if not completion.sets:
                raise ValidationError(f"completion {completion.id} has no sets")
            for entry in completion.sets:
                validate_set(entry)
            if completion.exercise_id not in exercise_ids:
                orphans += 1
        if orphans:
            logger.warning("backup holds %s completions for deleted exercises", orphans)

    async def import_data(self, text: str) -> Dict[str, int]:
        """Replace all data with the backup contents. Not a merge."""
        records = self.parse(text)
        async with self.db.transaction():
            for name in MANAGED_COLLECTIONS:
                collection = self.db.collection(name)
                await collection.clear()
                await collection.restore(records[name])
        counts = {name: len(rows) for name, rows in records.items()}
        logger.info("imported backup: %s", counts)
        return counts

    async def clear_all(self) -> None:
        async with self.db.transaction():
            for name in MANAGED_COLLECTIONS:
                await self.db.collection(name).clear()
        logger.warning("cleared all data")
