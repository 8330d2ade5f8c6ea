"""Declarative schema history for the workout store.

Every schema version is a list of steps. The store is the fold of all steps
up to a version; nothing here touches a database.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Tuple, Union


@dataclass(frozen=True)
class Index:
    name: str
    fields: Tuple[str, ...]
    unique: bool = False

    @classmethod
    def on(cls, *fields: str, unique: bool = False) -> "Index":
        name = fields[0] if len(fields) == 1 else "[" + "+".join(fields) + "]"
        return cls(name, tuple(fields), unique)


@dataclass(frozen=True)
class CreateCollection:
    name: str
    indexes: Tuple[Index, ...] = ()


@dataclass(frozen=True)
class AddIndex:
    collection: str
    index: Index


@dataclass(frozen=True)
class DropIndex:
    collection: str
    index_name: str


@dataclass(frozen=True)
class DropCollection:
    """Removes a collection and permanently destroys its records."""

    name: str


Step = Union[CreateCollection, AddIndex, DropIndex, DropCollection]


@dataclass(frozen=True)
class Migration:
    version: int
    description: str
    steps: Tuple[Step, ...]


@dataclass
class CollectionSpec:
    name: str
    indexes: Dict[str, Index] = field(default_factory=dict)


MIGRATIONS: Tuple[Migration, ...] = (
    Migration(
        1,
        "initial collections",
        (
            CreateCollection("workouts", (Index.on("date"), Index.on("created_at"))),
            CreateCollection(
                "exercises",
                (Index.on("name"), Index.on("muscle_group"), Index.on("created_at")),
            ),
            CreateCollection(
                "sets",
                (
                    Index.on("workout_id"),
                    Index.on("exercise_id"),
                    Index.on("timestamp"),
                    Index.on("exercise_id", "timestamp"),
                ),
            ),
            CreateCollection("templates", (Index.on("name"), Index.on("created_at"))),
            CreateCollection("settings"),
        ),
    ),
    Migration(
        2,
        "index sets by workout and exercise",
        (AddIndex("sets", Index.on("workout_id", "exercise_id")),),
    ),
    Migration(
        3,
        "workout sessions and exercise completions",
        (
            CreateCollection(
                "workout_sessions",
                (
                    Index.on("date", unique=True),
                    Index.on("muscle_group"),
                    Index.on("status"),
                ),
            ),
            CreateCollection(
                "exercise_completions",
                (
                    Index.on("workout_session_id"),
                    Index.on("exercise_id"),
                    Index.on("completed_at"),
                    Index.on("workout_session_id", "exercise_id", unique=True),
                ),
            ),
        ),
    ),
    Migration(
        4,
        "configurable muscle groups",
        (
            CreateCollection(
                "muscle_groups",
                (
                    Index.on("identifier", unique=True),
                    Index.on("is_active"),
                    Index.on("sort_order"),
                ),
            ),
        ),
    ),
    # Destructive: free-form workouts and templates were replaced by
    # sessions. Their records are dropped, not converted.
    Migration(
        5,
        "retire workouts, templates and legacy set indexes",
        (
            DropIndex("sets", "[workout_id+exercise_id]"),
            DropIndex("sets", "workout_id"),
            DropIndex("sets", "timestamp"),
            DropCollection("workouts"),
            DropCollection("templates"),
        ),
    ),
)

CURRENT_VERSION = MIGRATIONS[-1].version


def _apply(schema: Dict[str, CollectionSpec], step: Step) -> None:
    if isinstance(step, CreateCollection):
        if step.name in schema:
            raise ValueError(f"collection {step.name} already exists")
        schema[step.name] = CollectionSpec(step.name, {i.name: i for i in step.indexes})
    elif isinstance(step, AddIndex):
        spec = schema.get(step.collection)
        if spec is None:
            raise ValueError(f"collection {step.collection} not found")
        if step.index.name in spec.indexes:
            raise ValueError(f"index {step.index.name} already exists")
        spec.indexes[step.index.name] = step.index
    elif isinstance(step, DropIndex):
        spec = schema.get(step.collection)
        if spec is None or step.index_name not in spec.indexes:
            raise ValueError(f"index {step.collection}.{step.index_name} not found")
        del spec.indexes[step.index_name]
    elif isinstance(step, DropCollection):
        if step.name not in schema:
            raise ValueError(f"collection {step.name} not found")
        del schema[step.name]
    else:
        raise TypeError(f"unknown migration step: {step!r}")


def definition_at(
    version: int, migrations: Tuple[Migration, ...] = MIGRATIONS
) -> Dict[str, CollectionSpec]:
    """Return the collections and indexes that exist at ``version``."""
    known = {m.version for m in migrations}
    if version != 0 and version not in known:
        raise ValueError(f"unknown schema version {version}")
    schema: Dict[str, CollectionSpec] = {}
    for migration in sorted(migrations, key=lambda m: m.version):
        if migration.version > version:
            break
        for step in migration.steps:
            _apply(schema, step)
    return schema


def pending(
    current: int, target: int, migrations: Tuple[Migration, ...] = MIGRATIONS
) -> List[Migration]:
    return [m for m in sorted(migrations, key=lambda m: m.version) if current < m.version <= target]


MANAGED_COLLECTIONS: Tuple[str, ...] = tuple(definition_at(CURRENT_VERSION))
