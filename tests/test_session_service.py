import os
import sys
import asyncio
import datetime

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import Database, ExerciseRepository, MuscleGroupRepository, SetLedgerRepository
from errors import (
    DuplicateCompletionError,
    NoSessionError,
    NotFoundError,
    ValidationError,
)
from session_service import SessionService


class Clock:
    def __init__(self, day: datetime.date) -> None:
        self.day = day

    def __call__(self) -> datetime.date:
        return self.day


@pytest.mark.asyncio
async def test_full_day_scenario(tmp_path):
    async with Database(str(tmp_path / "scenario.db")) as db:
        await MuscleGroupRepository(db).create("Chest")
        bench = await ExerciseRepository(db).create("Bench", "Chest")
        service = SessionService(db)

        session = await service.get_or_create_today("Chest")
        assert session["status"] == "in-progress"
        assert session["date"] == datetime.date.today().isoformat()

        assert await service.is_exercise_completed_today(bench) is False
        completion = await service.complete_exercise(bench, [{"weight": 135, "reps": 5}])
        assert completion["sets"] == [{"weight": 135, "reps": 5, "rpe": None}]
        assert await service.is_exercise_completed_today(bench) is True

        done = await service.complete_session(session["id"])
        assert done["status"] == "completed"
        again = await service.complete_session(session["id"])
        assert again["status"] == "completed"


@pytest.mark.asyncio
async def test_one_session_per_day(tmp_path):
    async with Database(str(tmp_path / "oneday.db")) as db:
        service = SessionService(db, today=Clock(datetime.date(2024, 3, 1)))
        first = await service.get_or_create_today("Chest")
        same = await service.get_or_create_today("Chest")
        assert same == first
        moved = await service.get_or_create_today("Back")
        assert moved["id"] == first["id"]
        assert moved["muscle_group"] == "Back"
        assert await db.collection("workout_sessions").count() == 1


@pytest.mark.asyncio
async def test_concurrent_get_or_create(tmp_path):
    async with Database(str(tmp_path / "race.db")) as db:
        service = SessionService(db, today=Clock(datetime.date(2024, 3, 1)))
        results = await asyncio.gather(
            *(service.get_or_create_today(g) for g in ["Chest", "Back", "Legs", "Chest"])
        )
        assert len({r["id"] for r in results}) == 1
        assert await db.collection("workout_sessions").count() == 1


@pytest.mark.asyncio
async def test_group_change_keeps_completions(tmp_path):
    async with Database(str(tmp_path / "switch.db")) as db:
        bench = await ExerciseRepository(db).create("Bench", "Chest")
        service = SessionService(db, today=Clock(datetime.date(2024, 3, 1)))
        await service.get_or_create_today("Chest")
        await service.complete_exercise(bench, [{"weight": 100, "reps": 8, "rpe": 7}])
        await service.get_or_create_today("Back")
        assert len(await service.today_completions()) == 1


@pytest.mark.asyncio
async def test_new_day_starts_fresh(tmp_path):
    async with Database(str(tmp_path / "rollover.db")) as db:
        bench = await ExerciseRepository(db).create("Bench", "Chest")
        clock = Clock(datetime.date(2024, 3, 1))
        service = SessionService(db, today=clock)
        first = await service.get_or_create_today("Chest")
        await service.complete_exercise(bench, [{"weight": 100, "reps": 5}])
        await service.complete_today()

        clock.day = datetime.date(2024, 3, 2)
        assert await service.get_today() is None
        assert await service.is_exercise_completed_today(bench) is False
        assert await service.today_completions() == []
        second = await service.get_or_create_today("Chest")
        assert second["id"] != first["id"]
        assert second["status"] == "in-progress"
        await service.complete_exercise(bench, [{"weight": 105, "reps": 5}])


@pytest.mark.asyncio
async def test_complete_exercise_requires_session(tmp_path):
    async with Database(str(tmp_path / "nosession.db")) as db:
        bench = await ExerciseRepository(db).create("Bench", "Chest")
        service = SessionService(db)
        with pytest.raises(NoSessionError):
            await service.complete_exercise(bench, [{"weight": 100, "reps": 5}])
        with pytest.raises(NoSessionError):
            await service.complete_today()


@pytest.mark.asyncio
async def test_complete_exercise_validation(tmp_path):
    async with Database(str(tmp_path / "invalid.db")) as db:
        bench = await ExerciseRepository(db).create("Bench", "Chest")
        service = SessionService(db)
        await service.get_or_create_today("Chest")
        for sets in ([], [{"weight": 0, "reps": 5}], [{"weight": 100, "reps": 0}], [{"weight": 100, "reps": 5, "rpe": 11}]):
            with pytest.raises(ValidationError):
                await service.complete_exercise(bench, sets)
        with pytest.raises(NotFoundError):
            await service.complete_exercise(999, [{"weight": 100, "reps": 5}])
        assert await service.today_completions() == []
        assert await SetLedgerRepository(db).count() == 0


@pytest.mark.asyncio
async def test_duplicate_completion_rejected(tmp_path):
    async with Database(str(tmp_path / "dupe.db")) as db:
        bench = await ExerciseRepository(db).create("Bench", "Chest")
        service = SessionService(db)
        await service.get_or_create_today("Chest")
        await service.complete_exercise(bench, [{"weight": 100, "reps": 5}, {"weight": 100, "reps": 4}])
        with pytest.raises(DuplicateCompletionError):
            await service.complete_exercise(bench, [{"weight": 120, "reps": 5}])
        assert len(await service.today_completions()) == 1
        ledger = await SetLedgerRepository(db).for_exercise(bench)
        assert [(e["weight"], e["reps"]) for e in ledger] == [(100, 5), (100, 4)]
        assert ledger[0]["timestamp"] == ledger[1]["timestamp"]


@pytest.mark.asyncio
async def test_complete_unknown_session(tmp_path):
    async with Database(str(tmp_path / "unknown.db")) as db:
        service = SessionService(db)
        with pytest.raises(NotFoundError):
            await service.complete_session(12345)


@pytest.mark.asyncio
async def test_delete_session_cascades(tmp_path):
    async with Database(str(tmp_path / "cascade.db")) as db:
        bench = await ExerciseRepository(db).create("Bench", "Chest")
        service = SessionService(db)
        session = await service.get_or_create_today("Chest")
        await service.complete_exercise(bench, [{"weight": 100, "reps": 5}])
        detail = await service.session_with_completions(session["id"])
        assert len(detail["completions"]) == 1
        await service.delete_session(session["id"])
        assert await db.collection("exercise_completions").count() == 0
        # the ledger is independent of sessions
        assert await SetLedgerRepository(db).count() == 1
