from __future__ import annotations

import asyncio
import datetime
import logging
from typing import Any, Callable, Dict, List, Optional

from db import (
    CompletionRepository,
    Database,
    ExerciseRepository,
    SetLedgerRepository,
    WorkoutSessionRepository,
    now_iso,
    validate_set,
)
from errors import DuplicateCompletionError, NoSessionError, ValidationError

logger = logging.getLogger(__name__)


class SessionService:
    """State machine for today's workout session and its completions.

    A date moves from no session, to in-progress, to completed. All
    operations run under one lock so the read-then-write in
    :meth:`get_or_create_today` cannot race with itself.
    """

    def __init__(
        self,
        db: Database,
        today: Callable[[], datetime.date] = datetime.date.today,
    ) -> None:
        self.db = db
        self.sessions = WorkoutSessionRepository(db)
        self.completions = CompletionRepository(db)
        self.ledger = SetLedgerRepository(db)
        self.exercises = ExerciseRepository(db)
        self._today = today
        self._lock = asyncio.Lock()

    def today_string(self) -> str:
        return self._today().isoformat()

    async def get_today(self) -> Optional[Dict[str, Any]]:
        return await self.sessions.for_date(self.today_string())

    async def get_or_create_today(self, muscle_group: str) -> Dict[str, Any]:
        if not (muscle_group or "").strip():
            raise ValidationError("muscle group must not be empty")
        async with self._lock:
            session = await self.get_today()
            if session is None:
                session_id = await self.sessions.create(self.today_string(), muscle_group)
                logger.info("started session %s for %s", session_id, muscle_group)
                return await self.sessions.fetch(session_id)
            if session["muscle_group"] != muscle_group:
                return await self.sessions.set_muscle_group(session["id"], muscle_group)
            return session

    async def complete_exercise(
        self, exercise_id: int, sets: List[Dict[str, Any]]
    ) -> Dict[str, Any]:
        """Record today's sets for an exercise and append them to the ledger.

        A second completion of the same exercise in the same session is
        rejected with :class:`DuplicateCompletionError`.
        """
        if not sets:
            raise ValidationError("at least one set is required")
        clean = [validate_set(s) for s in sets]
        for entry in clean:
            if entry["weight"] <= 0 or entry["reps"] <= 0:
                raise ValidationError("weight and reps must be positive")
        async with self._lock:
            session = await self.get_today()
            if session is None:
                raise NoSessionError("no workout session for today")
            await self.exercises.fetch(exercise_id)
            if await self.completions.for_session_exercise(session["id"], exercise_id):
                raise DuplicateCompletionError(
                    f"exercise {exercise_id} already completed in session {session['id']}"
                )
            async with self.db.transaction():
                completion_id = await self.completions.create(session["id"], exercise_id, clean)
                await self.ledger.append(exercise_id, clean, now_iso())
            return await self.completions.fetch(completion_id)

    async def complete_session(self, session_id: int) -> Dict[str, Any]:
        async with self._lock:
            session = await self.sessions.fetch(session_id)
            if session["status"] == WorkoutSessionRepository.COMPLETED:
                return session
            return await self.sessions.set_status(session_id, WorkoutSessionRepository.COMPLETED)

    async def complete_today(self) -> Dict[str, Any]:
        session = await self.get_today()
        if session is None:
            raise NoSessionError("no workout session for today")
        return await self.complete_session(session["id"])

    async def is_exercise_completed_today(self, exercise_id: int) -> bool:
        session = await self.get_today()
        if session is None:
            return False
        return await self.completions.for_session_exercise(session["id"], exercise_id) is not None

    async def today_completions(self) -> List[Dict[str, Any]]:
        session = await self.get_today()
        if session is None:
            return []
        return await self.completions.for_session(session["id"])

    async def session_with_completions(self, session_id: int) -> Dict[str, Any]:
        session = await self.sessions.fetch(session_id)
        return {"session": session, "completions": await self.completions.for_session(session_id)}

    async def delete_session(self, session_id: int) -> None:
        async with self._lock:
            await self.sessions.delete(session_id)
