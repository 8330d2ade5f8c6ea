from __future__ import annotations

import datetime
from typing import Any, Callable, Dict, List, Optional

import numpy as np

from algorithms import MathTools, WeightConverter
from db import (
    CompletionRepository,
    Database,
    ExerciseRepository,
    SetLedgerRepository,
    SettingsRepository,
    WorkoutSessionRepository,
)

RPE_LABELS = {
    1: "Very Light",
    2: "Light",
    3: "Light",
    4: "Moderate",
    5: "Moderate",
    6: "Moderate",
    7: "Hard",
    8: "Hard",
    9: "Very Hard",
    10: "Maximum",
}


def rpe_label(rpe: Optional[int]) -> str:
    return RPE_LABELS.get(rpe, "Unknown")


class StatisticsService:
    """Read-only history and personal record views over stored sets."""

    def __init__(
        self,
        db: Database,
        formula: str = "epley",
        today: Callable[[], datetime.date] = datetime.date.today,
    ) -> None:
        if formula not in MathTools.formulas():
            raise ValueError(f"unknown 1RM formula: {formula}")
        self.formula = formula
        self.sessions = WorkoutSessionRepository(db)
        self.completions = CompletionRepository(db)
        self.ledger = SetLedgerRepository(db)
        self.exercises = ExerciseRepository(db)
        self.settings = SettingsRepository(db)
        self._today = today

    def one_rep_max(self, weight: float, reps: int) -> float:
        """Estimate with the selected formula.

        Brzycki has no value at 37 reps or more; those sets use Epley.
        """
        if self.formula == "brzycki" and reps >= MathTools.BRZYCKI_LIMIT:
            return MathTools.epley_1rm(weight, reps)
        return MathTools.estimate_1rm(weight, reps, self.formula)

    async def sessions_between(self, start: str, end: str) -> List[Dict[str, Any]]:
        """Sessions dated within ``[start, end]``, newest first."""
        return await self.sessions.between(start, end)

    async def history_sessions(self, start: str, end: str) -> List[Dict[str, Any]]:
        """Sessions worth showing in history.

        Completed sessions are always included. Past in-progress sessions
        count as done once they have a completion. Today's session is
        included whatever its status.
        """
        today = self._today().isoformat()
        result = []
        for session in await self.sessions.between(start, end):
            if session["status"] == WorkoutSessionRepository.COMPLETED or session["date"] == today:
                result.append(session)
            elif session["date"] < today and await self.completions.for_session(session["id"]):
                result.append(session)
        return result

    async def exercise_history(self, exercise_id: int, limit: int = 50) -> List[Dict[str, Any]]:
        return await self.ledger.history(exercise_id, limit)

    async def last_used_defaults(self, exercise_id: int) -> Optional[Dict[str, Any]]:
        entries = await self.ledger.history(exercise_id, 1)
        if not entries:
            return None
        last = entries[0]
        return {"weight": last["weight"], "reps": last["reps"], "rpe": last.get("rpe")}

    async def personal_records(
        self, exercise_id: int, unit: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        entries = await self.ledger.for_exercise(exercise_id)
        if not entries:
            return None
        weights = np.array([e["weight"] for e in entries], dtype=float)
        reps = np.array([e["reps"] for e in entries], dtype=int)
        estimates = [self.one_rep_max(w, r) for w, r in zip(weights.tolist(), reps.tolist())]
        record = {
            "exercise_id": exercise_id,
            "max_weight": float(weights.max()),
            "max_reps": int(reps.max()),
            "max_1rm": float(max(estimates)),
            "total_volume": MathTools.volume(zip(weights.tolist(), reps.tolist())),
            "set_count": len(entries),
        }
        if unit is not None:
            exercise = await self.exercises.table.get(exercise_id)
            source = (exercise or {}).get("unit_preference")
            if source is None:
                # weights without a per-exercise unit are in the settings unit
                source = (await self.settings.current())["units"]
            for key in ("max_weight", "max_1rm", "total_volume"):
                record[key] = WeightConverter.convert(record[key], source, unit)
        return record

    async def all_personal_records(self, unit: Optional[str] = None) -> List[Dict[str, Any]]:
        """Records for every exercise with history, strongest estimate first."""
        records = []
        for exercise in await self.exercises.fetch_all_records():
            record = await self.personal_records(exercise["id"], unit)
            if record is not None:
                record["name"] = exercise["name"]
                record["muscle_group"] = exercise["muscle_group"]
                records.append(record)
        records.sort(key=lambda r: r["max_1rm"], reverse=True)
        return records

    async def trend(self, exercise_id: int, per: str = "set") -> List[Dict[str, Any]]:
        """Oldest-first series of weight and estimated 1RM for charting."""
        if per == "set":
            return [
                {
                    "timestamp": e["timestamp"],
                    "weight": e["weight"],
                    "reps": e["reps"],
                    "one_rep_max": self.one_rep_max(e["weight"], e["reps"]),
                }
                for e in await self.ledger.for_exercise(exercise_id)
            ]
        if per == "completion":
            points = []
            for c in await self.completions.for_exercise(exercise_id):
                best = max(c["sets"], key=lambda s: self.one_rep_max(s["weight"], s["reps"]))
                points.append(
                    {
                        "timestamp": c["completed_at"],
                        "weight": max(s["weight"] for s in c["sets"]),
                        "reps": best["reps"],
                        "one_rep_max": self.one_rep_max(best["weight"], best["reps"]),
                        "volume": MathTools.volume((s["weight"], s["reps"]) for s in c["sets"]),
                    }
                )
            return points
        raise ValueError("per must be 'set' or 'completion'")
