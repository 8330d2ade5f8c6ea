import math
from typing import Callable, Dict, Iterable, Tuple

import numpy as np


def round_half_up(value: float) -> int:
    """Round to the nearest whole unit, halves away from zero for positives."""
    return int(math.floor(value + 0.5))


class MathTools:
    """Strength metrics derived from single weight x reps observations."""

    EPLEY_DIVISOR: float = 30.0
    BRZYCKI_NUMERATOR: float = 36.0
    BRZYCKI_LIMIT: int = 37
    LOMBARDI_EXPONENT: float = 0.1

    @staticmethod
    def _edge_case(weight: float, reps: int) -> float | None:
        if reps < 0:
            raise ValueError("reps must be non-negative")
        if reps == 0:
            return 0
        if reps == 1:
            return weight
        return None

    @classmethod
    def epley_1rm(cls, weight: float, reps: int) -> float:
        """Estimated one-rep max: ``weight * (1 + reps / 30)``."""
        edge = cls._edge_case(weight, reps)
        if edge is not None:
            return edge
        return round_half_up(weight * (1 + reps / cls.EPLEY_DIVISOR))

    @classmethod
    def brzycki_1rm(cls, weight: float, reps: int) -> float:
        """Estimated one-rep max: ``weight * 36 / (37 - reps)``."""
        edge = cls._edge_case(weight, reps)
        if edge is not None:
            return edge
        if reps >= cls.BRZYCKI_LIMIT:
            raise ValueError(f"Brzycki formula requires reps below {cls.BRZYCKI_LIMIT}")
        return round_half_up(weight * (cls.BRZYCKI_NUMERATOR / (cls.BRZYCKI_LIMIT - reps)))

    @classmethod
    def lombardi_1rm(cls, weight: float, reps: int) -> float:
        """Estimated one-rep max: ``weight * reps ** 0.1``.

        ``lombardi_1rm(100, 5)`` is 117 (``100 * 5 ** 0.1 == 117.46``), not
        the 115 sometimes quoted for it.
        """
        edge = cls._edge_case(weight, reps)
        if edge is not None:
            return edge
        return round_half_up(weight * reps ** cls.LOMBARDI_EXPONENT)

    @classmethod
    def formulas(cls) -> Dict[str, Callable[[float, int], float]]:
        return {
            "epley": cls.epley_1rm,
            "brzycki": cls.brzycki_1rm,
            "lombardi": cls.lombardi_1rm,
        }

    @classmethod
    def estimate_1rm(cls, weight: float, reps: int, formula: str = "epley") -> float:
        try:
            func = cls.formulas()[formula]
        except KeyError:
            raise ValueError(f"unknown 1RM formula: {formula}") from None
        return func(weight, reps)

    @staticmethod
    def volume(sets: Iterable[Tuple[float, int]]) -> float:
        """Total volume as the sum of weight times reps."""
        pairs = np.array(list(sets), dtype=float).reshape(-1, 2)
        return float(np.dot(pairs[:, 0], pairs[:, 1])) if len(pairs) else 0.0


calculate_1rm = MathTools.epley_1rm
calculate_1rm_brzycki = MathTools.brzycki_1rm
calculate_1rm_lombardi = MathTools.lombardi_1rm
