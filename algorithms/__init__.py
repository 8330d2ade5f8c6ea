from .math_tools import (
    MathTools,
    calculate_1rm,
    calculate_1rm_brzycki,
    calculate_1rm_lombardi,
)
from .weight_converter import WeightConverter

__all__ = [
    "MathTools",
    "WeightConverter",
    "calculate_1rm",
    "calculate_1rm_brzycki",
    "calculate_1rm_lombardi",
]
