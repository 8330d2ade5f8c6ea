import os
import sys
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from algorithms import (
    MathTools,
    WeightConverter,
    calculate_1rm,
    calculate_1rm_brzycki,
    calculate_1rm_lombardi,
)
from algorithms.math_tools import round_half_up


class MathToolsTestCase(unittest.TestCase):
    def test_epley(self) -> None:
        self.assertEqual(calculate_1rm(100, 5), 117)
        self.assertEqual(calculate_1rm(200, 10), 267)
        self.assertEqual(calculate_1rm(135, 1), 135)

    def test_brzycki(self) -> None:
        self.assertEqual(calculate_1rm_brzycki(100, 5), 113)
        self.assertEqual(calculate_1rm_brzycki(200, 10), 267)
        self.assertEqual(calculate_1rm_brzycki(135, 1), 135)
        with self.assertRaises(ValueError):
            calculate_1rm_brzycki(100, 37)

    def test_lombardi(self) -> None:
        # 100 * 5 ** 0.1 == 117.46
        self.assertEqual(calculate_1rm_lombardi(100, 5), 117)
        self.assertEqual(calculate_1rm_lombardi(135, 1), 135)

    def test_edge_cases_for_every_formula(self) -> None:
        for name, func in MathTools.formulas().items():
            with self.subTest(formula=name):
                for weight in (0, 45, 102.5, 9999):
                    self.assertEqual(func(weight, 1), weight)
                    self.assertEqual(func(weight, 0), 0)
                with self.assertRaises(ValueError):
                    func(100, -1)
        self.assertEqual(calculate_1rm(0, 5), 0)

    def test_estimate_selects_formula(self) -> None:
        self.assertEqual(MathTools.estimate_1rm(100, 5), 117)
        self.assertEqual(MathTools.estimate_1rm(100, 5, "brzycki"), 113)
        self.assertEqual(MathTools.estimate_1rm(100, 5, "lombardi"), 117)
        with self.assertRaises(ValueError):
            MathTools.estimate_1rm(100, 5, "mayhew")

    def test_round_half_up(self) -> None:
        self.assertEqual(round_half_up(112.5), 113)
        self.assertEqual(round_half_up(112.49), 112)

    def test_volume(self) -> None:
        self.assertEqual(MathTools.volume([(100.0, 10), (150.0, 5)]), 1750.0)
        self.assertEqual(MathTools.volume([]), 0.0)


class WeightConverterTestCase(unittest.TestCase):
    def test_lbs_to_kg(self) -> None:
        self.assertEqual(WeightConverter.convert(100, "lbs", "kg"), 45.36)
        self.assertEqual(WeightConverter.convert(225, "lbs", "kg"), 102.06)

    def test_kg_to_lbs(self) -> None:
        self.assertEqual(WeightConverter.convert(45.36, "kg", "lbs"), 100)
        self.assertEqual(WeightConverter.convert(102.06, "kg", "lbs"), 225)

    def test_same_unit(self) -> None:
        self.assertEqual(WeightConverter.convert(45.36, "kg", "kg"), 45.36)
        with self.assertRaises(ValueError):
            WeightConverter.convert(1, "st", "kg")


if __name__ == "__main__":
    unittest.main()
