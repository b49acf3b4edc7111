"""
Unit tests for the crf search progress estimate.
"""

import unittest

from lazy_crf.core.modules.optimization.progress_estimator import (
    BAR_LEN, guess_progress, guess_total_units
)


class TestGuessTotalUnits(unittest.TestCase):

    def test_first_four_runs(self):
        for run in (1, 2, 3, 4):
            self.assertEqual(guess_total_units(run, False), 8)
            self.assertEqual(guess_total_units(run, True), 6)

    def test_later_runs_assume_current_is_last(self):
        self.assertEqual(guess_total_units(5, False), 11)
        self.assertEqual(guess_total_units(6, False), 14)
        self.assertEqual(guess_total_units(5, True), 9)
        self.assertEqual(guess_total_units(6, True), 12)


class TestGuessProgress(unittest.TestCase):

    def test_known_values(self):
        self.assertAlmostEqual(guess_progress(1, 0.5, False), 62.5)
        self.assertAlmostEqual(guess_progress(2, 0.0, False), 125.0)
        self.assertAlmostEqual(guess_progress(3, 0.0, True), 2000 / 6)
        self.assertAlmostEqual(guess_progress(3, 1.0, False), 625.0)
        self.assertAlmostEqual(guess_progress(4, 1.0, True), 1000.0)
        self.assertAlmostEqual(guess_progress(4, 1.0, False), 1000.0)
        self.assertAlmostEqual(guess_progress(5, 0.0, False), 8000 / 11)

    def test_monotonic_within_iteration_and_bounded(self):
        steps = [i / 20 for i in range(21)]
        for quick in (False, True):
            for run in range(1, 12):
                if quick and run < 3:
                    continue
                values = [guess_progress(run, p, quick) for p in steps]
                self.assertEqual(values, sorted(values), f"run {run} quick {quick}")
                self.assertTrue(all(0.0 <= v <= BAR_LEN for v in values))

    def test_out_of_range_fraction_clamped(self):
        self.assertEqual(guess_progress(1, -0.5, False), 0.0)
        self.assertAlmostEqual(guess_progress(1, 2.0, False), 125.0)

    def test_custom_bar_len(self):
        self.assertAlmostEqual(guess_progress(1, 1.0, False, bar_len=80), 10.0)

    def test_run_must_be_positive(self):
        with self.assertRaises(ValueError):
            guess_progress(0, 0.5, False)


if __name__ == '__main__':
    unittest.main()
