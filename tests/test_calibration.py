import unittest
from unittest import mock

from calibration import (
    DEFAULT_THRESHOLDS,
    CalibrationEngine,
    CalibrationState,
    ThresholdSet,
    compute_thresholds,
)
from config import CalibrationConfig


class TestComputeThresholds(unittest.TestCase):
    def assertThresholds(self, actual: ThresholdSet, expected):
        for got, want in zip(actual.as_tuple(), expected):
            self.assertAlmostEqual(got, want, places=6)

    def test_identical_samples_center_on_value(self):
        thresholds = compute_thresholds([100.0] * 50)
        self.assertThresholds(thresholds, (92.0, 97.0, 103.0, 108.0))

    def test_too_few_samples_use_defaults(self):
        thresholds = compute_thresholds([100.0] * 9)
        self.assertEqual(thresholds, DEFAULT_THRESHOLDS)
        self.assertEqual(thresholds.as_tuple(), (70.0, 90.0, 120.0, 150.0))

    def test_empty_samples_use_defaults(self):
        self.assertEqual(compute_thresholds([]), DEFAULT_THRESHOLDS)

    def test_empty_samples_with_zero_minimum_use_defaults(self):
        self.assertEqual(compute_thresholds([], CalibrationConfig(min_samples=0)), DEFAULT_THRESHOLDS)

    def test_narrow_range_uses_midpoint(self):
        samples = [110.0, 118.0, 112.0, 115.0, 111.0, 116.0, 114.0, 113.0, 117.0, 110.5]
        # min 110, max 118 -> centre 114
        self.assertThresholds(compute_thresholds(samples), (106.0, 111.0, 117.0, 122.0))

    def test_wide_range_uses_quartiles(self):
        samples = [150.0, 60.0, 90.0, 70.0, 140.0, 80.0, 130.0, 100.0, 120.0, 110.0]
        # sorted 60..150, range 90, q1=80, median=110, q3=130
        self.assertThresholds(compute_thresholds(samples), (75.0, 100.0, 122.0, 141.0))

    def test_wide_range_can_produce_unordered_thresholds(self):
        samples = [100.0] * 9 + [140.0]
        thresholds = compute_thresholds(samples)
        self.assertThresholds(thresholds, (106.0, 105.0, 105.0, 136.0))
        self.assertFalse(thresholds.is_ordered())


class TestCalibrationEngine(unittest.TestCase):
    def test_defaults_active_while_collecting(self):
        engine = CalibrationEngine(CalibrationConfig())
        engine.reset(now=0.0)
        for i in range(20):
            engine.add_sample(100.0, now=1.0 + i)
        self.assertTrue(engine.collecting)
        self.assertEqual(engine.thresholds, DEFAULT_THRESHOLDS)

    def test_first_sample_after_window_finalizes(self):
        engine = CalibrationEngine(CalibrationConfig(window_s=30.0))
        engine.reset(now=10.0)
        for i in range(12):
            self.assertFalse(engine.add_sample(100.0, now=11.0 + i))

        self.assertTrue(engine.add_sample(180.0, now=40.0))
        self.assertEqual(engine.state, CalibrationState.COMPLETE)
        self.assertEqual(len(engine.samples), 12)
        self.assertEqual(engine.thresholds.as_tuple(), (92.0, 97.0, 103.0, 108.0))

    def test_thresholds_immutable_after_finalize(self):
        engine = CalibrationEngine(CalibrationConfig(window_s=5.0))
        engine.reset(now=0.0)
        for i in range(10):
            engine.add_sample(100.0, now=i * 0.1)
        first = engine.finalize(now=2.0)

        self.assertFalse(engine.add_sample(60.0, now=3.0))
        self.assertIs(engine.finalize(now=10.0), first)
        self.assertEqual(engine.thresholds, first)
        self.assertEqual(len(engine.samples), 10)

    def test_sample_history_is_bounded(self):
        engine = CalibrationEngine(CalibrationConfig(max_samples=50))
        engine.reset(now=0.0)
        for i in range(80):
            engine.add_sample(float(60 + i), now=i * 0.1)
        self.assertEqual(len(engine.samples), 50)
        self.assertEqual(engine.samples[0], 90.0)

    def test_insufficient_samples_finalize_to_defaults(self):
        engine = CalibrationEngine(CalibrationConfig())
        engine.reset(now=0.0)
        engine.add_sample(120.0, now=1.0)
        engine.add_sample(125.0, now=31.0)
        self.assertFalse(engine.collecting)
        self.assertEqual(engine.thresholds, DEFAULT_THRESHOLDS)

    def test_unordered_thresholds_kept_and_logged(self):
        engine = CalibrationEngine(CalibrationConfig())
        engine.reset(now=0.0)
        for bpm in [100.0] * 9 + [140.0]:
            engine.add_sample(bpm, now=1.0)

        with mock.patch("calibration.log_event") as log_event_mock:
            thresholds = engine.finalize(now=30.0)

        self.assertFalse(thresholds.is_ordered())
        levels = [c.args[0] for c in log_event_mock.call_args_list]
        self.assertIn("WARN", levels)

    def test_sort_option_orders_thresholds(self):
        engine = CalibrationEngine(CalibrationConfig(sort_thresholds=True))
        engine.reset(now=0.0)
        for bpm in [100.0] * 9 + [140.0]:
            engine.add_sample(bpm, now=1.0)

        thresholds = engine.finalize(now=30.0)
        self.assertTrue(thresholds.is_ordered())
        for got, want in zip(thresholds.as_tuple(), (105.0, 105.0, 106.0, 136.0)):
            self.assertAlmostEqual(got, want, places=6)

    def test_finalize_without_samples_and_zero_minimum(self):
        engine = CalibrationEngine(CalibrationConfig(min_samples=0))
        engine.reset(now=0.0)
        with mock.patch("calibration.log_event"):
            self.assertEqual(engine.finalize(now=31.0), DEFAULT_THRESHOLDS)
        self.assertFalse(engine.collecting)

    def test_reset_restarts_collection(self):
        engine = CalibrationEngine(CalibrationConfig())
        engine.reset(now=0.0)
        for i in range(10):
            engine.add_sample(100.0, now=1.0)
        engine.finalize(now=30.0)

        engine.reset(now=50.0)
        self.assertTrue(engine.collecting)
        self.assertEqual(engine.started_at, 50.0)
        self.assertEqual(len(engine.samples), 0)
        self.assertEqual(engine.thresholds, DEFAULT_THRESHOLDS)


if __name__ == "__main__":
    unittest.main()
