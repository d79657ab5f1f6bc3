import unittest
from unittest import mock

import numpy as np

from calibration import DEFAULT_THRESHOLDS
from config import Config
from session import IntensitySession
from step_classifier import Level

TICK_S = 0.03125  # 32 Hz, exact in binary
BEAT_EVERY = 16  # ticks -> 0.5 s -> 120 BPM


def make_snapshot(low: float, high: float = 0.0, n_bins: int = 512) -> np.ndarray:
    """Lower half filled with ``low`` (bass), upper half with ``high`` (treble)."""
    snapshot = np.full(n_bins, high, dtype=np.float64)
    snapshot[: n_bins // 2] = low
    return snapshot


def feed_pulses(session: IntensitySession, seconds: float, start: float = 0.0) -> float:
    """Feed a 120 BPM bass pulse train; returns the time after the last tick."""
    quiet = make_snapshot(10.0)
    loud = make_snapshot(100.0)
    ticks = int(round(seconds / TICK_S))
    for i in range(ticks):
        snapshot = loud if i % BEAT_EVERY == 0 and i > 0 else quiet
        session.on_energy_tick(snapshot, start + i * TICK_S)
    return start + ticks * TICK_S


class TestIntensitySession(unittest.TestCase):
    def setUp(self):
        patcher = mock.patch("session.log_event")
        patcher.start()
        self.addCleanup(patcher.stop)
        self.levels = []
        self.session = IntensitySession(Config(), lambda level, bpm: self.levels.append(level))

    def test_initial_state(self):
        self.session.start(now=0.0)
        status = self.session.get_status()
        self.assertEqual(self.session.level, Level.IDLE)
        self.assertIsNone(self.session.tempo)
        self.assertTrue(status['running'])
        self.assertTrue(status['calibrating'])
        self.assertEqual(self.session.thresholds, DEFAULT_THRESHOLDS)

    def test_pulse_train_estimates_120_bpm(self):
        self.session.start(now=0.0)
        feed_pulses(self.session, 10.0)

        self.assertAlmostEqual(self.session.tempo, 120.0, places=3)
        self.assertEqual(self.session.beat_count, 19)
        # Defaults: 120 >= fast
        self.assertEqual(self.session.level, Level.ENERGETIC)
        self.assertIn(Level.ENERGETIC, self.levels)

    def test_calibration_finalizes_after_window(self):
        self.session.start(now=0.0)
        feed_pulses(self.session, 35.0)

        status = self.session.get_status()
        self.assertFalse(status['calibrating'])
        self.assertEqual(status['calibration_samples'], 50)
        for got, want in zip(self.session.thresholds.as_tuple(), (112.0, 117.0, 123.0, 128.0)):
            self.assertAlmostEqual(got, want, places=3)
        # 120 BPM sits between medium and fast of the calibrated set
        self.assertEqual(self.session.level, Level.MODERATE)

    def test_stop_clears_session_state(self):
        self.session.start(now=0.0)
        feed_pulses(self.session, 10.0)
        self.session.stop()

        status = self.session.get_status()
        self.assertFalse(status['running'])
        self.assertEqual(self.session.level, Level.IDLE)
        self.assertIsNone(self.session.tempo)
        self.assertEqual(status['beat_count'], 0)
        self.assertEqual(status['beat_history'], 0)
        self.assertEqual(status['calibration_samples'], 0)
        self.assertTrue(status['calibrating'])
        self.assertEqual(len(self.session.spike_detector.energy_history), 0)
        self.assertEqual(self.levels[-1], Level.IDLE)

    def test_ticks_ignored_when_stopped(self):
        self.assertFalse(self.session.on_energy_tick(make_snapshot(100.0), 1.0))
        self.assertIsNone(self.session.on_fallback_tick(make_snapshot(100.0), 1.0))
        self.assertEqual(len(self.session.spike_detector.energy_history), 0)

    def test_reset_keeps_running_and_restarts_calibration(self):
        self.session.start(now=0.0)
        end = feed_pulses(self.session, 10.0)
        self.session.reset(now=end)

        status = self.session.get_status()
        self.assertTrue(status['running'])
        self.assertEqual(status['level'], 0)
        self.assertIsNone(status['bpm'])
        self.assertEqual(self.session.calibration.started_at, end)

        feed_pulses(self.session, 5.0, start=end)
        self.assertAlmostEqual(self.session.tempo, 120.0, places=3)

    def test_missing_snapshot_is_no_op(self):
        self.session.start(now=0.0)
        self.assertFalse(self.session.on_energy_tick(None, 0.1))
        self.assertFalse(self.session.on_energy_tick(np.array([]), 0.2))
        self.assertIsNone(self.session.on_fallback_tick(None, 1.0))
        self.assertEqual(len(self.session.spike_detector.energy_history), 0)

    def test_fallback_drives_level_without_tempo(self):
        self.session.start(now=0.0)
        bpm = self.session.on_fallback_tick(make_snapshot(130.0, 130.0), 1.0)

        self.assertEqual(bpm, 140.0)
        self.assertEqual(self.session.level, Level.ENERGETIC)
        self.assertIsNone(self.session.tempo)

    def test_fallback_inactive_once_tempo_exists(self):
        self.session.start(now=0.0)
        feed_pulses(self.session, 5.0)
        self.assertIsNotNone(self.session.tempo)
        self.assertIsNone(self.session.on_fallback_tick(make_snapshot(10.0, 10.0), 5.0))

    def test_fallback_inactive_after_calibration(self):
        self.session.start(now=0.0)
        self.session.finalize_calibration(now=1.0)
        self.assertIsNone(self.session.on_fallback_tick(make_snapshot(130.0, 130.0), 2.0))
        self.assertEqual(self.session.level, Level.IDLE)

    def test_fallback_disabled_by_config(self):
        config = Config()
        config.fallback.enabled = False
        session = IntensitySession(config)
        session.start(now=0.0)
        self.assertIsNone(session.on_fallback_tick(make_snapshot(130.0, 130.0), 1.0))

    def test_process_energy_bypasses_sampler(self):
        self.session.start(now=0.0)
        for i in range(10):
            self.session.process_energy(5.0, i * TICK_S)
        self.assertTrue(self.session.process_energy(50.0, 0.5))
        self.assertEqual(self.session.beat_count, 1)

    def test_stop_logs_summary(self):
        self.session.start(now=0.0)
        feed_pulses(self.session, 3.0)
        with mock.patch("session.log_event") as log_event_mock:
            self.session.stop()

        messages = [c.args[2] for c in log_event_mock.call_args_list]
        self.assertIn("Session summary", messages)
        summary = next(c for c in log_event_mock.call_args_list if c.args[2] == "Session summary")
        self.assertEqual(summary.kwargs["ticks"], 96)
        self.assertEqual(summary.kwargs['beats'], 5)


class TestIntensitySessionLogging(unittest.TestCase):
    def test_level_changes_reach_callback_with_real_logger(self):
        levels = []
        session = IntensitySession(Config(), lambda level, bpm: levels.append((level, bpm)))

        with self.assertLogs("beatsteps", level="INFO") as captured:
            session.start(now=0.0)
            self.assertEqual(session.on_fallback_tick(make_snapshot(130.0, 130.0), 1.0), 140.0)
            session.stop()

        self.assertEqual(levels, [(Level.ENERGETIC, 140.0), (Level.IDLE, 0.0)])
        self.assertFalse(session.running)
        messages = [r.getMessage() for r in captured.records]
        self.assertIn("Level changed", messages)
        self.assertIn("Stopped", messages)

    def test_stop_clears_running_when_callback_fails(self):
        def callback(level, bpm):
            if level == Level.IDLE:
                raise RuntimeError("display gone")

        session = IntensitySession(Config(), callback)
        with self.assertLogs("beatsteps", level="INFO"):
            session.start(now=0.0)
            session.on_fallback_tick(make_snapshot(130.0, 130.0), 1.0)
            with self.assertRaises(RuntimeError):
                session.stop()
        self.assertFalse(session.running)


if __name__ == "__main__":
    unittest.main()
