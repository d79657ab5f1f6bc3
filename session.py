"""
beatsteps - Intensity Session
Owns all session-scoped state and runs the two periodic tick chains:

    energy tick:   snapshot -> EnergySampler -> SpikeDetector -> TempoEstimator
                   -> CalibrationEngine / StepClassifier
    fallback tick: snapshot -> EnergySampler (half-band means) -> FallbackEstimator
                   -> StepClassifier   (only while calibrating with no tempo)

The current Level and tempo are the only state meant to be read from outside.
"""

import threading
import time
from typing import Callable, Optional

import numpy as np

from calibration import CalibrationEngine, ThresholdSet
from config import Config
from energy_sampler import EnergySampler
from fallback_estimator import FallbackEstimator
from logging_utils import log_event
from spike_detector import SpikeDetector
from step_classifier import Level, StepClassifier
from tempo_estimator import TempoEstimator


class IntensitySession:
    def __init__(self, config: Config,
                 level_callback: Optional[Callable[[Level, float], None]] = None):
        self.config = config
        self.sampler = EnergySampler(config.sampler, config.audio)
        self.spike_detector = SpikeDetector(config.spike)
        self.tempo_estimator = TempoEstimator(config.tempo)
        self.calibration = CalibrationEngine(config.calibration)
        self.classifier = StepClassifier(config.classifier, level_callback)
        self.fallback = FallbackEstimator(config.fallback)

        self.running = False
        self._lock = threading.RLock()

        # Shutdown summary stats
        self._session_started_at: float = 0.0
        self._energy_ticks: int = 0
        self._fallback_guesses: int = 0
        self._rejected_estimates: int = 0
        self._level_changes: int = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self, now: float) -> None:
        """Begin a new playback session; calibration collects from ``now``."""
        with self._lock:
            self._reset_state(now)
            self.running = True
        log_event("INFO", "Session", "Started", window_s=self.config.calibration.window_s)

    def stop(self) -> None:
        """End the session: log the summary, clear state and return to level 0."""
        with self._lock:
            try:
                self._log_shutdown_summary()
                self._reset_state(0.0)
            finally:
                self.running = False
        log_event("INFO", "Session", "Stopped")

    def reset(self, now: float) -> None:
        """Clear session state (new track) without changing the running flag."""
        with self._lock:
            self._reset_state(now)
        log_event("INFO", "Session", "Reset", running=self.running)

    def _reset_state(self, now: float) -> None:
        self.spike_detector.reset()
        self.tempo_estimator.reset()
        self.calibration.reset(now)
        self.classifier.reset()
        self._session_started_at = time.time()
        self._energy_ticks = 0
        self._fallback_guesses = 0
        self._rejected_estimates = 0
        self._level_changes = 0

    # ------------------------------------------------------------------
    # Ticks
    # ------------------------------------------------------------------
    def on_energy_tick(self, snapshot: Optional[np.ndarray], now: float) -> bool:
        """High-rate tick. Returns True if a beat was detected."""
        with self._lock:
            if not self.running:
                return False
            energy = self.sampler.bass_energy(snapshot)
            if energy is None:
                return False
            self._energy_ticks += 1
            return self._process_energy(energy, now)

    def on_fallback_tick(self, snapshot: Optional[np.ndarray], now: float) -> Optional[float]:
        """Low-rate tick. Returns the fallback BPM guess when one was applied."""
        with self._lock:
            if not self.running or not self.config.fallback.enabled:
                return None
            if not self.calibration.collecting or self.tempo_estimator.has_tempo:
                return None
            means = self.sampler.band_means(snapshot)
            if means is None:
                return None

            bass_mean, treble_mean = means
            bpm = self.fallback.guess_bpm(bass_mean, treble_mean)
            self._fallback_guesses += 1
            log_event("DEBUG", "Fallback", "Energy tempo guess", bpm=f"{bpm:.0f}",
                      bass=f"{bass_mean:.1f}", treble=f"{treble_mean:.1f}")
            if self.classifier.classify(bpm, self.calibration.thresholds, source="fallback"):
                self._level_changes += 1
            return bpm

    def process_energy(self, energy: float, now: float) -> bool:
        """Feed a precomputed bass energy sample (bypasses the sampler)."""
        with self._lock:
            if not self.running:
                return False
            self._energy_ticks += 1
            return self._process_energy(energy, now)

    def _process_energy(self, energy: float, now: float) -> bool:
        if not self.spike_detector.update(energy, now):
            return False

        log_event("DEBUG", "Beat", "Beat detected", energy=f"{energy:.2f}",
                  threshold=f"{self.spike_detector.last_threshold:.2f}",
                  count=self.spike_detector.beat_count)
        self._on_beat(now)
        return True

    def _on_beat(self, now: float) -> None:
        bpm = self.tempo_estimator.add_beat(now)
        if bpm is None:
            if len(self.tempo_estimator.beat_times) >= self.tempo_estimator.min_beats:
                self._rejected_estimates += 1
            return

        log_event("DEBUG", "Tempo", "Tempo estimate", bpm=f"{bpm:.1f}")
        self.calibration.add_sample(bpm, now)
        if self.classifier.classify(bpm, self.calibration.thresholds, source="tempo"):
            self._level_changes += 1

    def finalize_calibration(self, now: float) -> ThresholdSet:
        """Close the calibration window early and fix the session thresholds."""
        with self._lock:
            return self.calibration.finalize(now)

    # ------------------------------------------------------------------
    # Outputs
    # ------------------------------------------------------------------
    @property
    def level(self) -> Level:
        with self._lock:
            return self.classifier.level

    @property
    def tempo(self) -> Optional[float]:
        """Current beat-derived BPM, None while unknown."""
        with self._lock:
            return self.tempo_estimator.tempo if self.tempo_estimator.has_tempo else None

    @property
    def thresholds(self) -> ThresholdSet:
        with self._lock:
            return self.calibration.thresholds

    @property
    def beat_count(self) -> int:
        with self._lock:
            return self.spike_detector.beat_count

    def get_status(self) -> dict:
        """Current engine state for display."""
        with self._lock:
            tempo = self.tempo_estimator.tempo
            return {
                'running': self.running,
                'level': int(self.classifier.level),
                'bpm': tempo if tempo > 0 else None,
                'beat_count': self.spike_detector.beat_count,
                'beat_history': len(self.tempo_estimator.beat_times),
                'calibrating': self.calibration.collecting,
                'calibration_samples': len(self.calibration.samples),
                'thresholds': self.calibration.thresholds.as_tuple(),
                'energy_threshold': self.spike_detector.last_threshold,
            }

    def _log_shutdown_summary(self) -> None:
        if self._energy_ticks <= 0:
            return

        tempo = self.tempo_estimator.tempo
        log_event(
            "INFO",
            "Session",
            "Session summary",
            seconds=f"{max(0.0, time.time() - self._session_started_at):.1f}",
            ticks=self._energy_ticks,
            beats=self.spike_detector.beat_count,
            bpm=f"{tempo:.1f}" if tempo > 0 else "unknown",
            rejected=self._rejected_estimates,
            fallback_guesses=self._fallback_guesses,
            level_changes=self._level_changes,
            calibrated=not self.calibration.collecting,
            thresholds="/".join(f"{v:.1f}" for v in self.calibration.thresholds.as_tuple()),
        )
