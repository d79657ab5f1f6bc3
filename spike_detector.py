"""
beatsteps - Spike Detector
Online beat detection from a stream of bass-band energy samples.
"""

from collections import deque
from typing import Optional

import numpy as np

from config import SpikeConfig


class SpikeDetector:
    """
    Adaptive-threshold energy spike detector.

    Each sample is appended to a bounded rolling history. A beat fires when the
    sample exceeds ``mean(history) * threshold_ratio`` and more than
    ``refractory_s`` has passed since the previous beat. Beats are never
    revoked; the false positives this lets through are accepted.
    """
    __slots__ = ('threshold_ratio', 'refractory_s', 'energy_history',
                 'last_beat_time', 'last_threshold', 'beat_count')

    def __init__(self, config: SpikeConfig):
        self.threshold_ratio = config.threshold_ratio
        self.refractory_s = config.refractory_s
        self.energy_history: deque[float] = deque(maxlen=config.history_size)
        self.last_beat_time: Optional[float] = None
        self.last_threshold: float = 0.0
        self.beat_count: int = 0

    def update(self, energy: float, now: float) -> bool:
        """Feed one energy sample taken at ``now``. Returns True on a beat."""
        self.energy_history.append(energy)
        avg_energy = float(np.mean(self.energy_history))
        self.last_threshold = avg_energy * self.threshold_ratio

        if energy <= self.last_threshold:
            return False
        if self.last_beat_time is not None and now - self.last_beat_time <= self.refractory_s:
            return False

        self.last_beat_time = now
        self.beat_count += 1
        return True

    def reset(self):
        """Clear all state for a fresh session."""
        self.energy_history.clear()
        self.last_beat_time = None
        self.last_threshold = 0.0
        self.beat_count = 0
