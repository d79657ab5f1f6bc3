"""
beatsteps - Tempo Estimator
Median inter-beat interval over the most recent beats, converted to BPM.
"""

from collections import deque
from typing import Optional

from config import TempoConfig


class TempoEstimator:
    """Keeps recent beat timestamps and turns them into a validated BPM."""

    def __init__(self, config: TempoConfig):
        self.min_beats = config.min_beats
        self.min_bpm = config.min_bpm
        self.max_bpm = config.max_bpm
        self.beat_times: deque[float] = deque(maxlen=config.beat_history_size)
        self.tempo: float = 0.0  # 0 = no valid estimate yet

    def add_beat(self, timestamp: float) -> Optional[float]:
        """Record a beat and re-estimate.

        Returns the newly accepted BPM, or None when there are too few beats or
        the estimate falls outside [min_bpm, max_bpm] (the previous tempo is kept).
        """
        self.beat_times.append(timestamp)
        if len(self.beat_times) < self.min_beats:
            return None

        bpm = self.estimate_bpm(self.beat_times)
        if bpm is None or not (self.min_bpm <= bpm <= self.max_bpm):
            return None

        self.tempo = bpm
        return bpm

    @staticmethod
    def estimate_bpm(beat_times) -> Optional[float]:
        """60 / median interval, median taken as sorted(intervals)[n // 2]."""
        times = list(beat_times)
        intervals = sorted(b - a for a, b in zip(times, times[1:]))
        if not intervals:
            return None
        median_interval = intervals[len(intervals) // 2]
        if median_interval <= 0:
            return None
        return 60.0 / median_interval

    @property
    def has_tempo(self) -> bool:
        return self.tempo > 0

    def reset(self):
        self.beat_times.clear()
        self.tempo = 0.0
