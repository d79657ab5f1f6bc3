"""
beatsteps - Step Classifier
Maps a BPM estimate onto one of four intensity levels with hysteresis.
"""

from enum import IntEnum
from typing import Callable, Optional

from calibration import ThresholdSet
from config import ClassifierConfig
from logging_utils import log_event


class Level(IntEnum):
    IDLE = 0
    GENTLE = 1
    MODERATE = 2
    ENERGETIC = 3


def target_level(bpm: float, thresholds: ThresholdSet) -> Level:
    """Level the BPM falls into, ignoring the current level."""
    if bpm >= thresholds.very_fast:
        return Level.ENERGETIC
    if bpm >= thresholds.fast:
        return Level.ENERGETIC
    if bpm >= thresholds.medium:
        return Level.MODERATE
    if bpm >= thresholds.slow:
        return Level.GENTLE
    return Level.IDLE


def boundary_for_level(level: Level, thresholds: ThresholdSet) -> float:
    """Threshold a level is held by: slow/medium/fast/very_fast for 0/1/2/3."""
    return thresholds.as_tuple()[int(level)]


class StepClassifier:
    """
    Holds the current level and moves it only when the BPM clears the current
    level's boundary by ``hysteresis_bpm`` in the direction of the target.
    The four thresholds are treated as independent boundaries.
    """

    def __init__(self, config: ClassifierConfig,
                 level_callback: Optional[Callable[[Level, float], None]] = None):
        self.hysteresis_bpm = config.hysteresis_bpm
        self.level_callback = level_callback
        self.level = Level.IDLE

    def classify(self, bpm: float, thresholds: ThresholdSet, source: str = "tempo") -> bool:
        """Apply one BPM reading. Returns True if the level changed."""
        target = target_level(bpm, thresholds)
        current_threshold = boundary_for_level(self.level, thresholds)

        if target > self.level and bpm > current_threshold + self.hysteresis_bpm:
            self._switch(target, bpm, source)
            return True
        if target < self.level and bpm < current_threshold - self.hysteresis_bpm:
            self._switch(target, bpm, source)
            return True
        return False

    def force(self, level) -> bool:
        """Set the level directly (stop/reset). Returns True if it changed."""
        try:
            level = Level(level)
        except ValueError:
            raise ValueError(f"Level must be 0-3, got {level!r}") from None
        if level == self.level:
            return False
        previous = self.level
        self.level = level
        log_event("INFO", "Step", "Level forced", previous=int(previous), level=int(level))
        if self.level_callback:
            self.level_callback(level, 0.0)
        return True

    def _switch(self, target: Level, bpm: float, source: str) -> None:
        previous = self.level
        self.level = target
        log_event("INFO", "Step", "Level changed", previous=int(previous), level=int(target),
                  bpm=f"{bpm:.1f}", source=source)
        if self.level_callback:
            self.level_callback(target, bpm)

    def reset(self) -> None:
        self.force(Level.IDLE)
