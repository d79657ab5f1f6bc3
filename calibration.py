"""
beatsteps - Calibration Engine
Collects BPM samples during a warm-up window after session start and derives
track-specific level thresholds from their distribution.
"""

from collections import deque
from dataclasses import dataclass
from enum import IntEnum
from typing import Iterable, Optional

from config import CalibrationConfig
from logging_utils import log_event


@dataclass(frozen=True)
class ThresholdSet:
    """Lower BPM boundaries for levels 1-3 (fast and very_fast both open level 3)."""
    slow: float
    medium: float
    fast: float
    very_fast: float

    def as_tuple(self) -> tuple[float, float, float, float]:
        return (self.slow, self.medium, self.fast, self.very_fast)

    def is_ordered(self) -> bool:
        return self.slow <= self.medium <= self.fast <= self.very_fast


DEFAULT_THRESHOLDS = ThresholdSet(slow=70.0, medium=90.0, fast=120.0, very_fast=150.0)


class CalibrationState(IntEnum):
    COLLECTING = 0
    COMPLETE = 1


def default_thresholds(config: CalibrationConfig) -> ThresholdSet:
    return ThresholdSet(
        slow=config.default_slow,
        medium=config.default_medium,
        fast=config.default_fast,
        very_fast=config.default_very_fast,
    )


def compute_thresholds(
    samples: Iterable[float],
    config: Optional[CalibrationConfig] = None,
) -> ThresholdSet:
    """Derive thresholds from collected BPM samples.

    Consistent-tempo tracks (range < narrow_range_bpm) get a tight band centred
    on the midpoint. Variable-tempo tracks get quartile-based boundaries, which
    are not guaranteed to be ascending.
    """
    config = config or CalibrationConfig()
    ordered = sorted(samples)
    if not ordered or len(ordered) < config.min_samples:
        return default_thresholds(config)

    low, high = ordered[0], ordered[-1]
    spread = high - low

    if spread < config.narrow_range_bpm:
        center = (low + high) / 2
        return ThresholdSet(
            slow=center - 8,
            medium=center - 3,
            fast=center + 3,
            very_fast=center + 8,
        )

    n = len(ordered)
    q1 = ordered[int(n * 0.25)]
    median = ordered[int(n * 0.5)]
    q3 = ordered[int(n * 0.75)]
    return ThresholdSet(
        slow=max(low + spread * 0.15, q1 - 5),
        medium=max(q1 + 5, median - 10),
        fast=max(median + 5, q3 - 8),
        very_fast=max(q3 + 3, high - spread * 0.1),
    )


class CalibrationEngine:
    """Per-session calibration state: collecting -> complete, exactly once."""

    def __init__(self, config: CalibrationConfig):
        self.config = config
        self.samples: deque[float] = deque(maxlen=config.max_samples)
        self.state = CalibrationState.COLLECTING
        self.started_at: float = 0.0
        self._thresholds: Optional[ThresholdSet] = None
        self._defaults = default_thresholds(config)

    @property
    def collecting(self) -> bool:
        return self.state == CalibrationState.COLLECTING

    @property
    def thresholds(self) -> ThresholdSet:
        """Active thresholds: defaults while collecting, else the session set."""
        if self.collecting or self._thresholds is None:
            return self._defaults
        return self._thresholds

    def window_elapsed(self, now: float) -> bool:
        return now - self.started_at >= self.config.window_s

    def add_sample(self, bpm: float, now: float) -> bool:
        """Offer an accepted BPM estimate.

        Inside the window the sample is stored. Once the window has elapsed the
        first offered sample finalizes calibration instead. Returns True when
        this call finalized.
        """
        if not self.collecting:
            return False
        if not self.window_elapsed(now):
            self.samples.append(bpm)
            return False
        self.finalize(now)
        return True

    def finalize(self, now: float) -> ThresholdSet:
        """Compute the session thresholds; later calls return the same set."""
        if not self.collecting and self._thresholds is not None:
            return self._thresholds

        thresholds = compute_thresholds(self.samples, self.config)
        if not thresholds.is_ordered():
            if self.config.sort_thresholds:
                thresholds = ThresholdSet(*sorted(thresholds.as_tuple()))
            else:
                log_event("WARN", "Calibration", "Thresholds not in ascending order, using as-is",
                          thresholds=_fmt(thresholds))

        self._thresholds = thresholds
        self.state = CalibrationState.COMPLETE
        log_event(
            "INFO",
            "Calibration",
            "Calibration complete",
            samples=len(self.samples),
            elapsed=f"{now - self.started_at:.1f}s",
            defaults=len(self.samples) < self.config.min_samples,
            thresholds=_fmt(thresholds),
        )
        return thresholds

    def reset(self, now: float):
        self.samples.clear()
        self.state = CalibrationState.COLLECTING
        self.started_at = now
        self._thresholds = None


def _fmt(thresholds: ThresholdSet) -> str:
    return "/".join(f"{v:.1f}" for v in thresholds.as_tuple())
