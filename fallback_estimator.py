"""
beatsteps - Fallback Estimator
Coarse BPM guess from broadband energy for when no beat tempo exists yet.
"""

from config import FallbackConfig


class FallbackEstimator:
    def __init__(self, config: FallbackConfig):
        self.config = config

    def guess_bpm(self, bass_mean: float, treble_mean: float) -> float:
        """Map combined energy to a BPM band, then nudge by treble/bass balance."""
        cfg = self.config
        combined = (bass_mean + treble_mean) / 2

        bpm = cfg.floor_bpm
        for min_energy, band_bpm in cfg.energy_bands:
            if combined > min_energy:
                bpm = band_bpm
                break

        if bass_mean > 0:
            ratio = treble_mean / bass_mean
        else:
            # Treble over silent bass counts as bright
            ratio = float("inf") if treble_mean > 0 else 1.0
        if ratio > cfg.bright_ratio:
            bpm += cfg.bright_bonus_bpm
        elif ratio < cfg.dark_ratio:
            bpm -= cfg.dark_penalty_bpm
        return float(bpm)
