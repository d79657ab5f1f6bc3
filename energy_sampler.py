"""
beatsteps - Energy Sampler
Reduces a frequency snapshot to the scalar energies the engine works with.
"""

from typing import Optional

import numpy as np

from config import AudioConfig, SamplerConfig
from frequency_utils import band_mean, split_half_means


class EnergySampler:
    """Bass-band energy for beat detection, half-band means for the fallback."""

    def __init__(self, sampler_config: SamplerConfig, audio_config: AudioConfig):
        self.config = sampler_config
        self.sample_rate = audio_config.sample_rate

    def bass_energy(self, snapshot: Optional[np.ndarray]) -> Optional[float]:
        """Mean magnitude of the bass band, None when no usable snapshot exists."""
        energy = band_mean(snapshot, self.sample_rate,
                           self.config.bass_freq_low, self.config.bass_freq_high)
        if energy is None or not np.isfinite(energy):
            return None
        return max(0.0, energy)

    def band_means(self, snapshot: Optional[np.ndarray]) -> Optional[tuple[float, float]]:
        """(bass_mean, treble_mean) over the lower and upper halves of the snapshot."""
        means = split_half_means(snapshot)
        if means is None or not all(np.isfinite(m) for m in means):
            return None
        return means
