"""
beatsteps - Spectrum conversion
Turns raw audio blocks into byte-scaled (0-255) frequency magnitude snapshots.
"""

import numpy as np

_window_cache: dict[int, np.ndarray] = {}


def _hanning(n: int) -> np.ndarray:
    window = _window_cache.get(n)
    if window is None:
        window = np.hanning(n).astype(np.float32)
        _window_cache[n] = window
    return window


def smoothed_magnitudes(
    block: np.ndarray,
    previous: np.ndarray | None = None,
    smoothing: float = 0.8,
) -> np.ndarray:
    """Hann-windowed magnitude spectrum of a mono block, len(block) // 2 bins.

    Magnitudes are normalised by the block length and blended with the previous
    frame: out = smoothing * previous + (1 - smoothing) * current.
    """
    block = np.asarray(block, dtype=np.float32)
    n = len(block)
    if n < 2:
        return np.zeros(0, dtype=np.float32)

    spectrum = np.abs(np.fft.rfft(block * _hanning(n)))[: n // 2] / n
    if previous is not None and len(previous) == len(spectrum):
        spectrum = smoothing * previous + (1.0 - smoothing) * spectrum
    return spectrum.astype(np.float32)


def to_byte_scale(
    magnitudes: np.ndarray,
    min_db: float = -100.0,
    max_db: float = -30.0,
) -> np.ndarray:
    """Map magnitudes to 0-255 linearly across [min_db, max_db]."""
    if max_db <= min_db:
        raise ValueError(f"max_db ({max_db}) must exceed min_db ({min_db})")

    db = 20.0 * np.log10(np.maximum(magnitudes, 1e-12))
    scaled = 255.0 * (db - min_db) / (max_db - min_db)
    return np.clip(np.floor(scaled), 0, 255).astype(np.uint8)
