import numpy as np


def band_bin_range(
    n_bins: int,
    sample_rate: int,
    freq_low: float,
    freq_high: float,
) -> tuple[int, int]:
    """Return the [start, end) bin slice covering a Hz range of an n_bins spectrum.

    Bins span 0..nyquist. The end bin is floor(freq_high * n_bins / nyquist)
    and the slice always holds at least one bin.
    """
    if n_bins <= 0 or sample_rate <= 0:
        return 0, 0

    nyquist = sample_rate / 2
    start = max(0, min(n_bins - 1, int(np.floor(freq_low * n_bins / nyquist))))
    end = min(n_bins, int(np.floor(freq_high * n_bins / nyquist)))
    return start, max(start + 1, end)


def band_mean(
    spectrum: np.ndarray | None,
    sample_rate: int,
    freq_low: float,
    freq_high: float,
) -> float | None:
    """Arithmetic mean magnitude of a Hz range, or None for a missing spectrum."""
    if spectrum is None or len(spectrum) == 0:
        return None

    start, end = band_bin_range(len(spectrum), sample_rate, freq_low, freq_high)
    return float(np.mean(spectrum[start:end]))


def split_half_means(spectrum: np.ndarray | None) -> tuple[float, float] | None:
    """Mean of the lower and upper halves of a spectrum (bass, treble)."""
    if spectrum is None or len(spectrum) < 2:
        return None

    half = len(spectrum) // 2
    return float(np.mean(spectrum[:half])), float(np.mean(spectrum[half:]))
