# beatsteps Configuration
# All default values and constants

from dataclasses import dataclass, field, is_dataclass
from typing import List

from logging_utils import log_event


CURRENT_CONFIG_VERSION = 1


@dataclass
class AudioConfig:
    """Live capture and spectrum conversion"""
    device_index: int | None = None   # None = system default input
    sample_rate: int = 44100
    channels: int = 1
    fft_size: int = 1024              # Snapshot length is fft_size // 2 bins
    smoothing: float = 0.8            # Frame-to-frame magnitude smoothing (0.0-0.99)
    min_db: float = -100.0            # dB mapped to byte value 0
    max_db: float = -30.0             # dB mapped to byte value 255


@dataclass
class SamplerConfig:
    """Bass band used for beat energy"""
    bass_freq_low: float = 0.0        # Hz
    bass_freq_high: float = 150.0     # Hz


@dataclass
class SpikeConfig:
    """Energy spike (beat) detection"""
    history_size: int = 100           # Rolling energy samples for the average
    threshold_ratio: float = 1.3      # Beat when energy > average * ratio
    refractory_s: float = 0.3         # Min seconds between accepted beats


@dataclass
class TempoConfig:
    """BPM estimation from beat intervals"""
    beat_history_size: int = 8        # Most recent beat timestamps kept
    min_beats: int = 5                # Beats required before estimating
    min_bpm: float = 30.0
    max_bpm: float = 200.0


@dataclass
class CalibrationConfig:
    """Per-track threshold calibration"""
    window_s: float = 30.0            # Collection window after session start
    max_samples: int = 50             # BPM samples kept while collecting
    min_samples: int = 10             # Below this the defaults are used
    narrow_range_bpm: float = 20.0    # Sample range below this = consistent tempo
    default_slow: float = 70.0
    default_medium: float = 90.0
    default_fast: float = 120.0
    default_very_fast: float = 150.0
    sort_thresholds: bool = False     # True: sort computed thresholds into ascending order


@dataclass
class ClassifierConfig:
    """Level classification"""
    hysteresis_bpm: float = 5.0       # Margin past the current boundary to change level


@dataclass
class FallbackConfig:
    """Energy-based BPM guess while no beat tempo exists"""
    enabled: bool = True
    # (combined energy above, guessed BPM), checked in order
    energy_bands: List[List[float]] = field(default_factory=lambda: [
        [120.0, 140.0],
        [80.0, 110.0],
        [40.0, 85.0],
    ])
    floor_bpm: float = 65.0
    bright_ratio: float = 1.5         # treble/bass above this = brighter, faster guess
    bright_bonus_bpm: float = 10.0
    dark_ratio: float = 0.7           # treble/bass below this = darker, slower guess
    dark_penalty_bpm: float = 8.0


@dataclass
class DriverConfig:
    """Periodic tick rates"""
    energy_tick_ms: int = 40          # Sampler -> spike -> tempo chain (25 Hz)
    fallback_tick_ms: int = 1000      # Fallback estimator (1 Hz)
    idle_sleep_ms: int = 5            # Worker sleep between tick checks


@dataclass
class Config:
    """Master configuration"""
    version: int = 1                  # Schema version for persisted configs
    audio: AudioConfig = field(default_factory=AudioConfig)
    sampler: SamplerConfig = field(default_factory=SamplerConfig)
    spike: SpikeConfig = field(default_factory=SpikeConfig)
    tempo: TempoConfig = field(default_factory=TempoConfig)
    calibration: CalibrationConfig = field(default_factory=CalibrationConfig)
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    fallback: FallbackConfig = field(default_factory=FallbackConfig)
    driver: DriverConfig = field(default_factory=DriverConfig)
    log_level: str = "INFO"           # Logging level (DEBUG/INFO/WARNING/ERROR)


def apply_dict_to_dataclass(target, data) -> None:
    """Recursively apply values from a dict onto a dataclass instance.
    Unknown keys are ignored."""
    if not isinstance(data, dict):
        return

    for key, value in data.items():
        if not hasattr(target, key):
            continue

        current = getattr(target, key)

        if is_dataclass(current):
            # Sections only accept objects; anything else keeps the defaults
            if isinstance(value, dict):
                apply_dict_to_dataclass(current, value)
            continue

        setattr(target, key, value)


def _clamped(value, default: float, low: float, high: float) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError):
        value = default
    return max(low, min(high, value))


def migrate_config(config: Config, loaded_version) -> None:
    """Upgrade older config structures to the current schema.
    Fills defaults for missing values, clamps ranges and bumps version."""
    try:
        version = int(loaded_version) if loaded_version is not None else 0
    except (TypeError, ValueError):
        version = 0
    if version < CURRENT_CONFIG_VERSION:
        log_event("INFO", "Config", "Migrating config", from_version=version, to_version=CURRENT_CONFIG_VERSION)

    defaults = Config()

    for section in ("audio", "sampler", "spike", "tempo", "calibration",
                    "classifier", "fallback", "driver"):
        current = getattr(config, section)
        default = getattr(defaults, section)
        for name in vars(default):
            if getattr(current, name, None) is None and getattr(default, name) is not None:
                setattr(current, name, getattr(default, name))

    if not isinstance(config.log_level, str):
        config.log_level = defaults.log_level

    config.audio.smoothing = _clamped(config.audio.smoothing, 0.8, 0.0, 0.99)
    config.spike.threshold_ratio = _clamped(config.spike.threshold_ratio, 1.3, 1.0, 5.0)
    config.spike.refractory_s = _clamped(config.spike.refractory_s, 0.3, 0.05, 2.0)
    config.spike.history_size = int(_clamped(config.spike.history_size, 100, 1, 10000))
    config.tempo.min_beats = int(_clamped(config.tempo.min_beats, 5, 2, 64))
    config.tempo.beat_history_size = int(
        max(config.tempo.min_beats, _clamped(config.tempo.beat_history_size, 8, 2, 64))
    )
    config.calibration.window_s = _clamped(config.calibration.window_s, 30.0, 1.0, 600.0)
    config.calibration.max_samples = int(_clamped(config.calibration.max_samples, 50, 1, 10000))
    config.calibration.min_samples = int(
        _clamped(config.calibration.min_samples, 10, 1, config.calibration.max_samples)
    )
    config.classifier.hysteresis_bpm = _clamped(config.classifier.hysteresis_bpm, 5.0, 0.0, 50.0)
    config.driver.energy_tick_ms = int(_clamped(config.driver.energy_tick_ms, 40, 5, 1000))
    config.driver.fallback_tick_ms = int(_clamped(config.driver.fallback_tick_ms, 1000, 100, 60000))

    config.version = CURRENT_CONFIG_VERSION


# Default config instance
DEFAULT_CONFIG = Config()
