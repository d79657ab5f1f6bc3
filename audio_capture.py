"""
beatsteps - Audio Capture
Captures an input device with sounddevice and serves byte-scaled frequency
snapshots to the tick driver.
"""

import threading
from typing import Optional

import numpy as np
import sounddevice as sd

from config import AudioConfig
from logging_utils import log_event
from spectrum import smoothed_magnitudes, to_byte_scale


def list_input_devices() -> list[dict]:
    """Input-capable devices as dicts with index, name, inputs and sample_rate."""
    devices = []
    for i, d in enumerate(sd.query_devices()):
        if d['max_input_channels'] <= 0:
            continue
        devices.append({
            'index': i,
            'name': d['name'],
            'inputs': d['max_input_channels'],
            'sample_rate': d['default_samplerate'],
        })
    return devices


class SpectrumCapture:
    """
    Snapshot source backed by a sounddevice InputStream.

    The stream callback only stores the latest mono block; the FFT runs in
    get_snapshot() on the caller's thread, once per energy tick.
    """

    def __init__(self, config: AudioConfig):
        self.config = config
        self.stream: Optional[sd.InputStream] = None
        self._block: Optional[np.ndarray] = None
        self._block_lock = threading.Lock()
        self._block_seq = 0
        self._magnitudes: Optional[np.ndarray] = None
        self._snapshot: Optional[np.ndarray] = None
        self._snapshot_seq = -1

    def _callback(self, indata, frames, time_info, status):
        if status:
            log_event("WARN", "Capture", "Stream status", status=status)
        if indata.ndim == 2 and indata.shape[1] > 1:
            mono = np.mean(indata, axis=1)
        else:
            mono = indata.reshape(-1)
        with self._block_lock:
            self._block = mono.astype(np.float32, copy=True)
            self._block_seq += 1

    def start(self) -> None:
        """Open and start the input stream. Raises RuntimeError on failure."""
        if self.stream is not None:
            return

        cfg = self.config
        try:
            if cfg.device_index is not None:
                info = sd.query_devices(cfg.device_index, 'input')
                channels = max(1, min(cfg.channels, int(info['max_input_channels'])))
            else:
                channels = max(1, cfg.channels)
            self.stream = sd.InputStream(
                callback=self._callback,
                channels=channels,
                samplerate=cfg.sample_rate,
                blocksize=cfg.fft_size,
                device=cfg.device_index,
                dtype='float32',
            )
            self.stream.start()
        except (sd.PortAudioError, ValueError) as e:
            self.stream = None
            raise RuntimeError(f"Failed to open input stream: {e}") from e

        log_event("INFO", "Capture", "Input capture started", device=cfg.device_index,
                  channels=channels, sample_rate=cfg.sample_rate, fft_size=cfg.fft_size)

    def stop(self) -> None:
        if self.stream is not None:
            self.stream.stop()
            self.stream.close()
            self.stream = None
            log_event("INFO", "Capture", "Stopped")
        with self._block_lock:
            self._block = None
        self._magnitudes = None
        self._snapshot = None
        self._snapshot_seq = -1

    def get_snapshot(self) -> Optional[np.ndarray]:
        """Latest byte-scaled spectrum (fft_size // 2 bins), None before audio arrives."""
        with self._block_lock:
            block = self._block
            seq = self._block_seq
        if block is None or len(block) < 2:
            return None
        # Smoothing advances once per received block, not once per caller
        if seq == self._snapshot_seq:
            return self._snapshot

        self._magnitudes = smoothed_magnitudes(block, self._magnitudes, self.config.smoothing)
        self._snapshot = to_byte_scale(self._magnitudes, self.config.min_db, self.config.max_db)
        self._snapshot_seq = seq
        return self._snapshot
