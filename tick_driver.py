"""
beatsteps - Tick Driver
Runs the energy tick and the fallback tick on one worker thread so the two
never overlap.
"""

import threading
import time
from typing import Callable, Optional, Protocol

import numpy as np

from config import DriverConfig
from logging_utils import log_event
from session import IntensitySession


class SnapshotSource(Protocol):
    def get_snapshot(self) -> Optional[np.ndarray]: ...


class TickDriver:
    def __init__(self, session: IntensitySession, source: SnapshotSource,
                 config: DriverConfig, clock: Callable[[], float] = time.monotonic):
        self.session = session
        self.source = source
        self.energy_interval_s = config.energy_tick_ms / 1000.0
        self.fallback_interval_s = config.fallback_tick_ms / 1000.0
        self.idle_sleep_s = config.idle_sleep_ms / 1000.0
        self.clock = clock

        self.running = False
        self.worker_thread: Optional[threading.Thread] = None
        self._next_energy: float = 0.0
        self._next_fallback: float = 0.0

    def start(self) -> None:
        """Start a session and the tick loop."""
        if self.running:
            return

        now = self.clock()
        self.session.start(now)
        self._schedule_from(now)
        self.running = True
        self.worker_thread = threading.Thread(target=self._worker_loop, daemon=True)
        self.worker_thread.start()
        log_event("INFO", "Driver", "Started",
                  energy_hz=f"{1.0 / self.energy_interval_s:.1f}",
                  fallback_hz=f"{1.0 / self.fallback_interval_s:.2f}")

    def stop(self) -> None:
        """Cancel both ticks and reset the session."""
        self.running = False
        if self.worker_thread and self.worker_thread.is_alive() \
                and self.worker_thread is not threading.current_thread():
            self.worker_thread.join(timeout=2.0)
        self.worker_thread = None
        self.session.stop()
        log_event("INFO", "Driver", "Stopped")

    def reset(self) -> None:
        """Restart the session state (new track) while keeping the ticks running."""
        now = self.clock()
        self.session.reset(now)
        self._schedule_from(now)

    def _schedule_from(self, now: float) -> None:
        self._next_energy = now
        self._next_fallback = now + self.fallback_interval_s

    def step(self, now: float) -> tuple[bool, bool]:
        """Run whichever ticks are due at ``now``. Returns (energy_ran, fallback_ran)."""
        energy_due = now >= self._next_energy
        fallback_due = now >= self._next_fallback

        if energy_due:
            self._next_energy = _advance(self._next_energy, self.energy_interval_s, now)
            self._run_tick(self.session.on_energy_tick, now)
        if fallback_due:
            self._next_fallback = _advance(self._next_fallback, self.fallback_interval_s, now)
            self._run_tick(self.session.on_fallback_tick, now)
        return energy_due, fallback_due

    def _run_tick(self, tick, now: float) -> None:
        try:
            tick(self.source.get_snapshot(), now)
        except Exception as e:
            log_event("ERROR", "Driver", "Tick failed", tick=tick.__name__, error=e)

    def _worker_loop(self) -> None:
        while self.running:
            self.step(self.clock())
            time.sleep(self.idle_sleep_s)


def _advance(deadline: float, interval: float, now: float) -> float:
    """Next deadline after ``now``, skipping missed ticks instead of bursting."""
    deadline += interval
    if deadline <= now:
        missed = int((now - deadline) // interval) + 1
        deadline += missed * interval
    return deadline
