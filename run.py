#!/usr/bin/env python3
"""
beatsteps - Live tempo intensity levels

Listens to an audio input, detects beats, estimates tempo and reports the
current intensity level (0-3) for an animation layer to consume.
"""

import argparse
import sys
import time
from pathlib import Path

from config_persistence import load_config, save_config
from logging_utils import log_event, set_log_level
from step_classifier import Level


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run beatsteps on a live audio input")
    parser.add_argument("--list-devices", action="store_true",
                        help="List input devices and exit")
    parser.add_argument("--device", type=int, default=None,
                        help="Input device index (default: config value or system default)")
    parser.add_argument("--config", type=Path, default=None,
                        help="Path to config JSON (default: ~/.beatsteps/config.json)")
    parser.add_argument("--save-config", action="store_true",
                        help="Write the effective config back to disk and exit")
    parser.add_argument("--log-level", default=None,
                        help="DEBUG/INFO/WARNING/ERROR (overrides config)")
    parser.add_argument("--duration", type=float, default=0.0,
                        help="Stop after this many seconds (0 = until Ctrl+C)")
    return parser


def on_level_change(level: Level, bpm: float) -> None:
    log_event("INFO", "Output", "Level", level=int(level), name=level.name.lower(),
              bpm=f"{bpm:.1f}" if bpm > 0 else "-")


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    config = load_config(args.config)
    if args.device is not None:
        config.audio.device_index = args.device
    if args.log_level:
        config.log_level = args.log_level.upper()
    set_log_level(config.log_level)

    if args.save_config:
        return 0 if save_config(config, args.config) else 1

    # sounddevice loads PortAudio on import
    from audio_capture import SpectrumCapture, list_input_devices
    from session import IntensitySession
    from tick_driver import TickDriver

    if args.list_devices:
        for d in list_input_devices():
            log_event("INFO", "Capture", "Device", index=d['index'], name=d['name'],
                      inputs=d['inputs'], sample_rate=f"{d['sample_rate']:.0f}")
        return 0

    capture = SpectrumCapture(config.audio)
    session = IntensitySession(config, level_callback=on_level_change)
    driver = TickDriver(session, capture, config.driver)

    try:
        capture.start()
    except RuntimeError as e:
        log_event("ERROR", "Capture", "Could not start audio input", error=e)
        return 1

    driver.start()
    started = time.monotonic()
    try:
        while args.duration <= 0 or time.monotonic() - started < args.duration:
            time.sleep(1.0)
            status = session.get_status()
            log_event("DEBUG", "Output", "Status", level=status['level'],
                      bpm=f"{status['bpm']:.1f}" if status['bpm'] else "unknown",
                      beats=status['beat_count'], calibrating=status['calibrating'])
    except KeyboardInterrupt:
        pass
    finally:
        try:
            driver.stop()
        finally:
            capture.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
