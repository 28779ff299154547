#!/usr/bin/env python3
"""
Interactive Particle Window
- Loads an image and lets its dots fly into place
- Mouse movement pushes dots away; they spring back
- 'r' replays the formation, 's' saves a PNG snapshot, 'v' records the formation
- 'q' / ESC quits
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import Optional

import cv2
import numpy as np

from partixel.config import DisplaySettings, EffectParams, RecordingSettings
from partixel.imaging import encode_png, load_image
from partixel.recorder import FormationRecorder
from partixel.simulation.engine import SimulationEngine
from partixel.state import PartixelError

log = logging.getLogger(__name__)

WINDOW_NAME = "Partixel"


class PreviewWindow:
    def __init__(self, engine: SimulationEngine, fps: float, out_dir: Path, recording: RecordingSettings):
        self.engine = engine
        self.fps = fps
        self.out_dir = out_dir
        self.recording = recording
        self.recorder: Optional[FormationRecorder] = None
        self._inside = False

    @staticmethod
    def now_ms() -> float:
        return time.monotonic() * 1000.0

    def _on_mouse(self, event: int, x: int, y: int, flags: int, param) -> None:
        ratio = self.engine.display.pixel_ratio
        field = self.engine.field
        if field is None:
            return
        sx, sy = x / ratio, y / ratio
        inside = 0 <= sx < field.geometry.width and 0 <= sy < field.geometry.height
        if inside and not self._inside:
            self.engine.pointer_enter(self.now_ms())
        elif not inside and self._inside:
            self.engine.pointer_leave()
        self._inside = inside
        if inside and event == cv2.EVENT_MOUSEMOVE:
            self.engine.pointer_move(sx, sy, self.now_ms())

    def _save_snapshot(self) -> None:
        surface = self.engine.snapshot()
        if surface is None:
            return
        self.out_dir.mkdir(parents=True, exist_ok=True)
        path = self.out_dir / f"partixel-{time.strftime('%Y%m%d-%H%M%S')}.png"
        path.write_bytes(encode_png(surface))
        log.info("Saved snapshot %s", path)

    def _start_recording(self) -> None:
        if self.recorder is not None:
            log.info("Recording already in progress")
            return
        self.recorder = FormationRecorder(self.recording)
        self.engine.start_formation()

    def _capture(self, surface: np.ndarray, now: float) -> None:
        if self.recorder is None:
            return
        try:
            finished = self.recorder.offer(surface, now)
        except PartixelError as e:
            log.error("Recording failed: %s", e)
            self.recorder.discard()
            self.recorder = None
            return
        if finished:
            self._finish_recording()

    def _finish_recording(self) -> None:
        recorder, self.recorder = self.recorder, None
        try:
            data = recorder.encode()
        except PartixelError as e:
            log.error("Recording failed: %s", e)
            return
        self.out_dir.mkdir(parents=True, exist_ok=True)
        path = self.out_dir / f"particle-formation-{time.strftime('%Y%m%d-%H%M%S')}{self.recording.suffix}"
        path.write_bytes(data)
        log.info("Saved recording %s (%d bytes)", path, len(data))

    def run(self) -> None:
        print("✨ Partixel - interactive particle window")
        print("Press 'q' to quit, 'r' to replay, 's' to snapshot, 'v' to record")

        cv2.namedWindow(WINDOW_NAME)
        cv2.setMouseCallback(WINDOW_NAME, self._on_mouse)
        interval = 1.0 / self.fps

        try:
            while True:
                started = time.perf_counter()
                now = self.now_ms()
                if self.recorder is not None and not self.recorder.active and not self.recorder.finished:
                    self.recorder.begin(now)

                surface = self.engine.tick(now)
                if surface is None:
                    surface = np.zeros((240, 320, 3), dtype=np.uint8)
                self._capture(surface, now)

                cv2.imshow(WINDOW_NAME, surface)

                wait_ms = max(1, int((interval - (time.perf_counter() - started)) * 1000))
                key = cv2.waitKey(wait_ms) & 0xFF
                if key in (ord("q"), 27):
                    break
                if key == ord("r"):
                    self.engine.start_formation()
                elif key == ord("s"):
                    self._save_snapshot()
                elif key == ord("v"):
                    self._start_recording()
        finally:
            if self.recorder is not None:
                self.recorder.discard()
                self.recorder = None
            self.engine.close()
            cv2.destroyAllWindows()


def parse_args(argv=None) -> argparse.Namespace:
    defaults = EffectParams()
    ap = argparse.ArgumentParser(description="Show an image as an interactive particle field.")
    ap.add_argument("image", type=Path, help="Path to the source image")
    ap.add_argument("--grid-spacing", type=float, default=defaults.grid_spacing)
    ap.add_argument("--contrast", type=float, default=defaults.contrast)
    ap.add_argument("--accent-color", default=defaults.accent_color)
    ap.add_argument("--mouse-radius", type=float, default=defaults.mouse_radius)
    ap.add_argument("--repulsion-strength", type=float, default=defaults.repulsion_strength)
    ap.add_argument("--return-speed", type=float, default=defaults.return_speed)
    ap.add_argument("--accent-probability", type=float, default=defaults.accent_probability)
    ap.add_argument("--size-variation", type=float, default=defaults.size_variation)
    ap.add_argument("--pixel-ratio", type=float, default=1.0, help="Backing-resolution multiplier")
    ap.add_argument("--fps", type=float, default=60.0)
    ap.add_argument("--seed", type=int, default=None)
    ap.add_argument("--out-dir", type=Path, default=Path("captures"))
    ap.add_argument("--log-level", default="INFO")
    return ap.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=args.log_level, format="%(asctime)s | %(levelname)s | %(name)s | %(message)s")

    try:
        params = EffectParams(
            grid_spacing=args.grid_spacing,
            contrast=args.contrast,
            accent_color=args.accent_color,
            mouse_radius=args.mouse_radius,
            repulsion_strength=args.repulsion_strength,
            return_speed=args.return_speed,
            accent_probability=args.accent_probability,
            size_variation=args.size_variation,
        )
        image = load_image(args.image)
    except (ValueError, PartixelError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    engine = SimulationEngine(
        params,
        display=DisplaySettings(pixel_ratio=args.pixel_ratio),
        rng=np.random.default_rng(args.seed),
    )
    engine.rebuild(image)
    PreviewWindow(engine, args.fps, args.out_dir, RecordingSettings()).run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
