"""Formation video capture.

Attaches to the live frame stream and writes frames at the recording cadence
straight into a ``cv2.VideoWriter`` for the formation duration plus a settle
margin. Only the open writer and a frame counter are held while recording.
"""
from __future__ import annotations

import logging
import tempfile
from pathlib import Path
from typing import Optional, Tuple

import cv2
import numpy as np

from .config import RecordingSettings
from .simulation.formation import FORMATION_DURATION_MS
from .state import RecordingError

logger = logging.getLogger(__name__)


class FormationRecorder:
    """Streams frames of one formation run into a video file and returns its bytes."""

    def __init__(self, settings: Optional[RecordingSettings] = None, duration_ms: float = FORMATION_DURATION_MS) -> None:
        self.settings = settings or RecordingSettings()
        self.duration_ms = duration_ms + self.settings.settle_ms
        self.frame_count = 0
        self.path: Optional[Path] = None
        self._writer: Optional[cv2.VideoWriter] = None
        self._frame_size: Optional[Tuple[int, int]] = None
        self._started_ms: Optional[float] = None
        self._next_frame_ms = 0.0
        self._finished = False

    @property
    def active(self) -> bool:
        return self._started_ms is not None and not self._finished

    @property
    def finished(self) -> bool:
        return self._finished

    def begin(self, now_ms: float) -> None:
        """Start a capture window; the writer opens on the first offered frame."""
        self.discard()
        with tempfile.NamedTemporaryFile(prefix="partixel_formation_", suffix=self.settings.suffix, delete=False) as tmp:
            self.path = Path(tmp.name)
        self.frame_count = 0
        self._frame_size = None
        self._started_ms = now_ms
        self._next_frame_ms = now_ms
        self._finished = False
        logger.info("Recording started (%.0f ms at %.0f fps) -> %s", self.duration_ms, self.settings.fps, self.path)

    def progress(self, now_ms: float) -> float:
        if self._started_ms is None:
            return 0.0
        if self._finished:
            return 1.0
        return max(0.0, min(1.0, (now_ms - self._started_ms) / self.duration_ms))

    def _open_writer(self, width: int, height: int) -> cv2.VideoWriter:
        """Raises RecordingError if the encoder is unavailable."""
        fourcc = cv2.VideoWriter_fourcc(*self.settings.fourcc)
        writer = cv2.VideoWriter(str(self.path), fourcc, self.settings.fps, (width, height))
        if not writer.isOpened():
            raise RecordingError(f"Could not open VideoWriter ({self.settings.fourcc})")
        return writer

    def _write(self, surface: np.ndarray) -> None:
        height, width = surface.shape[:2]
        if self._writer is None:
            self._writer = self._open_writer(width, height)
            self._frame_size = (width, height)
        elif (width, height) != self._frame_size:
            # field rebuilt mid-recording; keep the first frame size
            surface = cv2.resize(surface, self._frame_size, interpolation=cv2.INTER_NEAREST)
        self._writer.write(surface)
        self.frame_count += 1

    def offer(self, surface: Optional[np.ndarray], now_ms: float) -> bool:
        """Feed the latest rendered frame; returns True once the window has closed."""
        if not self.active or surface is None:
            return self._finished
        interval = 1000.0 / self.settings.fps
        end_ms = self._started_ms + self.duration_ms
        # repeat the frame when ticks arrive slower than the capture rate
        while self._next_frame_ms <= now_ms and self._next_frame_ms < end_ms:
            self._write(surface)
            self._next_frame_ms += interval
        if now_ms >= end_ms:
            self._finished = True
            logger.info("Recording window closed with %d frames", self.frame_count)
        return self._finished

    def encode(self) -> bytes:
        """Finalize the video and return its bytes; raises RecordingError if nothing usable exists."""
        writer, self._writer = self._writer, None
        path = self.path
        try:
            if writer is None or self.frame_count == 0:
                raise RecordingError("No frames captured")
            writer.release()
            data = path.read_bytes()
            if not data:
                raise RecordingError("Encoder produced an empty file")
            logger.info("Encoded %d frames into %d bytes", self.frame_count, len(data))
            return data
        finally:
            self.path = None
            if path is not None:
                path.unlink(missing_ok=True)

    def discard(self) -> None:
        """Drop a partial recording and its file."""
        if self._writer is not None:
            self._writer.release()
            self._writer = None
        if self.path is not None:
            self.path.unlink(missing_ok=True)
            self.path = None


__all__ = ["FormationRecorder"]
