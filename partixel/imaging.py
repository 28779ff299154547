"""Image decode/encode helpers used by the hosts (not by the simulation core)."""
from __future__ import annotations

import logging
from pathlib import Path

import cv2
import numpy as np

from .state import InvalidImageError

logger = logging.getLogger(__name__)


def decode_image(data: bytes) -> np.ndarray:
    """Decode encoded image bytes (PNG, JPEG, ...) into a BGR uint8 raster."""
    if not data:
        raise InvalidImageError("Empty image payload")
    buffer = np.frombuffer(data, dtype=np.uint8)
    image = cv2.imdecode(buffer, cv2.IMREAD_UNCHANGED)
    if image is None:
        raise InvalidImageError("Could not decode image payload")
    if image.dtype != np.uint8:
        # 16-bit PNG/TIFF
        image = (image / 257).astype(np.uint8)
    if image.ndim == 2:
        image = cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    elif image.shape[2] == 4:
        image = cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
    if image.shape[0] < 1 or image.shape[1] < 1:
        raise InvalidImageError(f"Decoded image has zero dimension: {image.shape}")
    logger.debug("Decoded %d-byte image into %dx%d raster", len(data), image.shape[1], image.shape[0])
    return image


def load_image(path: Path) -> np.ndarray:
    path = Path(path).expanduser()
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise InvalidImageError(f"Cannot read image file {path}: {exc}") from exc
    return decode_image(data)


def encode_png(surface: np.ndarray) -> bytes:
    ret, enc = cv2.imencode(".png", surface)
    if not ret:
        raise RuntimeError("PNG encoding failed")
    return enc.tobytes()


def encode_jpeg(surface: np.ndarray, quality: int = 85) -> bytes:
    ret, enc = cv2.imencode(".jpg", surface, [cv2.IMWRITE_JPEG_QUALITY, int(quality)])
    if not ret:
        raise RuntimeError("JPEG encoding failed")
    return enc.tobytes()


__all__ = ["decode_image", "encode_jpeg", "encode_png", "load_image"]
