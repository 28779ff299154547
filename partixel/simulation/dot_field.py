"""Dot field construction from a decoded raster image.

The image is scaled into the display box, contrast adjusted, and sampled on a
regular grid. Every grid cell bright enough to produce a visible dot becomes
one particle. Particle state is kept as parallel numpy arrays (one slot per
particle) so the per-frame passes can update every dot in place.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Iterator, Optional

import cv2
import numpy as np

from ..config import EffectParams
from ..state import InvalidImageError

logger = logging.getLogger(__name__)

MAX_DISPLAY_WIDTH = 720
MAX_DISPLAY_HEIGHT = 480
MIN_SPACING = 2.0
DOT_FILL_RATIO = 0.9
MIN_DOT_SIZE = 0.5
ACCENT_MIN_BRIGHTNESS = 150.0
TWINKLE_SPEED_MIN = 0.02
TWINKLE_SPEED_RANGE = 0.03


@dataclass
class Particle:
    """Snapshot of a single dot, for inspection and tests."""
    rest_x: float
    rest_y: float
    current_x: float
    current_y: float
    spawn_x: float
    spawn_y: float
    base_size: float
    size_multiplier: float
    brightness: float
    is_accent: bool
    twinkle_phase: float
    twinkle_speed: float
    velocity_x: float
    velocity_y: float
    formation_delay: float

    @property
    def radius(self) -> float:
        return self.base_size * self.size_multiplier / 2.0


@dataclass
class DisplayGeometry:
    """Scaled display size of an image and its backing-surface size."""
    scale: float
    width: float
    height: float
    pixel_ratio: float = 1.0

    @property
    def backing_width(self) -> int:
        return max(1, int(self.width * self.pixel_ratio))

    @property
    def backing_height(self) -> int:
        return max(1, int(self.height * self.pixel_ratio))

    @property
    def center(self) -> tuple[float, float]:
        return self.width / 2.0, self.height / 2.0


_STATIC_FIELDS = ("rest_x", "rest_y", "base_size", "size_multiplier", "brightness", "is_accent")


@dataclass
class DotField:
    """Arena of particle state produced by :func:`build_dot_field`."""

    geometry: DisplayGeometry
    spacing: float
    rest_x: np.ndarray
    rest_y: np.ndarray
    base_size: np.ndarray
    size_multiplier: np.ndarray
    brightness: np.ndarray
    is_accent: np.ndarray
    twinkle_phase: np.ndarray
    twinkle_speed: np.ndarray
    current_x: np.ndarray
    current_y: np.ndarray
    spawn_x: np.ndarray
    spawn_y: np.ndarray
    velocity_x: np.ndarray
    velocity_y: np.ndarray
    formation_delay: np.ndarray

    def __post_init__(self) -> None:
        for name in _STATIC_FIELDS:
            getattr(self, name).flags.writeable = False

    def __len__(self) -> int:
        return int(self.rest_x.shape[0])

    def __iter__(self) -> Iterator[Particle]:
        for index in range(len(self)):
            yield self.particle(index)

    @property
    def radius(self) -> np.ndarray:
        return self.base_size * self.size_multiplier / 2.0

    def particle(self, index: int) -> Particle:
        return Particle(
            rest_x=float(self.rest_x[index]),
            rest_y=float(self.rest_y[index]),
            current_x=float(self.current_x[index]),
            current_y=float(self.current_y[index]),
            spawn_x=float(self.spawn_x[index]),
            spawn_y=float(self.spawn_y[index]),
            base_size=float(self.base_size[index]),
            size_multiplier=float(self.size_multiplier[index]),
            brightness=float(self.brightness[index]),
            is_accent=bool(self.is_accent[index]),
            twinkle_phase=float(self.twinkle_phase[index]),
            twinkle_speed=float(self.twinkle_speed[index]),
            velocity_x=float(self.velocity_x[index]),
            velocity_y=float(self.velocity_y[index]),
            formation_delay=float(self.formation_delay[index]),
        )


def compute_geometry(
    width: int,
    height: int,
    *,
    max_width: float = MAX_DISPLAY_WIDTH,
    max_height: float = MAX_DISPLAY_HEIGHT,
    pixel_ratio: float = 1.0,
) -> DisplayGeometry:
    """Fit an image into the display box without upscaling."""
    scale = min(1.0, max_width / width, max_height / height)
    return DisplayGeometry(scale=scale, width=width * scale, height=height * scale, pixel_ratio=pixel_ratio)


def validate_image(image: object) -> np.ndarray:
    """Return the image as an H x W x 3 uint8 array or raise InvalidImageError."""
    if not isinstance(image, np.ndarray):
        raise InvalidImageError(f"Expected a decoded raster (numpy array), got {type(image).__name__}")
    if image.ndim == 2:
        image = image[:, :, np.newaxis]
    if image.ndim != 3 or image.shape[2] not in (1, 3, 4):
        raise InvalidImageError(f"Unsupported image shape {image.shape}")
    if image.shape[0] < 1 or image.shape[1] < 1:
        raise InvalidImageError(f"Image has zero dimension: {image.shape[1]}x{image.shape[0]}")
    if not np.issubdtype(image.dtype, np.number):
        raise InvalidImageError(f"Unsupported image dtype {image.dtype}")
    if image.shape[2] == 1:
        image = np.repeat(image, 3, axis=2)
    elif image.shape[2] == 4:
        image = image[:, :, :3]
    return _to_uint8(image)


def _to_uint8(image: np.ndarray) -> np.ndarray:
    if image.dtype == np.uint8:
        return image
    if image.dtype == np.uint16:
        return (image / 257).astype(np.uint8)
    if np.issubdtype(image.dtype, np.floating) and image.size and float(np.nanmax(image)) <= 1.0:
        # normalised 0..1 floats
        return np.rint(np.clip(np.nan_to_num(image), 0.0, 1.0) * 255.0).astype(np.uint8)
    return np.clip(np.nan_to_num(image), 0, 255).astype(np.uint8)


def apply_contrast(pixels: np.ndarray, contrast: float) -> np.ndarray:
    """Stretch each channel around mid-gray; results are rounded to 8-bit levels."""
    scaled = ((pixels.astype(np.float64) / 255.0 - 0.5) * contrast + 0.5) * 255.0
    return np.rint(np.clip(scaled, 0.0, 255.0))


def build_dot_field(
    image: np.ndarray,
    params: EffectParams,
    *,
    max_width: float = MAX_DISPLAY_WIDTH,
    max_height: float = MAX_DISPLAY_HEIGHT,
    pixel_ratio: float = 1.0,
    rng: Optional[np.random.Generator] = None,
) -> DotField:
    """Sample ``image`` into a fresh dot field.

    Raises InvalidImageError before any work is done if the image is unusable,
    so callers can keep their previous field. A field with zero particles
    (e.g. an all-black image) is a valid result.
    """
    pixels = validate_image(image)
    rng = rng or np.random.default_rng()

    img_h, img_w = pixels.shape[:2]
    geometry = compute_geometry(
        img_w, img_h, max_width=max_width, max_height=max_height, pixel_ratio=pixel_ratio
    )
    backing_w = geometry.backing_width
    backing_h = geometry.backing_height

    if (backing_w, backing_h) != (img_w, img_h):
        # nearest neighbour: no smoothing between source pixels
        pixels = cv2.resize(pixels, (backing_w, backing_h), interpolation=cv2.INTER_NEAREST)
    adjusted = apply_contrast(pixels, params.contrast)

    spacing = max(MIN_SPACING, params.grid_spacing * geometry.scale)
    xs = np.arange(0.0, geometry.width, spacing)
    ys = np.arange(0.0, geometry.height, spacing)
    grid_x, grid_y = np.meshgrid(xs, ys)
    grid_x = grid_x.ravel()
    grid_y = grid_y.ravel()

    sample_x = np.minimum(np.floor(grid_x * pixel_ratio).astype(np.int64), backing_w - 1)
    sample_y = np.minimum(np.floor(grid_y * pixel_ratio).astype(np.int64), backing_h - 1)
    brightness = adjusted[sample_y, sample_x, :].mean(axis=1)

    dot_size = (brightness / 255.0) * spacing * DOT_FILL_RATIO
    keep = dot_size > MIN_DOT_SIZE

    rest_x = grid_x[keep] + spacing / 2.0
    rest_y = grid_y[keep] + spacing / 2.0
    brightness = brightness[keep]
    base_size = dot_size[keep]
    count = rest_x.shape[0]

    size_multiplier = 1.0 + (rng.random(count) - 0.5) * params.size_variation
    is_accent = (rng.random(count) < params.accent_probability) & (brightness > ACCENT_MIN_BRIGHTNESS)
    twinkle_phase = rng.random(count) * 2.0 * math.pi
    twinkle_speed = TWINKLE_SPEED_MIN + rng.random(count) * TWINKLE_SPEED_RANGE

    logger.info(
        "Built dot field: %d particles from %dx%d image (display %.0fx%.0f, scale=%.3f, spacing=%.2f)",
        count, img_w, img_h, geometry.width, geometry.height, geometry.scale, spacing,
    )

    return DotField(
        geometry=geometry,
        spacing=spacing,
        rest_x=rest_x,
        rest_y=rest_y,
        base_size=base_size,
        size_multiplier=size_multiplier,
        brightness=brightness,
        is_accent=is_accent,
        twinkle_phase=twinkle_phase,
        twinkle_speed=twinkle_speed,
        current_x=rest_x.copy(),
        current_y=rest_y.copy(),
        spawn_x=rest_x.copy(),
        spawn_y=rest_y.copy(),
        velocity_x=np.zeros(count),
        velocity_y=np.zeros(count),
        formation_delay=np.zeros(count),
    )


__all__ = [
    "DisplayGeometry",
    "DotField",
    "Particle",
    "apply_contrast",
    "build_dot_field",
    "compute_geometry",
    "validate_image",
]
