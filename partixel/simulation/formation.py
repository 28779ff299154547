"""Formation timeline: dots fly in from scattered spawn points to rest."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Union

import numpy as np

from .dot_field import DotField

ArrayLike = Union[float, np.ndarray]

FORMATION_DURATION_MS = 8000.0
SPAWN_DISTANCE_MIN = 0.4
SPAWN_DISTANCE_RANGE = 0.8
DELAY_BRIGHTNESS_SPAN = 0.5
DELAY_JITTER = 0.1
FADE_IN_FRACTION = 0.3


def ease_out_cubic(t: ArrayLike) -> ArrayLike:
    return 1.0 - (1.0 - t) ** 3


def ease_in_out_quad(t: ArrayLike) -> ArrayLike:
    t = np.asarray(t, dtype=np.float64)
    value = np.where(t < 0.5, 2.0 * t * t, 1.0 - (-2.0 * t + 2.0) ** 2 / 2.0)
    return float(value) if value.ndim == 0 else value


def global_progress(elapsed_ms: float, duration_ms: float = FORMATION_DURATION_MS) -> float:
    return min(1.0, max(0.0, elapsed_ms / duration_ms))


def local_progress(progress: float, delay: ArrayLike) -> ArrayLike:
    """Per-dot progress through its own window ``[delay, 1]``."""
    window = 1.0 - delay
    return np.clip((progress - delay) / window, 0.0, 1.0)


def formation_opacity(local_t: ArrayLike) -> ArrayLike:
    """Opacity reaches 1 over the first 30% of a dot's own window."""
    return ease_in_out_quad(np.minimum(1.0, local_t / FADE_IN_FRACTION))


@dataclass
class FormationFrame:
    """Draw state of every dot for one formation frame."""
    progress: float
    x: np.ndarray
    y: np.ndarray
    opacity: np.ndarray

    @property
    def complete(self) -> bool:
        return self.progress >= 1.0


def start_formation(field: DotField, rng: Optional[np.random.Generator] = None) -> None:
    """Scatter every dot to a fresh spawn point and redraw its stagger delay.

    Brighter dots get smaller delays and arrive first. Velocities are zeroed
    so no interactive motion survives a replay.
    """
    rng = rng or np.random.default_rng()
    count = len(field)
    center_x, center_y = field.geometry.center
    reach = max(field.geometry.width, field.geometry.height)

    angle = rng.random(count) * 2.0 * math.pi
    distance = reach * (SPAWN_DISTANCE_MIN + rng.random(count) * SPAWN_DISTANCE_RANGE)
    field.spawn_x[:] = center_x + np.cos(angle) * distance
    field.spawn_y[:] = center_y + np.sin(angle) * distance

    field.formation_delay[:] = (1.0 - field.brightness / 255.0) * DELAY_BRIGHTNESS_SPAN + rng.random(count) * DELAY_JITTER

    field.current_x[:] = field.spawn_x
    field.current_y[:] = field.spawn_y
    field.velocity_x[:] = 0.0
    field.velocity_y[:] = 0.0


def formation_frame(field: DotField, elapsed_ms: float, duration_ms: float = FORMATION_DURATION_MS) -> FormationFrame:
    """Interpolate every dot for ``elapsed_ms`` since formation start.

    Positions are written back to ``current_x/current_y`` so the interactive
    regime picks up exactly where formation left off.
    """
    progress = global_progress(elapsed_ms, duration_ms)
    local_t = local_progress(progress, field.formation_delay)
    eased = ease_out_cubic(local_t)

    # spawn * (1 - t) + rest * t lands exactly on rest at t == 1
    x = field.spawn_x * (1.0 - eased) + field.rest_x * eased
    y = field.spawn_y * (1.0 - eased) + field.rest_y * eased
    field.current_x[:] = x
    field.current_y[:] = y

    return FormationFrame(progress=progress, x=x, y=y, opacity=formation_opacity(local_t))


__all__ = [
    "FORMATION_DURATION_MS",
    "FormationFrame",
    "ease_in_out_quad",
    "ease_out_cubic",
    "formation_frame",
    "formation_opacity",
    "global_progress",
    "local_progress",
    "start_formation",
]
