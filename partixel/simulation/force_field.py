"""Interactive regime: pointer repulsion plus a damped spring back to rest.

One call advances every dot by exactly one tick. Integration is explicit
Euler with per-tick constants, so motion depends on how often the host ticks.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from ..config import EffectParams
from .dot_field import DotField
from .noise import smooth_noise
from .pointer import TrailSample

NOISE_FREQUENCY = 0.02
RADIUS_BASE = 0.7
RADIUS_SPREAD = 0.6
SEARCH_RADIUS_FACTOR = 1.5
MIN_FORCE_DISTANCE = 0.1
FORCE_SCALE = 0.5
SPRING_SCALE = 0.1
DAMPING = 0.85
TWINKLE_FLOOR = 0.3


@dataclass
class InteractiveFrame:
    x: np.ndarray
    y: np.ndarray
    opacity: np.ndarray
    influence: np.ndarray


def influence_radius(field: DotField, mouse_radius: float, sim_time: float) -> np.ndarray:
    """Irregular per-dot radius, keyed on rest position so the edge does not flicker."""
    noise = smooth_noise(field.rest_x, field.rest_y, NOISE_FREQUENCY, sim_time)
    return mouse_radius * (RADIUS_BASE + noise * RADIUS_SPREAD)


def smoothstep_falloff(distance: np.ndarray, radius: np.ndarray) -> np.ndarray:
    """``f²(3 - 2f)`` with ``f = 1 - d/r`` inside the radius, 0 outside."""
    inside = distance < radius
    factor = np.where(inside, 1.0 - distance / radius, 0.0)
    return factor * factor * (3.0 - 2.0 * factor)


def interactive_step(
    field: DotField,
    params: EffectParams,
    samples: Sequence[TrailSample],
    pointer: Optional[Tuple[float, float]],
    sim_time: float,
) -> InteractiveFrame:
    """Advance every dot one tick and resolve its draw opacity.

    Only trail samples push dots. The live pointer position widens the
    twinkle/opacity influence but applies no force.
    """
    count = len(field)
    max_factor = np.zeros(count)
    force_x = np.zeros(count)
    force_y = np.zeros(count)

    radius = np.zeros(count)
    if samples or pointer is not None:
        radius = influence_radius(field, params.mouse_radius, sim_time)
    search_radius = params.mouse_radius * SEARCH_RADIUS_FACTOR

    for sample in samples:
        dx = sample.x - field.current_x
        dy = sample.y - field.current_y
        distance = np.hypot(dx, dy)
        smooth = np.where(distance > search_radius, 0.0, smoothstep_falloff(distance, radius))
        np.maximum(max_factor, smooth, out=max_factor)

        pushing = (smooth > 0.0) & (distance > MIN_FORCE_DISTANCE)
        magnitude = np.where(pushing, params.repulsion_strength * smooth * sample.strength * FORCE_SCALE, 0.0)
        safe_distance = np.where(pushing, distance, 1.0)
        force_x -= dx / safe_distance * magnitude
        force_y -= dy / safe_distance * magnitude

    if pointer is not None:
        dx = pointer[0] - field.current_x
        dy = pointer[1] - field.current_y
        smooth = smoothstep_falloff(np.hypot(dx, dy), radius)
        np.maximum(max_factor, smooth, out=max_factor)

    field.velocity_x += force_x
    field.velocity_y += force_y

    spring = params.return_speed * SPRING_SCALE
    field.velocity_x += (field.rest_x - field.current_x) * spring
    field.velocity_y += (field.rest_y - field.current_y) * spring

    field.velocity_x *= DAMPING
    field.velocity_y *= DAMPING

    field.current_x += field.velocity_x
    field.current_y += field.velocity_y

    influenced = max_factor > 0.0
    field.twinkle_phase[influenced] += field.twinkle_speed[influenced]
    twinkle = np.sin(field.twinkle_phase) * 0.5 + 0.5
    twinkle_amount = (TWINKLE_FLOOR + twinkle * (1.0 - TWINKLE_FLOOR)) * max_factor
    opacity = np.where(influenced, 1.0 - (1.0 - twinkle_amount) * max_factor, 1.0)

    return InteractiveFrame(
        x=field.current_x.copy(),
        y=field.current_y.copy(),
        opacity=opacity,
        influence=max_factor,
    )


__all__ = [
    "DAMPING",
    "InteractiveFrame",
    "influence_radius",
    "interactive_step",
    "smoothstep_falloff",
]
