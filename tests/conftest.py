from __future__ import annotations

from typing import Callable, Sequence, Tuple

import numpy as np
import pytest

from partixel.config import EffectParams
from partixel.simulation.dot_field import DisplayGeometry, DotField


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(1234)


@pytest.fixture
def params() -> EffectParams:
    return EffectParams()


@pytest.fixture
def uniform_image() -> Callable[..., np.ndarray]:
    def _make(value: int, width: int = 100, height: int = 100) -> np.ndarray:
        return np.full((height, width, 3), value, dtype=np.uint8)

    return _make


@pytest.fixture
def gradient_image() -> Callable[..., np.ndarray]:
    """Horizontal ramp from ``low`` to ``high`` (inclusive)."""

    def _make(low: int, high: int, width: int = 100, height: int = 100) -> np.ndarray:
        row = np.linspace(low, high, width).round().astype(np.uint8)
        return np.repeat(np.tile(row, (height, 1))[:, :, np.newaxis], 3, axis=2)

    return _make


@pytest.fixture
def field_factory() -> Callable[..., DotField]:
    """Hand-placed dots, all at rest, for force-field and renderer tests."""

    def _make(
        points: Sequence[Tuple[float, float]],
        *,
        brightness: float = 200.0,
        base_size: float = 3.6,
        width: float = 200.0,
        height: float = 200.0,
        accent: bool = False,
    ) -> DotField:
        pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        n = pts.shape[0]
        return DotField(
            geometry=DisplayGeometry(scale=1.0, width=width, height=height),
            spacing=4.0,
            rest_x=pts[:, 0].copy(),
            rest_y=pts[:, 1].copy(),
            base_size=np.full(n, base_size),
            size_multiplier=np.ones(n),
            brightness=np.full(n, brightness),
            is_accent=np.full(n, accent),
            twinkle_phase=np.zeros(n),
            twinkle_speed=np.full(n, 0.03),
            current_x=pts[:, 0].copy(),
            current_y=pts[:, 1].copy(),
            spawn_x=pts[:, 0].copy(),
            spawn_y=pts[:, 1].copy(),
            velocity_x=np.zeros(n),
            velocity_y=np.zeros(n),
            formation_delay=np.zeros(n),
        )

    return _make
