"""Deterministic smooth value noise over (x, y, time).

Used to wobble the pointer's influence radius so the repelled region has an
irregular, slowly drifting edge instead of a perfect circle. Works on scalars
and numpy arrays alike.
"""
from __future__ import annotations

from typing import Union

import numpy as np

ArrayLike = Union[float, np.ndarray]

# Lattice cells advanced per second of simulation time.
TIME_SCALE = 0.5

_MASK32 = 0xFFFFFFFF
_MASK16 = 0xFFFF
_PRIME_X = 374761393
_PRIME_Y = 668265263
_PRIME_Z = 1274126177
_SEED = 0x9E3779B9


def _hash_u32(h: np.ndarray) -> np.ndarray:
    # xorshift32 on int64 lanes holding 32-bit values
    h = h & _MASK32
    h = h ^ ((h << 13) & _MASK32)
    h = h ^ (h >> 17)
    h = h ^ ((h << 5) & _MASK32)
    return h & _MASK32


def _lattice(ix: np.ndarray, iy: np.ndarray, iz: np.ndarray) -> np.ndarray:
    """Pseudo-random value in [0, 1) for each integer lattice point."""
    h = (
        (ix & _MASK16) * _PRIME_X
        + (iy & _MASK16) * _PRIME_Y
        + (iz & _MASK16) * _PRIME_Z
        + _SEED
    )
    h = _hash_u32(_hash_u32(h) + _SEED)
    return h.astype(np.float64) / 4294967296.0


def _smoothstep(t: np.ndarray) -> np.ndarray:
    return t * t * (3.0 - 2.0 * t)


def _lerp(a: np.ndarray, b: np.ndarray, t: np.ndarray) -> np.ndarray:
    return a + (b - a) * t


def smooth_noise(x: ArrayLike, y: ArrayLike, frequency: float, time: float) -> ArrayLike:
    """Smooth noise in [0, 1) at ``(x, y) * frequency`` drifting with ``time`` (seconds)."""
    scalar = np.ndim(x) == 0 and np.ndim(y) == 0
    px = np.asarray(x, dtype=np.float64) * frequency
    py = np.asarray(y, dtype=np.float64) * frequency
    pz = np.full(np.broadcast(px, py).shape, float(time) * TIME_SCALE)
    px, py = np.broadcast_arrays(px, py)

    x0 = np.floor(px)
    y0 = np.floor(py)
    z0 = np.floor(pz)
    u = _smoothstep(px - x0)
    v = _smoothstep(py - y0)
    w = _smoothstep(pz - z0)

    ix = x0.astype(np.int64)
    iy = y0.astype(np.int64)
    iz = z0.astype(np.int64)

    c000 = _lattice(ix, iy, iz)
    c100 = _lattice(ix + 1, iy, iz)
    c010 = _lattice(ix, iy + 1, iz)
    c110 = _lattice(ix + 1, iy + 1, iz)
    c001 = _lattice(ix, iy, iz + 1)
    c101 = _lattice(ix + 1, iy, iz + 1)
    c011 = _lattice(ix, iy + 1, iz + 1)
    c111 = _lattice(ix + 1, iy + 1, iz + 1)

    near = _lerp(_lerp(c000, c100, u), _lerp(c010, c110, u), v)
    far = _lerp(_lerp(c001, c101, u), _lerp(c011, c111, u), v)
    value = _lerp(near, far, w)

    if scalar:
        return float(value)
    return value


__all__ = ["TIME_SCALE", "smooth_noise"]
