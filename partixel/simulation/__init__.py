"""Particle simulation core: sampling, formation, interaction and rendering."""
from .dot_field import DisplayGeometry, DotField, Particle, build_dot_field
from .engine import SimulationEngine
from .formation import FORMATION_DURATION_MS, ease_in_out_quad, ease_out_cubic
from .noise import smooth_noise
from .pointer import PointerTrail, TrailSample

__all__ = [
    "DisplayGeometry",
    "DotField",
    "FORMATION_DURATION_MS",
    "Particle",
    "PointerTrail",
    "SimulationEngine",
    "TrailSample",
    "build_dot_field",
    "ease_in_out_quad",
    "ease_out_cubic",
    "smooth_noise",
]
