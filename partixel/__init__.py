"""Partixel: turn a still image into an interactive particle field."""
from .config import EffectParams
from .simulation.engine import SimulationEngine
from .state import InvalidImageError, PartixelError, SimulationMode

__version__ = "0.1.0"

__all__ = ["EffectParams", "InvalidImageError", "PartixelError", "SimulationEngine", "SimulationMode"]
