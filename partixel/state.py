"""Shared simulation state definitions and error types."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


class SimulationMode(str, enum.Enum):
    """
    Engine modes for one particle set:

    1. FORMING      - dots travel from scattered spawn points to rest (8s)
    2. INTERACTIVE  - dots are repelled by the pointer and spring back

    A formation run enters INTERACTIVE exactly once; replay goes back to FORMING.
    """
    FORMING = "forming"
    INTERACTIVE = "interactive"


@dataclass
class EngineEvent:
    """Event payload distributed to UI clients over the local WebSocket."""

    type: str
    mode: Optional[SimulationMode]
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None


class PartixelError(RuntimeError):
    """Base class for errors surfaced to callers of the engine."""


class InvalidImageError(PartixelError):
    """Raised when an image cannot be turned into a dot field."""


class RecordingError(PartixelError):
    """Raised when a formation video could not be produced."""


__all__ = [
    "EngineEvent",
    "InvalidImageError",
    "PartixelError",
    "RecordingError",
    "SimulationMode",
]
