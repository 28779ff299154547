"""Pointer trail: recent, speed-weighted pointer positions."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)

TRAIL_RETENTION_MS = 150.0
IDLE_CLEAR_MS = 100.0
INTERPOLATION_STEP_PX = 10.0
FULL_STRENGTH_SPEED_PX = 10.0


@dataclass
class TrailSample:
    x: float
    y: float
    timestamp_ms: float
    strength: float


class PointerTrail:
    """Tracks the live pointer and a short trail of interpolated samples.

    Only move/enter/leave events mutate this object; physics never advances
    here. All timestamps share the clock passed to the engine's ``tick``.
    """

    def __init__(self, retention_ms: float = TRAIL_RETENTION_MS, idle_clear_ms: float = IDLE_CLEAR_MS) -> None:
        self.retention_ms = retention_ms
        self.idle_clear_ms = idle_clear_ms
        self.samples: List[TrailSample] = []
        self.position: Optional[Tuple[float, float]] = None
        self.hovering = False
        self._last_move_ms: Optional[float] = None
        self._awaiting_first_move = True

    def enter(self, now_ms: float) -> None:
        self.hovering = True
        self._last_move_ms = now_ms

    def leave(self) -> None:
        self.hovering = False
        self.position = None
        self.samples.clear()
        self._awaiting_first_move = True

    def move(self, x: float, y: float, now_ms: float) -> None:
        """Record a pointer move, filling the gap from the previous position."""
        self._last_move_ms = now_ms
        self.hovering = True

        if self._awaiting_first_move or self.position is None:
            # seed only; a jump from nowhere must not push dots
            self.position = (x, y)
            self._awaiting_first_move = False
            return

        prev_x, prev_y = self.position
        self.position = (x, y)
        vel_x = x - prev_x
        vel_y = y - prev_y
        speed = math.hypot(vel_x, vel_y)
        steps = max(1, math.ceil(speed / INTERPOLATION_STEP_PX))
        strength = min(speed / FULL_STRENGTH_SPEED_PX, 1.0)

        for i in range(steps):
            t = i / steps
            self.samples.append(TrailSample(prev_x + vel_x * t, prev_y + vel_y * t, now_ms, strength))

        self.evict(now_ms)

    def evict(self, now_ms: float) -> None:
        """Drop samples older than the retention window."""
        self.samples = [s for s in self.samples if now_ms - s.timestamp_ms < self.retention_ms]

    def is_moving(self, now_ms: float) -> bool:
        return self._last_move_ms is not None and now_ms - self._last_move_ms < self.idle_clear_ms

    def live_samples(self, now_ms: float) -> List[TrailSample]:
        """Trail samples usable this frame; an idle pointer leaves none."""
        if not self.is_moving(now_ms):
            if self.samples:
                logger.debug("Pointer idle, clearing %d trail samples", len(self.samples))
            self.samples.clear()
            return []
        self.evict(now_ms)
        return list(self.samples)

    def reset(self) -> None:
        self.samples.clear()
        self.position = None
        self.hovering = False
        self._last_move_ms = None
        self._awaiting_first_move = True


__all__ = ["IDLE_CLEAR_MS", "PointerTrail", "TRAIL_RETENTION_MS", "TrailSample"]
