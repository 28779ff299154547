"""Simulation engine: owns the dot field and advances it one frame per tick."""
from __future__ import annotations

import logging
from collections.abc import Callable
from typing import List, Optional

import numpy as np

from ..config import DisplaySettings, EffectParams, parse_hex_color
from ..state import SimulationMode
from .dot_field import DotField, build_dot_field
from .force_field import interactive_step
from .formation import FORMATION_DURATION_MS, formation_frame, global_progress, start_formation
from .pointer import PointerTrail
from .renderer import FrameRenderer

logger = logging.getLogger(__name__)

CompletionCallback = Callable[[], None]


class SimulationEngine:
    """Image-to-particles engine driven by an external frame clock.

    The host calls :meth:`tick` once per frame with a millisecond timestamp
    and forwards pointer events (same clock) in between. Formation requests
    are queued and applied at the start of the next tick, so a frame never
    observes a half-reset field.
    """

    def __init__(
        self,
        params: Optional[EffectParams] = None,
        *,
        display: Optional[DisplaySettings] = None,
        rng: Optional[np.random.Generator] = None,
        on_formation_complete: Optional[CompletionCallback] = None,
    ) -> None:
        self.params = params or EffectParams()
        self.display = display or DisplaySettings()
        self.rng = rng or np.random.default_rng()
        self.trail = PointerTrail()
        self.renderer = FrameRenderer(parse_hex_color(self.display.default_color))

        self._field: Optional[DotField] = None
        self._image: Optional[np.ndarray] = None
        self._mode: Optional[SimulationMode] = None
        self._formation_pending = False
        self._formation_started_ms: Optional[float] = None
        self._last_tick_ms: Optional[float] = None
        self._completion_listeners: List[CompletionCallback] = []
        self._closed = False
        if on_formation_complete is not None:
            self._completion_listeners.append(on_formation_complete)

    # ------------------------------------------------------------------
    @property
    def field(self) -> Optional[DotField]:
        return self._field

    @property
    def mode(self) -> Optional[SimulationMode]:
        return self._mode

    @property
    def surface(self) -> Optional[np.ndarray]:
        """The most recently rendered frame (BGR), or None before the first tick."""
        return self.renderer.surface

    @property
    def formation_pending(self) -> bool:
        return self._formation_pending

    @property
    def particle_count(self) -> int:
        return len(self._field) if self._field is not None else 0

    def formation_progress(self, now_ms: Optional[float] = None) -> float:
        """Global formation progress in [0, 1]; 1 outside an active formation."""
        if self._mode is not SimulationMode.FORMING or self._formation_started_ms is None:
            return 0.0 if self._formation_pending else 1.0
        now_ms = self._last_tick_ms if now_ms is None else now_ms
        if now_ms is None:
            return 0.0
        return global_progress(now_ms - self._formation_started_ms)

    def add_completion_listener(self, callback: CompletionCallback) -> None:
        self._completion_listeners.append(callback)

    def remove_completion_listener(self, callback: CompletionCallback) -> None:
        if callback in self._completion_listeners:
            self._completion_listeners.remove(callback)

    # ------------------------------------------------------------------
    def rebuild(self, image: np.ndarray, params: Optional[EffectParams] = None) -> DotField:
        """Resample ``image`` into a new dot field and queue a formation run.

        On InvalidImageError the previous field, image and parameters are kept.
        """
        params = params or self.params
        field = build_dot_field(
            image,
            params,
            max_width=self.display.max_width,
            max_height=self.display.max_height,
            pixel_ratio=self.display.pixel_ratio,
            rng=self.rng,
        )
        self.params = params
        self._image = image
        self._field = field
        self.trail.reset()
        self.start_formation()
        return field

    def update_params(self, params: EffectParams) -> bool:
        """Apply new parameters; returns True when the dot field was rebuilt."""
        needs_rebuild = params.generation_key() != self.params.generation_key()
        if needs_rebuild and self._image is not None:
            logger.info("Generation parameters changed, rebuilding dot field")
            self.rebuild(self._image, params)
            return True
        self.params = params
        logger.debug("Per-frame parameters updated: %s", params)
        return False

    def start_formation(self) -> None:
        """Request a (re)start of the formation sequence at the next tick."""
        if self._field is None:
            logger.warning("Formation requested before any image was loaded")
            return
        self._formation_pending = True

    # ------------------------------------------------------------------
    def pointer_enter(self, now_ms: float) -> None:
        if not self._closed:
            self.trail.enter(now_ms)

    def pointer_move(self, x: float, y: float, now_ms: float) -> None:
        if not self._closed:
            self.trail.move(x, y, now_ms)

    def pointer_leave(self) -> None:
        if not self._closed:
            self.trail.leave()

    # ------------------------------------------------------------------
    def tick(self, now_ms: float) -> Optional[np.ndarray]:
        """Advance the simulation to ``now_ms`` and render one frame."""
        field = self._field
        if field is None or self._closed:
            return self.renderer.surface
        self._last_tick_ms = now_ms

        if self._formation_pending:
            self._apply_formation(field, now_ms)

        samples = self.trail.live_samples(now_ms)
        completed = False

        if self._mode is SimulationMode.FORMING:
            frame = formation_frame(field, now_ms - self._formation_started_ms, FORMATION_DURATION_MS)
            x, y, opacity = frame.x, frame.y, frame.opacity
            if frame.complete:
                self._mode = SimulationMode.INTERACTIVE
                completed = True
        else:
            frame = interactive_step(field, self.params, samples, self.trail.position, now_ms / 1000.0)
            x, y, opacity = frame.x, frame.y, frame.opacity

        if len(field):
            surface = self.renderer.render(
                field.geometry, x, y, field.radius, opacity, field.is_accent, self.params.accent_bgr()
            )
        else:
            surface = self.renderer.clear(field.geometry)

        if completed:
            logger.info("Formation complete (%d particles)", len(field))
            self._notify_complete()
        return surface

    def _apply_formation(self, field: DotField, now_ms: float) -> None:
        start_formation(field, self.rng)
        self._formation_started_ms = now_ms
        self._formation_pending = False
        self._mode = SimulationMode.FORMING
        logger.info("Formation started (%d particles)", len(field))

    def _notify_complete(self) -> None:
        for callback in list(self._completion_listeners):
            try:
                callback()
            except Exception:
                logger.exception("Formation completion callback failed")

    def snapshot(self) -> Optional[np.ndarray]:
        return None if self.renderer.surface is None else self.renderer.surface.copy()

    def close(self) -> None:
        """Detach pointer input and stop accepting ticks."""
        self._closed = True
        self.trail.reset()
        self._completion_listeners.clear()


__all__ = ["SimulationEngine"]
