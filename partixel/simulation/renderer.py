"""Frame renderer: filled, alpha-blended circles on a black OpenCV surface."""
from __future__ import annotations

from typing import Optional, Tuple

import cv2
import numpy as np

from .dot_field import DisplayGeometry

BGR = Tuple[int, int, int]

BACKGROUND: BGR = (0, 0, 0)
# fixed-point bits for sub-pixel centres and radii
_SHIFT = 4
_SHIFT_SCALE = float(1 << _SHIFT)


class FrameRenderer:
    """Draws one frame of dots; keeps nothing between frames but the surface."""

    def __init__(self, default_color: BGR = (255, 255, 255)) -> None:
        self.default_color = default_color
        self.surface: Optional[np.ndarray] = None

    def _prepare(self, geometry: DisplayGeometry) -> np.ndarray:
        shape = (geometry.backing_height, geometry.backing_width, 3)
        if self.surface is None or self.surface.shape != shape:
            self.surface = np.zeros(shape, dtype=np.uint8)
        else:
            self.surface[:] = BACKGROUND
        return self.surface

    def render(
        self,
        geometry: DisplayGeometry,
        x: np.ndarray,
        y: np.ndarray,
        radius: np.ndarray,
        opacity: np.ndarray,
        is_accent: np.ndarray,
        accent_color: BGR,
    ) -> np.ndarray:
        """Clear the surface and draw every dot at its resolved position and opacity.

        Translucent dots are composited over whatever is already drawn inside
        their own bounding box, so overlapping dots stack in draw order.
        """
        surface = self._prepare(geometry)
        ratio = geometry.pixel_ratio
        default = tuple(int(c) for c in self.default_color)
        accent = tuple(int(c) for c in accent_color)

        fixed_x = np.rint(x * ratio * _SHIFT_SCALE).astype(np.int64).tolist()
        fixed_y = np.rint(y * ratio * _SHIFT_SCALE).astype(np.int64).tolist()
        fixed_r = np.rint(radius * ratio * _SHIFT_SCALE).astype(np.int64).tolist()

        for cx, cy, r, alpha, accented in zip(fixed_x, fixed_y, fixed_r, opacity.tolist(), is_accent.tolist()):
            if alpha <= 0.0:
                continue
            color = accent if accented else default
            r = max(r, 0)
            if alpha >= 1.0:
                cv2.circle(surface, (cx, cy), r, color, thickness=-1, lineType=cv2.LINE_AA, shift=_SHIFT)
            else:
                self._blend_dot(surface, cx, cy, r, color, alpha)
        return surface

    @staticmethod
    def _blend_dot(surface: np.ndarray, cx: int, cy: int, r: int, color: BGR, alpha: float) -> None:
        height, width = surface.shape[:2]
        # whole-pixel box around the circle plus one pixel for the AA edge
        x0 = max(0, ((cx - r) >> _SHIFT) - 1)
        y0 = max(0, ((cy - r) >> _SHIFT) - 1)
        x1 = min(width, ((cx + r) >> _SHIFT) + 2)
        y1 = min(height, ((cy + r) >> _SHIFT) + 2)
        if x0 >= x1 or y0 >= y1:
            return
        roi = surface[y0:y1, x0:x1]
        overlay = roi.copy()
        cv2.circle(
            overlay,
            (cx - (x0 << _SHIFT), cy - (y0 << _SHIFT)),
            r,
            color,
            thickness=-1,
            lineType=cv2.LINE_AA,
            shift=_SHIFT,
        )
        roi[:] = cv2.addWeighted(overlay, alpha, roi, 1.0 - alpha, 0.0)

    def clear(self, geometry: DisplayGeometry) -> np.ndarray:
        """Background only; used when there is nothing to draw."""
        return self._prepare(geometry)


__all__ = ["BACKGROUND", "FrameRenderer"]
