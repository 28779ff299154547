"""Central configuration for the partixel particle renderer."""
from __future__ import annotations

import re
from functools import lru_cache
from pathlib import Path
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ROOT_DIR = Path(__file__).resolve().parents[1]
DEFAULT_ENV_FILE = ROOT_DIR / ".env"

_HEX_COLOR = re.compile(r"^#?([0-9a-fA-F]{6})$")


def parse_hex_color(value: str) -> Tuple[int, int, int]:
    """Convert ``#rrggbb`` into an OpenCV BGR tuple."""
    match = _HEX_COLOR.match(value.strip())
    if not match:
        raise ValueError(f"Invalid color value: {value!r} (expected #rrggbb)")
    digits = match.group(1)
    r, g, b = (int(digits[i:i + 2], 16) for i in (0, 2, 4))
    return b, g, r


# ============================================================
# Nested Configuration Classes
# ============================================================

class EffectParams(BaseModel):
    """Simulation parameters supplied by the control surface.

    The bounds mirror the slider ranges of the controls. The engine itself
    never clamps these values; validation happens here, at construction.
    """

    model_config = ConfigDict(frozen=True)

    grid_spacing: float = Field(4, ge=2, le=12, description="Halftone grid spacing before display scaling (px)")
    contrast: float = Field(1.5, ge=0.5, le=2.0, description="Contrast multiplier applied before sampling")
    accent_color: str = Field("#00d9ff", description="Fill color for accent dots (#rrggbb)")
    mouse_radius: float = Field(100, ge=50, le=300, description="Pointer influence radius (px)")
    repulsion_strength: float = Field(1.0, ge=0.1, le=2.0, description="Pointer repulsion multiplier")
    return_speed: float = Field(0.3, ge=0.05, le=0.3, description="Spring constant pulling dots back to rest")
    accent_probability: float = Field(0.03, ge=0.0, le=0.1, description="Chance a bright dot uses the accent color")
    size_variation: float = Field(0.3, ge=0.0, le=0.5, description="Random jitter applied to dot size")

    @field_validator("accent_color", mode="before")
    @classmethod
    def _normalize_color(cls, value: object) -> object:
        if isinstance(value, str):
            parse_hex_color(value)
            return "#" + value.strip().lstrip("#").lower()
        return value

    def generation_key(self) -> Tuple[float, float, float, float]:
        """Parameters that change the generated dot field (rebuild required)."""
        return (self.grid_spacing, self.contrast, self.accent_probability, self.size_variation)

    def accent_bgr(self) -> Tuple[int, int, int]:
        return parse_hex_color(self.accent_color)


class DisplaySettings(BaseModel):
    """Display surface configuration."""
    max_width: int = Field(720, ge=1, description="Maximum display width before downscaling (px)")
    max_height: int = Field(480, ge=1, description="Maximum display height before downscaling (px)")
    pixel_ratio: float = Field(1.0, gt=0, description="Backing-resolution multiplier of the render surface")
    default_color: str = Field("#ffffff", description="Fill color for regular dots")

    @field_validator("default_color", mode="before")
    @classmethod
    def _check_color(cls, value: object) -> object:
        if isinstance(value, str):
            parse_hex_color(value)
        return value


class AnimationSettings(BaseModel):
    """Frame loop and preview stream tuning."""
    fps: float = Field(60.0, gt=0, description="Target frame rate of the animation loop")
    jpeg_quality: int = Field(85, ge=1, le=100, description="Preview JPEG quality")
    preview_queue_size: int = Field(2, ge=1, description="Max buffered preview JPEG frames per subscriber")
    ui_event_queue_size: int = Field(16, ge=1, description="Max buffered UI events per subscriber")


class RecordingSettings(BaseModel):
    """Formation video capture configuration."""
    fps: float = Field(30.0, gt=0, description="Capture frame rate")
    settle_ms: float = Field(500.0, ge=0, description="Extra capture time after formation completes (ms)")
    fourcc: str = Field("mp4v", min_length=4, max_length=4, description="OpenCV fourcc for the encoder")
    suffix: str = Field(".mp4", description="Container file suffix")


class Settings(BaseSettings):
    """Environment-driven settings for the renderer service."""

    # HTTP Server
    host: str = Field("127.0.0.1", description="Host interface for the FastAPI server")
    port: int = Field(5000, description="Port for the FastAPI server")

    # Content
    default_image: Optional[Path] = Field(None, description="Image loaded at start-up, if any")
    random_seed: Optional[int] = Field(None, description="Seed for the particle RNG (None = entropy)")

    # Logging
    log_level: str = Field("INFO", description="Logging level")
    log_directory: Path = Field(ROOT_DIR / "logs", description="Log directory path")
    log_retention_days: int = Field(14, description="Number of log files to retain")
    access_log_level: str = Field("WARNING", description="Level for uvicorn access lines")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"], description="Origins allowed to drive the surface from a browser")

    # Nested Configuration Objects
    effect: EffectParams = Field(default_factory=EffectParams, description="Initial simulation parameters")
    display: DisplaySettings = Field(default_factory=DisplaySettings, description="Display surface settings")
    animation: AnimationSettings = Field(default_factory=AnimationSettings, description="Frame loop settings")
    recording: RecordingSettings = Field(default_factory=RecordingSettings, description="Video capture settings")

    model_config = SettingsConfigDict(
        env_file=str(DEFAULT_ENV_FILE),
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache()
def get_settings(override_env_file: Optional[Path] = None) -> Settings:
    """Cached Settings instance; accepts optional env override for tests."""

    if override_env_file:
        return Settings(_env_file=str(override_env_file))
    return Settings()


__all__ = [
    "AnimationSettings",
    "DisplaySettings",
    "EffectParams",
    "RecordingSettings",
    "Settings",
    "get_settings",
    "parse_hex_color",
]
