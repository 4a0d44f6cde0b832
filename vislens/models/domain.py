"""Input contracts for capture, diffing and baseline metadata."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, field_validator, model_validator

from vislens.constants import DEFAULT_DIFF_COLOR, DEFAULT_THRESHOLD
from vislens.types import ImageFormat


class Clip(BaseModel):
    x: float = Field(ge=0)
    y: float = Field(ge=0)
    width: float = Field(gt=0)
    height: float = Field(gt=0)


class BoundingBox(BaseModel):
    """Element box as reported by the rendering surface (may be fractional)."""

    x: float
    y: float
    width: float
    height: float


class CaptureTarget(BaseModel):
    """What to capture: an element, an explicit region, the viewport or the full page."""

    selector: str | None = None
    padding: int = Field(default=0, ge=0)
    full_surface: bool = False
    clip: Clip | None = None

    @model_validator(mode="after")
    def _selector_or_clip(self) -> CaptureTarget:
        if self.selector is not None and self.clip is not None:
            raise ValueError("selector and clip are mutually exclusive")
        if self.selector is not None and not self.selector.strip():
            raise ValueError("selector must not be blank")
        return self

    def describe(self) -> str:
        if self.selector:
            return self.selector
        if self.clip:
            return f"clip({self.clip.x},{self.clip.y},{self.clip.width},{self.clip.height})"
        return "full_surface" if self.full_surface else "viewport"


class FormatOptions(BaseModel):
    format: ImageFormat = ImageFormat.PNG
    quality: int | None = Field(default=None, ge=1, le=100)

    def effective_quality(self) -> int | None:
        """Quality only applies to lossy formats."""
        return self.quality if self.format is ImageFormat.JPEG else None


class DiffOptions(BaseModel):
    threshold: float = Field(default=DEFAULT_THRESHOLD, ge=0.0, le=1.0)
    include_anti_aliasing: bool = False
    diff_color: tuple[int, int, int] = DEFAULT_DIFF_COLOR

    @field_validator("diff_color")
    @classmethod
    def _channel_range(cls, v: tuple[int, int, int]) -> tuple[int, int, int]:
        if any(c < 0 or c > 255 for c in v):
            raise ValueError("diff_color channels must be within 0-255")
        return v


class BaselineRecord(BaseModel):
    """Metadata stored alongside each baseline image."""

    name: str
    width: int
    height: int
    sha256: str
    created_at: datetime
    updated_at: datetime
