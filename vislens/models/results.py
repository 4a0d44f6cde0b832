"""Comparison results. Produced fresh per call and never persisted."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from vislens.models.buffer import PixelBuffer


@dataclass(frozen=True)
class PixelDifference:
    x: int
    y: int
    baseline_color: tuple[int, int, int, int]
    current_color: tuple[int, int, int, int]


@dataclass(frozen=True)
class DiffResult:
    """Result of a pixel-level comparison."""

    total_pixels: int
    different_pixels: int
    similarity_percent: float
    differences: tuple[PixelDifference, ...] = ()
    diff_visualization: PixelBuffer | None = None

    @property
    def is_different(self) -> bool:
        return self.different_pixels > 0


@dataclass(frozen=True)
class Region:
    """Bounding box of one connected cluster of differing pixels."""

    x: int
    y: int
    width: int
    height: int

    def contains(self, x: int, y: int) -> bool:
        return self.x <= x < self.x + self.width and self.y <= y < self.y + self.height

    def to_dict(self) -> dict[str, int]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass(frozen=True)
class RegressionVerdict:
    is_different: bool
    similarity_percent: float
    total_pixels: int
    different_pixels: int
    regions: tuple[Region, ...] = field(default_factory=tuple)
    diff_visualization: PixelBuffer | None = None
    baseline_created: bool = False

    @classmethod
    def bootstrap(cls) -> RegressionVerdict:
        """Verdict for a first run, where the capture just became the baseline."""
        return cls(
            is_different=False,
            similarity_percent=100.0,
            total_pixels=0,
            different_pixels=0,
            baseline_created=True,
        )

    def summary(self) -> dict[str, Any]:
        """JSON-serializable summary for reports and CLI output."""
        return {
            "status": "REGRESSION DETECTED" if self.is_different else "NO REGRESSION",
            "is_different": self.is_different,
            "similarity_percent": round(self.similarity_percent, 2),
            "total_pixels": self.total_pixels,
            "different_pixels": self.different_pixels,
            "changed_regions": [r.to_dict() for r in self.regions],
            "baseline_created": self.baseline_created,
            "has_diff_image": self.diff_visualization is not None,
        }
