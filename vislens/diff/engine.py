"""Perceptual pixel diff engine.

Colors are compared in YIQ space, which tracks perceived difference far
better than raw RGB distance. A pixel is flagged when its normalized YIQ
distance is strictly greater than the configured threshold. Pixels whose
change looks like sub-pixel anti-aliasing are left out of the count unless
``include_anti_aliasing`` is set.

Anti-aliasing detection inspects the 3x3 neighbourhood of a changed pixel
in both images (Vysniauskas, "Anti-aliased Pixel and Intensity Slope
Detector", 2009): a pixel is treated as anti-aliased when it sits on an
intensity slope between a darker and a brighter neighbour, and at least one
of those extremes belongs to a flat area (three or more identical
neighbours) in both images.
"""

from __future__ import annotations

import math

import structlog

from vislens.exceptions import DimensionMismatchError, InvalidBufferError
from vislens.models.buffer import CHANNELS, PixelBuffer
from vislens.models.domain import DiffOptions
from vislens.models.results import DiffResult, PixelDifference

logger = structlog.get_logger(__name__)

# Largest possible YIQ delta (black vs white)
MAX_YIQ_DELTA = 35215.0


def _blend(channel: int, alpha: float) -> float:
    """Composite a channel over a white background."""
    return 255 + (channel - 255) * alpha


def _rgb2y(r: float, g: float, b: float) -> float:
    return r * 0.29889531 + g * 0.58662247 + b * 0.11448223


def _rgb2i(r: float, g: float, b: float) -> float:
    return r * 0.59597799 - g * 0.27417610 - b * 0.32180189


def _rgb2q(r: float, g: float, b: float) -> float:
    return r * 0.21147017 - g * 0.52261711 + b * 0.31114694


def color_delta(img1: bytes, img2: bytes, k: int, m: int, y_only: bool = False) -> float:
    """Squared YIQ distance between pixel at byte offset k in img1 and m in img2.

    With ``y_only`` the signed brightness difference is returned instead.
    """
    r1, g1, b1, a1 = img1[k], img1[k + 1], img1[k + 2], img1[k + 3]
    r2, g2, b2, a2 = img2[m], img2[m + 1], img2[m + 2], img2[m + 3]

    if a1 == a2 and r1 == r2 and g1 == g2 and b1 == b2:
        return 0.0

    if a1 < 255:
        alpha = a1 / 255
        r1, g1, b1 = _blend(r1, alpha), _blend(g1, alpha), _blend(b1, alpha)
    if a2 < 255:
        alpha = a2 / 255
        r2, g2, b2 = _blend(r2, alpha), _blend(g2, alpha), _blend(b2, alpha)

    y = _rgb2y(r1, g1, b1) - _rgb2y(r2, g2, b2)
    if y_only:
        return y

    i = _rgb2i(r1, g1, b1) - _rgb2i(r2, g2, b2)
    q = _rgb2q(r1, g1, b1) - _rgb2q(r2, g2, b2)
    return 0.5053 * y * y + 0.299 * i * i + 0.1957 * q * q


def normalized_distance(delta: float) -> float:
    """Map a squared YIQ delta onto [0, 1] as a fraction of the maximum distance."""
    return min(1.0, math.sqrt(max(delta, 0.0) / MAX_YIQ_DELTA))


def _has_many_siblings(img: bytes, x1: int, y1: int, width: int, height: int) -> bool:
    """True when the pixel has three or more identical neighbours."""
    x0, y0 = max(x1 - 1, 0), max(y1 - 1, 0)
    x2, y2 = min(x1 + 1, width - 1), min(y1 + 1, height - 1)
    pos = (y1 * width + x1) * CHANNELS
    target = img[pos : pos + CHANNELS]
    # Pixels on the image border count the missing side as a sibling
    zeroes = 1 if x1 in (x0, x2) or y1 in (y0, y2) else 0

    for x in range(x0, x2 + 1):
        for y in range(y0, y2 + 1):
            if x == x1 and y == y1:
                continue
            pos2 = (y * width + x) * CHANNELS
            if img[pos2 : pos2 + CHANNELS] == target:
                zeroes += 1
            if zeroes > 2:
                return True
    return False


def is_anti_aliased(
    img: bytes, x1: int, y1: int, width: int, height: int, other: bytes
) -> bool:
    """Whether the pixel at (x1, y1) of ``img`` looks like an anti-aliasing artifact."""
    x0, y0 = max(x1 - 1, 0), max(y1 - 1, 0)
    x2, y2 = min(x1 + 1, width - 1), min(y1 + 1, height - 1)
    pos = (y1 * width + x1) * CHANNELS
    zeroes = 1 if x1 in (x0, x2) or y1 in (y0, y2) else 0
    darkest = brightest = 0.0
    min_x = min_y = max_x = max_y = 0

    for x in range(x0, x2 + 1):
        for y in range(y0, y2 + 1):
            if x == x1 and y == y1:
                continue
            delta = color_delta(img, img, pos, (y * width + x) * CHANNELS, y_only=True)
            if delta == 0:
                zeroes += 1
                # More than two equal neighbours means a flat area, not a slope
                if zeroes > 2:
                    return False
            elif delta < darkest:
                darkest = delta
                min_x, min_y = x, y
            elif delta > brightest:
                brightest = delta
                max_x, max_y = x, y

    # Needs both a darker and a brighter neighbour
    if darkest == 0 or brightest == 0:
        return False

    return (
        _has_many_siblings(img, min_x, min_y, width, height)
        and _has_many_siblings(other, min_x, min_y, width, height)
    ) or (
        _has_many_siblings(img, max_x, max_y, width, height)
        and _has_many_siblings(other, max_x, max_y, width, height)
    )


def _check_buffer(buffer: PixelBuffer, role: str) -> None:
    expected = buffer.width * buffer.height * CHANNELS
    if len(buffer.pixels) != expected:
        raise InvalidBufferError(
            f"{role} buffer holds {len(buffer.pixels)} bytes, expected {expected}",
            operation="compare",
            target=role,
        )


class DiffEngine:
    """Computes per-pixel differences between two equally sized buffers."""

    def __init__(self, options: DiffOptions | None = None) -> None:
        self._options = options or DiffOptions()

    @property
    def options(self) -> DiffOptions:
        return self._options

    def compare(
        self,
        baseline: PixelBuffer,
        current: PixelBuffer,
        options: DiffOptions | None = None,
        name: str | None = None,
    ) -> DiffResult:
        """Compare ``current`` against ``baseline``.

        Raises:
            InvalidBufferError: a buffer's byte length disagrees with its size.
            DimensionMismatchError: the buffers have different sizes.
        """
        opts = options or self._options
        _check_buffer(baseline, "baseline")
        _check_buffer(current, "current")
        if baseline.size != current.size:
            logger.warning(
                "dimension_mismatch", name=name, baseline=baseline.size, current=current.size
            )
            raise DimensionMismatchError(baseline.size, current.size, target=name)

        width, height = baseline.size
        total_pixels = width * height
        img1, img2 = baseline.pixels, current.pixels

        if img1 == img2:
            logger.debug("visual_diff_identical", name=name, total_pixels=total_pixels)
            return DiffResult(
                total_pixels=total_pixels, different_pixels=0, similarity_percent=100.0
            )

        max_delta = MAX_YIQ_DELTA * opts.threshold * opts.threshold
        # One uint32 per pixel for a fast equality pass
        words1 = memoryview(img1).cast("I")
        words2 = memoryview(img2).cast("I")
        marker = bytes((*opts.diff_color, 255))
        diff_pixels = bytearray(total_pixels * CHANNELS)
        differences: list[PixelDifference] = []
        anti_aliased = 0

        for y in range(height):
            row = y * width
            for x in range(width):
                idx = row + x
                if words1[idx] == words2[idx]:
                    continue
                pos = idx * CHANNELS
                delta = color_delta(img1, img2, pos, pos)
                if delta <= max_delta:
                    continue
                if not opts.include_anti_aliasing and (
                    is_anti_aliased(img1, x, y, width, height, img2)
                    or is_anti_aliased(img2, x, y, width, height, img1)
                ):
                    anti_aliased += 1
                    continue
                diff_pixels[pos : pos + CHANNELS] = marker
                differences.append(
                    PixelDifference(
                        x=x,
                        y=y,
                        baseline_color=(img1[pos], img1[pos + 1], img1[pos + 2], img1[pos + 3]),
                        current_color=(img2[pos], img2[pos + 1], img2[pos + 2], img2[pos + 3]),
                    )
                )

        different_pixels = len(differences)
        similarity = (
            (total_pixels - different_pixels) / total_pixels * 100.0 if total_pixels else 100.0
        )
        similarity = min(100.0, max(0.0, similarity))

        logger.info(
            "visual_diff_complete",
            name=name,
            similarity=f"{similarity:.4f}%",
            threshold=opts.threshold,
            changed_pixels=different_pixels,
            anti_aliased_pixels=anti_aliased,
            total_pixels=total_pixels,
        )

        return DiffResult(
            total_pixels=total_pixels,
            different_pixels=different_pixels,
            similarity_percent=similarity,
            differences=tuple(differences),
            diff_visualization=(
                PixelBuffer(width, height, bytes(diff_pixels)) if different_pixels else None
            ),
        )
