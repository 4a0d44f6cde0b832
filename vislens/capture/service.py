"""Capture service: turns a capture target into a pixel buffer."""

from __future__ import annotations

import asyncio
import math
from typing import TYPE_CHECKING, Any, TypeVar

import structlog

from vislens.capture.surface import CaptureFrame
from vislens.constants import (
    DEFAULT_SETTLE_MS,
    FALLBACK_PRESET,
    RESPONSIVE_PRESETS,
    RESPONSIVE_VIEWPORT_HEIGHT,
)
from vislens.exceptions import ElementNotFoundError, SurfaceUnavailableError, VisLensError
from vislens.models.domain import BoundingBox, CaptureTarget, Clip, FormatOptions
from vislens.utils.timing import timed

if TYPE_CHECKING:
    from collections.abc import Awaitable, Sequence

    from vislens.capture.surface import RenderSurface
    from vislens.models.buffer import PixelBuffer

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def padded_clip(box: BoundingBox, padding: int = 0) -> Clip:
    """Integer clip around an element box, grown by ``padding`` on every side.

    The origin is clamped at zero; the size always grows by twice the padding.
    """
    x = math.floor(box.x)
    y = math.floor(box.y)
    return Clip(
        x=max(0, x - padding),
        y=max(0, y - padding),
        width=max(1, math.floor(box.width)) + padding * 2,
        height=max(1, math.floor(box.height)) + padding * 2,
    )


def _floor_clip(clip: Clip) -> Clip:
    return Clip(
        x=math.floor(clip.x),
        y=math.floor(clip.y),
        width=max(1, math.floor(clip.width)),
        height=max(1, math.floor(clip.height)),
    )


class CaptureService:
    """Requests captures from a single render surface.

    Captures are serialized per service instance because the surface is
    shared state. Nothing here retries; failures propagate to the caller as
    :class:`SurfaceUnavailableError` or :class:`ElementNotFoundError`.
    """

    def __init__(
        self,
        surface: RenderSurface,
        responsive_height: int = RESPONSIVE_VIEWPORT_HEIGHT,
        settle_ms: int = DEFAULT_SETTLE_MS,
    ) -> None:
        self._surface = surface
        self._responsive_height = responsive_height
        self._settle_ms = settle_ms
        self._lock = asyncio.Lock()

    async def _guard(self, operation: str, target: str, call: Awaitable[T]) -> T:
        try:
            return await call
        except VisLensError:
            raise
        except Exception as e:
            raise SurfaceUnavailableError(
                f"Rendering surface failed during {operation}: {e}",
                operation=operation,
                target=target,
                cause=e,
            ) from e

    async def _frame_for(self, target: CaptureTarget) -> CaptureFrame:
        if target.selector:
            box = await self._guard(
                "locate_element", target.selector, self._surface.locate_element(target.selector)
            )
            if box is None:
                raise ElementNotFoundError(
                    f"Element not found: {target.selector}",
                    operation="capture",
                    target=target.selector,
                )
            if box.width <= 0 or box.height <= 0:
                raise ElementNotFoundError(
                    f"Element with selector '{target.selector}' is not visible",
                    operation="capture",
                    target=target.selector,
                )
            return CaptureFrame(
                full_surface=target.full_surface, clip=padded_clip(box, target.padding)
            )
        if target.clip:
            return CaptureFrame(full_surface=target.full_surface, clip=_floor_clip(target.clip))
        return CaptureFrame(full_surface=target.full_surface)

    async def _capture(self, target: CaptureTarget, fmt: FormatOptions) -> PixelBuffer:
        description = target.describe()
        frame = await self._frame_for(target)
        with timed("capture", target=description):
            buffer = await self._guard(
                "render_capture", description, self._surface.render_capture(frame, fmt)
            )
        logger.info(
            "capture_complete",
            target=description,
            width=buffer.width,
            height=buffer.height,
            format=str(fmt.format),
        )
        return buffer

    async def capture(
        self, target: CaptureTarget | None = None, fmt: FormatOptions | None = None
    ) -> PixelBuffer:
        """Capture the target (viewport by default)."""
        async with self._lock:
            return await self._capture(target or CaptureTarget(), fmt or FormatOptions())

    async def _resize(self, width: int, height: int) -> None:
        await self._guard(
            "resize_viewport", f"{width}x{height}", self._surface.resize_viewport(width, height)
        )
        await self._guard("settle", f"{width}x{height}", self._surface.settle(self._settle_ms))
        logger.debug("viewport_resized", width=width, height=height)

    async def _run_sized(
        self,
        sizes: Sequence[tuple[Any, int, int]],
        target: CaptureTarget,
        fmt: FormatOptions,
    ) -> dict[Any, PixelBuffer]:
        results: dict[Any, PixelBuffer] = {}
        async with self._lock:
            original = await self._guard("viewport_size", "", self._surface.viewport_size())
            try:
                for key, width, height in sizes:
                    await self._resize(width, height)
                    results[key] = await self._capture(target, fmt)
            finally:
                if original is not None:
                    await self._resize(*original)
        return results

    async def capture_responsive(
        self,
        target: CaptureTarget | None = None,
        breakpoints: Sequence[int] = (),
        fmt: FormatOptions | None = None,
    ) -> dict[int, PixelBuffer]:
        """Capture at each breakpoint width, in order, at a fixed height.

        The original viewport is restored afterwards.
        """
        for width in breakpoints:
            if width <= 0:
                raise ValueError(f"Breakpoint widths must be positive, got {width}")
        sizes = [(width, width, self._responsive_height) for width in breakpoints]
        return await self._run_sized(sizes, target or CaptureTarget(), fmt or FormatOptions())

    async def capture_presets(
        self,
        target: CaptureTarget | None = None,
        presets: Sequence[str] = tuple(RESPONSIVE_PRESETS),
        fmt: FormatOptions | None = None,
    ) -> dict[str, PixelBuffer]:
        """Capture at named device presets (mobile, tablet, desktop)."""
        sizes = []
        for preset in presets:
            size = RESPONSIVE_PRESETS.get(preset)
            if size is None:
                logger.warning("unknown_preset", preset=preset, fallback=FALLBACK_PRESET)
                size = FALLBACK_PRESET
            sizes.append((preset, *size))
        return await self._run_sized(sizes, target or CaptureTarget(), fmt or FormatOptions())
