"""Rendering surface collaborator and its Playwright implementation."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog
from playwright.async_api import Error as PlaywrightError

from vislens.exceptions import ElementNotFoundError, SurfaceUnavailableError
from vislens.models.buffer import PixelBuffer
from vislens.models.domain import BoundingBox, Clip, FormatOptions

if TYPE_CHECKING:
    from playwright.async_api import Page

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CaptureFrame:
    """What the surface should render: a page/viewport shot, optionally clipped."""

    full_surface: bool = False
    clip: Clip | None = None


class RenderSurface(ABC):
    """Something that can render the page under test into pixels.

    Implementations are not expected to be safe for concurrent use.
    """

    @abstractmethod
    async def render_capture(self, frame: CaptureFrame, fmt: FormatOptions) -> PixelBuffer:
        """Render the frame and return its pixels."""

    @abstractmethod
    async def resize_viewport(self, width: int, height: int) -> None:
        """Resize the render viewport."""

    @abstractmethod
    async def locate_element(self, selector: str) -> BoundingBox | None:
        """Bounding box of the first element matching ``selector``, or None."""

    @abstractmethod
    async def viewport_size(self) -> tuple[int, int] | None:
        """Current viewport size, if known."""

    async def settle(self, delay_ms: int) -> None:
        """Wait for layout to settle after a viewport change."""
        if delay_ms > 0:
            await asyncio.sleep(delay_ms / 1000)


class PlaywrightSurface(RenderSurface):
    """Render surface backed by a Playwright page."""

    def __init__(self, page: Page) -> None:
        self._page = page

    async def render_capture(self, frame: CaptureFrame, fmt: FormatOptions) -> PixelBuffer:
        kwargs: dict[str, Any] = {"type": fmt.format.value, "full_page": frame.full_surface}
        quality = fmt.effective_quality()
        if quality is not None:
            kwargs["quality"] = quality
        if frame.clip is not None:
            kwargs["clip"] = frame.clip.model_dump()
        try:
            data = await self._page.screenshot(**kwargs)
        except PlaywrightError as e:
            raise SurfaceUnavailableError(
                f"Screenshot failed: {e.message}", operation="render_capture", cause=e
            ) from e
        return await asyncio.to_thread(PixelBuffer.from_encoded, data)

    async def resize_viewport(self, width: int, height: int) -> None:
        try:
            await self._page.set_viewport_size({"width": width, "height": height})
        except PlaywrightError as e:
            raise SurfaceUnavailableError(
                f"Viewport resize failed: {e.message}", operation="resize_viewport", cause=e
            ) from e

    async def locate_element(self, selector: str) -> BoundingBox | None:
        try:
            locator = self._page.locator(selector)
            if await locator.count() == 0:
                return None
            box = await locator.first.bounding_box()
        except PlaywrightError as e:
            raise ElementNotFoundError(
                f"Could not resolve selector '{selector}': {e.message}",
                operation="locate_element",
                target=selector,
                cause=e,
            ) from e
        return BoundingBox(**box) if box else None

    async def viewport_size(self) -> tuple[int, int] | None:
        size = self._page.viewport_size
        if not size:
            return None
        return (size["width"], size["height"])

    async def settle(self, delay_ms: int) -> None:
        try:
            await self._page.wait_for_load_state("networkidle")
            if delay_ms > 0:
                await self._page.wait_for_timeout(delay_ms)
        except PlaywrightError as e:
            raise SurfaceUnavailableError(
                f"Page did not settle: {e.message}", operation="settle", cause=e
            ) from e
