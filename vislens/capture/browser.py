"""Playwright browser management for capture sessions."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from playwright.async_api import Browser, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError

from vislens.capture.surface import PlaywrightSurface
from vislens.constants import DEFAULT_VIEWPORT_HEIGHT, DEFAULT_VIEWPORT_WIDTH
from vislens.exceptions import SurfaceUnavailableError

if TYPE_CHECKING:
    from types import TracebackType

logger = structlog.get_logger(__name__)


class BrowserManager:
    def __init__(self, headless: bool = True):
        self._headless = headless
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None

    async def launch(self) -> None:
        """Launch the browser."""
        try:
            self._playwright = await async_playwright().__aenter__()
            self._browser = await self._playwright.chromium.launch(headless=self._headless)
        except PlaywrightError as e:
            await self.close()
            raise SurfaceUnavailableError(
                f"Could not launch browser: {e.message}", operation="launch", cause=e
            ) from e
        logger.debug("browser_launched", headless=self._headless)

    async def new_page(
        self,
        viewport_width: int = DEFAULT_VIEWPORT_WIDTH,
        viewport_height: int = DEFAULT_VIEWPORT_HEIGHT,
    ) -> Page:
        """Open a page in a fresh context with the given viewport."""
        if not self._browser:
            raise SurfaceUnavailableError(
                "Browser not launched. Call launch() first.", operation="new_page"
            )
        context = await self._browser.new_context(
            viewport={"width": viewport_width, "height": viewport_height}
        )
        return await context.new_page()

    async def open_surface(
        self,
        url: str,
        viewport_width: int = DEFAULT_VIEWPORT_WIDTH,
        viewport_height: int = DEFAULT_VIEWPORT_HEIGHT,
    ) -> PlaywrightSurface:
        """Navigate a new page to ``url`` and wrap it as a render surface."""
        page = await self.new_page(viewport_width, viewport_height)
        try:
            await page.goto(url, wait_until="networkidle")
        except PlaywrightError as e:
            raise SurfaceUnavailableError(
                f"Navigation failed: {e.message}", operation="goto", target=url, cause=e
            ) from e
        logger.info("surface_opened", url=url, viewport=(viewport_width, viewport_height))
        return PlaywrightSurface(page)

    async def close(self) -> None:
        """Close browser and playwright."""
        if self._browser:
            await self._browser.close()
            self._browser = None
        if self._playwright:
            await self._playwright.__aexit__(None, None, None)
            self._playwright = None

    async def __aenter__(self) -> BrowserManager:
        await self.launch()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()
