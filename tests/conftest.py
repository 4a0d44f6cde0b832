"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest
from PIL import Image

from vislens.capture.surface import CaptureFrame, RenderSurface
from vislens.config.settings import Settings, get_settings
from vislens.models.buffer import PixelBuffer
from vislens.models.domain import BoundingBox, FormatOptions
from vislens.storage.memory_store import MemoryObjectStore

WHITE = (255, 255, 255, 255)


def make_buffer(
    width: int,
    height: int,
    color: tuple[int, int, int, int] = WHITE,
    patches: dict[tuple[int, int], tuple[int, int, int, int]] | None = None,
) -> PixelBuffer:
    """Solid-color buffer with individual pixels overridden."""
    img = Image.new("RGBA", (width, height), color=color)
    for xy, value in (patches or {}).items():
        img.putpixel(xy, value)
    return PixelBuffer.from_image(img)


class FakeSurface(RenderSurface):
    """In-memory render surface that renders a configurable scene."""

    def __init__(self, width: int = 8, height: int = 6) -> None:
        self.viewport: tuple[int, int] = (width, height)
        self.scene: PixelBuffer | None = None
        self.boxes: dict[str, BoundingBox] = {}
        self.fail_with: Exception | None = None
        self.frames: list[CaptureFrame] = []
        self.resizes: list[tuple[int, int]] = []

    async def render_capture(self, frame: CaptureFrame, fmt: FormatOptions) -> PixelBuffer:
        if self.fail_with is not None:
            raise self.fail_with
        self.frames.append(frame)
        if frame.clip is not None:
            return make_buffer(int(frame.clip.width), int(frame.clip.height))
        if self.scene is not None:
            return self.scene
        return make_buffer(*self.viewport)

    async def resize_viewport(self, width: int, height: int) -> None:
        self.resizes.append((width, height))
        self.viewport = (width, height)

    async def locate_element(self, selector: str) -> BoundingBox | None:
        return self.boxes.get(selector)

    async def viewport_size(self) -> tuple[int, int] | None:
        return self.viewport


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        artifacts_dir=str(tmp_path / "artifacts"), settle_ms=0, lock_timeout_seconds=1.0
    )


@pytest.fixture()
def memory_store() -> MemoryObjectStore:
    return MemoryObjectStore()


@pytest.fixture()
def surface() -> FakeSurface:
    return FakeSurface()


@pytest.fixture(name="make_buffer")
def make_buffer_fixture():
    return make_buffer


@pytest.fixture()
def surface_factory():
    return FakeSurface
