"""Immutable RGBA pixel buffer and image codec helpers."""

from __future__ import annotations

import hashlib
import io
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError

from vislens.exceptions import InvalidBufferError

CHANNELS = 4


@dataclass(frozen=True)
class PixelBuffer:
    """Width x height image stored as packed RGBA bytes, row-major."""

    width: int
    height: int
    pixels: bytes

    def __post_init__(self) -> None:
        if isinstance(self.pixels, bytearray | memoryview):
            object.__setattr__(self, "pixels", bytes(self.pixels))
        if not isinstance(self.pixels, bytes):
            raise InvalidBufferError(
                f"Pixel data must be bytes, got {type(self.pixels).__name__}",
                operation="pixel_buffer",
            )
        if self.width < 0 or self.height < 0:
            raise InvalidBufferError(
                f"Negative dimensions: {self.width}x{self.height}", operation="pixel_buffer"
            )
        expected = self.width * self.height * CHANNELS
        if len(self.pixels) != expected:
            raise InvalidBufferError(
                f"Buffer length {len(self.pixels)} does not match "
                f"{self.width}x{self.height} RGBA ({expected} bytes)",
                operation="pixel_buffer",
            )

    def __repr__(self) -> str:
        return f"PixelBuffer(width={self.width}, height={self.height})"

    @property
    def size(self) -> tuple[int, int]:
        return (self.width, self.height)

    @property
    def total_pixels(self) -> int:
        return self.width * self.height

    def pixel(self, x: int, y: int) -> tuple[int, int, int, int]:
        """Return the RGBA tuple at (x, y)."""
        if not (0 <= x < self.width and 0 <= y < self.height):
            raise IndexError(f"Pixel ({x}, {y}) outside {self.width}x{self.height}")
        i = (y * self.width + x) * CHANNELS
        p = self.pixels
        return (p[i], p[i + 1], p[i + 2], p[i + 3])

    def sha256(self) -> str:
        return hashlib.sha256(self.pixels).hexdigest()

    @classmethod
    def filled(
        cls, width: int, height: int, color: tuple[int, ...] = (255, 255, 255, 255)
    ) -> PixelBuffer:
        """Build a buffer where every pixel has the same color."""
        rgba = tuple(color) + (255,) * (CHANNELS - len(color))
        return cls(width, height, bytes(rgba) * (width * height))

    @classmethod
    def from_image(cls, image: Image.Image) -> PixelBuffer:
        """Convert a Pillow image to an RGBA buffer."""
        rgba = image if image.mode == "RGBA" else image.convert("RGBA")
        return cls(rgba.width, rgba.height, rgba.tobytes())

    @classmethod
    def from_encoded(cls, data: bytes) -> PixelBuffer:
        """Decode PNG/JPEG (or any Pillow-readable) bytes."""
        try:
            with Image.open(io.BytesIO(data)) as image:
                image.load()
                return cls.from_image(image)
        except (UnidentifiedImageError, OSError) as e:
            raise InvalidBufferError(
                f"Could not decode image data: {e}", operation="decode", cause=e
            ) from e

    def to_image(self) -> Image.Image:
        return Image.frombytes("RGBA", (self.width, self.height), self.pixels)

    def to_png(self) -> bytes:
        """Encode as lossless PNG."""
        out = io.BytesIO()
        self.to_image().save(out, format="PNG")
        return out.getvalue()
