"""
Raster Images
=============
8-bit grayscale raster container shared by the PDF extractor and the QR
reader, plus unpacking of 1-bit-per-pixel sample rows.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Union

import numpy as np
from PIL import Image, UnidentifiedImageError

from .errors import ImageConversionError, RasterIOError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RasterImage:
    """Grayscale image with exactly one byte per pixel."""

    width: int
    height: int
    samples: bytes

    def __post_init__(self):
        if self.width < 0 or self.height < 0:
            raise ImageConversionError(self.width, self.height, len(self.samples))
        if len(self.samples) != self.width * self.height:
            raise ImageConversionError(self.width, self.height, len(self.samples))

    @classmethod
    def from_pil(cls, image: Image.Image) -> "RasterImage":
        """Convert any Pillow image to 8-bit grayscale."""
        if image.mode != "L":
            image = image.convert("L")
        width, height = image.size
        return cls(width=width, height=height, samples=image.tobytes())

    def to_pil(self) -> Image.Image:
        return Image.frombytes("L", (self.width, self.height), self.samples)

    def to_array(self) -> np.ndarray:
        """Row-major ``uint8`` array of shape (height, width)."""
        return np.frombuffer(self.samples, dtype=np.uint8).reshape(
            self.height, self.width
        )


def unpack_1bit(data: bytes, width: int, height: int) -> bytes:
    """
    Expand 1-bit-per-pixel rows into one 8-bit sample per pixel.

    Each row is padded to a byte boundary. Bits are read most significant
    first; a set bit becomes 255 and a clear bit 0. Padding bits at the end
    of a row are dropped, so the result is always ``width * height`` bytes.

    Args:
        data: Packed rows, ``ceil(width / 8) * height`` bytes.
        width: Pixels per row.
        height: Number of rows.
    """
    stride = (width + 7) // 8
    if width == 0 or height == 0:
        return b""

    packed = np.frombuffer(data, dtype=np.uint8, count=stride * height)
    rows = packed.reshape(height, stride)
    bits = np.unpackbits(rows, axis=1, bitorder="big")[:, :width]
    return (bits * np.uint8(255)).tobytes()


def open_image(path: Union[str, Path]) -> RasterImage:
    """
    Load an image file as a grayscale raster.

    Raises:
        RasterIOError: If the file is missing or not a readable image.
    """
    try:
        with Image.open(path) as image:
            image.load()
            raster = RasterImage.from_pil(image)
    except (OSError, UnidentifiedImageError) as e:
        raise RasterIOError(f"cannot read image {path}: {e}") from e

    logger.debug(f"Loaded image {path} ({raster.width}x{raster.height})")
    return raster
