"""
QR Payload Reader
=================
Locates the certificate QR code in a raster and decodes its payload.

zxing-cpp locates and decodes in one step and hands back the raw payload
bytes, with no character-set guessing. When it finds nothing, zbar (via
pyzbar) and then OpenCV's QR detector are asked to localize a symbol.
That region is cropped and decoded on its own, so a damaged code is
reported as undecodable instead of missing. zbar's own decoded text is
never used: it re-encodes byte-mode data from a guessed charset.

Only the first symbol found is used.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import cv2
import numpy as np
import zxingcpp
from pyzbar import pyzbar
from pyzbar.pyzbar import ZBarSymbol

from .envelope import decode_payload
from .errors import (
    ImageConversionError,
    QrDecodeError,
    QrExtractError,
    QrNotFoundError,
    QrPayloadEncodingError,
)
from .raster import RasterImage, open_image

logger = logging.getLogger(__name__)

# Version 1 symbols are 21 modules wide; anything smaller cannot be a code.
MIN_SYMBOL_SIZE = 21


@dataclass(frozen=True)
class QrSymbol:
    """
    A located QR code.

    ``payload`` holds the raw bytes when the locator also decoded the symbol.
    """
    corners: tuple[tuple[float, float], ...]
    payload: Optional[bytes] = None

    @property
    def bounds(self) -> tuple[int, int, int, int]:
        """Integer bounding box as (x0, y0, x1, y1)."""
        xs = [x for x, _ in self.corners]
        ys = [y for _, y in self.corners]
        return (
            int(np.floor(min(xs))),
            int(np.floor(min(ys))),
            int(np.ceil(max(xs))),
            int(np.ceil(max(ys))),
        )


class QrPayloadReader:
    """
    Reads certificate payloads from QR code rasters.
    """

    def __init__(self, detector: Optional[cv2.QRCodeDetector] = None, margin: float = 0.1):
        self.detector = detector or cv2.QRCodeDetector()
        self.margin = margin

    # ─── Public API ───────────────────────────────────────────────────────────

    def read_image(self, path: Union[str, Path]) -> bytes:
        """Open an image file and return the ciphertext its QR code carries."""
        return self.extract_ciphertext(open_image(path))

    def extract_ciphertext(self, raster: RasterImage) -> bytes:
        return decode_payload(self.read_payload(raster))

    def read_payload(self, raster: RasterImage) -> str:
        """
        Decode the text of the first QR code in the raster.

        Raises:
            QrNotFoundError: No symbol was located.
            QrExtractError: The symbol region could not be cut out.
            QrDecodeError: The symbol could not be decoded.
            QrPayloadEncodingError: The payload is not UTF-8.
        """
        symbols = self.locate(raster)
        if not symbols:
            raise QrNotFoundError()
        if len(symbols) > 1:
            logger.debug(f"Found {len(symbols)} QR codes, using the first")

        symbol = symbols[0]
        data = symbol.payload
        if data is None:
            region = self._extract(raster, symbol)
            data = self._decode_region(region)

        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise QrPayloadEncodingError(f"QR payload is not UTF-8: {e}") from e

        logger.debug(f"Decoded QR payload ({len(text)} chars)")
        return text

    def locate(self, raster: RasterImage) -> list[QrSymbol]:
        """Candidate symbols in discovery order."""
        if raster.width == 0 or raster.height == 0:
            return []

        array = raster.to_array()
        symbols = [
            QrSymbol(corners=_position_corners(found.position), payload=found.bytes)
            for found in self._zxing_decode(array)
        ]
        if symbols:
            return symbols

        symbols = [
            QrSymbol(corners=tuple((float(p.x), float(p.y)) for p in found.polygon))
            for found in self._zbar_locate(raster)
        ]
        if symbols:
            return symbols

        try:
            found, points = self.detector.detect(array)
        except cv2.error as e:
            logger.debug(f"QR detector failed: {e}")
            return []
        if not found or points is None:
            return []

        corners = tuple(
            (float(x), float(y)) for x, y in np.asarray(points).reshape(-1, 2)
        )
        return [QrSymbol(corners=corners)]

    # ─── Internals ────────────────────────────────────────────────────────────

    def _zxing_decode(self, array: np.ndarray) -> list:
        return zxingcpp.read_barcodes(array, formats=zxingcpp.BarcodeFormat.QRCode)

    def _zbar_locate(self, raster: RasterImage) -> list:
        return pyzbar.decode(
            (raster.samples, raster.width, raster.height),
            symbols=[ZBarSymbol.QRCODE],
        )

    def _extract(self, raster: RasterImage, symbol: QrSymbol) -> RasterImage:
        """Crop the symbol plus a quiet zone out of the raster."""
        if len(symbol.corners) < 3 or not np.all(np.isfinite(symbol.corners)):
            raise QrExtractError("QR code corners are incomplete")

        x0, y0, x1, y1 = symbol.bounds
        size = max(x1 - x0, y1 - y0)
        if min(x1 - x0, y1 - y0) < MIN_SYMBOL_SIZE:
            raise QrExtractError(f"QR code region too small ({x1 - x0}x{y1 - y0})")

        pad = int(size * self.margin) + 4
        x0, y0 = max(0, x0 - pad), max(0, y0 - pad)
        x1, y1 = min(raster.width, x1 + pad), min(raster.height, y1 + pad)
        if x1 - x0 < MIN_SYMBOL_SIZE or y1 - y0 < MIN_SYMBOL_SIZE:
            raise QrExtractError("QR code region lies outside the image")

        crop = np.ascontiguousarray(raster.to_array()[y0:y1, x0:x1])
        try:
            return RasterImage(width=x1 - x0, height=y1 - y0, samples=crop.tobytes())
        except ImageConversionError as e:
            raise QrExtractError(str(e)) from e

    def _decode_region(self, region: RasterImage) -> bytes:
        array = region.to_array()
        found = self._zxing_decode(array)

        if not found:
            # Binarize and give the isolated symbol a second look
            _, binary = cv2.threshold(array, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
            found = self._zxing_decode(np.ascontiguousarray(binary))

        if found:
            return found[0].bytes
        raise QrDecodeError()


def _position_corners(position) -> tuple[tuple[float, float], ...]:
    return tuple(
        (float(point.x), float(point.y))
        for point in (
            position.top_left,
            position.top_right,
            position.bottom_right,
            position.bottom_left,
        )
    )
