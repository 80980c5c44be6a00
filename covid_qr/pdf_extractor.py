"""
PDF Image Extractor
===================
Pulls embedded raster images out of PDF files using PyMuPDF (fitz).

Images are decoded straight from their XObject streams rather than by
rendering pages, so a QR code comes out at its original resolution.
Only images without a soft mask (alpha channel) are extracted.

Usage:
    with PdfImageExtractor.open("certificate.pdf") as pdf:
        for image in pdf.images():
            if image.ok:
                ...
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import fitz  # PyMuPDF

from .errors import CovidQrError, ImageConversionError, PdfImageDecodeError, PdfOpenError
from .models import PdfImageInfo
from .raster import RasterImage, unpack_1bit

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _ImageEntry:
    """One row of ``Page.get_images(full=True)``."""
    xref: int
    smask: int
    width: int
    height: int
    bits_per_component: int
    colorspace: str

    @classmethod
    def from_row(cls, row: tuple) -> "_ImageEntry":
        xref, smask, width, height, bpc, colorspace = row[:6]
        return cls(
            xref=xref,
            smask=smask,
            width=width,
            height=height,
            bits_per_component=bpc,
            colorspace=colorspace or "",
        )


@dataclass(frozen=True)
class ExtractedImage:
    """
    Outcome of extracting one embedded image.
    Exactly one of ``raster`` and ``error`` is set.
    """
    page_number: int
    xref: int
    raster: Optional[RasterImage] = None
    error: Optional[CovidQrError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> RasterImage:
        """Return the raster or raise the extraction error."""
        if self.error is not None:
            raise self.error
        return self.raster


class ImageCursor:
    """
    Lazy, single-pass iterator over the unmasked images of a document.

    Tracks a (page index, image index) position and loads one page's image
    list at a time. No image is decoded before it is requested.
    """

    def __init__(self, extractor: "PdfImageExtractor"):
        self._extractor = extractor
        self._page_index = 0
        self._image_index = 0
        self._pending: list[_ImageEntry] = []

    @property
    def position(self) -> tuple[int, int]:
        return self._page_index, self._image_index

    def __iter__(self) -> "ImageCursor":
        return self

    def __next__(self) -> ExtractedImage:
        while True:
            if self._extractor.closed:
                raise StopIteration

            if self._image_index < len(self._pending):
                entry = self._pending[self._image_index]
                self._image_index += 1
                return self._extractor._extract(self._page_index, entry)

            if self._page_index >= self._extractor.page_count:
                raise StopIteration

            self._page_index += 1
            self._image_index = 0
            self._pending = self._extractor._unmasked_images(self._page_index)


class PdfImageExtractor:
    """
    Handles PDF opening and image XObject extraction.

    The document stays open until ``close()`` (or the end of a ``with``
    block); cursors obtained from ``images()`` stop once it is closed.
    """

    def __init__(self, doc: fitz.Document, path: str = ""):
        self._doc = doc
        self.path = path

    @classmethod
    def open(cls, path: Union[str, Path]) -> "PdfImageExtractor":
        """
        Open a PDF file.

        Raises:
            PdfOpenError: If the file is missing, not a PDF, damaged,
                or password protected.
        """
        path = str(path)
        try:
            doc = fitz.open(path)
        except (RuntimeError, OSError, ValueError) as e:
            raise PdfOpenError(f"cannot open PDF {path}: {e}") from e

        if not doc.is_pdf:
            doc.close()
            raise PdfOpenError(f"not a PDF file: {path}")
        if doc.needs_pass:
            doc.close()
            raise PdfOpenError(f"PDF is password protected: {path}")

        logger.debug(f"Opened {path} ({doc.page_count} pages)")
        return cls(doc, path)

    def __enter__(self) -> "PdfImageExtractor":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def close(self):
        if not self._doc.is_closed:
            self._doc.close()

    @property
    def closed(self) -> bool:
        return self._doc.is_closed

    @property
    def page_count(self) -> int:
        return self._doc.page_count

    def images(self) -> ImageCursor:
        """Lazy sequence of extracted images, one per unmasked image."""
        return ImageCursor(self)

    def describe(self) -> list[PdfImageInfo]:
        """List every image on every page, masked ones included."""
        infos: list[PdfImageInfo] = []
        for page_number in range(1, self.page_count + 1):
            for entry in self._page_images(page_number):
                infos.append(PdfImageInfo(
                    page_number=page_number,
                    xref=entry.xref,
                    width=entry.width,
                    height=entry.height,
                    bits_per_component=entry.bits_per_component,
                    colorspace=entry.colorspace,
                    has_soft_mask=entry.smask > 0,
                ))
        return infos

    # ─── Internals ────────────────────────────────────────────────────────────

    def _page_images(self, page_number: int) -> list[_ImageEntry]:
        """Image entries of a page (1-indexed); broken pages yield none."""
        try:
            page = self._doc.load_page(page_number - 1)
            rows = page.get_images(full=True)
        except (RuntimeError, ValueError) as e:
            logger.debug(f"Skipping page {page_number}: {e}")
            return []

        entries: list[_ImageEntry] = []
        seen: set[int] = set()
        for row in rows:
            entry = _ImageEntry.from_row(row)
            if entry.xref in seen:
                continue
            seen.add(entry.xref)
            entries.append(entry)
        return entries

    def _unmasked_images(self, page_number: int) -> list[_ImageEntry]:
        entries = []
        for entry in self._page_images(page_number):
            if entry.smask > 0:
                logger.debug(
                    f"Ignoring image xref {entry.xref} on page {page_number}: "
                    f"has soft mask"
                )
                continue
            entries.append(entry)
        return entries

    def _extract(self, page_number: int, entry: _ImageEntry) -> ExtractedImage:
        try:
            raster = self._decode(entry)
        except (PdfImageDecodeError, ImageConversionError) as e:
            logger.debug(f"Image xref {entry.xref} on page {page_number}: {e}")
            return ExtractedImage(page_number=page_number, xref=entry.xref, error=e)
        return ExtractedImage(page_number=page_number, xref=entry.xref, raster=raster)

    def _decode(self, entry: _ImageEntry) -> RasterImage:
        try:
            data = self._doc.xref_stream(entry.xref)
        except (RuntimeError, ValueError) as e:
            raise PdfImageDecodeError(entry.xref, str(e)) from e
        if data is None:
            raise PdfImageDecodeError(entry.xref, "object has no stream")

        if entry.bits_per_component == 1:
            stride = (entry.width + 7) // 8
            if len(data) < stride * entry.height:
                raise ImageConversionError(entry.width, entry.height, len(data))
            data = unpack_1bit(data, entry.width, entry.height)

        return RasterImage(width=entry.width, height=entry.height, samples=bytes(data))
