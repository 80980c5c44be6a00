"""
Error Taxonomy
==============
Typed failures for every stage of the decode pipeline.

Each stage catches its collaborator's exceptions (PyMuPDF, Pillow, zbar,
OpenCV, cryptography, binascii) and re-raises one of these, so callers can
tell which stage failed, which field was at fault, and whether it was
missing or malformed.
"""

from __future__ import annotations

from typing import Optional


class CovidQrError(Exception):
    """Base class for all decode pipeline errors."""

    stage = "pipeline"

    def __init__(self, message: str = ""):
        super().__init__(message or self.__doc__ or self.__class__.__name__)


# ─── Raster ───────────────────────────────────────────────────────────────────


class RasterError(CovidQrError):
    stage = "raster"


class RasterIOError(RasterError):
    """Image file could not be read or decoded."""


class ImageConversionError(RasterError):
    """Sample buffer does not match the image dimensions."""

    def __init__(self, width: int, height: int, length: int):
        self.width = width
        self.height = height
        self.length = length
        super().__init__(
            f"expected {width * height} grayscale samples for "
            f"{width}x{height} image, got {length} bytes"
        )


# ─── PDF ──────────────────────────────────────────────────────────────────────


class PdfError(CovidQrError):
    stage = "pdf"


class PdfOpenError(PdfError):
    """PDF file could not be opened."""


class PdfImageDecodeError(PdfError):
    """Embedded image stream could not be decoded."""

    def __init__(self, xref: int, reason: str):
        self.xref = xref
        super().__init__(f"image xref {xref}: {reason}")


# ─── QR ───────────────────────────────────────────────────────────────────────


class QrError(CovidQrError):
    stage = "qr"


class QrNotFoundError(QrError):
    """No QR code found."""


class QrExtractError(QrError):
    """QR code was located but its region could not be extracted."""


class QrDecodeError(QrError):
    """QR code was located but its payload could not be decoded."""


class QrPayloadEncodingError(QrError):
    """QR payload is not valid UTF-8."""


# ─── Envelope ─────────────────────────────────────────────────────────────────


class EnvelopeError(CovidQrError):
    stage = "envelope"


class MalformedEnvelopeError(EnvelopeError):
    """Malformed QR payload."""


class UnknownEnvelopeVersionError(EnvelopeError):
    """QR payload carries a version this decoder does not know."""

    def __init__(self, version: int):
        self.version = version
        super().__init__(f"unknown payload version {version}")


class EnvelopeBase64Error(EnvelopeError):
    """QR payload data is not valid base64."""


# ─── Crypto ───────────────────────────────────────────────────────────────────


class DecryptionError(CovidQrError):
    stage = "crypto"


class CryptoOperationError(DecryptionError):
    """Invalid cryptographic signature."""


class EmptyPlaintextError(DecryptionError):
    """Signature verified but no data was recovered."""


class PlaintextEncodingError(DecryptionError):
    """Recovered data is not valid UTF-8."""


class InvalidPublicKeyError(DecryptionError):
    """Public key could not be loaded."""


# ─── Record ───────────────────────────────────────────────────────────────────


class RecordError(CovidQrError):
    stage = "record"

    def __init__(self, field, message: Optional[str] = None):
        self.field = field
        super().__init__(message or f"{self.__doc__}: {field.value}")


class MissingFieldError(RecordError):
    """missing input field"""


class MalformedFieldError(RecordError):
    """malformed field data"""


# ─── Input ────────────────────────────────────────────────────────────────────


class InputError(CovidQrError):
    stage = "input"


class UnsupportedInputError(InputError):
    """Unable to determine the input type."""
