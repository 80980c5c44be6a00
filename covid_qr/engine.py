"""
Decoder Engine
==============
Main orchestrator that combines image extraction, QR reading, envelope
decoding, signature verification and record parsing into one pipeline.

Usage:
    engine = DecoderEngine(config)
    result = engine.decode("path/to/certificate.pdf")
    # result is a DecodeResult holding the verified VaccinationRecord

Architecture:
    PDF → PdfImageExtractor → RasterImage ┐
    image file → RasterImage ─────────────┴→ QrPayloadReader → QR text ┐
    base64 text ───────────────────────────────────────────────────────┴→
    EnvelopeCodec → ciphertext → SignatureVerifier → plaintext →
    RecordParser → VaccinationRecord
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from .detect import detect_input_type
from .envelope import decode_payload
from .errors import CovidQrError, EnvelopeError, InputError, QrError, QrNotFoundError
from .models import DecodeResult, InputType, VaccinationRecord
from .pdf_extractor import PdfImageExtractor
from .qr_reader import QrPayloadReader
from .record import RecordParser
from .verifier import SignatureVerifier

logger = logging.getLogger(__name__)

PUBLIC_KEY_ENV = "COVID_QR_PUBLIC_KEY"


@dataclass
class DecoderConfig:
    """Configuration for the decoder engine."""

    # Verification key (PEM path); falls back to the bundled issuer key
    public_key_path: Optional[str] = field(
        default_factory=lambda: os.environ.get(PUBLIC_KEY_ENV) or None
    )

    # Auto-detection: byte size of a raw ciphertext file.
    # Defaults to the verification key's modulus size.
    ciphertext_size: Optional[int] = None

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None


class DecoderEngine:
    """
    Certificate decoding engine.

    Orchestrates the full pipeline:
        1. Input type detection (unless given)
        2. Ciphertext extraction (PDF image / QR image / base64 envelope)
        3. Signature verification
        4. Record parsing
    """

    def __init__(
        self,
        config: Optional[DecoderConfig] = None,
        verifier: Optional[SignatureVerifier] = None,
    ):
        self.config = config or DecoderConfig()
        self._file_handler: Optional[logging.FileHandler] = None
        self._setup_logging()

        try:
            self.verifier = verifier or self._load_verifier()
        except CovidQrError:
            self.close()
            raise
        self.qr_reader = QrPayloadReader()
        self.record_parser = RecordParser()

    def _setup_logging(self):
        """Configure logging based on config."""
        log_level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        package_logger = logging.getLogger("covid_qr")
        package_logger.setLevel(log_level)

        formatter = logging.Formatter(
            "[%(asctime)s] %(levelname)-8s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

        # Console handler
        if not package_logger.handlers:
            console = logging.StreamHandler()
            console.setLevel(log_level)
            console.setFormatter(formatter)
            package_logger.addHandler(console)

        # File handler
        if self.config.log_file:
            log_dir = Path(self.config.log_file).parent
            log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(
                self.config.log_file, encoding="utf-8"
            )
            file_handler.setLevel(log_level)
            file_handler.setFormatter(formatter)
            package_logger.addHandler(file_handler)
            self._file_handler = file_handler

    def close(self):
        """Detach and close the log file handler this engine added."""
        if self._file_handler is not None:
            logging.getLogger("covid_qr").removeHandler(self._file_handler)
            self._file_handler.close()
            self._file_handler = None

    def __enter__(self) -> "DecoderEngine":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _load_verifier(self) -> SignatureVerifier:
        if self.config.public_key_path:
            logger.debug(f"Using public key: {self.config.public_key_path}")
            return SignatureVerifier.from_pem_file(self.config.public_key_path)
        return SignatureVerifier.default()

    @property
    def ciphertext_size(self) -> int:
        return self.config.ciphertext_size or self.verifier.key_size_bytes

    # ─── Ciphertext Sources ───────────────────────────────────────────────────

    def from_pdf(self, pdf_path: Union[str, Path]) -> bytes:
        """
        Ciphertext from the first PDF image holding a certificate QR code.

        Images are decoded one at a time; scanning stops at the first hit.

        Raises:
            PdfOpenError: If the PDF cannot be opened.
            QrNotFoundError: If no image holds a QR code.
            QrError / EnvelopeError: The first QR failure seen, when QR
                codes were found but none could be decoded.
        """
        first_failure: Optional[CovidQrError] = None

        with PdfImageExtractor.open(pdf_path) as pdf:
            for image in pdf.images():
                if not image.ok:
                    logger.debug(
                        f"Skipping image xref {image.xref} "
                        f"(page {image.page_number}): {image.error}"
                    )
                    continue

                try:
                    ciphertext = self.qr_reader.extract_ciphertext(image.raster)
                except (QrError, EnvelopeError) as e:
                    logger.debug(
                        f"No payload in image xref {image.xref} "
                        f"(page {image.page_number}): {e}"
                    )
                    if first_failure is None and not isinstance(e, QrNotFoundError):
                        first_failure = e
                    continue

                logger.info(
                    f"Found QR payload in image xref {image.xref} "
                    f"on page {image.page_number}"
                )
                return ciphertext

        if first_failure is not None:
            raise first_failure
        raise QrNotFoundError(f"Unable to find QR code in the PDF file {pdf_path}")

    def from_image(self, image_path: Union[str, Path]) -> bytes:
        return self.qr_reader.read_image(image_path)

    def from_base64(self, text: str) -> bytes:
        return decode_payload(text.strip())

    def from_ciphertext(self, data: bytes) -> bytes:
        return bytes(data)

    def from_plaintext(self, line: str) -> VaccinationRecord:
        return self.record_parser.parse(line)

    def decode_ciphertext(self, ciphertext: bytes) -> VaccinationRecord:
        """Verify a signed payload and parse the record it carries."""
        return self.record_parser.parse(self.verifier.decrypt(ciphertext))

    # ─── Full Pipeline ────────────────────────────────────────────────────────

    def decode(
        self,
        path: Union[str, Path],
        input_type: Optional[InputType] = None,
    ) -> DecodeResult:
        """
        Decode a certificate file into a verified record.

        Args:
            path: Input file.
            input_type: Container form; detected from content when omitted.

        Returns:
            DecodeResult with the record and the verified plaintext line.

        Raises:
            CovidQrError: Subclass naming the stage that failed.
        """
        start_time = time.time()
        path = Path(path)

        if input_type is None:
            input_type = detect_input_type(path, self.ciphertext_size)
            logger.info(f"Detected input type: {input_type.value}")

        if input_type is InputType.PLAINTEXT:
            plaintext = _read_text(path)
        else:
            plaintext = self.verifier.decrypt(self._ciphertext(path, input_type))

        record = self.record_parser.parse(plaintext)

        elapsed = time.time() - start_time
        logger.info(f"Decoded certificate {record.id} in {elapsed:.2f}s")

        return DecodeResult(
            record=record,
            input_type=input_type,
            source=str(path),
            plaintext=plaintext,
        )

    def _ciphertext(self, path: Path, input_type: InputType) -> bytes:
        if input_type is InputType.PDF:
            return self.from_pdf(path)
        if input_type is InputType.IMAGE:
            return self.from_image(path)
        if input_type is InputType.BASE64:
            return self.from_base64(_read_text(path))
        return self.from_ciphertext(_read_bytes(path))


def _read_bytes(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as e:
        raise InputError(f"cannot read {path}: {e}") from e


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise InputError(f"cannot read text from {path}: {e}") from e
