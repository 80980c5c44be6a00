"""
Shared fixtures: a throwaway issuer key pair, signed payloads, QR code
images and PDFs, all generated at test time.
"""

from __future__ import annotations

import io
import logging
from typing import Union

import fitz
import numpy as np
import pytest
import qrcode
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from PIL import Image

from covid_qr.envelope import encode_payload
from covid_qr.raster import RasterImage
from covid_qr.verifier import SignatureVerifier

RECORD_LINE = "123456;1;20-01-2021;Anna Kowalska;M;17-04;20-01-2022;321"


# ─── Keys & Signing ───────────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def private_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def public_pem(private_key) -> bytes:
    return private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


@pytest.fixture(scope="session")
def verifier(private_key) -> SignatureVerifier:
    return SignatureVerifier(private_key.public_key())


def sign_raw(private_key, data: bytes) -> bytes:
    """
    Produce what the issuer produces: PKCS#1 v1.5 type 1 padding followed
    by the raw RSA private-key operation.
    """
    numbers = private_key.private_numbers()
    n = numbers.public_numbers.n
    k = (n.bit_length() + 7) // 8
    assert len(data) <= k - 11
    block = b"\x00\x01" + b"\xff" * (k - 3 - len(data)) + b"\x00" + data
    return pow(int.from_bytes(block, "big"), numbers.d, n).to_bytes(k, "big")


@pytest.fixture(scope="session")
def signer(private_key):
    return lambda data: sign_raw(private_key, data)


@pytest.fixture(scope="session")
def signed_record(signer) -> bytes:
    return signer(RECORD_LINE.encode("utf-8"))


# ─── QR Codes ─────────────────────────────────────────────────────────────────


def qr_image(data: Union[str, bytes], box_size: int = 4) -> Image.Image:
    """Render ``data`` as a black-on-white QR code, 8-bit grayscale."""
    qr = qrcode.QRCode(box_size=box_size, border=4)
    qr.add_data(data)
    qr.make(fit=True)
    buf = io.BytesIO()
    qr.make_image(fill_color="black", back_color="white").save(buf)
    buf.seek(0)
    with Image.open(buf) as image:
        return image.convert("L")


def qr_raster(data: Union[str, bytes], box_size: int = 4) -> RasterImage:
    return RasterImage.from_pil(qr_image(data, box_size))


@pytest.fixture(scope="session")
def certificate_text(signed_record) -> str:
    return encode_payload(signed_record)


@pytest.fixture(scope="session")
def certificate_image(certificate_text) -> Image.Image:
    return qr_image(certificate_text)


# ─── PDFs ─────────────────────────────────────────────────────────────────────


def _gray_pixmap(image: Image.Image, alpha: bool = False) -> fitz.Pixmap:
    width, height = image.size
    samples = image.tobytes()
    if alpha:
        gray = np.frombuffer(samples, dtype=np.uint8)
        alpha_channel = np.full_like(gray, 200)
        samples = np.stack([gray, alpha_channel], axis=1).tobytes()
    return fitz.Pixmap(fitz.csGRAY, width, height, samples, alpha)


def _rewrite_as_1bit(doc: fitz.Document, xref: int, image: Image.Image):
    """Replace an image XObject with a 1-bit DeviceGray version of ``image``."""
    width, height = image.size
    bits = np.asarray(image, dtype=np.uint8).reshape(height, width) > 127
    packed = np.packbits(bits, axis=1).tobytes()
    doc.update_object(
        xref,
        f"<</Type/XObject/Subtype/Image/Width {width}/Height {height}"
        f"/ColorSpace/DeviceGray/BitsPerComponent 1>>",
    )
    doc.update_stream(xref, packed)


def build_pdf(path, images) -> None:
    """
    Write a one-page-per-entry PDF.

    Args:
        images: list of pages, each a list of ``(kind, PIL image)`` where
            kind is ``"gray8"``, ``"gray1"`` or ``"masked"``.
    """
    doc = fitz.open()
    placed: set[int] = set()
    for page_images in images:
        page = doc.new_page()
        for index, (kind, image) in enumerate(page_images):
            rect = fitz.Rect(20, 20 + index * 260, 270, 270 + index * 260)
            page.insert_image(rect, pixmap=_gray_pixmap(image, alpha=kind == "masked"))
            if kind == "gray1":
                # insert_image shares one xref between identical images
                added = [
                    row[0] for row in page.get_images(full=True)
                    if row[0] not in placed
                ]
                assert added, "1-bit images must have distinct content"
                _rewrite_as_1bit(doc, added[0], image)
            placed.update(row[0] for row in page.get_images(full=True))
    doc.save(str(path))
    doc.close()


@pytest.fixture
def pdf_builder(tmp_path):
    def _build(images, name="certificate.pdf"):
        path = tmp_path / name
        build_pdf(path, images)
        return path
    return _build


# ─── Logging ──────────────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def _reset_package_logger():
    """Drop handlers the engine attaches so streams do not leak across tests."""
    yield
    package_logger = logging.getLogger("covid_qr")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()
