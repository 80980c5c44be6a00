"""
QR Payload Envelope
===================
The text carried by a certificate QR code is ``"<version>;<data>"``.
For version 1, ``<data>`` is the standard base64 encoding of the signed
record.
"""

from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass

from .errors import EnvelopeBase64Error, MalformedEnvelopeError, UnknownEnvelopeVersionError

SEPARATOR = ";"
SUPPORTED_VERSION = 1

# Unsigned byte: ASCII digits with an optional leading plus sign
_VERSION_PATTERN = re.compile(r"\+?[0-9]+")


@dataclass(frozen=True)
class Envelope:
    version: int
    payload: bytes

    @classmethod
    def parse(cls, text: str) -> "Envelope":
        """
        Parse and decode an envelope.

        Only the first separator splits; the data part is taken verbatim.

        Raises:
            MalformedEnvelopeError: No separator, or a version that is not
                an unsigned byte.
            UnknownEnvelopeVersionError: A well-formed version other than 1.
            EnvelopeBase64Error: Version 1 data that is not valid base64.
        """
        version, sep, data = text.partition(SEPARATOR)
        if not sep:
            raise MalformedEnvelopeError("payload has no version separator")

        if version == str(SUPPORTED_VERSION):
            try:
                payload = base64.b64decode(data, validate=True)
            except (binascii.Error, ValueError) as e:
                raise EnvelopeBase64Error(f"invalid base64 payload: {e}") from e
            return cls(version=SUPPORTED_VERSION, payload=payload)

        number = _parse_version(version)
        if number is None:
            raise MalformedEnvelopeError(f"invalid payload version {version!r}")
        raise UnknownEnvelopeVersionError(number)

    def to_text(self) -> str:
        encoded = base64.b64encode(self.payload).decode("ascii")
        return f"{self.version}{SEPARATOR}{encoded}"


def _parse_version(token: str):
    if not _VERSION_PATTERN.fullmatch(token):
        return None
    value = int(token)
    return value if value <= 0xFF else None


def decode_payload(text: str) -> bytes:
    """Decode QR text into the signed ciphertext it carries."""
    return Envelope.parse(text).payload


def encode_payload(data: bytes, version: int = SUPPORTED_VERSION) -> str:
    """Wrap ciphertext into QR text."""
    return Envelope(version=version, payload=data).to_text()
