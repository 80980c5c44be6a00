"""
Signature Verifier
==================
Recovers the signed record from a certificate ciphertext.

The issuer signs the record line with its RSA private key using PKCS#1
v1.5 type 1 padding. Applying the public key and stripping that padding
recovers the line; a padding check that passes is the signature check.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Optional, Union

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicKey

from .errors import (
    CryptoOperationError,
    EmptyPlaintextError,
    InvalidPublicKeyError,
    PlaintextEncodingError,
)

logger = logging.getLogger(__name__)

DEFAULT_KEY_RESOURCE = "default_public.pem"


def load_public_key(pem: bytes) -> RSAPublicKey:
    """
    Parse a PEM-encoded RSA public key.

    Raises:
        InvalidPublicKeyError: Malformed PEM or a non-RSA key.
    """
    try:
        key = serialization.load_pem_public_key(pem)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise InvalidPublicKeyError(f"cannot load public key: {e}") from e

    if not isinstance(key, RSAPublicKey):
        raise InvalidPublicKeyError(
            f"expected an RSA public key, got {type(key).__name__}"
        )
    return key


@lru_cache(maxsize=1)
def default_public_key() -> RSAPublicKey:
    """The issuer key bundled with the package."""
    key_file = resources.files("covid_qr").joinpath("keys").joinpath(DEFAULT_KEY_RESOURCE)
    pem = key_file.read_bytes()
    return load_public_key(pem)


class SignatureVerifier:
    """RSA public-key decrypter holding only public key material."""

    def __init__(self, key: Optional[RSAPublicKey] = None):
        self._key = key if key is not None else default_public_key()

    @classmethod
    def default(cls) -> "SignatureVerifier":
        return cls(default_public_key())

    @classmethod
    def from_pem(cls, pem: Union[bytes, str]) -> "SignatureVerifier":
        if isinstance(pem, str):
            pem = pem.encode("ascii")
        return cls(load_public_key(pem))

    @classmethod
    def from_pem_file(cls, path: Union[str, Path]) -> "SignatureVerifier":
        try:
            pem = Path(path).read_bytes()
        except OSError as e:
            raise InvalidPublicKeyError(f"cannot read public key {path}: {e}") from e
        return cls.from_pem(pem)

    @property
    def key(self) -> RSAPublicKey:
        return self._key

    @property
    def key_size_bytes(self) -> int:
        return (self._key.key_size + 7) // 8

    def decrypt(self, ciphertext: bytes) -> str:
        """
        Verify and recover the signed text.

        Raises:
            CryptoOperationError: Padding check failed: wrong key, wrong
                input size, or tampered data.
            EmptyPlaintextError: Padding was valid but carried no data.
            PlaintextEncodingError: Recovered data is not UTF-8.
        """
        try:
            data = self._key.recover_data_from_signature(
                bytes(ciphertext), padding.PKCS1v15(), None
            )
        except (InvalidSignature, ValueError) as e:
            raise CryptoOperationError(
                f"signature verification failed for {len(ciphertext)}-byte input"
            ) from e

        if not data:
            raise EmptyPlaintextError()

        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise PlaintextEncodingError(f"recovered data is not UTF-8: {e}") from e

        logger.debug(f"Recovered {len(data)} bytes of signed data")
        return text
