"""
Input Type Detection
====================
Guesses which container form a file holds by sniffing its content.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Union

from PIL import Image, UnidentifiedImageError

from .errors import UnsupportedInputError
from .models import InputType

logger = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF-"

# RSA-2048 signature length
DEFAULT_CIPHERTEXT_SIZE = 256


def _is_image(path: Path) -> bool:
    try:
        with Image.open(path) as image:
            image.verify()
    except (OSError, UnidentifiedImageError, SyntaxError, ValueError):
        return False
    return True


def detect_input_type(
    path: Union[str, Path],
    ciphertext_size: int = DEFAULT_CIPHERTEXT_SIZE,
) -> InputType:
    """
    Determine the input type of a file.

    Order of checks:
        1. ``%PDF-`` header            -> PDF
        2. Pillow can identify it      -> image
        3. size equals ciphertext size -> encrypted
        4. ``a;b;...`` text            -> plaintext record
        5. ``version;data`` text       -> base64 envelope

    Raises:
        UnsupportedInputError: None of the above matched.
    """
    path = Path(path)
    try:
        with open(path, "rb") as f:
            head = f.read(len(PDF_MAGIC))
        size = os.path.getsize(path)
    except OSError as e:
        raise UnsupportedInputError(f"cannot read {path}: {e}") from e

    if head == PDF_MAGIC:
        return InputType.PDF
    if _is_image(path):
        return InputType.IMAGE

    # Binary ciphertext is indistinguishable from text by content alone
    if size == ciphertext_size:
        return InputType.ENCRYPTED

    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise UnsupportedInputError(f"unsupported binary input: {path}") from e

    # base64 never contains the separator, so a second one means a record
    _, sep, rest = text.partition(";")
    if sep:
        detected = InputType.PLAINTEXT if ";" in rest else InputType.BASE64
        logger.debug(f"Detected {detected.value} input: {path}")
        return detected

    raise UnsupportedInputError(f"unable to determine input type of {path}")
