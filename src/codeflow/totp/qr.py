"""
QR code reading.

Pillow opens the image and pyzbar locates and decodes the symbols; the
decoded text is then handed to the migration decoder.

pyzbar needs the zbar shared library at import time, so this module is only
imported by the commands that scan images.
"""

import logging
from pathlib import Path

from PIL import Image, UnidentifiedImageError
from pyzbar.pyzbar import decode

from ..errors import CodeFlowError, UnrecognizedFormat
from . import migration

logger = logging.getLogger(__name__)


class QrReadError(CodeFlowError):
    """The image could not be read or holds no QR code."""


def read_qr_texts(image_path):
    """
    Decode every QR symbol in an image.

    Args:
        image_path (str or Path): Path to a PNG/JPEG/... image

    Returns:
        list: Decoded text of each symbol, in scan order

    Raises:
        QrReadError: If the file cannot be opened or contains no QR code
    """
    path = Path(str(image_path).strip().strip("'").strip('"')).expanduser()
    if not path.is_file():
        raise QrReadError(f"Image file not found: {path}")

    try:
        with Image.open(path) as image:
            decoded_objects = decode(image)
    except (OSError, UnidentifiedImageError) as e:
        raise QrReadError(f"Could not read the image file: {path}") from e

    texts = [obj.data.decode("utf-8", errors="replace") for obj in decoded_objects]
    if not texts:
        raise QrReadError("No QR code found in the image")
    logger.debug(f"Found {len(texts)} QR symbol(s) in {path.name}")
    return texts


def scan_image(image_path):
    """
    Scan an image and decode the first QR symbol carrying a recognised URI.

    Returns:
        migration.ScanResult: The decoded accounts

    Raises:
        QrReadError: If no QR code is found
        UnrecognizedFormat: If no symbol holds an otpauth URI
    """
    for text in read_qr_texts(image_path):
        try:
            return migration.parse_scanned_text(text)
        except UnrecognizedFormat:
            logger.debug("Skipping QR symbol with unrecognized content")
    raise UnrecognizedFormat("No otpauth QR code found in the image")

