"""
Barcode reading for meter labels.
Many meters carry the serial number as a linear barcode or QR code next to the
register; decoded values complement the OCR text.
"""
import logging
from dataclasses import dataclass
from typing import List

import numpy as np

from ..models.observation import BoundingBox
from .preprocess import to_gray

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Barcode:
    """One decoded barcode."""

    value: str
    symbology: str  # e.g. "EAN13", "Code128", "QRCode"
    bounding_box: BoundingBox


def detect_barcodes(image: np.ndarray) -> List[Barcode]:
    """
    Detect and decode every barcode in an image.

    Args:
        image: Decoded image (BGR or grayscale)

    Returns:
        Decoded barcodes in detection order (empty when none are found)
    """
    import zxingcpp

    gray = to_gray(image)
    height, width = gray.shape[:2]
    results = zxingcpp.read_barcodes(gray, try_rotate=True, try_downscale=True)

    barcodes = []
    for result in results:
        value = (result.text or "").strip()
        if not value:
            continue
        position = result.position
        corners = (position.top_left, position.top_right, position.bottom_right, position.bottom_left)
        xs = [point.x for point in corners]
        ys = [point.y for point in corners]
        barcodes.append(
            Barcode(
                value=value,
                symbology=result.format.name,
                bounding_box=BoundingBox.from_pixels(min(xs), min(ys), max(xs), max(ys), width, height),
            )
        )
    logger.info(f"Decoded {len(barcodes)} barcodes")
    return barcodes
