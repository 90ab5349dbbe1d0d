"""
Image decoding and preprocessing for meter OCR.
Produces independently filtered variants of one source image; each variant is
recognized as a separate OCR pass.
"""
import logging
from enum import Enum
from pathlib import Path
from typing import List, Optional, Union

import cv2
import numpy as np
from PIL import Image

from ..errors import InvalidImageError
from ..models.observation import BoundingBox

logger = logging.getLogger(__name__)

ImageSource = Union[bytes, bytearray, str, Path, Image.Image, np.ndarray]


class MeterType(str, Enum):
    DIGITAL = "digital"
    ANALOG = "analog"
    UNKNOWN = "unknown"


def decode_image(source: ImageSource) -> np.ndarray:
    """
    Decode an image into a pixel buffer.

    Args:
        source: Encoded bytes, file path, PIL image or numpy array

    Returns:
        BGR (or grayscale) numpy array

    Raises:
        InvalidImageError: If the source cannot be decoded
    """
    img = None
    if isinstance(source, np.ndarray):
        img = source
    elif isinstance(source, Image.Image):
        img = cv2.cvtColor(np.array(source.convert("RGB")), cv2.COLOR_RGB2BGR)
    elif isinstance(source, (bytes, bytearray)):
        if source:
            img = cv2.imdecode(np.frombuffer(bytes(source), dtype=np.uint8), cv2.IMREAD_COLOR)
    elif isinstance(source, (str, Path)):
        img = cv2.imread(str(source))

    if img is None or img.size == 0 or img.ndim not in (2, 3):
        raise InvalidImageError(f"Could not decode image from {type(source).__name__}")
    if img.dtype != np.uint8:
        img = cv2.normalize(img, None, 0, 255, cv2.NORM_MINMAX).astype(np.uint8)
    return img


def to_gray(img: np.ndarray) -> np.ndarray:
    return cv2.cvtColor(img, cv2.COLOR_BGR2GRAY) if img.ndim == 3 else img


def classify_meter_type(img: np.ndarray) -> MeterType:
    """Nearly square images are taken as analog dials, wide ones as digital displays."""
    height, width = img.shape[:2]
    ratio = width / height
    if 0.8 < ratio < 1.2:
        return MeterType.ANALOG
    if ratio >= 1.2:
        return MeterType.DIGITAL
    return MeterType.UNKNOWN


def resize_for_ocr(img: np.ndarray, max_dimension: int = 3000, min_dimension: int = 500) -> np.ndarray:
    """Scale very large images down and very small ones up."""
    height, width = img.shape[:2]
    if max(height, width) > max_dimension:
        scale = max_dimension / max(height, width)
        interpolation = cv2.INTER_AREA
    elif min(height, width) < min_dimension:
        scale = min_dimension / min(height, width)
        interpolation = cv2.INTER_CUBIC
    else:
        return img
    new_size = (int(width * scale), int(height * scale))
    logger.info(f"Resized image from {width}x{height} to {new_size[0]}x{new_size[1]}")
    return cv2.resize(img, new_size, interpolation=interpolation)


def adjust_contrast(gray: np.ndarray, contrast: float, brightness: float = 0.0) -> np.ndarray:
    """Scale contrast around mid-gray and shift brightness (fraction of full range)."""
    adjusted = gray.astype(np.float32) * contrast + 128 * (1 - contrast) + 255 * brightness
    return np.clip(adjusted, 0, 255).astype(np.uint8)


def unsharp_mask(gray: np.ndarray, radius: float, intensity: float) -> np.ndarray:
    blurred = cv2.GaussianBlur(gray, (0, 0), radius)
    return cv2.addWeighted(gray, 1 + intensity, blurred, -intensity, 0)


def adjust_gamma(gray: np.ndarray, power: float) -> np.ndarray:
    table = np.array([((i / 255.0) ** power) * 255 for i in range(256)]).astype(np.uint8)
    return cv2.LUT(gray, table)


def deskew(gray: np.ndarray) -> np.ndarray:
    """
    Straighten image (deskew).
    Corrects meter tilt in photos.

    Args:
        gray: Grayscale image

    Returns:
        Deskewed grayscale image
    """
    # Text pixels are dark on meter faces
    _, mask = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY_INV + cv2.THRESH_OTSU)
    coords = np.column_stack(np.where(mask > 0)).astype(np.float32)
    if len(coords) < 10:
        return gray

    angle = cv2.minAreaRect(coords)[-1]
    # OpenCV >= 4.5 reports angles in (0, 90]
    if angle > 0:
        angle -= 90
    if angle < -45:
        angle = -(90 + angle)
    else:
        angle = -angle

    # Small tilts are not worth the interpolation blur
    if abs(angle) < 1.0:
        return gray

    (h, w) = gray.shape[:2]
    matrix = cv2.getRotationMatrix2D((w // 2, h // 2), angle, 1.0)
    rotated = cv2.warpAffine(gray, matrix, (w, h), flags=cv2.INTER_CUBIC, borderMode=cv2.BORDER_REPLICATE)
    logger.info(f"Deskewed image by {angle:.2f} degrees")
    return rotated


def preprocess_general(img: np.ndarray) -> np.ndarray:
    """Grayscale, contrast boost, edge sharpening and light denoising."""
    gray = adjust_contrast(to_gray(img), 1.5, brightness=0.05)
    gray = unsharp_mask(gray, radius=1.5, intensity=1.0)
    return cv2.fastNlMeansDenoising(gray, None, h=5)


def preprocess_digital_display(img: np.ndarray) -> np.ndarray:
    """High-contrast variant for LCD/LED digit displays."""
    gray = adjust_contrast(to_gray(img), 1.8, brightness=0.05)
    gray = unsharp_mask(gray, radius=1.0, intensity=2.0)
    return cv2.fastNlMeansDenoising(gray, None, h=5)


def preprocess_enhanced(img: np.ndarray) -> np.ndarray:
    """CLAHE followed by adaptive binarization and morphological cleanup."""
    clahe = cv2.createCLAHE(clipLimit=2.0, tileGridSize=(8, 8))
    gray = clahe.apply(to_gray(img))
    thresh = cv2.adaptiveThreshold(
        gray, 255, cv2.ADAPTIVE_THRESH_GAUSSIAN_C, cv2.THRESH_BINARY, 11, 2
    )
    kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (2, 2))
    thresh = cv2.morphologyEx(thresh, cv2.MORPH_CLOSE, kernel)
    return cv2.morphologyEx(thresh, cv2.MORPH_OPEN, kernel)


def preprocess_analog(img: np.ndarray) -> np.ndarray:
    """Deskew plus moderate contrast, gamma and mild sharpening for odometer dials."""
    gray = deskew(to_gray(img))
    gray = adjust_contrast(gray, 1.3)
    gray = adjust_gamma(gray, 1.2)
    return unsharp_mask(gray, radius=1.5, intensity=0.8)


def build_variants(img: np.ndarray, meter_type: MeterType) -> List[np.ndarray]:
    """Ordered preprocessing passes for a meter type."""
    if meter_type is MeterType.DIGITAL:
        return [preprocess_general(img), preprocess_digital_display(img), preprocess_enhanced(img)]
    if meter_type is MeterType.ANALOG:
        return [preprocess_analog(img)]
    return [img]


def crop_region(img: np.ndarray, region: BoundingBox) -> np.ndarray:
    """Crop a normalized region out of an image; an empty crop returns the image unchanged."""
    height, width = img.shape[:2]
    x0 = int(round(region.x * width))
    y0 = int(round(region.y * height))
    x1 = int(round((region.x + region.width) * width))
    y1 = int(round((region.y + region.height) * height))
    if x1 <= x0 or y1 <= y0:
        logger.warning(f"Ignoring empty region {region}")
        return img
    return img[y0:y1, x0:x1]


def find_display_region(gray: np.ndarray) -> Optional[BoundingBox]:
    """
    Find the region containing the meter reading display using contour detection.

    Digit cells are found as similarly sized rectangular contours; horizontally
    aligned cells are grouped and the largest, highest group wins.

    Args:
        gray: Grayscale image

    Returns:
        Normalized display region, or None if not found
    """
    height, width = gray.shape[:2]
    _, thresh = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
    contours, _ = cv2.findContours(thresh, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
    if not contours:
        return None

    # Digit cells: not tiny, not huge, roughly upright rectangles
    digit_contours = []
    for contour in contours:
        x, y, w, h = cv2.boundingRect(contour)
        area = cv2.contourArea(contour)
        aspect_ratio = w / h if h > 0 else 0
        if (area > 200 and
                w > 15 and h > 15 and
                w < width * 0.25 and h < height * 0.25 and
                0.4 < aspect_ratio < 2.5):
            digit_contours.append((x, y, w, h))

    if not digit_contours:
        return None

    digit_contours.sort(key=lambda c: c[0])
    groups = []
    current_group = [digit_contours[0]]
    for prev, curr in zip(digit_contours, digit_contours[1:]):
        y_diff = abs(curr[1] - prev[1])
        x_gap = curr[0] - (prev[0] + prev[2])
        avg_height = (prev[3] + curr[3]) / 2
        avg_width = (prev[2] + curr[2]) / 2
        if y_diff < avg_height * 1.5 and x_gap < avg_width * 3:
            current_group.append(curr)
        else:
            if len(current_group) >= 4:
                groups.append(current_group)
            current_group = [curr]
    if len(current_group) >= 4:
        groups.append(current_group)

    if not groups:
        return None

    def group_score(group):
        avg_y = sum(c[1] for c in group) / len(group)
        return len(group) * 10 - (avg_y / height) * 5

    best_group = max(groups, key=group_score)
    min_x = min(c[0] for c in best_group)
    min_y = min(c[1] for c in best_group)
    max_x = max(c[0] + c[2] for c in best_group)
    max_y = max(c[1] + c[3] for c in best_group)

    padding = 40
    region = BoundingBox.from_pixels(
        max(0, min_x - padding),
        max(0, min_y - padding),
        min(width, max_x + padding),
        min(height, max_y + padding),
        width,
        height,
    )
    logger.info(f"Found meter display region {region} with {len(best_group)} digit cells")
    return region
