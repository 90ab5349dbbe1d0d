"""OCR engine boundary, barcode reading and image preprocessing for meter photos."""
from .barcodes import Barcode, detect_barcodes
from .engines import (
    EasyOCREngine,
    OcrEngine,
    PaddleOCREngine,
    RecognitionOptions,
    TesseractEngine,
    create_engine,
)
from .preprocess import MeterType, build_variants, classify_meter_type, decode_image

__all__ = [
    "Barcode",
    "EasyOCREngine",
    "MeterType",
    "OcrEngine",
    "PaddleOCREngine",
    "RecognitionOptions",
    "TesseractEngine",
    "build_variants",
    "classify_meter_type",
    "create_engine",
    "decode_image",
    "detect_barcodes",
]
