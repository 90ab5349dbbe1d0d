"""Water meter OCR interpretation: reading, serial number and manufacturer extraction."""
from .detector import MeterDetector, PipelineState
from .errors import (
    AlreadyProcessingError,
    DetectionError,
    InvalidImageError,
    NoTextDetectedError,
    ProcessingFailedError,
)
from .extraction import extract_numeric_value, extract_serial_number, match_manufacturer
from .models import DetectionResult, Observation

__version__ = "1.0.0"

__all__ = [
    "AlreadyProcessingError",
    "DetectionError",
    "DetectionResult",
    "InvalidImageError",
    "MeterDetector",
    "NoTextDetectedError",
    "Observation",
    "PipelineState",
    "ProcessingFailedError",
    "extract_numeric_value",
    "extract_serial_number",
    "match_manufacturer",
]
