"""
Runtime configuration for the meter OCR service.
Values come from the environment (optionally seeded from a .env file).
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Tuple

from dotenv import load_dotenv

ENV_FILE = ".env"
DEFAULT_CONFIDENCE_THRESHOLD = 0.4
DEFAULT_LINE_THRESHOLD = 0.03
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _get_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_csv(name: str, default_csv: str = "") -> Tuple[str, ...]:
    raw = os.getenv(name, default_csv)
    return tuple(p.strip() for p in raw.split(",") if p.strip())


@dataclass(frozen=True)
class Settings:
    # OCR
    ocr_engine: str  # easyocr | tesseract | paddleocr
    languages: Tuple[str, ...]
    use_gpu: bool

    # Extraction
    confidence_threshold: float
    line_threshold: float
    detect_region: bool
    read_barcodes: bool
    utility_type: str

    # General
    log_level: str

    @staticmethod
    def from_env() -> "Settings":
        load_dotenv(ENV_FILE)
        return Settings(
            ocr_engine=(os.getenv("METER_OCR_ENGINE") or "easyocr").strip().lower(),
            languages=_get_csv("METER_OCR_LANGUAGES", "en") or ("en",),
            use_gpu=_get_bool("METER_OCR_USE_GPU", False),
            confidence_threshold=_get_float("METER_OCR_CONFIDENCE_THRESHOLD", DEFAULT_CONFIDENCE_THRESHOLD),
            line_threshold=_get_float("METER_OCR_LINE_THRESHOLD", DEFAULT_LINE_THRESHOLD),
            detect_region=_get_bool("METER_OCR_DETECT_REGION", False),
            read_barcodes=_get_bool("METER_OCR_READ_BARCODES", True),
            utility_type=(os.getenv("METER_OCR_UTILITY_TYPE") or "water").strip().lower(),
            log_level=(os.getenv("LOG_LEVEL") or "INFO").strip().upper(),
        )


def configure_logging(level: str = "INFO") -> None:
    """Configure the root logger for the application."""
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)
