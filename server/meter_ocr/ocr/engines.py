"""
OCR engine adapters.
Each engine turns a decoded image into an ordered list of observations with
normalized bounding boxes. EasyOCR is the default, Tesseract and PaddleOCR are
alternatives selected through configuration.
"""
import logging
import os
import shutil
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Tuple

import cv2
import numpy as np
import pytesseract
from PIL import Image

from ..config import Settings
from ..models.observation import BoundingBox, Observation

logger = logging.getLogger(__name__)

TESSERACT_LANGUAGES = {"en": "eng", "de": "deu", "fr": "fra", "es": "spa"}


@dataclass(frozen=True)
class RecognitionOptions:
    """Recognition settings requested from an engine."""

    accurate: bool = True
    language_correction: bool = False  # corrupts digit sequences when enabled
    custom_words: Tuple[str, ...] = ()
    languages: Tuple[str, ...] = ("en",)


class OcrEngine(ABC):
    """Boundary to an OCR engine."""

    name = "base"

    @abstractmethod
    def recognize(self, image: np.ndarray, options: RecognitionOptions) -> List[Observation]:
        """
        Recognize text in an image.

        Args:
            image: Decoded image (BGR or grayscale)
            options: Recognition settings

        Returns:
            Observations in engine emission order
        """


def _clamp_confidence(value: float) -> float:
    return min(1.0, max(0.0, float(value)))


def _points_to_box(points, width: int, height: int) -> BoundingBox:
    xs = [float(p[0]) for p in points]
    ys = [float(p[1]) for p in points]
    return BoundingBox.from_pixels(min(xs), min(ys), max(xs), max(ys), width, height)


class EasyOCREngine(OcrEngine):
    """EasyOCR-backed engine."""

    name = "easyocr"

    def __init__(self, languages: Tuple[str, ...] = ("en",), gpu: bool = False):
        import certifi
        import easyocr

        # Model download fails on some hosts without an explicit CA bundle
        os.environ.setdefault("SSL_CERT_FILE", certifi.where())
        os.environ.setdefault("REQUESTS_CA_BUNDLE", certifi.where())

        logger.info("Initializing EasyOCR reader...")
        self.reader = easyocr.Reader(list(languages), gpu=gpu, verbose=False)
        logger.info("EasyOCR initialized successfully")

    def recognize(self, image: np.ndarray, options: RecognitionOptions) -> List[Observation]:
        height, width = image.shape[:2]
        decoder = "beamsearch" if options.accurate else "greedy"
        if options.custom_words:
            logger.debug("EasyOCR has no vocabulary hints; ignoring custom words")

        results = self.reader.readtext(image, decoder=decoder)

        observations = []
        for bbox, text, confidence in results:
            text = text.strip()
            if not text:
                continue
            observations.append(
                Observation(
                    text=text,
                    confidence=_clamp_confidence(confidence),
                    bounding_box=_points_to_box(bbox, width, height),
                )
            )
        logger.info(f"EasyOCR returned {len(observations)} observations")
        return observations


class TesseractEngine(OcrEngine):
    """Tesseract-backed engine (word-level observations)."""

    name = "tesseract"

    def __init__(self, psm: int = 11):
        tesseract_path = shutil.which("tesseract")
        if tesseract_path:
            pytesseract.pytesseract.tesseract_cmd = tesseract_path
            logger.info(f"Tesseract found at: {tesseract_path}")
        else:
            logger.warning("Tesseract not found in PATH, using default")
        self.psm = psm

    def build_config(self, options: RecognitionOptions, user_words_path: Optional[str] = None) -> str:
        """Tesseract command-line config for the requested options."""
        parts = [f"--psm {self.psm}", "--oem 1" if options.accurate else "--oem 3"]
        if not options.language_correction:
            parts.append("-c load_system_dawg=0 -c load_freq_dawg=0")
        if user_words_path:
            parts.append(f"--user-words {user_words_path}")
        return " ".join(parts)

    def recognize(self, image: np.ndarray, options: RecognitionOptions) -> List[Observation]:
        height, width = image.shape[:2]
        if image.ndim == 3:
            pil_image = Image.fromarray(cv2.cvtColor(image, cv2.COLOR_BGR2RGB))
        else:
            pil_image = Image.fromarray(image)
        lang = "+".join(TESSERACT_LANGUAGES.get(code, code) for code in options.languages)

        user_words_path = None
        if options.custom_words:
            with tempfile.NamedTemporaryFile("w", suffix=".user-words", delete=False) as words_file:
                words_file.write("\n".join(options.custom_words))
                user_words_path = words_file.name

        try:
            data = pytesseract.image_to_data(
                pil_image,
                lang=lang,
                config=self.build_config(options, user_words_path),
                output_type=pytesseract.Output.DICT,
            )
        finally:
            if user_words_path:
                os.unlink(user_words_path)

        observations = []
        for text, conf, left, top, w, h in zip(
            data["text"], data["conf"], data["left"], data["top"], data["width"], data["height"]
        ):
            text = (text or "").strip()
            confidence = float(conf)
            if not text or confidence < 0:
                continue
            observations.append(
                Observation(
                    text=text,
                    confidence=_clamp_confidence(confidence / 100),
                    bounding_box=BoundingBox.from_pixels(left, top, left + w, top + h, width, height),
                )
            )
        logger.info(f"Tesseract returned {len(observations)} observations")
        return observations


class PaddleOCREngine(OcrEngine):
    """PaddleOCR-backed engine (optional dependency)."""

    name = "paddleocr"

    def __init__(self, languages: Tuple[str, ...] = ("en",), gpu: bool = False):
        from paddleocr import PaddleOCR

        self.reader = PaddleOCR(
            use_angle_cls=True,
            lang=languages[0] if languages else "en",
            use_gpu=gpu,
            show_log=False,
        )
        logger.info("PaddleOCR initialized successfully")

    def recognize(self, image: np.ndarray, options: RecognitionOptions) -> List[Observation]:
        height, width = image.shape[:2]
        result = self.reader.ocr(image, cls=True)
        if not result or not result[0]:
            logger.info("PaddleOCR found no text")
            return []

        observations = []
        for line in result[0]:
            if not line:
                continue
            bbox, (text, confidence) = line
            text = text.strip()
            if not text:
                continue
            observations.append(
                Observation(
                    text=text,
                    confidence=_clamp_confidence(confidence),
                    bounding_box=_points_to_box(bbox, width, height),
                )
            )
        logger.info(f"PaddleOCR returned {len(observations)} observations")
        return observations


ENGINES = {
    EasyOCREngine.name: EasyOCREngine,
    TesseractEngine.name: TesseractEngine,
    PaddleOCREngine.name: PaddleOCREngine,
}


def create_engine(settings: Settings) -> OcrEngine:
    """Instantiate the engine named in settings."""
    if settings.ocr_engine not in ENGINES:
        raise ValueError(
            f"Unknown OCR engine '{settings.ocr_engine}'. Must be one of: {', '.join(ENGINES)}"
        )
    if settings.ocr_engine == TesseractEngine.name:
        return TesseractEngine()
    return ENGINES[settings.ocr_engine](languages=settings.languages, gpu=settings.use_gpu)
