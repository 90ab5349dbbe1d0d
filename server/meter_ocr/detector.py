"""
Meter detection pipeline.
Runs OCR on a meter photo and combines line reconstruction, reading, serial
number and manufacturer extraction into one structured result. At most one
detection runs at a time per detector; extra callers are rejected, not queued.
"""
import asyncio
import dataclasses
import logging
import threading
import time
from contextlib import contextmanager
from enum import Enum
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .config import DEFAULT_CONFIDENCE_THRESHOLD, DEFAULT_LINE_THRESHOLD, Settings
from .errors import (
    AlreadyProcessingError,
    DetectionError,
    InvalidImageError,
    NoTextDetectedError,
    ProcessingFailedError,
)
from .extraction import (
    extract_reading,
    find_manufacturer,
    find_serial_number,
    lines_to_text,
    looks_like_meter_reading,
    reconstruct_lines,
    select_pass_index,
)
from .models.detection import DetectionResult
from .models.meter_profile import MeterProfile, get_profile
from .models.observation import BoundingBox, Observation
from .ocr.barcodes import Barcode, detect_barcodes
from .ocr.engines import OcrEngine, RecognitionOptions
from .ocr.preprocess import (
    ImageSource,
    build_variants,
    classify_meter_type,
    crop_region,
    decode_image,
    find_display_region,
    resize_for_ocr,
    to_gray,
)

logger = logging.getLogger(__name__)


class DetectorStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class PipelineState:
    """In-flight detection state owned by one detector."""

    def __init__(self):
        self._lock = threading.Lock()
        self.status = DetectorStatus.IDLE
        self.last_processing_time = 0.0

    @property
    def is_processing(self) -> bool:
        return self.status is DetectorStatus.RUNNING

    @contextmanager
    def acquire(self):
        """Enter the running state, or fail immediately if a detection is in flight."""
        if not self._lock.acquire(blocking=False):
            raise AlreadyProcessingError("A detection is already in progress")
        self.status = DetectorStatus.RUNNING
        try:
            yield self
        finally:
            self.status = DetectorStatus.IDLE
            self._lock.release()


class MeterDetector:
    """Detects reading, serial number and manufacturer on water meter photos."""

    def __init__(
        self,
        engine: OcrEngine,
        profile: Optional[MeterProfile] = None,
        confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
        line_threshold: float = DEFAULT_LINE_THRESHOLD,
        detect_region: bool = False,
        read_barcodes: bool = True,
        languages: Sequence[str] = ("en",),
    ):
        self.engine = engine
        self.profile = profile or get_profile("water")
        self.confidence_threshold = confidence_threshold
        self.line_threshold = line_threshold
        self.detect_region = detect_region
        self.read_barcodes = read_barcodes
        self.languages = tuple(languages)
        self.state = PipelineState()

    @classmethod
    def from_settings(cls, settings: Settings, engine: OcrEngine) -> "MeterDetector":
        return cls(
            engine,
            profile=get_profile(settings.utility_type),
            confidence_threshold=settings.confidence_threshold,
            line_threshold=settings.line_threshold,
            detect_region=settings.detect_region,
            read_barcodes=settings.read_barcodes,
            languages=settings.languages,
        )

    @property
    def is_processing(self) -> bool:
        return self.state.is_processing

    @property
    def last_processing_time(self) -> float:
        """Seconds taken by the last successful detection."""
        return self.state.last_processing_time

    def recognition_options(
        self, profile: Optional[MeterProfile] = None, language_correction: bool = False
    ) -> RecognitionOptions:
        profile = profile or self.profile
        return RecognitionOptions(
            accurate=True,
            language_correction=language_correction,
            custom_words=profile.vocabulary,
            languages=self.languages,
        )

    async def detect_meter_info(
        self,
        image: ImageSource,
        region: Optional[BoundingBox] = None,
        profile: Optional[MeterProfile] = None,
    ) -> DetectionResult:
        """
        Detect meter information in a single image.

        Args:
            image: Encoded bytes, path, PIL image or numpy array
            region: Optional normalized region of interest
            profile: Meter profile overriding the detector default

        Returns:
            Structured detection result

        Raises:
            AlreadyProcessingError: A detection is already in flight
            InvalidImageError: The image cannot be decoded
            NoTextDetectedError: No observation survived confidence filtering
            ProcessingFailedError: The OCR engine or barcode reader failed
        """
        with self.state.acquire():
            start_time = time.perf_counter()
            profile = profile or self.profile
            full_img, img = await asyncio.to_thread(self._prepare_image, image, region)

            observations = await self._recognize(img, self.recognition_options(profile))
            if not observations:
                raise NoTextDetectedError(
                    f"No observations above confidence {self.confidence_threshold}"
                )

            result = self.process_observations(observations, profile)
            if self.read_barcodes:
                result = self.attach_barcodes(result, await self._read_barcodes(full_img))
            self.state.last_processing_time = time.perf_counter() - start_time
            logger.info(
                f"Detection finished in {self.state.last_processing_time:.3f}s: "
                f"reading={result.reading}, serial={result.serial_number}, "
                f"manufacturer={result.manufacturer}, confidence={result.confidence:.2f}"
            )
            return result

    async def detect_meter_info_multipass(
        self,
        variants: Sequence[ImageSource],
        profile: Optional[MeterProfile] = None,
    ) -> DetectionResult:
        """
        Detect meter information from several preprocessed variants of one image.

        Variants are recognized in order; recognition stops at the first pass
        whose text looks like a meter reading. Otherwise the first pass with
        any text is used.

        Args:
            variants: Independently filtered versions of the same source image
            profile: Meter profile overriding the detector default

        Returns:
            Structured detection result for the selected pass
        """
        with self.state.acquire():
            start_time = time.perf_counter()
            profile = profile or self.profile
            if not variants:
                raise InvalidImageError("No image variants supplied")

            options = self.recognition_options(profile)
            pass_observations: List[List[Observation]] = []
            pass_texts: List[Optional[str]] = []
            for index, variant in enumerate(variants):
                variant_img = await asyncio.to_thread(decode_image, variant)
                observations = await self._recognize(variant_img, options)
                text = lines_to_text(reconstruct_lines(observations, self.line_threshold)) if observations else None
                pass_observations.append(observations)
                pass_texts.append(text)
                logger.info(f"Pass {index}: {len(observations)} observations")
                if looks_like_meter_reading(text):
                    break

            selected = select_pass_index(pass_texts)
            if selected is None:
                raise NoTextDetectedError(f"No text detected in {len(pass_texts)} passes")

            result = self.process_observations(pass_observations[selected], profile)
            result = dataclasses.replace(
                result, additional_info={**result.additional_info, "pass_index": str(selected)}
            )
            self.state.last_processing_time = time.perf_counter() - start_time
            return result

    async def recognize_text(self, image: ImageSource, language_correction: bool = False) -> Optional[str]:
        """
        Recognize free text using the preprocessing passes suited to the meter type.

        Args:
            image: Encoded bytes, path, PIL image or numpy array
            language_correction: Allow engine language correction (free-text use only)

        Returns:
            Text of the selected pass, lines separated by newlines, or None
        """
        variants = await asyncio.to_thread(self._prepare_variants, image)

        options = self.recognition_options(language_correction=language_correction)
        texts: List[Optional[str]] = []
        for variant in variants:
            observations = await self._recognize(variant, options)
            text = lines_to_text(reconstruct_lines(observations, self.line_threshold)) if observations else None
            texts.append(text)
            if looks_like_meter_reading(text):
                break

        selected = select_pass_index(texts)
        return texts[selected] if selected is not None else None

    def filter_observations(self, observations: Sequence[Observation]) -> List[Observation]:
        """Keep observations strictly above the confidence threshold."""
        return [obs for obs in observations if obs.confidence > self.confidence_threshold]

    def process_observations(
        self, observations: Sequence[Observation], profile: Optional[MeterProfile] = None
    ) -> DetectionResult:
        """
        Interpret filtered observations.

        The reading is searched line by line so that fragments split by the
        engine (e.g. "1234" and "56") can be rejoined; serial number and
        manufacturer are searched in individual observation strings.

        Args:
            observations: Observations that passed confidence filtering
            profile: Meter profile supplying the unit context

        Returns:
            Structured detection result
        """
        profile = profile or self.profile
        lines = reconstruct_lines(observations, self.line_threshold)
        texts = [obs.text for obs in observations]

        candidate = extract_reading((line.text for line in lines), profile.unit_keywords)
        serial_number = find_serial_number(texts)
        manufacturer = find_manufacturer(texts)

        additional_info = {"line_count": str(len(lines))}
        if candidate is not None:
            additional_info["reading_rule"] = candidate.kind.value

        return DetectionResult(
            reading=candidate.value if candidate else None,
            serial_number=serial_number,
            manufacturer=manufacturer,
            confidence=max((obs.confidence for obs in observations), default=0.0),
            raw_observations=tuple(observations),
            additional_info=additional_info,
        )

    def attach_barcodes(self, result: DetectionResult, barcodes: Sequence[Barcode]) -> DetectionResult:
        """
        Merge decoded barcodes into a detection result.

        Barcode values are listed in ``additional_info["barcodes"]``; the first
        one becomes the serial number when the OCR text yielded none.

        Args:
            result: Result built from the OCR observations
            barcodes: Barcodes decoded from the same image

        Returns:
            Result with barcode information merged in
        """
        if not barcodes:
            return result
        additional_info = {
            **result.additional_info,
            "barcodes": ",".join(barcode.value for barcode in barcodes),
        }
        serial_number = result.serial_number
        if serial_number is None:
            serial_number = barcodes[0].value
            additional_info["serial_source"] = "barcode"
            logger.info(f"Using {barcodes[0].symbology} barcode {serial_number} as serial number")
        return dataclasses.replace(result, serial_number=serial_number, additional_info=additional_info)

    def _prepare_image(
        self, image: ImageSource, region: Optional[BoundingBox]
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Decode, crop and resize; returns the full decoded image and the OCR input."""
        full_img = decode_image(image)
        img = full_img
        if region is not None:
            img = crop_region(img, region)
        elif self.detect_region:
            detected = find_display_region(to_gray(img))
            if detected is not None:
                img = crop_region(img, detected)
            else:
                logger.info("No display region found, using whole image")
        return full_img, resize_for_ocr(img)

    def _prepare_variants(self, image: ImageSource) -> List[np.ndarray]:
        img = resize_for_ocr(decode_image(image))
        meter_type = classify_meter_type(img)
        logger.info(f"Classified meter as {meter_type.value}")
        return build_variants(img, meter_type)

    async def _read_barcodes(self, img: np.ndarray) -> List[Barcode]:
        try:
            return await asyncio.to_thread(detect_barcodes, img)
        except Exception as e:
            logger.error(f"Barcode reading failed: {e}", exc_info=True)
            raise ProcessingFailedError(f"Barcode reading failed: {e}") from e

    async def _recognize(self, img, options: RecognitionOptions) -> List[Observation]:
        """Run the engine off the event loop and apply the confidence filter."""
        try:
            observations = await asyncio.to_thread(self.engine.recognize, img, options)
        except DetectionError:
            raise
        except Exception as e:
            logger.error(f"OCR engine {self.engine.name} failed: {e}", exc_info=True)
            raise ProcessingFailedError(f"OCR engine failed: {e}") from e

        filtered = self.filter_observations(observations or [])
        logger.info(
            f"OCR returned {len(observations or [])} observations, "
            f"{len(filtered)} above confidence {self.confidence_threshold}"
        )
        return filtered
