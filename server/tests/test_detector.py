"""Tests for the detection pipeline."""
import asyncio
import time

import cv2
import numpy as np
import pytest

from meter_ocr import detector as detector_module
from meter_ocr.detector import DetectorStatus, MeterDetector, PipelineState
from meter_ocr.errors import (
    AlreadyProcessingError,
    InvalidImageError,
    NoTextDetectedError,
    ProcessingFailedError,
)
from meter_ocr.models.meter_profile import get_profile
from meter_ocr.models.observation import BoundingBox
from meter_ocr.ocr.barcodes import Barcode
from meter_ocr.ocr.engines import OcrEngine


@pytest.fixture
def meter_face(make_observation):
    return [
        make_observation("NEPTUNE", confidence=0.95, y=0.05),
        make_observation("0012345.67", confidence=0.9, y=0.40, x=0.1),
        make_observation("GAL", confidence=0.85, y=0.40, x=0.6),
        make_observation("SN AB123456", confidence=0.8, y=0.70),
        make_observation("smudge 7", confidence=0.2, y=0.90),
    ]


@pytest.mark.asyncio
async def test_detect_meter_info(fake_engine, meter_face, wide_image) -> None:
    detector = MeterDetector(fake_engine(meter_face))

    result = await detector.detect_meter_info(wide_image)

    assert result.reading == "0012345.67"
    assert result.serial_number == "AB123456"
    assert result.manufacturer == "Neptune"
    assert result.confidence == pytest.approx(0.95)
    assert [obs.text for obs in result.raw_observations] == ["NEPTUNE", "0012345.67", "GAL", "SN AB123456"]
    assert result.additional_info["reading_rule"] == "decimal_reading"
    assert not detector.is_processing
    assert detector.last_processing_time >= 0


@pytest.mark.asyncio
async def test_detect_from_encoded_bytes(fake_engine, meter_face, wide_image) -> None:
    detector = MeterDetector(fake_engine(meter_face))
    ok, encoded = cv2.imencode(".png", wide_image)
    assert ok

    result = await detector.detect_meter_info(encoded.tobytes())

    assert result.reading == "0012345.67"


@pytest.mark.asyncio
async def test_reading_split_across_fragments_is_rejoined(fake_engine, make_observation, wide_image) -> None:
    engine = fake_engine([
        make_observation("1234", y=0.5, x=0.1),
        make_observation("56", y=0.5, x=0.4),
    ])
    detector = MeterDetector(engine)

    result = await detector.detect_meter_info(wide_image)

    assert result.reading == "1234.56"
    assert result.additional_info["reading_rule"] == "reconstructed_decimal"
    assert result.serial_number is None
    assert result.manufacturer is None


@pytest.mark.asyncio
async def test_recognition_options(fake_engine, meter_face, wide_image) -> None:
    engine = fake_engine(meter_face)
    detector = MeterDetector(engine, languages=("en",))

    await detector.detect_meter_info(wide_image)

    options = engine.calls[0]
    assert options.accurate
    assert not options.language_correction
    assert "gal" in options.custom_words


@pytest.mark.asyncio
async def test_no_observations(fake_engine, wide_image) -> None:
    detector = MeterDetector(fake_engine([]))

    with pytest.raises(NoTextDetectedError):
        await detector.detect_meter_info(wide_image)
    assert not detector.is_processing


@pytest.mark.asyncio
async def test_observations_at_threshold_are_filtered(fake_engine, make_observation, wide_image) -> None:
    engine = fake_engine([
        make_observation("12345.6", confidence=0.4),
        make_observation("AB123456", confidence=0.1),
    ])
    detector = MeterDetector(engine)

    with pytest.raises(NoTextDetectedError):
        await detector.detect_meter_info(wide_image)


@pytest.mark.asyncio
async def test_confidence_threshold_is_configurable(fake_engine, make_observation, wide_image) -> None:
    engine = fake_engine([make_observation("12345.6", confidence=0.3)])
    detector = MeterDetector(engine, confidence_threshold=0.25)

    result = await detector.detect_meter_info(wide_image)

    assert result.reading == "12345.6"


@pytest.mark.asyncio
@pytest.mark.parametrize("image", [b"not an image", b"", None, np.zeros((0, 0), dtype=np.uint8)])
async def test_invalid_image(fake_engine, meter_face, image) -> None:
    engine = fake_engine(meter_face)
    detector = MeterDetector(engine)

    with pytest.raises(InvalidImageError):
        await detector.detect_meter_info(image)
    assert engine.calls == []
    assert not detector.is_processing


@pytest.mark.asyncio
async def test_engine_failure(fake_engine, wide_image) -> None:
    detector = MeterDetector(fake_engine(RuntimeError("engine crashed")))

    with pytest.raises(ProcessingFailedError):
        await detector.detect_meter_info(wide_image)
    assert not detector.is_processing


@pytest.mark.asyncio
async def test_state_released_after_failure(fake_engine, meter_face, wide_image) -> None:
    detector = MeterDetector(fake_engine([], meter_face))

    with pytest.raises(NoTextDetectedError):
        await detector.detect_meter_info(wide_image)
    result = await detector.detect_meter_info(wide_image)

    assert result.reading == "0012345.67"


@pytest.mark.asyncio
async def test_concurrent_detection_is_rejected(blocking_engine, make_observation, wide_image) -> None:
    engine = blocking_engine([make_observation("12345.678")])
    detector = MeterDetector(engine)

    first = asyncio.create_task(detector.detect_meter_info(wide_image))
    while not engine.started.is_set():
        await asyncio.sleep(0.01)
    assert detector.is_processing

    with pytest.raises(AlreadyProcessingError):
        await detector.detect_meter_info(wide_image)

    engine.release.set()
    result = await first

    assert result.reading == "12345.678"
    assert not detector.is_processing


@pytest.mark.asyncio
async def test_region_of_interest_crops_image(make_observation, wide_image) -> None:
    class ShapeEngine(OcrEngine):
        name = "shape"

        def __init__(self):
            self.shapes = []

        def recognize(self, image, options):
            self.shapes.append(image.shape[:2])
            return [make_observation("12345.6")]

    engine = ShapeEngine()
    detector = MeterDetector(engine)

    await detector.detect_meter_info(wide_image, region=BoundingBox(0.0, 0.0, 0.5, 0.5))

    assert engine.shapes == [(500, 1000)]


@pytest.mark.asyncio
async def test_unit_context_from_profile(fake_engine, make_observation, wide_image) -> None:
    engine = fake_engine([make_observation("1,234 gal")])

    water = await MeterDetector(engine).detect_meter_info(wide_image)
    generic = await MeterDetector(engine, profile=get_profile("generic")).detect_meter_info(wide_image)

    assert water.reading == "1234"
    assert generic.reading == "1"


@pytest.mark.asyncio
async def test_multipass_selects_pass_with_decimal(fake_engine, make_observation, wide_image) -> None:
    engine = fake_engine(
        [make_observation("12345")],
        [make_observation("123.45", x=0.1), make_observation("GAL", x=0.5)],
    )
    detector = MeterDetector(engine)

    result = await detector.detect_meter_info_multipass([wide_image, wide_image])

    assert result.reading == "123.45"
    assert result.additional_info["pass_index"] == "1"
    assert len(engine.calls) == 2


@pytest.mark.asyncio
async def test_multipass_stops_at_first_qualifying_pass(fake_engine, make_observation, wide_image) -> None:
    engine = fake_engine([make_observation("98.7")], [make_observation("123.45")])
    detector = MeterDetector(engine)

    result = await detector.detect_meter_info_multipass([wide_image, wide_image])

    assert result.reading == "98.7"
    assert len(engine.calls) == 1


@pytest.mark.asyncio
async def test_multipass_falls_back_to_first_pass_with_text(fake_engine, make_observation, wide_image) -> None:
    engine = fake_engine([], [make_observation("12345")], [make_observation("67890")])
    detector = MeterDetector(engine)

    result = await detector.detect_meter_info_multipass([wide_image] * 3)

    assert result.reading == "12345"
    assert result.additional_info["pass_index"] == "1"


@pytest.mark.asyncio
async def test_multipass_without_text(fake_engine, wide_image) -> None:
    detector = MeterDetector(fake_engine([]))

    with pytest.raises(NoTextDetectedError):
        await detector.detect_meter_info_multipass([wide_image, wide_image])
    with pytest.raises(InvalidImageError):
        await detector.detect_meter_info_multipass([])
    assert not detector.is_processing


@pytest.mark.asyncio
async def test_recognize_text_uses_digital_variants(fake_engine, make_observation, wide_image) -> None:
    engine = fake_engine(
        [make_observation("abc")],
        [make_observation("12.5", x=0.1), make_observation("GAL", x=0.5)],
        [make_observation("99.9")],
    )
    detector = MeterDetector(engine)

    text = await detector.recognize_text(wide_image)

    assert text == "12.5 GAL"
    assert len(engine.calls) == 2


def test_process_observations_without_input(fake_engine) -> None:
    result = MeterDetector(fake_engine([])).process_observations([])
    assert result.reading is None
    assert result.confidence == 0.0


def test_pipeline_state_releases_on_error() -> None:
    state = PipelineState()
    with pytest.raises(ValueError):
        with state.acquire():
            assert state.status is DetectorStatus.RUNNING
            with pytest.raises(AlreadyProcessingError):
                with state.acquire():
                    pass
            raise ValueError("boom")
    assert state.status is DetectorStatus.IDLE
    with state.acquire():
        assert state.is_processing


async def run_with_ticker(awaitable, interval=0.01):
    """Await while a background task ticks; returns the result and the tick count."""
    ticks = []

    async def ticker():
        while True:
            ticks.append(time.perf_counter())
            await asyncio.sleep(interval)

    task = asyncio.create_task(ticker())
    await asyncio.sleep(0)
    try:
        result = await awaitable
    finally:
        task.cancel()
    return result, len(ticks)


def slow(func, seconds=0.3):
    def wrapper(*args, **kwargs):
        time.sleep(seconds)
        return func(*args, **kwargs)

    return wrapper


@pytest.mark.asyncio
async def test_recognize_text_preprocessing_keeps_event_loop_responsive(
    monkeypatch, fake_engine, make_observation, wide_image
) -> None:
    monkeypatch.setattr(detector_module, "build_variants", slow(lambda img, meter_type: [img]))
    detector = MeterDetector(fake_engine([make_observation("12.5")]))

    text, ticks = await run_with_ticker(detector.recognize_text(wide_image))

    assert text == "12.5"
    assert ticks >= 10


@pytest.mark.asyncio
async def test_detect_preprocessing_keeps_event_loop_responsive(
    monkeypatch, fake_engine, meter_face, wide_image
) -> None:
    monkeypatch.setattr(detector_module, "resize_for_ocr", slow(lambda img: img))
    detector = MeterDetector(fake_engine(meter_face), read_barcodes=False)

    result, ticks = await run_with_ticker(detector.detect_meter_info(wide_image))

    assert result.reading == "0012345.67"
    assert ticks >= 10


def fake_barcode(value, symbology="Code128"):
    return Barcode(value=value, symbology=symbology, bounding_box=BoundingBox(0.1, 0.8, 0.5, 0.1))


@pytest.mark.asyncio
async def test_barcode_fills_missing_serial(monkeypatch, fake_engine, make_observation, wide_image) -> None:
    monkeypatch.setattr(detector_module, "detect_barcodes", lambda img: [fake_barcode("SN-0042"), fake_barcode("9")])
    detector = MeterDetector(fake_engine([make_observation("12345.6")]))

    result = await detector.detect_meter_info(wide_image)

    assert result.reading == "12345.6"
    assert result.serial_number == "SN-0042"
    assert result.additional_info["barcodes"] == "SN-0042,9"
    assert result.additional_info["serial_source"] == "barcode"


@pytest.mark.asyncio
async def test_ocr_serial_wins_over_barcode(monkeypatch, fake_engine, meter_face, wide_image) -> None:
    monkeypatch.setattr(detector_module, "detect_barcodes", lambda img: [fake_barcode("4006381333931", "EAN13")])
    detector = MeterDetector(fake_engine(meter_face))

    result = await detector.detect_meter_info(wide_image)

    assert result.serial_number == "AB123456"
    assert result.additional_info["barcodes"] == "4006381333931"
    assert "serial_source" not in result.additional_info


@pytest.mark.asyncio
async def test_barcode_reading_can_be_disabled(monkeypatch, fake_engine, meter_face, wide_image) -> None:
    def fail(img):
        raise AssertionError("barcodes should not be read")

    monkeypatch.setattr(detector_module, "detect_barcodes", fail)
    detector = MeterDetector(fake_engine(meter_face), read_barcodes=False)

    result = await detector.detect_meter_info(wide_image)

    assert "barcodes" not in result.additional_info


@pytest.mark.asyncio
async def test_barcode_failure_is_processing_failure(monkeypatch, fake_engine, meter_face, wide_image) -> None:
    def broken(img):
        raise RuntimeError("decoder crashed")

    monkeypatch.setattr(detector_module, "detect_barcodes", broken)
    detector = MeterDetector(fake_engine(meter_face))

    with pytest.raises(ProcessingFailedError):
        await detector.detect_meter_info(wide_image)
    assert not detector.is_processing
