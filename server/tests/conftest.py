"""Shared fixtures: scripted OCR engines and observation builders."""
import threading

import numpy as np
import pytest

from meter_ocr.models.observation import BoundingBox, Observation
from meter_ocr.ocr.engines import OcrEngine


class FakeEngine(OcrEngine):
    """Returns one scripted observation list per call (the last one repeats)."""

    name = "fake"

    def __init__(self, *passes):
        self.passes = list(passes) or [[]]
        self.calls = []

    def recognize(self, image, options):
        self.calls.append(options)
        result = self.passes[min(len(self.calls), len(self.passes)) - 1]
        if isinstance(result, Exception):
            raise result
        return list(result)


class BlockingEngine(OcrEngine):
    """Blocks inside recognize until released."""

    name = "blocking"

    def __init__(self, observations):
        self.observations = observations
        self.started = threading.Event()
        self.release = threading.Event()

    def recognize(self, image, options):
        self.started.set()
        self.release.wait(timeout=5)
        return list(self.observations)


@pytest.fixture
def make_observation():
    def factory(text, confidence=0.9, y=0.1, x=0.1, height=0.04, width=0.2):
        return Observation(text=text, confidence=confidence, bounding_box=BoundingBox(x, y, width, height))

    return factory


@pytest.fixture
def fake_engine():
    return FakeEngine


@pytest.fixture
def blocking_engine():
    return BlockingEngine


@pytest.fixture
def wide_image():
    return np.full((200, 400, 3), 255, dtype=np.uint8)
