"""
OCR observation models.
Observations are produced once per image pass by an OCR engine and never mutated.
"""
from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class BoundingBox:
    """Location of a text region in normalized [0, 1] image coordinates (top-left origin)."""

    x: float
    y: float
    width: float
    height: float

    @property
    def center_y(self) -> float:
        """Vertical center of the box."""
        return self.y + self.height / 2

    @classmethod
    def from_pixels(
        cls, x0: float, y0: float, x1: float, y1: float, image_width: int, image_height: int
    ) -> "BoundingBox":
        """Build a normalized box from pixel corner coordinates."""
        if image_width <= 0 or image_height <= 0:
            return cls(0.0, 0.0, 0.0, 0.0)

        def clamp(value: float) -> float:
            return min(1.0, max(0.0, value))

        left = clamp(min(x0, x1) / image_width)
        top = clamp(min(y0, y1) / image_height)
        right = clamp(max(x0, x1) / image_width)
        bottom = clamp(max(y0, y1) / image_height)
        return cls(left, top, right - left, bottom - top)

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass(frozen=True)
class Observation:
    """One OCR engine result: recognized text, confidence and bounding box."""

    text: str
    confidence: float
    bounding_box: BoundingBox

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "confidence": round(self.confidence, 4),
            "bounding_box": self.bounding_box.to_dict(),
        }


@dataclass(frozen=True)
class TextLine:
    """Fragments believed to share a vertical position, in reading order."""

    fragments: Tuple[str, ...]

    @property
    def text(self) -> str:
        return " ".join(self.fragments)
