"""
Detection result models.
Defines reading candidates produced by the rule chains and the final structured result.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple

from .observation import Observation


class CandidateKind(str, Enum):
    """Which reading rule produced a candidate."""

    DECIMAL_READING = "decimal_reading"
    INTEGER_READING = "integer_reading"
    RECONSTRUCTED_DECIMAL = "reconstructed_decimal"
    UNIT_READING = "unit_reading"
    GENERIC_NUMERIC = "generic_numeric"


@dataclass(frozen=True)
class Candidate:
    """Provisional value extracted by one rule. Lower priority means higher trust."""

    value: str
    kind: CandidateKind
    priority: int


@dataclass(frozen=True)
class DetectionResult:
    """Structured interpretation of one meter image."""

    reading: Optional[str]
    serial_number: Optional[str]
    manufacturer: Optional[str]
    confidence: float
    raw_observations: Tuple[Observation, ...] = ()
    additional_info: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Serialize for JSON responses."""
        return {
            "reading": self.reading,
            "serial_number": self.serial_number,
            "manufacturer": self.manufacturer,
            "confidence": round(self.confidence, 4),
            "additional_info": dict(self.additional_info),
            "raw_observations": [obs.to_dict() for obs in self.raw_observations],
        }
