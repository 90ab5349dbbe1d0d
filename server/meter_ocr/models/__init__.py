"""Data models package."""

from .detection import Candidate, CandidateKind, DetectionResult
from .meter_profile import MeterProfile, get_profile, DEFAULT_PROFILES
from .observation import BoundingBox, Observation, TextLine

__all__ = [
    "BoundingBox",
    "Candidate",
    "CandidateKind",
    "DetectionResult",
    "MeterProfile",
    "Observation",
    "TextLine",
    "get_profile",
    "DEFAULT_PROFILES",
]
