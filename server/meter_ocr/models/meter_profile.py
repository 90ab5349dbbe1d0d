"""
Meter profile models for different utility meter types.
Defines the unit context and recognition vocabulary used for each meter type.
"""
from dataclasses import dataclass, field
from typing import Tuple


# Domain terms that bias recognition toward meter faces
DEFAULT_VOCABULARY: Tuple[str, ...] = (
    "gal", "gallons", "cu", "ft", "cubic", "meter", "neptune", "badger", "sensus",
)


@dataclass(frozen=True)
class MeterProfile:
    """Profile describing how readings are labelled on a specific meter type."""

    name: str
    resource: str  # "water", "gas", "electricity"
    unit_keywords: Tuple[str, ...] = ()  # e.g. ("gal", "gallon", "gallons")
    vocabulary: Tuple[str, ...] = field(default=DEFAULT_VOCABULARY)


# Default profiles for common meter types
DEFAULT_PROFILES = {
    "water": MeterProfile(
        name="Water Meter (Gallons)",
        resource="water",
        unit_keywords=("gal", "gallon", "gallons"),
    ),
    "water_cf": MeterProfile(
        name="Water Meter (Cubic Feet)",
        resource="water",
        vocabulary=("cu", "ft", "cf", "ccf", "cubic", "meter", "neptune", "badger", "sensus"),
    ),
    "generic": MeterProfile(
        name="Generic Meter",
        resource="unknown",
        vocabulary=(),
    ),
}


def get_profile(utility_type: str) -> MeterProfile:
    """Get meter profile for given utility type."""
    utility_type_lower = (utility_type or "").lower()
    return DEFAULT_PROFILES.get(utility_type_lower, DEFAULT_PROFILES["water"])
