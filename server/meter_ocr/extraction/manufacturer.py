"""Known water meter manufacturer lookup."""
import logging
from typing import Iterable, Optional

logger = logging.getLogger(__name__)

# Declaration order decides ties
MANUFACTURERS = (
    "Neptune", "Sensus", "Badger", "Kamstrup", "Zenner",
    "Mueller", "Arad", "Itron", "Diehl", "Master Meter",
)


def match_manufacturer(text: str) -> Optional[str]:
    """Return the first known manufacturer named in text (case-insensitive), or None."""
    if not text:
        return None
    lowercase_text = text.lower()
    for manufacturer in MANUFACTURERS:
        if manufacturer.lower() in lowercase_text:
            return manufacturer
    return None


def find_manufacturer(fragments: Iterable[str]) -> Optional[str]:
    """First manufacturer matched across fragments, in order."""
    for fragment in fragments:
        manufacturer = match_manufacturer(fragment)
        if manufacturer:
            logger.info(f"Detected manufacturer {manufacturer} in {fragment[:50]!r}")
            return manufacturer
    return None
