"""
Pass selection.
Chooses which OCR pass (one per preprocessed image variant) to trust using a
cheap "looks like a meter reading" check. Confidence values are never compared.
"""
import logging
from typing import Optional, Sequence

from .reading import DECIMAL_PATTERN

logger = logging.getLogger(__name__)


def looks_like_meter_reading(text: Optional[str]) -> bool:
    """Whether text contains at least one decimal number."""
    if not text:
        return False
    return DECIMAL_PATTERN.search(text) is not None


def select_pass_index(texts: Sequence[Optional[str]]) -> Optional[int]:
    """
    Index of the pass to trust.

    The first pass that looks like a meter reading wins; otherwise the first
    pass with any text (None results are skipped).

    Args:
        texts: Pass texts in preference order

    Returns:
        Index into texts, or None if every pass is None
    """
    for index, text in enumerate(texts):
        if looks_like_meter_reading(text):
            logger.info(f"Pass {index} looks like a meter reading")
            return index
    for index, text in enumerate(texts):
        if text is not None:
            logger.info(f"No pass looks like a meter reading; falling back to pass {index}")
            return index
    return None


def select_pass(first: Optional[str], second: Optional[str]) -> Optional[str]:
    """Choose between two passes over the same image."""
    index = select_pass_index([first, second])
    if index is None:
        return None
    return (first, second)[index]
