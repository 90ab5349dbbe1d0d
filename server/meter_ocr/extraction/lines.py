"""
Line reconstruction.
Groups OCR observations into visual text lines by vertical position.
"""
import logging
from typing import Iterable, List

from ..config import DEFAULT_LINE_THRESHOLD
from ..models.observation import Observation, TextLine

logger = logging.getLogger(__name__)


def reconstruct_lines(
    observations: Iterable[Observation], threshold: float = DEFAULT_LINE_THRESHOLD
) -> List[TextLine]:
    """
    Greedily group observations, in emission order, into lines.

    An observation joins the current line when its vertical center is within
    threshold of the previous observation's center; otherwise it starts a new line.

    Args:
        observations: Observations in the order the engine emitted them
        threshold: Maximum vertical center distance (normalized height) within a line

    Returns:
        Lines in the order they were closed
    """
    lines: List[TextLine] = []
    current: List[str] = []
    last_center = None

    for observation in observations:
        center = observation.bounding_box.center_y
        if last_center is None or abs(center - last_center) < threshold:
            current.append(observation.text)
        else:
            lines.append(TextLine(tuple(current)))
            current = [observation.text]
        last_center = center

    if current:
        lines.append(TextLine(tuple(current)))

    logger.debug(f"Reconstructed {len(lines)} lines")
    return lines


def lines_to_text(lines: Iterable[TextLine]) -> str:
    """Join lines into a single newline-separated text block."""
    return "\n".join(line.text for line in lines)
