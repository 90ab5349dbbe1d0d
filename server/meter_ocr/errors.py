"""
Detection error types.
Every failure of a detection call is raised to the immediate caller as one of these.
"""


class DetectionError(Exception):
    """Base class for meter detection failures."""

    code = "detection_error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__doc__)


class InvalidImageError(DetectionError):
    """Image could not be decoded into a pixel buffer."""

    code = "invalid_image"


class NoTextDetectedError(DetectionError):
    """No text observations survived confidence filtering."""

    code = "no_text_detected"


class AlreadyProcessingError(DetectionError):
    """A detection is already in flight."""

    code = "already_processing"


class ProcessingFailedError(DetectionError):
    """OCR engine failed unexpectedly."""

    code = "processing_failed"
