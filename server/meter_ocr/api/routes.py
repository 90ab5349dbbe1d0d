"""
API routes for the meter OCR backend.
"""
import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..config import Settings
from ..detector import MeterDetector
from ..errors import (
    AlreadyProcessingError,
    DetectionError,
    InvalidImageError,
    NoTextDetectedError,
)
from ..extraction import extract_numeric_value, extract_serial_number, match_manufacturer
from ..models.meter_profile import DEFAULT_PROFILES, get_profile
from ..ocr.engines import create_engine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["api"])

VALID_EXTENSIONS = [".jpg", ".jpeg", ".png", ".heic", ".heif", ".gif", ".webp", ".bmp", ".tif", ".tiff"]

ERROR_STATUS = {
    AlreadyProcessingError: status.HTTP_409_CONFLICT,
    InvalidImageError: status.HTTP_400_BAD_REQUEST,
    NoTextDetectedError: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


class ExtractRequest(BaseModel):
    text: str
    utility_type: Optional[str] = None


@lru_cache(maxsize=1)
def get_detector() -> MeterDetector:
    """Shared detector; the OCR engine is loaded on first use."""
    settings = Settings.from_env()
    logger.info(f"Creating meter detector with {settings.ocr_engine} engine")
    return MeterDetector.from_settings(settings, create_engine(settings))


def _validate_utility_type(utility_type: Optional[str]) -> Optional[str]:
    if not utility_type:
        return None
    utility_type_lower = utility_type.lower()
    if utility_type_lower not in DEFAULT_PROFILES:
        logger.error(f"Invalid utility_type: '{utility_type}'")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid utility_type. Must be one of: {', '.join(DEFAULT_PROFILES)}. Received: '{utility_type}'",
        )
    return utility_type_lower


def _is_image_upload(file: UploadFile) -> bool:
    if file.content_type and file.content_type.startswith("image/"):
        return True
    if file.filename:
        return Path(file.filename).suffix.lower() in VALID_EXTENSIONS
    return False


@router.post("/detect")
async def detect(
    file: UploadFile = File(...),
    utility_type: Optional[str] = Form(default=None),
    detector: MeterDetector = Depends(get_detector),
):
    """
    Detect reading, serial number and manufacturer in an uploaded meter photo.

    Args:
        file: Image file to upload
        utility_type: Meter profile name (water, water_cf, generic)

    Returns:
        JSON response with the detection result
    """
    logger.info(f"Received detect request: filename={file.filename}, content_type={file.content_type}")
    utility_type_lower = _validate_utility_type(utility_type)

    if not _is_image_upload(file):
        logger.error(f"Invalid file. content_type: {file.content_type}, filename: {file.filename}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File must be an image. Received content_type: {file.content_type}, filename: {file.filename}",
        )

    content = await file.read()
    profile = get_profile(utility_type_lower) if utility_type_lower else None

    try:
        result = await detector.detect_meter_info(content, profile=profile)
    except DetectionError as e:
        status_code = ERROR_STATUS.get(type(e), status.HTTP_500_INTERNAL_SERVER_ERROR)
        logger.warning(f"Detection failed ({e.code}): {e}")
        raise HTTPException(status_code=status_code, detail={"code": e.code, "message": str(e)})

    response_data = result.to_dict()
    response_data["status"] = "success"
    response_data["processing_time"] = round(detector.last_processing_time, 3)
    return JSONResponse(status_code=status.HTTP_200_OK, content=response_data)


@router.post("/extract")
async def extract(request: ExtractRequest):
    """Run the reading, serial number and manufacturer rules on ad-hoc text."""
    utility_type_lower = _validate_utility_type(request.utility_type)
    unit_keywords = get_profile(utility_type_lower).unit_keywords if utility_type_lower else ()
    return {
        "reading": extract_numeric_value(request.text, unit_keywords),
        "serial_number": extract_serial_number(request.text),
        "manufacturer": match_manufacturer(request.text),
    }
