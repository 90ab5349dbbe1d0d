"""
Main entry point for the meter OCR backend server.
"""
import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from meter_ocr import __version__
from meter_ocr.api import routes
from meter_ocr.config import Settings, configure_logging

settings = Settings.from_env()
configure_logging(settings.log_level)

logger = logging.getLogger(__name__)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware to log all incoming requests."""
    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        logger.info(f"→ {request.method} {request.url.path}")
        if request.url.query:
            logger.info(f"  Query params: {request.url.query}")

        response = await call_next(request)

        process_time = time.time() - start_time
        logger.info(f"← {request.method} {request.url.path} - Status: {response.status_code} - Time: {process_time:.3f}s")
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events."""
    logger.info(f"Meter OCR API server starting up (engine: {settings.ocr_engine})...")
    yield
    logger.info("Meter OCR API server shutting down...")


app = FastAPI(
    title="Meter OCR API",
    version=__version__,
    description="Reading, serial number and manufacturer detection for water meter photos",
    lifespan=lifespan,
)

app.add_middleware(LoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(routes.router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok", "message": "Meter OCR API is running"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
