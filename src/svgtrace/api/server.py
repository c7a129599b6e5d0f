"""
FastAPI Server - In-memory image to SVG conversion endpoint
"""
from typing import Optional
from enum import Enum
import asyncio
import logging
import threading

from fastapi import FastAPI, File, Form, UploadFile, HTTPException
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.formparsers import MultiPartParser

from ..config import Settings, settings as default_settings, configure_logging
from ..errors import ConversionCancelled, ConversionError
from ..ingestion import EdgeConfig
from ..pipeline import Pipeline
from ..vectorization import BackgroundSpec, TraceParams, TurnPolicy

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


class Preprocess(str, Enum):
    NONE = "none"
    EDGE = "edge"


class ConversionResponse(BaseModel):
    """Converted SVG and its canonical size"""
    svg: str
    width: float
    height: float


class LimitsResponse(BaseModel):
    """Upload limits enforced by the server"""
    max_upload_bytes: int
    max_megapixels: float
    max_side: int
    allowed_mime_types: list[str]


def error_response(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def create_app(config: Optional[Settings] = None) -> FastAPI:
    """Create and configure FastAPI application"""
    config = config or default_settings
    configure_logging(config)

    # File parts roll over to a temp file on disk past spool_max_size
    MultiPartParser.spool_max_size = max(MultiPartParser.spool_max_size, config.max_upload_bytes)

    app = FastAPI(
        title="SVG Trace API",
        description="Convert PNG/JPEG images to SVG outlines (processed in memory only)",
        version=VERSION,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    pipeline = Pipeline(config)

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {"status": "healthy", "version": VERSION}

    @app.get("/limits", response_model=LimitsResponse)
    async def get_limits():
        """Upload limits, so clients can pre-check files"""
        return LimitsResponse(**pipeline.guard.limits())

    @app.post("/convert", response_model=ConversionResponse)
    async def convert_image(
        file: UploadFile = File(...),
        threshold: int = Form(224, ge=0, le=255),
        turdSize: int = Form(2, ge=0),
        optTolerance: float = Form(0.28, gt=0),
        turnPolicy: TurnPolicy = Form(TurnPolicy.MINORITY),
        lineColor: str = Form("#000000"),
        invert: bool = Form(False),
        transparent: bool = Form(True),
        bgColor: str = Form("#ffffff"),
        preprocess: Preprocess = Form(Preprocess.NONE),
        blurSigma: float = Form(0.8, ge=0),
        edgeBoost: float = Form(1.0, gt=0),
    ):
        """
        Trace an uploaded image into SVG.

        - **file**: PNG or JPEG image
        - **threshold / turdSize / optTolerance / turnPolicy / invert**: Potrace options
        - **lineColor**: Fill color for traced paths
        - **transparent / bgColor**: Background handling
        - **preprocess**: "edge" runs Sobel edge detection first (photos)
        - **blurSigma / edgeBoost**: Edge preprocessing options
        """
        if file is None or not file.filename:
            raise HTTPException(status_code=400, detail="No file uploaded.")

        try:
            params = TraceParams(
                threshold=threshold,
                turd_size=turdSize,
                opt_tolerance=optTolerance,
                turn_policy=turnPolicy,
                line_color=lineColor,
                invert=invert,
            )
            edge = EdgeConfig(blur_sigma=blurSigma, edge_boost=edgeBoost) if preprocess == Preprocess.EDGE else None
        except ValueError as e:
            return error_response(str(e), 422)
        background = BackgroundSpec(transparent=transparent, color=bgColor)

        content = await file.read()
        cancel = threading.Event()
        # The worker thread cannot be interrupted from here; the pipeline
        # stops at its next checkpoint or kills the running trace.
        watchdog = asyncio.get_running_loop().call_later(config.conversion_timeout, cancel.set)

        try:
            result = await run_in_threadpool(
                pipeline.run,
                content,
                file.content_type,
                params=params,
                edge=edge,
                background=background,
                cancel=cancel,
            )
        except ConversionCancelled:
            logger.warning(f"Conversion of {file.filename} timed out after {config.conversion_timeout}s")
            return error_response("Conversion timed out.", 504)
        except ConversionError as e:
            logger.info(f"Conversion of {file.filename} failed ({e.status_code}): {e.message}")
            return error_response(e.message, e.status_code)
        except Exception as e:
            logger.exception(f"Unexpected error converting {file.filename}")
            return error_response(str(e) or "Server error during conversion.", 500)
        finally:
            watchdog.cancel()
            del content
            await file.close()

        return ConversionResponse(**result.to_dict())

    return app


# Create app instance for uvicorn
app = create_app()
