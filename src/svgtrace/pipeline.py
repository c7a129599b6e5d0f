"""
Pipeline Orchestrator - Coordinates the raster to SVG conversion
"""
from typing import Optional, Callable, Dict, Any
from dataclasses import dataclass, field
from enum import Enum
import logging
import threading
import time

import numpy as np

from .config import Settings, settings as default_settings
from .errors import ConversionCancelled, ConversionError, DecodeError, TraceFailure, UnsupportedMediaError
from .ingestion import EdgeConfig, EdgeDetector, ImageLoader, ImageNormalizer, LimitGuard, RasterImage, flatten_to_gray
from .vectorization import BackgroundSpec, PotraceTracer, TraceParams, TraceWorker, canonicalize

logger = logging.getLogger(__name__)


class PipelineStage(Enum):
    VALIDATION = "validation"
    DECODE = "decode"
    PREPROCESSING = "preprocessing"
    TRACING = "tracing"
    POSTPROCESSING = "postprocessing"


@dataclass
class ConversionResult:
    """Result of a successful conversion"""
    svg: str
    width: float
    height: float
    preprocess: str = "none"
    fell_back: bool = False  # Edge preprocessing replaced by plain grayscale
    timing: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Wire shape returned to clients"""
        return {"svg": self.svg, "width": self.width, "height": self.height}


class Pipeline:
    """
    Raster to SVG conversion, one request at a time.

    Pipeline stages:
    1. Validation: MIME type, byte size, header-probed dimensions
    2. Decode: PNG/JPEG bytes to pixels (in memory)
    3. Preprocessing: grayscale normalization or Sobel edges
    4. Tracing: Potrace
    5. Postprocessing: SVG canonicalization

    Holds no per-request state between runs; every buffer lives in
    local variables and is released when run() returns.
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        loader: Optional[ImageLoader] = None,
        tracer: Optional[PotraceTracer] = None,
    ):
        self.config = config or default_settings
        self.guard = LimitGuard.from_settings(self.config)
        self.loader = loader or ImageLoader()
        self.normalizer = ImageNormalizer.from_settings(self.config)
        self.edge_detector = EdgeDetector.from_settings(self.config, normalizer=self.normalizer)
        self.tracer = tracer or PotraceTracer()
        self.worker = TraceWorker.from_settings(self.config, tracer=self.tracer)
        self._progress_callback: Optional[Callable] = None

    def set_progress_callback(self, callback: Callable[[PipelineStage, str], None]):
        """
        Set callback for stage updates.

        Callback signature: (stage: PipelineStage, message: str)
        """
        self._progress_callback = callback

    def _report_progress(self, stage: PipelineStage, message: str):
        if self._progress_callback:
            self._progress_callback(stage, message)

    def run(
        self,
        image_bytes: bytes,
        mime_type: str,
        params: Optional[TraceParams] = None,
        edge: Optional[EdgeConfig] = None,
        background: Optional[BackgroundSpec] = None,
        cancel: Optional[threading.Event] = None,
    ) -> ConversionResult:
        """
        Convert one uploaded image.

        Args:
            image_bytes: Raw PNG/JPEG bytes
            mime_type: Declared upload type
            params: Potrace parameters
            edge: Edge preprocessing config; None traces the plain grayscale image
            background: Transparent output or an opaque background color
            cancel: Set by the caller to abandon the conversion. Checked between
                stages; a trace already running is terminated.

        Returns:
            ConversionResult

        Raises:
            InputValidationError: upload rejected by the limit guard
            TraceFailure: the tracer could not produce SVG
            ConversionCancelled: `cancel` was set
        """
        params = params or TraceParams()
        background = background or BackgroundSpec()
        timing: Dict[str, float] = {}

        def checkpoint(stage: PipelineStage, message: str):
            if cancel is not None and cancel.is_set():
                logger.info(f"Conversion cancelled before {stage.value}")
                raise ConversionCancelled("Conversion cancelled.")
            self._report_progress(stage, message)

        # Stage 1: Validation
        checkpoint(PipelineStage.VALIDATION, "Checking upload limits...")
        with _timed(timing, PipelineStage.VALIDATION):
            self._run_validation(image_bytes, mime_type)

        # Stage 2: Decode
        checkpoint(PipelineStage.DECODE, "Decoding image...")
        with _timed(timing, PipelineStage.DECODE):
            image = self._run_decode(image_bytes)

        # Stage 3: Preprocessing
        checkpoint(PipelineStage.PREPROCESSING, "Preprocessing image...")
        with _timed(timing, PipelineStage.PREPROCESSING):
            prepped, fell_back = self._run_preprocessing(image, edge)
        del image

        # Stage 4: Tracing
        checkpoint(PipelineStage.TRACING, "Tracing outlines...")
        with _timed(timing, PipelineStage.TRACING):
            traced = self._run_tracing(prepped, params, cancel)
        del prepped

        # Stage 5: Postprocessing
        checkpoint(PipelineStage.POSTPROCESSING, "Cleaning up SVG...")
        with _timed(timing, PipelineStage.POSTPROCESSING):
            document = canonicalize(traced.markup, params.line_color, background)

        logger.info(
            f"Converted {len(image_bytes)} byte {mime_type} to "
            f"{document.width}x{document.height} SVG in {sum(timing.values()):.2f}s"
        )
        return ConversionResult(
            svg=document.markup,
            width=document.width,
            height=document.height,
            preprocess="edge" if edge is not None else "none",
            fell_back=fell_back,
            timing=timing,
        )

    def _run_validation(self, image_bytes: bytes, mime_type: str):
        """Stage 1: reject bad uploads before any pixel decode"""
        self.guard.check_upload(len(image_bytes), mime_type)
        try:
            probe = self.loader.probe(image_bytes)
        except DecodeError as e:
            # Best effort: the decoder may still cope, and the normalizer
            # downscales anything oversize.
            logger.warning(f"Header probe failed, skipping dimension guard: {e}")
            return
        self.guard.check_dimensions(probe.width, probe.height)

    def _run_decode(self, image_bytes: bytes) -> RasterImage:
        """Stage 2: decode to pixels"""
        try:
            return self.loader.decode(image_bytes)
        except DecodeError as e:
            raise UnsupportedMediaError("Could not decode image. Try a different file.") from e

    def _run_preprocessing(self, image: RasterImage, edge: Optional[EdgeConfig]):
        """Stage 3: normalized grayscale, or edges with flat-image fallback"""
        if edge is None:
            return self.normalizer.normalize(image), False

        try:
            result = self.edge_detector.process(image, edge)
        except Exception as e:
            logger.warning(f"Edge preprocessing failed, tracing original image: {e}")
            return image, False
        return result.image, result.fell_back

    def _run_tracing(self, raster: RasterImage, params: TraceParams, cancel: Optional[threading.Event] = None):
        """Stage 4: Potrace, in a killable child process when the caller can cancel"""
        if raster.channels != 1:
            # Preprocessing degraded; hand the tracer plain luminance
            gray = flatten_to_gray(raster.pixels, self.normalizer.background)
            raster = RasterImage(pixels=np.clip(np.rint(gray), 0, 255).astype(np.uint8))

        try:
            if cancel is not None and self.config.trace_isolation:
                return self.worker.run(raster, params, cancel)
            return self.tracer.trace(raster, params)
        except ConversionError:
            raise
        except Exception as e:
            logger.error(f"Tracer raised unexpectedly: {e}")
            raise TraceFailure(f"Conversion failed: {e}") from e


class _timed:
    """Record the wall time of a block under the stage name"""

    def __init__(self, timing: Dict[str, float], stage: PipelineStage):
        self.timing = timing
        self.stage = stage

    def __enter__(self):
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb):
        elapsed = time.perf_counter() - self._start
        self.timing[self.stage.value] = elapsed
        logger.debug(f"{self.stage.value} took {elapsed:.3f}s")
        return False


def convert(
    image_bytes: bytes,
    mime_type: str,
    params: Optional[TraceParams] = None,
    edge: Optional[EdgeConfig] = None,
    background: Optional[BackgroundSpec] = None,
    cancel: Optional[threading.Event] = None,
    config: Optional[Settings] = None,
) -> ConversionResult:
    """
    Convenience function to run the pipeline.

    Args:
        image_bytes: Raw PNG/JPEG upload
        mime_type: "image/png" or "image/jpeg"
        params: Potrace parameters (defaults if None)
        edge: Edge preprocessing config, or None for the plain grayscale path
        background: Background handling (transparent by default)
        cancel: Optional cancellation event
        config: Settings override

    Returns:
        ConversionResult
    """
    pipeline = Pipeline(config)
    return pipeline.run(
        image_bytes,
        mime_type,
        params=params,
        edge=edge,
        background=background,
        cancel=cancel,
    )
