"""
svgtrace - PNG/JPEG to SVG outline conversion, processed in memory only
"""
from .errors import (
    ConversionCancelled,
    ConversionError,
    InputValidationError,
    TraceFailure,
    UnsupportedMediaError,
)
from .ingestion import EdgeConfig, RasterImage
from .pipeline import ConversionResult, Pipeline, PipelineStage, convert
from .vectorization import BackgroundSpec, SvgDocument, TraceParams, TurnPolicy

__version__ = "0.1.0"

__all__ = [
    "BackgroundSpec",
    "ConversionCancelled",
    "ConversionError",
    "ConversionResult",
    "EdgeConfig",
    "InputValidationError",
    "Pipeline",
    "PipelineStage",
    "RasterImage",
    "SvgDocument",
    "TraceFailure",
    "TraceParams",
    "TurnPolicy",
    "UnsupportedMediaError",
    "convert",
]
