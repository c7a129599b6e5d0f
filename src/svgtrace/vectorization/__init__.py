# Vectorization module
# Converts normalized rasters to SVG and canonicalizes the markup:
# - Potrace tracing (in-process, or in a cancellable child process)
# - Root viewBox / responsive sizing
# - Path recoloring
# - Background rect strip/inject

from .svg import (
    BackgroundSpec,
    SvgDocument,
    canonicalize,
    coerce_svg,
    ensure_viewbox,
    inject_background_rect,
    recolor_paths,
    strip_background_rect,
)
from .vectorizer import PotraceTracer, TraceParams, TurnPolicy
from .worker import TraceWorker

__all__ = [
    "BackgroundSpec",
    "SvgDocument",
    "canonicalize",
    "coerce_svg",
    "ensure_viewbox",
    "inject_background_rect",
    "recolor_paths",
    "strip_background_rect",
    "PotraceTracer",
    "TraceParams",
    "TurnPolicy",
    "TraceWorker",
]
