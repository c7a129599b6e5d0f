"""
Raster to Vector Converter - Traces a grayscale raster into SVG with Potrace
"""
from dataclasses import dataclass
from enum import Enum
from typing import List
import logging

import numpy as np
import potrace

from ..errors import TraceFailure
from ..ingestion.loader import RasterImage
from .svg import SvgDocument

logger = logging.getLogger(__name__)

SVG_NS = "http://www.w3.org/2000/svg"


class TurnPolicy(str, Enum):
    BLACK = "black"
    WHITE = "white"
    LEFT = "left"
    RIGHT = "right"
    MINORITY = "minority"
    MAJORITY = "majority"

    @property
    def potrace_value(self) -> int:
        return {
            TurnPolicy.BLACK: potrace.POTRACE_TURNPOLICY_BLACK,
            TurnPolicy.WHITE: potrace.POTRACE_TURNPOLICY_WHITE,
            TurnPolicy.LEFT: potrace.POTRACE_TURNPOLICY_LEFT,
            TurnPolicy.RIGHT: potrace.POTRACE_TURNPOLICY_RIGHT,
            TurnPolicy.MINORITY: potrace.POTRACE_TURNPOLICY_MINORITY,
            TurnPolicy.MAJORITY: potrace.POTRACE_TURNPOLICY_MAJORITY,
        }[self]


@dataclass(frozen=True)
class TraceParams:
    """Parameters passed through to Potrace"""
    threshold: int = 224
    turd_size: int = 2
    opt_tolerance: float = 0.28
    turn_policy: TurnPolicy = TurnPolicy.MINORITY
    line_color: str = "#000000"
    invert: bool = False

    def __post_init__(self):
        if not 0 <= self.threshold <= 255:
            raise ValueError(f"threshold must be in [0, 255], got {self.threshold}")
        if self.turd_size < 0:
            raise ValueError(f"turd_size must be >= 0, got {self.turd_size}")
        if self.opt_tolerance <= 0:
            raise ValueError(f"opt_tolerance must be > 0, got {self.opt_tolerance}")
        # Accept plain strings ("minority") as well as enum members
        object.__setattr__(self, "turn_policy", TurnPolicy(self.turn_policy))


def _xy(point):
    if hasattr(point, "x"):
        return float(point.x), float(point.y)
    return float(point[0]), float(point[1])


def _fmt(value: float) -> str:
    return f"{value:.3f}".rstrip("0").rstrip(".")


def _pt(point) -> str:
    x, y = _xy(point)
    return f"{_fmt(x)} {_fmt(y)}"


class PotraceTracer:
    """
    Adapter around the Potrace bindings.

    Input must be single-channel. Pixels darker than `threshold` are
    foreground (or lighter ones when `invert` is set); the traced
    outlines come back as one evenodd-filled <path>.
    """

    def trace(self, raster: RasterImage, params: TraceParams) -> SvgDocument:
        if raster.channels != 1:
            raise ValueError(f"Tracer expects a single-channel raster, got {raster.channels} channels")

        foreground = self.to_bitmap(raster.pixels, params)
        try:
            # Bitmap() inverts its input: 0 marks foreground, 255 background
            bitmap = potrace.Bitmap(np.where(foreground, 0, 255).astype(np.uint8))
            path = bitmap.trace(
                turdsize=params.turd_size,
                turnpolicy=params.turn_policy.potrace_value,
                alphamax=1.0,
                opticurve=True,
                opttolerance=params.opt_tolerance,
            )
        except Exception as e:
            logger.error(f"Potrace failed on {raster.width}x{raster.height} raster: {e}")
            raise TraceFailure(f"Tracing failed: {e}") from e

        markup = self.to_svg(path, raster.width, raster.height, params.line_color)
        return SvgDocument(markup=markup, width=raster.width, height=raster.height)

    @staticmethod
    def to_bitmap(gray: np.ndarray, params: TraceParams) -> np.ndarray:
        """Boolean foreground mask for the given threshold/invert"""
        if params.invert:
            return gray >= params.threshold
        return gray < params.threshold

    def to_svg(self, path, width: int, height: int, color: str) -> str:
        d = self.path_data(path)
        body = f'<path d="{d}" stroke="none" fill="{color}" fill-rule="evenodd"/>' if d else ""
        return (
            f'<svg xmlns="{SVG_NS}" width="{width}" height="{height}" '
            f'viewBox="0 0 {width} {height}" version="1.1">{body}</svg>'
        )

    def path_data(self, path) -> str:
        """SVG path data for every traced curve"""
        parts: List[str] = []
        for curve in path.curves:
            if curve.start_point is None:
                continue
            parts.append(f"M{_pt(curve.start_point)}")
            for segment in curve.segments:
                if segment.is_corner:
                    parts.append(f"L{_pt(segment.c)}L{_pt(segment.end_point)}")
                else:
                    parts.append(f"C{_pt(segment.c1)} {_pt(segment.c2)} {_pt(segment.end_point)}")
            parts.append("Z")
        return "".join(parts)
