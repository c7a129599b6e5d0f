"""
Edge Preprocessor - Sobel gradient-magnitude raster for photographic input

Strong edges render dark and flat regions near-white, so the tracer
outlines structure instead of filling large tonal areas. When the
result carries no usable structure the plain normalized image is used.
"""
from dataclasses import dataclass
from typing import Optional
import logging

import cv2
import numpy as np

from ..config import settings
from .loader import RasterImage
from .preprocessor import ImageNormalizer

logger = logging.getLogger(__name__)

SOBEL_X = np.array([[-1, 0, 1], [-2, 0, 2], [-1, 0, 1]], dtype=np.float64)
SOBEL_Y = np.array([[-1, -2, -1], [0, 0, 0], [1, 2, 1]], dtype=np.float64)

BORDER_VALUE = 255


@dataclass(frozen=True)
class EdgeConfig:
    """Edge preprocessing parameters"""
    blur_sigma: float = 0.8
    edge_boost: float = 1.0

    def __post_init__(self):
        if self.blur_sigma < 0:
            raise ValueError(f"blur_sigma must be >= 0, got {self.blur_sigma}")
        if self.edge_boost <= 0:
            raise ValueError(f"edge_boost must be > 0, got {self.edge_boost}")


@dataclass
class EdgeResult:
    """Edge raster plus whether the flat-image fallback was taken"""
    image: RasterImage
    fell_back: bool = False
    reason: Optional[str] = None


def sobel_edges(gray: np.ndarray, edge_boost: float = 1.0) -> np.ndarray:
    """
    Inverted Sobel gradient magnitude of a single-channel image.

    Interior pixels get floor(255 - min(|G| * edge_boost, 255)); the
    one-pixel border is left at 255.
    """
    src = gray.astype(np.float64)
    height, width = src.shape
    out = np.full((height, width), BORDER_VALUE, dtype=np.uint8)
    if height < 3 or width < 3:
        return out

    gx = np.zeros((height - 2, width - 2), dtype=np.float64)
    gy = np.zeros_like(gx)
    for j in range(3):
        for i in range(3):
            window = src[j:height - 2 + j, i:width - 2 + i]
            if SOBEL_X[j, i]:
                gx += SOBEL_X[j, i] * window
            if SOBEL_Y[j, i]:
                gy += SOBEL_Y[j, i] * window

    magnitude = np.minimum(np.sqrt(gx * gx + gy * gy) * edge_boost, 255.0)
    out[1:-1, 1:-1] = np.floor(255.0 - magnitude).astype(np.uint8)
    return out


def is_flat_buffer(
    buf: np.ndarray,
    sample_step: int = 53,
    min_range: int = 2,
    dark_mean: float = 8.0,
    light_mean: float = 247.0,
    min_variance: float = 8.0,
) -> bool:
    """
    Cheap check for a raster without usable structure.

    Samples every `sample_step`-th byte; flat when the sampled range,
    mean or variance says the image is (nearly) uniform.
    """
    flat = np.asarray(buf).reshape(-1)
    if flat.size == 0:
        return True

    samples = flat[::sample_step].astype(np.float64)
    count = samples.size
    mean = samples.sum() / max(count, 1)

    if samples.max() - samples.min() <= min_range:
        return True
    if mean <= dark_mean or mean >= light_mean:
        return True

    variance = np.sum((samples - mean) ** 2) / max(count - 1, 1)
    return variance < min_variance


class EdgeDetector:
    """
    Blur + Sobel preprocessing with a fallback to plain normalization.

    Pipeline:
    1. Orientation, alpha flatten, grayscale (no gamma / stretch)
    2. Gaussian blur (skipped when blur_sigma <= 0)
    3. Inverted gradient magnitude
    4. Degeneracy check; flat output -> normalizer output instead
    """

    def __init__(
        self,
        normalizer: Optional[ImageNormalizer] = None,
        sample_step: Optional[int] = None,
        min_range: Optional[int] = None,
        dark_mean: Optional[float] = None,
        light_mean: Optional[float] = None,
        min_variance: Optional[float] = None,
    ):
        self.normalizer = normalizer or ImageNormalizer()
        self.sample_step = sample_step or settings.flat_sample_step
        self.min_range = min_range if min_range is not None else settings.flat_min_range
        self.dark_mean = dark_mean if dark_mean is not None else settings.flat_dark_mean
        self.light_mean = light_mean if light_mean is not None else settings.flat_light_mean
        self.min_variance = min_variance if min_variance is not None else settings.flat_min_variance

    @classmethod
    def from_settings(cls, config, normalizer: Optional[ImageNormalizer] = None) -> "EdgeDetector":
        return cls(
            normalizer=normalizer or ImageNormalizer.from_settings(config),
            sample_step=config.flat_sample_step,
            min_range=config.flat_min_range,
            dark_mean=config.flat_dark_mean,
            light_mean=config.flat_light_mean,
            min_variance=config.flat_min_variance,
        )

    def detect_edges(self, image: RasterImage, cfg: Optional[EdgeConfig] = None) -> RasterImage:
        """Edge raster for `image` (or the normalized image if degenerate)"""
        return self.process(image, cfg).image

    def process(self, image: RasterImage, cfg: Optional[EdgeConfig] = None) -> EdgeResult:
        cfg = cfg or EdgeConfig()

        gray = np.clip(np.rint(self.normalizer.to_grayscale(image)), 0, 255).astype(np.uint8)

        height, width = gray.shape
        if width <= 1 or height <= 1:
            return self._fallback(image, f"intermediate collapsed to {width}x{height}")

        if cfg.blur_sigma > 0:
            gray = cv2.GaussianBlur(gray, (0, 0), sigmaX=cfg.blur_sigma, sigmaY=cfg.blur_sigma)

        edges = sobel_edges(gray, cfg.edge_boost)

        if self.is_flat(edges):
            return self._fallback(image, "edge raster is flat")

        logger.debug(f"Edge raster {width}x{height} (sigma={cfg.blur_sigma}, boost={cfg.edge_boost})")
        return EdgeResult(image=RasterImage(pixels=edges))

    def is_flat(self, buf: np.ndarray) -> bool:
        return is_flat_buffer(
            buf,
            sample_step=self.sample_step,
            min_range=self.min_range,
            dark_mean=self.dark_mean,
            light_mean=self.light_mean,
            min_variance=self.min_variance,
        )

    def _fallback(self, image: RasterImage, reason: str) -> EdgeResult:
        logger.info(f"Edge preprocessing fell back to plain grayscale: {reason}")
        return EdgeResult(image=self.normalizer.normalize(image), fell_back=True, reason=reason)
