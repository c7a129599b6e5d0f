"""
Image Preprocessor - Normalizes uploads into a grayscale raster for tracing
"""
from typing import Optional, Tuple
import logging

import cv2
import numpy as np

from ..config import settings
from .guard import LimitGuard
from .loader import RasterImage

logger = logging.getLogger(__name__)

# ITU-R BT.601 luma weights (same as Pillow's "L" conversion)
LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114])


def flatten_to_gray(
    pixels: np.ndarray,
    background: Tuple[int, int, int] = (255, 255, 255),
) -> np.ndarray:
    """
    Composite over an opaque background, drop alpha and convert to luminance.

    Returns a float64 array shaped (height, width) in [0, 255].
    """
    if pixels.ndim == 2:
        return pixels.astype(np.float64)

    channels = pixels.shape[2]
    data = pixels.astype(np.float64)

    if channels == 2:
        bg = float(np.dot(LUMA_WEIGHTS, background))
        alpha = data[:, :, 1] / 255.0
        return data[:, :, 0] * alpha + bg * (1.0 - alpha)

    rgb = data[:, :, :3]
    if channels == 4:
        alpha = data[:, :, 3:4] / 255.0
        rgb = rgb * alpha + np.asarray(background, dtype=np.float64) * (1.0 - alpha)

    return rgb @ LUMA_WEIGHTS


class ImageNormalizer:
    """
    Produces the canonical grayscale raster fed to the tracer.

    Operations:
    - Alpha flattening onto a white background
    - Luminance conversion
    - Soft downscale of oversize images (gamma-correct resampling)
    - Histogram stretch to the full [0, 255] range
    """

    def __init__(
        self,
        guard: Optional[LimitGuard] = None,
        background: Optional[Tuple[int, int, int]] = None,
        gamma: Optional[float] = None,
        lower_percentile: Optional[float] = None,
        upper_percentile: Optional[float] = None,
        work_size: Optional[int] = None,
    ):
        self.guard = guard or LimitGuard()
        self.background = tuple(background or settings.background_rgb)
        self.gamma = gamma if gamma is not None else settings.normalize_gamma
        self.lower_percentile = lower_percentile if lower_percentile is not None else settings.normalize_lower_percentile
        self.upper_percentile = upper_percentile if upper_percentile is not None else settings.normalize_upper_percentile
        self.work_size = work_size or settings.work_size

    @classmethod
    def from_settings(cls, config) -> "ImageNormalizer":
        return cls(
            guard=LimitGuard.from_settings(config),
            background=config.background_rgb,
            gamma=config.normalize_gamma,
            lower_percentile=config.normalize_lower_percentile,
            upper_percentile=config.normalize_upper_percentile,
            work_size=config.work_size,
        )

    def normalize(self, image: RasterImage) -> RasterImage:
        """
        Grayscale + gamma + histogram-normalized copy of `image`.

        Never raises: if normalization fails the original raster is
        returned unchanged and the tracer works on it as-is.
        """
        try:
            gray = self.to_grayscale(image, gamma=self.gamma)
            stretched = self.stretch(gray)
            return RasterImage(pixels=np.clip(np.rint(stretched), 0, 255).astype(np.uint8))
        except Exception as e:
            logger.warning(f"Normalization failed, tracing original image: {e}")
            return image

    def to_grayscale(self, image: RasterImage, gamma: Optional[float] = None) -> np.ndarray:
        """
        Flattened luminance as float64, downscaled if oversize.

        With `gamma`, resampling happens on linearized values so that
        downscaling does not darken fine light/dark detail.
        """
        gray = flatten_to_gray(image.pixels, self.background)

        height, width = gray.shape
        if not self.guard.exceeds(width, height):
            return gray

        if gamma:
            linear = np.power(gray / 255.0, gamma)
            resized = self.fit_within_work_size(linear)
            return np.power(np.clip(resized, 0.0, 1.0), 1.0 / gamma) * 255.0

        return self.fit_within_work_size(gray)

    def fit_within_work_size(self, gray: np.ndarray) -> np.ndarray:
        """Resize (keeping aspect ratio) to fit inside work_size x work_size"""
        height, width = gray.shape[:2]
        scale = min(self.work_size / width, self.work_size / height, 1.0)
        if scale >= 1.0:
            return gray

        new_w = max(1, int(round(width * scale)))
        new_h = max(1, int(round(height * scale)))
        logger.info(f"Downscaling {width}x{height} to {new_w}x{new_h} for processing")
        return cv2.resize(gray.astype(np.float32), (new_w, new_h), interpolation=cv2.INTER_AREA).astype(np.float64)

    def stretch(self, gray: np.ndarray) -> np.ndarray:
        """Stretch the [lower, upper] percentile range to [0, 255]"""
        lo, hi = np.percentile(gray, [self.lower_percentile, self.upper_percentile])
        if hi - lo < 1e-6:
            return gray
        return np.clip((gray - lo) * (255.0 / (hi - lo)), 0.0, 255.0)
