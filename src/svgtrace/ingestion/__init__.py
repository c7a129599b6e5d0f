# Ingestion module
# Handles validating, decoding and preprocessing uploaded rasters:
# - Limit guard (bytes, MIME type, dimensions)
# - PNG/JPEG decode/encode (Pillow, in memory)
# - Grayscale normalization
# - Sobel edge preprocessing for photos

from .loader import ImageLoader, ImageProbe, RasterImage
from .guard import LimitGuard
from .preprocessor import ImageNormalizer, flatten_to_gray
from .edges import EdgeConfig, EdgeDetector, EdgeResult, sobel_edges, is_flat_buffer

__all__ = [
    "ImageLoader",
    "ImageProbe",
    "RasterImage",
    "LimitGuard",
    "ImageNormalizer",
    "flatten_to_gray",
    "EdgeConfig",
    "EdgeDetector",
    "EdgeResult",
    "sobel_edges",
    "is_flat_buffer",
]
