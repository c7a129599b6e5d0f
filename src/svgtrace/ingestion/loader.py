"""
Image Loader - In-memory decode/encode service backed by Pillow
"""
from dataclasses import dataclass, field
from typing import Optional
import io
import logging

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from ..errors import DecodeError

logger = logging.getLogger(__name__)

EXIF_ORIENTATION_TAG = 0x0112

# Pixel ceilings are LimitGuard's, checked from the header before any decode
Image.MAX_IMAGE_PIXELS = None

# Orientations 5-8 rotate by 90/270 degrees and swap width/height
TRANSPOSING_ORIENTATIONS = {5, 6, 7, 8}


@dataclass
class RasterImage:
    """
    Owned pixel buffer in row-major layout.

    `pixels` is a uint8 array shaped (height, width) for grayscale or
    (height, width, channels) otherwise.
    """
    pixels: np.ndarray

    def __post_init__(self):
        pixels = np.ascontiguousarray(self.pixels, dtype=np.uint8)
        if pixels.ndim == 3 and pixels.shape[2] == 1:
            pixels = pixels[:, :, 0]
        if pixels.ndim not in (2, 3):
            raise ValueError(f"Raster must be 2D or 3D, got shape {pixels.shape}")
        if pixels.ndim == 3 and pixels.shape[2] not in (2, 3, 4):
            raise ValueError(f"Unsupported channel count: {pixels.shape[2]}")
        self.pixels = pixels

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def channels(self) -> int:
        return 1 if self.pixels.ndim == 2 else int(self.pixels.shape[2])

    @property
    def has_alpha(self) -> bool:
        return self.channels in (2, 4)

    @property
    def buffer(self) -> bytes:
        return self.pixels.tobytes()

    @classmethod
    def from_buffer(cls, buffer: bytes, width: int, height: int, channels: int) -> "RasterImage":
        """Build a raster from raw interleaved samples"""
        if len(buffer) != width * height * channels:
            raise ValueError(
                f"Buffer length {len(buffer)} != {width}x{height}x{channels}"
            )
        arr = np.frombuffer(buffer, dtype=np.uint8)
        shape = (height, width) if channels == 1 else (height, width, channels)
        return cls(pixels=arr.reshape(shape).copy())


@dataclass
class ImageProbe:
    """Header-only image metadata"""
    width: int
    height: int
    format: Optional[str] = None
    orientation: int = 1
    info: dict = field(default_factory=dict)

    @property
    def megapixels(self) -> float:
        return (self.width * self.height) / 1_000_000


class ImageLoader:
    """
    Decode/encode service for PNG and JPEG uploads.

    Everything stays in memory: bytes in, numpy arrays out, bytes back.
    """

    MODE_MAP = {
        "1": "L",
        "L": "L",
        "LA": "LA",
        "RGB": "RGB",
        "RGBA": "RGBA",
    }

    def probe(self, data: bytes) -> ImageProbe:
        """Read dimensions from the header without decoding pixel data"""
        try:
            with Image.open(io.BytesIO(data)) as img:
                width, height = img.size
                orientation = self._read_orientation(img)
                fmt = img.format
        except (UnidentifiedImageError, OSError, ValueError) as e:
            raise DecodeError(f"Could not read image header: {e}") from e

        # Dimensions as displayed, after EXIF rotation
        if orientation in TRANSPOSING_ORIENTATIONS:
            width, height = height, width

        return ImageProbe(width=width, height=height, format=fmt, orientation=orientation)

    def decode(self, data: bytes) -> RasterImage:
        """Fully decode image bytes into an upright raster (alpha preserved)"""
        try:
            with Image.open(io.BytesIO(data)) as img:
                orientation = self._read_orientation(img)
                img.load()
                upright = ImageOps.exif_transpose(img)
                target_mode = self._target_mode(upright)
                converted = upright.convert(target_mode) if upright.mode != target_mode else upright
                pixels = np.array(converted, dtype=np.uint8)
        except (UnidentifiedImageError, OSError, ValueError) as e:
            raise DecodeError(f"Could not decode image: {e}") from e

        logger.debug(f"Decoded {pixels.shape} image (EXIF orientation {orientation} applied)")
        return RasterImage(pixels=pixels)

    def encode(self, raster: RasterImage, format: str = "PNG") -> bytes:
        """Encode a raster to image bytes in memory"""
        buf = io.BytesIO()
        Image.fromarray(raster.pixels).save(buf, format=format)
        return buf.getvalue()

    def _target_mode(self, img: Image.Image) -> str:
        if img.mode in self.MODE_MAP:
            return self.MODE_MAP[img.mode]
        if img.mode == "P":
            return "RGBA" if "transparency" in img.info else "RGB"
        if img.mode.startswith("I") or img.mode == "F":
            return "L"
        return "RGBA" if "A" in img.getbands() else "RGB"

    @staticmethod
    def _read_orientation(img: Image.Image) -> int:
        # Raw EXIF block only: getexif() on a PNG may load the pixel data
        raw = img.info.get("exif")
        if not raw:
            return 1
        try:
            exif = Image.Exif()
            exif.load(raw)
            orientation = int(exif.get(EXIF_ORIENTATION_TAG, 1))
        except Exception:
            logger.debug("EXIF block unreadable, assuming upright orientation")
            return 1
        return orientation if 1 <= orientation <= 8 else 1
