"""
Pytest configuration and fixtures for conversion tests
"""
import io
import struct
import sys
import zlib
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

# Add src (package) and project root (main.py) to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent.parent))


def _encode(pixels: np.ndarray, format: str = "PNG") -> bytes:
    buf = io.BytesIO()
    Image.fromarray(pixels).save(buf, format=format)
    return buf.getvalue()


def _png_chunk(kind: bytes, data: bytes) -> bytes:
    return struct.pack(">I", len(data)) + kind + data + struct.pack(">I", zlib.crc32(kind + data) & 0xFFFFFFFF)


@pytest.fixture
def encode_image():
    """Encode a numpy array to PNG/JPEG bytes in memory"""
    return _encode


@pytest.fixture
def white_png():
    """500x500 uniform white PNG"""
    return _encode(np.full((500, 500, 3), 255, dtype=np.uint8))


@pytest.fixture
def square_pixels():
    """64x64 white RGB image with a black 32x32 square in the middle"""
    pixels = np.full((64, 64, 3), 255, dtype=np.uint8)
    pixels[16:48, 16:48] = 0
    return pixels


@pytest.fixture
def square_png(square_pixels):
    return _encode(square_pixels)


@pytest.fixture
def stripes_gray():
    """64x64 grayscale vertical stripes, 4px wide, alternating 0/255"""
    pixels = np.zeros((64, 64), dtype=np.uint8)
    for x in range(64):
        if (x // 4) % 2:
            pixels[:, x] = 255
    return pixels


@pytest.fixture
def png_header():
    """
    Minimal PNG whose header claims the given size.

    Only IHDR and a token IDAT are present, so the pixel data cannot
    actually be decoded: enough for a header probe, nothing more.
    """
    def build(width: int, height: int) -> bytes:
        ihdr = struct.pack(">IIBBBBB", width, height, 8, 0, 0, 0, 0)
        return (
            b"\x89PNG\r\n\x1a\n"
            + _png_chunk(b"IHDR", ihdr)
            + _png_chunk(b"IDAT", zlib.compress(b"\x00"))
            + _png_chunk(b"IEND", b"")
        )
    return build
