"""
Limit Guard - Rejects uploads that are too large before any pixel decode
"""
from typing import Iterable, Optional
import logging

from ..config import settings
from ..errors import InputValidationError, UnsupportedMediaError

logger = logging.getLogger(__name__)


class LimitGuard:
    """
    Validates upload size, MIME type and image dimensions against ceilings.

    Pure validation: every check either returns None or raises an
    InputValidationError whose status_code tells 413 (too large) from
    415 (wrong type / unreadable).
    """

    def __init__(
        self,
        max_upload_bytes: Optional[int] = None,
        max_megapixels: Optional[float] = None,
        max_side: Optional[int] = None,
        allowed_mime: Optional[Iterable[str]] = None,
    ):
        self.max_upload_bytes = max_upload_bytes if max_upload_bytes is not None else settings.max_upload_bytes
        self.max_megapixels = max_megapixels if max_megapixels is not None else settings.max_megapixels
        self.max_side = max_side if max_side is not None else settings.max_side
        self.allowed_mime = set(allowed_mime if allowed_mime is not None else settings.allowed_mime_types)

    @classmethod
    def from_settings(cls, config) -> "LimitGuard":
        return cls(
            max_upload_bytes=config.max_upload_bytes,
            max_megapixels=config.max_megapixels,
            max_side=config.max_side,
            allowed_mime=config.allowed_mime_types,
        )

    def check(self, byte_length: int, mime_type: str, width: int, height: int):
        """Run every check; raise on the first violation"""
        self.check_upload(byte_length, mime_type)
        self.check_dimensions(width, height)

    def check_upload(self, byte_length: int, mime_type: str):
        """Checks that need only the request metadata"""
        if mime_type not in self.allowed_mime:
            raise UnsupportedMediaError("Only PNG or JPEG images are allowed.")
        if byte_length > self.max_upload_bytes:
            limit_mb = self.max_upload_bytes / (1024 * 1024)
            raise InputValidationError(f"File too large. Max {limit_mb:g} MB per image.")

    def check_dimensions(self, width: int, height: int):
        """Checks that need the (header-probed) pixel dimensions"""
        if not width or not height:
            raise UnsupportedMediaError("Could not read image dimensions. Try a different file.")

        if self.exceeds(width, height):
            mp = (width * height) / 1_000_000
            logger.info(f"Rejecting {width}x{height} image ({mp:.1f} MP)")
            raise InputValidationError(
                f"Image too large: {width}×{height} (~{mp:.1f} MP). "
                f"Max {self.max_side}px per side or {self.max_megapixels:g} MP."
            )

    def exceeds(self, width: int, height: int) -> bool:
        """True when the dimensions are over the side or megapixel ceiling"""
        mp = (width * height) / 1_000_000
        return width > self.max_side or height > self.max_side or mp > self.max_megapixels

    def limits(self) -> dict:
        return {
            "max_upload_bytes": self.max_upload_bytes,
            "max_megapixels": self.max_megapixels,
            "max_side": self.max_side,
            "allowed_mime_types": sorted(self.allowed_mime),
        }
