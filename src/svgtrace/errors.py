"""
Conversion errors

Every failure is scoped to the single request that produced it. The
status_code on each error tells the transport layer which HTTP class to
answer with (4xx for input problems, 5xx for conversion problems).
"""


class ConversionError(Exception):
    """Base class for errors surfaced to the caller"""

    status_code = 500

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class InputValidationError(ConversionError):
    """Rejected upload: wrong type, too many bytes, or bad dimensions"""

    status_code = 413


class UnsupportedMediaError(InputValidationError):
    """Wrong MIME type or unreadable image"""

    status_code = 415


class TraceFailure(ConversionError):
    """The tracer could not turn the raster into SVG"""

    status_code = 500


class ConversionCancelled(ConversionError):
    """Caller cancelled or timed out the conversion"""

    status_code = 504


class DecodeError(Exception):
    """Image bytes could not be probed or decoded.

    Internal: callers degrade to a best-effort path instead of surfacing it.
    """
