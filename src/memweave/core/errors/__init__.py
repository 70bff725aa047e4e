"""
Error taxonomy for capture and extraction.
"""

from .errors import (
    AlreadyFinalizedError,
    CaptureError,
    CaptureErrorKind,
    ErrorSeverity,
    ExtractionError,
    ExtractionErrorKind,
    FormatError,
    MemweaveError,
    Result,
)

__all__ = [
    "AlreadyFinalizedError",
    "CaptureError",
    "CaptureErrorKind",
    "ErrorSeverity",
    "ExtractionError",
    "ExtractionErrorKind",
    "FormatError",
    "MemweaveError",
    "Result",
]
