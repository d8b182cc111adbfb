"""
Response capture: turn snapshots and the stability detector.
"""

from .snapshot import (
    CapturedResponse,
    SourceEntry,
    TurnSnapshot,
    format_structured_response,
    normalize_text,
)
from .detector import CaptureSession, StabilityDetector  # noqa: I001

__all__ = [
    "CaptureSession",
    "CapturedResponse",
    "SourceEntry",
    "StabilityDetector",
    "TurnSnapshot",
    "format_structured_response",
    "normalize_text",
]
