"""
Scribe - Knowledge Capture

Accepts document uploads for an employee and turns them into searchable
knowledge records. Also hosts the HTTP server (see server.py).

Key Components:
- TextExtractor: Plain text from .txt/.pdf/.doc/.docx, placeholder for .pst
- CaptureService: Validation, employee creation, per-file storage
"""

from .extractors import TextExtractor
from .capture import CaptureService, CaptureInputError, CaptureResult, UploadedFile

__all__ = [
    "TextExtractor",
    "CaptureService",
    "CaptureInputError",
    "CaptureResult",
    "UploadedFile",
]
