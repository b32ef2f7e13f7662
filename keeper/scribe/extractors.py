"""
Text Extractors

Plain-text extraction for uploaded files, selected by file type.
Never raises: failures come back as a human-readable placeholder that is
stored in place of the document text.
"""

import logging
from pathlib import Path
from typing import Callable, Dict, Union

logger = logging.getLogger("keeper.scribe.extractors")

PST_PLACEHOLDER = "PST file processing not yet implemented. File uploaded successfully."
UNSUPPORTED_PLACEHOLDER = "Unsupported file type for text extraction"
ERROR_PLACEHOLDER = "Error extracting text from file"


class TextExtractor:
    """
    Extracts text from .txt, .pdf and .doc/.docx files.

    PST archives are accepted but not parsed.
    """

    def __init__(self):
        self._handlers: Dict[str, Callable[[Path], str]] = {
            ".txt": self._extract_txt,
            ".pdf": self._extract_pdf,
            ".doc": self._extract_docx,
            ".docx": self._extract_docx,
            ".pst": self._extract_pst,
        }

    def extract_text(self, file_path: Union[str, Path], file_type: str) -> str:
        """
        Extract plain text from a file.

        Args:
            file_path: Path of the stored file
            file_type: Extension including the dot, e.g. ".pdf"

        Returns:
            Extracted text, or a placeholder string on failure
        """
        handler = self._handlers.get(file_type.lower())
        if handler is None:
            return UNSUPPORTED_PLACEHOLDER

        try:
            return handler(Path(file_path))
        except Exception as e:
            logger.error("Error extracting text from %s: %s", file_path, e)
            return ERROR_PLACEHOLDER

    def _extract_txt(self, path: Path) -> str:
        return path.read_text(encoding="utf-8")

    def _extract_pdf(self, path: Path) -> str:
        import PyPDF2

        with open(path, "rb") as f:
            reader = PyPDF2.PdfReader(f)
            return "\n".join(page.extract_text() or "" for page in reader.pages)

    def _extract_docx(self, path: Path) -> str:
        import docx  # python-docx

        document = docx.Document(str(path))
        return "\n".join(p.text for p in document.paragraphs)

    def _extract_pst(self, path: Path) -> str:
        return PST_PLACEHOLDER
