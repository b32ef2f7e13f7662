"""
Capture Service

Turns a batch of uploaded files into knowledge: creates the employee,
records each file with its sha256 fingerprint, extracts its text and stores
that text as one knowledge record.

Extraction problems never fail a batch; the file is kept and its knowledge
record holds the extractor's placeholder text instead.
"""

import hashlib
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..common.config import UploadConfig
from ..common.schemas import Employee, utc_now
from ..common.store import KnowledgeStore
from .extractors import TextExtractor

logger = logging.getLogger("keeper.scribe.capture")


class CaptureInputError(ValueError):
    """The upload request is incomplete or violates upload limits"""
    pass


@dataclass
class UploadedFile:
    """A file already written to disk, waiting to be captured"""
    path: Path
    original_name: str
    size: Optional[int] = None

    @property
    def file_type(self) -> str:
        return Path(self.original_name).suffix.lower()

    @property
    def stored_name(self) -> str:
        return Path(self.path).name

    @property
    def byte_size(self) -> int:
        return self.size if self.size is not None else Path(self.path).stat().st_size


@dataclass
class CapturedFile:
    """Summary of one processed file"""
    id: str
    name: str
    size: int
    type: str


@dataclass
class CaptureResult:
    """Outcome of one upload batch"""
    employee: Employee
    files: List[CapturedFile] = field(default_factory=list)

    @property
    def files_processed(self) -> int:
        return len(self.files)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "employee": self.employee.model_dump(mode="json"),
            "filesProcessed": self.files_processed,
            "files": [vars(f) for f in self.files],
        }


def parse_years(value: Union[str, int, None]) -> int:
    """Lenient years-of-service parsing; anything unusable is 0"""
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        return 0


def sha256_file(path: Union[str, Path]) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()


class CaptureService:
    """
    Stores uploaded document batches in the knowledge store.

    Workflow:
    1. Validate the batch (names, file count, types, sizes)
    2. Create the employee
    3. Per file: fingerprint, record, extract, store knowledge
    """

    def __init__(
        self,
        store: KnowledgeStore,
        extractor: Optional[TextExtractor] = None,
        config: Optional[UploadConfig] = None,
    ):
        """
        Initialize capture service.

        Args:
            store: Knowledge store to write to
            extractor: Text extraction (default TextExtractor)
            config: Upload limits (defaults from UploadConfig)
        """
        self._store = store
        self._extractor = extractor or TextExtractor()
        self._config = config or UploadConfig()

    def validate(
        self,
        employee_name: Optional[str],
        job_title: Optional[str],
        files: List[UploadedFile],
    ) -> None:
        """
        Raises:
            CaptureInputError: describing the first problem found
        """
        if not (employee_name or "").strip() or not (job_title or "").strip():
            raise CaptureInputError("Employee name and job title are required")

        if not files:
            raise CaptureInputError("At least one file is required")

        if len(files) > self._config.max_files:
            raise CaptureInputError(
                f"Too many files: {len(files)} (max {self._config.max_files})"
            )

        allowed = self._config.allowed_types
        for upload in files:
            if upload.file_type not in allowed:
                raise CaptureInputError(
                    f"File type {upload.file_type or '(none)'} not supported. "
                    f"Allowed types: {', '.join(allowed)}"
                )
            if upload.byte_size > self._config.max_file_size:
                raise CaptureInputError(
                    f"File {upload.original_name} exceeds the "
                    f"{self._config.max_file_size} byte limit"
                )

    def capture(
        self,
        employee_name: Optional[str],
        job_title: Optional[str],
        years_service: Union[str, int, None],
        files: List[UploadedFile],
    ) -> CaptureResult:
        """
        Capture a batch of files for a new employee.

        Args:
            employee_name: Display name (required)
            job_title: Job title (required)
            years_service: Years of service; unparseable values become 0
            files: Files already saved to disk

        Returns:
            CaptureResult with the employee and one entry per file

        Raises:
            CaptureInputError: if the batch is invalid (nothing is stored)
            StoreError: if the store fails midway
        """
        self.validate(employee_name, job_title, files)

        employee = self._store.create_employee(
            employee_name.strip(), job_title.strip(), parse_years(years_service)
        )
        result = CaptureResult(employee=employee)

        for upload in files:
            result.files.append(self._capture_file(employee.id, upload))

        # file_count changed with every file
        result.employee = self._store.get_employee(employee.id) or employee

        logger.info(
            "Captured %d file(s) for %s", result.files_processed, employee.id
        )
        return result

    def _capture_file(self, employee_id: str, upload: UploadedFile) -> CapturedFile:
        file_type = upload.file_type
        size = upload.byte_size

        stored = self._store.create_file(
            employee_id=employee_id,
            filename=upload.stored_name,
            original_name=upload.original_name,
            file_type=file_type,
            file_size=size,
            content_hash=sha256_file(upload.path),
        )

        content = self._extractor.extract_text(upload.path, file_type)
        self._store.add_knowledge(
            employee_id,
            stored.id,
            content,
            "text",
            {
                "original_name": upload.original_name,
                "file_type": file_type,
                "extracted_at": utc_now().isoformat(),
            },
        )

        return CapturedFile(id=stored.id, name=upload.original_name, size=size, type=file_type)
