"""
Knowledge Base Records

Employees own files; every file yields exactly one knowledge record holding
its extracted text. Chat turns are an append-only log per employee.
Ownership is by convention only: nothing is ever cascaded or deleted.
"""

import re
import secrets
from datetime import datetime, timezone
from typing import Any, Dict, List

from pydantic import BaseModel, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def generate_id() -> str:
    """32 hex chars"""
    return secrets.token_hex(16)


def generate_employee_id(name: str) -> str:
    """Slug of the display name plus a random suffix, e.g. ``sarah-connor-ab12cd34``"""
    slug = re.sub(r"\s+", "-", name.strip().lower())
    return f"{slug}-{generate_id()[:8]}"


class Employee(BaseModel):
    """Person whose documents make up a knowledge partition"""
    id: str
    name: str
    title: str
    years: int = Field(default=0, ge=0, description="Years of service")
    file_count: int = Field(default=0, ge=0, description="Cached count of attached files")
    created_at: datetime = Field(default_factory=utc_now)


class StoredFile(BaseModel):
    """An uploaded file. Immutable once created."""
    id: str
    employee_id: str
    filename: str = Field(..., description="Name on disk")
    original_name: str = Field(..., description="Name as uploaded")
    file_type: str = Field(..., description="Lower-case extension, e.g. '.pdf'")
    file_size: int = Field(ge=0)
    content_hash: str = Field(default="", description="sha256 hex digest of the file bytes")
    created_at: datetime = Field(default_factory=utc_now)


class KnowledgeRecord(BaseModel):
    """Extracted text of one file"""
    id: str
    employee_id: str
    file_id: str
    content: str
    content_type: str = "text"
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)


class ChatTurn(BaseModel):
    """One question and the answer given to it"""
    id: str
    employee_id: str
    message: str
    response: str
    sources: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)


class KnowledgeHit(BaseModel):
    """A knowledge record as returned by substring search"""
    content: str
    content_type: str = "text"
    source_file_name: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
