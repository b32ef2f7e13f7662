"""
Knowledge Keeper Schemas

Persistent records of the knowledge base.
"""

from .records import (
    Employee,
    StoredFile,
    KnowledgeRecord,
    ChatTurn,
    KnowledgeHit,
    generate_id,
    generate_employee_id,
    utc_now,
)

__all__ = [
    "Employee",
    "StoredFile",
    "KnowledgeRecord",
    "ChatTurn",
    "KnowledgeHit",
    "generate_id",
    "generate_employee_id",
    "utc_now",
]
