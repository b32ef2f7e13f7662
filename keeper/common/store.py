"""
Knowledge Store

SQLite persistence for employees, files, extracted knowledge and chat history.
Provides per-employee substring search over knowledge records.

The store is an explicit handle: create one per process (or per test) and
pass it to the components that need it.
"""

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from .schemas import (
    ChatTurn,
    Employee,
    KnowledgeHit,
    KnowledgeRecord,
    StoredFile,
    generate_employee_id,
    generate_id,
    utc_now,
)

logger = logging.getLogger("keeper.common.store")


SCHEMA = [
    """CREATE TABLE IF NOT EXISTS employees (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        title TEXT NOT NULL,
        years INTEGER DEFAULT 0,
        file_count INTEGER DEFAULT 0,
        created_at TEXT NOT NULL
    )""",
    """CREATE TABLE IF NOT EXISTS files (
        id TEXT PRIMARY KEY,
        employee_id TEXT NOT NULL,
        filename TEXT NOT NULL,
        original_name TEXT NOT NULL,
        file_type TEXT NOT NULL,
        file_size INTEGER NOT NULL,
        content_hash TEXT,
        created_at TEXT NOT NULL,
        FOREIGN KEY (employee_id) REFERENCES employees (id)
    )""",
    """CREATE TABLE IF NOT EXISTS knowledge_base (
        id TEXT PRIMARY KEY,
        employee_id TEXT NOT NULL,
        file_id TEXT NOT NULL,
        content TEXT NOT NULL,
        content_type TEXT NOT NULL,
        metadata TEXT,
        created_at TEXT NOT NULL,
        FOREIGN KEY (employee_id) REFERENCES employees (id),
        FOREIGN KEY (file_id) REFERENCES files (id)
    )""",
    """CREATE TABLE IF NOT EXISTS chat_history (
        id TEXT PRIMARY KEY,
        employee_id TEXT NOT NULL,
        message TEXT NOT NULL,
        response TEXT NOT NULL,
        sources TEXT,
        created_at TEXT NOT NULL
    )""",
    "CREATE INDEX IF NOT EXISTS idx_files_employee ON files(employee_id)",
    "CREATE INDEX IF NOT EXISTS idx_knowledge_employee ON knowledge_base(employee_id, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_chat_employee ON chat_history(employee_id, created_at)",
]


class StoreError(Exception):
    """Raised when the knowledge store cannot complete an operation"""
    pass


def _escape_like(term: str) -> str:
    """Escape LIKE wildcards so the term matches literally"""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class KnowledgeStore:
    """
    SQLite-backed knowledge base.

    One connection is shared by all threads; a re-entrant lock serializes
    access, and every write runs in its own transaction.
    """

    def __init__(self, db_path: str = ":memory:"):
        """
        Open (and create if needed) the database.

        Args:
            db_path: SQLite file path, or ":memory:" for a throwaway store
        """
        self.db_path = db_path
        self._lock = threading.RLock()

        if db_path != ":memory:":
            Path(db_path).expanduser().parent.mkdir(parents=True, exist_ok=True)
            db_path = str(Path(db_path).expanduser())

        try:
            self._conn = sqlite3.connect(db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            with self._conn:
                for statement in SCHEMA:
                    self._conn.execute(statement)
        except sqlite3.Error as e:
            raise StoreError(f"Failed to open knowledge store at {self.db_path}: {e}") from e

        logger.info("Connected to SQLite database: %s", self.db_path)

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self) -> "KnowledgeStore":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Serialized transaction; sqlite errors become StoreError"""
        with self._lock:
            if self._conn is None:
                raise StoreError("Knowledge store is closed")
            try:
                with self._conn:
                    yield self._conn
            except sqlite3.Error as e:
                raise StoreError(str(e)) from e

    def _query(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        with self._transaction() as conn:
            return conn.execute(sql, params).fetchall()

    # ------------------------------------------------------------------ #
    # Employees
    # ------------------------------------------------------------------ #

    def create_employee(self, name: str, title: str, years: int = 0) -> Employee:
        employee = Employee(
            id=generate_employee_id(name),
            name=name,
            title=title,
            years=years,
        )
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO employees (id, name, title, years, file_count, created_at) "
                "VALUES (?, ?, ?, ?, 0, ?)",
                (employee.id, employee.name, employee.title, employee.years,
                 employee.created_at.isoformat()),
            )
        logger.info("Created employee %s", employee.id)
        return employee

    def get_employees(self) -> List[Employee]:
        """All employees, newest first"""
        rows = self._query("SELECT * FROM employees ORDER BY created_at DESC, rowid DESC")
        return [Employee(**dict(row)) for row in rows]

    def get_employee(self, employee_id: str) -> Optional[Employee]:
        rows = self._query("SELECT * FROM employees WHERE id = ?", (employee_id,))
        return Employee(**dict(rows[0])) if rows else None

    def update_employee_file_count(self, employee_id: str) -> None:
        with self._transaction() as conn:
            self._refresh_file_count(conn, employee_id)

    @staticmethod
    def _refresh_file_count(conn: sqlite3.Connection, employee_id: str) -> None:
        conn.execute(
            "UPDATE employees SET file_count = "
            "(SELECT COUNT(*) FROM files WHERE employee_id = ?) WHERE id = ?",
            (employee_id, employee_id),
        )

    # ------------------------------------------------------------------ #
    # Files
    # ------------------------------------------------------------------ #

    def create_file(
        self,
        employee_id: str,
        filename: str,
        original_name: str,
        file_type: str,
        file_size: int,
        content_hash: str = "",
    ) -> StoredFile:
        """Record an uploaded file and refresh the owner's file count."""
        stored = StoredFile(
            id=generate_id(),
            employee_id=employee_id,
            filename=filename,
            original_name=original_name,
            file_type=file_type,
            file_size=file_size,
            content_hash=content_hash,
        )
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO files (id, employee_id, filename, original_name, file_type, "
                "file_size, content_hash, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (stored.id, stored.employee_id, stored.filename, stored.original_name,
                 stored.file_type, stored.file_size, stored.content_hash,
                 stored.created_at.isoformat()),
            )
            self._refresh_file_count(conn, employee_id)
        return stored

    def get_file(self, file_id: str) -> Optional[StoredFile]:
        rows = self._query("SELECT * FROM files WHERE id = ?", (file_id,))
        return StoredFile(**dict(rows[0])) if rows else None

    def get_files(self, employee_id: str) -> List[StoredFile]:
        rows = self._query(
            "SELECT * FROM files WHERE employee_id = ? ORDER BY created_at DESC, rowid DESC",
            (employee_id,),
        )
        return [StoredFile(**dict(row)) for row in rows]

    # ------------------------------------------------------------------ #
    # Knowledge
    # ------------------------------------------------------------------ #

    def add_knowledge(
        self,
        employee_id: str,
        file_id: str,
        content: str,
        content_type: str = "text",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> KnowledgeRecord:
        """
        Store the extracted text of a file.

        Raises:
            StoreError: if the file does not exist or belongs to another employee
        """
        record = KnowledgeRecord(
            id=generate_id(),
            employee_id=employee_id,
            file_id=file_id,
            content=content,
            content_type=content_type,
            metadata=metadata or {},
        )
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT employee_id FROM files WHERE id = ?", (file_id,)
            ).fetchone()
            if row is None:
                raise StoreError(f"File not found: {file_id}")
            if row["employee_id"] != employee_id:
                raise StoreError(
                    f"File {file_id} belongs to {row['employee_id']}, not {employee_id}"
                )
            conn.execute(
                "INSERT INTO knowledge_base (id, employee_id, file_id, content, content_type, "
                "metadata, created_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (record.id, record.employee_id, record.file_id, record.content,
                 record.content_type, json.dumps(record.metadata),
                 record.created_at.isoformat()),
            )
        return record

    def search_knowledge(self, employee_id: str, term: str, limit: int = 10) -> List[KnowledgeHit]:
        """
        Substring search over one employee's knowledge records.

        Matching is ASCII case-insensitive (SQLite LIKE). No ranking is done
        here: rows come back newest first, capped at ``limit``.
        """
        rows = self._query(
            """
            SELECT kb.content, kb.content_type, f.original_name, kb.metadata
            FROM knowledge_base kb
            JOIN files f ON kb.file_id = f.id
            WHERE kb.employee_id = ? AND kb.content LIKE ? ESCAPE '\\'
            ORDER BY kb.created_at DESC, kb.rowid DESC
            LIMIT ?
            """,
            (employee_id, f"%{_escape_like(term)}%", limit),
        )
        return [
            KnowledgeHit(
                content=row["content"],
                content_type=row["content_type"],
                source_file_name=row["original_name"],
                metadata=json.loads(row["metadata"]) if row["metadata"] else {},
            )
            for row in rows
        ]

    # ------------------------------------------------------------------ #
    # Chat history
    # ------------------------------------------------------------------ #

    def save_chat_history(
        self,
        employee_id: str,
        message: str,
        response: str,
        sources: Optional[List[str]] = None,
    ) -> ChatTurn:
        """Append a turn. The log is keyed by employee id only; unknown ids are accepted."""
        turn = ChatTurn(
            id=generate_id(),
            employee_id=employee_id,
            message=message,
            response=response,
            sources=sources or [],
        )
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO chat_history (id, employee_id, message, response, sources, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (turn.id, turn.employee_id, turn.message, turn.response,
                 json.dumps(turn.sources), turn.created_at.isoformat()),
            )
        return turn

    def get_chat_history(self, employee_id: str, limit: int = 50) -> List[ChatTurn]:
        """Most recent turns first"""
        rows = self._query(
            "SELECT * FROM chat_history WHERE employee_id = ? "
            "ORDER BY created_at DESC, rowid DESC LIMIT ?",
            (employee_id, limit),
        )
        turns = []
        for row in rows:
            data = dict(row)
            data["sources"] = json.loads(data["sources"]) if data["sources"] else []
            turns.append(ChatTurn(**data))
        return turns
