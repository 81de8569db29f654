from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from rto_validator.storage.db import connection, init_db
from rto_validator.storage.models import (
    SessionDocument,
    SessionStatus,
    TERMINAL_SESSION_STATUSES,
    ValidationSession,
)
from rto_validator.utils.error_taxonomy import SessionNotFoundError, SessionStateError


class SessionRepo:
    """Validation session rows and their uploaded document references."""

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = Path(db_path)
        init_db(self.db_path)

    def create_session(
        self,
        *,
        unit_code: str,
        validation_type: str,
        rto_code: str | None = None,
        document_type: str = "unit",
        document_store_ref: str | None = None,
        session_id: int | None = None,
        created_at: str | None = None,
    ) -> ValidationSession:
        timestamp = created_at or _utc_now()
        with connection(self.db_path) as conn:
            cursor = conn.execute(
                """
                INSERT INTO validation_sessions (
                    id,
                    unit_code,
                    rto_code,
                    validation_type,
                    document_type,
                    document_store_ref,
                    status,
                    created_at,
                    updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, 'pending', ?, ?)
                """,
                (
                    session_id,
                    unit_code,
                    rto_code,
                    validation_type,
                    document_type,
                    document_store_ref,
                    timestamp,
                    timestamp,
                ),
            )
            new_id = int(cursor.lastrowid or session_id or 0)

        session = self.get_session(new_id)
        if session is None:
            raise RuntimeError("Failed to create validation session")
        return session

    def add_document(
        self, *, validation_detail_id: int, file_name: str, storage_path: str
    ) -> SessionDocument:
        with connection(self.db_path) as conn:
            cursor = conn.execute(
                """
                INSERT INTO session_documents (
                    validation_detail_id,
                    file_name,
                    storage_path
                )
                VALUES (?, ?, ?)
                """,
                (validation_detail_id, file_name, storage_path),
            )
            document_id = int(cursor.lastrowid or 0)

        return SessionDocument(
            id=document_id,
            validation_detail_id=validation_detail_id,
            file_name=file_name,
            storage_path=storage_path,
        )

    def get_session(self, validation_detail_id: int) -> ValidationSession | None:
        with connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM validation_sessions WHERE id = ?",
                (validation_detail_id,),
            ).fetchone()
            if row is None:
                return None
            document_rows = conn.execute(
                """
                SELECT id, validation_detail_id, file_name, storage_path
                FROM session_documents
                WHERE validation_detail_id = ?
                ORDER BY id ASC
                """,
                (validation_detail_id,),
            ).fetchall()

        documents = tuple(_row_to_document(item) for item in document_rows)
        return _row_to_session(row, documents)

    def require_session(self, validation_detail_id: int) -> ValidationSession:
        session = self.get_session(validation_detail_id)
        if session is None:
            raise SessionNotFoundError(
                f"Validation session not found: {validation_detail_id}"
            )
        return session

    def begin_processing(
        self, validation_detail_id: int, *, validation_total: int
    ) -> ValidationSession:
        """Move a pending session to processing and reset its progress counters.

        The transition is conditional on the current status so that two
        concurrent invocations cannot both claim the same session.
        """
        with connection(self.db_path) as conn:
            cursor = conn.execute(
                """
                UPDATE validation_sessions
                SET status = 'processing',
                    validation_total = ?,
                    validation_count = 0,
                    validation_progress = 0,
                    error_message = NULL,
                    updated_at = ?
                WHERE id = ? AND status = 'pending'
                """,
                (validation_total, _utc_now(), validation_detail_id),
            )
            claimed = cursor.rowcount == 1

        if not claimed:
            raise SessionStateError(
                f"Validation session {validation_detail_id} is not pending"
            )
        return self.require_session(validation_detail_id)

    def finish(
        self,
        validation_detail_id: int,
        *,
        status: SessionStatus,
        error_message: str | None = None,
    ) -> ValidationSession:
        """Persist a terminal status. Terminal sessions are never rewritten."""
        if status not in TERMINAL_SESSION_STATUSES:
            raise ValueError(f"Not a terminal session status: {status}")

        with connection(self.db_path) as conn:
            conn.execute(
                """
                UPDATE validation_sessions
                SET status = ?,
                    validation_progress = CASE
                        WHEN ? = 'failed' AND status = 'pending' THEN 0
                        ELSE 100
                    END,
                    error_message = ?,
                    updated_at = ?
                WHERE id = ? AND status IN ('pending', 'processing')
                """,
                (status, status, error_message, _utc_now(), validation_detail_id),
            )

        return self.require_session(validation_detail_id)

    def list_sessions(self, *, limit: int = 50) -> list[ValidationSession]:
        with connection(self.db_path) as conn:
            rows = conn.execute(
                """
                SELECT * FROM validation_sessions
                ORDER BY created_at DESC, id DESC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
        return [_row_to_session(row, ()) for row in rows]


def _row_to_document(row: sqlite3.Row) -> SessionDocument:
    return SessionDocument(
        id=int(row["id"]),
        validation_detail_id=int(row["validation_detail_id"]),
        file_name=str(row["file_name"]),
        storage_path=str(row["storage_path"]),
    )


def _row_to_session(
    row: sqlite3.Row, documents: tuple[SessionDocument, ...]
) -> ValidationSession:
    return ValidationSession(
        id=int(row["id"]),
        unit_code=str(row["unit_code"]),
        rto_code=row["rto_code"],
        validation_type=str(row["validation_type"]),
        document_type=str(row["document_type"]),
        document_store_ref=row["document_store_ref"],
        status=row["status"],
        validation_total=int(row["validation_total"]),
        validation_count=int(row["validation_count"]),
        validation_progress=int(row["validation_progress"]),
        created_at=str(row["created_at"]),
        updated_at=str(row["updated_at"]),
        error_message=row["error_message"],
        documents=documents,
    )


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()
