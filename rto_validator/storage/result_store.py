from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from rto_validator.storage.db import connection, init_db
from rto_validator.storage.models import ProgressSnapshot, ValidationResultRecord
from rto_validator.utils.error_taxonomy import build_error_details
from rto_validator.utils.logging import get_logger

logger = get_logger(__name__)


class ResultStore:
    def __init__(self, db_path: Path | str) -> None:
        self.db_path = Path(db_path)
        self.persist_failures = 0
        init_db(self.db_path)

    def persist(self, record: ValidationResultRecord) -> bool:
        """Insert one result row. Failures are logged and reported as False."""
        try:
            with connection(self.db_path) as conn:
                conn.execute(
                    """
                    INSERT INTO validation_results (
                        validation_detail_id,
                        requirement_id,
                        requirement_type,
                        requirement_number,
                        requirement_text,
                        status,
                        reasoning,
                        mapped_content,
                        citations,
                        smart_questions,
                        benchmark_answer,
                        recommendations,
                        document_type,
                        error_code,
                        metadata_json,
                        created_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        record.validation_detail_id,
                        record.requirement_id,
                        record.requirement_type,
                        record.requirement_number,
                        record.requirement_text,
                        record.status,
                        record.reasoning,
                        record.mapped_content,
                        record.citations,
                        record.smart_questions,
                        record.benchmark_answer,
                        record.recommendations,
                        record.document_type,
                        record.error_code,
                        json.dumps(record.metadata, ensure_ascii=False, default=str),
                        _utc_now(),
                    ),
                )
        except Exception as error:  # noqa: BLE001
            self.persist_failures += 1
            logger.error(
                "Failed to persist result for requirement %s (%s): %s",
                record.requirement_number,
                record.requirement_type,
                build_error_details(error),
            )
            return False
        return True

    def advance_progress(self, validation_detail_id: int) -> ProgressSnapshot:
        with connection(self.db_path) as conn:
            conn.execute(
                """
                UPDATE validation_sessions
                SET validation_count = MIN(validation_count + 1, validation_total),
                    validation_progress = CASE
                        WHEN validation_total > 0
                        THEN (MIN(validation_count + 1, validation_total) * 100)
                            / validation_total
                        ELSE 0
                    END,
                    updated_at = ?
                WHERE id = ?
                """,
                (_utc_now(), validation_detail_id),
            )
            row = conn.execute(
                """
                SELECT validation_count, validation_total, validation_progress
                FROM validation_sessions
                WHERE id = ?
                """,
                (validation_detail_id,),
            ).fetchone()

        if row is None:
            raise sqlite3.DataError(
                f"Validation session disappeared: {validation_detail_id}"
            )
        return ProgressSnapshot(
            validation_count=int(row["validation_count"]),
            validation_total=int(row["validation_total"]),
            validation_progress=int(row["validation_progress"]),
        )

    def list_results(self, validation_detail_id: int) -> list[ValidationResultRecord]:
        with connection(self.db_path) as conn:
            rows = conn.execute(
                """
                SELECT * FROM validation_results
                WHERE validation_detail_id = ?
                ORDER BY id ASC
                """,
                (validation_detail_id,),
            ).fetchall()

        return [
            ValidationResultRecord(
                validation_detail_id=int(row["validation_detail_id"]),
                requirement_id=int(row["requirement_id"]),
                requirement_type=str(row["requirement_type"]),
                requirement_number=str(row["requirement_number"]),
                requirement_text=str(row["requirement_text"]),
                status=row["status"],
                reasoning=str(row["reasoning"]),
                mapped_content=str(row["mapped_content"]),
                citations=str(row["citations"]),
                smart_questions=str(row["smart_questions"]),
                benchmark_answer=str(row["benchmark_answer"]),
                recommendations=str(row["recommendations"]),
                document_type=str(row["document_type"]),
                error_code=row["error_code"],
                metadata=json.loads(row["metadata_json"] or "{}"),
            )
            for row in rows
        ]


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()
