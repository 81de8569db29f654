from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from rto_validator.storage.db import connection, init_db
from rto_validator.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_SYSTEM_INSTRUCTION = (
    "You are an expert RTO validator. Return a JSON response with all required "
    "fields."
)

DEFAULT_PROMPT_TEXT = (
    "Validate the following {{requirement_type}} requirement for unit "
    "{{unit_code}} against the {{document_type}} documents provided for this "
    "session.\n\n"
    "Requirement {{requirement_number}}:\n{{requirement_text}}\n\n"
    "Decide whether the documents fully meet, partially meet, or do not meet "
    "the requirement. Quote or reference only content that appears in the "
    "documents."
)

DEFAULT_GENERATION_CONFIG: dict[str, Any] = {
    "temperature": 0.1,
    "max_output_tokens": 4096,
}


@dataclass(frozen=True, slots=True)
class PromptTemplate:
    id: int | None
    name: str
    requirement_type: str | None
    document_type: str | None
    prompt_text: str
    system_instruction: str
    output_schema: dict[str, Any] | None = None
    generation_config: dict[str, Any] = field(default_factory=dict)
    builtin: bool = False


def builtin_template(
    requirement_type: str | None,
    document_type: str | None,
    *,
    defaults: dict[str, Any] | None = None,
) -> PromptTemplate:
    """Template used when no stored prompt matches a requirement type."""
    validation_defaults = (defaults or {}).get("validation") or {}
    generation_config = dict(DEFAULT_GENERATION_CONFIG)
    generation_config.update(validation_defaults.get("generation_config") or {})

    return PromptTemplate(
        id=None,
        name="builtin_validation",
        requirement_type=requirement_type,
        document_type=document_type,
        prompt_text=str(validation_defaults.get("prompt_text") or DEFAULT_PROMPT_TEXT),
        system_instruction=str(
            validation_defaults.get("system_instruction") or DEFAULT_SYSTEM_INSTRUCTION
        ),
        output_schema=None,
        generation_config=generation_config,
        builtin=True,
    )


class PromptTemplateStore:
    """Read access to validation prompt templates stored in SQLite.

    ``resolve`` tries the most specific match first:

    1. active default prompt for the requirement type and document type;
    2. active default prompt for the requirement type, any document type;
    3. the general prompt with no requirement type.
    """

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = Path(db_path)
        init_db(self.db_path)

    def resolve(
        self, requirement_type: str, document_type: str | None
    ) -> PromptTemplate | None:
        with connection(self.db_path) as conn:
            row = None
            if document_type:
                row = _select_one(
                    conn,
                    "requirement_type = ? AND document_type = ?",
                    (requirement_type, document_type),
                )
            if row is None:
                row = _select_one(conn, "requirement_type = ?", (requirement_type,))
            if row is None:
                row = _select_one(conn, "requirement_type IS NULL", ())

        if row is None:
            return None
        return _row_to_template(row)

    def save_template(
        self,
        *,
        name: str,
        prompt_text: str,
        requirement_type: str | None = None,
        document_type: str | None = None,
        system_instruction: str | None = None,
        output_schema: dict[str, Any] | None = None,
        generation_config: dict[str, Any] | None = None,
        is_active: bool = True,
        is_default: bool = True,
        prompt_type: str = "validation",
    ) -> PromptTemplate:
        with connection(self.db_path) as conn:
            cursor = conn.execute(
                """
                INSERT INTO prompts (
                    prompt_type,
                    requirement_type,
                    document_type,
                    name,
                    prompt_text,
                    system_instruction,
                    output_schema_json,
                    generation_config_json,
                    is_active,
                    is_default,
                    created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    prompt_type,
                    requirement_type,
                    document_type,
                    name,
                    prompt_text,
                    system_instruction,
                    json.dumps(output_schema) if output_schema is not None else None,
                    json.dumps(generation_config or {}),
                    int(is_active),
                    int(is_default),
                    datetime.now(timezone.utc).isoformat(),
                ),
            )
            row = conn.execute(
                "SELECT * FROM prompts WHERE id = ?", (cursor.lastrowid,)
            ).fetchone()

        return _row_to_template(row)


def _select_one(
    conn: sqlite3.Connection, condition: str, params: tuple[Any, ...]
) -> sqlite3.Row | None:
    return conn.execute(
        f"""
        SELECT * FROM prompts
        WHERE prompt_type = 'validation'
          AND is_active = 1
          AND is_default = 1
          AND {condition}
        ORDER BY id DESC
        LIMIT 1
        """,
        params,
    ).fetchone()


def _row_to_template(row: sqlite3.Row) -> PromptTemplate:
    output_schema = _load_json_object(row["output_schema_json"])
    return PromptTemplate(
        id=int(row["id"]),
        name=str(row["name"]),
        requirement_type=row["requirement_type"],
        document_type=row["document_type"],
        prompt_text=str(row["prompt_text"]),
        system_instruction=str(row["system_instruction"] or DEFAULT_SYSTEM_INSTRUCTION),
        output_schema=output_schema or None,
        generation_config=_load_json_object(row["generation_config_json"]),
    )


def _load_json_object(value: str | None) -> dict[str, Any]:
    if not value:
        return {}
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError:
        logger.warning("Ignoring malformed JSON column on prompt template")
        return {}
    return parsed if isinstance(parsed, dict) else {}
