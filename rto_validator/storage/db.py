from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

SCHEMA_SQL = """
PRAGMA foreign_keys = ON;

CREATE TABLE IF NOT EXISTS validation_sessions (
    id INTEGER PRIMARY KEY,
    unit_code TEXT NOT NULL,
    rto_code TEXT,
    validation_type TEXT NOT NULL,
    document_type TEXT NOT NULL DEFAULT 'unit',
    document_store_ref TEXT,
    status TEXT NOT NULL DEFAULT 'pending'
        CHECK (status IN ('pending', 'processing', 'completed', 'partial', 'failed')),
    validation_total INTEGER NOT NULL DEFAULT 0,
    validation_count INTEGER NOT NULL DEFAULT 0,
    validation_progress INTEGER NOT NULL DEFAULT 0,
    error_message TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS session_documents (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    validation_detail_id INTEGER NOT NULL,
    file_name TEXT NOT NULL,
    storage_path TEXT NOT NULL,
    FOREIGN KEY (validation_detail_id)
        REFERENCES validation_sessions (id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS knowledge_evidence_requirements (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    unitCode TEXT NOT NULL,
    requirement_number TEXT,
    knowledge_point TEXT,
    text TEXT,
    description TEXT
);

CREATE TABLE IF NOT EXISTS performance_evidence_requirements (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    unitCode TEXT NOT NULL,
    requirement_number TEXT,
    performance_evidence TEXT,
    text TEXT,
    description TEXT
);

CREATE TABLE IF NOT EXISTS foundation_skills_requirements (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    unit_code TEXT NOT NULL,
    skill_category TEXT,
    skill_description TEXT,
    text TEXT,
    description TEXT
);

CREATE TABLE IF NOT EXISTS elements_performance_criteria_requirements (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    unit_code TEXT NOT NULL,
    element_number TEXT,
    element TEXT,
    pc_number TEXT,
    performance_criteria TEXT,
    text TEXT,
    description TEXT
);

CREATE TABLE IF NOT EXISTS assessment_conditions_requirements (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    unitCode TEXT NOT NULL,
    condition_number TEXT,
    condition_text TEXT,
    text TEXT,
    description TEXT
);

CREATE TABLE IF NOT EXISTS prompts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    prompt_type TEXT NOT NULL DEFAULT 'validation',
    requirement_type TEXT,
    document_type TEXT,
    name TEXT NOT NULL,
    prompt_text TEXT NOT NULL,
    system_instruction TEXT,
    output_schema_json TEXT,
    generation_config_json TEXT NOT NULL DEFAULT '{}',
    is_active INTEGER NOT NULL DEFAULT 1 CHECK (is_active IN (0, 1)),
    is_default INTEGER NOT NULL DEFAULT 0 CHECK (is_default IN (0, 1)),
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS document_chunks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    document_url TEXT NOT NULL,
    ordinal INTEGER NOT NULL,
    filename TEXT NOT NULL,
    page_number INTEGER NOT NULL DEFAULT 1,
    text TEXT NOT NULL,
    kind TEXT NOT NULL DEFAULT 'paragraph',
    created_at TEXT NOT NULL,
    UNIQUE (document_url, ordinal)
);

CREATE TABLE IF NOT EXISTS validation_results (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    validation_detail_id INTEGER NOT NULL,
    requirement_id INTEGER NOT NULL,
    requirement_type TEXT NOT NULL,
    requirement_number TEXT NOT NULL,
    requirement_text TEXT NOT NULL,
    status TEXT NOT NULL
        CHECK (status IN ('Met', 'PartiallyMet', 'NotMet', 'Error', 'Unknown')),
    reasoning TEXT NOT NULL DEFAULT '',
    mapped_content TEXT NOT NULL DEFAULT '',
    citations TEXT NOT NULL DEFAULT '[]',
    smart_questions TEXT NOT NULL DEFAULT '',
    benchmark_answer TEXT NOT NULL DEFAULT '',
    recommendations TEXT NOT NULL DEFAULT '',
    document_type TEXT NOT NULL DEFAULT 'unit',
    error_code TEXT,
    metadata_json TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL,
    UNIQUE (validation_detail_id, requirement_type, requirement_id),
    FOREIGN KEY (validation_detail_id)
        REFERENCES validation_sessions (id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_session_documents_detail
    ON session_documents (validation_detail_id);
CREATE INDEX IF NOT EXISTS idx_validation_results_detail
    ON validation_results (validation_detail_id);
CREATE INDEX IF NOT EXISTS idx_prompts_lookup
    ON prompts (prompt_type, requirement_type, document_type);
"""


def init_db(db_path: Path) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    with connection(db_path) as conn:
        conn.executescript(SCHEMA_SQL)


@contextmanager
def connection(db_path: Path) -> Iterator[sqlite3.Connection]:
    conn = sqlite3.connect(db_path, timeout=30)
    conn.row_factory = sqlite3.Row
    try:
        conn.execute("PRAGMA foreign_keys = ON;")
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
