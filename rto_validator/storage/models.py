from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

SessionStatus = Literal["pending", "processing", "completed", "partial", "failed"]
ResultStatus = Literal["Met", "PartiallyMet", "NotMet", "Error", "Unknown"]

TERMINAL_SESSION_STATUSES: frozenset[str] = frozenset(
    {"completed", "partial", "failed"}
)


@dataclass(frozen=True, slots=True)
class SessionDocument:
    id: int
    validation_detail_id: int
    file_name: str
    storage_path: str


@dataclass(frozen=True, slots=True)
class ValidationSession:
    id: int
    unit_code: str
    rto_code: str | None
    validation_type: str
    document_type: str
    document_store_ref: str | None
    status: SessionStatus
    validation_total: int
    validation_count: int
    validation_progress: int
    created_at: str
    updated_at: str
    error_message: str | None = None
    documents: tuple[SessionDocument, ...] = ()


@dataclass(frozen=True, slots=True)
class DocumentContentChunk:
    document_url: str
    filename: str
    page_number: int
    text: str
    kind: str
    ordinal: int
    id: int | None = None


@dataclass(frozen=True, slots=True)
class ValidationResultRecord:
    validation_detail_id: int
    requirement_id: int
    requirement_type: str
    requirement_number: str
    requirement_text: str
    status: ResultStatus
    reasoning: str
    mapped_content: str = ""
    citations: str = "[]"
    smart_questions: str = ""
    benchmark_answer: str = ""
    recommendations: str = ""
    document_type: str = "unit"
    error_code: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ProgressSnapshot:
    validation_count: int
    validation_total: int
    validation_progress: int
