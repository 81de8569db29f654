from __future__ import annotations

import dataclasses
import json
import re
from typing import Any, Sequence

from rto_validator.llm_client.base import GroundingChunk
from rto_validator.pipeline.validate_output import validate_verdict
from rto_validator.requirements.models import Requirement
from rto_validator.storage.models import ResultStatus, ValidationResultRecord
from rto_validator.utils.error_taxonomy import ErrorCode
from rto_validator.utils.logging import get_logger

logger = get_logger(__name__)

PARSE_EXCERPT_LIMIT = 500

FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "status": ("status", "overall_status"),
    "reasoning": ("reasoning", "explanation", "rationale"),
    "mapped_content": ("mapped_content", "evidence_found"),
    "citations": ("citations", "doc_references"),
    "smart_questions": (
        "smart_question",
        "smart_questions",
        "practical_task",
        "assessment_question",
        "smart_task",
    ),
    "benchmark_answer": ("benchmark_answer", "model_answer"),
    "recommendations": (
        "recommendations",
        "unmapped_content",
        "improvement_suggestions",
    ),
}

_STATUS_MAP: dict[str, ResultStatus] = {
    "met": "Met",
    "pass": "Met",
    "passed": "Met",
    "partially met": "PartiallyMet",
    "partiallymet": "PartiallyMet",
    "partial": "PartiallyMet",
    "not met": "NotMet",
    "notmet": "NotMet",
    "fail": "NotMet",
    "failed": "NotMet",
}

_CAMEL_BOUNDARY_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_KEY_SEPARATOR_RE = re.compile(r"[\s\-]+")
_STATUS_SEPARATOR_RE = re.compile(r"[\s_\-]+")
_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)

NOT_APPLICABLE = "N/A"
_SMART_TASK_TEXT_KEYS = ("task_text", "text", "question")
_SMART_TASK_ANSWER_KEYS = ("benchmark_answer", "answer")


def parse_model_response(
    raw_text: str,
    requirement: Requirement,
    *,
    validation_detail_id: int,
    document_type: str,
) -> ValidationResultRecord:
    """Turn a loosely structured model answer into one result record.

    Never raises: text that holds no JSON object becomes an ``Error`` record
    carrying an excerpt of the raw answer.
    """
    payload = extract_json_object(raw_text)
    if payload is None:
        excerpt = (raw_text or "").strip()[:PARSE_EXCERPT_LIMIT]
        logger.warning(
            "Unparseable model response for requirement %s", requirement.number
        )
        return build_error_record(
            requirement,
            validation_detail_id=validation_detail_id,
            document_type=document_type,
            reasoning=f"Model response could not be parsed as JSON: {excerpt}",
            error_code="LLM_INVALID_JSON",
        )

    normalized = normalize_keys(payload)
    schema_errors = validate_verdict(normalized)
    if schema_errors:
        logger.warning(
            "Model verdict for requirement %s deviates from schema: %s",
            requirement.number,
            "; ".join(schema_errors),
        )

    fields = {
        name: _first_alias(normalized, aliases)
        for name, aliases in FIELD_ALIASES.items()
    }

    mapped_content = fields["mapped_content"]
    citations = fields["citations"]
    # A bare list of evidence with no citations is the citation list.
    if isinstance(mapped_content, list) and citations_empty(citations):
        citations, mapped_content = mapped_content, None

    status = normalize_status(fields["status"])
    smart_questions, benchmark_answer = split_smart_task(
        fields["smart_questions"], fields["benchmark_answer"]
    )
    if status == "Met":
        smart_questions = benchmark_answer = NOT_APPLICABLE

    return ValidationResultRecord(
        validation_detail_id=validation_detail_id,
        requirement_id=requirement.id,
        requirement_type=requirement.type,
        requirement_number=requirement.number,
        requirement_text=requirement.text,
        status=status,
        reasoning=flatten_text(fields["reasoning"]),
        mapped_content=flatten_text(mapped_content),
        citations=serialize_citations(citations),
        smart_questions=smart_questions,
        benchmark_answer=benchmark_answer,
        recommendations=flatten_text(fields["recommendations"]),
        document_type=document_type,
        metadata={"schema_warnings": schema_errors} if schema_errors else {},
    )


def build_error_record(
    requirement: Requirement,
    *,
    validation_detail_id: int,
    document_type: str,
    reasoning: str,
    error_code: ErrorCode,
) -> ValidationResultRecord:
    return ValidationResultRecord(
        validation_detail_id=validation_detail_id,
        requirement_id=requirement.id,
        requirement_type=requirement.type,
        requirement_number=requirement.number,
        requirement_text=requirement.text,
        status="Error",
        reasoning=reasoning,
        document_type=document_type,
        error_code=error_code,
    )


def extract_json_object(raw_text: str | None) -> dict[str, Any] | None:
    text = (raw_text or "").strip()
    if not text:
        return None

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, dict):
        return parsed

    match = _JSON_OBJECT_RE.search(text)
    if match is None:
        return None
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def normalize_key(key: str) -> str:
    snake = _CAMEL_BOUNDARY_RE.sub("_", key.strip())
    return _KEY_SEPARATOR_RE.sub("_", snake).lower()


def normalize_keys(payload: dict[str, Any]) -> dict[str, Any]:
    normalized: dict[str, Any] = {}
    for key, value in payload.items():
        normalized.setdefault(normalize_key(str(key)), value)
    return normalized


def normalize_status(value: Any) -> ResultStatus:
    if not isinstance(value, str):
        return "Unknown"
    key = _STATUS_SEPARATOR_RE.sub(" ", value.strip().lower())
    return _STATUS_MAP.get(key, "Unknown")


def flatten_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        for key in ("text", "content", "question"):
            inner = value.get(key)
            if isinstance(inner, str):
                return inner
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, list):
        return "\n".join(text for text in (flatten_text(item) for item in value) if text)
    return str(value)


def serialize_citations(value: Any) -> str:
    """Lists and objects become JSON text; strings are stored as given."""
    if value is None:
        return "[]"
    if isinstance(value, str):
        return value if value.strip() else "[]"
    return json.dumps(value, ensure_ascii=False, default=str)


def citations_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() in ("", "[]")
    if isinstance(value, (list, tuple, dict)):
        return not value
    return False


def split_smart_task(task: Any, benchmark: Any) -> tuple[str, str]:
    """Return ``(smart_questions, benchmark_answer)`` text.

    An object-valued task may carry its own answer, which wins over a
    separate benchmark field.
    """
    if isinstance(task, dict):
        question = _first_string(task, _SMART_TASK_TEXT_KEYS)
        answer = _first_string(task, _SMART_TASK_ANSWER_KEYS)
        return question, answer or flatten_text(benchmark)
    return flatten_text(task), flatten_text(benchmark)


def grounding_citations(chunks: Sequence[GroundingChunk]) -> list[dict[str, Any]]:
    return [
        {
            "documentName": chunk.document_name or "Unknown",
            "pageNumbers": list(chunk.page_numbers),
            "chunkText": chunk.text,
        }
        for chunk in chunks
    ]


def merge_grounding_citations(
    record: ValidationResultRecord, chunks: Sequence[GroundingChunk]
) -> ValidationResultRecord:
    """Fill empty citations from the chunks the model was grounded on."""
    if not chunks or record.status == "Error" or not citations_empty(record.citations):
        return record
    return dataclasses.replace(
        record,
        citations=json.dumps(grounding_citations(chunks), ensure_ascii=False),
    )


def _first_alias(payload: dict[str, Any], aliases: tuple[str, ...]) -> Any:
    for alias in aliases:
        if alias in payload and payload[alias] is not None:
            return payload[alias]
    return None


def _first_string(payload: dict[str, Any], keys: tuple[str, ...]) -> str:
    for key in keys:
        value = payload.get(key)
        if isinstance(value, str) and value:
            return value
    return ""
