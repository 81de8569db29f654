from __future__ import annotations

import json
import socket
import sqlite3
from typing import Any, Literal

ErrorCode = Literal[
    "NOT_FOUND",
    "SESSION_STATE_ERROR",
    "EXTRACTION_FAILED",
    "EXTRACTION_API_ERROR",
    "LLM_API_ERROR",
    "LLM_NO_GROUNDING",
    "LLM_INVALID_JSON",
    "LLM_CONFIG_ERROR",
    "STORAGE_ERROR",
    "UNKNOWN_ERROR",
]

ERROR_FRIENDLY_MESSAGES: dict[ErrorCode, str] = {
    "NOT_FOUND": "Validation session, documents or requirements were not found.",
    "SESSION_STATE_ERROR": "Validation session is not in a state that allows a run.",
    "EXTRACTION_FAILED": "Document content could not be extracted.",
    "EXTRACTION_API_ERROR": "Document extraction service request failed.",
    "LLM_API_ERROR": "Model provider request failed. Please retry.",
    "LLM_NO_GROUNDING": "Model answer was not grounded in any session document.",
    "LLM_INVALID_JSON": "Model returned output that is not a JSON object.",
    "LLM_CONFIG_ERROR": "Model backend is not configured for this session.",
    "STORAGE_ERROR": "Storage operation failed while saving validation data.",
    "UNKNOWN_ERROR": "Unexpected error occurred during validation.",
}


class NotFoundError(LookupError):
    """Raised when a required entity for a validation run does not exist."""


class SessionNotFoundError(NotFoundError):
    pass


class DocumentsNotFoundError(NotFoundError):
    pass


class RequirementsNotFoundError(NotFoundError):
    pass


class SessionStateError(RuntimeError):
    """Raised when a run is requested for a session that is not pending."""


class ExtractionError(RuntimeError):
    """Raised when a document yields no usable content."""


class ResponseParseError(ValueError):
    pass


class NoGroundingChunksError(RuntimeError):
    """Raised when a grounded model answer references no session document."""


class MissingDocumentStoreError(ValueError):
    """Raised when managed grounding is requested without a document store."""


def classify_validation_error(error: Exception) -> ErrorCode:
    if isinstance(error, NoGroundingChunksError):
        return "LLM_NO_GROUNDING"
    if isinstance(error, MissingDocumentStoreError):
        return "LLM_CONFIG_ERROR"
    if isinstance(error, ResponseParseError | json.JSONDecodeError):
        return "LLM_INVALID_JSON"
    if isinstance(error, NotFoundError):
        return "NOT_FOUND"
    if is_retryable_llm_exception(error):
        return "LLM_API_ERROR"
    if extract_http_status_code(error) is not None:
        return "LLM_API_ERROR"
    if isinstance(error, (ConnectionError, TimeoutError, socket.timeout)):
        return "LLM_API_ERROR"
    if is_storage_error_exception(error):
        return "STORAGE_ERROR"
    if isinstance(error, RuntimeError):
        return "LLM_API_ERROR"
    return "UNKNOWN_ERROR"


def classify_extraction_error(error: Exception) -> ErrorCode:
    if isinstance(error, ExtractionError):
        return "EXTRACTION_FAILED"
    if isinstance(error, NotFoundError | FileNotFoundError):
        return "NOT_FOUND"
    if extract_http_status_code(error) is not None:
        return "EXTRACTION_API_ERROR"
    if isinstance(error, (ConnectionError, TimeoutError, socket.timeout)):
        return "EXTRACTION_API_ERROR"
    if is_storage_error_exception(error):
        return "STORAGE_ERROR"
    return "UNKNOWN_ERROR"


def is_retryable_llm_exception(error: Exception) -> bool:
    if isinstance(error, NoGroundingChunksError | ResponseParseError):
        return False
    status_code = extract_http_status_code(error)
    if status_code is not None:
        return is_retryable_status_code(status_code)

    class_name = error.__class__.__name__.lower()
    return "timeout" in class_name or "connection" in class_name


def is_retryable_status_code(status_code: int) -> bool:
    return status_code == 429 or 500 <= status_code <= 599


def extract_http_status_code(error: Exception) -> int | None:
    for field_name in ("status_code", "status", "http_status", "code"):
        value = getattr(error, field_name, None)
        parsed = _to_int_or_none(value)
        if parsed is not None:
            return parsed

    response = getattr(error, "response", None)
    if response is not None:
        parsed = _to_int_or_none(getattr(response, "status_code", None))
        if parsed is not None:
            return parsed

    return None


def build_error_details(error: Exception) -> str:
    details: list[str] = [f"{error.__class__.__name__}: {error}"]
    status_code = extract_http_status_code(error)
    if status_code is not None:
        details.append(f"status_code={status_code}")

    for field_name in ("body", "response_body", "payload"):
        value = getattr(error, field_name, None)
        if value is None:
            continue
        details.append(f"{field_name}={value}")
    return "\n".join(details)


def is_storage_error_exception(error: Exception) -> bool:
    return isinstance(error, sqlite3.Error | OSError)


def _to_int_or_none(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
