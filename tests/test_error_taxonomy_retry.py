from __future__ import annotations

import sqlite3

import pytest

from rto_validator.utils.error_taxonomy import (
    ExtractionError,
    MissingDocumentStoreError,
    NoGroundingChunksError,
    ResponseParseError,
    SessionNotFoundError,
    build_error_details,
    classify_extraction_error,
    classify_validation_error,
    extract_http_status_code,
    is_retryable_llm_exception,
)
from rto_validator.utils.retry import call_with_retry


class StatusError(Exception):
    def __init__(self, status_code: int) -> None:
        super().__init__(f"status={status_code}")
        self.status_code = status_code


def test_classify_validation_error_codes() -> None:
    assert classify_validation_error(NoGroundingChunksError("x")) == "LLM_NO_GROUNDING"
    assert classify_validation_error(ResponseParseError("x")) == "LLM_INVALID_JSON"
    assert classify_validation_error(MissingDocumentStoreError("x")) == (
        "LLM_CONFIG_ERROR"
    )
    assert classify_validation_error(SessionNotFoundError("x")) == "NOT_FOUND"
    assert classify_validation_error(StatusError(503)) == "LLM_API_ERROR"
    assert classify_validation_error(ConnectionError("reset")) == "LLM_API_ERROR"
    assert classify_validation_error(sqlite3.OperationalError("locked")) == (
        "STORAGE_ERROR"
    )
    assert classify_validation_error(KeyError("boom")) == "UNKNOWN_ERROR"


def test_classify_extraction_error_codes() -> None:
    assert classify_extraction_error(ExtractionError("empty")) == "EXTRACTION_FAILED"
    assert classify_extraction_error(FileNotFoundError("gone")) == "NOT_FOUND"
    assert classify_extraction_error(StatusError(500)) == "EXTRACTION_API_ERROR"
    assert classify_extraction_error(TimeoutError("slow")) == "EXTRACTION_API_ERROR"


def test_retryable_llm_exceptions() -> None:
    assert is_retryable_llm_exception(StatusError(429)) is True
    assert is_retryable_llm_exception(StatusError(502)) is True
    assert is_retryable_llm_exception(StatusError(400)) is False
    assert is_retryable_llm_exception(NoGroundingChunksError("x")) is False
    assert is_retryable_llm_exception(ResponseParseError("x")) is False


def test_extract_http_status_code_from_response_attribute() -> None:
    class Response:
        status_code = 504

    error = RuntimeError("gateway")
    error.response = Response()  # type: ignore[attr-defined]

    assert extract_http_status_code(error) == 504
    assert "status_code=504" in build_error_details(error)


def test_call_with_retry_retries_transient_error_once() -> None:
    calls: list[int] = []
    sleeps: list[float] = []

    def operation() -> str:
        calls.append(1)
        if len(calls) == 1:
            raise StatusError(429)
        return "ok"

    result = call_with_retry(
        operation,
        should_retry=is_retryable_llm_exception,
        max_retries=1,
        base_delay_seconds=0.5,
        sleep_fn=sleeps.append,
    )

    assert result == "ok"
    assert len(calls) == 2
    assert sleeps == [0.5]


def test_call_with_retry_does_not_retry_permanent_error() -> None:
    calls: list[int] = []

    def operation() -> str:
        calls.append(1)
        raise NoGroundingChunksError("no chunks")

    with pytest.raises(NoGroundingChunksError):
        call_with_retry(
            operation,
            should_retry=is_retryable_llm_exception,
            max_retries=3,
            sleep_fn=lambda _: None,
        )

    assert len(calls) == 1


def test_call_with_retry_reraises_after_last_attempt() -> None:
    attempts: list[int] = []

    def operation() -> str:
        raise StatusError(503)

    with pytest.raises(StatusError):
        call_with_retry(
            operation,
            should_retry=is_retryable_llm_exception,
            max_retries=2,
            base_delay_seconds=1.0,
            sleep_fn=lambda _: None,
            on_retry=lambda attempt, delay, error: attempts.append(attempt),
        )

    assert attempts == [1, 2]


def test_call_with_retry_runs_once_by_default() -> None:
    calls: list[int] = []

    def operation() -> str:
        calls.append(1)
        raise TimeoutError("model timed out")

    with pytest.raises(TimeoutError):
        call_with_retry(
            operation,
            should_retry=is_retryable_llm_exception,
            sleep_fn=lambda _: pytest.fail("must not sleep"),
        )

    assert len(calls) == 1


def test_call_with_retry_reports_doubling_delays() -> None:
    delays: list[float] = []

    def operation() -> str:
        raise StatusError(429)

    with pytest.raises(StatusError):
        call_with_retry(
            operation,
            should_retry=is_retryable_llm_exception,
            max_retries=2,
            base_delay_seconds=0.5,
            sleep_fn=lambda _: None,
            on_retry=lambda attempt, delay, error: delays.append(delay),
        )

    assert delays == [0.5, 1.0]
