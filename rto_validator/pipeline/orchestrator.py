from __future__ import annotations

import dataclasses
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Callable

from rto_validator.llm_client.base import ModelRequest, ModelResponse
from rto_validator.llm_client.factory import ValidationBackend
from rto_validator.pipeline.context import OrchestrationContext
from rto_validator.pipeline.prompt_builder import build_validation_prompt
from rto_validator.pipeline.response_parser import (
    build_error_record,
    merge_grounding_citations,
    parse_model_response,
)
from rto_validator.prompts.store import (
    PromptTemplate,
    PromptTemplateStore,
    builtin_template,
)
from rto_validator.requirements.models import Requirement
from rto_validator.requirements.repository import (
    RequirementsRepository,
    group_by_type,
)
from rto_validator.storage.chunk_cache import DocumentContentCache
from rto_validator.storage.models import (
    ProgressSnapshot,
    SessionStatus,
    ValidationResultRecord,
    ValidationSession,
)
from rto_validator.storage.repo import SessionRepo
from rto_validator.storage.result_store import ResultStore
from rto_validator.utils.error_taxonomy import (
    RequirementsNotFoundError,
    SessionStateError,
    build_error_details,
    classify_extraction_error,
    classify_validation_error,
    is_retryable_llm_exception,
)
from rto_validator.utils.logging import clear_log_context, get_logger, set_log_context
from rto_validator.utils.retry import call_with_retry

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class ValidationSummary:
    validation_detail_id: int
    status: SessionStatus
    total_requirements: int
    successful_validations: int
    failed_validations: int
    status_distribution: dict[str, int] = field(default_factory=dict)
    elapsed_ms: int = 0
    documents_extracted: int = 0
    documents_failed: int = 0
    error_message: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "validationDetailId": self.validation_detail_id,
            "status": self.status,
            "totalRequirements": self.total_requirements,
            "successfulValidations": self.successful_validations,
            "failedValidations": self.failed_validations,
            "statusDistribution": dict(self.status_distribution),
            "elapsedMs": self.elapsed_ms,
            "documentsExtracted": self.documents_extracted,
            "documentsFailed": self.documents_failed,
        }
        if self.error_message:
            payload["errorMessage"] = self.error_message
        return payload


def terminal_status(*, successful: int, failed: int) -> SessionStatus:
    if failed == 0 and successful > 0:
        return "completed"
    if successful > 0:
        return "partial"
    return "failed"


class ValidationOrchestrator:
    """Runs one validation session end to end.

    Requirements are validated strictly one after another. A failure while
    validating a single requirement is recorded as an ``Error`` result and
    the loop moves on; only preflight problems (no documents, no
    requirements, nothing extractable) fail the whole session.
    """

    def __init__(
        self,
        *,
        session_repo: SessionRepo,
        requirements_repo: RequirementsRepository,
        prompt_store: PromptTemplateStore,
        content_cache: DocumentContentCache,
        result_store: ResultStore,
        backend: ValidationBackend,
        prompt_defaults: dict[str, Any] | None = None,
        llm_max_retries: int = 0,
        llm_retry_base_delay_seconds: float = 0.5,
        sleep_fn: Callable[[float], None] = time.sleep,
    ) -> None:
        self.session_repo = session_repo
        self.requirements_repo = requirements_repo
        self.prompt_store = prompt_store
        self.content_cache = content_cache
        self.result_store = result_store
        self.backend = backend
        self.prompt_defaults = prompt_defaults or {}
        self.llm_max_retries = llm_max_retries
        self.llm_retry_base_delay_seconds = llm_retry_base_delay_seconds
        self._sleep_fn = sleep_fn

    def run(self, validation_detail_id: int) -> ValidationSummary:
        started_at = time.perf_counter()
        clear_log_context()
        set_log_context(validation_detail_id=validation_detail_id, stage="load")

        session = self.session_repo.require_session(validation_detail_id)
        if session.status != "pending":
            raise SessionStateError(
                f"Validation session {validation_detail_id} is {session.status}, "
                "expected pending"
            )

        if not session.documents:
            return self._fail_preflight(
                session,
                message="No documents uploaded for validation session",
                started_at=started_at,
            )

        try:
            requirements = self.requirements_repo.fetch(
                session.unit_code, session.validation_type
            )
        except (RequirementsNotFoundError, ValueError) as error:
            return self._fail_preflight(
                session, message=str(error), started_at=started_at
            )

        session = self.session_repo.begin_processing(
            validation_detail_id, validation_total=len(requirements)
        )
        logger.info(
            "Validation started: %d requirements, %d documents, strategy=%s",
            len(requirements),
            len(session.documents),
            self.backend.strategy,
        )

        try:
            return self._run_processing(
                session, requirements=requirements, started_at=started_at
            )
        except Exception as error:  # noqa: BLE001
            details = build_error_details(error)
            logger.error("Validation aborted: %s", details)
            self._safe_finish(
                validation_detail_id,
                status="failed",
                error_message=f"Validation aborted: {error}",
            )
            raise
        finally:
            clear_log_context()

    def _run_processing(
        self,
        session: ValidationSession,
        *,
        requirements: list[Requirement],
        started_at: float,
    ) -> ValidationSummary:
        context = OrchestrationContext(session=session, started_at=started_at)

        set_log_context(stage="extract")
        extracted, extraction_failures = self._populate_content(context)
        if extracted == 0:
            message = "Content extraction failed for every session document"
            self.session_repo.finish(session.id, status="failed", error_message=message)
            logger.error(message)
            return ValidationSummary(
                validation_detail_id=session.id,
                status="failed",
                total_requirements=len(requirements),
                successful_validations=0,
                failed_validations=0,
                elapsed_ms=context.elapsed_ms(),
                documents_extracted=0,
                documents_failed=extraction_failures,
                error_message=message,
            )

        set_log_context(stage="validate")
        distribution: Counter[str] = Counter()
        successful = 0
        for requirement_type, items in group_by_type(requirements).items():
            template = context.template_for(
                requirement_type,
                lambda key: self._resolve_template(key, session.document_type),
            )
            for requirement in items:
                set_log_context(requirement=f"{requirement.type}:{requirement.number}")
                record = self._validate_requirement(context, requirement, template)
                persisted = self.result_store.persist(record)
                distribution[record.status] += 1
                if persisted and record.status != "Error":
                    successful += 1
                self._safe_advance_progress(session.id)
        set_log_context(requirement=None)

        failed = len(requirements) - successful
        status = terminal_status(successful=successful, failed=failed)
        error_message = None
        if failed:
            error_message = f"{failed} of {len(requirements)} requirements failed"

        set_log_context(stage="finish")
        self.session_repo.finish(session.id, status=status, error_message=error_message)
        summary = ValidationSummary(
            validation_detail_id=session.id,
            status=status,
            total_requirements=len(requirements),
            successful_validations=successful,
            failed_validations=failed,
            status_distribution=dict(distribution),
            elapsed_ms=context.elapsed_ms(),
            documents_extracted=extracted,
            documents_failed=extraction_failures,
            error_message=error_message,
        )
        logger.info(
            "Validation finished: status=%s successful=%d failed=%d",
            status,
            successful,
            failed,
            extra={"duration_ms": summary.elapsed_ms, "metrics": dict(distribution)},
        )
        return summary

    def _populate_content(self, context: OrchestrationContext) -> tuple[int, int]:
        extracted = 0
        failures = 0
        for document in context.session.documents:
            try:
                chunks = self.content_cache.get_or_extract(document)
            except Exception as error:  # noqa: BLE001
                failures += 1
                logger.warning(
                    "Skipping document %s (%s): %s",
                    document.file_name,
                    classify_extraction_error(error),
                    build_error_details(error),
                )
                continue
            context.chunks.extend(chunks)
            extracted += 1
        return extracted, failures

    def _resolve_template(
        self, requirement_type: str, document_type: str
    ) -> PromptTemplate:
        try:
            template = self.prompt_store.resolve(requirement_type, document_type)
        except Exception as error:  # noqa: BLE001
            logger.warning(
                "Prompt lookup failed for %s, using built-in template: %s",
                requirement_type,
                build_error_details(error),
            )
            template = None

        if template is None:
            logger.info("No stored prompt for %s, using built-in", requirement_type)
            return builtin_template(
                requirement_type, document_type, defaults=self.prompt_defaults
            )
        return template

    def _validate_requirement(
        self,
        context: OrchestrationContext,
        requirement: Requirement,
        template: PromptTemplate,
    ) -> ValidationResultRecord:
        session = context.session
        try:
            request = ModelRequest(
                prompt=build_validation_prompt(
                    template, requirement=requirement, session=session
                ),
                system_instruction=template.system_instruction,
                generation_config=dict(template.generation_config),
                output_schema=template.output_schema,
                context_chunks=self.backend.context_selector.select(
                    requirement, context.chunks
                ),
                document_store_ref=session.document_store_ref,
            )

            def call_model() -> ModelResponse:
                self.backend.rate_limiter.acquire()
                return self.backend.client.generate(request)

            response = call_with_retry(
                call_model,
                should_retry=is_retryable_llm_exception,
                max_retries=self.llm_max_retries,
                base_delay_seconds=self.llm_retry_base_delay_seconds,
                sleep_fn=self._sleep_fn,
                on_retry=_log_retry,
            )

            record = parse_model_response(
                response.text,
                requirement,
                validation_detail_id=session.id,
                document_type=session.document_type,
            )
            record = merge_grounding_citations(record, response.grounding_chunks)
            return dataclasses.replace(
                record,
                metadata={
                    **record.metadata,
                    "prompt": template.name,
                    "context_chunks": len(request.context_chunks),
                    "grounding_chunks": len(response.grounding_chunks),
                    "usage": response.usage_normalized,
                    "timings": response.timings,
                },
            )
        except Exception as error:  # noqa: BLE001
            error_code = classify_validation_error(error)
            logger.warning(
                "Requirement %s failed (%s): %s",
                requirement.number,
                error_code,
                build_error_details(error),
            )
            return build_error_record(
                requirement,
                validation_detail_id=session.id,
                document_type=session.document_type,
                reasoning=f"Validation failed: {error}",
                error_code=error_code,
            )

    def _fail_preflight(
        self, session: ValidationSession, *, message: str, started_at: float
    ) -> ValidationSummary:
        logger.error("Validation cannot start: %s", message)
        self.session_repo.finish(session.id, status="failed", error_message=message)
        clear_log_context()
        return ValidationSummary(
            validation_detail_id=session.id,
            status="failed",
            total_requirements=0,
            successful_validations=0,
            failed_validations=0,
            elapsed_ms=int((time.perf_counter() - started_at) * 1000),
            error_message=message,
        )

    def _safe_advance_progress(self, validation_detail_id: int) -> ProgressSnapshot | None:
        try:
            return self.result_store.advance_progress(validation_detail_id)
        except Exception as error:  # noqa: BLE001
            logger.warning("Progress update failed: %s", build_error_details(error))
            return None

    def _safe_finish(
        self,
        validation_detail_id: int,
        *,
        status: SessionStatus,
        error_message: str | None,
    ) -> str | None:
        try:
            self.session_repo.finish(
                validation_detail_id, status=status, error_message=error_message
            )
            return None
        except Exception as error:  # noqa: BLE001
            details = build_error_details(error)
            logger.error("Could not persist terminal status: %s", details)
            return details


def _log_retry(attempt: int, delay: float, error: BaseException) -> None:
    logger.info(
        "Retrying model call (attempt %d) in %.2fs after %s",
        attempt,
        delay,
        error.__class__.__name__,
    )
