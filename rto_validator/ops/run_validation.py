from __future__ import annotations

import argparse
import json
import sys
from typing import Any

from rto_validator.config.settings import Settings, get_settings
from rto_validator.extraction_client.azure_document_intelligence import (
    AzureDocumentIntelligenceClient,
)
from rto_validator.llm_client.factory import build_validation_backend
from rto_validator.pipeline.orchestrator import ValidationOrchestrator
from rto_validator.prompts.store import PromptTemplateStore
from rto_validator.requirements.repository import RequirementsRepository
from rto_validator.storage.blob_storage import LocalBlobStorage
from rto_validator.storage.chunk_cache import DocumentContentCache
from rto_validator.storage.db import init_db
from rto_validator.storage.repo import SessionRepo
from rto_validator.storage.result_store import ResultStore
from rto_validator.utils.error_taxonomy import (
    ERROR_FRIENDLY_MESSAGES,
    NotFoundError,
    SessionStateError,
)
from rto_validator.utils.logging import setup_logging


def build_orchestrator(
    settings: Settings,
) -> tuple[ValidationOrchestrator, DocumentContentCache]:
    db_path = settings.resolved_sqlite_path
    content_cache = DocumentContentCache(
        db_path,
        blob_storage=LocalBlobStorage(settings.resolved_blob_root),
        extractor=AzureDocumentIntelligenceClient(
            endpoint=settings.azure_doc_intel_endpoint,
            api_key=settings.azure_doc_intel_key,
            model=settings.doc_intel_model,
            api_version=settings.doc_intel_api_version,
            poll_interval_seconds=settings.doc_intel_poll_interval_seconds,
            max_wait_seconds=settings.doc_intel_max_wait_seconds,
        ),
        document_url_prefix=settings.document_url_prefix,
    )
    defaults_path = settings.resolved_defaults_config_path
    orchestrator = ValidationOrchestrator(
        session_repo=SessionRepo(db_path),
        requirements_repo=RequirementsRepository(db_path),
        prompt_store=PromptTemplateStore(db_path),
        content_cache=content_cache,
        result_store=ResultStore(db_path),
        backend=build_validation_backend(settings),
        prompt_defaults=(
            settings.load_yaml(defaults_path) if defaults_path.exists() else {}
        ),
        llm_max_retries=settings.llm_max_retries,
        llm_retry_base_delay_seconds=settings.llm_retry_base_delay_seconds,
    )
    return orchestrator, content_cache


def _session_payload(repo: SessionRepo, validation_detail_id: int) -> dict[str, Any]:
    session = repo.require_session(validation_detail_id)
    return {
        "validation_detail_id": session.id,
        "status": session.status,
        "validation_count": session.validation_count,
        "validation_total": session.validation_total,
        "validation_progress": session.validation_progress,
        "error_message": session.error_message,
    }


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Validate RTO documents against unit requirements."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="Create the SQLite schema.")

    validate_parser = subparsers.add_parser(
        "validate", help="Run validation for one pending session."
    )
    validate_parser.add_argument("--validation-detail-id", type=int, required=True)

    status_parser = subparsers.add_parser(
        "status", help="Print progress of a validation session."
    )
    status_parser.add_argument("--validation-detail-id", type=int, required=True)

    args = parser.parse_args(argv)
    settings = get_settings()
    setup_logging(settings.log_level.upper(), settings.log_file)

    if args.command == "init-db":
        init_db(settings.resolved_sqlite_path)
        print(json.dumps({"sqlite_path": str(settings.resolved_sqlite_path)}))
        return 0

    if args.command == "status":
        try:
            payload = _session_payload(
                SessionRepo(settings.resolved_sqlite_path), args.validation_detail_id
            )
        except NotFoundError as error:
            print(json.dumps({"error": str(error)}), file=sys.stderr)
            return 2
        print(json.dumps(payload, indent=2))
        return 0

    orchestrator, content_cache = build_orchestrator(settings)
    try:
        summary = orchestrator.run(args.validation_detail_id)
    except NotFoundError as error:
        print(
            json.dumps(
                {"error": str(error), "message": ERROR_FRIENDLY_MESSAGES["NOT_FOUND"]}
            ),
            file=sys.stderr,
        )
        return 2
    except SessionStateError as error:
        print(
            json.dumps(
                {
                    "error": str(error),
                    "message": ERROR_FRIENDLY_MESSAGES["SESSION_STATE_ERROR"],
                }
            ),
            file=sys.stderr,
        )
        return 3
    finally:
        content_cache.close()

    print(json.dumps(summary.to_payload(), indent=2))
    return 0 if summary.status != "failed" else 1


if __name__ == "__main__":
    raise SystemExit(main())
