from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any

from rto_validator.config.settings import get_settings
from rto_validator.prompts.store import PromptTemplateStore
from rto_validator.requirements.models import RequirementType
from rto_validator.requirements.repository import (
    REQUIREMENT_TABLES,
    RequirementsRepository,
)
from rto_validator.storage.blob_storage import LocalBlobStorage
from rto_validator.storage.repo import SessionRepo

DEFAULT_UNIT_CODE = "BSBOPS304"
DEFAULT_RTO_CODE = "90001"
DEFAULT_STORAGE_PATH = "demo/BSBOPS304_assessment.txt"

DEMO_REQUIREMENTS: list[tuple[RequirementType, dict[str, Any]]] = [
    (
        "knowledge_evidence",
        {
            "requirement_number": "1",
            "knowledge_point": "Key provisions of customer service legislation",
        },
    ),
    (
        "performance_evidence",
        {
            "requirement_number": "1",
            "performance_evidence": "Deliver service to at least three customers",
        },
    ),
    (
        "foundation_skills",
        {
            "skill_category": "Reading",
            "skill_description": "Interprets organisational policies and procedures",
        },
    ),
    (
        "elements_criteria",
        {
            "element_number": "1",
            "element": "Identify customer needs",
            "pc_number": "1.1",
            "performance_criteria": "Identify customers and their service requirements",
        },
    ),
    (
        "assessment_conditions",
        {
            "condition_number": "1",
            "condition_text": "Skills must be demonstrated in a workplace setting",
        },
    ),
]

DEMO_DOCUMENT_TEXT = """Assessment Task 1 - Knowledge questions
Question 1: Outline the key provisions of customer service legislation.

Assessment Task 2 - Workplace project
Deliver service to three customers and record their service requirements.
"""


def seed_demo_data(
    *,
    db_path: Path,
    blob_root: Path,
    unit_code: str = DEFAULT_UNIT_CODE,
    document_store_ref: str | None = None,
) -> dict[str, Any]:
    requirements_repo = RequirementsRepository(db_path)
    requirement_ids: list[int] = []
    for requirement_type, values in DEMO_REQUIREMENTS:
        unit_column = REQUIREMENT_TABLES[requirement_type].unit_column
        requirement_ids.append(
            requirements_repo.add_source_row(
                requirement_type, {unit_column: unit_code, **values}
            )
        )

    blob_path = LocalBlobStorage(blob_root).resolve(DEFAULT_STORAGE_PATH)
    blob_path.parent.mkdir(parents=True, exist_ok=True)
    blob_path.write_text(DEMO_DOCUMENT_TEXT, encoding="utf-8")

    PromptTemplateStore(db_path).save_template(
        name="demo_knowledge_evidence",
        requirement_type="knowledge_evidence",
        prompt_text=(
            "Check knowledge evidence {{requirement_number}} for {{unit_code}}:\n"
            "{{requirement_text}}"
        ),
        generation_config={"temperature": 0.1},
    )

    session_repo = SessionRepo(db_path)
    session = session_repo.create_session(
        unit_code=unit_code,
        rto_code=DEFAULT_RTO_CODE,
        validation_type="full_validation",
        document_store_ref=document_store_ref,
    )
    session_repo.add_document(
        validation_detail_id=session.id,
        file_name=Path(DEFAULT_STORAGE_PATH).name,
        storage_path=DEFAULT_STORAGE_PATH,
    )

    return {
        "validation_detail_id": session.id,
        "unit_code": unit_code,
        "requirement_ids": requirement_ids,
        "blob_path": str(blob_path),
    }


def _parse_args() -> argparse.Namespace:
    settings = get_settings()
    parser = argparse.ArgumentParser(
        description="Seed a local validation session with demo requirements."
    )
    parser.add_argument(
        "--db-path",
        default=str(settings.resolved_sqlite_path),
        help="SQLite database to seed.",
    )
    parser.add_argument(
        "--blob-root",
        default=str(settings.resolved_blob_root),
        help="Directory that stands in for the document bucket.",
    )
    parser.add_argument("--unit-code", default=DEFAULT_UNIT_CODE)
    parser.add_argument(
        "--document-store-ref",
        default=None,
        help="File search store name for managed grounding.",
    )
    return parser.parse_args()


def main() -> None:
    args = _parse_args()
    report = seed_demo_data(
        db_path=Path(args.db_path),
        blob_root=Path(args.blob_root),
        unit_code=str(args.unit_code),
        document_store_ref=args.document_store_ref,
    )
    print(json.dumps(report, ensure_ascii=False, indent=2, sort_keys=True))


if __name__ == "__main__":
    main()
