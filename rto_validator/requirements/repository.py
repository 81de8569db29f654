from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from rto_validator.requirements.models import (
    REQUIREMENT_TYPES,
    Requirement,
    RequirementType,
)
from rto_validator.storage.db import connection, init_db
from rto_validator.utils.error_taxonomy import (
    RequirementsNotFoundError,
    build_error_details,
)
from rto_validator.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class RequirementTable:
    """Physical layout of one requirement source table."""

    table: str
    unit_column: str
    text_column: str
    number_columns: tuple[str, ...]


REQUIREMENT_TABLES: dict[RequirementType, RequirementTable] = {
    "knowledge_evidence": RequirementTable(
        table="knowledge_evidence_requirements",
        unit_column="unitCode",
        text_column="knowledge_point",
        number_columns=("requirement_number",),
    ),
    "performance_evidence": RequirementTable(
        table="performance_evidence_requirements",
        unit_column="unitCode",
        text_column="performance_evidence",
        number_columns=("requirement_number",),
    ),
    "foundation_skills": RequirementTable(
        table="foundation_skills_requirements",
        unit_column="unit_code",
        text_column="skill_description",
        number_columns=("skill_category",),
    ),
    "elements_criteria": RequirementTable(
        table="elements_performance_criteria_requirements",
        unit_column="unit_code",
        text_column="performance_criteria",
        number_columns=("pc_number", "element_number"),
    ),
    "assessment_conditions": RequirementTable(
        table="assessment_conditions_requirements",
        unit_column="unitCode",
        text_column="condition_text",
        number_columns=("condition_number",),
    ),
}

AGGREGATE_VALIDATION_TYPES = frozenset(
    {"full_validation", "learner_guide_validation", "assessment"}
)

VALIDATION_TYPE_ALIASES: dict[str, RequirementType] = {
    "ke": "knowledge_evidence",
    "pe": "performance_evidence",
    "fs": "foundation_skills",
    "epc": "elements_criteria",
    "elements_performance_criteria": "elements_criteria",
    "ac": "assessment_conditions",
}


def resolve_requirement_types(validation_type: str) -> tuple[RequirementType, ...]:
    normalized = validation_type.strip().lower()
    if normalized in AGGREGATE_VALIDATION_TYPES:
        return REQUIREMENT_TYPES
    if normalized in REQUIREMENT_TABLES:
        return (normalized,)  # type: ignore[return-value]
    if normalized in VALIDATION_TYPE_ALIASES:
        return (VALIDATION_TYPE_ALIASES[normalized],)
    raise ValueError(f"Unknown validation type: {validation_type}")


def normalize_requirement_row(
    row: dict[str, Any], *, requirement_type: RequirementType
) -> Requirement:
    """Map one source-table row onto the uniform requirement shape.

    Pure function: the same row always yields an equal requirement.
    """
    layout = REQUIREMENT_TABLES[requirement_type]
    row_id = int(row["id"])

    text = _first_text(row, (layout.text_column, "text", "description"))
    number = _first_text(row, (*layout.number_columns, "number")) or str(row_id)
    unit_code = _first_text(row, (layout.unit_column, "unitCode", "unit_code"))

    metadata: dict[str, Any] = {"source_row": dict(row), "table": layout.table}
    if requirement_type == "elements_criteria":
        metadata["element"] = _first_text(row, ("element",))
        metadata["element_number"] = _first_text(row, ("element_number",))

    return Requirement(
        id=row_id,
        unit_code=unit_code,
        type=requirement_type,
        number=number,
        text=text,
        description=_first_text(row, ("description",)),
        metadata=metadata,
    )


def group_by_type(
    requirements: list[Requirement],
) -> dict[RequirementType, list[Requirement]]:
    grouped: dict[RequirementType, list[Requirement]] = {}
    for requirement in requirements:
        grouped.setdefault(requirement.type, []).append(requirement)
    return grouped


class RequirementsRepository:
    def __init__(self, db_path: Path | str) -> None:
        self.db_path = Path(db_path)
        init_db(self.db_path)

    def fetch(self, unit_code: str, validation_type: str) -> list[Requirement]:
        requirement_types = resolve_requirement_types(validation_type)
        aggregate = len(requirement_types) > 1

        requirements: list[Requirement] = []
        for requirement_type in requirement_types:
            try:
                requirements.extend(self.fetch_type(unit_code, requirement_type))
            except sqlite3.Error as error:
                if not aggregate:
                    raise
                logger.warning(
                    "Skipping %s requirements for %s: %s",
                    requirement_type,
                    unit_code,
                    build_error_details(error),
                )

        if not requirements:
            raise RequirementsNotFoundError(
                f"No requirements found for unit {unit_code} ({validation_type})"
            )
        logger.info(
            "Loaded %d requirements for %s (%s)",
            len(requirements),
            unit_code,
            validation_type,
        )
        return requirements

    def fetch_type(
        self, unit_code: str, requirement_type: RequirementType
    ) -> list[Requirement]:
        layout = REQUIREMENT_TABLES[requirement_type]
        # Table and column names come from the fixed layout map above.
        query = (
            f'SELECT * FROM "{layout.table}" '
            f'WHERE "{layout.unit_column}" = ? ORDER BY id ASC'
        )
        with connection(self.db_path) as conn:
            rows = conn.execute(query, (unit_code,)).fetchall()

        return [
            normalize_requirement_row(dict(row), requirement_type=requirement_type)
            for row in rows
        ]

    def add_source_row(
        self, requirement_type: RequirementType, values: dict[str, Any]
    ) -> int:
        """Insert a raw row into the source table for ``requirement_type``."""
        layout = REQUIREMENT_TABLES[requirement_type]
        allowed = {
            layout.unit_column,
            layout.text_column,
            *layout.number_columns,
            "text",
            "description",
        }
        if requirement_type == "elements_criteria":
            allowed.add("element")
        unknown = sorted(set(values) - allowed)
        if unknown:
            raise ValueError(f"Unknown columns for {layout.table}: {unknown}")

        columns = list(values)
        column_sql = ", ".join(f'"{column}"' for column in columns)
        placeholders = ", ".join("?" for _ in columns)
        with connection(self.db_path) as conn:
            cursor = conn.execute(
                f'INSERT INTO "{layout.table}" ({column_sql}) VALUES ({placeholders})',
                tuple(values[column] for column in columns),
            )
            return int(cursor.lastrowid or 0)


def _first_text(row: dict[str, Any], columns: tuple[str, ...]) -> str:
    for column in columns:
        value = row.get(column)
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text
    return ""
