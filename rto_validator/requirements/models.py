from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

RequirementType = Literal[
    "knowledge_evidence",
    "performance_evidence",
    "foundation_skills",
    "elements_criteria",
    "assessment_conditions",
]

REQUIREMENT_TYPES: tuple[RequirementType, ...] = (
    "knowledge_evidence",
    "performance_evidence",
    "foundation_skills",
    "elements_criteria",
    "assessment_conditions",
)

REQUIREMENT_TYPE_LABELS: dict[RequirementType, str] = {
    "knowledge_evidence": "Knowledge Evidence",
    "performance_evidence": "Performance Evidence",
    "foundation_skills": "Foundation Skills",
    "elements_criteria": "Elements and Performance Criteria",
    "assessment_conditions": "Assessment Conditions",
}


@dataclass(frozen=True, slots=True)
class Requirement:
    id: int
    unit_code: str
    type: RequirementType
    number: str
    text: str
    description: str = ""
    metadata: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def display_type(self) -> str:
        return REQUIREMENT_TYPE_LABELS[self.type]
