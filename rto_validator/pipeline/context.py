from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable

from rto_validator.prompts.store import PromptTemplate
from rto_validator.storage.models import DocumentContentChunk, ValidationSession


@dataclass(slots=True)
class OrchestrationContext:
    """State scoped to a single validation run.

    Prompt templates are resolved once per requirement type and reused for
    every requirement of that type within the run, never across runs.
    """

    session: ValidationSession
    chunks: list[DocumentContentChunk] = field(default_factory=list)
    templates: dict[str, PromptTemplate] = field(default_factory=dict)
    started_at: float = field(default_factory=time.perf_counter)

    def template_for(
        self, requirement_type: str, resolve: Callable[[str], PromptTemplate]
    ) -> PromptTemplate:
        template = self.templates.get(requirement_type)
        if template is None:
            template = resolve(requirement_type)
            self.templates[requirement_type] = template
        return template

    def elapsed_ms(self) -> int:
        return int((time.perf_counter() - self.started_at) * 1000)
