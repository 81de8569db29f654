from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from rto_validator.storage.models import DocumentContentChunk


@dataclass(frozen=True, slots=True)
class ModelRequest:
    prompt: str
    system_instruction: str
    generation_config: dict[str, Any] = field(default_factory=dict)
    output_schema: dict[str, Any] | None = None
    context_chunks: list[DocumentContentChunk] = field(default_factory=list)
    document_store_ref: str | None = None


@dataclass(frozen=True, slots=True)
class GroundingChunk:
    document_name: str | None
    text: str = ""
    page_numbers: tuple[int, ...] = ()


@dataclass(frozen=True, slots=True)
class ModelResponse:
    text: str
    grounding_chunks: list[GroundingChunk] = field(default_factory=list)
    raw_response: dict[str, Any] = field(default_factory=dict)
    usage_normalized: dict[str, int | None] = field(default_factory=dict)
    timings: dict[str, float] = field(default_factory=dict)


class ModelClient(Protocol):
    def generate(self, request: ModelRequest) -> ModelResponse: ...


def to_dict(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        return value

    model_dump = getattr(value, "model_dump", None)
    if callable(model_dump):
        dumped = model_dump()
        if isinstance(dumped, dict):
            return dumped

    return {}
