from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol


@dataclass(frozen=True, slots=True)
class ExtractedParagraph:
    content: str
    page_number: int = 1
    role: str | None = None


@dataclass(frozen=True, slots=True)
class ExtractedDocument:
    content: str
    pages_count: int = 0
    paragraphs: list[ExtractedParagraph] = field(default_factory=list)


class DocumentExtractor(Protocol):
    def extract(self, content: bytes, *, filename: str) -> ExtractedDocument: ...
