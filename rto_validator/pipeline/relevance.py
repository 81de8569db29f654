from __future__ import annotations

import re
from typing import Protocol, Sequence

from rto_validator.requirements.models import Requirement
from rto_validator.storage.models import DocumentContentChunk

KEYWORD_MIN_LENGTH = 6
KEYWORD_LIMIT = 3

_WORD_RE = re.compile(r"[^\w]+")


class ContextSelector(Protocol):
    def select(
        self, requirement: Requirement, chunks: Sequence[DocumentContentChunk]
    ) -> list[DocumentContentChunk]: ...


class NullContextSelector:
    """Used when retrieval happens inside the model provider."""

    def select(
        self, requirement: Requirement, chunks: Sequence[DocumentContentChunk]
    ) -> list[DocumentContentChunk]:
        del requirement, chunks
        return []


class RelevanceMatcher:
    """Cheap lexical preselection of chunks for one requirement.

    A chunk matches when it contains the requirement number or one of the
    first few long words of the requirement text. When nothing matches, the
    leading chunks of the session are used instead so the model always sees
    some content.
    """

    def __init__(self, *, cap: int = 40, fallback_limit: int = 50) -> None:
        self.cap = cap
        self.fallback_limit = fallback_limit

    def select(
        self, requirement: Requirement, chunks: Sequence[DocumentContentChunk]
    ) -> list[DocumentContentChunk]:
        terms = match_terms(requirement)
        matched: list[DocumentContentChunk] = []
        if terms:
            for chunk in chunks:
                haystack = chunk.text.lower()
                if any(term in haystack for term in terms):
                    matched.append(chunk)
                    if len(matched) >= self.cap:
                        break

        if matched:
            return matched
        return list(chunks[: self.fallback_limit])


def extract_keywords(text: str, *, limit: int = KEYWORD_LIMIT) -> list[str]:
    keywords: list[str] = []
    for raw in _WORD_RE.split(text.lower()):
        word = raw.strip("_")
        if len(word) < KEYWORD_MIN_LENGTH or word in keywords:
            continue
        keywords.append(word)
        if len(keywords) >= limit:
            break
    return keywords


def match_terms(requirement: Requirement) -> list[str]:
    terms: list[str] = []
    number = requirement.number.strip().lower()
    if number:
        terms.append(number)
    terms.extend(extract_keywords(requirement.text))
    return terms
