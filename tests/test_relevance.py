from __future__ import annotations

from rto_validator.pipeline.pack_documents import pack_chunks
from rto_validator.pipeline.relevance import (
    NullContextSelector,
    RelevanceMatcher,
    extract_keywords,
)
from rto_validator.requirements.models import Requirement
from rto_validator.storage.models import DocumentContentChunk


def _chunk(ordinal: int, text: str, url: str = "s3://b/a.pdf") -> DocumentContentChunk:
    return DocumentContentChunk(
        document_url=url,
        filename=url.rsplit("/", 1)[-1],
        page_number=ordinal // 10 + 1,
        text=text,
        kind="paragraph",
        ordinal=ordinal,
    )


def _requirement(number: str, text: str) -> Requirement:
    return Requirement(
        id=1,
        unit_code="BSBOPS304",
        type="knowledge_evidence",
        number=number,
        text=text,
    )


def test_extract_keywords_takes_first_three_distinct_long_words() -> None:
    keywords = extract_keywords(
        "Workplace and the workplace hazard list: reporting procedures"
    )

    assert keywords == ["workplace", "hazard", "reporting"]


def test_select_matches_keywords_case_insensitively() -> None:
    chunks = [
        _chunk(0, "Introduction"),
        _chunk(1, "Identify WORKPLACE risks"),
        _chunk(2, "Unrelated content"),
        _chunk(3, "Report hazards to a supervisor"),
    ]
    matcher = RelevanceMatcher()

    selected = matcher.select(
        _requirement("KE9", "Workplace hazards and controls"), chunks
    )

    assert [chunk.ordinal for chunk in selected] == [1, 3]


def test_select_matches_requirement_number() -> None:
    chunks = [_chunk(0, "Question 4.2 covers this"), _chunk(1, "Other")]

    selected = RelevanceMatcher().select(_requirement("4.2", "short"), chunks)

    assert [chunk.ordinal for chunk in selected] == [0]


def test_select_caps_matches_in_input_order() -> None:
    chunks = [_chunk(index, f"procedures section {index}") for index in range(100)]

    selected = RelevanceMatcher(cap=40).select(
        _requirement("X", "Procedures for storage"), chunks
    )

    assert len(selected) == 40
    assert [chunk.ordinal for chunk in selected] == list(range(40))


def test_select_falls_back_to_leading_chunks_when_nothing_matches() -> None:
    chunks = [_chunk(index, "lorem ipsum") for index in range(80)]

    selected = RelevanceMatcher(fallback_limit=50).select(
        _requirement("Z99", "Quantitative astrophysics"), chunks
    )

    assert [chunk.ordinal for chunk in selected] == list(range(50))


def test_null_selector_returns_no_chunks() -> None:
    assert NullContextSelector().select(_requirement("1", "x"), [_chunk(0, "x")]) == []


def test_pack_chunks_groups_by_document() -> None:
    packed = pack_chunks(
        [
            _chunk(0, "First", url="s3://b/a.pdf"),
            _chunk(1, "Second", url="s3://b/a.pdf"),
            _chunk(0, "Third", url="s3://b/b.pdf"),
        ]
    )

    assert packed.splitlines() == [
        "<BEGIN_DOCUMENTS>",
        '<DOC_START name="a.pdf">',
        "[page 1] First",
        "[page 1] Second",
        "<DOC_END>",
        '<DOC_START name="b.pdf">',
        "[page 1] Third",
        "<DOC_END>",
        "<END_DOCUMENTS>",
    ]
