from __future__ import annotations

import json

from rto_validator.llm_client.base import GroundingChunk
from rto_validator.pipeline.response_parser import (
    merge_grounding_citations,
    normalize_key,
    normalize_status,
    parse_model_response,
)
from rto_validator.requirements.models import Requirement

REQUIREMENT = Requirement(
    id=42,
    unit_code="BSBOPS304",
    type="knowledge_evidence",
    number="3",
    text="Describe complaint handling procedures",
)


def _parse(raw_text: str):
    return parse_model_response(
        raw_text, REQUIREMENT, validation_detail_id=5, document_type="unit"
    )


def test_parse_canonical_json_object() -> None:
    record = _parse(
        json.dumps(
            {
                "status": "Not Met",
                "reasoning": "Only touched on in task 2",
                "mapped_content": "Task 2 question 4",
                "citations": [{"document": "a.pdf", "page": 3}],
                "smart_question": "Explain the escalation path",
                "benchmark_answer": "Escalate to the supervisor",
                "unmapped_content": "N/A",
            }
        )
    )

    assert record.status == "NotMet"
    assert record.reasoning == "Only touched on in task 2"
    assert record.mapped_content == "Task 2 question 4"
    assert json.loads(record.citations) == [{"document": "a.pdf", "page": 3}]
    assert record.smart_questions == "Explain the escalation path"
    assert record.benchmark_answer == "Escalate to the supervisor"
    assert record.recommendations == "N/A"
    assert record.requirement_id == 42
    assert record.requirement_number == "3"
    assert record.validation_detail_id == 5
    assert record.error_code is None


def test_parse_alias_keys_and_camel_case() -> None:
    record = _parse(
        json.dumps(
            {
                "overallStatus": "partially met",
                "Explanation": "Only part of it",
                "evidenceFound": ["Q1", "Q2"],
                "docReferences": ["a.pdf p1"],
                "practicalTask": {"text": "Role play a complaint"},
                "modelAnswer": "Listen, log, escalate",
                "improvementSuggestions": "Add escalation",
            }
        )
    )

    assert record.status == "PartiallyMet"
    assert record.reasoning == "Only part of it"
    assert record.mapped_content == "Q1\nQ2"
    assert json.loads(record.citations) == ["a.pdf p1"]
    assert record.smart_questions == "Role play a complaint"
    assert record.benchmark_answer == "Listen, log, escalate"
    assert record.recommendations == "Add escalation"


def test_parse_json_inside_code_fence() -> None:
    raw = 'Here is my answer:\n```json\n{"status": "not_met", "rationale": "absent"}\n```'

    record = _parse(raw)

    assert record.status == "NotMet"
    assert record.reasoning == "absent"
    assert record.citations == "[]"


def test_parse_unparseable_text_yields_error_record() -> None:
    raw = "I cannot answer that. " * 60

    record = _parse(raw)

    assert record.status == "Error"
    assert record.error_code == "LLM_INVALID_JSON"
    assert record.reasoning.startswith("Model response could not be parsed as JSON: ")
    excerpt = record.reasoning.split(": ", 1)[1]
    assert len(excerpt) <= 500
    assert record.requirement_text == REQUIREMENT.text
    assert record.requirement_type == "knowledge_evidence"


def test_parse_json_array_without_object_counts_as_failure() -> None:
    record = _parse("[1, 2, 3]")

    assert record.status == "Error"
    assert record.error_code == "LLM_INVALID_JSON"


def test_parse_json_array_falls_back_to_first_object() -> None:
    record = _parse('[{"status": "Not Met", "reasoning": "missing"}]')

    assert record.status == "NotMet"
    assert record.reasoning == "missing"


def test_unknown_status_is_not_an_error() -> None:
    record = _parse('{"status": "maybe", "reasoning": "unclear"}')

    assert record.status == "Unknown"
    assert record.error_code is None


def test_normalize_status_table() -> None:
    assert normalize_status("MET") == "Met"
    assert normalize_status("pass") == "Met"
    assert normalize_status("Partially Met") == "PartiallyMet"
    assert normalize_status("partial") == "PartiallyMet"
    assert normalize_status("PartiallyMet") == "PartiallyMet"
    assert normalize_status("Not Met") == "NotMet"
    assert normalize_status("notmet") == "NotMet"
    assert normalize_status("fail") == "NotMet"
    assert normalize_status(None) == "Unknown"
    assert normalize_status("excellent") == "Unknown"


def test_normalize_key_handles_camel_spaces_and_hyphens() -> None:
    assert normalize_key("mappedContent") == "mapped_content"
    assert normalize_key("Smart Question") == "smart_question"
    assert normalize_key("benchmark-answer") == "benchmark_answer"
    assert normalize_key("status") == "status"


def test_met_status_keeps_model_recommendations() -> None:
    record = _parse('{"status": "Met", "reasoning": "ok", "recommendations": "None"}')

    assert record.status == "Met"
    assert record.recommendations == "None"
    assert record.smart_questions == "N/A"
    assert record.benchmark_answer == "N/A"


def test_string_citations_are_stored_verbatim() -> None:
    record = _parse('{"status": "Met", "citations": "Task 1, Page 3"}')

    assert record.citations == "Task 1, Page 3"


def test_empty_string_citations_default_to_empty_list() -> None:
    record = _parse('{"status": "Met", "citations": "  "}')

    assert record.citations == "[]"


def test_met_status_overrides_generated_questions() -> None:
    record = _parse(
        json.dumps(
            {
                "status": "met",
                "smart_question": "Describe the process",
                "benchmark_answer": "Step one",
            }
        )
    )

    assert record.smart_questions == "N/A"
    assert record.benchmark_answer == "N/A"


def test_mapped_content_list_becomes_citations_when_none_given() -> None:
    record = _parse(
        json.dumps(
            {
                "status": "Partially Met",
                "mapped_content": [{"document": "task.pdf", "page": 2}],
                "citations": [],
            }
        )
    )

    assert json.loads(record.citations) == [{"document": "task.pdf", "page": 2}]
    assert record.mapped_content == ""


def test_object_smart_task_supplies_question_and_answer() -> None:
    record = _parse(
        json.dumps(
            {
                "status": "Not Met",
                "smart_task": {
                    "task_text": "Handle a customer complaint",
                    "answer": "Acknowledge, log, resolve",
                },
                "benchmark_answer": "ignored",
            }
        )
    )

    assert record.smart_questions == "Handle a customer complaint"
    assert record.benchmark_answer == "Acknowledge, log, resolve"


def test_merge_grounding_citations_fills_empty_citations() -> None:
    record = _parse('{"status": "Met", "reasoning": "found"}')
    chunks = [
        GroundingChunk(document_name="task.pdf", text="Question 4", page_numbers=(3,))
    ]

    merged = merge_grounding_citations(record, chunks)

    assert json.loads(merged.citations) == [
        {"documentName": "task.pdf", "pageNumbers": [3], "chunkText": "Question 4"}
    ]


def test_merge_grounding_citations_keeps_model_citations() -> None:
    record = _parse('{"status": "Met", "citations": ["a.pdf p1"]}')

    merged = merge_grounding_citations(record, [GroundingChunk(document_name="b.pdf")])

    assert json.loads(merged.citations) == ["a.pdf p1"]
