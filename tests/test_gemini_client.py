from __future__ import annotations

from typing import Any

import pytest

from rto_validator.llm_client.base import ModelRequest
from rto_validator.llm_client.gemini_client import (
    GeminiGroundedClient,
    extract_grounding_chunks,
)
from rto_validator.utils.error_taxonomy import (
    MissingDocumentStoreError,
    NoGroundingChunksError,
)


class FakeGenerateService:
    def __init__(self, grounding_chunks: list[dict[str, Any]]) -> None:
        self.calls: list[dict[str, Any]] = []
        self._grounding_chunks = grounding_chunks

    def generate_content(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(kwargs)
        return {
            "candidates": [
                {
                    "content": {"parts": [{"text": '{"status": "Met"}'}]},
                    "groundingMetadata": {"groundingChunks": self._grounding_chunks},
                }
            ],
            "usageMetadata": {
                "promptTokenCount": 80,
                "candidatesTokenCount": 20,
                "totalTokenCount": 100,
            },
        }


def _request(store: str | None = "fileSearchStores/session-10") -> ModelRequest:
    return ModelRequest(
        prompt="Validate requirement 1",
        system_instruction="You are an expert RTO validator.",
        generation_config={"temperature": 0.2},
        document_store_ref=store,
    )


def test_payload_attaches_file_search_store_and_json_output() -> None:
    payload = GeminiGroundedClient.build_request_payload(
        request=_request(), model="gemini-2.5-flash"
    )

    config = payload["config"]
    assert payload["model"] == "gemini-2.5-flash"
    assert config["tools"] == [
        {"file_search": {"file_search_store_names": ["fileSearchStores/session-10"]}}
    ]
    assert config["response_mime_type"] == "application/json"
    assert config["temperature"] == 0.2
    assert config["max_output_tokens"] == 8192
    assert payload["contents"][0]["parts"][0]["text"] == "Validate requirement 1"


def test_generate_returns_text_grounding_and_usage() -> None:
    service = FakeGenerateService(
        [{"fileSearchChunk": {"documentName": "assessment.pdf", "pageNumbers": [2, 3]}}]
    )
    client = GeminiGroundedClient(model="gemini-2.5-flash", generate_service=service)

    response = client.generate(_request())

    assert response.text == '{"status": "Met"}'
    assert response.grounding_chunks[0].document_name == "assessment.pdf"
    assert response.grounding_chunks[0].page_numbers == (2, 3)
    assert response.usage_normalized["total_tokens"] == 100
    assert "t_llm_total_ms" in response.timings
    assert len(service.calls) == 1


def test_generate_rejects_answer_without_grounding() -> None:
    client = GeminiGroundedClient(
        model="gemini-2.5-flash", generate_service=FakeGenerateService([])
    )

    with pytest.raises(NoGroundingChunksError):
        client.generate(_request())


def test_generate_requires_document_store() -> None:
    service = FakeGenerateService([])
    client = GeminiGroundedClient(model="gemini-2.5-flash", generate_service=service)

    with pytest.raises(MissingDocumentStoreError):
        client.generate(_request(store=None))
    assert service.calls == []


def test_extract_grounding_chunks_reads_sdk_snake_case() -> None:
    payload = {
        "candidates": [
            {
                "grounding_metadata": {
                    "grounding_chunks": [
                        {"retrieved_context": {"title": "guide.pdf", "text": "Q1"}}
                    ]
                }
            }
        ]
    }

    chunks = extract_grounding_chunks(payload)

    assert len(chunks) == 1
    assert chunks[0].document_name == "guide.pdf"
    assert chunks[0].text == "Q1"
