from __future__ import annotations

import time
from typing import Any, Protocol

from rto_validator.llm_client.base import (
    GroundingChunk,
    ModelRequest,
    ModelResponse,
    to_dict,
)
from rto_validator.llm_client.normalize_usage import normalize_gemini_usage
from rto_validator.utils.error_taxonomy import (
    MissingDocumentStoreError,
    NoGroundingChunksError,
    ResponseParseError,
)


class GeminiGenerateService(Protocol):
    def generate_content(self, **kwargs: Any) -> Any: ...


class GeminiGroundedClient:
    """Managed-grounding backend: Gemini with a file-search tool.

    Retrieval happens inside the provider against the session's document
    store, so the request carries no document text. An answer without any
    grounding chunk is rejected.
    """

    def __init__(
        self,
        *,
        model: str,
        api_key: str | None = None,
        generate_service: GeminiGenerateService | None = None,
        default_max_output_tokens: int = 8192,
    ) -> None:
        self._model = model
        self._api_key = api_key
        self._generate_service = generate_service
        self._default_max_output_tokens = default_max_output_tokens

    def generate(self, request: ModelRequest) -> ModelResponse:
        if not request.document_store_ref:
            raise MissingDocumentStoreError(
                "Managed grounding requires a document store reference"
            )

        service = self._resolve_service()
        payload = self.build_request_payload(
            request=request,
            model=self._model,
            default_max_output_tokens=self._default_max_output_tokens,
        )

        start_time = time.perf_counter()
        response = service.generate_content(**payload)
        elapsed_ms = (time.perf_counter() - start_time) * 1000

        response_payload = to_dict(response)
        text = _extract_gemini_output_text(response=response, payload=response_payload)
        grounding_chunks = extract_grounding_chunks(response_payload)
        if not grounding_chunks:
            raise NoGroundingChunksError(
                "Model answer has no grounding chunks from the document store"
            )

        return ModelResponse(
            text=text,
            grounding_chunks=grounding_chunks,
            raw_response=response_payload,
            usage_normalized=normalize_gemini_usage(
                _extract_usage(response=response, payload=response_payload)
            ),
            timings={"t_llm_total_ms": elapsed_ms},
        )

    @staticmethod
    def build_request_payload(
        *,
        request: ModelRequest,
        model: str,
        default_max_output_tokens: int = 8192,
    ) -> dict[str, Any]:
        params = request.generation_config
        config: dict[str, Any] = {
            "system_instruction": request.system_instruction,
            "response_mime_type": "application/json",
            "tools": [
                {
                    "file_search": {
                        "file_search_store_names": [request.document_store_ref],
                    }
                }
            ],
            "temperature": params.get("temperature", 0.1),
            "max_output_tokens": int(
                params.get("max_output_tokens") or default_max_output_tokens
            ),
        }

        top_p = params.get("top_p")
        if top_p is not None:
            config["top_p"] = top_p

        return {
            "model": model,
            "contents": [{"role": "user", "parts": [{"text": request.prompt}]}],
            "config": config,
        }

    def _resolve_service(self) -> GeminiGenerateService:
        if self._generate_service is not None:
            return self._generate_service

        if self._api_key is None:
            raise ValueError("Google API key is required when service is not injected")

        try:
            from google import genai
        except ImportError as error:
            raise RuntimeError("google-genai package is not installed") from error

        # Keep the client referenced so its HTTP session stays open.
        client = getattr(self, "_genai_client", None)
        if client is None:
            client = genai.Client(api_key=self._api_key)
            self._genai_client = client

        self._generate_service = client.models
        return self._generate_service


def extract_grounding_chunks(payload: dict[str, Any]) -> list[GroundingChunk]:
    candidates = payload.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return []
    candidate = candidates[0] if isinstance(candidates[0], dict) else {}

    metadata = _get(candidate, "grounding_metadata", "groundingMetadata")
    if not isinstance(metadata, dict):
        return []
    raw_chunks = _get(metadata, "grounding_chunks", "groundingChunks")
    if not isinstance(raw_chunks, list):
        return []

    chunks: list[GroundingChunk] = []
    for raw in raw_chunks:
        if not isinstance(raw, dict):
            continue
        source = (
            _get(raw, "file_search_chunk", "fileSearchChunk")
            or _get(raw, "retrieved_context", "retrievedContext")
            or {}
        )
        if not isinstance(source, dict):
            continue
        pages = _get(source, "page_numbers", "pageNumbers") or []
        chunks.append(
            GroundingChunk(
                document_name=_get(source, "document_name", "documentName", "title"),
                text=str(source.get("text") or source.get("content") or ""),
                page_numbers=tuple(int(page) for page in pages if page is not None),
            )
        )
    return chunks


def _get(data: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None


def _extract_usage(*, response: Any, payload: dict[str, Any]) -> dict[str, Any]:
    usage = _get(payload, "usage_metadata", "usageMetadata")
    if isinstance(usage, dict):
        return usage

    response_usage = getattr(response, "usage_metadata", None)
    if response_usage is not None:
        return to_dict(response_usage)

    return {}


def _extract_gemini_output_text(*, response: Any, payload: dict[str, Any]) -> str:
    direct_text = getattr(response, "text", None)
    if isinstance(direct_text, str) and direct_text.strip():
        return direct_text

    candidates = payload.get("candidates")
    if isinstance(candidates, list):
        for candidate in candidates:
            if not isinstance(candidate, dict):
                continue
            content = candidate.get("content")
            if not isinstance(content, dict):
                continue
            parts = content.get("parts")
            if not isinstance(parts, list):
                continue
            for part in parts:
                if not isinstance(part, dict):
                    continue
                text = part.get("text")
                if isinstance(text, str) and text.strip():
                    return text

    raise ResponseParseError("Gemini response does not contain text output")
