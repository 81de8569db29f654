from __future__ import annotations

import time
from typing import Any, Protocol

from rto_validator.llm_client.base import ModelRequest, ModelResponse, to_dict
from rto_validator.llm_client.normalize_usage import normalize_openai_usage
from rto_validator.pipeline.pack_documents import pack_chunks
from rto_validator.utils.error_taxonomy import ResponseParseError

DOCUMENT_SEPARATOR = "\n\n---\n\nDOCUMENT CONTENT:\n\n"


class ChatCompletionsService(Protocol):
    def create(self, **kwargs: Any) -> Any: ...


class AzureOpenAIDirectClient:
    """Direct-completion backend: selected document chunks travel in the prompt."""

    def __init__(
        self,
        *,
        deployment: str,
        endpoint: str | None = None,
        api_key: str | None = None,
        api_version: str = "2024-08-01-preview",
        completions_service: ChatCompletionsService | None = None,
        default_max_tokens: int = 4096,
    ) -> None:
        self._deployment = deployment
        self._endpoint = endpoint
        self._api_key = api_key
        self._api_version = api_version
        self._completions_service = completions_service
        self._default_max_tokens = default_max_tokens

    def generate(self, request: ModelRequest) -> ModelResponse:
        service = self._resolve_service()
        payload = self.build_request_payload(
            request=request,
            deployment=self._deployment,
            default_max_tokens=self._default_max_tokens,
        )

        start_time = time.perf_counter()
        response = service.create(**payload)
        elapsed_ms = (time.perf_counter() - start_time) * 1000

        response_payload = to_dict(response)
        text = _extract_message_text(response=response, payload=response_payload)

        usage = response_payload.get("usage")
        return ModelResponse(
            text=text,
            raw_response=response_payload,
            usage_normalized=normalize_openai_usage(
                usage if isinstance(usage, dict) else None
            ),
            timings={"t_llm_total_ms": elapsed_ms},
        )

    @staticmethod
    def build_request_payload(
        *,
        request: ModelRequest,
        deployment: str,
        default_max_tokens: int = 4096,
    ) -> dict[str, Any]:
        params = request.generation_config
        user_content = request.prompt
        if request.context_chunks:
            user_content = (
                request.prompt + DOCUMENT_SEPARATOR + pack_chunks(request.context_chunks)
            )

        payload: dict[str, Any] = {
            "model": deployment,
            "messages": [
                {"role": "system", "content": request.system_instruction},
                {"role": "user", "content": user_content},
            ],
            "response_format": {"type": "json_object"},
            "temperature": params.get("temperature", 0.1),
            "max_tokens": int(
                params.get("max_tokens")
                or params.get("max_output_tokens")
                or default_max_tokens
            ),
        }

        top_p = params.get("top_p")
        if top_p is not None:
            payload["top_p"] = top_p

        return payload

    def _resolve_service(self) -> ChatCompletionsService:
        if self._completions_service is not None:
            return self._completions_service

        if not self._endpoint or not self._api_key:
            raise ValueError(
                "Azure OpenAI endpoint and API key are required when service "
                "is not injected"
            )

        try:
            from openai import AzureOpenAI
        except ImportError as error:
            raise RuntimeError("openai package is not installed") from error

        client = AzureOpenAI(
            api_key=self._api_key,
            azure_endpoint=self._endpoint,
            api_version=self._api_version,
        )
        self._completions_service = client.chat.completions
        return self._completions_service


def _extract_message_text(*, response: Any, payload: dict[str, Any]) -> str:
    choices = payload.get("choices")
    if isinstance(choices, list):
        for choice in choices:
            if not isinstance(choice, dict):
                continue
            message = choice.get("message")
            if not isinstance(message, dict):
                continue
            content = message.get("content")
            if isinstance(content, str) and content.strip():
                return content

    response_choices = getattr(response, "choices", None)
    if isinstance(response_choices, list) and response_choices:
        message = getattr(response_choices[0], "message", None)
        content = getattr(message, "content", None)
        if isinstance(content, str) and content.strip():
            return content

    raise ResponseParseError("Chat completion response does not contain content")
