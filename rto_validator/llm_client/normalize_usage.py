from __future__ import annotations

from typing import Any


def normalize_openai_usage(usage: dict[str, Any] | None) -> dict[str, int | None]:
    usage_data = usage or {}

    prompt_tokens = _to_int(
        _first_present(usage_data, "prompt_tokens", "input_tokens", "inputTokens")
    )
    completion_tokens = _to_int(
        _first_present(
            usage_data, "completion_tokens", "output_tokens", "outputTokens"
        )
    )
    total_tokens = _to_int(
        _first_present(usage_data, "total_tokens", "totalTokens")
    )
    if total_tokens is None:
        total_tokens = _sum_tokens(prompt_tokens, completion_tokens)

    return {
        "prompt_tokens": prompt_tokens,
        "completion_tokens": completion_tokens,
        "total_tokens": total_tokens,
        "thoughts_tokens": None,
    }


def normalize_gemini_usage(usage: dict[str, Any] | None) -> dict[str, int | None]:
    usage_data = usage or {}

    prompt_tokens = _to_int(
        _first_present(usage_data, "promptTokenCount", "prompt_token_count")
    )
    completion_tokens = _to_int(
        _first_present(usage_data, "candidatesTokenCount", "candidates_token_count")
    )
    total_tokens = _to_int(
        _first_present(usage_data, "totalTokenCount", "total_token_count")
    )
    if total_tokens is None:
        total_tokens = _sum_tokens(prompt_tokens, completion_tokens)
    thoughts_tokens = _to_int(
        _first_present(usage_data, "thoughtsTokenCount", "thoughts_token_count")
    )

    return {
        "prompt_tokens": prompt_tokens,
        "completion_tokens": completion_tokens,
        "total_tokens": total_tokens,
        "thoughts_tokens": thoughts_tokens,
    }


def _first_present(data: dict[str, Any], *keys: str) -> Any:
    # 0 is a valid count, so only None means missing.
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None


def _sum_tokens(prompt_tokens: int | None, completion_tokens: int | None) -> int | None:
    if prompt_tokens is None and completion_tokens is None:
        return None

    return int((prompt_tokens or 0) + (completion_tokens or 0))


def _to_int(value: Any) -> int | None:
    if value is None:
        return None

    return int(value)
