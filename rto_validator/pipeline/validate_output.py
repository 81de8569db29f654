from __future__ import annotations

from typing import Any

from jsonschema import Draft202012Validator

VERDICT_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["status", "reasoning"],
    "properties": {
        "status": {"type": "string"},
        "reasoning": {"type": "string"},
        "mapped_content": {"type": ["string", "array", "object"]},
        "citations": {"type": ["array", "string"]},
        "smart_question": {"type": ["string", "array", "object"]},
        "smart_task": {"type": ["string", "array", "object"]},
        "benchmark_answer": {"type": ["string", "array", "object"]},
        "unmapped_content": {"type": ["string", "array", "object"]},
    },
}


def validate_verdict(
    parsed_json: dict[str, Any], schema: dict[str, Any] | None = None
) -> list[str]:
    """Return schema violations for a model verdict, sorted by path."""
    validator = Draft202012Validator(schema or VERDICT_SCHEMA)
    errors = sorted(
        validator.iter_errors(parsed_json),
        key=lambda item: [str(part) for part in item.path],
    )

    messages: list[str] = []
    for error in errors:
        path = "/".join(str(item) for item in error.path)
        if path:
            messages.append(f"{path}: {error.message}")
        else:
            messages.append(error.message)

    return messages
