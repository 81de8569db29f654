from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from rto_validator.config.settings import ModelStrategy, Settings
from rto_validator.llm_client.azure_openai_client import AzureOpenAIDirectClient
from rto_validator.llm_client.base import ModelClient
from rto_validator.llm_client.gemini_client import GeminiGroundedClient
from rto_validator.pipeline.rate_limit import (
    MinIntervalRateLimiter,
    NoopRateLimiter,
    RateLimiter,
)
from rto_validator.pipeline.relevance import (
    ContextSelector,
    NullContextSelector,
    RelevanceMatcher,
)


@dataclass(frozen=True, slots=True)
class ValidationBackend:
    """Everything strategy-specific the orchestrator needs, bundled once."""

    strategy: ModelStrategy
    client: ModelClient
    context_selector: ContextSelector
    rate_limiter: RateLimiter


def build_validation_backend(
    settings: Settings,
    *,
    client: ModelClient | None = None,
) -> ValidationBackend:
    strategy_defaults = _strategy_defaults(settings, settings.model_strategy)

    if settings.model_strategy == "managed_grounding":
        return ValidationBackend(
            strategy="managed_grounding",
            client=client
            or GeminiGroundedClient(
                model=settings.gemini_model,
                api_key=settings.google_api_key,
                default_max_output_tokens=int(
                    strategy_defaults.get("max_output_tokens") or 8192
                ),
            ),
            context_selector=NullContextSelector(),
            rate_limiter=NoopRateLimiter(),
        )

    if settings.model_strategy == "direct_completion":
        return ValidationBackend(
            strategy="direct_completion",
            client=client
            or AzureOpenAIDirectClient(
                deployment=settings.azure_openai_deployment,
                endpoint=settings.azure_openai_endpoint,
                api_key=settings.azure_openai_api_key,
                api_version=settings.azure_openai_api_version,
                default_max_tokens=int(
                    strategy_defaults.get("max_output_tokens") or 4096
                ),
            ),
            context_selector=RelevanceMatcher(
                cap=settings.relevance_cap,
                fallback_limit=settings.relevance_fallback_limit,
            ),
            rate_limiter=MinIntervalRateLimiter(
                min_interval_seconds=settings.direct_completion_min_interval_seconds
            ),
        )

    raise ValueError(f"Unsupported model strategy: {settings.model_strategy}")


def _strategy_defaults(settings: Settings, strategy: str) -> dict[str, Any]:
    path = settings.resolved_defaults_config_path
    if not path.exists():
        return {}
    strategies = settings.load_yaml(path).get("strategies") or {}
    values = strategies.get(strategy) if isinstance(strategies, dict) else None
    return values if isinstance(values, dict) else {}
