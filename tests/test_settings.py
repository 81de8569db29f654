from __future__ import annotations

from pathlib import Path

from rto_validator.config.settings import Settings


def test_settings_reads_env_override(monkeypatch, tmp_path: Path) -> None:
    db_path = tmp_path / "custom.sqlite3"
    monkeypatch.setenv("RTOVAL_SQLITE_PATH", str(db_path))
    monkeypatch.setenv("RTOVAL_MODEL_STRATEGY", "direct_completion")

    settings = Settings(_env_file=None)

    assert settings.sqlite_path == db_path
    assert settings.resolved_sqlite_path == db_path.resolve()
    assert settings.model_strategy == "direct_completion"


def test_settings_defaults_match_provider_contracts() -> None:
    settings = Settings(_env_file=None)

    assert settings.model_strategy == "managed_grounding"
    assert settings.relevance_cap == 40
    assert settings.relevance_fallback_limit == 50
    assert settings.direct_completion_min_interval_seconds == 1.0
    assert settings.azure_openai_deployment == "gpt-4o-mini"
    assert settings.doc_intel_api_version == "2024-11-30"
    assert settings.document_url_prefix == "s3://smartrtobucket"
    assert settings.llm_max_retries == 0


def test_settings_reads_provider_keys_without_prefix(monkeypatch) -> None:
    monkeypatch.setenv("GOOGLE_API_KEY", "google-key")
    monkeypatch.setenv("AZURE_OPENAI_ENDPOINT", "https://example.openai.azure.com")
    monkeypatch.setenv("AZURE_DOC_INTEL_KEY", "doc-key")

    settings = Settings(_env_file=None)

    assert settings.google_api_key == "google-key"
    assert settings.azure_openai_endpoint == "https://example.openai.azure.com"
    assert settings.azure_doc_intel_key == "doc-key"


def test_settings_loads_defaults_config() -> None:
    settings = Settings(_env_file=None)

    defaults = settings.defaults_config

    assert defaults["validation"]["generation_config"]["temperature"] == 0.1
    assert "{{requirement_text}}" in defaults["validation"]["prompt_text"]
    assert defaults["strategies"]["managed_grounding"]["max_output_tokens"] == 8192
