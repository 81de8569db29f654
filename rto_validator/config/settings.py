from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

ModelStrategy = Literal["managed_grounding", "direct_completion"]


class Settings(BaseSettings):
    """Engine settings loaded from environment variables and .env."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="RTOVAL_",
        extra="ignore",
    )

    environment: str = "local"
    data_dir: Path = Path("data")
    sqlite_path: Path = Path("data/rto_validator.sqlite3")
    blob_root: Path = Path("data/blobs")
    document_url_prefix: str = "s3://smartrtobucket"

    defaults_config_path: Path = Path("rto_validator/config/defaults.yaml")

    model_strategy: ModelStrategy = "managed_grounding"
    gemini_model: str = "gemini-2.5-flash"

    relevance_cap: int = Field(default=40, ge=1)
    relevance_fallback_limit: int = Field(default=50, ge=1)
    direct_completion_min_interval_seconds: float = Field(default=1.0, ge=0)
    llm_max_retries: int = Field(default=0, ge=0)
    llm_retry_base_delay_seconds: float = Field(default=0.5, ge=0)

    doc_intel_model: str = "prebuilt-layout"
    doc_intel_api_version: str = "2024-11-30"
    doc_intel_poll_interval_seconds: float = Field(default=2.0, gt=0)
    doc_intel_max_wait_seconds: float = Field(default=120.0, gt=0)

    log_level: str = "INFO"
    log_file: Path | None = None

    google_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "RTOVAL_GOOGLE_API_KEY", "GOOGLE_API_KEY", "GEMINI_API_KEY"
        ),
    )
    azure_openai_endpoint: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "RTOVAL_AZURE_OPENAI_ENDPOINT", "AZURE_OPENAI_ENDPOINT"
        ),
    )
    azure_openai_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "RTOVAL_AZURE_OPENAI_API_KEY", "AZURE_OPENAI_API_KEY"
        ),
    )
    azure_openai_deployment: str = Field(
        default="gpt-4o-mini",
        validation_alias=AliasChoices(
            "RTOVAL_AZURE_OPENAI_DEPLOYMENT", "AZURE_OPENAI_DEPLOYMENT"
        ),
    )
    azure_openai_api_version: str = Field(
        default="2024-08-01-preview",
        validation_alias=AliasChoices(
            "RTOVAL_AZURE_OPENAI_API_VERSION", "AZURE_OPENAI_API_VERSION"
        ),
    )
    azure_doc_intel_endpoint: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "RTOVAL_AZURE_DOC_INTEL_ENDPOINT", "AZURE_DOC_INTEL_ENDPOINT"
        ),
    )
    azure_doc_intel_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "RTOVAL_AZURE_DOC_INTEL_KEY", "AZURE_DOC_INTEL_KEY"
        ),
    )

    @property
    def project_root(self) -> Path:
        return Path(__file__).resolve().parents[2]

    @property
    def resolved_data_dir(self) -> Path:
        return self._resolve_path(self.data_dir)

    @property
    def resolved_sqlite_path(self) -> Path:
        return self._resolve_path(self.sqlite_path)

    @property
    def resolved_blob_root(self) -> Path:
        return self._resolve_path(self.blob_root)

    @property
    def resolved_defaults_config_path(self) -> Path:
        return self._resolve_path(self.defaults_config_path)

    def load_yaml(self, path: Path) -> dict[str, Any]:
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with path.open("r", encoding="utf-8") as file:
            data = yaml.safe_load(file) or {}

        if not isinstance(data, dict):
            raise ValueError(f"YAML config must contain object root: {path}")

        return data

    @property
    def defaults_config(self) -> dict[str, Any]:
        return self.load_yaml(self.resolved_defaults_config_path)

    def _resolve_path(self, path: Path) -> Path:
        if path.is_absolute():
            return path
        return (self.project_root / path).resolve()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
