"""Centralized configuration for cms-search using Pydantic Settings."""

from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_names(raw: str) -> list[str]:
    return [name.strip() for name in raw.split(",") if name.strip()]


class SearchSettings(BaseSettings):
    """Strictly typed configuration loaded from ``CMS_SEARCH_*`` environment variables.

    Validation runs at startup; malformed combinations raise a pydantic
    ``ValidationError`` before any backend is created.
    """

    model_config = SettingsConfigDict(
        env_prefix="CMS_SEARCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",
    )

    # Indexes
    default_index_name: str = Field(default="content", description="Index searched when a request names none")
    index_names: str = Field(default="content", description="Comma-separated names of the managed indexes")
    preview_index_names: str = Field(
        default="",
        description="Comma-separated managed indexes where deletion only excludes documents from search",
    )

    # Backend selection
    backend: Literal["local", "cloud"] = Field(default="local", description="Active search backend")
    cloud_endpoint: str = Field(default="", description="Cloud search service base URL")
    cloud_api_key: str = Field(default="", description="Cloud search service admin key")
    cloud_api_version: str = Field(default="2024-07-01", description="Cloud search REST API version")

    # Hybrid search
    hybrid_search_enabled: bool = Field(default=False, description="Allow hybrid keyword+vector search")
    embedding_endpoint: str = Field(default="", description="Embedding service endpoint")
    embedding_api_key: str = Field(default="", description="Embedding service key")
    embedding_deployment: str = Field(default="", description="Embedding deployment identifier")
    embedding_api_version: str = Field(default="2024-02-01", description="Embedding REST API version")
    embedding_timeout_seconds: float = Field(default=5.0, gt=0, description="Embedding request timeout in seconds")
    vector_field_name: str = Field(default="ContentVector", description="Vector field queried by hybrid search")
    vector_similarity_threshold: float | None = Field(
        default=None,
        ge=0.0,
        le=1.0,
        description="Default minimum vector similarity for hybrid matches",
    )

    # HTTP
    http_timeout: float = Field(default=30.0, gt=0, description="Backend HTTP request timeout in seconds")

    # Logging
    log_level: str = Field(default="info", description="Logging level")
    log_json: bool = Field(default=True, description="Emit structured JSON logs")

    @model_validator(mode="after")
    def _check_consistency(self) -> "SearchSettings":
        managed = self.get_index_names()
        if not managed:
            raise ValueError("CMS_SEARCH_INDEX_NAMES must name at least one index")
        if self.default_index_name not in managed:
            raise ValueError(f"Default index '{self.default_index_name}' is not in CMS_SEARCH_INDEX_NAMES")
        unknown_preview = sorted(set(self.get_preview_index_names()) - set(managed))
        if unknown_preview:
            raise ValueError(f"Preview indexes {unknown_preview} are not in CMS_SEARCH_INDEX_NAMES")
        if self.backend == "cloud" and (not self.cloud_endpoint or not self.cloud_api_key):
            raise ValueError("The cloud backend requires CMS_SEARCH_CLOUD_ENDPOINT and CMS_SEARCH_CLOUD_API_KEY")
        if self.hybrid_search_enabled and (not self.embedding_endpoint or not self.embedding_deployment):
            raise ValueError(
                "Hybrid search requires CMS_SEARCH_EMBEDDING_ENDPOINT and CMS_SEARCH_EMBEDDING_DEPLOYMENT"
            )
        return self

    def get_index_names(self) -> list[str]:
        """Get list of managed index names (comma-separated)."""
        return _split_names(self.index_names)

    def get_preview_index_names(self) -> list[str]:
        """Get list of preview (soft-delete) index names."""
        return _split_names(self.preview_index_names)

    def is_preview_index(self, index_name: str) -> bool:
        return index_name in self.get_preview_index_names()
