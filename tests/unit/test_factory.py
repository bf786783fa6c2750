"""Unit tests for wiring services from settings."""

import pytest

from cms_search.adapters.cloud_backend import CloudSearchBackend
from cms_search.adapters.factory import create_backend, create_services, find_vector_field
from cms_search.adapters.local_backend import LocalSearchBackend
from cms_search.config import SearchSettings
from cms_search.domain.fields import FieldDefinition, ValueType
from cms_search.errors import ConfigurationError
from cms_search.indexing.converters import PropertyConverter
from support import EMBEDDING, build_registry


@pytest.mark.unit
class TestFactory:
    """Backend selection and composer wiring."""

    def test_local_services(self):
        registry = build_registry()
        settings = SearchSettings(index_names="content,preview", preview_index_names="preview")

        search_service, orchestrator = create_services(settings, registry)

        assert isinstance(search_service.backend, LocalSearchBackend)
        assert orchestrator.backend is search_service.backend
        assert orchestrator.is_preview("preview")
        assert registry.frozen
        assert search_service.composer.enabled is False

    @pytest.mark.asyncio
    async def test_cloud_backend_with_vector_field(self):
        registry = build_registry().register(PropertyConverter(EMBEDDING, "embedding"))
        settings = SearchSettings(
            backend="cloud",
            cloud_endpoint="https://x.example.net",
            cloud_api_key="key",
            hybrid_search_enabled=True,
            embedding_endpoint="https://embed.example.net",
            embedding_deployment="small",
        )

        search_service, _orchestrator = create_services(settings, registry)

        assert isinstance(search_service.backend, CloudSearchBackend)
        assert search_service.backend.vector_field is EMBEDDING
        assert search_service.composer.enabled is True
        assert search_service.composer.dimensions == 3
        await search_service.backend.aclose()

    def test_hybrid_without_vector_field_is_disabled(self):
        settings = SearchSettings(
            hybrid_search_enabled=True,
            embedding_endpoint="https://embed.example.net",
            embedding_deployment="small",
        )

        search_service, _orchestrator = create_services(settings, build_registry())

        assert search_service.composer.enabled is False

    def test_vector_field_name_must_name_a_vector(self):
        registry = build_registry()
        settings = SearchSettings(vector_field_name="Title")

        with pytest.raises(ConfigurationError):
            find_vector_field(settings, registry)

    def test_missing_vector_field_is_none(self):
        assert find_vector_field(SearchSettings(), build_registry()) is None

    def test_local_backend_ignores_vector_field(self):
        vector = FieldDefinition.create("Vec", ValueType.VECTOR, searchable=True, vector_dimensions=2)

        assert isinstance(create_backend(SearchSettings(), vector), LocalSearchBackend)
