"""Build backends and services from ``SearchSettings``."""

from __future__ import annotations

import logging

from cms_search.adapters.backend import SearchBackend
from cms_search.adapters.cloud_backend import CloudSearchBackend
from cms_search.adapters.embedding import HttpEmbeddingService
from cms_search.adapters.local_backend import LocalSearchBackend
from cms_search.config import SearchSettings
from cms_search.domain.fields import Backend, FieldDefinition, ValueType
from cms_search.errors import ConfigurationError
from cms_search.indexing.converters import ConverterRegistry
from cms_search.indexing.orchestrator import IndexingOrchestrator
from cms_search.observability import configure_logging, init_metrics, init_tracing
from cms_search.search.hybrid import HybridSearchComposer
from cms_search.service_layer.search_service import SearchService


logger = logging.getLogger(__name__)


def configure_observability(settings: SearchSettings, service_name: str = "cms-search") -> None:
    """Initialize logging, metrics and tracing from settings."""

    configure_logging(level=settings.log_level, json_output=settings.log_json)
    resource_attributes = {"cms_search.backend": settings.backend}
    init_metrics(service_name=service_name, resource_attributes=resource_attributes)
    init_tracing(service_name=service_name, resource_attributes=resource_attributes)


def find_vector_field(settings: SearchSettings, registry: ConverterRegistry) -> FieldDefinition | None:
    """Return the configured vector field if a converter declares it."""

    field_definition = registry.field_definitions().get(settings.vector_field_name)
    if field_definition is None:
        return None
    if field_definition.value_type != ValueType.VECTOR:
        msg = f"Configured vector field '{settings.vector_field_name}' is {field_definition.value_type.value}"
        raise ConfigurationError(msg)
    return field_definition


def create_backend(settings: SearchSettings, vector_field: FieldDefinition | None = None) -> SearchBackend:
    """Instantiate the backend selected by settings."""

    if settings.backend == Backend.LOCAL.value:
        logger.info("Using local search backend")
        return LocalSearchBackend()
    if settings.backend == Backend.CLOUD.value:
        logger.info("Using cloud search backend at %s", settings.cloud_endpoint)
        return CloudSearchBackend(
            settings.cloud_endpoint,
            settings.cloud_api_key,
            api_version=settings.cloud_api_version,
            vector_field=vector_field,
            similarity_threshold=settings.vector_similarity_threshold,
            timeout=settings.http_timeout,
        )
    msg = f"No search backend named '{settings.backend}'"
    raise ConfigurationError(msg)


def create_composer(settings: SearchSettings, vector_field: FieldDefinition | None = None) -> HybridSearchComposer:
    if not settings.hybrid_search_enabled:
        return HybridSearchComposer(enabled=False)
    service = HttpEmbeddingService(
        settings.embedding_endpoint,
        settings.embedding_deployment,
        settings.embedding_api_key,
        api_version=settings.embedding_api_version,
        timeout=settings.embedding_timeout_seconds,
    )
    dimensions = None
    if vector_field is not None:
        physical = vector_field.representation(Backend.CLOUD)
        dimensions = physical.dimensions if physical is not None else None
    return HybridSearchComposer(service, timeout=settings.embedding_timeout_seconds, dimensions=dimensions)


def create_services(
    settings: SearchSettings, registry: ConverterRegistry
) -> tuple[SearchService, IndexingOrchestrator]:
    """Wire the read and write paths against one backend.

    Freezes the registry; register every converter before calling this.
    """

    registry.freeze()
    vector_field = find_vector_field(settings, registry)
    if settings.hybrid_search_enabled and vector_field is None:
        logger.warning("Hybrid search enabled but no converter declares vector field %s", settings.vector_field_name)
        composer = HybridSearchComposer(enabled=False)
    else:
        composer = create_composer(settings, vector_field)
    backend = create_backend(settings, vector_field)
    search_service = SearchService(
        backend,
        registry,
        default_index_name=settings.default_index_name,
        index_names=settings.get_index_names(),
        composer=composer,
    )
    orchestrator = IndexingOrchestrator(
        registry,
        backend,
        index_names=settings.get_index_names(),
        preview_index_names=settings.get_preview_index_names(),
    )
    return search_service, orchestrator
