"""Conftest for unit tests - automatically mark all tests as unit tests and share search fixtures."""

from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
import pytest

from cms_search.adapters.local_backend import LocalSearchBackend
from cms_search.indexing.converters import ConverterRegistry
from cms_search.indexing.orchestrator import IndexingOrchestrator
from cms_search.observability import tracing as tracing_module
from cms_search.service_layer.search_service import SearchService
from support import INDEX, PREVIEW_INDEX, build_registry


def pytest_collection_modifyitems(config, items):
    """Automatically mark all tests in the unit directory as unit tests."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)


@pytest.fixture
def registry() -> ConverterRegistry:
    return build_registry()


@pytest.fixture
def local_backend() -> LocalSearchBackend:
    return LocalSearchBackend()


@pytest.fixture
def orchestrator(registry, local_backend) -> IndexingOrchestrator:
    return IndexingOrchestrator(
        registry,
        local_backend,
        index_names=(INDEX, PREVIEW_INDEX),
        preview_index_names=(PREVIEW_INDEX,),
    )


@pytest.fixture
def search_service(registry, local_backend) -> SearchService:
    return SearchService(local_backend, registry, default_index_name=INDEX, index_names=(INDEX, PREVIEW_INDEX))


@pytest.fixture
def span_exporter(monkeypatch):
    """Route spans created by ``create_span`` into an in-memory exporter."""

    exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    monkeypatch.setitem(tracing_module._tracer_holder, "tracer", provider.get_tracer("tests"))
    return exporter
