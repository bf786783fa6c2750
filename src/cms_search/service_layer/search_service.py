"""
Search service: the single read-path entry point.

``search`` resolves the target index, composes the hybrid plan, translates the
parameters for the active backend, executes the native query and maps raw
hits and facets back to typed results keyed by logical field names.
"""

from __future__ import annotations

from collections.abc import Iterable
import logging
from typing import Any

from cms_search.adapters.backend import RawSearchResponse, SearchBackend
from cms_search.domain.fields import FieldDefinition, ValueType
from cms_search.domain.query import SearchParameters
from cms_search.domain.results import ContentResult, FacetValue, SearchHit, SearchResult, coerce_value
from cms_search.errors import TranslationError, UnknownIndexError
from cms_search.indexing.converters import ConverterRegistry
from cms_search.observability.context import bind_trace_context
from cms_search.observability.metrics import SEARCH_LATENCY, SEARCH_REQUESTS, track_latency
from cms_search.observability.tracing import create_span
from cms_search.search.hybrid import HybridSearchComposer
from cms_search.search.translation import NativeQuery, QueryTranslator


logger = logging.getLogger(__name__)


class SearchService:
    """
    Provider-agnostic search over the managed indexes.

    Args:
        backend: Active search backend
        registry: Converter registry; its declared fields are the index schema
        default_index_name: Index used when parameters name none
        index_names: Managed index names
        composer: Hybrid composer (default: hybrid disabled)
    """

    def __init__(
        self,
        backend: SearchBackend,
        registry: ConverterRegistry,
        *,
        default_index_name: str,
        index_names: Iterable[str],
        composer: HybridSearchComposer | None = None,
    ) -> None:
        self.backend = backend
        self.registry = registry
        self.default_index_name = default_index_name
        self.index_names = tuple(index_names)
        self.composer = composer or HybridSearchComposer(enabled=False)
        self.translator: QueryTranslator = backend.create_translator()
        if default_index_name not in self.index_names:
            raise UnknownIndexError(default_index_name, self.index_names)

    def resolve_index(self, index_name: str | None) -> str:
        resolved = index_name or self.default_index_name
        if resolved not in self.index_names:
            raise UnknownIndexError(resolved, self.index_names)
        return resolved

    def get_field_definitions(self, index_name: str | None = None) -> dict[str, FieldDefinition]:
        """Return the fields of an index by logical name."""
        return self.registry.field_definitions(self.resolve_index(index_name))

    def resolve_field(self, name: str, index_name: str | None = None) -> FieldDefinition:
        """Look up a caller-supplied field name; unknown names raise ``TranslationError``."""
        fields = self.get_field_definitions(index_name)
        field_definition = fields.get(name)
        if field_definition is None:
            raise TranslationError(name, f"is not defined on index '{self.resolve_index(index_name)}'")
        return field_definition

    async def search(
        self,
        parameters: SearchParameters,
        result_type: Any = ContentResult,
    ) -> SearchResult[Any]:
        """Execute a search and map hits through ``result_type.from_hit``.

        Cancelling the calling task aborts the in-flight embedding or backend call.
        """

        index_name = self.resolve_index(parameters.index_name)
        backend_label = self.backend.kind.value
        status = "error"
        try:
            with bind_trace_context(index=index_name), track_latency(
                SEARCH_LATENCY, backend=backend_label
            ), create_span(
                "search.query",
                attributes={
                    "index.name": index_name,
                    "backend": backend_label,
                    "search.language": parameters.language_iso_code,
                    "search.hybrid_requested": parameters.full_text_search.enable_hybrid,
                },
            ) as span:
                fields = self.registry.field_definitions(index_name)
                plan = await self.composer.compose(
                    parameters.full_text_search,
                    supports_vectors=self.backend.supports_vectors,
                    index_name=index_name,
                )
                native_query = self.translator.translate(
                    parameters, fields, vector=plan.vector, vector_threshold=plan.threshold
                )
                response = await self.backend.query(index_name, native_query)
                result = self._map(response, native_query, fields, parameters, result_type, plan.state.value)
                span.set_attribute("search.total", result.total)
                span.set_attribute("search.hybrid_state", plan.state.value)
            status = "success"
            return result
        finally:
            SEARCH_REQUESTS.labels(backend=backend_label, status=status).inc()

    async def aclose(self) -> None:
        """Release the backend and embedding clients."""
        await self.backend.aclose()
        await self.composer.aclose()

    def _map(
        self,
        response: RawSearchResponse,
        native_query: NativeQuery,
        fields: dict[str, FieldDefinition],
        parameters: SearchParameters,
        result_type: Any,
        hybrid_state: str,
    ) -> SearchResult[Any]:
        language = parameters.language_iso_code
        items = tuple(
            result_type.from_hit(
                SearchHit(
                    document_id=raw.document_id,
                    values=raw.values,
                    score=raw.score,
                    backend=self.backend.kind,
                    language=language,
                )
            )
            for raw in response.hits
        )
        facets: dict[str, tuple[FacetValue, ...]] = {}
        for request in native_query.facets:
            field_definition = fields.get(request.field_name)
            buckets = response.facets.get(request.physical_name, ())
            facets[request.field_name] = tuple(
                FacetValue(_facet_value(field_definition, value), count) for value, count in buckets
            )
        logger.debug("Search on %s returned %d of %d hits", native_query.__class__.__name__, len(items), response.total)
        return SearchResult(items=items, total=response.total, facets=facets, hybrid_state=hybrid_state)


def _facet_value(field_definition: FieldDefinition | None, value: Any) -> Any:
    if field_definition is None:
        return value
    if field_definition.value_type == ValueType.TEXT_ARRAY:
        # Facet buckets hold single elements of collection fields
        return coerce_value(ValueType.TEXT, value)
    return coerce_value(field_definition.value_type, value)
