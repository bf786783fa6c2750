"""
Indexing orchestrator: runs converters over an item and commits the result.

Write path:
1. Resolve the converters applicable to the target index (ascending order)
2. Run each converter against one fresh ``IndexingModel``
3. Flatten the model to the active backend's physical field names
4. Upsert the field map; nothing is written if any converter fails

Preview indexes never lose documents on delete; the document is re-committed
with ``ExcludedFromSearch=True`` so queries can opt back into seeing it.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
import hashlib
import logging
from typing import Any

import orjson

from cms_search.adapters.backend import SearchBackend
from cms_search.domain.fields import CoreFields
from cms_search.domain.items import IndexableItem
from cms_search.errors import ConverterError, UnknownIndexError
from cms_search.indexing.converters import ConverterRegistry
from cms_search.indexing.model import IndexingModel
from cms_search.observability.context import bind_trace_context
from cms_search.observability.metrics import INDEXING_OPERATIONS
from cms_search.observability.tracing import create_span


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IndexedDocument:
    """Field map committed for one item."""

    document_id: str
    index_name: str
    fields: Mapping[str, Any]
    excluded: bool = False

    @property
    def fingerprint(self) -> str:
        """Stable digest of the committed fields, for skipping no-op re-indexing."""
        payload = orjson.dumps(dict(self.fields), option=orjson.OPT_SORT_KEYS)
        return hashlib.sha256(payload).hexdigest()


@dataclass(frozen=True)
class IndexBuildResult:
    documents_indexed: int
    documents_failed: int
    errors: tuple[ConverterError, ...] = field(default_factory=tuple)

    @property
    def success(self) -> bool:
        return self.documents_failed == 0


class IndexingOrchestrator:
    """
    Drive the converter registry over items and commit documents to a backend.

    Args:
        registry: Converter registry (frozen on first use)
        backend: Active search backend
        index_names: Managed index names
        preview_index_names: Managed indexes where delete is a soft delete
    """

    def __init__(
        self,
        registry: ConverterRegistry,
        backend: SearchBackend,
        *,
        index_names: Iterable[str],
        preview_index_names: Iterable[str] = (),
    ) -> None:
        self.registry = registry
        self.backend = backend
        self.index_names = tuple(index_names)
        self.preview_index_names = frozenset(preview_index_names)

    def is_preview(self, index_name: str) -> bool:
        return index_name in self.preview_index_names

    def _check_index(self, index_name: str) -> None:
        if index_name not in self.index_names:
            raise UnknownIndexError(index_name, self.index_names)

    def build_model(self, item: IndexableItem, index_name: str, languages: Iterable[str] = ()) -> IndexingModel:
        """Run every applicable converter for the item; any failure aborts the pass."""

        self.registry.freeze()
        model = IndexingModel(item.id, index_name, tuple(languages))
        for converter in self.registry.converters_for(index_name):
            try:
                converter.compute(item, model)
            except Exception as exc:
                raise ConverterError(item.id, converter.name, index_name) from exc
        return model

    async def index(self, item: IndexableItem, index_name: str, languages: Iterable[str] = ()) -> IndexedDocument:
        """Build and commit the document for an item."""

        self._check_index(index_name)
        with bind_trace_context(index=index_name), create_span(
            "indexing.index",
            attributes={"index.name": index_name, "item.id": item.id, "backend": self.backend.kind.value},
        ):
            try:
                model = self.build_model(item, index_name, languages)
                document = await self._commit(model)
            except Exception:
                INDEXING_OPERATIONS.labels(index=index_name, operation="index", status="error").inc()
                raise
        INDEXING_OPERATIONS.labels(index=index_name, operation="index", status="success").inc()
        logger.debug("Indexed %s into %s (%d fields)", item.id, index_name, len(document.fields))
        return document

    async def delete(
        self, item: IndexableItem, index_name: str, languages: Iterable[str] = ()
    ) -> IndexedDocument | None:
        """Remove an item; on preview indexes, re-commit it excluded from search instead.

        Returns the re-committed document for a soft delete, None for a hard delete.
        """

        self._check_index(index_name)
        operation = "soft_delete" if self.is_preview(index_name) else "delete"
        with bind_trace_context(index=index_name), create_span(
            "indexing.delete",
            attributes={"index.name": index_name, "item.id": item.id, "indexing.operation": operation},
        ):
            try:
                document = await self._delete(item, index_name, languages)
            except Exception:
                INDEXING_OPERATIONS.labels(index=index_name, operation=operation, status="error").inc()
                raise
        INDEXING_OPERATIONS.labels(index=index_name, operation=operation, status="success").inc()
        logger.info("Deleted %s from %s (%s)", item.id, index_name, operation)
        return document

    async def _delete(self, item: IndexableItem, index_name: str, languages: Iterable[str]) -> IndexedDocument | None:
        if not self.is_preview(index_name):
            await self.backend.delete(index_name, item.id)
            return None
        model = self.build_model(item, index_name, languages)
        model.set(CoreFields.EXCLUDED_FROM_SEARCH, True)
        return await self._commit(model)

    async def rebuild(
        self, items: Iterable[IndexableItem], index_name: str, languages: Iterable[str] = ()
    ) -> IndexBuildResult:
        """Index items one at a time; converter failures are recorded and skipped.

        Backend errors still propagate.
        """

        self._check_index(index_name)
        languages = tuple(languages)
        indexed = 0
        errors: list[ConverterError] = []
        with create_span("indexing.rebuild", attributes={"index.name": index_name}) as span:
            for item in items:
                try:
                    await self.index(item, index_name, languages)
                except ConverterError as exc:
                    logger.error("Skipping %s during rebuild of %s: %s", item.id, index_name, exc.__cause__ or exc)
                    errors.append(exc)
                else:
                    indexed += 1
            span.set_attribute("indexing.documents_indexed", indexed)
            span.set_attribute("indexing.documents_failed", len(errors))
        logger.info("Rebuilt %s: %d indexed, %d failed", index_name, indexed, len(errors))
        return IndexBuildResult(documents_indexed=indexed, documents_failed=len(errors), errors=tuple(errors))

    async def _commit(self, model: IndexingModel) -> IndexedDocument:
        field_map = model.to_field_map(self.backend.kind)
        await self.backend.upsert(model.index_name, model.item_id, field_map)
        excluded = bool(model.get(CoreFields.EXCLUDED_FROM_SEARCH, default=False))
        return IndexedDocument(model.item_id, model.index_name, field_map, excluded=excluded)
