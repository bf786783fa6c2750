"""Unit tests for the indexing orchestrator."""

from unittest.mock import AsyncMock

import pytest

from cms_search.domain.fields import Backend, CoreFields
from cms_search.errors import ConverterError, UnknownIndexError
from cms_search.indexing.converters import Converter
from cms_search.indexing.orchestrator import IndexedDocument, IndexingOrchestrator
from cms_search.observability.context import get_trace_context, set_trace_context, trace_context
from support import CATEGORY, INDEX, PREVIEW_INDEX, TAGS, TITLE, build_registry, make_item


class _ExplodingConverter(Converter):
    order = 50

    def declare_fields(self):
        return (CATEGORY,)

    def compute_for_content(self, item, model):
        if item.id == "bad":
            raise RuntimeError("boom")


class _OverrideAliasConverter(Converter):
    order = 10

    def declare_fields(self):
        return (CoreFields.ALIAS,)

    def compute_for_content(self, item, model):
        model.set(CoreFields.ALIAS, model.get(CoreFields.ALIAS).upper())


@pytest.mark.unit
class TestIndex:
    """Converters run in order and the result is committed once."""

    @pytest.mark.asyncio
    async def test_index_commits_field_map(self, orchestrator, local_backend):
        item = make_item(
            "1",
            properties={"tags": ["a", "b"], "title": "Hello"},
            culture_properties={"en-US": {"title": "Hi"}},
        )

        document = await orchestrator.index(item, INDEX, ["en-US"])

        stored = local_backend.get_document(INDEX, "1")
        assert stored == dict(document.fields)
        assert stored["Tags"] == ["a", "b"]
        assert stored["Title"] == "Hello"
        assert stored["Title_en-us"] == "Hi"
        assert stored["ExcludedFromSearch"] is False
        assert document.excluded is False

    @pytest.mark.asyncio
    async def test_later_converter_overrides_core_field(self, local_backend):
        registry = build_registry().register(_OverrideAliasConverter())
        orchestrator = IndexingOrchestrator(registry, local_backend, index_names=(INDEX,))

        document = await orchestrator.index(make_item("1", alias="page"), INDEX)

        assert document.fields["Alias"] == "PAGE"

    @pytest.mark.asyncio
    async def test_converter_failure_is_not_partially_committed(self):
        backend = AsyncMock()
        backend.kind = Backend.LOCAL
        registry = build_registry().register(_ExplodingConverter())
        orchestrator = IndexingOrchestrator(registry, backend, index_names=(INDEX,))

        with pytest.raises(ConverterError) as exc_info:
            await orchestrator.index(make_item("bad"), INDEX)

        error = exc_info.value
        assert error.item_id == "bad"
        assert error.converter == "_ExplodingConverter"
        assert error.index_name == INDEX
        assert isinstance(error.__cause__, RuntimeError)
        backend.upsert.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_type_mismatch_in_converter_is_a_converter_error(self, orchestrator, local_backend):
        item = make_item("1", properties={"priority": "high"})

        with pytest.raises(ConverterError, match="PropertyConverter\\(priority->Priority\\)"):
            await orchestrator.index(item, INDEX)

        assert local_backend.get_document(INDEX, "1") is None

    @pytest.mark.asyncio
    async def test_unknown_index_is_rejected(self, orchestrator):
        with pytest.raises(UnknownIndexError) as exc_info:
            await orchestrator.index(make_item("1"), "archive")

        assert exc_info.value.index_name == "archive"

    @pytest.mark.asyncio
    async def test_index_records_span(self, orchestrator, span_exporter):
        await orchestrator.index(make_item("1"), INDEX)

        spans = [span for span in span_exporter.get_finished_spans() if span.name == "indexing.index"]
        assert len(spans) == 1
        assert spans[0].attributes["item.id"] == "1"
        assert spans[0].attributes["index.name"] == INDEX

    @pytest.mark.asyncio
    async def test_index_name_is_in_log_context_while_committing(self, registry):
        seen = {}

        async def capture(index_name, document_id, field_map):
            seen.update(get_trace_context())

        backend = AsyncMock()
        backend.kind = Backend.LOCAL
        backend.upsert = capture
        orchestrator = IndexingOrchestrator(registry, backend, index_names=(INDEX, PREVIEW_INDEX))
        set_trace_context("t" * 32, "s" * 16)
        before = trace_context.get()

        await orchestrator.index(make_item("1"), PREVIEW_INDEX)

        assert seen["index"] == PREVIEW_INDEX
        assert trace_context.get() == before


@pytest.mark.unit
class TestDelete:
    """Hard delete on regular indexes, soft delete on preview indexes."""

    @pytest.mark.asyncio
    async def test_hard_delete_removes_document(self, orchestrator, local_backend):
        item = make_item("1")
        await orchestrator.index(item, INDEX)

        result = await orchestrator.delete(item, INDEX)

        assert result is None
        assert local_backend.get_document(INDEX, "1") is None

    @pytest.mark.asyncio
    async def test_soft_delete_keeps_document_excluded(self, orchestrator, local_backend):
        item = make_item("1", properties={"tags": ["a"]})
        await orchestrator.index(item, PREVIEW_INDEX)

        result = await orchestrator.delete(item, PREVIEW_INDEX)

        assert result is not None and result.excluded is True
        stored = local_backend.get_document(PREVIEW_INDEX, "1")
        assert stored["ExcludedFromSearch"] is True
        assert stored["Tags"] == ["a"]


@pytest.mark.unit
class TestRebuild:
    """Batch indexing records failures without stopping."""

    @pytest.mark.asyncio
    async def test_rebuild_skips_failing_items(self, local_backend):
        registry = build_registry().register(_ExplodingConverter())
        orchestrator = IndexingOrchestrator(registry, local_backend, index_names=(INDEX,))
        items = [make_item("1"), make_item("bad"), make_item("3")]

        result = await orchestrator.rebuild(items, INDEX)

        assert result.documents_indexed == 2
        assert result.documents_failed == 1
        assert not result.success
        assert result.errors[0].item_id == "bad"
        assert local_backend.document_count(INDEX) == 2

    @pytest.mark.asyncio
    async def test_rebuild_propagates_backend_errors(self, registry):
        backend = AsyncMock()
        backend.kind = Backend.LOCAL
        backend.upsert.side_effect = ConnectionError("down")
        orchestrator = IndexingOrchestrator(registry, backend, index_names=(INDEX,))

        with pytest.raises(ConnectionError):
            await orchestrator.rebuild([make_item("1")], INDEX)


@pytest.mark.unit
class TestIndexedDocument:
    """Fingerprints depend on content, not on key order."""

    def test_fingerprint_is_order_independent(self):
        first = IndexedDocument("1", INDEX, {"a": 1, "b": ["x"]})
        second = IndexedDocument("1", INDEX, {"b": ["x"], "a": 1})
        changed = IndexedDocument("1", INDEX, {"a": 2, "b": ["x"]})

        assert first.fingerprint == second.fingerprint
        assert first.fingerprint != changed.fingerprint
        assert len(first.fingerprint) == 64

    @pytest.mark.asyncio
    async def test_reindexing_unchanged_item_keeps_fingerprint(self, orchestrator):
        item = make_item("1", properties={"title": "Same", "tags": ["a"]})

        first = await orchestrator.index(item, INDEX)
        second = await orchestrator.index(item, INDEX)

        assert first.fingerprint == second.fingerprint
        assert TITLE.name in first.fields and TAGS.name in first.fields
