"""Unit tests for the cloud REST backend using a mock HTTP transport."""

import httpx
import orjson
import pytest

from cms_search.adapters.cloud_backend import CloudSearchBackend
from cms_search.search.translation import CloudQuery, CloudQueryTranslator, LocalQuery
from support import EMBEDDING


ENDPOINT = "https://contoso.search.example.net/"


class RecordingTransport:
    """Collects requests and answers each with a canned response."""

    def __init__(self, status_code=200, payload=None):
        self.requests = []
        self.status_code = status_code
        self.payload = payload

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.payload is None:
            return httpx.Response(self.status_code)
        return httpx.Response(self.status_code, json=self.payload)


def _backend(transport, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(transport))
    return CloudSearchBackend(ENDPOINT, "secret", client=client, **kwargs)


@pytest.mark.unit
class TestWrites:
    """Upserts and deletes go through the batch indexing endpoint."""

    @pytest.mark.asyncio
    async def test_upsert_replaces_whole_document(self):
        transport = RecordingTransport(payload={"value": [{"key": "1", "status": True}]})
        backend = _backend(transport)

        await backend.upsert("content", "1", {"Alias": "page", "Tags": ["a"]})

        request = transport.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/indexes/content/docs/index"
        assert request.url.params["api-version"] == "2024-07-01"
        assert request.headers["api-key"] == "secret"
        assert orjson.loads(request.content) == {
            "value": [{"@search.action": "upload", "Alias": "page", "Tags": ["a"], "Id": "1"}]
        }

    @pytest.mark.asyncio
    async def test_reupsert_omits_fields_the_item_no_longer_has(self):
        transport = RecordingTransport(payload={"value": []})
        backend = _backend(transport)

        await backend.upsert("content", "1", {"Title_en": "Hello", "Title_da": "Hej"})
        await backend.upsert("content", "1", {"Title_en": "Hello"})

        actions = orjson.loads(transport.requests[1].content)["value"]
        assert actions == [{"@search.action": "upload", "Title_en": "Hello", "Id": "1"}]

    @pytest.mark.asyncio
    async def test_delete_posts_delete_action(self):
        transport = RecordingTransport()
        backend = _backend(transport, api_version="2023-11-01")

        await backend.delete("preview", "7")

        request = transport.requests[0]
        assert request.url.path == "/indexes/preview/docs/index"
        assert request.url.params["api-version"] == "2023-11-01"
        assert orjson.loads(request.content) == {"value": [{"@search.action": "delete", "Id": "7"}]}

    @pytest.mark.asyncio
    async def test_http_errors_propagate(self):
        backend = _backend(RecordingTransport(status_code=503, payload={"error": "busy"}))

        with pytest.raises(httpx.HTTPStatusError):
            await backend.upsert("content", "1", {})


@pytest.mark.unit
class TestQuery:
    """Search requests and response parsing."""

    @pytest.mark.asyncio
    async def test_query_posts_body_and_parses_hits(self):
        transport = RecordingTransport(
            payload={
                "@odata.count": 12,
                "@search.facets": {"Tags": [{"value": "a", "count": 3}, {"value": "b", "count": 1}]},
                "value": [
                    {"@search.score": 4.2, "@search.highlights": {}, "Id": "1072", "Alias": "page"},
                    {"@search.score": 1.1, "Id": "1050", "Alias": "news"},
                ],
            }
        )
        backend = _backend(transport)

        response = await backend.query("content", CloudQuery(body={"search": "*", "count": True}))

        request = transport.requests[0]
        assert request.url.path == "/indexes/content/docs/search"
        assert orjson.loads(request.content) == {"search": "*", "count": True}
        assert response.total == 12
        assert [hit.document_id for hit in response.hits] == ["1072", "1050"]
        assert response.hits[0].score == 4.2
        assert response.hits[0].values == {"Id": "1072", "Alias": "page"}
        assert response.facets == {"Tags": (("a", 3), ("b", 1))}

    @pytest.mark.asyncio
    async def test_total_defaults_to_hit_count(self):
        backend = _backend(RecordingTransport(payload={"value": [{"@search.score": 1.0, "Id": "1"}]}))

        response = await backend.query("content", CloudQuery(body={}))

        assert response.total == 1
        assert response.facets == {}

    @pytest.mark.asyncio
    async def test_rejects_local_queries(self):
        backend = _backend(RecordingTransport())

        with pytest.raises(TypeError, match="LocalQuery"):
            await backend.query("content", LocalQuery(text="", text_fields=(), filter=None))

    def test_translator_carries_vector_configuration(self):
        backend = _backend(RecordingTransport(), vector_field=EMBEDDING, similarity_threshold=0.4)

        translator = backend.create_translator()

        assert isinstance(translator, CloudQueryTranslator)
        assert translator.vector_field is EMBEDDING
        assert translator.default_threshold == 0.4
        assert backend.supports_vectors is True

    def test_backend_without_vector_field_has_no_vector_support(self):
        backend = _backend(RecordingTransport())

        translator = backend.create_translator()

        assert backend.supports_vectors is False
        assert translator.supports_vectors is False
        assert translator.vector_field is None
