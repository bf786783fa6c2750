"""
REST adapter for the cloud keyword+vector search service.

Writes use the batch indexing endpoint with one action per call. ``upload``
replaces the whole stored document, so fields an item no longer produces are
dropped; ``delete`` removes it. Reads post the translated JSON body to the
search endpoint. HTTP errors surface as ``httpx.HTTPError`` without retries.
"""

from __future__ import annotations

from collections.abc import Mapping
import logging
from typing import Any

import httpx
import orjson

from cms_search.adapters.backend import RawHit, RawSearchResponse, SearchBackend
from cms_search.domain.fields import Backend, CoreFields, FieldDefinition
from cms_search.search.translation import CloudQuery, CloudQueryTranslator, NativeQuery


logger = logging.getLogger(__name__)


class CloudSearchBackend(SearchBackend):
    """
    Cloud search service client.

    Args:
        endpoint: Service base URL, e.g. ``https://contoso.search.windows.net``
        api_key: Admin key sent as the ``api-key`` header
        api_version: REST API version query parameter
        vector_field: Vector field used by hybrid queries (None disables vector queries)
        similarity_threshold: Default minimum vector similarity
        timeout: Request timeout in seconds
        client: Pre-built client (tests inject one with a mock transport)
    """

    kind = Backend.CLOUD

    def __init__(
        self,
        endpoint: str,
        api_key: str,
        *,
        api_version: str = "2024-07-01",
        vector_field: FieldDefinition | None = None,
        similarity_threshold: float | None = None,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.endpoint = endpoint.rstrip("/")
        self.api_version = api_version
        self.vector_field = vector_field
        self.supports_vectors = vector_field is not None
        self.similarity_threshold = similarity_threshold
        self.key_field = CoreFields.ID.physical_name(Backend.CLOUD)
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout, connect=10.0))
        self._headers = {"api-key": api_key, "Content-Type": "application/json", "Accept": "application/json"}

    def create_translator(self) -> CloudQueryTranslator:
        return CloudQueryTranslator(self.vector_field, default_threshold=self.similarity_threshold)

    async def upsert(self, index_name: str, document_id: str, field_map: Mapping[str, Any]) -> None:
        document = {"@search.action": "upload", **field_map, self.key_field: document_id}
        await self._post(index_name, "index", {"value": [document]})
        logger.debug("Upserted %s into cloud index %s", document_id, index_name)

    async def delete(self, index_name: str, document_id: str) -> None:
        await self._post(index_name, "index", {"value": [{"@search.action": "delete", self.key_field: document_id}]})
        logger.debug("Deleted %s from cloud index %s", document_id, index_name)

    async def query(self, index_name: str, native_query: NativeQuery) -> RawSearchResponse:
        if not isinstance(native_query, CloudQuery):
            msg = f"Cloud backend cannot execute {type(native_query).__name__}"
            raise TypeError(msg)
        payload = await self._post(index_name, "search", native_query.body)
        return self._parse_response(payload)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(self, index_name: str, operation: str, body: Mapping[str, Any]) -> dict[str, Any]:
        url = f"{self.endpoint}/indexes/{index_name}/docs/{operation}"
        response = await self._client.post(
            url,
            params={"api-version": self.api_version},
            headers=self._headers,
            content=orjson.dumps(body),
        )
        response.raise_for_status()
        if not response.content:
            return {}
        return orjson.loads(response.content)

    def _parse_response(self, payload: Mapping[str, Any]) -> RawSearchResponse:
        hits: list[RawHit] = []
        for raw in payload.get("value", []):
            values = {name: value for name, value in raw.items() if not name.startswith("@search.")}
            hits.append(
                RawHit(
                    document_id=str(values.get(self.key_field, "")),
                    values=values,
                    score=float(raw.get("@search.score") or 0.0),
                )
            )
        facets = {
            name: tuple((bucket.get("value"), int(bucket.get("count", 0))) for bucket in buckets)
            for name, buckets in (payload.get("@search.facets") or {}).items()
        }
        total = payload.get("@odata.count")
        return RawSearchResponse(hits=tuple(hits), total=int(total) if total is not None else len(hits), facets=facets)
