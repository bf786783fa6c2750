"""Embedding service interface and its REST client."""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

import httpx
import orjson


logger = logging.getLogger(__name__)


@runtime_checkable
class EmbeddingService(Protocol):
    """Turns query text into a dense vector."""

    async def embed(self, text: str) -> list[float]:  # pragma: no cover - interface definition
        ...


class EmbeddingError(RuntimeError):
    """The embedding service answered with something that is not a vector."""


class HttpEmbeddingService:
    """
    Client for a deployment-based embedding REST API.

    Posts ``{"input": text}`` to
    ``{endpoint}/openai/deployments/{deployment}/embeddings`` and reads the
    vector from ``data[0].embedding``.
    """

    def __init__(
        self,
        endpoint: str,
        deployment: str,
        api_key: str,
        *,
        api_version: str = "2024-02-01",
        timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = f"{endpoint.rstrip('/')}/openai/deployments/{deployment}/embeddings"
        self.api_version = api_version
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))
        self._headers = {"api-key": api_key, "Content-Type": "application/json"}

    async def embed(self, text: str) -> list[float]:
        response = await self._client.post(
            self.url,
            params={"api-version": self.api_version},
            headers=self._headers,
            content=orjson.dumps({"input": text}),
        )
        response.raise_for_status()
        payload = orjson.loads(response.content)
        try:
            vector = payload["data"][0]["embedding"]
        except (KeyError, IndexError, TypeError) as exc:
            msg = "Embedding response has no data[0].embedding"
            raise EmbeddingError(msg) from exc
        if not isinstance(vector, list):
            msg = f"Embedding must be a list, got {type(vector).__name__}"
            raise EmbeddingError(msg)
        logger.debug("Embedded %d characters into %d dimensions", len(text), len(vector))
        return vector

    async def aclose(self) -> None:
        await self._client.aclose()
