"""Backend adapter abstractions.

Each backend pairs a write side (upsert/delete of flat field maps keyed by
physical field name) with a query side that executes its own translator's
native queries. Implementations do not retry; transport errors reach the
caller unchanged.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from cms_search.domain.fields import Backend
from cms_search.search.translation import NativeQuery, QueryTranslator


@dataclass(frozen=True)
class RawHit:
    document_id: str
    values: Mapping[str, Any]
    score: float


@dataclass(frozen=True)
class RawSearchResponse:
    """Backend output before mapping: hits, total count and facets keyed by physical field."""

    hits: tuple[RawHit, ...]
    total: int
    facets: Mapping[str, tuple[tuple[Any, int], ...]] = field(default_factory=dict)


class SearchBackend(ABC):
    """Abstract search backend.

    Implementations can be an in-process inverted index or a remote service.
    """

    kind: Backend
    supports_vectors: bool = False

    @abstractmethod
    def create_translator(self) -> QueryTranslator:
        """Return a translator producing native queries for this backend."""

    @abstractmethod
    async def upsert(self, index_name: str, document_id: str, field_map: Mapping[str, Any]) -> None:
        """Insert or replace one document."""

    @abstractmethod
    async def delete(self, index_name: str, document_id: str) -> None:
        """Remove one document."""

    @abstractmethod
    async def query(self, index_name: str, native_query: NativeQuery) -> RawSearchResponse:
        """Execute a translated query."""

    async def aclose(self) -> None:
        """Optional hook releasing network resources."""

        return
