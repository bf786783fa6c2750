"""
Hybrid (keyword + vector) search composition.

Each request walks a small state machine:

    keyword_only -> embedding_pending -> hybrid_ready
         |                 |
         +----> degraded <-+

A request stays ``keyword_only`` unless hybrid search is requested, enabled
and there is query text to embed. A requested hybrid search on a backend
without vector support, or whose embedding call fails, times out or returns
a malformed vector, ends ``degraded`` and runs as a keyword search. Task
cancellation is never a degrade: ``asyncio.CancelledError`` propagates.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
import logging

import numpy as np

from cms_search.adapters.embedding import EmbeddingService
from cms_search.domain.query import FullTextSearch
from cms_search.errors import InvalidHybridTransitionError
from cms_search.observability.metrics import HYBRID_OUTCOMES
from cms_search.observability.tracing import create_span


logger = logging.getLogger(__name__)


class HybridState(str, Enum):
    KEYWORD_ONLY = "keyword_only"
    EMBEDDING_PENDING = "embedding_pending"
    HYBRID_READY = "hybrid_ready"
    DEGRADED = "degraded"


ALLOWED_TRANSITIONS: dict[HybridState, frozenset[HybridState]] = {
    HybridState.KEYWORD_ONLY: frozenset({HybridState.EMBEDDING_PENDING, HybridState.DEGRADED}),
    HybridState.EMBEDDING_PENDING: frozenset({HybridState.HYBRID_READY, HybridState.DEGRADED}),
    HybridState.HYBRID_READY: frozenset(),
    HybridState.DEGRADED: frozenset(),
}


class HybridStateMachine:
    """Tracks one request's composition state and rejects illegal moves."""

    def __init__(self) -> None:
        self.state = HybridState.KEYWORD_ONLY
        self.history: list[HybridState] = [self.state]

    def transition(self, target: HybridState) -> None:
        if target not in ALLOWED_TRANSITIONS[self.state]:
            msg = f"Cannot move from {self.state.value} to {target.value}"
            raise InvalidHybridTransitionError(msg)
        self.state = target
        self.history.append(target)


@dataclass(frozen=True)
class HybridPlan:
    """Outcome of composition: the final state and, when ready, the query vector."""

    state: HybridState
    vector: tuple[float, ...] | None = None
    threshold: float | None = None
    reason: str | None = None

    @property
    def is_hybrid(self) -> bool:
        return self.state == HybridState.HYBRID_READY


class HybridSearchComposer:
    """
    Decide between keyword-only and hybrid execution for a request.

    Args:
        embedding_service: Embedding client (None disables hybrid search)
        enabled: Global hybrid switch from settings
        timeout: Seconds to wait for the embedding before degrading
        dimensions: Expected vector length; None skips the length check
    """

    def __init__(
        self,
        embedding_service: EmbeddingService | None = None,
        *,
        enabled: bool = True,
        timeout: float = 5.0,
        dimensions: int | None = None,
    ) -> None:
        self.embedding_service = embedding_service
        self.enabled = enabled and embedding_service is not None
        self.timeout = timeout
        self.dimensions = dimensions

    async def compose(
        self, full_text: FullTextSearch, *, supports_vectors: bool, index_name: str | None = None
    ) -> HybridPlan:
        machine = HybridStateMachine()
        query = full_text.query.strip()
        if not (full_text.enable_hybrid and self.enabled and query):
            return self._finish(machine, None, None)

        if not supports_vectors:
            machine.transition(HybridState.DEGRADED)
            logger.warning("Hybrid search requested for index %s but the backend has no vector support", index_name)
            return self._finish(machine, None, "backend has no vector support")

        machine.transition(HybridState.EMBEDDING_PENDING)
        try:
            vector = await self._embed(query)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            machine.transition(HybridState.DEGRADED)
            reason = "embedding timed out" if isinstance(exc, TimeoutError) else f"embedding failed: {exc}"
            logger.warning("Hybrid search degraded to keyword search for index %s: %s", index_name, reason)
            return self._finish(machine, None, reason)

        machine.transition(HybridState.HYBRID_READY)
        plan = HybridPlan(
            state=machine.state,
            vector=vector,
            threshold=full_text.vector_similarity_threshold,
        )
        HYBRID_OUTCOMES.labels(state=plan.state.value).inc()
        return plan

    async def aclose(self) -> None:
        """Close the embedding client when it holds a connection pool."""
        close = getattr(self.embedding_service, "aclose", None)
        if close is not None:
            await close()

    async def _embed(self, query: str) -> tuple[float, ...]:
        assert self.embedding_service is not None
        with create_span("search.embed", attributes={"embedding.query_length": len(query)}):
            raw = await asyncio.wait_for(self.embedding_service.embed(query), timeout=self.timeout)
        return self._validate(raw)

    def _validate(self, raw: object) -> tuple[float, ...]:
        try:
            vector = np.asarray(raw, dtype=np.float64)
        except (TypeError, ValueError) as exc:
            msg = "embedding is not numeric"
            raise ValueError(msg) from exc
        if vector.ndim != 1 or vector.size == 0:
            msg = f"embedding has shape {vector.shape}, expected a non-empty 1-D vector"
            raise ValueError(msg)
        if not np.isfinite(vector).all():
            msg = "embedding contains non-finite values"
            raise ValueError(msg)
        if self.dimensions is not None and vector.size != self.dimensions:
            msg = f"embedding has {vector.size} dimensions, expected {self.dimensions}"
            raise ValueError(msg)
        return tuple(vector.tolist())

    def _finish(self, machine: HybridStateMachine, vector: tuple[float, ...] | None, reason: str | None) -> HybridPlan:
        HYBRID_OUTCOMES.labels(state=machine.state.value).inc()
        return HybridPlan(state=machine.state, vector=vector, reason=reason)
