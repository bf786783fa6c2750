"""
In-process search backend.

Documents are kept as flat field maps per index. Text postings are built
lazily per (field, analyzer) pair and dropped whenever the index changes, so
writes stay cheap and the first query after a write pays for re-analysis.

Scoring:
- BM25 over the searchable text fields named by the query, summed across fields
- an empty query text matches every filtered document with score 1.0
- boost clauses add their weight to the score of matching documents
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from functools import cmp_to_key
import logging
from typing import Any

from cms_search.adapters.backend import RawHit, RawSearchResponse, SearchBackend
from cms_search.domain.fields import Backend
from cms_search.search.analyzers import get_analyzer
from cms_search.search.stats import average_length, bm25, calculate_idf
from cms_search.search.translation import (
    AllOf,
    AnyOf,
    FacetRequest,
    LocalQuery,
    LocalQueryTranslator,
    NativeQuery,
    Not,
    Predicate,
    RangePredicate,
    SortKey,
    TermPredicate,
)


logger = logging.getLogger(__name__)

MATCH_ALL_SCORE = 1.0


@dataclass
class _FieldPostings:
    postings: dict[str, dict[str, int]]
    lengths: dict[str, int]
    average_length: float


class _LocalIndex:
    def __init__(self) -> None:
        self.documents: dict[str, dict[str, Any]] = {}
        self._postings: dict[tuple[str, str | None], _FieldPostings] = {}

    def put(self, document_id: str, field_map: Mapping[str, Any]) -> None:
        self.documents[document_id] = {name: _freeze(value) for name, value in field_map.items()}
        self._postings.clear()

    def remove(self, document_id: str) -> bool:
        removed = self.documents.pop(document_id, None) is not None
        if removed:
            self._postings.clear()
        return removed

    def postings(self, field_name: str, analyzer_name: str | None) -> _FieldPostings:
        key = (field_name, analyzer_name)
        cached = self._postings.get(key)
        if cached is None:
            cached = self._build_postings(field_name, analyzer_name)
            self._postings[key] = cached
        return cached

    def _build_postings(self, field_name: str, analyzer_name: str | None) -> _FieldPostings:
        analyzer = get_analyzer(analyzer_name)
        postings: dict[str, dict[str, int]] = {}
        lengths: dict[str, int] = {}
        for document_id, fields in self.documents.items():
            value = fields.get(field_name)
            if value is None:
                continue
            texts = value if isinstance(value, tuple) else (value,)
            terms = [token.text for text in texts if isinstance(text, str) for token in analyzer(text)]
            lengths[document_id] = len(terms)
            for term, frequency in Counter(terms).items():
                postings.setdefault(term, {})[document_id] = frequency
        return _FieldPostings(postings, lengths, average_length(lengths.values()))


def _freeze(value: Any) -> Any:
    if isinstance(value, list):
        return tuple(value)
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, tuple):
        return list(value)
    return value


class LocalSearchBackend(SearchBackend):
    """In-memory inverted-index backend without vector support."""

    kind = Backend.LOCAL
    supports_vectors = False

    def __init__(self) -> None:
        self._indexes: dict[str, _LocalIndex] = {}

    def create_translator(self) -> LocalQueryTranslator:
        return LocalQueryTranslator()

    def _index(self, index_name: str) -> _LocalIndex:
        return self._indexes.setdefault(index_name, _LocalIndex())

    async def upsert(self, index_name: str, document_id: str, field_map: Mapping[str, Any]) -> None:
        self._index(index_name).put(document_id, field_map)
        logger.debug("Upserted %s into local index %s", document_id, index_name)

    async def delete(self, index_name: str, document_id: str) -> None:
        if self._index(index_name).remove(document_id):
            logger.debug("Deleted %s from local index %s", document_id, index_name)

    def document_count(self, index_name: str) -> int:
        return len(self._index(index_name).documents)

    def get_document(self, index_name: str, document_id: str) -> dict[str, Any] | None:
        fields = self._index(index_name).documents.get(document_id)
        if fields is None:
            return None
        return {name: _thaw(value) for name, value in fields.items()}

    async def query(self, index_name: str, native_query: NativeQuery) -> RawSearchResponse:
        if not isinstance(native_query, LocalQuery):
            msg = f"Local backend cannot execute {type(native_query).__name__}"
            raise TypeError(msg)
        index = self._index(index_name)
        candidates = [
            document_id
            for document_id, fields in index.documents.items()
            if native_query.filter is None or matches(native_query.filter, fields)
        ]
        scores = self._score(index, candidates, native_query)
        for boost in native_query.boosts:
            for document_id in scores:
                if matches(boost.predicate, index.documents[document_id]):
                    scores[document_id] += boost.weight

        ordered = sort_documents(index.documents, scores, native_query.sort)
        page = ordered[native_query.skip : native_query.skip + native_query.take]
        hits = tuple(
            RawHit(
                document_id=document_id,
                values={name: _thaw(value) for name, value in index.documents[document_id].items()},
                score=scores[document_id],
            )
            for document_id in page
        )
        facets = {
            request.physical_name: count_facet(request, (index.documents[document_id] for document_id in ordered))
            for request in native_query.facets
        }
        return RawSearchResponse(hits=hits, total=len(ordered), facets=facets)

    def _score(self, index: _LocalIndex, candidates: list[str], native_query: LocalQuery) -> dict[str, float]:
        if not native_query.text:
            return dict.fromkeys(candidates, MATCH_ALL_SCORE)
        allowed = set(candidates)
        total_docs = len(index.documents)
        scores: dict[str, float] = {}
        for field_name, analyzer_name in native_query.text_fields:
            postings = index.postings(field_name, analyzer_name)
            for token in get_analyzer(analyzer_name)(native_query.text):
                matches_for_term = postings.postings.get(token.text, {})
                if not matches_for_term:
                    continue
                idf = calculate_idf(len(matches_for_term), total_docs)
                for document_id, frequency in matches_for_term.items():
                    if document_id not in allowed:
                        continue
                    weight = bm25(frequency, postings.lengths[document_id], postings.average_length)
                    scores[document_id] = scores.get(document_id, 0.0) + idf * weight
        return {document_id: score for document_id, score in scores.items() if score > 0}


def matches(predicate: Predicate, fields: Mapping[str, Any]) -> bool:
    """Evaluate a predicate tree against one stored document."""

    if isinstance(predicate, TermPredicate):
        value = fields.get(predicate.field)
        if isinstance(value, tuple):
            return predicate.value in value
        return value is not None and value == predicate.value and type(value) is type(predicate.value)
    if isinstance(predicate, RangePredicate):
        return _in_range(predicate, fields.get(predicate.field))
    if isinstance(predicate, Not):
        return not matches(predicate.predicate, fields)
    if isinstance(predicate, AnyOf):
        return any(matches(child, fields) for child in predicate.predicates)
    if isinstance(predicate, AllOf):
        return all(matches(child, fields) for child in predicate.predicates)
    msg = f"Unsupported predicate {type(predicate).__name__}"
    raise TypeError(msg)


def _in_range(predicate: RangePredicate, value: Any) -> bool:
    if not isinstance(value, int) or isinstance(value, bool):
        return False
    if predicate.minimum is not None:
        if value < predicate.minimum or (value == predicate.minimum and not predicate.include_minimum):
            return False
    if predicate.maximum is not None:
        if value > predicate.maximum or (value == predicate.maximum and not predicate.include_maximum):
            return False
    return True


def sort_documents(
    documents: Mapping[str, Mapping[str, Any]], scores: Mapping[str, float], sort: Iterable[SortKey]
) -> list[str]:
    """Order matched documents by the sort chain, then by document id.

    Documents missing a sort value come after those that have one, whatever
    the direction.
    """

    keys = tuple(sort)

    def compare(left: str, right: str) -> int:
        for key in keys:
            if key.field is None:
                left_value, right_value = scores[left], scores[right]
            else:
                left_value = documents[left].get(key.field)
                right_value = documents[right].get(key.field)
            if left_value == right_value:
                continue
            if left_value is None:
                return 1
            if right_value is None:
                return -1
            result = -1 if left_value < right_value else 1
            return -result if key.descending else result
        return (left > right) - (left < right)

    return sorted(scores, key=cmp_to_key(compare))


def count_facet(request: FacetRequest, documents: Iterable[Mapping[str, Any]]) -> tuple[tuple[Any, int], ...]:
    """Count documents per distinct value, by count descending then value ascending."""

    counts: Counter[Any] = Counter()
    for fields in documents:
        value = fields.get(request.physical_name)
        if value is None:
            continue
        values = set(value) if isinstance(value, tuple) else {value}
        counts.update(values)
    ordered = sorted(counts.items(), key=lambda entry: (-entry[1], str(entry[0])))
    return tuple(ordered[: request.size])
