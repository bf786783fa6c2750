"""
Translate provider-agnostic ``SearchParameters`` into backend-native queries.

Both translators share the same compilation of filters, facets, orderings and
boosts into small frozen structures; they differ only in the final rendering:
- LocalQueryTranslator: predicate tree evaluated by the in-process engine
- CloudQueryTranslator: JSON request body (Lucene query text, OData filter,
  facets, orderby and optional vector query) for the cloud service

Filter semantics:
- inside one ``ValueFilter`` every (field, value) pair is a term predicate,
  OR-ed by default or AND-ed when the filter says so
- independent filter specifications are AND-ed
- implicit scoping filters (aliases, root, soft-delete exclusion) are AND-ed
  in front of the caller's filters
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
import re
from typing import Any

from cms_search.domain.fields import Backend, CoreFields, FieldDefinition, ValueType
from cms_search.domain.query import (
    BoostOption,
    FilterCombination,
    RangeFilter,
    SearchParameters,
    SortDirection,
    ValueFilter,
)
from cms_search.errors import TranslationError


# --- compiled structures ---------------------------------------------------


@dataclass(frozen=True)
class TermPredicate:
    """``field == value``; for collection fields, ``value in field``."""

    field: str
    value: Any
    collection: bool = False


@dataclass(frozen=True)
class RangePredicate:
    field: str
    minimum: int | None
    maximum: int | None
    include_minimum: bool = True
    include_maximum: bool = True


@dataclass(frozen=True)
class AnyOf:
    predicates: tuple[Predicate, ...]


@dataclass(frozen=True)
class AllOf:
    predicates: tuple[Predicate, ...]


@dataclass(frozen=True)
class Not:
    predicate: Predicate


Predicate = TermPredicate | RangePredicate | AnyOf | AllOf | Not


@dataclass(frozen=True)
class SortKey:
    """One sort key; ``field=None`` is relevance score."""

    field: str | None
    descending: bool = True


@dataclass(frozen=True)
class BoostClause:
    predicate: TermPredicate
    weight: float


@dataclass(frozen=True)
class FacetRequest:
    field_name: str
    physical_name: str
    size: int


@dataclass(frozen=True)
class LocalQuery:
    """Native query for the in-process engine."""

    text: str
    text_fields: tuple[tuple[str, str | None], ...]
    filter: Predicate | None
    facets: tuple[FacetRequest, ...] = ()
    sort: tuple[SortKey, ...] = ()
    boosts: tuple[BoostClause, ...] = ()
    skip: int = 0
    take: int = 10


@dataclass(frozen=True)
class CloudQuery:
    """Native query for the cloud service: the JSON body of a search request."""

    body: Mapping[str, Any]
    facets: tuple[FacetRequest, ...] = field(default=())


NativeQuery = LocalQuery | CloudQuery


# --- translators -------------------------------------------------------------


class QueryTranslator(ABC):
    """Compile ``SearchParameters`` for one backend.

    Translators hold no per-request state and may be shared across concurrent
    requests.
    """

    backend: Backend
    supports_vectors: bool = False

    def translate(
        self,
        parameters: SearchParameters,
        fields: Mapping[str, FieldDefinition],
        *,
        vector: Sequence[float] | None = None,
        vector_threshold: float | None = None,
    ) -> NativeQuery:
        """Translate parameters against the fields of the target index.

        Args:
            parameters: Request to translate
            fields: Field definitions of the target index, by name
            vector: Query embedding; ignored unless the backend supports vectors
            vector_threshold: Minimum similarity for vector matches (None uses the translator default)
        """

        language = parameters.language_iso_code
        predicate = self.build_filter(parameters)
        facets = tuple(self._facet_request(f, language, parameters.facet_size) for f in parameters.facet_on)
        sort = tuple(
            self._sort_key(ordering.field, ordering.direction, language) for ordering in parameters.effective_orderings
        )
        boosts = tuple(self._boost_clause(boost, language) for boost in parameters.boosts)
        text_fields = self._text_fields(fields, language)
        return self._render(
            parameters,
            predicate=predicate,
            facets=facets,
            sort=sort,
            boosts=boosts,
            text_fields=text_fields,
            vector=vector if self.supports_vectors else None,
            vector_threshold=vector_threshold,
        )

    @abstractmethod
    def _render(
        self,
        parameters: SearchParameters,
        *,
        predicate: Predicate | None,
        facets: tuple[FacetRequest, ...],
        sort: tuple[SortKey, ...],
        boosts: tuple[BoostClause, ...],
        text_fields: tuple[tuple[str, str | None], ...],
        vector: Sequence[float] | None,
        vector_threshold: float | None,
    ) -> NativeQuery: ...

    # shared compilation

    def build_filter(self, parameters: SearchParameters) -> Predicate | None:
        """Compile implicit scoping plus caller filters into one predicate (AND across specifications)."""

        language = parameters.language_iso_code
        predicates: list[Predicate] = []
        if parameters.aliases:
            predicates.append(
                self._value_filter(ValueFilter(fields=(CoreFields.ALIAS,), values=parameters.aliases), language)
            )
        if parameters.root:
            root_filter = ValueFilter(fields=(CoreFields.PATH,), values=(parameters.root,))
            predicates.append(self._value_filter(root_filter, language))
        if not parameters.include_excluded:
            predicates.append(
                self._value_filter(
                    ValueFilter(fields=(CoreFields.EXCLUDED_FROM_SEARCH,), values=(True,), exclude=True),
                    language,
                )
            )
        for entry in parameters.filters:
            if isinstance(entry, RangeFilter):
                predicates.append(self._range_filter(entry, language))
            else:
                predicates.append(self._value_filter(entry, language))
        if not predicates:
            return None
        if len(predicates) == 1:
            return predicates[0]
        return AllOf(tuple(predicates))

    def _value_filter(self, value_filter: ValueFilter, language: str | None) -> Predicate:
        terms: list[Predicate] = []
        for field_definition in value_filter.fields:
            physical = self._require_capability(field_definition, "filterable", language)
            for value in value_filter.values:
                terms.append(self._term(field_definition, physical, value))
        compiled: Predicate
        if len(terms) == 1:
            compiled = terms[0]
        elif value_filter.combination == FilterCombination.AND:
            compiled = AllOf(tuple(terms))
        else:
            compiled = AnyOf(tuple(terms))
        return Not(compiled) if value_filter.exclude else compiled

    def _range_filter(self, range_filter: RangeFilter, language: str | None) -> RangePredicate:
        physical = self._require_capability(range_filter.field, "filterable", language)
        return RangePredicate(
            field=physical,
            minimum=range_filter.minimum,
            maximum=range_filter.maximum,
            include_minimum=range_filter.include_minimum,
            include_maximum=range_filter.include_maximum,
        )

    def _term(self, field_definition: FieldDefinition, physical: str, value: Any) -> TermPredicate:
        if field_definition.value_type in {ValueType.INTEGER, ValueType.LONG} and isinstance(value, str):
            try:
                value = int(value)
            except ValueError as exc:
                raise TranslationError(field_definition.name, f"cannot be compared with '{value}'") from exc
        elif field_definition.value_type == ValueType.BOOLEAN and isinstance(value, str):
            value = value.strip().lower() == "true"
        elif field_definition.value_type in {ValueType.TEXT, ValueType.TEXT_ARRAY} and not isinstance(value, str):
            value = str(value).lower() if isinstance(value, bool) else str(value)
        return TermPredicate(physical, value, collection=field_definition.value_type == ValueType.TEXT_ARRAY)

    def _facet_request(self, field_definition: FieldDefinition, language: str | None, size: int) -> FacetRequest:
        physical = self._require_capability(field_definition, "facetable", language)
        return FacetRequest(field_definition.name, physical, size)

    def _sort_key(
        self, field_definition: FieldDefinition | None, direction: SortDirection, language: str | None
    ) -> SortKey:
        descending = direction == SortDirection.DESCENDING
        if field_definition is None:
            return SortKey(None, descending)
        return SortKey(self._require_capability(field_definition, "sortable", language), descending)

    def _boost_clause(self, boost: BoostOption, language: str | None) -> BoostClause:
        field_definition = boost.field
        physical = field_definition.physical_name(self.backend, language)
        return BoostClause(self._term(field_definition, physical, boost.value), boost.boost)

    def _text_fields(
        self, fields: Mapping[str, FieldDefinition], language: str | None
    ) -> tuple[tuple[str, str | None], ...]:
        text_fields: list[tuple[str, str | None]] = []
        for field_definition in fields.values():
            physical = field_definition.representation(self.backend)
            if physical is None or not physical.capabilities.searchable or physical.capabilities.key:
                continue
            if field_definition.value_type not in {ValueType.TEXT, ValueType.TEXT_ARRAY}:
                continue
            text_fields.append((field_definition.physical_name(self.backend, language), physical.analyzer_name))
        return tuple(text_fields)

    def _require_capability(self, field_definition: FieldDefinition, capability: str, language: str | None) -> str:
        physical = field_definition.require(self.backend)
        if not getattr(physical.capabilities, capability):
            raise TranslationError(field_definition.name, f"is not {capability} on the {self.backend.value} backend")
        return field_definition.physical_name(self.backend, language)


class LocalQueryTranslator(QueryTranslator):
    """Produce ``LocalQuery`` predicate trees for the in-process engine."""

    backend = Backend.LOCAL
    supports_vectors = False

    def _render(
        self,
        parameters: SearchParameters,
        *,
        predicate: Predicate | None,
        facets: tuple[FacetRequest, ...],
        sort: tuple[SortKey, ...],
        boosts: tuple[BoostClause, ...],
        text_fields: tuple[tuple[str, str | None], ...],
        vector: Sequence[float] | None,
        vector_threshold: float | None,
    ) -> LocalQuery:
        return LocalQuery(
            text=parameters.query_text,
            text_fields=text_fields,
            filter=predicate,
            facets=facets,
            sort=sort,
            boosts=boosts,
            skip=parameters.skip,
            take=parameters.take,
        )


_MIN_VECTOR_NEIGHBOURS = 50


class CloudQueryTranslator(QueryTranslator):
    """Produce JSON search bodies for the cloud keyword+vector service."""

    backend = Backend.CLOUD

    def __init__(self, vector_field: FieldDefinition | None = None, *, default_threshold: float | None = None) -> None:
        self.vector_field = vector_field
        self.supports_vectors = vector_field is not None
        self.default_threshold = default_threshold
        if vector_field is not None and vector_field.value_type != ValueType.VECTOR:
            msg = f"Field '{vector_field.name}' is not a vector field"
            raise ValueError(msg)

    def _render(
        self,
        parameters: SearchParameters,
        *,
        predicate: Predicate | None,
        facets: tuple[FacetRequest, ...],
        sort: tuple[SortKey, ...],
        boosts: tuple[BoostClause, ...],
        text_fields: tuple[tuple[str, str | None], ...],
        vector: Sequence[float] | None,
        vector_threshold: float | None,
    ) -> CloudQuery:
        body: dict[str, Any] = {
            "count": True,
            "skip": parameters.skip,
            "top": parameters.take,
        }
        text = escape_lucene(parameters.query_text) or "*"
        body["queryType"] = "full"
        body["search"] = self._boosted_search(text, boosts) if boosts else text
        if text_fields:
            body["searchFields"] = ",".join(name for name, _analyzer in text_fields)
        if predicate is not None:
            body["filter"] = render_odata(predicate)
        if facets:
            body["facets"] = [f"{facet.physical_name},count:{facet.size}" for facet in facets]
        body["orderby"] = ",".join(_render_sort(key) for key in sort)
        if vector is not None and self.vector_field is not None:
            body["vectorQueries"] = [self._vector_query(parameters, vector, vector_threshold)]
        return CloudQuery(body=body, facets=facets)

    def _boost_clause(self, boost: BoostOption, language: str | None) -> BoostClause:
        # Fielded Lucene clauses only match searchable fields
        self._require_capability(boost.field, "searchable", language)
        return super()._boost_clause(boost, language)

    def _boosted_search(self, text: str, boosts: tuple[BoostClause, ...]) -> str:
        # The text clause is required so boosts only re-rank documents it already matches
        clauses = [f"+({text})"]
        for clause in boosts:
            term = clause.predicate
            value = str(term.value).lower() if isinstance(term.value, bool) else str(term.value)
            clauses.append(f'{term.field}:"{_escape_phrase(value)}"^{_format_weight(clause.weight)}')
        return " ".join(clauses)

    def _vector_query(
        self, parameters: SearchParameters, vector: Sequence[float], threshold: float | None
    ) -> dict[str, Any]:
        assert self.vector_field is not None
        query: dict[str, Any] = {
            "kind": "vector",
            "vector": [float(value) for value in vector],
            "fields": self.vector_field.physical_name(Backend.CLOUD),
            "k": max(parameters.skip + parameters.take, _MIN_VECTOR_NEIGHBOURS),
        }
        if threshold is None:
            threshold = self.default_threshold
        if threshold is not None:
            query["threshold"] = {"kind": "vectorSimilarity", "value": threshold}
        return query


def _render_sort(key: SortKey) -> str:
    direction = "desc" if key.descending else "asc"
    if key.field is None:
        return f"search.score() {direction}"
    return f"{key.field} {direction}"


def _format_weight(weight: float) -> str:
    return str(int(weight)) if float(weight).is_integer() else repr(weight)


_LUCENE_SPECIAL = re.compile(r'([+\-&|!(){}\[\]^"~*?:\\/])')


def escape_lucene(text: str) -> str:
    """Backslash-escape full-syntax operators so user text is searched literally."""
    return _LUCENE_SPECIAL.sub(r"\\\1", text)


def _escape_phrase(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def odata_literal(value: Any) -> str:
    """Render a Python value as an OData literal."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    escaped = str(value).replace("'", "''")
    return f"'{escaped}'"


def render_odata(predicate: Predicate) -> str:
    """Render a predicate tree as an OData ``$filter`` expression."""

    if isinstance(predicate, TermPredicate):
        if predicate.collection:
            return f"{predicate.field}/any(v: v eq {odata_literal(predicate.value)})"
        return f"{predicate.field} eq {odata_literal(predicate.value)}"
    if isinstance(predicate, RangePredicate):
        parts: list[str] = []
        if predicate.minimum is not None:
            operator = "ge" if predicate.include_minimum else "gt"
            parts.append(f"{predicate.field} {operator} {predicate.minimum}")
        if predicate.maximum is not None:
            operator = "le" if predicate.include_maximum else "lt"
            parts.append(f"{predicate.field} {operator} {predicate.maximum}")
        return parts[0] if len(parts) == 1 else f"({' and '.join(parts)})"
    if isinstance(predicate, Not):
        inner = predicate.predicate
        if isinstance(inner, TermPredicate) and not inner.collection:
            return f"{inner.field} ne {odata_literal(inner.value)}"
        return f"not ({render_odata(predicate.predicate)})"
    if isinstance(predicate, AnyOf):
        search_in = _render_search_in(predicate)
        if search_in is not None:
            return search_in
        return "(" + " or ".join(render_odata(child) for child in predicate.predicates) + ")"
    return "(" + " and ".join(render_odata(child) for child in predicate.predicates) + ")"


def _render_search_in(predicate: AnyOf) -> str | None:
    """Collapse OR-ed string equality on one scalar field into ``search.in``."""

    terms = predicate.predicates
    if not all(isinstance(term, TermPredicate) and not term.collection for term in terms):
        return None
    fields = {term.field for term in terms}  # type: ignore[union-attr]
    values = [term.value for term in terms]  # type: ignore[union-attr]
    if len(fields) != 1 or not all(isinstance(value, str) and "|" not in value for value in values):
        return None
    joined = "|".join(values).replace("'", "''")
    return f"search.in({fields.pop()}, '{joined}', '|')"
