"""Provider-agnostic query model.

Value objects are immutable (frozen=True). Field references are
``FieldDefinition`` instances resolved by the caller through
``SearchService.get_field_definitions`` before the parameters are built, so
the translators never look fields up by user-supplied name.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, InstanceOf, model_validator

from cms_search.domain.fields import FieldDefinition, ValueType


FieldRef = InstanceOf[FieldDefinition]
FilterValue = bool | int | str


class SortDirection(str, Enum):
    ASCENDING = "asc"
    DESCENDING = "desc"


class FilterCombination(str, Enum):
    """How predicates inside one filter specification are combined."""

    AND = "and"
    OR = "or"


class FullTextSearch(BaseModel):
    """Full-text part of a request; an empty query matches every document."""

    model_config = ConfigDict(frozen=True)

    query: str = ""
    enable_hybrid: bool = False
    vector_similarity_threshold: float | None = Field(default=None, ge=0.0, le=1.0)


class ValueFilter(BaseModel):
    """
    Value-set filter over one or more fields.

    Every (field, value) pair becomes a term predicate. Predicates are OR-ed
    unless ``combination`` is AND. ``exclude`` negates the whole specification.
    """

    model_config = ConfigDict(frozen=True)

    fields: tuple[FieldRef, ...] = Field(min_length=1)
    values: tuple[FilterValue, ...] = Field(min_length=1)
    combination: FilterCombination = FilterCombination.OR
    exclude: bool = False


class RangeFilter(BaseModel):
    """Typed numeric range over a single integer or long field."""

    model_config = ConfigDict(frozen=True)

    field: FieldRef
    minimum: int | None = None
    maximum: int | None = None
    include_minimum: bool = True
    include_maximum: bool = True

    @model_validator(mode="after")
    def _check_bounds(self) -> RangeFilter:
        if self.field.value_type not in {ValueType.INTEGER, ValueType.LONG}:
            msg = f"Range filters require a numeric field, '{self.field.name}' is {self.field.value_type.value}"
            raise ValueError(msg)
        if self.minimum is None and self.maximum is None:
            raise ValueError("Range filters need at least one bound")
        if self.minimum is not None and self.maximum is not None and self.minimum > self.maximum:
            raise ValueError("Range minimum must not exceed maximum")
        return self


Filter = ValueFilter | RangeFilter


class Ordering(BaseModel):
    """One link of the ordering chain; ``field=None`` orders by relevance score."""

    model_config = ConfigDict(frozen=True)

    field: FieldRef | None = None
    direction: SortDirection = SortDirection.DESCENDING

    @classmethod
    def by_score(cls, direction: SortDirection = SortDirection.DESCENDING) -> Ordering:
        return cls(field=None, direction=direction)

    @property
    def is_score(self) -> bool:
        return self.field is None


class BoostOption(BaseModel):
    """Raise the score of documents where ``field == value``.

    The cloud backend renders boosts as fielded full-text clauses, so there the
    field must be searchable; other fields fail translation with ``TranslationError``.
    """

    model_config = ConfigDict(frozen=True)

    field: FieldRef
    value: FilterValue
    boost: float = Field(gt=0.0)


class SearchParameters(BaseModel):
    """Complete description of a search request."""

    model_config = ConfigDict(frozen=True)

    full_text_search: FullTextSearch = Field(default_factory=FullTextSearch)
    filters: tuple[Filter, ...] = ()
    facet_on: tuple[FieldRef, ...] = ()
    facet_size: int = Field(default=100, ge=1)
    orderings: tuple[Ordering, ...] = ()
    boosts: tuple[BoostOption, ...] = ()
    aliases: tuple[str, ...] = ()
    root: str | None = None
    skip: int = Field(default=0, ge=0)
    take: int = Field(default=10, ge=0)
    index_name: str | None = None
    language_iso_code: str | None = None
    include_excluded: bool = False

    @property
    def query_text(self) -> str:
        return self.full_text_search.query.strip()

    @property
    def effective_orderings(self) -> tuple[Ordering, ...]:
        """Ordering chain, defaulting to relevance when the caller gave none."""
        return self.orderings or (Ordering.by_score(),)
