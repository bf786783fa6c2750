"""Typed search results.

Raw hits are kept as untyped field maps; result models read them through
``SearchHit.value_for``, which converts backend-native values to the field's
declared type and yields the type's empty value for anything absent or
unreadable. Result models therefore keep working while the index schema grows.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Generic, Protocol, TypeVar

from pydantic import BaseModel, ConfigDict

from cms_search.domain.fields import Backend, CoreFields, FieldDefinition, ValueType


_TRUE_STRINGS = frozenset({"true", "1", "yes"})
_FALSE_STRINGS = frozenset({"false", "0", "no"})
_INT_LIMITS = {
    ValueType.INTEGER: (-(2**31), 2**31 - 1),
    ValueType.LONG: (-(2**63), 2**63 - 1),
}


def coerce_value(value_type: ValueType, raw: Any) -> Any:
    """Convert a backend-native value to ``value_type`` or return its empty value."""

    empty = value_type.empty_value()
    if raw is None:
        return empty
    if value_type == ValueType.TEXT:
        if isinstance(raw, str):
            return raw
        if isinstance(raw, (int, float)) and not isinstance(raw, bool):
            return str(raw)
        return empty
    if value_type in _INT_LIMITS:
        return _coerce_int(value_type, raw)
    if value_type == ValueType.BOOLEAN:
        return _coerce_bool(raw)
    if value_type == ValueType.TEXT_ARRAY:
        if isinstance(raw, str):
            return (raw,)
        if isinstance(raw, (list, tuple)) and all(isinstance(item, str) for item in raw):
            return tuple(raw)
        return empty
    if isinstance(raw, (list, tuple)):
        try:
            return tuple(float(item) for item in raw)
        except (TypeError, ValueError):
            return empty
    return empty


def _coerce_int(value_type: ValueType, raw: Any) -> int:
    if isinstance(raw, bool):
        return 0
    if isinstance(raw, int):
        value = raw
    elif isinstance(raw, float) and raw.is_integer():
        value = int(raw)
    elif isinstance(raw, str):
        try:
            value = int(raw.strip())
        except ValueError:
            return 0
    else:
        return 0
    low, high = _INT_LIMITS[value_type]
    return value if low <= value <= high else 0


def _coerce_bool(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, int):
        return raw == 1
    if isinstance(raw, str):
        lowered = raw.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    return False


@dataclass(frozen=True)
class SearchHit:
    """One raw hit: physical field map plus relevance score."""

    document_id: str
    values: Mapping[str, Any]
    score: float
    backend: Backend
    language: str | None = None

    def value_for(
        self,
        field_definition: FieldDefinition,
        as_type: ValueType | None = None,
        *,
        language: str | None = None,
    ) -> Any:
        """Return the typed value of a field, or the empty value when unavailable.

        Args:
            field_definition: Field to read
            as_type: Type the caller expects; a mismatch with the declared type yields its empty value
            language: Language override for multi-language fields (defaults to the request language)
        """

        target = as_type or field_definition.value_type
        if target != field_definition.value_type:
            return target.empty_value()
        physical = field_definition.representation(self.backend)
        if physical is None:
            return target.empty_value()
        name = field_definition.physical_name(self.backend, language or self.language)
        return coerce_value(target, self.values.get(name))


@dataclass(frozen=True)
class FacetValue:
    value: Any
    count: int


class ResultModel(Protocol):
    """Typed result built from a raw hit."""

    @classmethod
    def from_hit(cls, hit: SearchHit) -> ResultModel: ...


T = TypeVar("T")


@dataclass(frozen=True)
class SearchResult(Generic[T]):
    """Materialized result page with total count and facet counts per field name."""

    items: tuple[T, ...]
    total: int
    facets: Mapping[str, tuple[FacetValue, ...]] = field(default_factory=dict)
    hybrid_state: str = "keyword_only"

    def facet(self, field_definition: FieldDefinition) -> dict[Any, int]:
        """Return facet counts for a field as a plain ``{value: count}`` mapping."""
        return {entry.value: entry.count for entry in self.facets.get(field_definition.name, ())}


class ContentResult(BaseModel):
    """Stock result model exposing the core fields of an indexed item."""

    model_config = ConfigDict(frozen=True)

    id: str
    item_type: str
    alias: str
    name: str
    path: tuple[str, ...]
    update_date: int
    score: float

    @classmethod
    def from_hit(cls, hit: SearchHit) -> ContentResult:
        return cls(
            id=hit.value_for(CoreFields.ID) or hit.document_id,
            item_type=hit.value_for(CoreFields.ITEM_TYPE),
            alias=hit.value_for(CoreFields.ALIAS),
            name=hit.value_for(CoreFields.NAME),
            path=hit.value_for(CoreFields.PATH),
            update_date=hit.value_for(CoreFields.UPDATE_DATE),
            score=hit.score,
        )
