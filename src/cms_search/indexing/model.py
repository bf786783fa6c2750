"""In-memory document under construction for one item and one indexing pass."""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

from cms_search.domain.fields import Backend, FieldDefinition
from cms_search.errors import ValueTypeMismatchError


class IndexingModel:
    """
    Field -> value map built incrementally by converters.

    Values are keyed by ``(field, language)``; ``language=None`` holds the
    invariant value. Writing a key twice replaces the earlier value, so a later
    converter can override a core field. Values are type-checked on write.
    """

    def __init__(self, item_id: str, index_name: str, languages: tuple[str, ...] = ()) -> None:
        self.item_id = item_id
        self.index_name = index_name
        self.languages = languages
        self._values: dict[tuple[FieldDefinition, str | None], Any] = {}

    def set(self, field_definition: FieldDefinition, value: Any, *, language: str | None = None) -> None:
        """Set the value of a field, optionally for one language of a multi-language field."""

        if language is not None and not field_definition.multi_language:
            msg = f"Field '{field_definition.name}' is not multi-language"
            raise ValueError(msg)
        if not field_definition.accepts(value):
            raise ValueTypeMismatchError(field_definition.name, field_definition.value_type.value, value)
        if isinstance(value, list):
            value = tuple(value)
        self._values[(field_definition, language)] = value

    def remove(self, field_definition: FieldDefinition, *, language: str | None = None) -> None:
        self._values.pop((field_definition, language), None)

    def get(self, field_definition: FieldDefinition, *, language: str | None = None, default: Any = None) -> Any:
        return self._values.get((field_definition, language), default)

    def __contains__(self, field_definition: object) -> bool:
        return any(key_field == field_definition for key_field, _ in self._values)

    def __len__(self) -> int:
        return len(self._values)

    def items(self) -> Iterator[tuple[FieldDefinition, str | None, Any]]:
        for (field_definition, language), value in self._values.items():
            yield field_definition, language, value

    def to_field_map(self, backend: Backend) -> dict[str, Any]:
        """Flatten to physical field names for a backend.

        Language values land on suffixed names. Fields without a representation
        on the backend are left out.
        """

        field_map: dict[str, Any] = {}
        for field_definition, language, value in self.items():
            if not field_definition.supports(backend):
                continue
            if isinstance(value, tuple):
                value = list(value)
            field_map[field_definition.physical_name(backend, language)] = value
        return field_map
