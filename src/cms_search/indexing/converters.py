"""
Converters contribute field definitions and computed values to the index.

A converter declares its fields once and computes values for every item on
every indexing pass. Converters run in ascending ``order`` (ties keep their
registration order) against one shared ``IndexingModel``, so a later converter
can override what an earlier one wrote.

Example:
    registry = ConverterRegistry()
    registry.register(PropertyConverter(TITLE, "title")).register(TagsConverter())
    registry.freeze()
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
import logging

from cms_search.domain.fields import CoreFields, FieldDefinition
from cms_search.domain.items import IndexableItem, ItemKind
from cms_search.errors import ConfigurationError, FieldRegistrationError
from cms_search.indexing.model import IndexingModel


logger = logging.getLogger(__name__)


class Converter(ABC):
    """Extension point for contributing fields to indexed documents.

    Converters must not keep per-item state; one instance serves concurrent
    indexing passes.
    """

    order: int = 0
    applicable_indexes: frozenset[str] = frozenset()

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    def declare_fields(self) -> Iterable[FieldDefinition]:
        """Return every field this converter may write."""

    def compute_for_content(self, item: IndexableItem, model: IndexingModel) -> None:
        """Write computed values for a content item."""

    def compute_for_media(self, item: IndexableItem, model: IndexingModel) -> None:
        """Write computed values for a media item."""

    def applies_to(self, index_name: str) -> bool:
        return not self.applicable_indexes or index_name in self.applicable_indexes

    def compute(self, item: IndexableItem, model: IndexingModel) -> None:
        if item.kind == ItemKind.MEDIA:
            self.compute_for_media(item, model)
        else:
            self.compute_for_content(item, model)


class CoreFieldsConverter(Converter):
    """Writes the core fields every query relies on (id, type, path, names, dates)."""

    order = -1000

    def declare_fields(self) -> Iterable[FieldDefinition]:
        return CoreFields.all()

    def compute_for_content(self, item: IndexableItem, model: IndexingModel) -> None:
        self._write(item, model)

    def compute_for_media(self, item: IndexableItem, model: IndexingModel) -> None:
        self._write(item, model)

    def _write(self, item: IndexableItem, model: IndexingModel) -> None:
        model.set(CoreFields.ID, item.id)
        model.set(CoreFields.ITEM_TYPE, item.kind.value)
        model.set(CoreFields.ALIAS, item.alias)
        model.set(CoreFields.PATH, tuple(item.path))
        model.set(CoreFields.LEVEL, len(item.path))
        model.set(CoreFields.UPDATE_DATE, int(item.updated_at.timestamp()))
        model.set(CoreFields.EXCLUDED_FROM_SEARCH, False)

        invariant_name = item.name()
        if invariant_name:
            model.set(CoreFields.NAME, invariant_name)
        for language in model.languages:
            name = item.name(language)
            if name:
                model.set(CoreFields.NAME, name, language=language)


class PropertyConverter(Converter):
    """
    Copies one item property into one field.

    Multi-language fields receive one value per indexed language; languages the
    item has no value for are left absent.

    Args:
        field_definition: Target field
        property_alias: Property to read from the item
        order: Execution priority (lower runs first)
        applicable_indexes: Index names this converter runs for (empty = all)
        kinds: Item kinds the converter applies to
    """

    def __init__(
        self,
        field_definition: FieldDefinition,
        property_alias: str,
        *,
        order: int = 0,
        applicable_indexes: Iterable[str] = (),
        kinds: Iterable[ItemKind] = (ItemKind.CONTENT, ItemKind.MEDIA),
    ) -> None:
        self.field_definition = field_definition
        self.property_alias = property_alias
        self.order = order
        self.applicable_indexes = frozenset(applicable_indexes)
        self.kinds = frozenset(kinds)

    @property
    def name(self) -> str:
        return f"{type(self).__name__}({self.property_alias}->{self.field_definition.name})"

    def declare_fields(self) -> Iterable[FieldDefinition]:
        return (self.field_definition,)

    def compute_for_content(self, item: IndexableItem, model: IndexingModel) -> None:
        if ItemKind.CONTENT in self.kinds:
            self._copy(item, model)

    def compute_for_media(self, item: IndexableItem, model: IndexingModel) -> None:
        if ItemKind.MEDIA in self.kinds:
            self._copy(item, model)

    def _copy(self, item: IndexableItem, model: IndexingModel) -> None:
        invariant = item.value(self.property_alias)
        if invariant is not None:
            model.set(self.field_definition, invariant)
        if not self.field_definition.multi_language:
            return
        for language in model.languages:
            value = item.value(self.property_alias, language)
            if value is not None:
                model.set(self.field_definition, value, language=language)


class ConverterRegistry:
    """
    Ordered collection of converters, built once at startup.

    ``register`` returns the registry so registrations can be chained. The
    registry is read-only after ``freeze``; freezing rejects fields declared by
    several converters with conflicting definitions.
    """

    def __init__(self, *, include_core_fields: bool = True) -> None:
        self._converters: list[Converter] = []
        self._fields: dict[str, FieldDefinition] = {}
        self._frozen = False
        if include_core_fields:
            self.register(CoreFieldsConverter())

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, converter: Converter) -> ConverterRegistry:
        if self._frozen:
            msg = f"Cannot register {converter.name}: registry is frozen"
            raise ConfigurationError(msg)
        self._converters.append(converter)
        return self

    def freeze(self) -> ConverterRegistry:
        """Validate declared fields and make the registry read-only."""

        if self._frozen:
            return self
        fields: dict[str, FieldDefinition] = {}
        owners: dict[str, str] = {}
        for converter in self._converters:
            for field_definition in converter.declare_fields():
                existing = fields.get(field_definition.name)
                if existing is None:
                    fields[field_definition.name] = field_definition
                    owners[field_definition.name] = converter.name
                    continue
                if existing == field_definition:
                    continue
                if existing.value_type != field_definition.value_type:
                    reason = (
                        f"declared as {existing.value_type.value} by {owners[field_definition.name]} "
                        f"and as {field_definition.value_type.value} by {converter.name}"
                    )
                else:
                    owner = owners[field_definition.name]
                    reason = f"declared with different definitions by {owner} and {converter.name}"
                raise FieldRegistrationError(field_definition.name, reason)
        self._fields = fields
        self._frozen = True
        logger.info("Converter registry frozen: %d converters, %d fields", len(self._converters), len(fields))
        return self

    def converters_for(self, index_name: str) -> list[Converter]:
        """Return applicable converters in execution order."""
        applicable = [converter for converter in self._converters if converter.applies_to(index_name)]
        return sorted(applicable, key=lambda converter: converter.order)

    def field_definitions(self, index_name: str | None = None) -> dict[str, FieldDefinition]:
        """Return declared fields by name, optionally limited to converters applicable to an index."""

        self.freeze()
        if index_name is None:
            return dict(self._fields)
        names: dict[str, FieldDefinition] = {}
        for converter in self.converters_for(index_name):
            for field_definition in converter.declare_fields():
                names.setdefault(field_definition.name, field_definition)
        return names

    def __len__(self) -> int:
        return len(self._converters)
