"""
Field definitions shared by the indexing and query paths.

A field definition describes one logical field and its physical shape on each
supported backend:
- Backend: identifies the local inverted-index engine or the cloud service
- ValueType: the semantic type of values stored in the field
- PhysicalField: backend-native name, type and capability flags
- FieldDefinition: the immutable logical descriptor, optionally multi-language

Definitions are created once at import/startup and shared by reference across
the converter registry, every indexed document and every query.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from numbers import Real
from typing import Any

from cms_search.errors import TranslationError


_INT32_MIN, _INT32_MAX = -(2**31), 2**31 - 1
_INT64_MIN, _INT64_MAX = -(2**63), 2**63 - 1


class Backend(str, Enum):
    """Search backends a field can be represented on."""

    LOCAL = "local"
    CLOUD = "cloud"


class ValueType(str, Enum):
    """Semantic value types supported by field definitions."""

    TEXT = "text"
    INTEGER = "integer"
    LONG = "long"
    BOOLEAN = "boolean"
    TEXT_ARRAY = "text_array"
    VECTOR = "vector"

    @property
    def is_array(self) -> bool:
        return self in {ValueType.TEXT_ARRAY, ValueType.VECTOR}

    def empty_value(self) -> Any:
        """Return the zero value used for absent or unreadable values."""
        return _EMPTY_VALUES[self]


_EMPTY_VALUES: dict[ValueType, Any] = {
    ValueType.TEXT: "",
    ValueType.INTEGER: 0,
    ValueType.LONG: 0,
    ValueType.BOOLEAN: False,
    ValueType.TEXT_ARRAY: (),
    ValueType.VECTOR: (),
}

# Native type name -> semantic type, per backend
NATIVE_TYPES: dict[Backend, dict[str, ValueType]] = {
    Backend.LOCAL: {
        "fulltext": ValueType.TEXT,
        "raw": ValueType.TEXT,
        "int": ValueType.INTEGER,
        "long": ValueType.LONG,
        "bool": ValueType.BOOLEAN,
        "fulltext_array": ValueType.TEXT_ARRAY,
        "raw_array": ValueType.TEXT_ARRAY,
    },
    Backend.CLOUD: {
        "Edm.String": ValueType.TEXT,
        "Edm.Int32": ValueType.INTEGER,
        "Edm.Int64": ValueType.LONG,
        "Edm.Boolean": ValueType.BOOLEAN,
        "Collection(Edm.String)": ValueType.TEXT_ARRAY,
        "Collection(Edm.Single)": ValueType.VECTOR,
    },
}


@dataclass(frozen=True)
class FieldCapabilities:
    """Capability flags of a physical field."""

    searchable: bool = False
    filterable: bool = False
    sortable: bool = False
    facetable: bool = False
    key: bool = False

    def to_dict(self) -> dict[str, bool]:
        return {
            "searchable": self.searchable,
            "filterable": self.filterable,
            "sortable": self.sortable,
            "facetable": self.facetable,
            "key": self.key,
        }


@dataclass(frozen=True)
class PhysicalField:
    """
    Backend-native shape of a logical field.

    Args:
        name: Base physical field name (language suffixes are derived from it)
        native_type: Backend-native type name (see ``NATIVE_TYPES``)
        capabilities: What the backend can do with the field
        analyzer_name: Text analyzer for searchable local fields (default: standard)
        dimensions: Vector dimensions for vector fields
    """

    name: str
    native_type: str
    capabilities: FieldCapabilities = field(default_factory=FieldCapabilities)
    analyzer_name: str | None = None
    dimensions: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "native_type": self.native_type,
            **self.capabilities.to_dict(),
        }
        if self.analyzer_name:
            data["analyzer_name"] = self.analyzer_name
        if self.dimensions is not None:
            data["dimensions"] = self.dimensions
        return data


def language_field_name(base_name: str, language: str | None) -> str:
    """Return the physical name of a field for a language (``name_<iso>``)."""
    if not language:
        return base_name
    return f"{base_name}_{language.lower()}"


@dataclass(frozen=True)
class FieldDefinition:
    """
    Logical field with one physical representation per backend.

    Example:
        tags = FieldDefinition.create("Tags", ValueType.TEXT_ARRAY, filterable=True, facetable=True)
        tags.physical_name(Backend.CLOUD)  # "Tags"

        title = FieldDefinition.create("Title", ValueType.TEXT, searchable=True, multi_language=True)
        title.physical_name(Backend.LOCAL, "da-DK")  # "Title_da-dk"
    """

    name: str
    value_type: ValueType
    representations: tuple[tuple[Backend, PhysicalField], ...]
    multi_language: bool = False

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            msg = "Field name must not be empty"
            raise ValueError(msg)
        seen: set[Backend] = set()
        for backend, physical in self.representations:
            if backend in seen:
                msg = f"Field '{self.name}' declares backend '{backend.value}' twice"
                raise ValueError(msg)
            seen.add(backend)
            native = NATIVE_TYPES[backend].get(physical.native_type)
            if native is None:
                msg = f"Field '{self.name}': unknown {backend.value} native type '{physical.native_type}'"
                raise ValueError(msg)
            if native != self.value_type:
                msg = (
                    f"Field '{self.name}': {backend.value} type '{physical.native_type}' "
                    f"is {native.value}, expected {self.value_type.value}"
                )
                raise ValueError(msg)
        if self.multi_language and self.value_type == ValueType.VECTOR:
            msg = f"Field '{self.name}': vector fields cannot be multi-language"
            raise ValueError(msg)

    @classmethod
    def create(
        cls,
        name: str,
        value_type: ValueType,
        *,
        searchable: bool = False,
        filterable: bool = False,
        sortable: bool = False,
        facetable: bool = False,
        key: bool = False,
        multi_language: bool = False,
        analyzer_name: str | None = None,
        vector_dimensions: int | None = None,
    ) -> FieldDefinition:
        """Build a definition with default native types on every backend that supports the value type."""

        capabilities = FieldCapabilities(
            searchable=searchable,
            filterable=filterable,
            sortable=sortable,
            facetable=facetable,
            key=key,
        )
        representations: list[tuple[Backend, PhysicalField]] = []
        local_type = _default_local_type(value_type, searchable)
        if local_type is not None:
            representations.append(
                (Backend.LOCAL, PhysicalField(name, local_type, capabilities, analyzer_name=analyzer_name))
            )
        representations.append(
            (
                Backend.CLOUD,
                PhysicalField(name, _default_cloud_type(value_type), capabilities, dimensions=vector_dimensions),
            )
        )
        return cls(name, value_type, tuple(representations), multi_language=multi_language)

    def representation(self, backend: Backend) -> PhysicalField | None:
        for candidate, physical in self.representations:
            if candidate == backend:
                return physical
        return None

    def require(self, backend: Backend) -> PhysicalField:
        """Return the physical field for a backend or raise a ``TranslationError``."""
        physical = self.representation(backend)
        if physical is None:
            raise TranslationError(self.name, f"has no representation on the {backend.value} backend")
        return physical

    def supports(self, backend: Backend) -> bool:
        return self.representation(backend) is not None

    def physical_name(self, backend: Backend, language: str | None = None) -> str:
        """Return the physical field name, suffixed for multi-language fields when a language is given."""
        base = self.require(backend).name
        if self.multi_language:
            return language_field_name(base, language)
        return base

    def accepts(self, value: Any) -> bool:
        """Return True when the value matches this field's semantic type."""
        return _matches_type(self.value_type, value)

    def empty_value(self) -> Any:
        return self.value_type.empty_value()

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "value_type": self.value_type.value,
            "multi_language": self.multi_language,
            "representations": {backend.value: physical.to_dict() for backend, physical in self.representations},
        }


def _default_local_type(value_type: ValueType, searchable: bool) -> str | None:
    if value_type == ValueType.TEXT:
        return "fulltext" if searchable else "raw"
    if value_type == ValueType.TEXT_ARRAY:
        return "fulltext_array" if searchable else "raw_array"
    if value_type == ValueType.INTEGER:
        return "int"
    if value_type == ValueType.LONG:
        return "long"
    if value_type == ValueType.BOOLEAN:
        return "bool"
    return None  # no vector support on the local engine


def _default_cloud_type(value_type: ValueType) -> str:
    return {
        ValueType.TEXT: "Edm.String",
        ValueType.INTEGER: "Edm.Int32",
        ValueType.LONG: "Edm.Int64",
        ValueType.BOOLEAN: "Edm.Boolean",
        ValueType.TEXT_ARRAY: "Collection(Edm.String)",
        ValueType.VECTOR: "Collection(Edm.Single)",
    }[value_type]


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _matches_type(value_type: ValueType, value: Any) -> bool:
    if value_type == ValueType.TEXT:
        return isinstance(value, str)
    if value_type == ValueType.INTEGER:
        return _is_int(value) and _INT32_MIN <= value <= _INT32_MAX
    if value_type == ValueType.LONG:
        return _is_int(value) and _INT64_MIN <= value <= _INT64_MAX
    if value_type == ValueType.BOOLEAN:
        return isinstance(value, bool)
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        return False
    if value_type == ValueType.TEXT_ARRAY:
        return all(isinstance(item, str) for item in value)
    return all(isinstance(item, Real) and not isinstance(item, bool) for item in value)


class CoreFields:
    """Fields written for every content and media item."""

    # Searchable on the cloud side so fielded boosts can target a document id
    ID = FieldDefinition(
        "Id",
        ValueType.TEXT,
        (
            (Backend.LOCAL, PhysicalField("Id", "raw", FieldCapabilities(filterable=True, key=True))),
            (
                Backend.CLOUD,
                PhysicalField("Id", "Edm.String", FieldCapabilities(searchable=True, filterable=True, key=True)),
            ),
        ),
    )
    ITEM_TYPE = FieldDefinition.create("ItemType", ValueType.TEXT, filterable=True, facetable=True)
    ALIAS = FieldDefinition.create("Alias", ValueType.TEXT, filterable=True, facetable=True)
    PATH = FieldDefinition.create("Path", ValueType.TEXT_ARRAY, filterable=True)
    NAME = FieldDefinition.create("Name", ValueType.TEXT, searchable=True, sortable=True, multi_language=True)
    UPDATE_DATE = FieldDefinition.create("UpdateDate", ValueType.LONG, filterable=True, sortable=True)
    LEVEL = FieldDefinition.create("Level", ValueType.INTEGER, filterable=True, sortable=True)
    EXCLUDED_FROM_SEARCH = FieldDefinition.create("ExcludedFromSearch", ValueType.BOOLEAN, filterable=True)

    @classmethod
    def all(cls) -> tuple[FieldDefinition, ...]:
        return (
            cls.ID,
            cls.ITEM_TYPE,
            cls.ALIAS,
            cls.PATH,
            cls.NAME,
            cls.UPDATE_DATE,
            cls.LEVEL,
            cls.EXCLUDED_FROM_SEARCH,
        )
