"""Content and media items supplied by the host CMS.

The indexing pipeline only reads items; it never mutates them.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol, runtime_checkable


class ItemKind(str, Enum):
    """Kinds of items the host can index."""

    CONTENT = "content"
    MEDIA = "media"


@runtime_checkable
class IndexableItem(Protocol):
    """Protocol implemented by host items handed to the indexing orchestrator."""

    @property
    def id(self) -> str: ...

    @property
    def kind(self) -> ItemKind: ...

    @property
    def alias(self) -> str: ...

    @property
    def path(self) -> tuple[str, ...]: ...

    @property
    def updated_at(self) -> datetime: ...

    def name(self, language: str | None = None) -> str | None: ...

    def value(self, property_alias: str, language: str | None = None) -> Any: ...


@dataclass(frozen=True)
class ContentItem:
    """
    Plain implementation of ``IndexableItem``.

    Args:
        id: Item identifier, used as the document id
        alias: Content or media type alias
        path: Ancestor ids from the root down to and including the item itself
        kind: Content or media
        names: Per-language names; the ``None`` key holds the invariant name
        properties: Invariant property values keyed by alias
        culture_properties: Per-language property values, ``{language: {alias: value}}``
        updated_at: Last modification time
    """

    id: str
    alias: str
    path: tuple[str, ...] = ()
    kind: ItemKind = ItemKind.CONTENT
    names: Mapping[str | None, str] = field(default_factory=dict)
    properties: Mapping[str, Any] = field(default_factory=dict)
    culture_properties: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def name(self, language: str | None = None) -> str | None:
        return self.names.get(language)

    def value(self, property_alias: str, language: str | None = None) -> Any:
        if language is None:
            return self.properties.get(property_alias)
        return self.culture_properties.get(language, {}).get(property_alias)
