"""Field definitions and item builders shared by the unit tests."""

from datetime import datetime, timezone

from cms_search.domain.fields import FieldDefinition, ValueType
from cms_search.domain.items import ContentItem, ItemKind
from cms_search.indexing.converters import ConverterRegistry, PropertyConverter


TAGS = FieldDefinition.create("Tags", ValueType.TEXT_ARRAY, filterable=True, facetable=True)
TITLE = FieldDefinition.create("Title", ValueType.TEXT, searchable=True, multi_language=True)
BODY = FieldDefinition.create("Body", ValueType.TEXT, searchable=True)
CATEGORY = FieldDefinition.create("Category", ValueType.TEXT, filterable=True, facetable=True, sortable=True)
PRIORITY = FieldDefinition.create("Priority", ValueType.INTEGER, filterable=True, sortable=True, facetable=True)
EMBEDDING = FieldDefinition.create("ContentVector", ValueType.VECTOR, searchable=True, vector_dimensions=3)

INDEX = "content"
PREVIEW_INDEX = "preview"


def make_item(item_id: str, alias: str = "page", **kwargs) -> ContentItem:
    kwargs.setdefault("path", ("-1", item_id))
    kwargs.setdefault("updated_at", datetime(2024, 1, 1, tzinfo=timezone.utc))
    kwargs.setdefault("kind", ItemKind.CONTENT)
    return ContentItem(id=item_id, alias=alias, **kwargs)


def build_registry() -> ConverterRegistry:
    registry = ConverterRegistry()
    registry.register(PropertyConverter(TAGS, "tags"))
    registry.register(PropertyConverter(TITLE, "title"))
    registry.register(PropertyConverter(BODY, "body"))
    registry.register(PropertyConverter(CATEGORY, "category"))
    registry.register(PropertyConverter(PRIORITY, "priority"))
    return registry
