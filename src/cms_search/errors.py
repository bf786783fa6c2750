"""Error taxonomy shared by the indexing and search paths."""

from __future__ import annotations


class SearchError(Exception):
    """Base error for the search layer."""


class ConfigurationError(SearchError):
    """Raised for missing backends, unknown indexes or malformed settings."""


class UnknownIndexError(ConfigurationError):
    """Raised when an operation targets an index that is not managed."""

    def __init__(self, index_name: str, managed: tuple[str, ...] = ()) -> None:
        self.index_name = index_name
        self.managed = managed
        msg = f"Unknown index '{index_name}'. Managed indexes: {sorted(managed)}"
        super().__init__(msg)


class FieldRegistrationError(ConfigurationError):
    """Raised when converters declare conflicting definitions for one field."""

    def __init__(self, field_name: str, reason: str) -> None:
        self.field_name = field_name
        super().__init__(f"Field '{field_name}': {reason}")


class ConverterError(SearchError):
    """Raised when a converter fails while computing fields for an item."""

    def __init__(self, item_id: str, converter: str, index_name: str) -> None:
        self.item_id = item_id
        self.converter = converter
        self.index_name = index_name
        msg = f"Converter {converter} failed for item '{item_id}' in index '{index_name}'"
        super().__init__(msg)


class TranslationError(SearchError):
    """Raised when a query references a field the active backend cannot serve."""

    def __init__(self, field_name: str, reason: str) -> None:
        self.field_name = field_name
        self.reason = reason
        super().__init__(f"Field '{field_name}' {reason}")


class ValueTypeMismatchError(SearchError, TypeError):
    """Raised when a value does not match the declared type of its field."""

    def __init__(self, field_name: str, expected: str, value: object) -> None:
        self.field_name = field_name
        self.expected = expected
        msg = f"Field '{field_name}' expects {expected}, got {type(value).__name__}"
        super().__init__(msg)


class InvalidHybridTransitionError(SearchError):
    """Raised when the hybrid composer attempts an invalid state transition."""
