"""Text analysis for the local search engine.

Analyzers turn field values and query text into terms using a composable
tokenizer + filter pipeline. Fields pick an analyzer by name through
``PhysicalField.analyzer_name``; unnamed fields use the standard analyzer.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Sequence
from dataclasses import dataclass, replace
import re
from typing import Protocol


@dataclass(frozen=True)
class Token:
    """A single analyzed term and its position in the source text."""

    text: str
    position: int


class Analyzer(Protocol):
    def __call__(self, text: str) -> list[Token]:  # pragma: no cover - interface definition
        ...


class TokenFilter(Protocol):
    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:  # pragma: no cover - interface definition
        ...


class WordTokenizer:
    """Split text into word tokens (letters, digits and apostrophes)."""

    def __init__(self, pattern: str = r"[\w']+") -> None:
        self.pattern = re.compile(pattern, re.UNICODE)

    def __call__(self, text: str) -> Iterator[Token]:
        for position, match in enumerate(self.pattern.finditer(text)):
            yield Token(match.group(0), position)


class LowercaseFilter:
    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            yield token if token.text.islower() else replace(token, text=token.text.lower())


DEFAULT_STOPWORDS = frozenset(
    {
        "a",
        "an",
        "and",
        "are",
        "as",
        "at",
        "be",
        "by",
        "for",
        "if",
        "in",
        "is",
        "it",
        "of",
        "on",
        "or",
        "the",
        "to",
        "with",
    }
)


class StopFilter:
    """Drop stopwords from the token stream."""

    def __init__(self, stopwords: Iterable[str] | None = None) -> None:
        if stopwords is None:
            stopwords = DEFAULT_STOPWORDS
        self.stopwords = frozenset(word.lower() for word in stopwords)

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            if token.text not in self.stopwords:
                yield token


_SUFFIXES: tuple[str, ...] = (
    "ational",
    "ization",
    "fulness",
    "ness",
    "ment",
    "ingly",
    "edly",
    "ing",
    "ed",
    "ly",
    "es",
    "s",
)


class SuffixStemFilter:
    """Light English suffix stripping; keeps stems of at least three characters."""

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            stem = _strip_suffix(token.text)
            yield token if stem == token.text else replace(token, text=stem)


def _strip_suffix(word: str) -> str:
    for suffix in _SUFFIXES:
        if word.endswith(suffix) and len(word) - len(suffix) >= 3:
            return word[: -len(suffix)]
    return word


class AnalyzerPipeline:
    """Tokenizer followed by filters; positions are renumbered after filtering."""

    def __init__(self, tokenizer: Callable[[str], Iterator[Token]], filters: Sequence[TokenFilter] = ()) -> None:
        self.tokenizer = tokenizer
        self.filters = list(filters)

    def __call__(self, text: str) -> list[Token]:
        stream: Iterable[Token] = self.tokenizer(text)
        for token_filter in self.filters:
            stream = token_filter(stream)
        return [replace(token, position=index) for index, token in enumerate(stream)]


class StandardAnalyzer:
    """Default analyzer for searchable text fields."""

    def __init__(self, *, stopwords: Iterable[str] | None = None, apply_stemming: bool = True) -> None:
        filters: list[TokenFilter] = [LowercaseFilter(), StopFilter(stopwords)]
        if apply_stemming:
            filters.append(SuffixStemFilter())
        self.pipeline = AnalyzerPipeline(WordTokenizer(), filters)

    def __call__(self, text: str) -> list[Token]:
        return self.pipeline(text)


class KeywordAnalyzer:
    """Whole value as one lowercased token, for identifiers and tags."""

    def __call__(self, text: str) -> list[Token]:
        stripped = text.strip()
        if not stripped:
            return []
        return [Token(stripped.lower(), 0)]


_ANALYZER_FACTORIES: dict[str, Callable[[], Analyzer]] = {
    "standard": lambda: StandardAnalyzer(),
    "standard-nostem": lambda: StandardAnalyzer(apply_stemming=False),
    "simple": lambda: StandardAnalyzer(stopwords=(), apply_stemming=False),
    "keyword": lambda: KeywordAnalyzer(),
}


def get_analyzer(name: str | None) -> Analyzer:
    """Return analyzer by name, defaulting to the standard analyzer."""

    if name is None:
        return _ANALYZER_FACTORIES["standard"]()
    normalized = name.lower()
    if normalized not in _ANALYZER_FACTORIES:
        msg = f"Unknown analyzer '{name}'. Available: {sorted(_ANALYZER_FACTORIES)}"
        raise ValueError(msg)
    return _ANALYZER_FACTORIES[normalized]()
