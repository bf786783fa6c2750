"""Unit tests for local text analysis and BM25 helpers."""

import pytest

from cms_search.search.analyzers import (
    KeywordAnalyzer,
    StandardAnalyzer,
    StopFilter,
    Token,
    WordTokenizer,
    get_analyzer,
)
from cms_search.search.stats import average_length, bm25, calculate_idf


def _terms(tokens):
    return [token.text for token in tokens]


@pytest.mark.unit
class TestAnalyzers:
    """Tokenizer and filter pipeline behaviour."""

    def test_standard_lowercases_drops_stopwords_and_stems(self):
        tokens = StandardAnalyzer()("The Annual Reports of the Board")

        assert _terms(tokens) == ["annual", "report", "board"]
        assert [token.position for token in tokens] == [0, 1, 2]

    def test_short_stems_are_kept_whole(self):
        assert _terms(StandardAnalyzer()("bus runs seeing")) == ["bus", "run", "see"]

    def test_nostem_variant(self):
        assert _terms(get_analyzer("standard-nostem")("Reports")) == ["reports"]

    def test_simple_keeps_stopwords(self):
        assert _terms(get_analyzer("simple")("The End")) == ["the", "end"]

    def test_keyword_analyzer_keeps_whole_value(self):
        assert KeywordAnalyzer()("  New York ") == [Token("new york", 0)]
        assert KeywordAnalyzer()("   ") == []

    def test_tokenizer_keeps_apostrophes(self):
        assert _terms(WordTokenizer()("don't stop")) == ["don't", "stop"]

    def test_custom_stopwords(self):
        tokens = [Token("foo", 0), Token("bar", 1)]

        assert _terms(StopFilter(["FOO"])(tokens)) == ["bar"]

    def test_default_and_unknown_names(self):
        assert isinstance(get_analyzer(None), StandardAnalyzer)
        assert isinstance(get_analyzer("KEYWORD"), KeywordAnalyzer)
        with pytest.raises(ValueError, match="Unknown analyzer 'fancy'"):
            get_analyzer("fancy")


@pytest.mark.unit
class TestStats:
    """BM25 building blocks."""

    def test_average_length(self):
        assert average_length([2, 4, -1]) == 2.0
        assert average_length([]) == 0.0

    def test_idf_favours_rare_terms(self):
        assert calculate_idf(1, 100) > calculate_idf(50, 100) > 0
        assert calculate_idf(3, 0) == 0.0

    def test_idf_stays_positive_for_common_terms(self):
        assert calculate_idf(2, 2) > 0

    def test_bm25_saturates_and_penalises_length(self):
        assert bm25(0, 10, 10.0) == 0.0
        assert bm25(2, 10, 10.0) > bm25(1, 10, 10.0)
        assert bm25(1, 5, 10.0) > bm25(1, 20, 10.0)
        assert bm25(1000, 10, 10.0) < 2.2
