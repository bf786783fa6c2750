"""BM25 scoring helpers for the local search engine.

Kept free of any storage concerns so the inverted index can call them with
plain counts.
"""

from __future__ import annotations

from collections.abc import Iterable
import math


def average_length(lengths: Iterable[int]) -> float:
    """Mean field length in terms; 0.0 for an empty corpus."""

    total = 0
    count = 0
    for length in lengths:
        total += max(length, 0)
        count += 1
    return total / count if count else 0.0


def calculate_idf(doc_freq: int, total_docs: int, *, floor: float = 1e-6) -> float:
    """Return a floored inverse document frequency.

    Common terms in very small corpora get a near-zero weight instead of a
    negative one.
    """

    if total_docs <= 0:
        return 0.0
    df = max(0, min(doc_freq, total_docs))
    ratio = max((total_docs - df + 0.5) / (df + 0.5), floor)
    return max(math.log(ratio + floor) + 1.0, floor)


def bm25(tf: int, doc_length: int, avg_doc_length: float, *, k1: float = 1.2, b: float = 0.75) -> float:
    """Compute the BM25 term weight without IDF."""

    if tf <= 0:
        return 0.0
    normalized_length = doc_length / max(avg_doc_length, 1e-9)
    return (tf * (k1 + 1)) / (tf + k1 * (1 - b + b * normalized_length))
