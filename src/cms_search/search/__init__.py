"""
Query translation and ranking helpers.

- translation: provider-agnostic parameters -> backend-native queries
- hybrid: keyword/vector composition state machine
- analyzers: tokenizers and filters used by the local engine
- stats: BM25 scoring statistics used by the local engine
"""
