"""
Provider-agnostic indexing and search for CMS content and media.

This package provides:
- domain: field definitions, the query model and typed results
- indexing: the converter registry and indexing orchestrator
- search: query translation, hybrid composition and local text analysis
- adapters: local inverted-index, cloud search and embedding backends
- service_layer: the search entry point
"""
