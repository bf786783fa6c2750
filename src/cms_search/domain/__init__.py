"""Domain layer: field definitions, host items, the query model and typed results.

No infrastructure dependencies live here; backends and HTTP clients are in
``cms_search.adapters``.
"""
