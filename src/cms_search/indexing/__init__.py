"""Indexing pipeline: indexing model, converter registry and orchestrator."""
