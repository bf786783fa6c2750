"""Service layer exposing the search entry point."""
