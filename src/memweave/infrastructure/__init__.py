"""Adapters to external systems (model backends)."""
