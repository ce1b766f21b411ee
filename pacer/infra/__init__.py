"""Operational scripts (schema migrations)."""
