"""Shared libraries: settings, schemas, logging, LLM routing."""
