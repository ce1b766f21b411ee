"""Pacer: mood-aware session orchestration for turning intentions into micro-steps."""

__version__ = "0.1.0"
