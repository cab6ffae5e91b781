"""Cuesync - context extraction and cross-platform sync engine."""

__version__ = "0.1.0"
